"""Error kinds raised by the ingestion pipeline and its collaborators."""


class BgsortError(Exception):
    """Base class for errors surfaced to API callers.

    ``kind`` is the stable error name returned to clients, ``status_code``
    the HTTP status the API layer answers with.
    """

    kind = "Error"
    status_code = 500
    default_message = "Request failed"

    def __init__(self, message: str | None = None):
        super().__init__(message or self.default_message)

    @property
    def message(self) -> str:
        return str(self)


class InvalidContainerType(BgsortError):
    kind = "InvalidContainerType"
    status_code = 400
    default_message = "File must be a ZIP file"


class ArchiveCorrupt(BgsortError):
    kind = "ArchiveCorrupt"
    status_code = 400
    default_message = "Uploaded file is not a readable ZIP archive"


class EmptyContainer(BgsortError):
    kind = "EmptyContainer"
    status_code = 400
    default_message = "No images found in ZIP file"


class TooManyImages(BgsortError):
    kind = "TooManyImages"
    status_code = 400
    default_message = "ZIP file contains too many images"


class ArchiveIOError(BgsortError):
    kind = "ArchiveIOError"
    status_code = 500
    default_message = "Could not write extracted files"


class PathTraversal(BgsortError):
    kind = "PathTraversal"
    status_code = 403
    default_message = "Invalid path"


class NotFound(BgsortError):
    kind = "NotFound"
    status_code = 404
    default_message = "File not found"


class IngestionFailed(BgsortError):
    kind = "IngestionFailed"
    status_code = 500
    default_message = "Upload failed"


class ClassifierUnavailable(BgsortError):
    kind = "ClassifierUnavailable"
    status_code = 500
    default_message = "OpenAI API key not configured"


class ClassificationFailed(BgsortError):
    kind = "ClassificationFailed"
    status_code = 500
    default_message = "Classification failed"


class InvariantViolation(RuntimeError):
    """A layer produced duplicate paths or addresses. Always a bug."""
