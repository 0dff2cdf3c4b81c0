"""Public addresses for extracted images.

An address is the image's path relative to the storage root, percent-encoded
and placed under a routing prefix, e.g. ``/api/images/extract_1_ab/cat.jpg``.
The serving route hands everything after the prefix to :func:`resolve`.
"""

import logging
from pathlib import Path
from urllib.parse import quote, unquote

from bgsort.core.errors import NotFound, PathTraversal
from bgsort.services.io import is_within_base, rel_posix

logger = logging.getLogger(__name__)

MIME_TYPES = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".gif": "image/gif",
    ".webp": "image/webp",
    ".bmp": "image/bmp",
}
DEFAULT_MIME_TYPE = "image/jpeg"


def to_address(path: Path, storage_root: Path, prefix: str = "/api/images") -> str:
    rel = rel_posix(path, storage_root).lstrip("/")
    return f"{prefix.rstrip('/')}/{quote(rel, safe='/')}"


def strip_prefix(address: str, prefix: str = "/api/images") -> str:
    """Return the part of a full address after the routing prefix.

    Addresses without the prefix are returned unchanged.
    """
    prefix = prefix.rstrip("/") + "/"
    if address.startswith(prefix):
        return address[len(prefix):]
    if address.startswith(prefix.lstrip("/")):
        return address[len(prefix.lstrip("/")):]
    return address


def resolve(address: str, storage_root: Path, decode: bool = True) -> Path:
    """Map an address (without the routing prefix) to a file under the root.

    Pass ``decode=False`` when the web framework already percent-decoded it.
    """
    decoded = (unquote(address) if decode else address).replace("\\", "/")
    if not decoded.strip("/") or "\x00" in decoded:
        raise PathTraversal()

    root = Path(storage_root).resolve()
    # a leading slash would make the join absolute; is_within_base rejects that
    candidate = (root / decoded).resolve(strict=False)
    if not is_within_base(candidate, root):
        logger.warning("path traversal attempt: %r resolved to %s", address, candidate)
        raise PathTraversal()
    if not candidate.is_file():
        raise NotFound()
    return candidate


def mime_type_for(path: Path) -> str:
    return MIME_TYPES.get(Path(path).suffix.lower(), DEFAULT_MIME_TYPE)


def read_image(address: str, storage_root: Path, decode: bool = True) -> tuple[bytes, str]:
    path = resolve(address, storage_root, decode)
    return path.read_bytes(), mime_type_for(path)
