import logging
import shutil
import time
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO

from bgsort.core.config import settings
from bgsort.core.errors import (
    BgsortError,
    EmptyContainer,
    IngestionFailed,
    InvalidContainerType,
    TooManyImages,
)
from bgsort.services.addresses import to_address
from bgsort.services.extraction import extract_archive
from bgsort.services.io import check_unique, rel_posix

logger = logging.getLogger(__name__)

STAGING_CHUNK = 1024 * 1024


@dataclass
class IngestionResult:
    addresses: list[str]
    session_id: str


def _unique_suffix() -> str:
    return f"{int(time.time() * 1000)}_{uuid.uuid4().hex[:8]}"


def create_session(storage_root: Path) -> tuple[str, Path]:
    session_id = f"extract_{_unique_suffix()}"
    session_dir = storage_root / session_id
    session_dir.mkdir(parents=True, exist_ok=False)
    return session_id, session_dir


def write_staging_file(upload: bytes | BinaryIO, temp_dir: Path) -> Path:
    temp_dir.mkdir(parents=True, exist_ok=True)
    staging = temp_dir / f"upload_{_unique_suffix()}.zip"
    if isinstance(upload, (bytes, bytearray)):
        staging.write_bytes(upload)
        return staging
    with staging.open("wb") as f:
        while True:
            chunk = upload.read(STAGING_CHUNK)
            if not chunk:
                break
            f.write(chunk)
    return staging


def _discard(path: Path | None) -> None:
    if path is None:
        return
    try:
        if path.is_dir():
            shutil.rmtree(path)
        else:
            path.unlink(missing_ok=True)
    except OSError as exc:
        logger.warning("cleanup of %s failed: %s", path, exc)


async def ingest(
    upload: bytes | BinaryIO,
    filename: str | None,
    storage_root: Path,
    temp_dir: Path,
    max_images: int | None = None,
    prefix: str | None = None,
) -> IngestionResult:
    """Extract an uploaded ZIP into a new session and return its image addresses.

    On any error the staging file and the session directory are removed
    before the error propagates. Errors that are not already a
    :class:`BgsortError` are wrapped in :class:`IngestionFailed`.
    """
    if not filename or not filename.lower().endswith(".zip"):
        raise InvalidContainerType()
    if max_images is None:
        max_images = settings.max_images
    if prefix is None:
        prefix = settings.image_route_prefix

    storage_root = Path(storage_root)
    staging = None
    session_dir = None
    try:
        staging = write_staging_file(upload, Path(temp_dir))
        session_id, session_dir = create_session(storage_root)
        logger.info("ingesting %s (%d bytes) into %s", filename, staging.stat().st_size, session_id)

        extracted = await extract_archive(staging, session_dir)
        if not extracted:
            raise EmptyContainer()
        if len(extracted) > max_images:
            raise TooManyImages(f"ZIP file contains more than {max_images} images")

        extracted.sort(key=lambda p: rel_posix(p, storage_root))
        check_unique(extracted, "extracted paths")

        addresses = [to_address(p, storage_root, prefix) for p in extracted]
        check_unique(addresses, "image addresses")
    except BgsortError:
        _discard(session_dir)
        _discard(staging)
        raise
    except Exception as exc:
        logger.exception("ingestion of %s failed", filename)
        _discard(session_dir)
        _discard(staging)
        raise IngestionFailed(f"Upload failed: {exc}") from exc

    _discard(staging)
    logger.info("session %s ready with %d images", session_id, len(addresses))
    return IngestionResult(addresses=addresses, session_id=session_id)
