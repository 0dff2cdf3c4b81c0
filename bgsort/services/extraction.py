import asyncio
import errno
import logging
import os
import shutil
import threading
import zipfile
from pathlib import Path
from typing import BinaryIO

from bgsort.core.errors import ArchiveCorrupt, ArchiveIOError
from bgsort.services.io import RESOURCE_FORK_PREFIX, check_unique, is_image_entry, leaf_name

logger = logging.getLogger(__name__)

COPY_CHUNK = 1024 * 1024

# Per-name failures; any other OSError on every copy means staging itself is broken
NAME_ERRNOS = {errno.ENAMETOOLONG, errno.EINVAL, errno.EILSEQ}


class ArchiveExtractor:
    """Flatten the image entries of one ZIP archive into a single directory.

    Entries are planned strictly in archive order: repeated names are
    skipped, non-images dropped, and leaf-name collisions renamed to
    ``name_1.jpg``, ``name_2.jpg``, ... Byte copies run in worker threads
    while the next entry is planned, and are all awaited before
    :meth:`extract` returns.

    Use one instance per archive; the bookkeeping sets are not reset.
    """

    def __init__(self, destination: Path):
        self.destination = Path(destination)
        self._seen_names: set[str] = set()
        self._claimed: set[Path] = set()
        self._io_errors: list[OSError] = []
        # ZipFile.open/close update an unguarded refcount; reads are locked internally
        self._zip_lock = threading.Lock()

    async def extract(self, source: str | Path | BinaryIO) -> list[Path]:
        self._check_destination()
        try:
            zf = zipfile.ZipFile(source)
        except (zipfile.BadZipFile, OSError, ValueError) as exc:
            raise ArchiveCorrupt(f"Could not open ZIP archive: {exc}") from exc

        pending: list[asyncio.Task] = []
        with zf:
            try:
                for info in zf.infolist():
                    dest = self._plan(info)
                    if dest is None:
                        continue
                    pending.append(asyncio.create_task(asyncio.to_thread(self._copy, zf, info, dest)))
                    await asyncio.sleep(0)
            finally:
                settled = await asyncio.gather(*pending, return_exceptions=True)

        written = []
        for result in settled:
            if isinstance(result, BaseException):
                logger.warning("copy task failed: %s", result)
            elif result is not None:
                written.append(result)

        if pending and not written and len(self._io_errors) == len(pending):
            raise ArchiveIOError(f"Could not write extracted files: {self._io_errors[0]}")

        check_unique(written, "extracted paths")
        logger.info(
            "extracted %d of %d scheduled entries into %s",
            len(written), len(pending), self.destination,
        )
        return written

    def _check_destination(self) -> None:
        if not self.destination.is_dir():
            raise ArchiveIOError(f"Extraction directory does not exist: {self.destination}")
        if not os.access(self.destination, os.W_OK):
            raise ArchiveIOError(f"Extraction directory is not writable: {self.destination}")

    def _plan(self, info: zipfile.ZipInfo) -> Path | None:
        name = info.filename
        if name in self._seen_names:
            logger.warning("duplicate entry %s, skipping", name)
            return None
        self._seen_names.add(name)

        if not is_image_entry(name, info.is_dir()):
            if leaf_name(name).startswith(RESOURCE_FORK_PREFIX):
                logger.info("skipping resource fork file %s", name)
            return None
        if info.flag_bits & 0x1:
            logger.warning("skipping encrypted entry %s", name)
            return None
        try:
            return self._claim(leaf_name(name))
        except OSError as exc:
            logger.warning("cannot stage %s: %s", name, exc)
            return None

    def _claim(self, filename: str) -> Path:
        candidate = self.destination / filename
        stem, suffix = candidate.stem, candidate.suffix
        counter = 1
        while candidate in self._claimed or candidate.exists():
            candidate = self.destination / f"{stem}_{counter}{suffix}"
            counter += 1
        if candidate.name != filename:
            logger.info("name collision for %s, writing %s", filename, candidate.name)
        self._claimed.add(candidate)
        return candidate

    def _copy(self, zf: zipfile.ZipFile, info: zipfile.ZipInfo, dest: Path) -> Path | None:
        try:
            with self._zip_lock:
                src = zf.open(info)
            try:
                with dest.open("xb") as out:
                    shutil.copyfileobj(src, out, COPY_CHUNK)
            finally:
                with self._zip_lock:
                    src.close()
        except FileExistsError:
            logger.error("refusing to overwrite %s for entry %s", dest, info.filename)
            return None
        except Exception as exc:
            logger.warning("failed to extract %s -> %s: %s", info.filename, dest, exc)
            if isinstance(exc, OSError) and exc.errno not in NAME_ERRNOS:
                self._io_errors.append(exc)
            try:
                dest.unlink(missing_ok=True)
            except OSError as unlink_exc:
                logger.debug("could not remove partial file %s: %s", dest, unlink_exc)
            return None

        if not dest.is_file():
            logger.error("file was not written: %s", dest)
            return None
        return dest


async def extract_archive(source: str | Path | BinaryIO, destination: Path) -> list[Path]:
    return await ArchiveExtractor(destination).extract(source)
