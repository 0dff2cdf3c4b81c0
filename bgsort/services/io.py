from pathlib import Path, PurePosixPath

from bgsort.core.errors import InvariantViolation

IMAGE_EXTS = {".jpg", ".jpeg", ".png", ".gif", ".webp", ".bmp"}

# AppleDouble companions written by macOS archivers
RESOURCE_FORK_PREFIX = "._"


def _posix(name: str) -> PurePosixPath:
    return PurePosixPath(name.replace("\\", "/"))


def leaf_name(name: str) -> str:
    return _posix(name).name


def is_image_entry(name: str, is_dir: bool = False) -> bool:
    """Decide whether an archive entry should be extracted as an image.

    Directories, names without an image extension and resource-fork
    shadow files (``._photo.jpg``) are rejected.
    """
    if is_dir or name.endswith(("/", "\\")):
        return False
    if _posix(name).suffix.lower() not in IMAGE_EXTS:
        return False
    if leaf_name(name).startswith(RESOURCE_FORK_PREFIX):
        return False
    return True


def is_within_base(path: Path, base: Path) -> bool:
    """True when ``path`` canonicalises to a strict descendant of ``base``."""
    try:
        rel = path.resolve(strict=False).relative_to(base.resolve(strict=False))
    except ValueError:
        return False
    return rel != Path(".")


def rel_posix(path: Path, base: Path) -> str:
    return path.resolve().relative_to(base.resolve()).as_posix()


def duplicates(items) -> list:
    seen = set()
    dups = []
    for item in items:
        if item in seen:
            dups.append(item)
        seen.add(item)
    return dups


def check_unique(items, what: str) -> None:
    dups = duplicates(items)
    if dups:
        raise InvariantViolation(f"duplicate {what}: {dups}")
