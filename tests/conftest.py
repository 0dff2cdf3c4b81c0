import warnings
import zipfile
from io import BytesIO
from pathlib import Path

import pytest


def make_zip_bytes(entries: list[tuple[str, bytes]], compression: int = zipfile.ZIP_DEFLATED) -> bytes:
    """Build a zip from ``(name, content)`` pairs, keeping repeated names."""
    buf = BytesIO()
    with warnings.catch_warnings():
        # zipfile warns on repeated names, which some tests need
        warnings.simplefilter("ignore")
        with zipfile.ZipFile(buf, mode="w", compression=compression) as zf:
            for name, content in entries:
                zf.writestr(name, content)
    return buf.getvalue()


@pytest.fixture
def storage_root(tmp_path: Path) -> Path:
    root = tmp_path / "uploads"
    root.mkdir()
    return root


@pytest.fixture
def temp_dir(tmp_path: Path) -> Path:
    path = tmp_path / "temp"
    path.mkdir()
    return path


@pytest.fixture
def make_zip():
    return make_zip_bytes
