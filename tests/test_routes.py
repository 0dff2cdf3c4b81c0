from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from bgsort.core.config import settings
from bgsort.main import app
from bgsort.services.models import ModelStore


@pytest.fixture
def client(monkeypatch, storage_root, temp_dir):
    monkeypatch.setattr(settings, "storage_root", str(storage_root))
    monkeypatch.setattr(settings, "temp_dir", str(temp_dir))
    monkeypatch.setattr(settings, "max_images", 100)
    monkeypatch.setattr(settings, "openai_api_key", None)
    with TestClient(app) as test_client:
        yield test_client


def _upload(client, data: bytes, filename: str = "photos.zip"):
    return client.post("/api/upload", files={"file": (filename, data, "application/zip")})


def test_healthz(client):
    assert client.get("/healthz").json() == {"status": "ok"}


def test_upload_and_serve(client, make_zip):
    data = make_zip([
        ("a.jpg", b"jpeg-a"),
        ("sub/a.jpg", b"jpeg-sub-a"),
        ("b.png", b"png-b"),
        ("._b.png", b""),
        ("readme.txt", b"read me"),
        ("empty_dir/", b""),
    ])

    response = _upload(client, data)

    assert response.status_code == 200
    body = response.json()
    urls = body["imageUrls"]
    assert [u.rsplit("/", 1)[1] for u in urls] == ["a.jpg", "a_1.jpg", "b.png"]
    assert all(u.startswith(f"/api/images/{body['extractDir']}/") for u in urls)

    served = [client.get(u) for u in urls]
    assert [r.status_code for r in served] == [200, 200, 200]
    assert [r.content for r in served] == [b"jpeg-a", b"jpeg-sub-a", b"png-b"]
    assert served[0].headers["content-type"] == "image/jpeg"
    assert served[2].headers["content-type"] == "image/png"
    assert served[0].headers["cache-control"] == "public, max-age=31536000"


def test_serve_encoded_name(client, make_zip):
    response = _upload(client, make_zip([("summer sale #1.webp", b"webp")]))

    url = response.json()["imageUrls"][0]
    assert url.endswith("/summer%20sale%20%231.webp")
    served = client.get(url)
    assert served.status_code == 200
    assert served.content == b"webp"
    assert served.headers["content-type"] == "image/webp"


def test_upload_wrong_type(client, make_zip):
    response = _upload(client, make_zip([("a.jpg", b"a")]), filename="photos.rar")

    assert response.status_code == 400
    assert response.json() == {"detail": "File must be a ZIP file", "kind": "InvalidContainerType"}


def test_upload_without_file(client):
    response = client.post("/api/upload")

    assert response.status_code == 400
    assert response.json()["detail"] == "No file provided"


def test_upload_empty_archive(client, make_zip, storage_root):
    response = _upload(client, make_zip([("notes.txt", b"no images")]))

    assert response.status_code == 400
    assert response.json() == {"detail": "No images found in ZIP file", "kind": "EmptyContainer"}
    assert list(storage_root.iterdir()) == []


def test_upload_too_many(client, make_zip, storage_root):
    response = _upload(client, make_zip([(f"p{i}.jpg", b"j") for i in range(101)]))

    assert response.status_code == 400
    assert response.json()["kind"] == "TooManyImages"
    assert list(storage_root.iterdir()) == []


def test_upload_corrupt(client):
    response = _upload(client, b"definitely not a zip")

    assert response.status_code == 400
    assert response.json()["kind"] == "ArchiveCorrupt"


def test_serve_traversal_is_forbidden(client, storage_root):
    (storage_root.parent / "secret.jpg").write_bytes(b"secret")

    response = client.get("/api/images/..%2fsecret.jpg")

    assert response.status_code == 403
    assert response.json()["kind"] == "PathTraversal"


def test_serve_missing(client):
    response = client.get("/api/images/extract_0/missing.jpg")

    assert response.status_code == 404
    assert response.json()["kind"] == "NotFound"


def test_classify_without_key(client, make_zip):
    url = _upload(client, make_zip([("a.jpg", b"a")])).json()["imageUrls"][0]

    response = client.post("/api/classify", json={"imageUrl": url})

    assert response.status_code == 500
    body = response.json()
    assert body["classification"] == "unknown"
    assert body["error"] == "OpenAI API key not configured"


def test_classify_requires_url(client):
    response = client.post("/api/classify", json={})

    assert response.status_code == 400
    assert response.json()["error"] == "Image URL required"


def test_classify(client, make_zip):
    url = _upload(client, make_zip([("a.png", b"png")])).json()["imageUrls"][0]
    message = MagicMock()
    message.content = '{"foreground": "vase", "background": "marble studio", "classification": "good", "rationale": "pro set"}'
    openai_client = MagicMock()
    openai_client.chat.completions.create = AsyncMock(return_value=MagicMock(choices=[MagicMock(message=message)]))
    app.state.models = ModelStore(client=openai_client, model="m", max_tokens=10)

    response = client.post("/api/classify", json={"imageUrl": url})

    assert response.status_code == 200
    assert response.json() == {
        "foreground": "vase",
        "background": "marble studio",
        "classification": "good",
        "rationale": "pro set",
        "caption": "vase\nmarble studio",
    }


def test_classify_missing_image(client):
    app.state.models = ModelStore(client=MagicMock(), model="m", max_tokens=10)

    response = client.post("/api/classify", json={"imageUrl": "/api/images/extract_0/gone.jpg"})

    assert response.status_code == 404
    assert response.json()["error"] == "File not found"
