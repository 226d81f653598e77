import io
import struct

import pytest
from fastapi.testclient import TestClient
from PIL import Image

from icogen.core import deps
from icogen.main import app
from icogen.services.ico_container import read_directory_entries, read_header
from icogen.services.icon_store import IconStore


def create_png(size: int, color=(128, 128, 128, 255)) -> bytes:
    image = Image.new("RGBA", (size, size), color)
    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    return buffer.getvalue()


@pytest.fixture
def store(tmp_path):
    store = IconStore(tmp_path, ttl_seconds=3600)
    app.dependency_overrides[deps.get_icon_store] = lambda: store
    yield store
    app.dependency_overrides.clear()


def test_create_icon_writes_filtered_sizes(store):
    files = [
        ("files", (f"{size}.png", create_png(size), "image/png"))
        for size in (16, 20, 256)
    ]

    with TestClient(app) as client:
        response = client.post("/api/v1/icons", files=files)

    assert response.status_code == 201
    payload = response.json()
    assert payload["count"] == 2
    assert payload["skipped_sizes"] == [20]
    assert [entry["pixel_size"] for entry in payload["entries"]] == [16, 256]
    assert [entry["width"] for entry in payload["entries"]] == [16, 0]
    assert payload["entries"][0]["data_offset"] == 6 + 16 * 2

    data = store.resolve(payload["icon_id"]).read_bytes()
    assert read_header(data).count == 2


def test_create_icon_without_supported_sizes_is_rejected(store):
    files = [("files", ("odd.png", create_png(20), "image/png"))]

    with TestClient(app) as client:
        response = client.post("/api/v1/icons", files=files)

    assert response.status_code == 400
    assert "at least one image" in response.json()["detail"]
    assert list(store.output_dir.glob("*.ico")) == []


def test_create_icon_rejects_non_image(store):
    files = [("files", ("fake.png", b"not an image", "image/png"))]

    with TestClient(app) as client:
        response = client.post("/api/v1/icons", files=files)

    assert response.status_code == 400
    assert "valid image" in response.json()["detail"]


def test_render_and_download_icon(store):
    with TestClient(app) as client:
        response = client.post(
            "/api/v1/icons/render",
            data={"algo": "NEAREST", "sizes": ["16", "32", "300"]},
            files={"file": ("source.png", create_png(100, color=(255, 0, 0, 255)), "image/png")},
        )
        assert response.status_code == 201
        payload = response.json()
        assert payload["skipped_sizes"] == [300]

        download = client.get(f"/api/v1/icons/{payload['icon_id']}")

    assert download.status_code == 200
    assert download.headers["content-type"] == "image/x-icon"
    assert download.headers.get("content-disposition", "").endswith('.ico"')

    entries = read_directory_entries(download.content)
    assert [(entry.width, entry.height) for entry in entries] == [(16, 16), (32, 32)]
    assert len(download.content) == entries[-1].data_offset + entries[-1].data_size


def test_download_unknown_icon_returns_404(store):
    with TestClient(app) as client:
        response = client.get("/api/v1/icons/" + "0" * 32)

    assert response.status_code == 404
    assert response.json()["title"] == "Not Found"


def test_inspect_icon_decodes_directory(store):
    with TestClient(app) as client:
        created = client.post(
            "/api/v1/icons/render",
            files={"file": ("source.png", create_png(64), "image/png")},
        )
        icon_bytes = store.resolve(created.json()["icon_id"]).read_bytes()

        response = client.post(
            "/api/v1/icons/inspect",
            files={"file": ("icon.ico", icon_bytes, "image/x-icon")},
        )

    assert response.status_code == 200
    payload = response.json()
    assert payload["header"] == {"reserved": 0, "type": 1, "count": 7}
    assert [entry["pixel_size"] for entry in payload["entries"]] == [16, 24, 32, 48, 64, 128, 256]
    assert payload["entries"][-1]["width"] == 0


def test_inspect_truncated_icon_returns_400(store):
    truncated = struct.pack("<HHH", 0, 1, 3) + b"\x10" * 8

    with TestClient(app) as client:
        response = client.post(
            "/api/v1/icons/inspect",
            files={"file": ("broken.ico", truncated, "image/x-icon")},
        )

    assert response.status_code == 400
    assert "truncated" in response.json()["detail"]


def test_create_icon_rejects_jpeg_payload(store):
    image = Image.new("RGB", (32, 32), (10, 20, 30))
    buffer = io.BytesIO()
    image.save(buffer, format="JPEG")
    files = [("files", ("a.jpg", buffer.getvalue(), "image/jpeg"))]

    with TestClient(app) as client:
        response = client.post("/api/v1/icons", files=files)

    assert response.status_code == 400
    assert ".png" in response.json()["detail"]
    assert list(store.output_dir.glob("*.ico")) == []


def test_create_icon_rejects_jpeg_renamed_to_png(store):
    image = Image.new("RGB", (32, 32), (10, 20, 30))
    buffer = io.BytesIO()
    image.save(buffer, format="JPEG")
    files = [("files", ("disguised.png", buffer.getvalue(), "image/png"))]

    with TestClient(app) as client:
        response = client.post("/api/v1/icons", files=files)

    assert response.status_code == 400
    assert "JPEG" in response.json()["detail"]


def test_created_icon_payloads_are_png(store):
    files = [("files", ("16.png", create_png(16), "image/png"))]

    with TestClient(app) as client:
        response = client.post("/api/v1/icons", files=files)

    data = store.resolve(response.json()["icon_id"]).read_bytes()
    entry = read_directory_entries(data)[0]
    assert data[entry.data_offset : entry.data_offset + 8] == b"\x89PNG\r\n\x1a\n"
