import asyncio
import os
import shutil
from pathlib import Path

import pytest
from aiohttp.test_utils import TestClient, TestServer, make_mocked_request

from rimg_backend import config
from rimg_backend.app import create_app
from rimg_backend.features.index import IndexSettings, Selection
from rimg_backend.features.index import selector as selector_mod
from rimg_backend.routes.handlers import images as images_mod


def _app(root: Path, **kwargs):
    settings = IndexSettings(root=root, watcher_enabled=False)
    return create_app(settings, cors_origins=kwargs.pop("cors_origins", ("*",)), **kwargs)


@pytest.mark.asyncio
async def test_random_image_streams_file(image_tree: Path) -> None:
    async with TestClient(TestServer(_app(image_tree))) as client:
        resp = await client.get("/api/random-image")
        assert resp.status == 200
        body = await resp.read()
        assert resp.headers["Content-Type"] in {"image/jpeg", "image/png"}
        assert body in {b"\xff\xd8\xffjpeg-a", b"\x89PNG-b"}
        assert resp.headers["Cache-Control"] == "no-store"
        assert resp.headers["Access-Control-Allow-Origin"] == "*"
        assert resp.headers.get("X-Request-ID")


@pytest.mark.asyncio
async def test_random_image_by_category(image_tree: Path) -> None:
    async with TestClient(TestServer(_app(image_tree))) as client:
        resp = await client.get("/api/random-image", params={"category": "cats"})
        assert resp.status == 200
        assert resp.headers["Content-Type"] == "image/png"
        assert resp.headers["X-Image-Path"] == "cats/b.png"
        assert await resp.read() == b"\x89PNG-b"

        root_resp = await client.get("/api/random-image?category=root")
        assert await root_resp.read() == b"\xff\xd8\xffjpeg-a"

        # An empty value means "any category".
        any_resp = await client.get("/api/random-image?category=")
        assert any_resp.status == 200


@pytest.mark.asyncio
async def test_random_image_unknown_category(image_tree: Path) -> None:
    async with TestClient(TestServer(_app(image_tree))) as client:
        resp = await client.get("/api/random-image?category=dogs")
        assert resp.status == 404
        assert await resp.json() == {"error": "No images found in category 'dogs'"}


@pytest.mark.asyncio
async def test_random_image_empty_directory(tmp_path: Path) -> None:
    async with TestClient(TestServer(_app(tmp_path))) as client:
        resp = await client.get("/api/random-image")
        assert resp.status == 404
        assert await resp.json() == {"error": "No images found in the specified directory"}


@pytest.mark.asyncio
async def test_random_image_self_heals(image_tree: Path) -> None:
    async with TestClient(TestServer(_app(image_tree))) as client:
        (image_tree / "a.jpg").unlink()
        for _ in range(5):
            resp = await client.get("/api/random-image")
            assert resp.status == 200
            assert await resp.read() == b"\x89PNG-b"

        info = await (await client.get("/api/images/info")).json()
        assert info["totalImages"] == 1

        (image_tree / "cats" / "b.png").unlink()
        resp = await client.get("/api/random-image")
        assert resp.status == 404
        assert await resp.json() == {"error": "No valid images found in the directory"}


@pytest.mark.asyncio
async def test_images_info_and_categories(image_tree: Path) -> None:
    async with TestClient(TestServer(_app(image_tree))) as client:
        info = await (await client.get("/api/images/info")).json()
        assert info["totalImages"] == 2
        assert info["lastUpdated"].endswith("Z")
        assert info["scanTimeMs"] >= 0
        assert info["categories"] == [{"name": "cats", "count": 1}, {"name": "root", "count": 1}]
        assert info["imageFolder"] == str(image_tree)

        cats = await (await client.get("/api/images/categories")).json()
        assert cats == {"categories": [{"name": "cats", "count": 1}, {"name": "root", "count": 1}]}


@pytest.mark.asyncio
async def test_rescan(image_tree: Path) -> None:
    async with TestClient(TestServer(_app(image_tree))) as client:
        (image_tree / "cats" / "c.gif").write_bytes(b"GIF89a")
        resp = await client.post("/api/images/rescan")
        assert resp.status == 200
        body = await resp.json()
        assert body["success"] is True
        assert body["stats"]["total"] == 3
        assert body["stats"]["skipped"] == 0
        assert {"name": "cats", "count": 2} in body["stats"]["categories"]

        shutil.rmtree(image_tree)
        resp = await client.post("/api/images/rescan")
        assert resp.status == 500
        assert await resp.json() == {
            "success": False,
            "error": "Image directory is missing or cannot be read",
        }


@pytest.mark.asyncio
async def test_health(image_tree: Path) -> None:
    async with TestClient(TestServer(_app(image_tree))) as client:
        body = await (await client.get("/api/health")).json()
        assert body == {
            "ok": True,
            "totalImages": 2,
            "watcher": {"enabled": False, "running": False, "pending": 0},
        }


@pytest.mark.asyncio
async def test_services_unavailable() -> None:
    app = create_app(services={}, manage_lifecycle=False)
    async with TestClient(TestServer(app)) as client:
        resp = await client.get("/api/random-image")
        assert resp.status == 503
        assert await resp.json() == {"error": "Image index is not available"}

        health = await client.get("/api/health")
        assert health.status == 503

        rescan = await client.post("/api/images/rescan")
        assert rescan.status == 503
        assert (await rescan.json())["success"] is False


@pytest.mark.asyncio
async def test_cors_preflight(image_tree: Path) -> None:
    async with TestClient(TestServer(_app(image_tree))) as client:
        resp = await client.options(
            "/api/random-image",
            headers={"Origin": "http://example.test", "Access-Control-Request-Method": "GET"},
        )
        assert resp.status == 204
        assert resp.headers["Access-Control-Allow-Origin"] == "*"
        assert "GET" in resp.headers["Access-Control-Allow-Methods"]


@pytest.mark.asyncio
async def test_cors_restricted_origins(image_tree: Path) -> None:
    app = _app(image_tree, cors_origins=("http://allowed.test",))
    async with TestClient(TestServer(app)) as client:
        ok = await client.get("/api/images/categories", headers={"Origin": "http://allowed.test"})
        assert ok.headers["Access-Control-Allow-Origin"] == "http://allowed.test"
        assert ok.headers["Vary"] == "Origin"

        other = await client.get("/api/images/categories", headers={"Origin": "http://other.test"})
        assert "Access-Control-Allow-Origin" not in other.headers


@pytest.mark.asyncio
async def test_request_id_is_echoed(image_tree: Path) -> None:
    async with TestClient(TestServer(_app(image_tree))) as client:
        resp = await client.get("/api/images/info", headers={"X-Request-ID": "req-123"})
        assert resp.headers["X-Request-ID"] == "req-123"

        streamed = await client.get("/api/random-image", headers={"X-Request-ID": "req-456"})
        await streamed.read()
        assert streamed.headers["X-Request-ID"] == "req-456"


@pytest.mark.asyncio
async def test_random_image_file_deleted_before_open(monkeypatch, image_tree: Path) -> None:
    contents = {
        image_tree / "a.jpg": b"\xff\xd8\xffjpeg-a",
        image_tree / "cats" / "b.png": b"\x89PNG-b",
    }
    real_open = selector_mod._open_image
    deleted: list[Path] = []

    def _open_after_delete(path: Path):
        if not deleted:
            deleted.append(path)
            os.unlink(path)
        return real_open(path)

    monkeypatch.setattr(selector_mod, "_open_image", _open_after_delete)
    async with TestClient(TestServer(_app(image_tree))) as client:
        resp = await client.get("/api/random-image")
        assert resp.status == 200
        (remaining,) = [p for p in contents if p != deleted[0]]
        assert await resp.read() == contents[remaining]

        info = await (await client.get("/api/images/info")).json()
        assert info["totalImages"] == 1


@pytest.mark.asyncio
async def test_random_image_open_failure_is_500(monkeypatch, image_tree: Path) -> None:
    def _denied(path: Path):
        raise PermissionError(13, "Permission denied", str(path))

    monkeypatch.setattr(selector_mod, "_open_image", _denied)
    async with TestClient(TestServer(_app(image_tree))) as client:
        resp = await client.get("/api/random-image")
        assert resp.status == 500
        assert await resp.json() == {"error": "Failed to send image"}

        info = await (await client.get("/api/images/info")).json()
        assert info["totalImages"] == 2


class _EndlessHandle:
    def __init__(self):
        self.closed = False
        self.reads = 0

    def read(self, n):
        self.reads += 1
        return b"x" * n

    def close(self):
        self.closed = True


@pytest.mark.asyncio
async def test_cancelled_stream_closes_handle(monkeypatch) -> None:
    monkeypatch.setattr(config, "STREAM_CHUNK_BYTES", 16)
    handle = _EndlessHandle()
    selection = Selection("a.jpg", Path("a.jpg"), "image/jpeg", size=1 << 30, handle=handle)
    request = make_mocked_request("GET", "/api/random-image")

    task = asyncio.create_task(images_mod._stream_selection(request, selection))
    for _ in range(200):
        if handle.reads >= 3:
            break
        await asyncio.sleep(0.01)
    assert handle.reads >= 3

    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task
    assert handle.closed


@pytest.mark.asyncio
async def test_stream_stops_at_advertised_length(monkeypatch) -> None:
    monkeypatch.setattr(config, "STREAM_CHUNK_BYTES", 16)
    handle = _EndlessHandle()
    selection = Selection("a.jpg", Path("a.jpg"), "image/jpeg", size=40, handle=handle)
    request = make_mocked_request("GET", "/api/random-image")

    resp = await images_mod._stream_selection(request, selection)
    assert resp.status == 200
    assert resp.content_length == 40
    assert handle.reads == 3
    assert handle.closed


@pytest.mark.asyncio
async def test_stream_without_handle_is_500() -> None:
    selection = Selection("a.jpg", Path("a.jpg"), "image/jpeg", size=1)
    resp = await images_mod._stream_selection(make_mocked_request("GET", "/api/random-image"), selection)
    assert resp.status == 500
