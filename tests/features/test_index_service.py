import shutil
from pathlib import Path

import pytest

from rimg_backend.deps import build_services, start_services, stop_services
from rimg_backend.features.index import IndexService, IndexSettings


@pytest.mark.asyncio
async def test_start_runs_initial_scan(services) -> None:
    service: IndexService = services["index"]
    stats = service.stats()
    assert stats.total == 2
    assert stats.per_category() == {"cats": 1, "root": 1}
    assert stats.last_updated is not None
    assert stats.scan_time_ms is not None
    assert services["watcher"] is None


@pytest.mark.asyncio
async def test_rescan_picks_up_new_files(services, image_tree: Path) -> None:
    service: IndexService = services["index"]
    (image_tree / "dogs").mkdir()
    (image_tree / "dogs" / "rex.webp").write_bytes(b"x")
    (image_tree / "a.jpg").unlink()

    res = await service.rescan()
    assert res.ok, res.error
    assert res.meta["skipped"] == []
    assert res.data.per_category() == {"cats": 1, "dogs": 1}


@pytest.mark.asyncio
async def test_rescan_of_missing_root_keeps_previous_index(services, image_tree: Path) -> None:
    service: IndexService = services["index"]
    shutil.rmtree(image_tree)

    res = await service.rescan()
    assert not res.ok
    assert res.code == "DIRECTORY_UNREADABLE"
    assert len(service.index) == 2


@pytest.mark.asyncio
async def test_start_creates_missing_root(tmp_path: Path) -> None:
    root = tmp_path / "not-yet"
    service = IndexService(IndexSettings(root=root, watcher_enabled=False, create_root=True))
    res = await service.start()
    assert res.ok
    assert root.is_dir()
    assert res.data.total == 0
    await service.stop()


@pytest.mark.asyncio
async def test_start_without_create_reports_unreadable(tmp_path: Path) -> None:
    service = IndexService(IndexSettings(root=tmp_path / "missing", watcher_enabled=False))
    res = await service.start()
    assert res.code == "DIRECTORY_UNREADABLE"
    assert len(service.index) == 0


@pytest.mark.asyncio
async def test_select_and_status(services) -> None:
    service: IndexService = services["index"]
    res = await service.select("cats")
    assert res.ok
    res.data.close()
    assert res.data.entry == "cats/b.png"
    assert service.status() == {
        "totalImages": 2,
        "watcher": {"enabled": False, "running": False, "pending": 0},
    }


@pytest.mark.asyncio
async def test_services_with_watcher(image_tree: Path) -> None:
    class _Observer:
        def schedule(self, handler, path, recursive=True):
            return None

        def start(self):
            pass

        def stop(self):
            pass

        def join(self, timeout=0):
            pass

    from rimg_backend.features.index import ImageIndex, ImageWatcher

    settings = IndexSettings(root=image_tree, watcher_enabled=True)
    index = ImageIndex()
    service = IndexService(settings, index=index, watcher=ImageWatcher(index, settings, observer_factory=_Observer))
    await service.start()
    try:
        assert service.status()["watcher"]["running"] is True
        assert len(service.index) == 2
    finally:
        await service.stop()
    assert service.status()["watcher"]["running"] is False


def test_build_services_defaults_to_config(monkeypatch, tmp_path: Path) -> None:
    from rimg_backend import config

    monkeypatch.setattr(config, "IMAGE_FOLDER_PATH", tmp_path)
    monkeypatch.setattr(config, "WATCHER_ENABLED", False)
    res = build_services()
    assert res.ok
    assert res.data["settings"].root == tmp_path
    assert res.data["index"].root == tmp_path
    assert res.data["watcher"] is None


@pytest.mark.asyncio
async def test_start_services_logs_scan_failure(tmp_path: Path) -> None:
    res = build_services(IndexSettings(root=tmp_path / "missing", watcher_enabled=False))
    # Must not raise: the server keeps running and a rescan can recover.
    await start_services(res.data)
    await stop_services(res.data)
    await stop_services({})
