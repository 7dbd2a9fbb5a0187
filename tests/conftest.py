import sys
from pathlib import Path

import pytest
import pytest_asyncio

from repo_root import REPO_ROOT

if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))


@pytest.fixture
def image_tree(tmp_path: Path) -> Path:
    """
    root/
      a.jpg
      notes.txt
      cats/b.png
      .hidden/c.jpg
    """
    root = tmp_path / "images"
    (root / "cats").mkdir(parents=True)
    (root / ".hidden").mkdir()
    (root / "a.jpg").write_bytes(b"\xff\xd8\xffjpeg-a")
    (root / "notes.txt").write_text("not an image", encoding="utf-8")
    (root / "cats" / "b.png").write_bytes(b"\x89PNG-b")
    (root / ".hidden" / "c.jpg").write_bytes(b"\xff\xd8\xffjpeg-c")
    return root


@pytest.fixture
def settings(image_tree: Path):
    from rimg_backend.features.index import IndexSettings

    return IndexSettings(root=image_tree, watcher_enabled=False, create_root=False)


@pytest_asyncio.fixture
async def services(settings):
    from rimg_backend.deps import build_services, start_services, stop_services

    svc_res = build_services(settings)
    assert svc_res.ok, svc_res.error
    svc = svc_res.data
    await start_services(svc)
    try:
        yield svc
    finally:
        await stop_services(svc)
