import os
import re
from pathlib import Path

from rimg_backend.features.index import fs_walker
from rimg_backend.features.index.fs_walker import FileSystemWalker, relative_entry, scan_root


def test_scan_root_skips_dotfiles_and_other_extensions(image_tree: Path) -> None:
    res = scan_root(image_tree)
    assert res.ok, res.error
    assert sorted(res.data.entries) == ["a.jpg", "cats/b.png"]
    assert res.data.skipped == []
    assert res.data.scan_time_ms >= 0


def test_scan_root_extension_match_is_case_insensitive(image_tree: Path) -> None:
    (image_tree / "LOUD.JPG").write_bytes(b"x")
    (image_tree / "cats" / "Mixed.WebP").write_bytes(b"x")
    res = scan_root(image_tree)
    assert {"LOUD.JPG", "cats/Mixed.WebP"} <= set(res.data.entries)


def test_scan_root_nested_and_dot_directories(tmp_path: Path) -> None:
    (tmp_path / "a" / "b").mkdir(parents=True)
    (tmp_path / "a" / ".cache").mkdir()
    (tmp_path / "a" / "b" / "deep.gif").write_bytes(b"x")
    (tmp_path / "a" / ".cache" / "thumb.jpg").write_bytes(b"x")
    (tmp_path / "a" / ".secret.png").write_bytes(b"x")
    (tmp_path / "a" / "folder.jpg").mkdir()

    res = scan_root(tmp_path)
    assert res.data.entries == ["a/b/deep.gif"]


def test_scan_root_custom_extensions(image_tree: Path) -> None:
    res = scan_root(image_tree, frozenset({".png"}))
    assert res.data.entries == ["cats/b.png"]


def test_scan_root_missing_directory(tmp_path: Path) -> None:
    res = scan_root(tmp_path / "missing")
    assert not res.ok
    assert res.code == "DIRECTORY_UNREADABLE"


def test_scan_root_on_a_file(tmp_path: Path) -> None:
    f = tmp_path / "file.jpg"
    f.write_bytes(b"x")
    assert scan_root(f).code == "DIRECTORY_UNREADABLE"


def test_scan_root_skips_unreadable_subtree(monkeypatch, image_tree: Path) -> None:
    locked = image_tree / "locked"
    locked.mkdir()
    (locked / "inside.jpg").write_bytes(b"x")
    real_scandir = os.scandir

    def _scandir(path):
        if os.fspath(path).endswith("locked"):
            raise PermissionError(13, "Permission denied", os.fspath(path))
        return real_scandir(path)

    monkeypatch.setattr(fs_walker.os, "scandir", _scandir)
    res = scan_root(image_tree)
    assert res.ok
    assert res.data.skipped == ["locked"]
    assert sorted(res.data.entries) == ["a.jpg", "cats/b.png"]


def test_scan_root_unlistable_root(monkeypatch, image_tree: Path) -> None:
    def _scandir(path):
        raise PermissionError(13, "Permission denied", os.fspath(path))

    monkeypatch.setattr(fs_walker.os, "scandir", _scandir)
    res = scan_root(image_tree)
    assert res.code == "DIRECTORY_UNREADABLE"


def test_walker_custom_ignore_pattern(image_tree: Path) -> None:
    walker = FileSystemWalker(image_tree, ignore=re.compile(r"^cats(/|$)"))
    found = sorted(walker.iter_entries())
    # Only the given pattern applies; dot-directories are walked here.
    assert found == [".hidden/c.jpg", "a.jpg"]


def test_relative_entry_uses_forward_slashes(tmp_path: Path) -> None:
    assert relative_entry(tmp_path, tmp_path / "cats" / "b.png") == "cats/b.png"
    assert relative_entry(str(tmp_path), str(tmp_path / "a.jpg")) == "a.jpg"


def test_walker_and_shared_filter_agree(tmp_path: Path) -> None:
    walker = FileSystemWalker(tmp_path, frozenset({".png"}))
    assert walker.is_supported("X.PNG")
    assert not walker.is_supported("x.jpg")
    assert not walker.is_supported("png")
