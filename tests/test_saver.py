"""Tests for manifest savers."""

import os
from pathlib import Path

import pytest

from helm_extensions.exceptions import ManifestSaveException
from helm_extensions.saver import DirectoryManifestSaver, InMemoryManifestSaver


async def test_directory_saver(tmp_path: Path) -> None:
    """Test writing manifests into a directory that does not exist yet."""
    manifests_dir = tmp_path / "manifests" / "helm"
    saver = DirectoryManifestSaver(manifests_dir)
    await saver.save("addon_crd_manifest_foo.yaml", b"kind: Chart\n")
    path = manifests_dir / "addon_crd_manifest_foo.yaml"
    assert path.read_bytes() == b"kind: Chart\n"

    await saver.save("addon_crd_manifest_foo.yaml", b"kind: Chart\nspec: {}\n")
    assert path.read_bytes() == b"kind: Chart\nspec: {}\n"
    assert os.listdir(manifests_dir) == ["addon_crd_manifest_foo.yaml"]


async def test_directory_saver_unchanged(tmp_path: Path) -> None:
    """Test unchanged content is not written again."""
    saver = DirectoryManifestSaver(tmp_path)
    await saver.save("foo.yaml", b"content")
    path = tmp_path / "foo.yaml"
    os.utime(path, (0, 0))
    await saver.save("foo.yaml", b"content")
    assert path.stat().st_mtime == 0


@pytest.mark.parametrize("filename", ["../foo.yaml", "sub/foo.yaml"])
async def test_directory_saver_invalid_filename(tmp_path: Path, filename: str) -> None:
    """Test filenames must not escape the manifests directory."""
    saver = DirectoryManifestSaver(tmp_path / "manifests")
    with pytest.raises(ManifestSaveException, match="Invalid manifest filename"):
        await saver.save(filename, b"content")


async def test_directory_saver_write_failure(tmp_path: Path) -> None:
    """Test write failures are reported."""
    blocker = tmp_path / "manifests"
    blocker.write_text("not a directory")
    saver = DirectoryManifestSaver(blocker)
    with pytest.raises(ManifestSaveException, match="Unable to write"):
        await saver.save("foo.yaml", b"content")


async def test_in_memory_saver() -> None:
    """Test the in memory saver replaces content."""
    saver = InMemoryManifestSaver()
    await saver.save("foo.yaml", b"a")
    await saver.save("foo.yaml", b"b")
    assert saver.manifests == {"foo.yaml": b"b"}
