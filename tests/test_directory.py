# Copyright (c) QuantCo and pydiverse contributors 2025-2025
# SPDX-License-Identifier: BSD-3-Clause
from __future__ import annotations

from pathlib import Path

import fsspec
import pytest
from fsspec.implementations.local import LocalFileSystem

from pydiverse.replication.backend.directory import FsspecDirectoryReconciler
from pydiverse.replication.errors import DirectoryCopyError

FILES = {
    "part-00000.parquet": b"a" * 10,
    "nested/part-00001.parquet": b"b" * 5,
}


def listing(path) -> dict[str, bytes]:
    path = Path(path)
    return {
        str(p.relative_to(path)): p.read_bytes() for p in path.rglob("*") if p.is_file()
    }


def test_exists(tmp_path, tree, reconciler):
    tree(tmp_path / "a", FILES)
    (tmp_path / "file").write_bytes(b"")

    assert reconciler.exists(str(tmp_path / "a"))
    assert not reconciler.exists(str(tmp_path / "missing"))
    assert not reconciler.exists(str(tmp_path / "file"))


def test_equal(tmp_path, tree, reconciler):
    a = tree(tmp_path / "a", FILES)
    b = tree(tmp_path / "b", FILES)
    c = tree(tmp_path / "c", FILES | {"part-00000.parquet": b"a" * 11})
    d = tree(tmp_path / "d", FILES | {"extra": b""})

    assert reconciler.equal(a, b)
    assert not reconciler.equal(a, c)
    assert not reconciler.equal(a, d)
    assert not reconciler.equal(a, str(tmp_path / "missing"))
    assert not reconciler.equal(str(tmp_path / "missing"), str(tmp_path / "missing"))


def test_copy(tmp_path, tree, reconciler):
    src = tree(tmp_path / "src" / "t", FILES)
    dst = str(tmp_path / "dst" / "d" / "t")

    assert reconciler.copy(src, dst, tags=["src", "d", "t"]) == 15
    assert listing(dst) == FILES
    assert reconciler.equal(src, dst)
    # no leftovers of the temporary directory
    assert [p.name for p in (tmp_path / "dst" / "d").iterdir()] == ["t"]


def test_copy_replaces_destination(tmp_path, tree, reconciler):
    src = tree(tmp_path / "src", FILES)
    dst = tree(tmp_path / "dst", {"stale.parquet": b"old"})

    reconciler.copy(src, dst)

    assert listing(dst) == FILES


def test_copy_with_tmp_root(tmp_path, tree):
    reconciler = FsspecDirectoryReconciler(tmp_root=str(tmp_path / "tmp"), block_size=4)
    src = tree(tmp_path / "src", FILES)
    dst = str(tmp_path / "dst")

    assert reconciler.copy(src, dst) == 15
    assert listing(dst) == FILES
    assert list((tmp_path / "tmp").iterdir()) == []


def test_copy_missing_source(tmp_path, reconciler):
    with pytest.raises(DirectoryCopyError):
        reconciler.copy(str(tmp_path / "missing"), str(tmp_path / "dst"))


def test_copy_failure_cleans_up(mocker, tmp_path, tree, reconciler):
    src = tree(tmp_path / "src", FILES)
    dst_parent = tmp_path / "dst"
    dst_parent.mkdir()
    mocker.patch("shutil.copyfileobj", side_effect=OSError("disk full"))

    with pytest.raises(DirectoryCopyError):
        reconciler.copy(src, str(dst_parent / "t"))
    assert list(dst_parent.iterdir()) == []


def test_failed_rename_restores_destination(mocker, tmp_path, tree, reconciler):
    src = tree(tmp_path / "src", FILES)
    dst = tree(tmp_path / "dst" / "t", {"old.parquet": b"old"})
    mv = LocalFileSystem.mv

    def mv_failing_for_new_tree(self, path1, path2, **kwargs):
        if "_replication_tmp_" in path1:
            raise OSError("rename failed")
        return mv(self, path1, path2, **kwargs)

    mocker.patch.object(
        LocalFileSystem, "mv", autospec=True, side_effect=mv_failing_for_new_tree
    )

    with pytest.raises(DirectoryCopyError):
        reconciler.copy(src, dst)

    assert listing(dst) == {"old.parquet": b"old"}
    assert [p.name for p in (tmp_path / "dst").iterdir()] == ["t"]


def test_failed_rename_keeps_destination(mocker, tmp_path, tree, reconciler):
    src = tree(tmp_path / "src", FILES)
    dst = tree(tmp_path / "dst" / "t", {"old.parquet": b"old"})
    mocker.patch.object(LocalFileSystem, "mv", side_effect=OSError("read-only"))

    with pytest.raises(DirectoryCopyError):
        reconciler.copy(src, dst)

    assert listing(dst) == {"old.parquet": b"old"}
    assert [p.name for p in (tmp_path / "dst").iterdir()] == ["t"]


def test_move(tmp_path, tree, reconciler):
    staged = tree(tmp_path / "stage" / "t", FILES)
    dst = tree(tmp_path / "dst" / "t", {"stale": b"x"})

    reconciler.move(staged, dst)

    assert listing(dst) == FILES
    assert not Path(staged).exists()


def test_move_across_filesystems(tmp_path, tree, reconciler):
    staged = tree(tmp_path / "stage", FILES)

    with pytest.raises(DirectoryCopyError, match="different filesystems"):
        reconciler.move(staged, "memory://dst")


def test_memory_filesystem(tmp_path, tree, reconciler):
    src = tree(tmp_path / "src", FILES)

    try:
        assert reconciler.copy(src, "memory://replication-test/t") == 15
        assert reconciler.equal(src, "memory://replication-test/t")
    finally:
        fsspec.filesystem("memory").rm("/replication-test", recursive=True)
