# Copyright (c) QuantCo and pydiverse contributors 2025-2025
# SPDX-License-Identifier: BSD-3-Clause
from __future__ import annotations

import posixpath
import shutil
import uuid
from collections.abc import Sequence
from typing import Any

import structlog
from fsspec import AbstractFileSystem
from fsspec.core import url_to_fs

from pydiverse.replication.backend.directory.base import DirectoryReconciler
from pydiverse.replication.errors import DirectoryCopyError


class FsspecDirectoryReconciler(DirectoryReconciler):
    """Directory reconciler for any filesystem supported by fsspec

    Paths may be plain local paths or URLs (``hdfs://``, ``s3://``,
    ``memory://``, ...). Copies stream file by file, so source and
    destination may live on different filesystems. Each copy is written to a
    temporary directory on the destination filesystem first and then renamed
    into place.

    Config File
    -----------
    :param tmp_root:
        Directory for in-flight copies. Must be on the destination filesystem.
        Defaults to a ``_replication_tmp_*`` sibling of the destination, which
        Hive-style readers ignore.
    :param storage_options:
        Passed to :py:func:`fsspec.core.url_to_fs` for every path.
    :param block_size:
        Buffer size used when streaming files.
    """

    def __init__(
        self,
        tmp_root: str | None = None,
        storage_options: dict[str, Any] | None = None,
        block_size: int = 8 * 1024 * 1024,
    ):
        self.tmp_root = tmp_root
        self.storage_options = storage_options or {}
        self.block_size = block_size
        self.logger = structlog.get_logger(logger_name=type(self).__name__)

    def _fs(self, path: str) -> tuple[AbstractFileSystem, str]:
        fs, fs_path = url_to_fs(path, **self.storage_options)
        return fs, fs_path.rstrip("/")

    def _listing(self, path: str) -> dict[str, int] | None:
        """Relative file name -> size for all files below `path`"""
        fs, fs_path = self._fs(path)
        if not fs.isdir(fs_path):
            return None
        listing = {}
        for name, info in fs.find(fs_path, detail=True).items():
            relative = posixpath.relpath(fs._strip_protocol(name), fs_path)
            listing[relative] = info["size"]
        return listing

    def exists(self, path: str) -> bool:
        fs, fs_path = self._fs(path)
        return fs.isdir(fs_path)

    def equal(self, a: str, b: str) -> bool:
        listing_a = self._listing(a)
        if listing_a is None:
            return False
        return listing_a == self._listing(b)

    def copy(self, src: str, dst: str, tags: Sequence[str] = ()) -> int:
        src_fs, src_path = self._fs(src)
        dst_fs, dst_path = self._fs(dst)
        listing = self._listing(src)
        if listing is None:
            raise DirectoryCopyError(f"Source directory '{src}' doesn't exist")

        tmp_path = self._tmp_path(dst_fs, dst_path)
        self.logger.info(
            "Copying directory", src=src, dst=dst, tmp=tmp_path, tags=list(tags)
        )
        try:
            dst_fs.makedirs(tmp_path, exist_ok=True)
            for relative in sorted(listing):
                target = posixpath.join(tmp_path, relative)
                dst_fs.makedirs(posixpath.dirname(target), exist_ok=True)
                with (
                    src_fs.open(posixpath.join(src_path, relative), "rb") as fin,
                    dst_fs.open(target, "wb") as fout,
                ):
                    shutil.copyfileobj(fin, fout, self.block_size)
            self._replace_directory(dst_fs, tmp_path, dst_path)
        except OSError as e:
            if dst_fs.exists(tmp_path):
                dst_fs.rm(tmp_path, recursive=True)
            raise DirectoryCopyError(f"Failed copying '{src}' to '{dst}'") from e

        bytes_copied = sum(listing.values())
        self.logger.info(
            "Copied directory",
            src=src,
            dst=dst,
            files=len(listing),
            bytes_copied=bytes_copied,
            tags=list(tags),
        )
        return bytes_copied

    def move(self, src: str, dst: str):
        src_fs, src_path = self._fs(src)
        dst_fs, dst_path = self._fs(dst)
        if src_fs is not dst_fs:
            raise DirectoryCopyError(
                f"Can't move '{src}' to '{dst}': paths are on different filesystems"
            )
        self.logger.info("Moving directory", src=src, dst=dst)
        try:
            self._replace_directory(dst_fs, src_path, dst_path)
        except OSError as e:
            raise DirectoryCopyError(f"Failed moving '{src}' to '{dst}'") from e

    def _tmp_path(self, fs: AbstractFileSystem, dst_path: str) -> str:
        name = f"_replication_tmp_{uuid.uuid4().hex}"
        if self.tmp_root is not None:
            tmp_fs, tmp_root = self._fs(self.tmp_root)
            if tmp_fs is not fs:
                raise DirectoryCopyError(
                    f"tmp_root '{self.tmp_root}' isn't on the destination filesystem"
                )
            return posixpath.join(tmp_root, name)
        return posixpath.join(posixpath.dirname(dst_path), name)

    def _replace_directory(self, fs: AbstractFileSystem, src_path: str, dst_path: str):
        """Renames `src_path` to `dst_path`, replacing any existing tree

        The existing tree is renamed aside first and only gets deleted once
        the new tree is in place. If the rename fails, it gets restored.
        """
        parent = posixpath.dirname(dst_path)
        backup_path = None
        if fs.exists(dst_path):
            backup_path = posixpath.join(
                parent, f"_replication_old_{uuid.uuid4().hex}"
            )
            fs.mv(dst_path, backup_path, recursive=True)
        elif parent:
            fs.makedirs(parent, exist_ok=True)

        try:
            fs.mv(src_path, dst_path, recursive=True)
        except OSError:
            if backup_path is not None:
                self.logger.warning(
                    "Restoring previous directory", dst=dst_path, backup=backup_path
                )
                if fs.exists(dst_path):
                    fs.rm(dst_path, recursive=True)
                fs.mv(backup_path, dst_path, recursive=True)
            raise

        if backup_path is not None:
            fs.rm(backup_path, recursive=True)
