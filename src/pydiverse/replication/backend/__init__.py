# Copyright (c) QuantCo and pydiverse contributors 2025-2025
# SPDX-License-Identifier: BSD-3-Clause

from .catalog import BaseCatalog, DictCatalog, SQLCatalog
from .directory import DirectoryReconciler, FsspecDirectoryReconciler
from .lock import (
    BaseLockManager,
    LockState,
    NoLockManager,
    ThreadLockManager,
    ZooKeeperLockManager,
)

__all__ = [
    "BaseCatalog",
    "DictCatalog",
    "SQLCatalog",
    "DirectoryReconciler",
    "FsspecDirectoryReconciler",
    "BaseLockManager",
    "LockState",
    "NoLockManager",
    "ThreadLockManager",
    "ZooKeeperLockManager",
]
