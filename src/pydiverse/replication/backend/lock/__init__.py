# Copyright (c) QuantCo and pydiverse contributors 2025-2025
# SPDX-License-Identifier: BSD-3-Clause

from .base import BaseLockManager, LockState
from .nolock import NoLockManager, ThreadLockManager
from .zookeeper import ZooKeeperLockManager

__all__ = [
    "BaseLockManager",
    "LockState",
    "NoLockManager",
    "ThreadLockManager",
    "ZooKeeperLockManager",
]
