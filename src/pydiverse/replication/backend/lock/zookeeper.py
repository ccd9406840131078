# Copyright (c) QuantCo and pydiverse contributors 2025-2025
# SPDX-License-Identifier: BSD-3-Clause
from __future__ import annotations

import atexit
import warnings
from typing import Any

from pydiverse.replication.backend.lock.base import BaseLockManager, LockState
from pydiverse.replication.core.locks import LockKind, LockRequirement
from pydiverse.replication.errors import DisposedError, LockError
from pydiverse.replication.util import lock_node_name, normalize_name, requires

try:
    import kazoo
    from kazoo.client import KazooClient, KazooState
except ImportError as e:
    warnings.warn(str(e), ImportWarning)
    kazoo = None


@requires(kazoo, ImportError("ZooKeeperLockManager requires 'kazoo' to be installed."))
class ZooKeeperLockManager(BaseLockManager):
    """Apache ZooKeeper based lock manager

    Uses the `shared lock recipe`_ of Apache ZooKeeper: SHARED requirements
    map to kazoo read locks and EXCLUSIVE requirements to write locks on the
    same node. In case a worker crashes, its locks automatically get
    released (the lock nodes are ephemeral).

    Config File
    -----------
    All arguments in the ``args`` section get passed as-is to the initializer
    of :py:class:`kazoo.client.KazooClient`. Some useful arguments include:

    :param hosts:
        Comma separated list of hosts to connect.

    .. _shared lock recipe:
        https://zookeeper.apache.org/doc/current/recipes.html#Shared+Locks
    """

    @classmethod
    def _init_conf_(cls, config: dict[str, Any]):
        from pydiverse.replication.context import ConfigContext

        client = KazooClient(**config)
        instance_id = normalize_name(ConfigContext.get().instance_id)
        base_path = f"/replication/locks/{instance_id}/"
        return cls(client, base_path)

    def __init__(self, client: KazooClient, base_path: str):
        super().__init__()

        self.client = client
        self.base_path = base_path
        if not self.client.connected:
            self.client.start()
            atexit.register(self.__atexit)
        self.client.add_listener(self._lock_listener)

        self.locks = {}

    def __atexit(self):
        try:
            self.dispose()
        except DisposedError:
            pass

    def dispose(self):
        self.release_all()
        self.client.stop()
        self.client.close()
        self.lock_states.clear()
        self.locks.clear()
        super().dispose()

    def acquire(self, requirement: LockRequirement):
        if requirement in self.locks:
            raise LockError(f"Lock '{requirement}' already acquired.")

        path = self.lock_path(requirement)
        if requirement.kind == LockKind.EXCLUSIVE:
            lock = self.client.WriteLock(path)
        else:
            lock = self.client.ReadLock(path)

        self.logger.info(f"Locking '{requirement}'", base_path=self.base_path)
        if not lock.acquire():
            raise LockError(f"Failed to acquire lock '{requirement}'")
        self.locks[requirement] = lock
        self.set_lock_state(requirement, LockState.LOCKED)

    def release(self, requirement: LockRequirement):
        if requirement not in self.locks:
            raise LockError(f"No lock '{requirement}' found.")

        self.logger.info(f"Unlocking '{requirement}'", base_path=self.base_path)
        self.locks[requirement].release()
        del self.locks[requirement]
        self.set_lock_state(requirement, LockState.UNLOCKED)

    def lock_path(self, requirement: LockRequirement) -> str:
        return self.base_path + lock_node_name(requirement.resource_key)

    def _lock_listener(self, state):
        if state == KazooState.SUSPENDED:
            for lock in self.locks.keys():
                self.set_lock_state(lock, LockState.UNCERTAIN)
        elif state == KazooState.LOST:
            for lock in self.locks.keys():
                self.set_lock_state(lock, LockState.INVALID)
        elif state == KazooState.CONNECTED:
            for lock in self.locks.keys():
                self.set_lock_state(lock, LockState.LOCKED)
