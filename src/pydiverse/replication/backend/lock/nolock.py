# Copyright (c) QuantCo and pydiverse contributors 2025-2025
# SPDX-License-Identifier: BSD-3-Clause
from __future__ import annotations

import threading
from typing import Any

from pydiverse.replication.backend.lock.base import BaseLockManager, LockState
from pydiverse.replication.core.locks import LockKind, LockRequirement
from pydiverse.replication.errors import LockError


class NoLockManager(BaseLockManager):
    """
    This lock manager doesn't do any locking and only serves as a placeholder
    for an actual lock manager for testing something locally.

    .. Warning::
        This lock manager is not intended for use in a production environment.
        Concurrent tasks on the same object can corrupt the destination.
    """

    def acquire(self, requirement: LockRequirement):
        self.set_lock_state(requirement, LockState.LOCKED)

    def release(self, requirement: LockRequirement):
        self.set_lock_state(requirement, LockState.UNLOCKED)


class ThreadLockManager(BaseLockManager):
    """Shared / exclusive locks between the threads of one process

    All instances in a process use the same lock registry, so every worker
    thread may create its own lock manager. While an EXCLUSIVE request waits,
    no new SHARED locks on the same key get granted, so table tasks can't be
    starved by a steady stream of partition tasks.

    Config File
    -----------
    :param timeout:
        Seconds to wait for a lock before raising :py:class:`LockError`.
        Waits forever if not set.
    """

    _condition = threading.Condition()
    _shared_holders: dict[str, int] = {}
    _exclusive_holders: set[str] = set()
    _exclusive_waiting: dict[str, int] = {}

    @classmethod
    def _init_conf_(cls, config: dict[str, Any]):
        return cls(**config)

    def __init__(self, timeout: float | None = None):
        super().__init__()
        self.timeout = timeout
        self.held: set[LockRequirement] = set()

    def acquire(self, requirement: LockRequirement):
        if requirement in self.held:
            raise LockError(f"Lock '{requirement}' already acquired.")

        key = requirement.resource_key
        cls = type(self)
        with cls._condition:
            if requirement.kind == LockKind.EXCLUSIVE:
                self._acquire_exclusive(requirement)
            else:
                if not cls._condition.wait_for(
                    lambda: key not in cls._exclusive_holders
                    and key not in cls._exclusive_waiting,
                    timeout=self.timeout,
                ):
                    raise LockError(f"Timed out waiting for lock '{requirement}'")
                cls._shared_holders[key] = cls._shared_holders.get(key, 0) + 1

        self.held.add(requirement)
        self.logger.debug("Acquired lock", lock=str(requirement))
        self.set_lock_state(requirement, LockState.LOCKED)

    def _acquire_exclusive(self, requirement: LockRequirement):
        key = requirement.resource_key
        cls = type(self)
        cls._exclusive_waiting[key] = cls._exclusive_waiting.get(key, 0) + 1
        try:
            acquired = cls._condition.wait_for(
                lambda: key not in cls._exclusive_holders
                and key not in cls._shared_holders,
                timeout=self.timeout,
            )
        finally:
            cls._exclusive_waiting[key] -= 1
            if cls._exclusive_waiting[key] == 0:
                del cls._exclusive_waiting[key]
                # SHARED requests may have been waiting for this request only
                cls._condition.notify_all()
        if not acquired:
            raise LockError(f"Timed out waiting for lock '{requirement}'")
        cls._exclusive_holders.add(key)

    def release(self, requirement: LockRequirement):
        if requirement not in self.held:
            raise LockError(f"No lock '{requirement}' found.")

        key = requirement.resource_key
        cls = type(self)
        with cls._condition:
            if requirement.kind == LockKind.EXCLUSIVE:
                cls._exclusive_holders.discard(key)
            else:
                cls._shared_holders[key] -= 1
                if cls._shared_holders[key] == 0:
                    del cls._shared_holders[key]
            cls._condition.notify_all()

        self.held.remove(requirement)
        self.logger.debug("Released lock", lock=str(requirement))
        self.set_lock_state(requirement, LockState.UNLOCKED)
