# Copyright (c) QuantCo and pydiverse contributors 2025-2025
# SPDX-License-Identifier: BSD-3-Clause
from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from enum import Enum
from typing import Callable, Union

import structlog

from pydiverse.replication.core.locks import LockRequirement, LockSet
from pydiverse.replication.util import Disposable


class LockState(Enum):
    """Lock State

    Represent the current state of a lock.

    UNLOCKED:
        The lock manager hasn't acquired this lock and a different worker
        might be accessing the resource.

    LOCKED:
        The lock manager has acquired the lock, and it hasn't expired.

    UNCERTAIN:
        The lock manager isn't certain about the state of the lock. This
        can, for example, happen if a lock manager requires a connection to
        a coordination service and this connection is interrupted.
        Any task that depends on the locked resource should assume that
        the resource isn't locked anymore and pause until the lock transitions
        to a different state.

    INVALID:
        The lock has been invalidated. This means that a lock that was LOCKED
        has been unlocked for some unexpected reason. A common transition
        is that a lock transitions from `LOCKED -> UNCERTAIN -> INVALID`.
    """

    UNLOCKED = 0
    LOCKED = 1
    UNCERTAIN = 2
    INVALID = 3


Lockable = Union[LockSet, LockRequirement]  # noqa: UP007
LockStateListener = Callable[[LockRequirement, LockState, LockState], None]


class BaseLockManager(Disposable, ABC):
    """Lock Manager base class

    A lock manager acquires and releases the SHARED and EXCLUSIVE locks that
    replication tasks declare. This prevents two workers from replicating
    the same object (or a table and one of its partitions) at the same time.
    """

    def __init__(self):
        self.logger = structlog.get_logger(logger_name=type(self).__name__)

        self.state_listeners = set()
        self.lock_states: dict[LockRequirement, LockState] = {}
        self.__lock_state_lock = threading.Lock()

    @contextmanager
    def __call__(self, lock: Lockable):
        if isinstance(lock, LockRequirement):
            lock = LockSet([lock])
        with self.hold(lock):
            yield

    @contextmanager
    def hold(self, lock_set: LockSet):
        """Holds all locks of `lock_set` for the duration of the block

        Locks get acquired in the order of the set and released in reverse
        order, also if acquiring one of them or the block itself fails.
        """
        acquired = []
        try:
            for requirement in lock_set:
                self.acquire(requirement)
                acquired.append(requirement)
            yield
        finally:
            for requirement in reversed(acquired):
                self.release(requirement)

    def dispose(self):
        self.release_all()
        super().dispose()

    @abstractmethod
    def acquire(self, requirement: LockRequirement):
        """Blocks until the lock described by `requirement` is acquired"""

    @abstractmethod
    def release(self, requirement: LockRequirement):
        """Releases a previously acquired lock"""

    def release_all(self):
        """Releases all acquired locks"""
        locks = list(self.lock_states.items())
        for lock, _state in locks:
            self.release(lock)

    def add_lock_state_listener(self, listener: LockStateListener):
        """Add a function to be called when the state of a lock changes

        The listener will be called with the affected lock requirement, the
        old lock state and the new lock state as arguments.
        """
        if listener is None or not callable(listener):
            raise ValueError("Listener must be callable.")
        self.state_listeners.add(listener)

    def remove_lock_state_listener(self, listener: LockStateListener):
        """Removes a function from the set of listeners"""
        self.state_listeners.remove(listener)

    def set_lock_state(self, requirement: LockRequirement, new_state: LockState):
        """Update the state of a lock

        Function used by lock implementations to update the state of a
        lock. If appropriate, listeners will be informed about this change.
        """
        with self.__lock_state_lock:
            old_state = self.lock_states.get(requirement, LockState.UNLOCKED)
            if new_state == LockState.UNLOCKED:
                self.lock_states.pop(requirement, None)
            else:
                self.lock_states[requirement] = new_state
            if old_state != new_state:
                for listener in self.state_listeners:
                    listener(requirement, old_state, new_state)

    def get_lock_state(self, requirement: LockRequirement) -> LockState:
        """Returns the state of a lock"""
        with self.__lock_state_lock:
            return self.lock_states.get(requirement, LockState.UNLOCKED)
