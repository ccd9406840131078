# Copyright (c) QuantCo and pydiverse contributors 2025-2025
# SPDX-License-Identifier: BSD-3-Clause
from __future__ import annotations

from enum import Enum

from attrs import field, frozen, validators


class RunStatus(Enum):
    """Run Status

    SUCCESSFUL:
        The destination is consistent with the source. A run that only
        touched metadata (or didn't have to do anything) reports 0 bytes.

    FAILED:
        A dependency of the task (the cascaded table replication) didn't
        succeed.

    NOT_COMPLETABLE:
        A precondition doesn't hold, but nothing went wrong: the source object
        vanished, copying data is disabled, or the source directory was
        deleted concurrently. A scheduler may re-enqueue the task, but
        shouldn't retry it with backoff like a failed one.
    """

    SUCCESSFUL = 0
    FAILED = 1
    NOT_COMPLETABLE = 2


@frozen
class RunOutcome:
    """Result of executing one replication task"""

    status: RunStatus
    bytes_copied: int = field(default=0, validator=validators.ge(0))

    @classmethod
    def successful(cls, bytes_copied: int = 0) -> RunOutcome:
        return cls(RunStatus.SUCCESSFUL, bytes_copied)

    @classmethod
    def failed(cls) -> RunOutcome:
        return cls(RunStatus.FAILED, 0)

    @classmethod
    def not_completable(cls) -> RunOutcome:
        return cls(RunStatus.NOT_COMPLETABLE, 0)

    @property
    def is_successful(self) -> bool:
        return self.status == RunStatus.SUCCESSFUL
