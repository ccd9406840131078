# Copyright (c) QuantCo and pydiverse contributors 2025-2025
# SPDX-License-Identifier: BSD-3-Clause
from __future__ import annotations

from collections.abc import Iterable, Iterator
from enum import Enum

from attrs import field, frozen

from pydiverse.replication.core.object_spec import ObjectSpec


class LockKind(Enum):
    """Lock Kind

    SHARED:
        Compatible with other SHARED locks on the same resource key, but not
        with an EXCLUSIVE one.

    EXCLUSIVE:
        Mutually exclusive with any other lock on the same resource key.
    """

    SHARED = 0
    EXCLUSIVE = 1


@frozen
class LockRequirement:
    kind: LockKind
    resource_key: str

    @classmethod
    def shared(cls, resource_key: str) -> LockRequirement:
        return cls(LockKind.SHARED, resource_key)

    @classmethod
    def exclusive(cls, resource_key: str) -> LockRequirement:
        return cls(LockKind.EXCLUSIVE, resource_key)

    def __str__(self):
        return f"{self.kind.name}({self.resource_key})"


def _sorted_requirements(requirements: Iterable[LockRequirement]):
    return tuple(
        sorted(set(requirements), key=lambda r: (r.resource_key, r.kind.value))
    )


@frozen
class LockSet:
    """Immutable set of lock requirements

    Iteration order is deterministic (resource key, then kind), which makes
    every lock manager acquire the locks of overlapping tasks in the same
    order.
    """

    requirements: tuple[LockRequirement, ...] = field(
        default=(), converter=_sorted_requirements
    )

    def __iter__(self) -> Iterator[LockRequirement]:
        return iter(self.requirements)

    def __len__(self):
        return len(self.requirements)

    def __contains__(self, item):
        return item in self.requirements

    def __str__(self):
        return "{" + ", ".join(map(str, self.requirements)) + "}"


def required_locks(spec: ObjectSpec) -> LockSet:
    """Locks a task replicating `spec` must hold while running

    A partition task holds a SHARED lock on its table, so sibling partitions
    can be replicated in parallel, and an EXCLUSIVE lock on the partition
    itself. A table task holds an EXCLUSIVE lock on the table, which
    excludes all partition tasks of that table.

    Two partition tasks that both find the destination table missing may
    still race to create it. The loser fails with a catalog error and a
    retry converges.
    """
    table_key = str(spec.table_spec)
    if not spec.is_partition:
        return LockSet([LockRequirement.exclusive(table_key)])
    return LockSet(
        [
            LockRequirement.shared(table_key),
            LockRequirement.exclusive(str(spec)),
        ]
    )
