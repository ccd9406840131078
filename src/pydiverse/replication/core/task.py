# Copyright (c) QuantCo and pydiverse contributors 2025-2025
# SPDX-License-Identifier: BSD-3-Clause
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

import structlog

from pydiverse.replication.backend.directory import DirectoryReconciler
from pydiverse.replication.context.trace_hook import (
    EventKind,
    PrintTraceHook,
    TraceEvent,
    TraceHook,
)
from pydiverse.replication.core.cluster import Cluster
from pydiverse.replication.core.data import DataReconciliation, reconcile_data
from pydiverse.replication.core.locks import LockSet, required_locks
from pydiverse.replication.core.object_spec import ObjectSpec
from pydiverse.replication.core.policy import ConflictPolicy, DestinationBuilder
from pydiverse.replication.core.result import RunOutcome

if TYPE_CHECKING:
    from pydiverse.replication.backend.lock import BaseLockManager


class ReplicationTask(ABC):
    """Replicates one catalog object from a source to a destination cluster

    Tasks are synchronous and hold no state between runs: every run fetches
    fresh metadata from both catalogs and derives all decisions from it.
    Running a task again after a partial failure converges to the same end
    state.

    Expected outcomes (the source vanished, copying is disabled, a
    dependency failed) are reported through the returned
    :py:class:`RunOutcome`. Catalog faults propagate as exceptions.
    """

    def __init__(
        self,
        src_cluster: Cluster,
        dest_cluster: Cluster,
        spec: ObjectSpec,
        *,
        directory_reconciler: DirectoryReconciler,
        destination_builder: DestinationBuilder,
        conflict_policy: ConflictPolicy,
        allow_data_copy: bool = False,
        optimistic_copy_root: str | None = None,
        trace_hook: TraceHook | None = None,
    ):
        self.src_cluster = src_cluster
        self.dest_cluster = dest_cluster
        self.spec = spec
        self.directory_reconciler = directory_reconciler
        self.destination_builder = destination_builder
        self.conflict_policy = conflict_policy
        self.allow_data_copy = allow_data_copy
        self.optimistic_copy_root = optimistic_copy_root
        self.trace_hook = trace_hook if trace_hook is not None else PrintTraceHook()

        self.logger = structlog.get_logger(
            logger_name=type(self).__name__, spec=str(spec)
        )

    def __repr__(self):
        return (
            f"<{type(self).__name__} '{self.spec}'"
            f" {self.src_cluster.name} -> {self.dest_cluster.name}>"
        )

    @abstractmethod
    def run(self) -> RunOutcome:
        """Executes the task"""

    def required_locks(self) -> LockSet:
        """Locks that must be held while the task runs"""
        return required_locks(self.spec)

    def _emit(self, kind: EventKind, **details):
        self.trace_hook.event(TraceEvent(kind, self.spec, details))

    def _collaborators(self) -> dict:
        return dict(
            directory_reconciler=self.directory_reconciler,
            destination_builder=self.destination_builder,
            conflict_policy=self.conflict_policy,
            allow_data_copy=self.allow_data_copy,
            optimistic_copy_root=self.optimistic_copy_root,
            trace_hook=self.trace_hook,
        )

    def _reconcile_data(
        self, src_location: str | None, dest_location: str | None
    ) -> DataReconciliation:
        return reconcile_data(
            self.spec,
            src_location,
            dest_location,
            src_cluster_name=self.src_cluster.name,
            reconciler=self.directory_reconciler,
            allow_data_copy=self.allow_data_copy,
            optimistic_copy_root=self.optimistic_copy_root,
            trace_hook=self.trace_hook,
        )

    def _ensure_database(self, name: str):
        """Creates the destination database, modeled on the source one"""
        src_database = self.src_cluster.catalog.get_database(name)
        database = self.destination_builder.build_database(
            self.src_cluster, self.dest_cluster, src_database, name
        )
        if self.dest_cluster.catalog.create_database_if_absent(database):
            self._emit(EventKind.DATABASE_CREATED, database=name)


def run_with_locks(task: ReplicationTask, lock_manager: BaseLockManager) -> RunOutcome:
    """Runs `task` while holding all the locks it requires

    The locks get released again, also if the task raises.
    """
    with lock_manager.hold(task.required_locks()):
        return task.run()
