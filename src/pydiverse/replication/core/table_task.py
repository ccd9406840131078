# Copyright (c) QuantCo and pydiverse contributors 2025-2025
# SPDX-License-Identifier: BSD-3-Clause
from __future__ import annotations

from pydiverse.replication.context.trace_hook import EventKind
from pydiverse.replication.core.actions import MetadataAction, decide_action
from pydiverse.replication.core.data import DataReconciliation
from pydiverse.replication.core.result import RunOutcome
from pydiverse.replication.core.task import ReplicationTask
from pydiverse.replication.errors import ReplicationError


class TableReplicationTask(ReplicationTask):
    """Replicates the metadata of a table

    The data of unpartitioned tables gets replicated too. Data of
    partitioned tables belongs to their partitions and is left to the
    partition tasks.

    :param location_hint: Location of the source table as seen by the caller
        (e.g. a partition task cascading to its table). The freshly fetched
        location takes precedence.
    """

    def __init__(
        self, src_cluster, dest_cluster, spec, *, location_hint=None, **kwargs
    ):
        if spec.is_partition:
            raise ValueError(f"'{spec}' doesn't identify a table")
        super().__init__(src_cluster, dest_cluster, spec, **kwargs)
        self.location_hint = location_hint

    def run(self) -> RunOutcome:
        self.logger.debug("Replicating table")
        dest_catalog = self.dest_cluster.catalog

        src_table = self.src_cluster.catalog.get_table(self.spec)
        if src_table is None:
            self._emit(EventKind.SOURCE_MISSING, object="table")
            return RunOutcome.not_completable()
        if self.location_hint is not None and self.location_hint != src_table.location:
            self.logger.debug(
                "Source table location changed",
                location_hint=self.location_hint,
                location=src_table.location,
            )

        existing = dest_catalog.get_table(self.spec)
        expected = self.destination_builder.build(
            self.src_cluster, self.dest_cluster, src_table, existing
        )
        if existing is not None:
            self._emit(EventKind.DESTINATION_EXISTS)
            self.conflict_policy.on_conflict(
                self.src_cluster, self.dest_cluster, src_table, existing
            )

        if src_table.is_partitioned:
            data = DataReconciliation()
        else:
            data = self._reconcile_data(src_table.location, expected.location)
            if data.outcome is not None:
                return data.outcome

        action = decide_action(existing, expected)
        if action == MetadataAction.CREATE:
            self._ensure_database(expected.database)
            dest_catalog.create_table(expected)
            self._emit(EventKind.METADATA_CREATED)
        elif action == MetadataAction.ALTER:
            dest_catalog.alter_table(expected)
            self._emit(EventKind.METADATA_ALTERED)
        elif action == MetadataAction.NOOP:
            self._emit(EventKind.METADATA_UNCHANGED)
        else:
            raise ReplicationError(f"Unhandled case: {action}")

        self._emit(EventKind.TASK_COMPLETE, bytes_copied=data.bytes_copied)
        return RunOutcome.successful(data.bytes_copied)
