# Copyright (c) QuantCo and pydiverse contributors 2025-2025
# SPDX-License-Identifier: BSD-3-Clause
from __future__ import annotations

from pydiverse.replication.context.trace_hook import EventKind
from pydiverse.replication.core.actions import MetadataAction, decide_action
from pydiverse.replication.core.metadata import schemas_match
from pydiverse.replication.core.result import RunOutcome
from pydiverse.replication.core.table_task import TableReplicationTask
from pydiverse.replication.core.task import ReplicationTask
from pydiverse.replication.errors import ReplicationError


class PartitionReplicationTask(ReplicationTask):
    """Replicates a single partition, and its table if necessary

    If the table doesn't exist on the destination (or its schema differs from
    the source), the table gets replicated first.

    Known race: if several partitions of a table that doesn't exist on the
    destination yet get replicated at the same time, they may all try to
    create the table. All but one of them fail with a
    :py:class:`~pydiverse.replication.errors.CatalogError`. Running them
    again succeeds, because by then the table exists.
    """

    def __init__(self, src_cluster, dest_cluster, spec, **kwargs):
        if not spec.is_partition:
            raise ValueError(f"'{spec}' doesn't identify a partition")
        super().__init__(src_cluster, dest_cluster, spec, **kwargs)

    def run(self) -> RunOutcome:
        self.logger.debug("Replicating partition")
        src_catalog = self.src_cluster.catalog
        dest_catalog = self.dest_cluster.catalog
        table_spec = self.spec.table_spec

        src_partition = src_catalog.get_partition(self.spec)
        if src_partition is None:
            self._emit(EventKind.SOURCE_MISSING, object="partition")
            return RunOutcome.not_completable()

        src_table = src_catalog.get_table(table_spec)
        dest_table = dest_catalog.get_table(table_spec)
        if src_table is None:
            self._emit(EventKind.SOURCE_MISSING, object="table")
            return RunOutcome.not_completable()

        if dest_table is None or not schemas_match(src_table, dest_table):
            self._emit(
                EventKind.TABLE_CASCADE,
                reason="missing" if dest_table is None else "schema_mismatch",
            )
            table_task = TableReplicationTask(
                self.src_cluster,
                self.dest_cluster,
                table_spec,
                location_hint=src_table.location,
                **self._collaborators(),
            )
            table_outcome = table_task.run()
            if not table_outcome.is_successful:
                self._emit(
                    EventKind.TABLE_CASCADE_FAILED, status=table_outcome.status.name
                )
                return RunOutcome.failed()

        existing = dest_catalog.get_partition(self.spec)
        expected = self.destination_builder.build(
            self.src_cluster, self.dest_cluster, src_partition, existing
        )
        if existing is not None:
            self._emit(EventKind.DESTINATION_EXISTS)
            self.conflict_policy.on_conflict(
                self.src_cluster, self.dest_cluster, src_partition, existing
            )

        data = self._reconcile_data(src_partition.location, expected.location)
        if data.outcome is not None:
            return data.outcome

        action = decide_action(existing, expected)
        if action == MetadataAction.CREATE:
            self._ensure_database(expected.database)
            dest_catalog.add_partition(expected)
            self._emit(EventKind.METADATA_CREATED)
        elif action == MetadataAction.ALTER:
            dest_catalog.alter_partition(self.spec, expected)
            self._emit(EventKind.METADATA_ALTERED)
        elif action == MetadataAction.NOOP:
            self._emit(EventKind.METADATA_UNCHANGED)
        else:
            raise ReplicationError(f"Unhandled case: {action}")

        self._emit(EventKind.TASK_COMPLETE, bytes_copied=data.bytes_copied)
        return RunOutcome.successful(data.bytes_copied)
