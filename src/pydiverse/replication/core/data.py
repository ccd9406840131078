# Copyright (c) QuantCo and pydiverse contributors 2025-2025
# SPDX-License-Identifier: BSD-3-Clause
from __future__ import annotations

from urllib.parse import urlsplit

from attrs import frozen

from pydiverse.replication.backend.directory import DirectoryReconciler
from pydiverse.replication.context.trace_hook import EventKind, TraceEvent, TraceHook
from pydiverse.replication.core.object_spec import ObjectSpec
from pydiverse.replication.core.result import RunOutcome
from pydiverse.replication.errors import DirectoryCopyError


@frozen
class DataReconciliation:
    """Result of :py:func:`reconcile_data`

    If `outcome` isn't None, the task must stop and return it without
    touching any metadata.
    """

    bytes_copied: int = 0
    outcome: RunOutcome | None = None


def staged_path(optimistic_copy_root: str, src_location: str) -> str:
    """Where a copy of `src_location` may have been staged in advance

    Only the path component of the source location is used; scheme and
    authority get dropped.

    >>> staged_path("/stage", "hdfs://nn1/warehouse/db/t/ds=1")
    '/stage/warehouse/db/t/ds=1'
    """
    path = urlsplit(src_location).path.lstrip("/")
    return optimistic_copy_root.rstrip("/") + "/" + path


def reconcile_data(
    spec: ObjectSpec,
    src_location: str | None,
    dest_location: str | None,
    *,
    src_cluster_name: str,
    reconciler: DirectoryReconciler,
    allow_data_copy: bool,
    optimistic_copy_root: str | None,
    trace_hook: TraceHook,
) -> DataReconciliation:
    """Makes the data at `dest_location` equal to the data at `src_location`

    If a copy of the source was staged below `optimistic_copy_root` and still
    matches the live source, it gets moved into place instead of copying.
    A failed copy or move is reported as a FAILED outcome; the caller must
    then leave the destination metadata untouched.
    """

    def emit(kind: EventKind, **details):
        trace_hook.event(TraceEvent(kind, spec, details))

    if src_location is None or dest_location is None:
        return DataReconciliation()
    if src_location == dest_location:
        emit(EventKind.DATA_LOCATION_SHARED, location=src_location)
        return DataReconciliation()

    if optimistic_copy_root is not None:
        staged = staged_path(optimistic_copy_root, src_location)
        if reconciler.equal(staged, src_location):
            try:
                reconciler.move(staged, dest_location)
            except DirectoryCopyError as e:
                emit(EventKind.DATA_COPY_FAILED, src=staged, error=str(e))
                return DataReconciliation(outcome=RunOutcome.failed())
            emit(EventKind.STAGED_DATA_MOVED, src=staged, dest=dest_location)
            return DataReconciliation()
        emit(EventKind.STAGED_DATA_MISMATCH, staged=staged, src=src_location)

    if reconciler.equal(src_location, dest_location):
        emit(EventKind.DATA_UP_TO_DATE, src=src_location, dest=dest_location)
        return DataReconciliation()

    if not allow_data_copy:
        emit(EventKind.DATA_COPY_DISALLOWED, src=src_location, dest=dest_location)
        return DataReconciliation(outcome=RunOutcome.not_completable())
    if not reconciler.exists(src_location):
        emit(EventKind.SOURCE_PATH_MISSING, src=src_location)
        return DataReconciliation(outcome=RunOutcome.not_completable())

    try:
        bytes_copied = reconciler.copy(
            src_location,
            dest_location,
            tags=[src_cluster_name, spec.database, spec.table],
        )
    except DirectoryCopyError as e:
        emit(EventKind.DATA_COPY_FAILED, src=src_location, error=str(e))
        return DataReconciliation(outcome=RunOutcome.failed())
    emit(
        EventKind.DATA_COPIED,
        src=src_location,
        dest=dest_location,
        bytes_copied=bytes_copied,
    )
    return DataReconciliation(bytes_copied=bytes_copied)
