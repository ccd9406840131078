# Copyright (c) QuantCo and pydiverse contributors 2025-2025
# SPDX-License-Identifier: BSD-3-Clause
from __future__ import annotations

import pytest

from pydiverse.replication.backend.directory import DirectoryReconciler
from pydiverse.replication.context import EventKind, RecordingTraceHook
from pydiverse.replication.core.data import (
    DataReconciliation,
    reconcile_data,
    staged_path,
)
from pydiverse.replication.core.object_spec import ObjectSpec
from pydiverse.replication.core.result import RunOutcome
from pydiverse.replication.errors import CatalogError, DirectoryCopyError

SPEC = ObjectSpec("d", "t", "ds=1")


@pytest.fixture
def fake_reconciler(mocker):
    reconciler = mocker.Mock(spec=DirectoryReconciler)
    reconciler.equal.return_value = False
    reconciler.exists.return_value = True
    reconciler.copy.return_value = 42
    return reconciler


def run(reconciler, src="/src/d/t/ds=1", dest="/dest/d/t/ds=1", **kwargs):
    trace = RecordingTraceHook()
    options = dict(
        src_cluster_name="src",
        reconciler=reconciler,
        allow_data_copy=True,
        optimistic_copy_root=None,
        trace_hook=trace,
    )
    options.update(kwargs)
    return reconcile_data(SPEC, src, dest, **options), trace.kinds()


@pytest.mark.parametrize(
    "root, location, expected",
    [
        ("/stage", "/src/d/t/ds=1", "/stage/src/d/t/ds=1"),
        ("/stage/", "/src/d/t/ds=1", "/stage/src/d/t/ds=1"),
        ("/tmp", "hdfs://nn1:8020/u/a/ds=1", "/tmp/u/a/ds=1"),
        ("s3://bucket/stage", "s3://warehouse/d/t", "s3://bucket/stage/d/t"),
    ],
)
def test_staged_path(root, location, expected):
    assert staged_path(root, location) == expected


@pytest.mark.parametrize(
    "src, dest",
    [
        (None, "/dest/d/t/ds=1"),
        ("/src/d/t/ds=1", None),
        (None, None),
    ],
)
def test_missing_location(fake_reconciler, src, dest):
    result, kinds = run(fake_reconciler, src, dest)

    assert result == DataReconciliation(0, None)
    assert fake_reconciler.method_calls == []
    assert kinds == []


def test_same_location(fake_reconciler):
    result, kinds = run(fake_reconciler, "/shared/x", "/shared/x")

    assert result == DataReconciliation()
    assert fake_reconciler.method_calls == []
    assert kinds == [EventKind.DATA_LOCATION_SHARED]


def test_copy(fake_reconciler):
    result, kinds = run(fake_reconciler)

    assert result == DataReconciliation(bytes_copied=42)
    fake_reconciler.equal.assert_called_once_with("/src/d/t/ds=1", "/dest/d/t/ds=1")
    fake_reconciler.copy.assert_called_once_with(
        "/src/d/t/ds=1", "/dest/d/t/ds=1", tags=["src", "d", "t"]
    )
    assert kinds == [EventKind.DATA_COPIED]


def test_up_to_date(fake_reconciler):
    fake_reconciler.equal.return_value = True

    result, kinds = run(fake_reconciler)

    assert result == DataReconciliation()
    fake_reconciler.copy.assert_not_called()
    assert kinds == [EventKind.DATA_UP_TO_DATE]


def test_copy_disallowed(fake_reconciler):
    result, kinds = run(fake_reconciler, allow_data_copy=False)

    assert result.outcome == RunOutcome.not_completable()
    fake_reconciler.exists.assert_not_called()
    fake_reconciler.copy.assert_not_called()
    assert kinds == [EventKind.DATA_COPY_DISALLOWED]


def test_source_path_missing(fake_reconciler):
    fake_reconciler.exists.return_value = False

    result, kinds = run(fake_reconciler)

    assert result.outcome == RunOutcome.not_completable()
    fake_reconciler.copy.assert_not_called()
    assert kinds == [EventKind.SOURCE_PATH_MISSING]


def test_staged_data_gets_moved(fake_reconciler):
    fake_reconciler.equal.side_effect = lambda a, b: a.startswith("/stage")

    result, kinds = run(fake_reconciler, optimistic_copy_root="/stage")

    assert result == DataReconciliation()
    fake_reconciler.equal.assert_called_once_with(
        "/stage/src/d/t/ds=1", "/src/d/t/ds=1"
    )
    fake_reconciler.move.assert_called_once_with(
        "/stage/src/d/t/ds=1", "/dest/d/t/ds=1"
    )
    fake_reconciler.copy.assert_not_called()
    assert kinds == [EventKind.STAGED_DATA_MOVED]


def test_staged_data_mismatch(fake_reconciler):
    result, kinds = run(fake_reconciler, optimistic_copy_root="/stage")

    assert result == DataReconciliation(bytes_copied=42)
    assert fake_reconciler.equal.call_count == 2
    assert fake_reconciler.equal.call_args.args == ("/src/d/t/ds=1", "/dest/d/t/ds=1")
    fake_reconciler.move.assert_not_called()
    assert kinds == [EventKind.STAGED_DATA_MISMATCH, EventKind.DATA_COPIED]


def test_staged_data_mismatch_copy_disallowed(fake_reconciler):
    result, kinds = run(
        fake_reconciler, optimistic_copy_root="/stage", allow_data_copy=False
    )

    assert result.outcome == RunOutcome.not_completable()
    fake_reconciler.copy.assert_not_called()
    assert kinds[-1] == EventKind.DATA_COPY_DISALLOWED


@pytest.mark.parametrize("method", ["copy", "move"])
def test_transfer_failure(fake_reconciler, method):
    getattr(fake_reconciler, method).side_effect = DirectoryCopyError("interrupted")
    fake_reconciler.equal.side_effect = lambda a, b: a.startswith("/stage")
    root = "/stage" if method == "move" else None

    result, kinds = run(fake_reconciler, optimistic_copy_root=root)

    assert result.outcome == RunOutcome.failed()
    assert kinds[-1] == EventKind.DATA_COPY_FAILED


def test_other_errors_propagate(fake_reconciler):
    fake_reconciler.copy.side_effect = CatalogError("unexpected")

    with pytest.raises(CatalogError):
        run(fake_reconciler)
