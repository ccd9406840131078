# Copyright (c) QuantCo and pydiverse contributors 2025-2025
# SPDX-License-Identifier: BSD-3-Clause

import logging
import os
from pathlib import Path

import pytest

from pydiverse.replication.backend.catalog import DictCatalog
from pydiverse.replication.backend.directory import FsspecDirectoryReconciler
from pydiverse.replication.context import RecordingTraceHook
from pydiverse.replication.core.cluster import Cluster
from pydiverse.replication.core.metadata import (
    Column,
    DatabaseMetadata,
    PartitionMetadata,
    TableMetadata,
)
from pydiverse.replication.core.object_spec import ObjectSpec
from pydiverse.replication.core.partition_task import PartitionReplicationTask
from pydiverse.replication.core.policy import (
    DefaultDestinationBuilder,
    LoggingConflictPolicy,
)
from pydiverse.replication.core.table_task import TableReplicationTask
from pydiverse.replication.util.structlog import setup_logging

# Setup


def setup_environ():
    if "REPLICATION_CONFIG" not in os.environ:
        os.environ["REPLICATION_CONFIG"] = str(Path(__file__).parent / "resources")
    os.environ["PYDIVERSE_REPLICATION_PYTEST"] = "1"


setup_environ()

log_level = (
    logging.ERROR
    if os.environ.get("ERROR_ONLY", "0") != "0"
    else logging.INFO
    if os.environ.get("DEBUG", "0") == "0"
    else logging.DEBUG
)
setup_logging(log_level=log_level)


# Pytest Configuration


@pytest.fixture(autouse=True, scope="function")
def structlog_test_info(request):
    """Add testcase information to structlog context"""
    if os.environ.get("DEBUG", "0") == "0":
        yield
        return

    import structlog

    with structlog.contextvars.bound_contextvars(testcase=request.node.name):
        yield


supported_options = [
    "zookeeper",
]


def pytest_addoption(parser):
    for opt in supported_options:
        parser.addoption(
            "--" + opt,
            action="store_true",
            default=False,
            help=f"run test that require {opt}",
        )


def pytest_collection_modifyitems(config: pytest.Config, items):
    for opt in supported_options:
        if not config.getoption("--" + opt):
            skip = pytest.mark.skip(reason=f"{opt} not selected")
            for item in items:
                if opt in item.keywords:
                    item.add_marker(skip)


# Replication fixtures

COLUMNS = [Column("id", "bigint"), Column("value", "string", "payload")]
PARTITION_KEYS = [Column("ds", "string")]
DEFAULT_FILES = {
    "part-00000.parquet": b"a" * 100,
    "part-00001.parquet": b"b" * 23,
    "_SUCCESS": b"",
}


def write_tree(path, files: dict[str, bytes]):
    path = Path(path)
    path.mkdir(parents=True, exist_ok=True)
    for name, content in files.items():
        file = path / name
        file.parent.mkdir(parents=True, exist_ok=True)
        file.write_bytes(content)
    return str(path)


class SourceBuilder:
    """Creates records and data files on the source cluster"""

    def __init__(self, cluster: Cluster):
        self.cluster = cluster

    def location(self, *parts: str) -> str:
        return "/".join([self.cluster.fs_root, *parts])

    def database(self, name: str = "d") -> DatabaseMetadata:
        database = DatabaseMetadata(
            name, description=f"{name} database", location=self.location(name)
        )
        self.cluster.catalog.create_database_if_absent(database)
        return database

    def table(
        self,
        spec: str = "d.t",
        *,
        partitioned: bool = True,
        files: dict[str, bytes] | None = None,
        columns=COLUMNS,
    ) -> TableMetadata:
        spec = ObjectSpec.parse(spec)
        self.database(spec.database)
        location = self.location(spec.database, spec.table)
        if files is not None:
            write_tree(location, files)
        self.cluster.catalog.create_table(
            TableMetadata(
                spec.database,
                spec.table,
                columns=columns,
                partition_keys=PARTITION_KEYS if partitioned else (),
                location=location,
                storage_format="parquet",
                parameters={"owner_team": "analytics"},
            )
        )
        return self.cluster.catalog.get_table(spec)

    def partition(
        self,
        spec: str = "d.t/ds=1",
        *,
        files: dict[str, bytes] | None = DEFAULT_FILES,
        with_table: bool = True,
    ) -> PartitionMetadata:
        spec = ObjectSpec.parse(spec)
        if with_table and self.cluster.catalog.get_table(spec.table_spec) is None:
            self.table(str(spec.table_spec))
        location = self.location(spec.database, spec.table, spec.partition_name)
        if files is not None:
            write_tree(location, files)
        self.cluster.catalog.add_partition(
            PartitionMetadata(
                spec.database,
                spec.table,
                spec.partition_name,
                location=location,
                storage_format="parquet",
            )
        )
        return self.cluster.catalog.get_partition(spec)


@pytest.fixture
def src_catalog(mocker):
    catalog = DictCatalog()
    yield catalog
    # spies and patches on the catalog must be undone before it gets disposed
    mocker.stopall()
    catalog.dispose()


@pytest.fixture
def dest_catalog(mocker):
    catalog = DictCatalog()
    yield catalog
    mocker.stopall()
    catalog.dispose()


@pytest.fixture
def src_cluster(tmp_path, src_catalog):
    return Cluster("src", src_catalog, str(tmp_path / "src"))


@pytest.fixture
def dest_cluster(tmp_path, dest_catalog):
    return Cluster("dest", dest_catalog, str(tmp_path / "dest"))


@pytest.fixture
def source(src_cluster):
    return SourceBuilder(src_cluster)


@pytest.fixture
def make_source():
    """SourceBuilder for clusters created outside of the fixtures"""
    return SourceBuilder


@pytest.fixture
def reconciler():
    return FsspecDirectoryReconciler()


@pytest.fixture
def trace():
    return RecordingTraceHook()


@pytest.fixture
def make_task(src_cluster, dest_cluster, reconciler, trace):
    """Builds a partition or table task with test defaults"""

    def _make_task(spec: str, **kwargs):
        spec = ObjectSpec.parse(spec)
        options = dict(
            directory_reconciler=reconciler,
            destination_builder=DefaultDestinationBuilder(),
            conflict_policy=LoggingConflictPolicy(),
            allow_data_copy=True,
            optimistic_copy_root=None,
            trace_hook=trace,
        )
        options.update(kwargs)
        task_cls = PartitionReplicationTask if spec.is_partition else TableReplicationTask
        return task_cls(src_cluster, dest_cluster, spec, **options)

    return _make_task


@pytest.fixture
def tree():
    """Writes a dict of files below a directory"""
    return write_tree


@pytest.fixture
def default_files():
    """Files written for a source partition by default (123 bytes)"""
    return dict(DEFAULT_FILES)
