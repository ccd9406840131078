# Copyright (c) QuantCo and pydiverse contributors 2025-2025
# SPDX-License-Identifier: BSD-3-Clause
from __future__ import annotations

import attrs
import pytest
import sqlalchemy as sa

from pydiverse.replication.backend.catalog import BaseCatalog, DictCatalog, SQLCatalog
from pydiverse.replication.core.metadata import (
    Column,
    DatabaseMetadata,
    PartitionMetadata,
    TableMetadata,
    strip_non_comparables,
)
from pydiverse.replication.core.object_spec import ObjectSpec
from pydiverse.replication.errors import CatalogError, DisposedError
from pydiverse.replication.util import load_object

TABLE = TableMetadata(
    "d",
    "t",
    columns=[Column("id", "bigint"), Column("value", "string", "payload")],
    partition_keys=[Column("ds", "string")],
    location="/warehouse/d/t",
    storage_format="parquet",
    owner="alice",
    parameters={"owner_team": "analytics"},
)
PARTITION = PartitionMetadata("d", "t", "ds=1", location="/warehouse/d/t/ds=1")


@pytest.fixture(params=["dict", "sqlite"])
def catalog(request, tmp_path) -> BaseCatalog:
    if request.param == "dict":
        catalog = DictCatalog()
    else:
        catalog = SQLCatalog(f"sqlite:///{tmp_path / 'catalog.db'}")
    yield catalog
    catalog.dispose()


@pytest.fixture
def with_table(catalog):
    catalog.create_database_if_absent(DatabaseMetadata("d"))
    catalog.create_table(TABLE)
    return catalog


def test_missing_objects(catalog):
    assert catalog.get_database("d") is None
    assert catalog.get_table(ObjectSpec("d", "t")) is None
    assert catalog.get_partition(ObjectSpec("d", "t", "ds=1")) is None
    assert catalog.list_partition_names(ObjectSpec("d", "t")) == []


def test_create_database_if_absent(catalog):
    database = DatabaseMetadata("d", "desc", "/warehouse/d", "alice", {"a": "b"})

    assert catalog.create_database_if_absent(database)
    assert not catalog.create_database_if_absent(DatabaseMetadata("d"))
    assert catalog.get_database("d") == database


def test_create_table(with_table):
    stored = with_table.get_table(ObjectSpec("d", "t"))

    assert strip_non_comparables(stored) == TABLE
    assert stored.catalog_id is not None
    assert stored.create_time is not None
    assert "transient_lastDdlTime" in stored.parameters


def test_create_table_requires_database(catalog):
    with pytest.raises(CatalogError):
        catalog.create_table(TABLE)


def test_create_table_twice(with_table):
    with pytest.raises(CatalogError, match="already exists"):
        with_table.create_table(TABLE)


def test_alter_table(with_table):
    created = with_table.get_table(ObjectSpec("d", "t"))

    # client supplied catalog fields get ignored
    with_table.alter_table(
        attrs.evolve(TABLE, owner="bob", catalog_id=999, create_time=1)
    )

    altered = with_table.get_table(ObjectSpec("d", "t"))
    assert altered.owner == "bob"
    assert altered.catalog_id == created.catalog_id
    assert altered.create_time == created.create_time


def test_alter_missing_table(catalog):
    catalog.create_database_if_absent(DatabaseMetadata("d"))
    with pytest.raises(CatalogError):
        catalog.alter_table(TABLE)


def test_add_partition(with_table):
    with_table.add_partition(PARTITION)
    stored = with_table.get_partition(PARTITION.spec)

    assert strip_non_comparables(stored) == PARTITION
    assert stored.values == ("1",)
    assert stored.catalog_id is not None


def test_add_partition_requires_table(catalog):
    with pytest.raises(CatalogError):
        catalog.add_partition(PARTITION)


def test_add_partition_twice(with_table):
    with_table.add_partition(PARTITION)
    with pytest.raises(CatalogError):
        with_table.add_partition(PARTITION)


def test_alter_partition(with_table):
    with_table.add_partition(PARTITION)
    created = with_table.get_partition(PARTITION.spec)

    with_table.alter_partition(
        PARTITION.spec, attrs.evolve(PARTITION, location="/elsewhere")
    )

    altered = with_table.get_partition(PARTITION.spec)
    assert altered.location == "/elsewhere"
    assert altered.catalog_id == created.catalog_id
    assert altered.create_time == created.create_time


def test_alter_missing_partition(with_table):
    with pytest.raises(CatalogError):
        with_table.alter_partition(PARTITION.spec, PARTITION)


def test_list_partition_names(with_table):
    for name in ["ds=3", "ds=1", "ds=2"]:
        with_table.add_partition(PartitionMetadata("d", "t", name))

    assert with_table.list_partition_names(ObjectSpec("d", "t")) == [
        "ds=1",
        "ds=2",
        "ds=3",
    ]


def test_dispose():
    catalog = DictCatalog()
    catalog.dispose()
    with pytest.raises(DisposedError):
        catalog.get_database("d")


def test_sql_catalog_persists(tmp_path):
    url = f"sqlite:///{tmp_path / 'catalog.db'}"
    catalog = SQLCatalog(url)
    catalog.create_database_if_absent(DatabaseMetadata("d"))
    catalog.create_table(TABLE)
    catalog.dispose()

    reopened = load_object(
        {
            "class": "pydiverse.replication.backend.catalog.SQLCatalog",
            "args": {"url": url},
        }
    )
    assert strip_non_comparables(reopened.get_table(ObjectSpec("d", "t"))) == TABLE
    reopened.dispose()


def test_sql_errors_become_catalog_errors(tmp_path):
    catalog = SQLCatalog(f"sqlite:///{tmp_path / 'catalog.db'}")
    catalog.sql_metadata.drop_all(catalog.engine)

    with pytest.raises(CatalogError, match="get_table") as exc_info:
        catalog.get_table(ObjectSpec("d", "t"))
    assert isinstance(exc_info.value.__cause__, sa.exc.OperationalError)
    catalog.dispose()
