# Copyright (c) QuantCo and pydiverse contributors 2025-2025
# SPDX-License-Identifier: BSD-3-Clause
"""Catalog records

The records mirror what a Hive-style catalog stores for databases, tables
and partitions. They are immutable; derive modified versions with
:py:func:`attrs.evolve`.

A ``location`` of ``None`` is a valid state (views don't have storage) and
must not be confused with a record that doesn't exist.
"""
from __future__ import annotations

from typing import Any, Union

import attrs
from attrs import field, frozen

from pydiverse.replication.core.object_spec import ObjectSpec

# Parameters the catalog service updates by itself on every mutation.
NON_COMPARABLE_PARAMETERS = frozenset(
    {
        "transient_lastDdlTime",
        "last_modified_time",
        "last_modified_by",
    }
)


def _to_parameters(value) -> dict[str, str]:
    return {str(k): str(v) for k, v in (value or {}).items()}


def _to_columns(value) -> tuple[Column, ...]:
    return tuple(c if isinstance(c, Column) else Column(**c) for c in value or ())


def partition_values(partition_name: str) -> tuple[str, ...]:
    """``ds=1/hr=2`` -> ``("1", "2")``"""
    values = []
    for part in partition_name.split("/"):
        key, sep, value = part.partition("=")
        if not sep:
            raise ValueError(f"Invalid partition name '{partition_name}'")
        values.append(value)
    return tuple(values)


@frozen
class Column:
    name: str
    type: str
    comment: str | None = None


@frozen
class DatabaseMetadata:
    name: str
    description: str | None = None
    location: str | None = None
    owner: str | None = None
    parameters: dict[str, str] = field(factory=dict, converter=_to_parameters)

    def to_dict(self) -> dict[str, Any]:
        return attrs.asdict(self)

    @classmethod
    def from_dict(cls, value: dict[str, Any]) -> DatabaseMetadata:
        return cls(**value)


@frozen
class TableMetadata:
    database: str
    name: str
    columns: tuple[Column, ...] = field(default=(), converter=_to_columns)
    partition_keys: tuple[Column, ...] = field(default=(), converter=_to_columns)
    location: str | None = None
    storage_format: str | None = None
    table_type: str = "MANAGED_TABLE"
    owner: str | None = None
    parameters: dict[str, str] = field(factory=dict, converter=_to_parameters)

    # maintained by the catalog service
    create_time: int | None = None
    last_access_time: int | None = None
    catalog_id: int | None = None

    @property
    def spec(self) -> ObjectSpec:
        return ObjectSpec(self.database, self.name)

    @property
    def is_partitioned(self) -> bool:
        return len(self.partition_keys) > 0

    def to_dict(self) -> dict[str, Any]:
        return attrs.asdict(self)

    @classmethod
    def from_dict(cls, value: dict[str, Any]) -> TableMetadata:
        return cls(**value)


@frozen
class PartitionMetadata:
    database: str
    table: str
    name: str
    values: tuple[str, ...] = field(converter=tuple)
    location: str | None = None
    storage_format: str | None = None
    parameters: dict[str, str] = field(factory=dict, converter=_to_parameters)

    # maintained by the catalog service
    create_time: int | None = None
    last_access_time: int | None = None
    catalog_id: int | None = None

    @values.default
    def _values_from_name(self):
        return partition_values(self.name)

    @property
    def spec(self) -> ObjectSpec:
        return ObjectSpec(self.database, self.table, self.name)

    def to_dict(self) -> dict[str, Any]:
        return attrs.asdict(self)

    @classmethod
    def from_dict(cls, value: dict[str, Any]) -> PartitionMetadata:
        return cls(**value)


CatalogRecord = Union[TableMetadata, PartitionMetadata]  # noqa: UP007


def strip_non_comparables(record: CatalogRecord) -> CatalogRecord:
    """Removes all fields the catalog service mutates by itself

    Comparing records without stripping them first would report a difference
    after every mutation and lead to an endless series of ALTER calls.
    """
    return attrs.evolve(
        record,
        create_time=None,
        last_access_time=None,
        catalog_id=None,
        parameters={
            k: v
            for k, v in record.parameters.items()
            if k not in NON_COMPARABLE_PARAMETERS
        },
    )


def _schema_key(columns: tuple[Column, ...]):
    return [(c.name.strip().casefold(), c.type.strip().casefold()) for c in columns]


def schemas_match(a: TableMetadata, b: TableMetadata) -> bool:
    """Column names, types and their ordering (incl. partition keys) agree

    Column names and types are case-insensitive. Comments are ignored.
    """
    return _schema_key(a.columns) == _schema_key(b.columns) and _schema_key(
        a.partition_keys
    ) == _schema_key(b.partition_keys)
