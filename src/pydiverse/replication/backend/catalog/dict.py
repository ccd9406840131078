# Copyright (c) QuantCo and pydiverse contributors 2025-2025
# SPDX-License-Identifier: BSD-3-Clause
from __future__ import annotations

import itertools
import threading

from pydiverse.replication.backend.catalog.base import BaseCatalog
from pydiverse.replication.core.metadata import (
    DatabaseMetadata,
    PartitionMetadata,
    TableMetadata,
)
from pydiverse.replication.core.object_spec import ObjectSpec
from pydiverse.replication.errors import CatalogError


class DictCatalog(BaseCatalog):
    """
    A very basic catalog that keeps all records in dictionaries.
    Should only ever be used for testing and local experiments.
    """

    def __init__(self):
        super().__init__()
        self.databases: dict[str, DatabaseMetadata] = {}
        self.tables: dict[tuple[str, str], TableMetadata] = {}
        self.partitions: dict[tuple[str, str, str], PartitionMetadata] = {}

        self.__ids = itertools.count(1)
        self.__lock = threading.RLock()

    def get_database(self, name: str) -> DatabaseMetadata | None:
        return self.databases.get(name)

    def create_database_if_absent(self, database: DatabaseMetadata) -> bool:
        with self.__lock:
            if database.name in self.databases:
                return False
            self.databases[database.name] = database
            return True

    def get_table(self, spec: ObjectSpec) -> TableMetadata | None:
        return self.tables.get((spec.database, spec.table))

    def create_table(self, table: TableMetadata):
        with self.__lock:
            if table.database not in self.databases:
                raise CatalogError(f"Database '{table.database}' doesn't exist")
            key = (table.database, table.name)
            if key in self.tables:
                raise CatalogError(f"Table '{table.spec}' already exists")
            self.tables[key] = self._stamp(table, catalog_id=next(self.__ids))

    def alter_table(self, table: TableMetadata):
        with self.__lock:
            key = (table.database, table.name)
            try:
                stored = self.tables[key]
            except KeyError:
                raise CatalogError(f"Table '{table.spec}' doesn't exist") from None
            self.tables[key] = self._stamp(
                table, catalog_id=stored.catalog_id, create_time=stored.create_time
            )

    def get_partition(self, spec: ObjectSpec) -> PartitionMetadata | None:
        return self.partitions.get((spec.database, spec.table, spec.partition_name))

    def add_partition(self, partition: PartitionMetadata):
        with self.__lock:
            if (partition.database, partition.table) not in self.tables:
                raise CatalogError(
                    f"Table '{partition.spec.table_spec}' of partition doesn't exist"
                )
            key = (partition.database, partition.table, partition.name)
            if key in self.partitions:
                raise CatalogError(f"Partition '{partition.spec}' already exists")
            self.partitions[key] = self._stamp(partition, catalog_id=next(self.__ids))

    def alter_partition(self, spec: ObjectSpec, partition: PartitionMetadata):
        with self.__lock:
            key = (spec.database, spec.table, spec.partition_name)
            try:
                stored = self.partitions[key]
            except KeyError:
                raise CatalogError(f"Partition '{spec}' doesn't exist") from None
            self.partitions[key] = self._stamp(
                partition, catalog_id=stored.catalog_id, create_time=stored.create_time
            )

    def list_partition_names(self, spec: ObjectSpec) -> list[str]:
        return sorted(
            name
            for (database, table, name) in self.partitions
            if database == spec.database and table == spec.table
        )
