# Copyright (c) QuantCo and pydiverse contributors 2025-2025
# SPDX-License-Identifier: BSD-3-Clause
from __future__ import annotations

import time
from abc import ABC, abstractmethod

import attrs
import structlog

from pydiverse.replication.core.metadata import (
    DatabaseMetadata,
    PartitionMetadata,
    TableMetadata,
)
from pydiverse.replication.core.object_spec import ObjectSpec
from pydiverse.replication.util import Disposable


class BaseCatalog(Disposable, ABC):
    """Catalog client base class

    A catalog holds the metadata records of databases, tables and partitions
    of one cluster. Lookups return ``None`` if an object doesn't exist.
    Everything else that goes wrong (the service can't be reached, a
    mutation violates a constraint) raises
    :py:class:`~pydiverse.replication.errors.CatalogError`, so callers can
    always tell "not found" apart from a fault.

    Like a real metastore, a catalog updates some fields of the records it
    stores by itself (``create_time``, ``catalog_id`` and the
    ``transient_lastDdlTime`` parameter). See :py:meth:`_stamp`.
    """

    def __init__(self):
        self.logger = structlog.get_logger(logger_name=type(self).__name__)

    @abstractmethod
    def get_database(self, name: str) -> DatabaseMetadata | None:
        """Returns the database record or None"""

    @abstractmethod
    def create_database_if_absent(self, database: DatabaseMetadata) -> bool:
        """Creates a database unless it exists

        :return: True if the database was created by this call.
        """

    @abstractmethod
    def get_table(self, spec: ObjectSpec) -> TableMetadata | None:
        """Returns the table record for a (table level) spec or None"""

    @abstractmethod
    def create_table(self, table: TableMetadata):
        """Adds a new table; fails if it already exists"""

    @abstractmethod
    def alter_table(self, table: TableMetadata):
        """Replaces an existing table record; fails if it doesn't exist"""

    @abstractmethod
    def get_partition(self, spec: ObjectSpec) -> PartitionMetadata | None:
        """Returns the partition record for a (partition level) spec or None"""

    @abstractmethod
    def add_partition(self, partition: PartitionMetadata):
        """Adds a new partition; fails if it or its table don't exist"""

    @abstractmethod
    def alter_partition(self, spec: ObjectSpec, partition: PartitionMetadata):
        """Replaces an existing partition record; fails if it doesn't exist"""

    @abstractmethod
    def list_partition_names(self, spec: ObjectSpec) -> list[str]:
        """Names of all partitions of a table, sorted"""

    def _stamp(self, record, *, catalog_id: int, create_time: int | None = None):
        """Apply the fields the catalog maintains on every mutation

        Values for these fields passed in by the client are ignored. When
        altering a record, the stored `create_time` and `catalog_id` have to be
        passed in to keep them.
        """
        now = int(time.time())
        parameters = dict(record.parameters)
        parameters["transient_lastDdlTime"] = str(now)
        return attrs.evolve(
            record,
            create_time=create_time or now,
            last_access_time=None,
            catalog_id=catalog_id,
            parameters=parameters,
        )
