# Copyright (c) QuantCo and pydiverse contributors 2025-2025
# SPDX-License-Identifier: BSD-3-Clause
"""Pluggable policies of replication tasks

Tasks receive a :py:class:`DestinationBuilder` and a :py:class:`ConflictPolicy`
at construction time. Custom behaviour is added by passing different
instances (configured in the ``destination_builder`` and ``conflict_policy``
config sections), not by subclassing the tasks.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable
from urllib.parse import urlsplit

import attrs
import structlog

from pydiverse.replication.core.cluster import Cluster
from pydiverse.replication.core.metadata import (
    NON_COMPARABLE_PARAMETERS,
    CatalogRecord,
    DatabaseMetadata,
)
from pydiverse.replication.errors import ReplicationConflictError

SOURCE_CLUSTER_KEY = "replication.source_cluster"
SOURCE_LAST_MODIFIED_KEY = "replication.source_last_modified_time"


def is_replica_of(record: CatalogRecord, cluster: Cluster) -> bool:
    """Whether `record` was written by replicating from `cluster`"""
    return record.parameters.get(SOURCE_CLUSTER_KEY) == cluster.name


class DestinationBuilder(ABC):
    @abstractmethod
    def build(
        self,
        src_cluster: Cluster,
        dest_cluster: Cluster,
        src_record: CatalogRecord,
        existing_dest_record: CatalogRecord | None,
    ) -> CatalogRecord:
        """Build the record the destination should hold for `src_record`

        `existing_dest_record` is the record currently on the destination (or
        None). Builders may take fields from it, e.g. to keep metadata that
        only exists on the destination.
        """

    @abstractmethod
    def build_database(
        self,
        src_cluster: Cluster,
        dest_cluster: Cluster,
        src_database: DatabaseMetadata | None,
        name: str,
    ) -> DatabaseMetadata:
        """Build the database record to create on the destination"""


class DefaultDestinationBuilder(DestinationBuilder):
    """Copies source records onto the destination filesystem

    - The location gets rebased onto the destination's ``fs_root``. If it lies
      below the source's ``fs_root`` the prefix gets swapped, otherwise the
      path component of the location gets appended to the destination root.
      Clusters sharing a namespace (same ``fs_root``) keep their locations.
    - ``replication.source_cluster`` records where the object came from, and
      the source's ``transient_lastDdlTime`` is carried over as
      ``replication.source_last_modified_time``, so changes on the source
      show up as differences on the destination.
    - Fields maintained by the destination catalog, and destination-only
      parameters starting with one of `preserve_parameter_prefixes`, are taken
      from the existing destination record.
    """

    def __init__(self, preserve_parameter_prefixes: Iterable[str] = ()):
        self.preserve_parameter_prefixes = tuple(preserve_parameter_prefixes)

    def build(
        self,
        src_cluster: Cluster,
        dest_cluster: Cluster,
        src_record: CatalogRecord,
        existing_dest_record: CatalogRecord | None,
    ) -> CatalogRecord:
        parameters = {
            k: v
            for k, v in src_record.parameters.items()
            if k not in NON_COMPARABLE_PARAMETERS
        }
        parameters[SOURCE_CLUSTER_KEY] = src_cluster.name
        if (modified := src_record.parameters.get("transient_lastDdlTime")) is not None:
            parameters[SOURCE_LAST_MODIFIED_KEY] = modified

        existing = existing_dest_record
        if existing is not None and self.preserve_parameter_prefixes:
            for key, value in existing.parameters.items():
                if key not in parameters and key.startswith(
                    self.preserve_parameter_prefixes
                ):
                    parameters[key] = value

        return attrs.evolve(
            src_record,
            location=self.destination_location(
                src_cluster, dest_cluster, src_record.location
            ),
            parameters=parameters,
            create_time=existing.create_time if existing else None,
            last_access_time=existing.last_access_time if existing else None,
            catalog_id=existing.catalog_id if existing else None,
        )

    def build_database(
        self,
        src_cluster: Cluster,
        dest_cluster: Cluster,
        src_database: DatabaseMetadata | None,
        name: str,
    ) -> DatabaseMetadata:
        if src_database is None:
            return DatabaseMetadata(name, parameters={SOURCE_CLUSTER_KEY: src_cluster.name})
        return attrs.evolve(
            src_database,
            location=self.destination_location(
                src_cluster, dest_cluster, src_database.location
            ),
            parameters=src_database.parameters | {SOURCE_CLUSTER_KEY: src_cluster.name},
        )

    @staticmethod
    def destination_location(
        src_cluster: Cluster, dest_cluster: Cluster, location: str | None
    ) -> str | None:
        if location is None:
            return None
        src_root = src_cluster.fs_root.rstrip("/")
        dest_root = dest_cluster.fs_root.rstrip("/")
        if location == src_root or location.startswith(src_root + "/"):
            return dest_root + location[len(src_root) :]
        return dest_root + "/" + urlsplit(location).path.lstrip("/")


class ConflictPolicy(ABC):
    @abstractmethod
    def on_conflict(
        self,
        src_cluster: Cluster,
        dest_cluster: Cluster,
        src_record: CatalogRecord,
        existing_dest_record: CatalogRecord,
    ):
        """Called when the object to replicate already exists on the destination

        The return value is ignored. Raising aborts the task.
        """


class LoggingConflictPolicy(ConflictPolicy):
    """Logs objects that exist on the destination but weren't replicated there"""

    def __init__(self):
        self.logger = structlog.get_logger(logger_name=type(self).__name__)

    def on_conflict(
        self,
        src_cluster: Cluster,
        dest_cluster: Cluster,
        src_record: CatalogRecord,
        existing_dest_record: CatalogRecord,
    ):
        if is_replica_of(existing_dest_record, src_cluster):
            return
        self.logger.warning(
            "Overwriting object that wasn't replicated from the source cluster",
            spec=str(src_record.spec),
            src_cluster=src_cluster.name,
            dest_cluster=dest_cluster.name,
            existing_source_cluster=existing_dest_record.parameters.get(
                SOURCE_CLUSTER_KEY
            ),
            source_record=src_record,
            destination_record=existing_dest_record,
        )


class RaisingConflictPolicy(ConflictPolicy):
    """Refuses to overwrite objects that weren't replicated from the source"""

    def on_conflict(
        self,
        src_cluster: Cluster,
        dest_cluster: Cluster,
        src_record: CatalogRecord,
        existing_dest_record: CatalogRecord,
    ):
        if not is_replica_of(existing_dest_record, src_cluster):
            raise ReplicationConflictError(
                f"'{src_record.spec}' exists on '{dest_cluster.name}' but wasn't"
                f" replicated from '{src_cluster.name}'"
            )
