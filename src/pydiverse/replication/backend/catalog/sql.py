# Copyright (c) QuantCo and pydiverse contributors 2025-2025
# SPDX-License-Identifier: BSD-3-Clause
from __future__ import annotations

import functools
import json
from typing import Any

import sqlalchemy as sa

from pydiverse.replication.backend.catalog.base import BaseCatalog
from pydiverse.replication.core.metadata import (
    DatabaseMetadata,
    PartitionMetadata,
    TableMetadata,
)
from pydiverse.replication.core.object_spec import ObjectSpec
from pydiverse.replication.errors import CatalogError


def _wrap_sql_errors(fn):
    """Report database faults as CatalogError"""

    @functools.wraps(fn)
    def wrapper(self, *args, **kwargs):
        try:
            return fn(self, *args, **kwargs)
        except sa.exc.SQLAlchemyError as e:
            raise CatalogError(
                f"Catalog operation '{fn.__name__}' failed: {type(e).__name__}"
            ) from e

    return wrapper


class SQLCatalog(BaseCatalog):
    """Catalog stored in a relational database

    Each record gets stored as a JSON document next to the columns that
    identify it. All tables are created on first use.

    Config File
    -----------
    :param url:
        SQLAlchemy engine URL (e.g. ``postgresql://user:pw@host/catalog`` or
        ``sqlite:///catalog.db``).
    :param schema:
        Optional database schema holding the catalog tables.
    """

    @classmethod
    def _init_conf_(cls, config: dict[str, Any]):
        config = config.copy()
        engine_url = config.pop("url")
        return cls(engine_url, **config)

    def __init__(self, engine_url: str, *, schema: str | None = None):
        super().__init__()

        self.engine_url = sa.engine.make_url(engine_url)
        self.engine = sa.create_engine(self.engine_url)

        self.sql_metadata = sa.MetaData(schema=schema)
        self.databases_table = sa.Table(
            "databases",
            self.sql_metadata,
            sa.Column("name", sa.String(128), primary_key=True),
            sa.Column("record", sa.Text(), nullable=False),
        )
        self.tables_table = sa.Table(
            "tables",
            self.sql_metadata,
            self._pk(),
            sa.Column("database", sa.String(128), nullable=False),
            sa.Column("name", sa.String(256), nullable=False),
            sa.Column("record", sa.Text(), nullable=False),
            sa.UniqueConstraint("database", "name"),
        )
        self.partitions_table = sa.Table(
            "partitions",
            self.sql_metadata,
            self._pk(),
            sa.Column("database", sa.String(128), nullable=False),
            sa.Column("table_name", sa.String(256), nullable=False),
            sa.Column("name", sa.String(767), nullable=False),
            sa.Column("record", sa.Text(), nullable=False),
            sa.UniqueConstraint("database", "table_name", "name"),
        )

        self._create_tables()

        self.logger.info(
            "Initialized SQL catalog",
            engine_url=self.engine_url.render_as_string(hide_password=True),
            schema=schema,
        )

    def _pk(self):
        # SQLite only auto-increments INTEGER primary keys
        return sa.Column(
            "id", sa.BigInteger().with_variant(sa.Integer(), "sqlite"), primary_key=True
        )

    @_wrap_sql_errors
    def _create_tables(self):
        self.sql_metadata.create_all(self.engine, checkfirst=True)

    def dispose(self):
        self.engine.dispose()
        super().dispose()

    # Databases

    @_wrap_sql_errors
    def get_database(self, name: str) -> DatabaseMetadata | None:
        t = self.databases_table
        with self.engine.connect() as conn:
            record = conn.execute(
                sa.select(t.c.record).where(t.c.name == name)
            ).scalar_one_or_none()
        if record is None:
            return None
        return DatabaseMetadata.from_dict(json.loads(record))

    @_wrap_sql_errors
    def create_database_if_absent(self, database: DatabaseMetadata) -> bool:
        t = self.databases_table
        try:
            with self.engine.begin() as conn:
                exists = conn.execute(
                    sa.select(t.c.name).where(t.c.name == database.name)
                ).scalar_one_or_none()
                if exists is not None:
                    return False
                conn.execute(
                    t.insert().values(
                        name=database.name, record=json.dumps(database.to_dict())
                    )
                )
        except sa.exc.IntegrityError:
            # created concurrently
            return False
        return True

    # Tables

    @_wrap_sql_errors
    def get_table(self, spec: ObjectSpec) -> TableMetadata | None:
        t = self.tables_table
        with self.engine.connect() as conn:
            record = conn.execute(
                sa.select(t.c.record)
                .where(t.c.database == spec.database)
                .where(t.c.name == spec.table)
            ).scalar_one_or_none()
        if record is None:
            return None
        return TableMetadata.from_dict(json.loads(record))

    @_wrap_sql_errors
    def create_table(self, table: TableMetadata):
        if self.get_database(table.database) is None:
            raise CatalogError(f"Database '{table.database}' doesn't exist")

        t = self.tables_table
        try:
            with self.engine.begin() as conn:
                catalog_id = conn.execute(
                    t.insert().values(database=table.database, name=table.name, record="{}")
                ).inserted_primary_key[0]
                stamped = self._stamp(table, catalog_id=catalog_id)
                conn.execute(
                    t.update()
                    .where(t.c.id == catalog_id)
                    .values(record=json.dumps(stamped.to_dict()))
                )
        except sa.exc.IntegrityError:
            raise CatalogError(f"Table '{table.spec}' already exists") from None

    @_wrap_sql_errors
    def alter_table(self, table: TableMetadata):
        t = self.tables_table
        with self.engine.begin() as conn:
            row = conn.execute(
                sa.select(t.c.id, t.c.record)
                .where(t.c.database == table.database)
                .where(t.c.name == table.name)
                .with_for_update()
            ).one_or_none()
            if row is None:
                raise CatalogError(f"Table '{table.spec}' doesn't exist")
            stored = TableMetadata.from_dict(json.loads(row.record))
            stamped = self._stamp(
                table, catalog_id=row.id, create_time=stored.create_time
            )
            conn.execute(
                t.update()
                .where(t.c.id == row.id)
                .values(record=json.dumps(stamped.to_dict()))
            )

    # Partitions

    @_wrap_sql_errors
    def get_partition(self, spec: ObjectSpec) -> PartitionMetadata | None:
        t = self.partitions_table
        with self.engine.connect() as conn:
            record = conn.execute(
                sa.select(t.c.record)
                .where(t.c.database == spec.database)
                .where(t.c.table_name == spec.table)
                .where(t.c.name == spec.partition_name)
            ).scalar_one_or_none()
        if record is None:
            return None
        return PartitionMetadata.from_dict(json.loads(record))

    @_wrap_sql_errors
    def add_partition(self, partition: PartitionMetadata):
        if self.get_table(partition.spec.table_spec) is None:
            raise CatalogError(
                f"Table '{partition.spec.table_spec}' of partition doesn't exist"
            )

        t = self.partitions_table
        try:
            with self.engine.begin() as conn:
                catalog_id = conn.execute(
                    t.insert().values(
                        database=partition.database,
                        table_name=partition.table,
                        name=partition.name,
                        record="{}",
                    )
                ).inserted_primary_key[0]
                stamped = self._stamp(partition, catalog_id=catalog_id)
                conn.execute(
                    t.update()
                    .where(t.c.id == catalog_id)
                    .values(record=json.dumps(stamped.to_dict()))
                )
        except sa.exc.IntegrityError:
            raise CatalogError(f"Partition '{partition.spec}' already exists") from None

    @_wrap_sql_errors
    def alter_partition(self, spec: ObjectSpec, partition: PartitionMetadata):
        t = self.partitions_table
        with self.engine.begin() as conn:
            row = conn.execute(
                sa.select(t.c.id, t.c.record)
                .where(t.c.database == spec.database)
                .where(t.c.table_name == spec.table)
                .where(t.c.name == spec.partition_name)
                .with_for_update()
            ).one_or_none()
            if row is None:
                raise CatalogError(f"Partition '{spec}' doesn't exist")
            stored = PartitionMetadata.from_dict(json.loads(row.record))
            stamped = self._stamp(
                partition, catalog_id=row.id, create_time=stored.create_time
            )
            conn.execute(
                t.update()
                .where(t.c.id == row.id)
                .values(record=json.dumps(stamped.to_dict()))
            )

    @_wrap_sql_errors
    def list_partition_names(self, spec: ObjectSpec) -> list[str]:
        t = self.partitions_table
        with self.engine.connect() as conn:
            names = conn.execute(
                sa.select(t.c.name)
                .where(t.c.database == spec.database)
                .where(t.c.table_name == spec.table)
                .order_by(t.c.name)
            ).scalars()
            return list(names)
