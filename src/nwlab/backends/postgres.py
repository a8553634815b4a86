"""
Tabular backend: PostgreSQL.

Schema is created from the catalog's column definitions; data goes in with
``COPY ... FROM STDIN`` streamed from the staged CSV, one table at a time
in foreign-key order.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

import psycopg
from psycopg import sql

from nwlab.backends.base import Backend, LoadUnit, check_load_order, dependency_order
from nwlab.datasets.base import BackendKind, Entity
from nwlab.datasets.staged import count_csv_rows
from nwlab.errors import LoadError, ReferentialIntegrityError, ResetError, SchemaError

logger = logging.getLogger(__name__)

COPY_BLOCK = 64 * 1024


def create_table_sql(entity: Entity) -> sql.Composed:
    """CREATE TABLE IF NOT EXISTS statement for one entity."""
    single_pk = entity.primary_key[0] if len(entity.primary_key) == 1 else None
    parts = []
    for col in entity.columns:
        clause = [sql.Identifier(col.name), sql.SQL(col.type)]
        if col.name == single_pk:
            clause.append(sql.SQL("PRIMARY KEY"))
        elif not col.nullable:
            clause.append(sql.SQL("NOT NULL"))
        if col.default is not None:
            clause.append(sql.SQL("DEFAULT {}").format(sql.SQL(col.default)))
        if col.references:
            table, column = col.references.split(".", 1)
            clause.append(
                sql.SQL("REFERENCES {} ({})").format(sql.Identifier(table), sql.Identifier(column))
            )
        parts.append(sql.SQL(" ").join(clause))

    if single_pk is None:
        parts.append(
            sql.SQL("PRIMARY KEY ({})").format(
                sql.SQL(", ").join(sql.Identifier(c) for c in entity.primary_key)
            )
        )

    return sql.SQL("CREATE TABLE IF NOT EXISTS {} ({})").format(
        sql.Identifier(entity.name), sql.SQL(", ").join(parts)
    )


def truncate_sql(entities: Sequence[Entity]) -> sql.Composed:
    """TRUNCATE of all managed tables, children first, resetting identities."""
    children_first = reversed(dependency_order(entities))
    return sql.SQL("TRUNCATE {} RESTART IDENTITY CASCADE").format(
        sql.SQL(", ").join(sql.Identifier(e.name) for e in children_first)
    )


def copy_sql(entity: Entity) -> sql.Composed:
    """COPY FROM STDIN statement matching the staged CSV layout."""
    options = [
        sql.SQL("FORMAT csv"),
        sql.SQL("HEADER true"),
        sql.SQL("DELIMITER {}").format(sql.Literal(entity.delimiter)),
    ]
    if entity.null_token is not None:
        options.append(sql.SQL("NULL {}").format(sql.Literal(entity.null_token)))

    return sql.SQL("COPY {} ({}) FROM STDIN WITH ({})").format(
        sql.Identifier(entity.name),
        sql.SQL(", ").join(sql.Identifier(c.name) for c in entity.columns),
        sql.SQL(", ").join(options),
    )


class PostgresBackend(Backend):
    """Bulk-copy loader for PostgreSQL."""

    kind = BackendKind.TABULAR
    service = "postgresql_db"

    def _connect(self, dbname: str | None = None, autocommit: bool = False) -> psycopg.Connection:
        return psycopg.connect(self.settings.postgres_conninfo(dbname), autocommit=autocommit)

    def ping(self) -> bool:
        with self._connect(self.settings.pg_admin_db, autocommit=True) as conn:
            conn.execute("SELECT 1 FROM pg_catalog.pg_database LIMIT 1").fetchone()
        return True

    def ping_namespace(self) -> bool:
        with self._connect(autocommit=True) as conn:
            conn.execute("SELECT 1").fetchone()
        return True

    def ensure_namespace(self) -> None:
        """Create the target database unless it already exists."""
        dbname = self.settings.pg_database
        try:
            with self._connect(self.settings.pg_admin_db, autocommit=True) as conn:
                exists = conn.execute(
                    "SELECT 1 FROM pg_catalog.pg_database WHERE datname = %s", (dbname,)
                ).fetchone()
                if exists:
                    logger.debug("database %s exists", dbname)
                    return
                conn.execute(sql.SQL("CREATE DATABASE {}").format(sql.Identifier(dbname)))
                logger.info("created database %s", dbname)
        except psycopg.Error as exc:
            raise SchemaError(f"cannot create database {dbname}: {exc}", backend=self.name) from exc

    def ensure_schema(self, entities: Sequence[Entity]) -> None:
        """Create every table that is missing, parents before children."""
        try:
            with self._connect() as conn:
                for entity in dependency_order(entities):
                    conn.execute(create_table_sql(entity))
        except psycopg.Error as exc:
            raise SchemaError(f"cannot create tables: {exc}", backend=self.name) from exc

    def reset(self, entities: Sequence[Entity]) -> None:
        try:
            with self._connect() as conn:
                conn.execute(truncate_sql(entities))
        except psycopg.Error as exc:
            raise ResetError(f"truncate failed: {exc}", backend=self.name) from exc

    def plan_loads(self, entities: Sequence[Entity]) -> list[LoadUnit]:
        """One unit per table, in the order given; the order must respect foreign keys."""
        check_load_order(entities, backend=self.name)
        return super().plan_loads(entities)

    def load(self, entity: Entity) -> int:
        path = self.staged(entity.csv_file)
        try:
            with self._connect() as conn, conn.cursor() as cur, path.open("rb") as f:
                with cur.copy(copy_sql(entity)) as copy:
                    while block := f.read(COPY_BLOCK):
                        copy.write(block)
                return cur.rowcount
        except psycopg.errors.ForeignKeyViolation as exc:
            raise ReferentialIntegrityError(
                f"COPY violates a foreign key: {exc.diag.message_detail or exc}",
                backend=self.name,
                entity=entity.name,
            ) from exc
        except (psycopg.Error, OSError) as exc:
            raise LoadError(f"COPY failed: {exc}", backend=self.name, entity=entity.name) from exc

    def count(self, entity: Entity) -> int:
        query = sql.SQL("SELECT count(*) FROM {}").format(sql.Identifier(entity.name))
        with self._connect() as conn:
            return conn.execute(query).fetchone()[0]

    def expected_count(self, entity: Entity) -> int | None:
        return count_csv_rows(self.staged(entity.csv_file), entity.delimiter)
