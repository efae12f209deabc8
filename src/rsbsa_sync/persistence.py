"""Transactional writes into the aggregation-hub tables."""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Mapping, Sequence

from sqlalchemy import bindparam, delete, select
from sqlalchemy.dialects.mysql import insert as mysql_insert
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import SQLAlchemyError

from .errors import DataAccessError, TransferError
from .models import DEFAULT_RESOLVE_CHUNK
from .schema import TableSpec, get_table_spec
from .utils import chunked, unique

LOGGER = logging.getLogger("rsbsa_sync.persistence")

Row = Dict[str, Any]

ON_CONFLICT_INSERTS = {
    "postgresql": pg_insert,
    "sqlite": sqlite_insert,
}
DUPLICATE_KEY_DIALECTS = {"mysql", "mariadb"}


def prepare_rows(spec: TableSpec, rows: Iterable[Mapping[str, Any]]) -> List[Row]:
    """Project ``rows`` onto the target columns and enforce the key invariants.

    Rows without a key value are dropped. For one-to-one tables only the last
    row per key survives.
    """
    known = spec.column_names
    key = spec.key_column
    dropped_columns: set[str] = set()
    missing_key = 0
    projected: List[Row] = []

    for row in rows:
        dropped_columns.update(name for name in row if name not in known)
        if row.get(key) in (None, ""):
            missing_key += 1
            continue
        projected.append({name: row[name] for name in known if name in row})

    if dropped_columns:
        LOGGER.debug(
            "Ignoring source columns unknown to %s: %s",
            spec.name,
            ", ".join(sorted(dropped_columns)),
        )
    if missing_key:
        LOGGER.warning("Dropped %s %s row(s) without %s", missing_key, spec.name, key)

    if spec.is_one_to_one:
        by_key: Dict[Any, Row] = {}
        for row in projected:
            by_key[row[key]] = row
        duplicates = len(projected) - len(by_key)
        if duplicates:
            LOGGER.warning(
                "Source yielded %s extra row(s) for one-to-one table %s; last row per %s wins",
                duplicates,
                spec.name,
                key,
            )
        projected = list(by_key.values())

    columns = [name for name in known if any(name in row for row in projected)]
    return [{name: row.get(name) for name in columns} for row in projected]


class TargetWriter:
    """Applies one-to-one and one-to-many transfer semantics per table."""

    def __init__(
        self,
        engine: Engine,
        bulk_upsert: bool = True,
        chunk_size: int = DEFAULT_RESOLVE_CHUNK,
    ) -> None:
        self._engine = engine
        self._bulk_upsert = bulk_upsert
        self._chunk_size = max(1, chunk_size)

    @staticmethod
    def _spec(table: str) -> TableSpec:
        spec = get_table_spec(table)
        if spec is None:
            raise ValueError(f"No table definition registered for {table!r}")
        return spec

    def ensure_schema(self, table: str) -> None:
        spec = self._spec(table)
        try:
            with self._engine.begin() as conn:
                spec.table.create(conn, checkfirst=True)
        except SQLAlchemyError as exc:
            raise DataAccessError(f"Creating target table {table} failed: {exc}") from exc

    def upsert(self, table: str, rows: Sequence[Mapping[str, Any]]) -> int:
        """Write ``rows`` into ``table`` in one transaction; returns rows written."""
        spec = self._spec(table)
        self.ensure_schema(table)
        prepared = prepare_rows(spec, rows)
        if not prepared:
            return 0

        keys = unique(row[spec.key_column] for row in prepared)
        try:
            with self._engine.begin() as conn:
                if spec.is_one_to_one:
                    self._write_one_to_one(conn, spec, prepared, keys)
                else:
                    self._write_one_to_many(conn, spec, prepared, keys)
        except SQLAlchemyError as exc:
            raise TransferError(table, [str(k) for k in keys], exc) from exc

        LOGGER.debug("Wrote %s row(s) into %s", len(prepared), table)
        return len(prepared)

    def _write_one_to_one(
        self, conn: Connection, spec: TableSpec, rows: List[Row], keys: List[Any]
    ) -> None:
        dialect = conn.dialect.name
        if self._bulk_upsert and dialect in ON_CONFLICT_INSERTS:
            self._on_conflict_upsert(conn, spec, rows, ON_CONFLICT_INSERTS[dialect])
        elif self._bulk_upsert and dialect in DUPLICATE_KEY_DIALECTS:
            self._duplicate_key_upsert(conn, spec, rows)
        else:
            self._update_or_insert(conn, spec, rows, keys)

    @staticmethod
    def _update_columns(spec: TableSpec, rows: List[Row]) -> List[str]:
        return [name for name in rows[0] if name != spec.key_column]

    def _on_conflict_upsert(self, conn: Connection, spec: TableSpec, rows: List[Row], insert_fn) -> None:
        table = spec.table
        stmt = insert_fn(table)
        update_columns = self._update_columns(spec, rows)
        if update_columns:
            stmt = stmt.on_conflict_do_update(
                index_elements=[table.c[spec.key_column]],
                set_={name: stmt.excluded[name] for name in update_columns},
            )
        else:
            stmt = stmt.on_conflict_do_nothing(index_elements=[table.c[spec.key_column]])
        conn.execute(stmt, rows)

    def _duplicate_key_upsert(self, conn: Connection, spec: TableSpec, rows: List[Row]) -> None:
        stmt = mysql_insert(spec.table)
        update_columns = self._update_columns(spec, rows) or [spec.key_column]
        stmt = stmt.on_duplicate_key_update(
            {name: stmt.inserted[name] for name in update_columns}
        )
        conn.execute(stmt, rows)

    def _update_or_insert(
        self, conn: Connection, spec: TableSpec, rows: List[Row], keys: List[Any]
    ) -> None:
        table = spec.table
        key_column = table.c[spec.key_column]
        existing: set = set()
        for chunk in chunked(keys, self._chunk_size):
            existing.update(conn.execute(select(key_column).where(key_column.in_(chunk))).scalars())

        updates = [row for row in rows if row[spec.key_column] in existing]
        inserts = [row for row in rows if row[spec.key_column] not in existing]

        if inserts:
            conn.execute(table.insert(), inserts)

        update_columns = self._update_columns(spec, rows)
        if updates and update_columns:
            # Bind names must differ from column names in an UPDATE ... SET.
            stmt = (
                table.update()
                .where(key_column == bindparam("b_key"))
                .values({name: bindparam(f"v_{name}") for name in update_columns})
            )
            params = [
                {"b_key": row[spec.key_column], **{f"v_{name}": row[name] for name in update_columns}}
                for row in updates
            ]
            conn.execute(stmt, params)

    def _write_one_to_many(
        self, conn: Connection, spec: TableSpec, rows: List[Row], keys: List[Any]
    ) -> None:
        table = spec.table
        key_column = table.c[spec.key_column]
        for chunk in chunked(keys, self._chunk_size):
            conn.execute(delete(table).where(key_column.in_(chunk)))
        conn.execute(table.insert(), rows)
