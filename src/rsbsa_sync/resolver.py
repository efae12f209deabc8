"""Fetch full source rows for a batch of entity keys."""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List

from sqlalchemy import bindparam, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from .errors import DataAccessError
from .models import DEFAULT_RESOLVE_CHUNK
from .schema import (ENTITY_KEY, OWNERSHIP_TABLE, PARCEL_KEY, PARCEL_TABLE,
                     Resolution, get_table_spec)
from .utils import chunked, unique

LOGGER = logging.getLogger("rsbsa_sync.resolver")

Row = Dict[str, Any]


class SourceResolver:
    """Reads the registry rows belonging to a set of ``rsbsa_no`` values.

    An empty key set or an empty match returns ``[]``; callers treat that as a
    skip rather than a failure.
    """

    def __init__(self, engine: Engine, chunk_size: int = DEFAULT_RESOLVE_CHUNK) -> None:
        self._engine = engine
        self._chunk_size = max(1, chunk_size)

    def resolve(self, table: str, entity_keys: Iterable[str]) -> List[Row]:
        keys = unique(entity_keys)
        if not keys:
            return []
        spec = get_table_spec(table)
        if spec is not None and spec.resolution is Resolution.VIA_OWNERSHIP:
            return self.resolve_parcels(self.owned_parcel_ids(keys))
        return self._select_in(table, ENTITY_KEY, keys)

    def owned_parcel_ids(self, entity_keys: Iterable[str]) -> List[str]:
        ownerships = self._select_in(
            OWNERSHIP_TABLE, ENTITY_KEY, unique(entity_keys), columns=(PARCEL_KEY, ENTITY_KEY)
        )
        return unique(row.get(PARCEL_KEY) for row in ownerships)

    def resolve_parcels(self, parcel_ids: Iterable[Any]) -> List[Row]:
        return self.resolve_by(PARCEL_TABLE, PARCEL_KEY, parcel_ids)

    def resolve_by(self, table: str, column: str, values: Iterable[Any]) -> List[Row]:
        return self._select_in(table, column, unique(values))

    def _select_in(
        self,
        table: str,
        column: str,
        values: List[Any],
        columns: Iterable[str] = (),
    ) -> List[Row]:
        if not values:
            return []
        preparer = self._engine.dialect.identifier_preparer
        projection = ", ".join(preparer.quote(name) for name in columns) or "*"
        stmt = text(
            f"SELECT {projection} FROM {preparer.quote(table)} "
            f"WHERE {preparer.quote(column)} IN :values"
        ).bindparams(bindparam("values", expanding=True))

        rows: List[Row] = []
        try:
            with self._engine.connect() as conn:
                for chunk in chunked(values, self._chunk_size):
                    result = conn.execute(stmt, {"values": chunk})
                    rows.extend(dict(row) for row in result.mappings())
        except SQLAlchemyError as exc:
            raise DataAccessError(f"Reading {table} from source failed: {exc}") from exc
        LOGGER.debug("Resolved %s row(s) from %s for %s key(s)", len(rows), table, len(values))
        return rows
