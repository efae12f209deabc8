"""Paged access to the ``etl_logger_profiling`` change log."""

from __future__ import annotations

import logging
from typing import List

from sqlalchemy import and_, func, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from .errors import DataAccessError
from .models import ChangeLogEntry
from .schema import ENTITY_KEY, changelog_table

LOGGER = logging.getLogger("rsbsa_sync.changelog")


class ChangeLogReader:
    """Reads pending ``(log_id, rsbsa_no, table)`` tuples ordered by ``log_id``.

    The engine never deletes entries; reprocessing is safe because every
    write downstream is an upsert.
    """

    def __init__(self, engine: Engine, include_incomplete: bool = False) -> None:
        self._engine = engine
        self._include_incomplete = include_incomplete

    def _pending(self):
        if self._include_incomplete:
            return None
        return and_(
            changelog_table.c[ENTITY_KEY].is_not(None),
            changelog_table.c.table.is_not(None),
        )

    def count_pending(self) -> int:
        stmt = select(func.count()).select_from(changelog_table)
        predicate = self._pending()
        if predicate is not None:
            stmt = stmt.where(predicate)
        try:
            with self._engine.connect() as conn:
                return int(conn.execute(stmt).scalar_one())
        except SQLAlchemyError as exc:
            raise DataAccessError(f"Counting change log entries failed: {exc}") from exc

    def fetch_page(self, offset: int, limit: int) -> List[ChangeLogEntry]:
        stmt = select(
            changelog_table.c.log_id,
            changelog_table.c[ENTITY_KEY],
            changelog_table.c.table,
        )
        predicate = self._pending()
        if predicate is not None:
            stmt = stmt.where(predicate)
        stmt = stmt.order_by(changelog_table.c.log_id.asc()).limit(limit).offset(offset)
        try:
            with self._engine.connect() as conn:
                rows = conn.execute(stmt).mappings().all()
        except SQLAlchemyError as exc:
            raise DataAccessError(
                f"Fetching change log page at offset {offset} failed: {exc}"
            ) from exc
        LOGGER.debug("Fetched %s change log entries at offset %s", len(rows), offset)
        return [ChangeLogEntry.model_validate(dict(row)) for row in rows]
