"""Shared fixtures: in-memory SQLite registry and hub databases."""

from typing import Any, Dict, Iterable, List, Optional

import pytest
from sqlalchemy import MetaData, create_engine, select
from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool

from rsbsa_sync import schema
from rsbsa_sync.models import SyncConfig


def _memory_engine() -> Engine:
    return create_engine(
        "sqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )


@pytest.fixture
def source_engine():
    """Registry database holding the change log and every source table."""
    engine = _memory_engine()
    source_metadata = MetaData()
    for table in schema.metadata.sorted_tables:
        table.to_metadata(source_metadata)
    schema.changelog_table.to_metadata(source_metadata)
    source_metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def target_engine():
    """Empty hub database; tables are created by the writer."""
    engine = _memory_engine()
    yield engine
    engine.dispose()


@pytest.fixture
def sync_config():
    return SyncConfig(page_size=500, page_pause=0.0)


def insert_rows(engine: Engine, table: str, rows: Iterable[Dict[str, Any]]) -> None:
    """Insert ``rows``; keys missing from some rows are filled with None."""
    rows = list(rows)
    if not rows:
        return
    columns = list(dict.fromkeys(name for row in rows for name in row))
    params = [{name: row.get(name) for name in columns} for row in rows]
    with engine.begin() as conn:
        conn.execute(schema.metadata.tables[table].insert(), params)


def add_log(engine: Engine, *entries) -> None:
    """Append ``(log_id, rsbsa_no, table)`` tuples to the change log."""
    with engine.begin() as conn:
        conn.execute(
            schema.changelog_table.insert(),
            [{"log_id": log_id, "rsbsa_no": key, "table": table} for log_id, key, table in entries],
        )


def fetch_all(engine: Engine, table: str, order_by: Optional[str] = None) -> List[Dict[str, Any]]:
    sa_table = schema.metadata.tables[table]
    stmt = select(sa_table)
    if order_by:
        stmt = stmt.order_by(sa_table.c[order_by])
    with engine.connect() as conn:
        return [dict(row) for row in conn.execute(stmt).mappings()]
