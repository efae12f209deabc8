from __future__ import annotations

import logging
import time
from typing import Optional

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.exc import OperationalError

from .errors import DataAccessError
from .models import DatabaseConfig

LOGGER = logging.getLogger("rsbsa_sync.db")


class DatabaseSession:
    """Manage one bounded SQLAlchemy connection pool."""

    def __init__(self, config: DatabaseConfig, name: str = "database") -> None:
        self._config = config
        self._name = name
        self._engine: Optional[Engine] = None

    def _create_engine(self) -> Engine:
        url = make_url(self._config.url)
        if url.get_backend_name() == "sqlite":
            return create_engine(url, future=True)
        # max_overflow=0: an exhausted pool makes callers wait up to pool_timeout.
        return create_engine(
            url,
            future=True,
            pool_size=self._config.pool_size,
            max_overflow=0,
            pool_timeout=self._config.pool_timeout,
            pool_pre_ping=True,
            pool_recycle=3600,
        )

    def open(self) -> Engine:
        if self._engine is not None:
            return self._engine

        deadline = time.monotonic() + self._config.connect_timeout
        attempts = 0
        engine = self._create_engine()
        while True:
            attempts += 1
            try:
                LOGGER.debug("Connecting to %s (attempt %s)", self._name, attempts)
                with engine.connect() as connection:
                    connection.execute(text("SELECT 1"))
                self._engine = engine
                LOGGER.info("Connected to %s", self._name)
                return engine
            except OperationalError as exc:
                if time.monotonic() >= deadline:
                    engine.dispose()
                    raise DataAccessError(
                        f"Connection to {self._name} timed out"
                    ) from exc
                LOGGER.warning("%s not ready yet (%s), retrying...", self._name, exc)
                time.sleep(min(2 * attempts, 10))

    @property
    def engine(self) -> Engine:
        if self._engine is None:
            raise RuntimeError("Engine not initialised; call open()")
        return self._engine

    def dispose(self) -> None:
        if self._engine is not None:
            self._engine.dispose()
        self._engine = None
