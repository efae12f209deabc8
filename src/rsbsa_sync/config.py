"""Configuration loading for the RSBSA synchronization engine."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional
from urllib.parse import quote_plus

from dotenv import load_dotenv

from .errors import ConfigurationError
from .models import (DEFAULT_DB_CONNECT_TIMEOUT, DEFAULT_DB_DRIVER,
                     DEFAULT_DB_POOL_SIZE, DEFAULT_DB_POOL_TIMEOUT,
                     DEFAULT_DB_PORT, DEFAULT_PAGE_PAUSE, DEFAULT_PAGE_SIZE,
                     DEFAULT_RESOLVE_CHUNK, DEFAULT_SYNC_INTERVAL,
                     DEFAULT_TABLE_CONCURRENCY, DEFAULT_TIMEZONE,
                     DatabaseConfig, SyncConfig)

DRIVER_ALIASES = {
    "mysql://": "mysql+pymysql://",
    "mariadb://": "mysql+pymysql://",
    "postgres://": "postgresql+psycopg://",
    "postgresql://": "postgresql+psycopg://",
}


def _int(value: Optional[str], default: int) -> int:
    try:
        return int(value) if value is not None else default
    except ValueError:
        return default


def _float(value: Optional[str], default: float) -> float:
    try:
        return float(value) if value is not None else default
    except ValueError:
        return default


def _bool(value: Optional[str], default: bool) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def normalize_url(url: str) -> str:
    """Pin bare ``mysql://``/``postgresql://`` URLs to the bundled drivers."""
    for prefix, replacement in DRIVER_ALIASES.items():
        if url.startswith(prefix):
            return replacement + url[len(prefix):]
    return url


def _database_url(prefix: str, driver: str) -> str:
    url = os.getenv(f"{prefix}_DB_URL")
    if url:
        return normalize_url(url)

    host = os.getenv(f"{prefix}_DB_HOST")
    user = os.getenv(f"{prefix}_DB_USER")
    name = os.getenv(f"{prefix}_DB_NAME")
    if not (host and user and name):
        raise ConfigurationError(
            f"{prefix}_DB_URL or {prefix}_DB_HOST, {prefix}_DB_USER and "
            f"{prefix}_DB_NAME environment variables are required"
        )
    password = quote_plus(os.getenv(f"{prefix}_DB_PASSWORD", ""))
    port = _int(os.getenv(f"{prefix}_DB_PORT"), DEFAULT_DB_PORT)
    url = f"{driver}://{quote_plus(user)}:{password}@{host}:{port}/{name}"
    if driver.startswith("mysql"):
        url += "?charset=utf8mb4"
    return url


@dataclass(frozen=True)
class Settings:
    source: DatabaseConfig
    target: DatabaseConfig
    sync: SyncConfig
    interval_seconds: float
    log_level: str
    log_timezone: str
    log_file: Optional[str]

    @classmethod
    def from_env(cls, dotenv: bool = True) -> "Settings":
        if dotenv:
            load_dotenv()

        driver = os.getenv("DB_DRIVER", DEFAULT_DB_DRIVER)
        pool_size = max(1, _int(os.getenv("DB_POOL_SIZE"), DEFAULT_DB_POOL_SIZE))
        pool_timeout = _float(os.getenv("DB_POOL_TIMEOUT"), DEFAULT_DB_POOL_TIMEOUT)
        connect_timeout = _float(
            os.getenv("DB_CONNECT_TIMEOUT"), DEFAULT_DB_CONNECT_TIMEOUT
        )

        def database(prefix: str) -> DatabaseConfig:
            return DatabaseConfig(
                url=_database_url(prefix, driver),
                connect_timeout=connect_timeout,
                pool_size=pool_size,
                pool_timeout=pool_timeout,
            )

        return cls(
            source=database("SOURCE"),
            target=database("TARGET"),
            sync=SyncConfig(
                page_size=max(1, _int(os.getenv("SYNC_PAGE_SIZE"), DEFAULT_PAGE_SIZE)),
                table_concurrency=max(
                    1,
                    _int(os.getenv("SYNC_TABLE_CONCURRENCY"), DEFAULT_TABLE_CONCURRENCY),
                ),
                page_pause=max(0.0, _float(os.getenv("SYNC_PAGE_PAUSE"), DEFAULT_PAGE_PAUSE)),
                resolve_chunk_size=max(
                    1, _int(os.getenv("SYNC_RESOLVE_CHUNK"), DEFAULT_RESOLVE_CHUNK)
                ),
                bulk_upsert=_bool(os.getenv("SYNC_BULK_UPSERT"), True),
                include_incomplete=_bool(
                    os.getenv("CHANGELOG_INCLUDE_INCOMPLETE"), False
                ),
            ),
            interval_seconds=max(
                1.0, _float(os.getenv("SYNC_INTERVAL_SECONDS"), DEFAULT_SYNC_INTERVAL)
            ),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            log_timezone=os.getenv("LOG_TIMEZONE", DEFAULT_TIMEZONE),
            log_file=os.getenv("LOG_FILE") or None,
        )
