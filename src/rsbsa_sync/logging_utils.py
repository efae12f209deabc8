"""Logging setup helpers using Rich."""

from __future__ import annotations

import logging
from datetime import datetime, tzinfo
from typing import Optional
from zoneinfo import ZoneInfo

from rich.console import Console
from rich.logging import RichHandler
from rich.text import Text

from .models import DEFAULT_TIMEZONE

ROOT_LOGGER = "rsbsa_sync"


def local_timestamp(when: Optional[datetime] = None, zone: Optional[tzinfo] = None) -> str:
    """ISO-8601 timestamp with milliseconds in the configured zone, e.g. ``+08:00``."""
    zone = zone or ZoneInfo(DEFAULT_TIMEZONE)
    moment = when.astimezone(zone) if when is not None else datetime.now(zone)
    return moment.isoformat(timespec="milliseconds")


class ZonedFormatter(logging.Formatter):
    """Plain-text formatter stamping records in a fixed timezone."""

    def __init__(self, zone: tzinfo) -> None:
        super().__init__("[%(asctime)s] %(levelname)s %(name)s: %(message)s")
        self._zone = zone

    def formatTime(self, record: logging.LogRecord, datefmt: Optional[str] = None) -> str:
        return local_timestamp(datetime.fromtimestamp(record.created, self._zone), self._zone)


def setup_logging(
    level: str = "INFO",
    timezone: str = DEFAULT_TIMEZONE,
    log_file: Optional[str] = None,
) -> None:
    """Configure logging to use Rich's console rendering."""
    zone = ZoneInfo(timezone)
    console = Console(stderr=True)
    handler = RichHandler(
        console=console,
        rich_tracebacks=False,
        show_path=False,
        markup=False,
        log_time_format=lambda moment: Text(local_timestamp(moment.astimezone(), zone)),
    )
    handlers: list[logging.Handler] = [handler]
    if log_file:
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(ZonedFormatter(zone))
        handlers.append(file_handler)

    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(message)s",
        handlers=handlers,
        force=True,
    )


def get_logger(name: Optional[str] = None) -> logging.Logger:
    if not name:
        return logging.getLogger(ROOT_LOGGER)
    if name.startswith(ROOT_LOGGER):
        return logging.getLogger(name)
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")
