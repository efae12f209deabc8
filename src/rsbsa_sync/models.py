from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

DEFAULT_DB_DRIVER = "mysql+pymysql"
DEFAULT_DB_PORT = 3306
DEFAULT_DB_POOL_SIZE = 10
DEFAULT_DB_POOL_TIMEOUT = 30.0
DEFAULT_DB_CONNECT_TIMEOUT = 10.0
DEFAULT_PAGE_SIZE = 50000
DEFAULT_TABLE_CONCURRENCY = 1
DEFAULT_PAGE_PAUSE = 0.1
DEFAULT_RESOLVE_CHUNK = 1000
DEFAULT_SYNC_INTERVAL = 60.0
DEFAULT_TIMEZONE = "Asia/Manila"
ERROR_SAMPLE_SIZE = 5
RESULT_ERROR_LIMIT = 100


@dataclass(frozen=True)
class DatabaseConfig:
    url: str
    connect_timeout: float = DEFAULT_DB_CONNECT_TIMEOUT
    pool_size: int = DEFAULT_DB_POOL_SIZE
    pool_timeout: float = DEFAULT_DB_POOL_TIMEOUT


@dataclass(frozen=True)
class SyncConfig:
    page_size: int = DEFAULT_PAGE_SIZE
    table_concurrency: int = DEFAULT_TABLE_CONCURRENCY
    page_pause: float = DEFAULT_PAGE_PAUSE
    resolve_chunk_size: int = DEFAULT_RESOLVE_CHUNK
    bulk_upsert: bool = True
    include_incomplete: bool = False


class ChangeLogEntry(BaseModel):
    """One row of the ``etl_logger_profiling`` change log."""

    log_id: int
    entity_key: Optional[str] = Field(default=None, alias="rsbsa_no")
    table_name: Optional[str] = Field(default=None, alias="table")

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    @field_validator("entity_key", "table_name", mode="before")
    @classmethod
    def _blank_to_none(cls, value: Any) -> Optional[str]:
        if value is None:
            return None
        text = str(value).strip()
        return text or None

    @property
    def is_complete(self) -> bool:
        return self.entity_key is not None and self.table_name is not None


@dataclass(frozen=True)
class SkipRecord:
    reason: str
    table: Optional[str] = None
    entity_key: Optional[str] = None
    log_id: Optional[int] = None

    def as_dict(self) -> Dict[str, Any]:
        return {k: v for k, v in self.__dict__.items() if v is not None}


@dataclass(frozen=True)
class FailureRecord:
    table: str
    entity_key: str
    error: str

    def as_dict(self) -> Dict[str, Any]:
        return {"table": self.table, "entity_key": self.entity_key, "error": self.error}


@dataclass
class GroupOutcome:
    """Counts produced by one table-group."""

    table: str
    processed: int = 0
    skipped: int = 0
    failures: List[FailureRecord] = field(default_factory=list)
    warnings: List[SkipRecord] = field(default_factory=list)


class SyncResult(BaseModel):
    processed: int = 0
    skipped: int = 0
    failed: int = 0
    start_time: datetime
    end_time: datetime
    errors: List[Dict[str, Any]] = Field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return self.processed == 0 and self.skipped == 0
