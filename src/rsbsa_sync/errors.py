"""Exception types raised by the synchronization engine."""

from __future__ import annotations

from typing import Iterable, Optional, Tuple


class SyncError(Exception):
    """Base exception for RSBSA synchronization errors."""


class ConfigurationError(SyncError):
    """Raised when the environment does not describe a usable setup."""


class DataAccessError(SyncError):
    """Raised when a query against the source or target store fails."""


class TransferError(SyncError):
    """Raised when a table-group transaction was rolled back."""

    def __init__(
        self,
        table: str,
        entity_keys: Iterable[str],
        cause: Optional[BaseException] = None,
    ) -> None:
        self.table = table
        self.entity_keys: Tuple[str, ...] = tuple(entity_keys)
        self.cause = cause
        super().__init__(
            f"Transfer into {table} failed for {len(self.entity_keys)} key(s): {cause}"
        )


class RunInProgressError(SyncError):
    """Raised when a run is triggered while another one is still active."""
