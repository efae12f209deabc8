"""Batched synchronization of RSBSA farmer-registry records into the aggregation hub."""

from .errors import (ConfigurationError, DataAccessError, RunInProgressError,
                     SyncError, TransferError)
from .models import ChangeLogEntry, SyncResult
from .sync import SyncEngine

__all__ = [
    "ChangeLogEntry",
    "ConfigurationError",
    "DataAccessError",
    "RunInProgressError",
    "SyncEngine",
    "SyncError",
    "SyncResult",
    "TransferError",
]

__version__ = "1.0.0"
