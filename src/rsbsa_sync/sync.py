"""Drives change-log pages through resolve, transform and upsert."""

from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Dict, Iterable, List, Optional

from sqlalchemy.engine import Engine

from .changelog import ChangeLogReader
from .errors import DataAccessError, SyncError, TransferError
from .models import (ERROR_SAMPLE_SIZE, RESULT_ERROR_LIMIT, ChangeLogEntry,
                     FailureRecord, GroupOutcome, SkipRecord, SyncConfig,
                     SyncResult)
from .persistence import TargetWriter
from .resolver import SourceResolver
from .schema import get_table_spec, lanes
from .transform import transform
from .utils import sample, unique

LOGGER = logging.getLogger("rsbsa_sync.sync")


@dataclass
class TransferBatch:
    """Change-log entries of one page grouped by table, then by entity key."""

    groups: Dict[str, Dict[str, List[ChangeLogEntry]]] = field(default_factory=dict)
    skipped: List[SkipRecord] = field(default_factory=list)

    @property
    def tables(self) -> List[str]:
        return list(self.groups)

    def keys(self, table: str) -> List[str]:
        return list(self.groups.get(table, {}))


@dataclass
class PageOutcome:
    processed: int = 0
    skipped: int = 0
    failures: List[FailureRecord] = field(default_factory=list)
    warnings: List[SkipRecord] = field(default_factory=list)

    def add(self, outcome: GroupOutcome) -> None:
        self.processed += outcome.processed
        self.skipped += outcome.skipped
        self.failures.extend(outcome.failures)
        self.warnings.extend(outcome.warnings)


def group_entries(entries: Iterable[ChangeLogEntry]) -> TransferBatch:
    """Partition a page by table and entity key.

    Incomplete entries and entries naming a table outside the registry are
    recorded as skips and never reach the resolver.
    """
    batch = TransferBatch()
    for entry in entries:
        if not entry.is_complete:
            batch.skipped.append(
                SkipRecord(
                    reason="Skipped due to missing table or RSBSA number",
                    table=entry.table_name,
                    entity_key=entry.entity_key,
                    log_id=entry.log_id,
                )
            )
            continue
        if get_table_spec(entry.table_name) is None:
            batch.skipped.append(
                SkipRecord(
                    reason=f"No table definition for {entry.table_name}",
                    table=entry.table_name,
                    entity_key=entry.entity_key,
                    log_id=entry.log_id,
                )
            )
            continue
        by_key = batch.groups.setdefault(entry.table_name, {})
        by_key.setdefault(entry.entity_key, []).append(entry)
    return batch


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SyncEngine:
    """Single-pass batched synchronization from the registry to the hub.

    The engine keeps no state between ``run_once`` calls and is not
    reentrant; callers guarantee one run at a time.
    """

    def __init__(
        self,
        reader: ChangeLogReader,
        resolver: SourceResolver,
        writer: TargetWriter,
        config: Optional[SyncConfig] = None,
        clock: Callable[[], datetime] = _utcnow,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._reader = reader
        self._resolver = resolver
        self._writer = writer
        self._config = config or SyncConfig()
        self._clock = clock
        self._sleep = sleep

    @classmethod
    def from_engines(
        cls, source: Engine, target: Engine, config: Optional[SyncConfig] = None
    ) -> "SyncEngine":
        config = config or SyncConfig()
        return cls(
            reader=ChangeLogReader(source, include_incomplete=config.include_incomplete),
            resolver=SourceResolver(source, chunk_size=config.resolve_chunk_size),
            writer=TargetWriter(
                target,
                bulk_upsert=config.bulk_upsert,
                chunk_size=config.resolve_chunk_size,
            ),
            config=config,
        )

    def run_once(self) -> SyncResult:
        start_time = self._clock()
        page_size = self._config.page_size
        processed = skipped = 0
        failures: List[FailureRecord] = []

        try:
            total = self._reader.count_pending()
            LOGGER.info("Starting RSBSA sync. Total records: %s", total)
            if total == 0:
                LOGGER.info("No records to process for RSBSA sync")
                return SyncResult(start_time=start_time, end_time=self._clock())

            offset = 0
            last_progress = -1
            while offset < total:
                LOGGER.info(
                    "Processing batch: %s to %s",
                    offset,
                    min(offset + page_size - 1, total - 1),
                )
                page = self._reader.fetch_page(offset, page_size)
                if not page:
                    break

                outcome = self.process_page(page)
                processed += outcome.processed
                skipped += outcome.skipped
                failures.extend(outcome.failures)
                offset += page_size

                progress = min(round(offset / total * 100), 100)
                if progress > last_progress:
                    LOGGER.info(
                        "Progress: %s%% (%s/%s)", progress, min(offset, total), total
                    )
                    last_progress = progress

                if offset < total and self._config.page_pause > 0:
                    self._sleep(self._config.page_pause)
        except SyncError:
            LOGGER.exception("RSBSA sync failed")
            raise

        LOGGER.info(
            "RSBSA sync completed. Total Processed: %s, Total Skipped: %s",
            processed,
            skipped,
        )
        return SyncResult(
            processed=processed,
            skipped=skipped,
            failed=len(failures),
            start_time=start_time,
            end_time=self._clock(),
            errors=[failure.as_dict() for failure in failures[:RESULT_ERROR_LIMIT]],
        )

    def process_page(self, entries: List[ChangeLogEntry]) -> PageOutcome:
        batch = group_entries(entries)
        page = PageOutcome(skipped=len(batch.skipped), warnings=list(batch.skipped))

        for outcome in self._run_groups(batch):
            page.add(outcome)

        self._summarize(page, len(entries))
        return page

    def _run_groups(self, batch: TransferBatch) -> List[GroupOutcome]:
        tables = batch.tables
        concurrency = self._config.table_concurrency
        if concurrency <= 1 or len(tables) <= 1:
            return [self.process_group(table, batch.keys(table)) for table in tables]

        table_lanes = lanes(tables)
        by_table: Dict[str, GroupOutcome] = {}
        with ThreadPoolExecutor(
            max_workers=min(concurrency, len(table_lanes)),
            thread_name_prefix="rsbsa-sync",
        ) as pool:
            futures = [pool.submit(self._run_lane, lane, batch) for lane in table_lanes]
            for future in futures:
                for outcome in future.result():
                    by_table[outcome.table] = outcome
        return [by_table[table] for table in tables]

    def _run_lane(self, lane: List[str], batch: TransferBatch) -> List[GroupOutcome]:
        return [self.process_group(table, batch.keys(table)) for table in lane]

    def process_group(self, table: str, entity_keys: List[str]) -> GroupOutcome:
        """Resolve, transform and upsert one table-group; failures stay local."""
        outcome = GroupOutcome(table=table)
        spec = get_table_spec(table)
        if spec is None:
            outcome.skipped += len(entity_keys)
            outcome.warnings.extend(
                SkipRecord(reason=f"No table definition for {table}", table=table, entity_key=key)
                for key in entity_keys
            )
            return outcome

        try:
            rows = self._resolver.resolve(table, entity_keys)
            if not rows:
                outcome.skipped += len(entity_keys)
                outcome.warnings.extend(
                    SkipRecord(
                        reason=f"No source data for RSBSA {key} in {table}",
                        table=table,
                        entity_key=key,
                    )
                    for key in entity_keys
                )
                return outcome

            outcome.processed += self._writer.upsert(
                table, [transform(table, row) for row in rows]
            )
            for cascade in spec.cascades:
                outcome.processed += self._transfer_cascade(cascade, rows)
        except (DataAccessError, TransferError) as exc:
            outcome.skipped += len(entity_keys)
            outcome.failures.extend(
                FailureRecord(table=table, entity_key=key, error=str(exc))
                for key in entity_keys
            )
            LOGGER.error("Failed to process batch for table %s: %s", table, exc)
        return outcome

    def _transfer_cascade(self, table: str, parent_rows: List[dict]) -> int:
        spec = get_table_spec(table)
        if spec is None:
            return 0
        ids = unique(row.get(spec.key_column) for row in parent_rows)
        if not ids:
            return 0
        rows = self._resolver.resolve_by(table, spec.key_column, ids)
        if not rows:
            LOGGER.debug("No %s rows found for %s cascaded id(s)", table, len(ids))
            return 0
        return self._writer.upsert(table, [transform(table, row) for row in rows])

    @staticmethod
    def _summarize(page: PageOutcome, entry_count: int) -> None:
        if page.failures:
            LOGGER.error(
                "Batch completed with %s errors (error rate %.2f%%); sample: %s",
                len(page.failures),
                len(page.failures) / max(entry_count, 1) * 100,
                [failure.as_dict() for failure in sample(page.failures, ERROR_SAMPLE_SIZE)],
            )
        if page.warnings:
            LOGGER.warning(
                "Batch had %s warnings; sample: %s",
                len(page.warnings),
                [warning.as_dict() for warning in sample(page.warnings, ERROR_SAMPLE_SIZE)],
            )
