from __future__ import annotations

import argparse
import json
import sys
from typing import Optional, Sequence

from .config import Settings
from .db_connector import DatabaseSession
from .errors import ConfigurationError, DataAccessError
from .logging_utils import get_logger, setup_logging
from .models import SyncResult
from .runner import SyncRunner
from .sync import SyncEngine

LOGGER = get_logger()


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="rsbsa-sync",
        description="Synchronize RSBSA farmer-registry records into the aggregation hub.",
    )
    parser.add_argument(
        "--run-now",
        action="store_true",
        help="run a single pass and exit instead of scheduling periodic runs",
    )
    parser.add_argument(
        "--interval",
        type=float,
        default=None,
        help="seconds between scheduled runs (default: SYNC_INTERVAL_SECONDS)",
    )
    return parser.parse_args(argv)


def _print_result(result: SyncResult) -> None:
    print(json.dumps(result.model_dump(mode="json"), indent=2))


def main(argv: Optional[Sequence[str]] = None) -> None:
    args = parse_args(argv)
    try:
        settings = Settings.from_env()
    except ConfigurationError as exc:
        setup_logging()
        LOGGER.error("Configuration error: %s", exc)
        print(f"Configuration error: {exc}", file=sys.stderr)
        sys.exit(1)

    setup_logging(settings.log_level, settings.log_timezone, settings.log_file)

    source = DatabaseSession(settings.source, name="source database")
    target = DatabaseSession(settings.target, name="target database")
    try:
        engine = SyncEngine.from_engines(source.open(), target.open(), settings.sync)
        runner = SyncRunner(engine)
        if args.run_now:
            _print_result(runner.trigger())
        else:
            try:
                runner.serve(args.interval or settings.interval_seconds)
            except KeyboardInterrupt:
                runner.stop()
    except DataAccessError as exc:
        LOGGER.exception("Database error")
        print(f"Database error: {exc}", file=sys.stderr)
        sys.exit(2)
    except Exception as exc:  # pragma: no cover - guard for CLI usage
        LOGGER.exception("Sync failed")
        print(f"Sync failed: {exc}", file=sys.stderr)
        sys.exit(3)
    finally:
        source.dispose()
        target.dispose()


if __name__ == "__main__":
    main()
