#!/usr/bin/env python3
"""Index a raw-event tape into the ClickHouse entity store.

  python -m juicetool index --events <PATH/events.jsonl> [--config indexer.json]

Unlike ``replay``, state persists across runs: re-indexing the same tape
is a no-op because every event is recognised as already applied.
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Optional

from packages.juicebox.config import load_indexer_config
from packages.juicebox.errors import ConfigLoadError
from packages.juicebox.orchestrator import Indexer, ProcessStatus
from packages.juicebox.registry import DataSourceRegistry
from packages.juicebox.replay import load_tape
from packages.juicebox.store import (
    ClickHouseEntityStore,
    get_clickhouse_client,
    resolve_clickhouse_database,
)

logger = logging.getLogger(__name__)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="juicetool index",
        description="Index an events.jsonl tape into ClickHouse.",
    )
    parser.add_argument(
        "--events",
        required=True,
        metavar="PATH",
        help="Path to the events.jsonl tape file.",
    )
    parser.add_argument(
        "--config",
        default=None,
        metavar="PATH",
        help="Indexer config JSON (overrides JUICETOOL_* environment variables).",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging verbosity (default: INFO).",
    )
    return parser


def main(argv: Optional[list[str]] = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    events_path = Path(args.events)
    if not events_path.exists():
        print(f"Error: tape file not found: {events_path}", file=sys.stderr)
        return 1

    try:
        config = load_indexer_config(config_path=args.config)
    except ConfigLoadError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    try:
        store = ClickHouseEntityStore(get_clickhouse_client(), resolve_clickhouse_database())
        store.ensure_schema()
    except Exception as exc:  # noqa: BLE001
        print(f"Error: could not connect to ClickHouse: {exc}", file=sys.stderr)
        return 1

    try:
        registry = DataSourceRegistry()
        indexer = Indexer.from_config(config, store, registry=registry)
    except ConfigLoadError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    events = load_tape(events_path)
    outcomes = indexer.run(events)
    abandoned = [o for o in outcomes if o.status == ProcessStatus.ABANDONED]
    committed = sum(1 for o in outcomes if o.status == ProcessStatus.COMMITTED)

    logger.info(
        "Indexed %d events: %d committed, %d abandoned, %d registrations",
        len(outcomes),
        committed,
        len(abandoned),
        len(registry),
    )
    for outcome in abandoned[:20]:
        print(f"  abandoned seq={outcome.seq} {outcome.source}.{outcome.name}: {outcome.reason}")
    return 0 if not abandoned else 2


if __name__ == "__main__":
    raise SystemExit(main())
