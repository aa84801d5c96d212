#!/usr/bin/env python3
"""Look up one entity by kind and key.

  python -m juicetool entity --state <RUN_DIR/state.json> --kind Project --key 2-7
  python -m juicetool entity --clickhouse --kind ProtocolTotals --key 1
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Optional

from packages.juicebox.entities import ENTITY_TYPES
from packages.juicebox.store import (
    ClickHouseEntityStore,
    InMemoryEntityStore,
    get_clickhouse_client,
    resolve_clickhouse_database,
)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="juicetool entity",
        description="Print one stored entity as JSON.",
    )
    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument(
        "--state",
        metavar="PATH",
        help="state.json written by `juicetool replay`.",
    )
    source.add_argument(
        "--clickhouse",
        action="store_true",
        help="Read from the ClickHouse entity store.",
    )
    parser.add_argument(
        "--kind",
        required=True,
        choices=sorted(ENTITY_TYPES),
        help="Entity kind.",
    )
    parser.add_argument("--key", required=True, help="Entity key, e.g. 2-7 for a Project.")
    return parser


def main(argv: Optional[list[str]] = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.state:
        state_path = Path(args.state)
        if not state_path.exists():
            print(f"Error: state file not found: {state_path}", file=sys.stderr)
            return 1
        try:
            snapshot = json.loads(state_path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            print(f"Error: {state_path} is not valid JSON: {exc}", file=sys.stderr)
            return 1
        store = InMemoryEntityStore.from_snapshot(snapshot)
    else:
        try:
            store = ClickHouseEntityStore(get_clickhouse_client(), resolve_clickhouse_database())
        except Exception as exc:  # noqa: BLE001
            print(f"Error: could not connect to ClickHouse: {exc}", file=sys.stderr)
            return 1

    entity = store.load(args.kind, args.key)
    if entity is None:
        print(f"Not found: {args.kind} {args.key}", file=sys.stderr)
        return 1

    print(json.dumps(entity.to_dict(), indent=2, sort_keys=True))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
