#!/usr/bin/env python3
"""Replay a raw-event tape into an entity snapshot.

  python -m juicetool replay --events <PATH/events.jsonl> [--out DIR] [--rates rates.json]
  python -m juicetool replay --events <PATH/events.jsonl> --read-through --config indexer.json
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from packages.juicebox.config import load_indexer_config
from packages.juicebox.errors import ConfigLoadError
from packages.juicebox.prices import NO_RATES, RateTableOracle
from packages.juicebox.read_through import RpcContractReader, Tiered721Reader
from packages.juicebox.replay import ReplayRunner
from packages.juicebox.rpc import JsonRpcClient

DEFAULT_ARTIFACTS_DIR = Path("artifacts/juicetool")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="juicetool replay",
        description="Replay an events.jsonl tape deterministically and write state.json.",
    )
    parser.add_argument(
        "--events",
        required=True,
        metavar="PATH",
        help="Path to the events.jsonl tape file.",
    )
    parser.add_argument(
        "--out",
        default=None,
        metavar="DIR",
        help="Output directory (default: artifacts/juicetool/replays/<timestamp>/).",
    )
    parser.add_argument(
        "--config",
        default=None,
        metavar="PATH",
        help="Indexer config JSON (overrides JUICETOOL_* environment variables).",
    )
    parser.add_argument(
        "--rates",
        default=None,
        metavar="PATH",
        help="Reference-currency rate table JSON (overrides rates_path from config).",
    )
    parser.add_argument(
        "--read-through",
        action="store_true",
        default=False,
        help="Allow JSON-RPC reads for collection creation (off by default for offline replays).",
    )
    parser.add_argument(
        "--strict",
        action="store_true",
        default=False,
        help="Stop at the first abandoned event instead of recording a warning.",
    )
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging verbosity (default: WARNING).",
    )
    return parser


def main(argv: Optional[list[str]] = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(levelname)s %(name)s: %(message)s",
    )

    events_path = Path(args.events)
    if not events_path.exists():
        print(f"Error: tape file not found: {events_path}", file=sys.stderr)
        return 1

    try:
        config = load_indexer_config(config_path=args.config)
        rates_path = args.rates or config.rates_path
        oracle = RateTableOracle.from_path(rates_path) if rates_path else NO_RATES
    except ConfigLoadError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    tiered721 = None
    if args.read_through:
        client = JsonRpcClient(
            config.rpc_url,
            timeout=config.rpc_timeout,
            max_retries=config.rpc_max_retries,
        )
        tiered721 = Tiered721Reader(RpcContractReader(client))

    if args.out:
        run_dir = Path(args.out)
    else:
        run_id = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")
        run_dir = DEFAULT_ARTIFACTS_DIR / "replays" / run_id

    print(f"[juicetool replay] tape    : {events_path}", file=sys.stderr)
    print(f"[juicetool replay] run dir : {run_dir}", file=sys.stderr)
    print(f"[juicetool replay] rates   : {rates_path or '(none)'}", file=sys.stderr)
    print(f"[juicetool replay] strict  : {args.strict}", file=sys.stderr)

    runner = ReplayRunner(
        events_path=events_path,
        run_dir=run_dir,
        strict=args.strict,
        oracle=oracle,
        tiered721=tiered721,
        tiered721_store=config.tiered721_store_3_2,
    )

    try:
        state_path = runner.run()
    except Exception as exc:  # noqa: BLE001
        print(f"Error during replay: {exc}", file=sys.stderr)
        return 1

    meta = json.loads((run_dir / "meta.json").read_text(encoding="utf-8"))
    print(f"Replay complete: {state_path}")
    print(f"  quality : {meta['run_quality']}")
    for status, count in meta["status_counts"].items():
        print(f"  {status:<9}: {count}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
