"""Module entrypoint for running JuiceTool CLI commands.

Usage: python -m juicetool <command> [options]
"""

from __future__ import annotations

import sys
from typing import Optional

from tools.cli.entity import main as entity_main
from tools.cli.index import main as index_main
from tools.cli.replay import main as replay_main


def print_usage() -> None:
    """Print CLI usage information."""
    print("JuiceTool - Juicebox protocol event indexer")
    print("")
    print("Usage: juicetool <command> [options]")
    print("       python -m juicetool <command> [options]")
    print("")
    print("Commands:")
    print("  replay            Replay an events.jsonl tape into a state.json snapshot")
    print("  index             Index an events.jsonl tape into ClickHouse")
    print("  entity            Print one entity from a snapshot or ClickHouse")
    print("")
    print("Options:")
    print("  -h, --help        Show this help message")
    print("  --version         Show version information")
    print("")
    print("Examples:")
    print("  juicetool replay --events tapes/mainnet/events.jsonl --rates rates.json")
    print("  juicetool entity --state artifacts/juicetool/replays/run/state.json --kind Project --key 2-7")


def print_version() -> None:
    """Print version information."""
    from juicetool import __version__
    print(f"juicetool {__version__}")


def main(argv: Optional[list[str]] = None) -> int:
    """Main CLI entrypoint."""
    if argv is None:
        argv = sys.argv[1:]

    if len(argv) < 1:
        print_usage()
        return 1

    command = argv[0]

    if command in ("-h", "--help"):
        print_usage()
        return 0

    if command in ("-v", "--version"):
        print_version()
        return 0

    if command == "replay":
        return replay_main(argv[1:])
    if command == "index":
        return index_main(argv[1:])
    if command == "entity":
        return entity_main(argv[1:])

    print(f"Unknown command: {command}")
    print_usage()
    return 1


if __name__ == "__main__":
    raise SystemExit(main())
