"""Deterministic replay of a raw-event tape into an entity snapshot.

Reads an events.jsonl tape (see :mod:`.schema` for the envelope), drives
an :class:`Indexer` over an in-memory store in arrival order (sorted by
seq), and writes:

  state.json          every entity, kinds and keys sorted
  outcomes.jsonl      one row per event (status, record key, writes)
  registrations.json  data sources the run asked to listen to
  meta.json           run quality summary + warning log

Run quality is "ok" when no event was abandoned; "warnings" otherwise.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Optional

from .orchestrator import Indexer, ProcessStatus
from .prices import NO_RATES, PriceOracle
from .read_through import Tiered721Reader
from .registry import DataSourceRegistry
from .store import InMemoryEntityStore

logger = logging.getLogger(__name__)


class ReplayError(RuntimeError):
    """Raised in strict mode when a replayed event is abandoned."""


def load_tape(events_path: Path) -> list[dict]:
    """Load events.jsonl and sort by seq; malformed lines are skipped."""
    events: list[dict] = []
    with open(events_path, "rb") as fh:
        for lineno, raw_line in enumerate(fh, start=1):
            try:
                line = raw_line.decode("utf-8-sig").strip()
            except UnicodeDecodeError as exc:
                logger.warning("Skipping undecodable line %d in %s: %s", lineno, events_path, exc)
                continue
            if not line:
                continue
            try:
                row = json.loads(line)
            except json.JSONDecodeError as exc:
                logger.warning("Skipping malformed line %d in %s: %s", lineno, events_path, exc)
                continue
            if not isinstance(row, dict):
                logger.warning("Skipping non-object line %d in %s", lineno, events_path)
                continue
            events.append(row)
    # Stable sort keeps file order for equal seqs.
    events.sort(key=lambda e: e.get("seq", 0))
    return events


class ReplayRunner:
    """Replays a tape from an empty store.

    Determinism guarantee: the same tape and rate table produce
    byte-identical output files, because events are sorted by seq, the
    indexer keeps no state between events, and every JSON file is
    serialized with sorted keys.
    """

    def __init__(
        self,
        events_path: Path,
        run_dir: Path,
        strict: bool = False,
        oracle: PriceOracle = NO_RATES,
        tiered721: Optional[Tiered721Reader] = None,
        tiered721_store: str = "",
    ) -> None:
        """
        Args:
            events_path:     Path to the events.jsonl tape file.
            run_dir:         Directory for output files (created if absent).
            strict:          If True, raise ReplayError on the first abandoned event.
            oracle:          Reference-currency rates.
            tiered721:       Contract reader for collection creation, if any.
            tiered721_store: Tiered 721 delegate store address.
        """
        self.events_path = events_path
        self.run_dir = run_dir
        self.strict = strict
        self.oracle = oracle
        self.tiered721 = tiered721
        self.tiered721_store = tiered721_store

    def run(self) -> Path:
        """Execute the replay and return the path to state.json.

        Raises:
            ValueError: If the tape contains no events.
            ReplayError: In strict mode, if an event is abandoned.
        """
        self.run_dir.mkdir(parents=True, exist_ok=True)

        events = load_tape(self.events_path)
        if not events:
            raise ValueError(f"No events found in {self.events_path}")

        store = InMemoryEntityStore()
        registry = DataSourceRegistry()
        indexer = Indexer(
            store,
            oracle=self.oracle,
            tiered721=self.tiered721,
            tiered721_store=self.tiered721_store,
            registry=registry,
        )

        outcomes = []
        warnings: list[str] = []
        for event in events:
            outcome = indexer.process(event)
            outcomes.append(outcome)
            if outcome.status == ProcessStatus.ABANDONED:
                msg = f"seq={outcome.seq} {outcome.source}.{outcome.name}: {outcome.reason}"
                if self.strict:
                    raise ReplayError(msg)
                warnings.append(msg)

        counts: dict[str, int] = {}
        for outcome in outcomes:
            counts[outcome.status] = counts.get(outcome.status, 0) + 1

        state_path = self.run_dir / "state.json"
        self._write_json(state_path, store.snapshot())
        self._write_json(
            self.run_dir / "registrations.json",
            [r.to_dict() for r in registry.registrations],
        )
        with open(self.run_dir / "outcomes.jsonl", "w", encoding="utf-8") as fh:
            for outcome in outcomes:
                fh.write(json.dumps(outcome.to_dict(), sort_keys=True) + "\n")

        quality = "ok" if not warnings else "warnings"
        meta: dict = {
            "run_quality": quality,
            "events_path": str(self.events_path),
            "total_events": len(events),
            "status_counts": dict(sorted(counts.items())),
            "registrations": len(registry),
            "warnings": warnings[:50],
        }
        self._write_json(self.run_dir / "meta.json", meta)

        logger.info(
            "Replay complete: %d events -> %s  (quality=%s)",
            len(events),
            state_path,
            quality,
        )
        return state_path

    @staticmethod
    def _write_json(path: Path, payload) -> None:
        path.write_text(json.dumps(payload, indent=2, sort_keys=True) + "\n", encoding="utf-8")
