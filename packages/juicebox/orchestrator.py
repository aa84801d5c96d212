"""Per-event indexing pipeline.

normalize -> read-through enrichment -> aggregation -> commit.

Each event is processed inside its own :class:`StoreTransaction`. Any
failure abandons that event's writes (and only that event's), is logged
with enough context to diagnose it, and never stops the stream.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Optional, Union

from .aggregation import AggregationEngine, ApplyStatus
from .config import IndexerConfig
from .enrichment import Enrichment, price_event
from .errors import IndexingError, MissingConfigError
from .events import CanonicalEvent, RawEvent
from .ids import id_for_collection
from .nft import fetch_collection_data, registration_for
from .normalizer import normalize
from .prices import NO_RATES, PriceOracle, RateTableOracle
from .read_through import RpcContractReader, Tiered721Reader
from .registry import DataSourceRegistry, RegistrationSink
from .rpc import JsonRpcClient
from .schema import EntityKind, EventKind
from .store import EntityStore, StoreTransaction

logger = logging.getLogger(__name__)


class ProcessStatus:
    COMMITTED = "committed"
    DUPLICATE = "duplicate"
    SKIPPED = "skipped"
    ABANDONED = "abandoned"


@dataclass(frozen=True)
class ProcessOutcome:
    seq: int
    source: str
    name: str
    status: str
    kind: str = ""
    record_key: str = ""
    writes: int = 0
    reason: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "seq": self.seq,
            "source": self.source,
            "name": self.name,
            "status": self.status,
            "kind": self.kind,
            "record_key": self.record_key,
            "writes": self.writes,
            "reason": self.reason,
        }


_STATUS_BY_APPLY = {
    ApplyStatus.APPLIED: ProcessStatus.COMMITTED,
    ApplyStatus.DUPLICATE: ProcessStatus.DUPLICATE,
    ApplyStatus.SKIPPED: ProcessStatus.SKIPPED,
}


class Indexer:
    """Drives one event at a time through the pipeline.

    Events must arrive in chain order (block number, then log index).
    An out-of-order arrival is logged but still processed; ordering
    dependencies it breaks surface as abandoned events.
    """

    def __init__(
        self,
        store: EntityStore,
        oracle: PriceOracle = NO_RATES,
        tiered721: Optional[Tiered721Reader] = None,
        tiered721_store: str = "",
        registry: Optional[RegistrationSink] = None,
        engine: Optional[AggregationEngine] = None,
    ):
        self.store = store
        self.oracle = oracle
        self.tiered721 = tiered721
        self.tiered721_store = tiered721_store
        self.registry = registry if registry is not None else DataSourceRegistry()
        self.engine = engine if engine is not None else AggregationEngine()
        self._last_position: Optional[tuple[int, int]] = None

    @classmethod
    def from_config(
        cls,
        config: IndexerConfig,
        store: EntityStore,
        registry: Optional[RegistrationSink] = None,
    ) -> "Indexer":
        client = JsonRpcClient(
            config.rpc_url,
            timeout=config.rpc_timeout,
            max_retries=config.rpc_max_retries,
        )
        oracle = RateTableOracle.from_path(config.rates_path) if config.rates_path else NO_RATES
        return cls(
            store,
            oracle=oracle,
            tiered721=Tiered721Reader(RpcContractReader(client)),
            tiered721_store=config.tiered721_store_3_2,
            registry=registry,
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def process(self, raw: Union[RawEvent, Mapping[str, Any]]) -> ProcessOutcome:
        """Index one delivered event; never raises."""
        if not isinstance(raw, RawEvent):
            try:
                raw = RawEvent.from_dict(raw)
            except (KeyError, ValueError, TypeError) as exc:
                logger.error("Abandoned undecodable event envelope: %s", exc)
                return ProcessOutcome(
                    seq=0,
                    source=str(raw.get("source", "")) if isinstance(raw, Mapping) else "",
                    name=str(raw.get("name", "")) if isinstance(raw, Mapping) else "",
                    status=ProcessStatus.ABANDONED,
                    reason=f"bad envelope: {exc}",
                )

        self._check_order(raw)
        txn = StoreTransaction(self.store)
        kind = ""
        try:
            event = normalize(raw)
            kind = event.kind.value
            if event.kind == EventKind.DELEGATE_DEPLOYED:
                self.registry.publish(registration_for(event))
            enrichment = self._enrich(event, txn)
            result = self.engine.apply(event, enrichment, txn)
            writes = txn.commit()
        except IndexingError as exc:
            txn.rollback()
            logger.error(
                "Abandoned %s.%s at block %d (%s:%d): %s: %s",
                raw.source,
                raw.name,
                raw.block_number,
                raw.tx_hash,
                raw.log_index,
                type(exc).__name__,
                exc,
            )
            return self._outcome(
                raw, ProcessStatus.ABANDONED, kind, reason=f"{type(exc).__name__}: {exc}"
            )
        except Exception as exc:
            txn.rollback()
            logger.exception(
                "Unexpected failure on %s.%s at block %d (%s:%d)",
                raw.source,
                raw.name,
                raw.block_number,
                raw.tx_hash,
                raw.log_index,
            )
            return self._outcome(
                raw, ProcessStatus.ABANDONED, kind, reason=f"{type(exc).__name__}: {exc}"
            )

        logger.debug(
            "%s.%s at %s:%d -> %s (%d writes)",
            raw.source,
            raw.name,
            raw.tx_hash,
            raw.log_index,
            result.status,
            writes,
        )
        return self._outcome(
            raw,
            _STATUS_BY_APPLY[result.status],
            kind,
            record_key=result.record_key,
            writes=writes,
            reason=result.reason,
        )

    def run(self, events: Iterable[Union[RawEvent, Mapping[str, Any]]]) -> list[ProcessOutcome]:
        """Process ``events`` in order and return one outcome per event."""
        return [self.process(raw) for raw in events]

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _check_order(self, raw: RawEvent) -> None:
        position = (raw.block_number, raw.log_index)
        if self._last_position is not None and position < self._last_position:
            logger.warning(
                "Event %s.%s at block %d log %d arrived after block %d log %d",
                raw.source,
                raw.name,
                position[0],
                position[1],
                *self._last_position,
            )
        self._last_position = position

    def _enrich(self, event: CanonicalEvent, txn: StoreTransaction) -> Enrichment:
        """Run the external reads ``event`` needs, and only those."""
        if event.kind != EventKind.DELEGATE_DEPLOYED:
            return Enrichment(prices=price_event(event, self.oracle))

        if not event.creates_collection:
            return Enrichment()
        if txn.exists(EntityKind.COLLECTION, id_for_collection(event.delegate)):
            return Enrichment()
        if self.tiered721 is None:
            raise MissingConfigError("no contract reader configured for collection reads")
        return Enrichment(
            collection=fetch_collection_data(event, self.tiered721, self.tiered721_store)
        )

    @staticmethod
    def _outcome(
        raw: RawEvent,
        status: str,
        kind: str,
        record_key: str = "",
        writes: int = 0,
        reason: str = "",
    ) -> ProcessOutcome:
        return ProcessOutcome(
            seq=raw.seq,
            source=raw.source,
            name=raw.name,
            status=status,
            kind=kind,
            record_key=record_key,
            writes=writes,
            reason=reason,
        )
