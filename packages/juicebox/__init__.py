"""Juicebox protocol event indexing core."""

from .aggregation import AggregationEngine, ApplyResult, ApplyStatus
from .config import IndexerConfig, load_indexer_config
from .errors import (
    ConfigLoadError,
    IndexingError,
    MissingConfigError,
    NormalizationError,
    OrderingViolation,
    ReadThroughError,
    RecordConflict,
)
from .events import CanonicalEvent, RawEvent
from .normalizer import normalize
from .orchestrator import Indexer, ProcessOutcome, ProcessStatus
from .prices import NO_RATES, RateTableOracle, WithRate, WithoutRate
from .registry import DataSourceRegistration, DataSourceRegistry
from .replay import ReplayRunner
from .store import ClickHouseEntityStore, InMemoryEntityStore, StoreTransaction

__all__ = [
    "AggregationEngine",
    "ApplyResult",
    "ApplyStatus",
    "IndexerConfig",
    "load_indexer_config",
    "ConfigLoadError",
    "IndexingError",
    "MissingConfigError",
    "NormalizationError",
    "OrderingViolation",
    "ReadThroughError",
    "RecordConflict",
    "CanonicalEvent",
    "RawEvent",
    "normalize",
    "Indexer",
    "ProcessOutcome",
    "ProcessStatus",
    "NO_RATES",
    "RateTableOracle",
    "WithRate",
    "WithoutRate",
    "DataSourceRegistration",
    "DataSourceRegistry",
    "ReplayRunner",
    "ClickHouseEntityStore",
    "InMemoryEntityStore",
    "StoreTransaction",
]
