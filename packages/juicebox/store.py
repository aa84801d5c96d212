"""Entity store adapters and the per-event unit of work.

The core only needs load-by-key and upsert-by-key with whole-entity
writes. :class:`StoreTransaction` stages every write of one event and
hands them to the store in a single :meth:`EntityStore.upsert_many` call,
so an event's aggregate updates, record and timeline entry land together
or not at all.
"""

from __future__ import annotations

import json
import logging
import os
import time
from typing import Iterable, Optional, Protocol

import clickhouse_connect

from .entities import Entity, entity_from_dict

logger = logging.getLogger(__name__)

DEFAULT_CLICKHOUSE_USER = "juicetool_admin"
DEFAULT_CLICKHOUSE_PASSWORD = "juicetool_admin"
DEFAULT_CLICKHOUSE_DATABASE = "juicetool"

StagedWrite = tuple[str, str, Entity]


class EntityStore(Protocol):
    def load(self, kind: str, key: str) -> Optional[Entity]:
        ...

    def upsert(self, kind: str, key: str, entity: Entity) -> None:
        ...

    def upsert_many(self, writes: Iterable[StagedWrite]) -> None:
        """Apply every write, all-or-nothing."""
        ...


def _check_write(kind: str, key: str, entity: Entity) -> None:
    if entity.kind != kind:
        raise ValueError(f"entity kind {entity.kind!r} written under {kind!r}")
    if entity.id != key:
        raise ValueError(f"entity id {entity.id!r} written under key {key!r}")


class InMemoryEntityStore:
    """Dict-backed store for tests and tape replays.

    Thread-safety: not thread-safe; designed for single-threaded indexing.
    """

    def __init__(self) -> None:
        self._data: dict[str, dict[str, dict]] = {}

    def load(self, kind: str, key: str) -> Optional[Entity]:
        data = self._data.get(kind, {}).get(key)
        if data is None:
            return None
        return entity_from_dict(kind, dict(data))

    def upsert(self, kind: str, key: str, entity: Entity) -> None:
        _check_write(kind, key, entity)
        self._data.setdefault(kind, {})[key] = entity.to_dict()

    def upsert_many(self, writes: Iterable[StagedWrite]) -> None:
        writes = list(writes)
        for kind, key, entity in writes:
            _check_write(kind, key, entity)
        for kind, key, entity in writes:
            self._data.setdefault(kind, {})[key] = entity.to_dict()

    def keys(self, kind: str) -> list[str]:
        return sorted(self._data.get(kind, {}))

    def count(self, kind: str) -> int:
        return len(self._data.get(kind, {}))

    def snapshot(self) -> dict[str, dict[str, dict]]:
        """All entities, kinds and keys sorted, as JSON-ready dicts."""
        return {
            kind: {key: dict(self._data[kind][key]) for key in sorted(self._data[kind])}
            for kind in sorted(self._data)
            if self._data[kind]
        }

    @classmethod
    def from_snapshot(cls, snapshot: dict[str, dict[str, dict]]) -> "InMemoryEntityStore":
        store = cls()
        for kind, rows in snapshot.items():
            for key, data in rows.items():
                store.upsert(kind, key, entity_from_dict(kind, dict(data)))
        return store


class StoreTransaction:
    """Unit of work for a single event.

    Loads see writes staged earlier in the same transaction. Nothing
    reaches the store until :meth:`commit`; an abandoned transaction is
    simply dropped.
    """

    def __init__(self, store: EntityStore):
        self._store = store
        self._staged: dict[tuple[str, str], Entity] = {}

    def load(self, kind: str, key: str) -> Optional[Entity]:
        staged = self._staged.get((kind, key))
        if staged is not None:
            return entity_from_dict(kind, staged.to_dict())
        return self._store.load(kind, key)

    def exists(self, kind: str, key: str) -> bool:
        return self.load(kind, key) is not None

    def upsert(self, entity: Entity) -> None:
        self._staged[(entity.kind, entity.id)] = entity_from_dict(entity.kind, entity.to_dict())

    def create(self, entity: Entity) -> bool:
        """Stage a write-once entity; an existing one is never overwritten.

        Returns:
            False (and logs) if an entity already exists under the key.
        """
        if self.exists(entity.kind, entity.id):
            logger.warning(
                "Write-once %s %s already exists; keeping the original",
                entity.kind,
                entity.id,
            )
            return False
        self.upsert(entity)
        return True

    @property
    def pending(self) -> int:
        return len(self._staged)

    def commit(self) -> int:
        """Flush every staged write in one batch and return how many there were."""
        writes = [(kind, key, entity) for (kind, key), entity in self._staged.items()]
        if writes:
            self._store.upsert_many(writes)
        self._staged.clear()
        return len(writes)

    def rollback(self) -> None:
        self._staged.clear()


# ---------------------------------------------------------------------------
# ClickHouse
# ---------------------------------------------------------------------------

ENTITIES_DDL = """
CREATE TABLE IF NOT EXISTS {database}.entities
(
    kind LowCardinality(String),
    key String,
    data String,
    version UInt64,
    ingested_at DateTime64(3) DEFAULT now64(3)
)
ENGINE = ReplacingMergeTree(version)
ORDER BY (kind, key)
"""


def _running_in_docker() -> bool:
    """Return True when executing inside a Docker container."""
    if os.environ.get("JUICETOOL_IN_DOCKER") == "1":
        return True
    return os.path.exists("/.dockerenv")


def _resolve_clickhouse_host() -> str:
    host = os.environ.get("CLICKHOUSE_HOST")
    if host:
        return host
    return "clickhouse" if _running_in_docker() else "localhost"


def _resolve_clickhouse_port() -> int:
    port = os.environ.get("CLICKHOUSE_PORT") or os.environ.get("CLICKHOUSE_HTTP_PORT")
    return int(port) if port else 8123


def resolve_clickhouse_database() -> str:
    return (
        os.environ.get("CLICKHOUSE_DATABASE")
        or os.environ.get("CLICKHOUSE_DB")
        or DEFAULT_CLICKHOUSE_DATABASE
    )


def get_clickhouse_client():
    return clickhouse_connect.get_client(
        host=_resolve_clickhouse_host(),
        port=_resolve_clickhouse_port(),
        username=os.getenv("CLICKHOUSE_USER", DEFAULT_CLICKHOUSE_USER),
        password=os.getenv("CLICKHOUSE_PASSWORD", DEFAULT_CLICKHOUSE_PASSWORD),
        database=resolve_clickhouse_database(),
    )


class ClickHouseEntityStore:
    """Entities as JSON documents in one ReplacingMergeTree table.

    Each :meth:`upsert_many` is a single ``insert``, which ClickHouse
    applies as one block. Loads take the highest ``version`` per key, so
    results are correct before background merges collapse old rows.
    """

    def __init__(self, client, database: str = DEFAULT_CLICKHOUSE_DATABASE):
        self.client = client
        self.database = database
        self._last_version = 0

    def ensure_schema(self) -> None:
        self.client.command(ENTITIES_DDL.format(database=self.database))

    def _next_version(self) -> int:
        version = max(time.time_ns(), self._last_version + 1)
        self._last_version = version
        return version

    def load(self, kind: str, key: str) -> Optional[Entity]:
        result = self.client.query(
            f"""
            SELECT argMax(data, version) AS data
            FROM {self.database}.entities
            WHERE kind = {{kind:String}} AND key = {{key:String}}
            GROUP BY key
            """,
            parameters={"kind": kind, "key": key},
        )
        rows = result.result_rows
        if not rows or not rows[0] or not rows[0][0]:
            return None
        return entity_from_dict(kind, json.loads(rows[0][0]))

    def upsert(self, kind: str, key: str, entity: Entity) -> None:
        self.upsert_many([(kind, key, entity)])

    def upsert_many(self, writes: Iterable[StagedWrite]) -> None:
        rows = []
        version = self._next_version()
        for kind, key, entity in writes:
            _check_write(kind, key, entity)
            rows.append([kind, key, json.dumps(entity.to_dict(), sort_keys=True), version])
        if not rows:
            return
        self.client.insert(
            f"{self.database}.entities",
            rows,
            column_names=["kind", "key", "data", "version"],
        )
        logger.debug("Inserted %d entity rows at version %d", len(rows), version)
