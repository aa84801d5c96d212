"""Tests for entity stores and the per-event unit of work.

No real ClickHouse instance is needed: ``_FakeClickhouse`` records
inserts and answers the argMax load query from them.
"""

from __future__ import annotations

import json
from unittest.mock import patch

import pytest

from packages.juicebox.entities import PayEvent, Project
from packages.juicebox.schema import EntityKind
from packages.juicebox.store import (
    ClickHouseEntityStore,
    InMemoryEntityStore,
    StoreTransaction,
    _resolve_clickhouse_host,
    _resolve_clickhouse_port,
    get_clickhouse_client,
    resolve_clickhouse_database,
)


class _FakeResult:
    def __init__(self, rows):
        self.result_rows = rows


class _FakeClickhouse:
    def __init__(self):
        self.commands: list[str] = []
        self.inserts: list[tuple[str, list, list]] = []

    def command(self, sql):
        self.commands.append(sql)

    def insert(self, table, rows, column_names=None):
        self.inserts.append((table, rows, column_names))

    def query(self, sql, parameters=None):
        best = None
        for _table, rows, _cols in self.inserts:
            for kind, key, data, version in rows:
                if kind == parameters["kind"] and key == parameters["key"]:
                    if best is None or version > best[1]:
                        best = (data, version)
        return _FakeResult([] if best is None else [(best[0],)])


def _project(balance: int = 0) -> Project:
    return Project(id="2-7", pv="2", project_id=7, current_balance=balance)


# ---------------------------------------------------------------------------
# InMemoryEntityStore
# ---------------------------------------------------------------------------


class TestInMemoryEntityStore:
    def test_load_missing_returns_none(self, store):
        assert store.load(EntityKind.PROJECT, "2-7") is None

    def test_upsert_then_load_returns_copy(self, store):
        store.upsert(EntityKind.PROJECT, "2-7", _project(10))
        loaded = store.load(EntityKind.PROJECT, "2-7")
        loaded.current_balance = 999
        assert store.load(EntityKind.PROJECT, "2-7").current_balance == 10

    def test_upsert_rejects_mismatched_key(self, store):
        with pytest.raises(ValueError, match="written under key"):
            store.upsert(EntityKind.PROJECT, "2-8", _project())

    def test_upsert_rejects_mismatched_kind(self, store):
        with pytest.raises(ValueError, match="written under"):
            store.upsert(EntityKind.PARTICIPANT, "2-7", _project())

    def test_upsert_many_is_all_or_nothing(self, store):
        writes = [
            (EntityKind.PROJECT, "2-7", _project(1)),
            (EntityKind.PROJECT, "bad-key", _project(2)),
        ]
        with pytest.raises(ValueError):
            store.upsert_many(writes)
        assert store.count(EntityKind.PROJECT) == 0

    def test_snapshot_roundtrip_is_sorted(self, store):
        store.upsert(EntityKind.PROJECT, "2-7", _project(5))
        store.upsert(EntityKind.PAY_EVENT, "0xab-1", PayEvent(id="0xab-1", amount=5))
        snap = store.snapshot()
        assert list(snap) == sorted(snap)
        restored = InMemoryEntityStore.from_snapshot(snap)
        assert restored.snapshot() == snap


# ---------------------------------------------------------------------------
# StoreTransaction
# ---------------------------------------------------------------------------


class TestStoreTransaction:
    def test_nothing_visible_before_commit(self, store):
        txn = StoreTransaction(store)
        txn.upsert(_project(3))
        assert store.load(EntityKind.PROJECT, "2-7") is None
        assert txn.load(EntityKind.PROJECT, "2-7").current_balance == 3

    def test_commit_flushes_in_one_batch(self, store):
        txn = StoreTransaction(store)
        txn.upsert(_project(3))
        txn.upsert(PayEvent(id="0xab-1", amount=3))
        with patch.object(store, "upsert_many", wraps=store.upsert_many) as spy:
            assert txn.commit() == 2
        spy.assert_called_once()
        assert store.load(EntityKind.PROJECT, "2-7").current_balance == 3
        assert txn.pending == 0

    def test_rollback_discards_staged_writes(self, store):
        txn = StoreTransaction(store)
        txn.upsert(_project(3))
        txn.rollback()
        assert txn.commit() == 0
        assert store.load(EntityKind.PROJECT, "2-7") is None

    def test_create_is_write_once(self, store):
        store.upsert(EntityKind.PAY_EVENT, "0xab-1", PayEvent(id="0xab-1", amount=1))
        txn = StoreTransaction(store)
        assert txn.create(PayEvent(id="0xab-1", amount=2)) is False
        assert txn.create(PayEvent(id="0xab-2", amount=2)) is True
        txn.commit()
        assert store.load(EntityKind.PAY_EVENT, "0xab-1").amount == 1

    def test_staged_entity_is_not_aliased(self, store):
        txn = StoreTransaction(store)
        project = _project(1)
        txn.upsert(project)
        project.current_balance = 50
        assert txn.load(EntityKind.PROJECT, "2-7").current_balance == 1


# ---------------------------------------------------------------------------
# ClickHouseEntityStore
# ---------------------------------------------------------------------------


class TestClickHouseEntityStore:
    def test_ensure_schema_uses_database(self):
        client = _FakeClickhouse()
        ClickHouseEntityStore(client, "jb_test").ensure_schema()
        assert "jb_test.entities" in client.commands[0]
        assert "ReplacingMergeTree(version)" in client.commands[0]

    def test_upsert_many_is_single_insert(self):
        client = _FakeClickhouse()
        ch = ClickHouseEntityStore(client, "jb_test")
        ch.upsert_many(
            [
                (EntityKind.PROJECT, "2-7", _project(3)),
                (EntityKind.PAY_EVENT, "0xab-1", PayEvent(id="0xab-1", amount=3)),
            ]
        )
        assert len(client.inserts) == 1
        table, rows, cols = client.inserts[0]
        assert table == "jb_test.entities"
        assert cols == ["kind", "key", "data", "version"]
        assert len({row[3] for row in rows}) == 1
        assert json.loads(rows[0][2])["current_balance"] == 3

    def test_load_returns_latest_version(self):
        client = _FakeClickhouse()
        ch = ClickHouseEntityStore(client, "jb_test")
        ch.upsert(EntityKind.PROJECT, "2-7", _project(3))
        ch.upsert(EntityKind.PROJECT, "2-7", _project(8))
        assert ch.load(EntityKind.PROJECT, "2-7").current_balance == 8
        assert ch.load(EntityKind.PROJECT, "2-9") is None

    def test_empty_batch_inserts_nothing(self):
        client = _FakeClickhouse()
        ClickHouseEntityStore(client).upsert_many([])
        assert client.inserts == []

    def test_versions_are_strictly_increasing(self):
        ch = ClickHouseEntityStore(_FakeClickhouse())
        with patch("packages.juicebox.store.time.time_ns", return_value=5):
            first = ch._next_version()
            second = ch._next_version()
        assert second > first


# ---------------------------------------------------------------------------
# Connection settings
# ---------------------------------------------------------------------------


class TestClickhouseSettings:
    def test_host_mode_defaults_to_localhost(self):
        with patch("packages.juicebox.store._running_in_docker", return_value=False):
            assert _resolve_clickhouse_host() == "localhost"

    def test_docker_mode_defaults_to_clickhouse(self):
        with patch("packages.juicebox.store._running_in_docker", return_value=True):
            assert _resolve_clickhouse_host() == "clickhouse"

    def test_env_overrides(self, monkeypatch):
        monkeypatch.setenv("CLICKHOUSE_HOST", "ch.internal")
        monkeypatch.setenv("CLICKHOUSE_HTTP_PORT", "18123")
        monkeypatch.setenv("CLICKHOUSE_DB", "jb")
        assert _resolve_clickhouse_host() == "ch.internal"
        assert _resolve_clickhouse_port() == 18123
        assert resolve_clickhouse_database() == "jb"

    def test_default_port_and_database(self):
        assert _resolve_clickhouse_port() == 8123
        assert resolve_clickhouse_database() == "juicetool"

    def test_get_client_passes_resolved_settings(self, monkeypatch):
        monkeypatch.setenv("CLICKHOUSE_HOST", "ch.internal")
        with patch("packages.juicebox.store.clickhouse_connect.get_client") as mock_get:
            get_clickhouse_client()
        kwargs = mock_get.call_args.kwargs
        assert kwargs["host"] == "ch.internal"
        assert kwargs["port"] == 8123
        assert kwargs["database"] == "juicetool"
