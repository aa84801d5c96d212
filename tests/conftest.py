from __future__ import annotations

import os
from decimal import Decimal

import pytest

from packages.juicebox.prices import RateStep, RateTableOracle
from packages.juicebox.store import InMemoryEntityStore

_ISOLATED_ENV_PREFIXES = ("JUICETOOL_", "CLICKHOUSE_")


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch):
    """Keep developer JUICETOOL_* / CLICKHOUSE_* settings out of every test."""
    for key in list(os.environ):
        if key.startswith(_ISOLATED_ENV_PREFIXES):
            monkeypatch.delenv(key, raising=False)
    yield


@pytest.fixture
def store() -> InMemoryEntityStore:
    return InMemoryEntityStore()


@pytest.fixture
def rate_2x() -> RateTableOracle:
    """1 wei -> 2 reference units from the epoch onward."""
    return RateTableOracle([RateStep(from_timestamp=0, rate=Decimal("2.0"))])
