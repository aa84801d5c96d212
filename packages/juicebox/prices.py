"""Reference-currency (USD) conversion for wei amounts.

Conversion is a pure function of ``(amount_wei, block_timestamp)`` so a
replay from genesis always prices every event the same way.

Two-case result
---------------
A conversion returns either :class:`WithRate` (the amount plus its
converted value) or :class:`WithoutRate` (the amount alone). Accumulators
go through :func:`add_converted`, which leaves a running reference total
untouched for ``WithoutRate``; there is no sentinel value that could be
added by mistake.

Rate table
----------
:class:`RateTableOracle` holds piecewise-constant rate steps::

    [
      {"from_timestamp": 1610000000, "rate": "1200.50"},
      {"from_timestamp": 1640000000, "rate": "3700"}
    ]

The rate in force at time ``t`` is the last step with
``from_timestamp <= t``. Before the first step no rate is available.
Converted values are truncated to whole wei-denominated units, matching
integer on-chain arithmetic.
"""

from __future__ import annotations

import bisect
import logging
from dataclasses import dataclass
from decimal import ROUND_DOWN, Decimal, InvalidOperation, localcontext
from pathlib import Path
from typing import Iterable, Optional, Protocol, Union

from .errors import ConfigLoadError

logger = logging.getLogger(__name__)

# Enough significant digits for any uint256 amount times a rate.
_PRECISION = 100


@dataclass(frozen=True)
class WithRate:
    """Amount converted at a known rate."""

    amount: int
    converted: int
    rate: Decimal


@dataclass(frozen=True)
class WithoutRate:
    """Amount for which no rate was available at event time."""

    amount: int


PricedAmount = Union[WithRate, WithoutRate]


def add_converted(total: int, priced: PricedAmount) -> int:
    """Advance a reference-currency total; unchanged when no rate applied."""
    if isinstance(priced, WithRate):
        return total + priced.converted
    return total


def converted_or_none(priced: PricedAmount) -> Optional[int]:
    """Value for a nullable per-event record field."""
    if isinstance(priced, WithRate):
        return priced.converted
    return None


class PriceOracle(Protocol):
    """Converts a wei amount at a block time."""

    def convert(self, amount: int, block_timestamp: int) -> PricedAmount:
        ...


@dataclass(frozen=True)
class RateStep:
    from_timestamp: int
    rate: Decimal


class RateTableOracle:
    """Piecewise-constant rate table; see module docstring."""

    def __init__(self, steps: Iterable[RateStep] = ()) -> None:
        self._steps: list[RateStep] = sorted(steps, key=lambda s: s.from_timestamp)
        self._starts: list[int] = [s.from_timestamp for s in self._steps]

    def __len__(self) -> int:
        return len(self._steps)

    def rate_at(self, block_timestamp: int) -> Optional[Decimal]:
        idx = bisect.bisect_right(self._starts, int(block_timestamp)) - 1
        if idx < 0:
            return None
        return self._steps[idx].rate

    def convert(self, amount: int, block_timestamp: int) -> PricedAmount:
        rate = self.rate_at(block_timestamp)
        if rate is None:
            return WithoutRate(amount=amount)
        with localcontext() as ctx:
            ctx.prec = _PRECISION
            converted = (Decimal(amount) * rate).to_integral_value(rounding=ROUND_DOWN)
        return WithRate(amount=amount, converted=int(converted), rate=rate)

    @classmethod
    def from_rows(cls, rows: list) -> "RateTableOracle":
        """Build from decoded JSON rows.

        Raises:
            ConfigLoadError: If a row is missing fields or has a bad rate.
        """
        steps: list[RateStep] = []
        for idx, row in enumerate(rows):
            if not isinstance(row, dict):
                raise ConfigLoadError(f"rate row {idx} must be an object, got {type(row).__name__}")
            try:
                start = int(row["from_timestamp"])
                rate = Decimal(str(row["rate"]))
            except KeyError as exc:
                raise ConfigLoadError(f"rate row {idx} missing field {exc}") from exc
            except (TypeError, ValueError, InvalidOperation) as exc:
                raise ConfigLoadError(f"rate row {idx} is invalid: {exc}") from exc
            if not rate.is_finite():
                raise ConfigLoadError(f"rate row {idx} has non-finite rate {rate}")
            if rate < 0:
                raise ConfigLoadError(f"rate row {idx} has negative rate {rate}")
            steps.append(RateStep(from_timestamp=start, rate=rate))
        return cls(steps)

    @classmethod
    def from_path(cls, path: Union[str, Path]) -> "RateTableOracle":
        from .config import load_json_value_from_path

        rows = load_json_value_from_path(path)
        if not isinstance(rows, list):
            raise ConfigLoadError(f"rate table must be a JSON array: {path}")
        oracle = cls.from_rows(rows)
        logger.info("Loaded %d rate steps from %s", len(oracle), path)
        return oracle


#: Oracle with no rates: every conversion is ``WithoutRate``.
NO_RATES = RateTableOracle()
