"""Read-through results attached to a canonical event before aggregation."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Mapping, Optional

from .events import CanonicalEvent
from .nft import CollectionData
from .prices import PriceOracle, PricedAmount
from .schema import EventKind

# Canonical amount fields that carry a reference-currency counterpart.
PRICED_FIELDS: dict[EventKind, tuple[str, ...]] = {
    EventKind.PAY: ("amount",),
    EventKind.TAP: ("amount", "gov_fee_amount", "net_transfer_amount"),
    EventKind.REDEEM: ("return_amount",),
    EventKind.ADD_TO_BALANCE: ("amount",),
    EventKind.DISTRIBUTE_TO_PAYOUT_MOD: ("mod_cut",),
}


@dataclass(frozen=True)
class Enrichment:
    prices: Mapping[str, PricedAmount] = field(default_factory=dict)
    collection: Optional[CollectionData] = None

    def price(self, name: str) -> PricedAmount:
        """Priced value of a canonical amount field.

        Raises:
            KeyError: If the field was not priced for this event kind.
        """
        return self.prices[name]


def price_event(event: CanonicalEvent, oracle: PriceOracle) -> dict[str, PricedAmount]:
    """Price every reference-currency field of ``event`` at its block time."""
    return {
        name: oracle.convert(getattr(event, name), event.timestamp)
        for name in PRICED_FIELDS.get(event.kind, ())
    }
