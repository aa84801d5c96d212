"""Tiered 721 delegate deployments: listener registration and collection reads.

Collection creation is atomic-or-nothing. ``name()`` and ``symbol()`` must
both succeed before anything is written; either reverting abandons the
Collection and its Tiers. Tier enumeration is best effort: a reverted
``maxTierIdOf`` or ``tiersOf`` (normal for non-tiered variants) leaves the
Collection with no Tiers.

When ``maxTierIdOf`` reverts, ``tiersOf`` is not called at all; there is
no meaningful size to enumerate with.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from .errors import MissingConfigError, ReadThroughError
from .events import CanonicalEvent
from .read_through import TierData, Tiered721Reader
from .registry import DataSourceRegistration
from .schema import TEMPLATE_721_DELEGATE_TOKEN

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CollectionData:
    name: str
    symbol: str
    tiers: tuple[TierData, ...] = ()


def registration_for(event: CanonicalEvent) -> DataSourceRegistration:
    """Listener registration for a deployed delegate."""
    context: dict[str, Any] = {"projectId": event.project_id, "pv": event.pv}
    if event.template == TEMPLATE_721_DELEGATE_TOKEN:
        context["governanceType"] = event.governance_type
    return DataSourceRegistration(
        address=event.delegate,
        template=event.template,
        context=context,
        block_number=event.tx.block_number,
    )


def fetch_collection_data(
    event: CanonicalEvent,
    reader: Tiered721Reader,
    store_address: str,
) -> CollectionData:
    """Read everything a new Collection needs, at the deployment block.

    Raises:
        MissingConfigError: If the delegate store address is not configured.
        ReadThroughError: If ``name()`` or ``symbol()`` reverted.
    """
    delegate = event.delegate
    block = event.tx.block_number

    if not store_address:
        raise MissingConfigError(
            f"tiered 721 delegate store address is not configured; "
            f"cannot create collection {delegate}"
        )

    name_call = reader.name(delegate, block)
    if name_call.reverted:
        raise ReadThroughError(f"name() reverted for {delegate}")

    symbol_call = reader.symbol(delegate, block)
    if symbol_call.reverted:
        raise ReadThroughError(f"symbol() reverted for {delegate}")

    max_tier_call = reader.max_tier_id_of(store_address, delegate, block)
    if max_tier_call.reverted:
        # Reverts for non-tiered tokens, among maybe other reasons.
        logger.error("maxTierIdOf() reverted for %s; recording no tiers", delegate)
        return CollectionData(name=name_call.value, symbol=symbol_call.value)

    if max_tier_call.value == 0:
        return CollectionData(name=name_call.value, symbol=symbol_call.value)

    tiers_call = reader.tiers_of(store_address, delegate, max_tier_call.value, block)
    if tiers_call.reverted:
        logger.error("tiersOf() reverted for %s; recording no tiers", delegate)
        return CollectionData(name=name_call.value, symbol=symbol_call.value)

    return CollectionData(
        name=name_call.value,
        symbol=symbol_call.value,
        tiers=tuple(tiers_call.value),
    )
