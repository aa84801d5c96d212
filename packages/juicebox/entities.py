"""Persisted entity shapes.

Every entity is a dataclass with an ``id`` and a class-level ``kind``.
Stores keep entities as plain dicts (:meth:`Entity.to_dict`) and rebuild
them on load (:func:`entity_from_dict`), so a loaded entity never aliases
stored state. Monetary amounts are integers in wei; reference-currency
(USD) amounts use the same 18-decimal scale.

Aggregates (Project, Participant, ProtocolLog, ProtocolTotals) are mutated
by read-modify-write. Event records and ProjectEvent are write-once.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, fields
from typing import Any, ClassVar, Optional

from .schema import EntityKind


@dataclass
class Entity:
    id: str

    kind: ClassVar[str] = ""

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]):
        names = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in names})


# ---------------------------------------------------------------------------
# Aggregates
# ---------------------------------------------------------------------------


@dataclass
class Project(Entity):
    kind: ClassVar[str] = EntityKind.PROJECT

    pv: str = ""
    project_id: int = 0
    owner: str = ""
    handle: str = ""
    metadata_uri: str = ""
    terminal: str = ""
    created_at: int = 0
    creator: str = ""
    total_paid: int = 0
    total_paid_usd: int = 0
    total_redeemed: int = 0
    total_redeemed_usd: int = 0
    current_balance: int = 0
    payments_count: int = 0
    redeem_count: int = 0


@dataclass
class Participant(Entity):
    kind: ClassVar[str] = EntityKind.PARTICIPANT

    pv: str = ""
    project_id: int = 0
    project: str = ""
    wallet: str = ""
    total_paid: int = 0
    total_paid_usd: int = 0
    last_paid_timestamp: int = 0


@dataclass
class ProtocolLog(Entity):
    """Per-protocol-version totals across all projects."""

    kind: ClassVar[str] = EntityKind.PROTOCOL_LOG

    pv: str = ""
    projects_count: int = 0
    volume_paid: int = 0
    volume_paid_usd: int = 0
    payments_count: int = 0
    volume_redeemed: int = 0
    volume_redeemed_usd: int = 0
    redeem_count: int = 0


@dataclass
class ProtocolTotals(Entity):
    """Sum of every per-version ProtocolLog."""

    kind: ClassVar[str] = EntityKind.PROTOCOL_TOTALS

    projects_count: int = 0
    volume_paid: int = 0
    volume_paid_usd: int = 0
    payments_count: int = 0
    volume_redeemed: int = 0
    volume_redeemed_usd: int = 0
    redeem_count: int = 0


# ---------------------------------------------------------------------------
# Timeline
# ---------------------------------------------------------------------------


@dataclass
class ProjectEvent(Entity):
    kind: ClassVar[str] = EntityKind.PROJECT_EVENT

    pv: str = ""
    project_id: int = 0
    project: str = ""
    event_kind: str = ""
    event_key: str = ""
    terminal: str = ""
    timestamp: int = 0
    tx_hash: str = ""
    log_index: int = 0


# ---------------------------------------------------------------------------
# Per-event records (write-once)
# ---------------------------------------------------------------------------


@dataclass
class EventRecord(Entity):
    """Fields shared by every per-event record."""

    pv: str = ""
    project_id: int = 0
    project: str = ""
    terminal: str = ""
    caller: str = ""
    timestamp: int = 0
    tx_hash: str = ""


@dataclass
class ProjectCreateEvent(EventRecord):
    kind: ClassVar[str] = EntityKind.PROJECT_CREATE_EVENT

    owner: str = ""
    handle: str = ""
    metadata_uri: str = ""


@dataclass
class PayEvent(EventRecord):
    kind: ClassVar[str] = EntityKind.PAY_EVENT

    amount: int = 0
    amount_usd: Optional[int] = None
    beneficiary: str = ""
    note: str = ""
    funding_cycle_id: int = 0


@dataclass
class TapEvent(EventRecord):
    kind: ClassVar[str] = EntityKind.TAP_EVENT

    amount: int = 0
    amount_usd: Optional[int] = None
    beneficiary: str = ""
    beneficiary_transfer_amount: int = 0
    currency: int = 0
    funding_cycle_id: int = 0
    gov_fee_amount: int = 0
    gov_fee_amount_usd: Optional[int] = None
    net_transfer_amount: int = 0
    net_transfer_amount_usd: Optional[int] = None
    memo: str = ""


@dataclass
class RedeemEvent(EventRecord):
    kind: ClassVar[str] = EntityKind.REDEEM_EVENT

    amount: int = 0
    beneficiary: str = ""
    holder: str = ""
    return_amount: int = 0
    return_amount_usd: Optional[int] = None
    memo: str = ""


@dataclass
class AddToBalanceEvent(EventRecord):
    kind: ClassVar[str] = EntityKind.ADD_TO_BALANCE_EVENT

    amount: int = 0
    amount_usd: Optional[int] = None
    memo: str = ""


@dataclass
class MintTokensEvent(EventRecord):
    kind: ClassVar[str] = EntityKind.MINT_TOKENS_EVENT

    amount: int = 0
    beneficiary: str = ""
    memo: str = ""


@dataclass
class PrintReservesEvent(EventRecord):
    kind: ClassVar[str] = EntityKind.PRINT_RESERVES_EVENT

    beneficiary: str = ""
    beneficiary_ticket_amount: int = 0
    count: int = 0
    funding_cycle_id: int = 0


@dataclass
class DistributeToPayoutModEvent(EventRecord):
    kind: ClassVar[str] = EntityKind.DISTRIBUTE_TO_PAYOUT_MOD_EVENT

    tap_event: str = ""
    funding_cycle_id: int = 0
    mod_project_id: int = 0
    mod_beneficiary: str = ""
    mod_allocator: str = ""
    mod_prefer_unstaked: bool = False
    mod_cut: int = 0
    mod_cut_usd: Optional[int] = None


@dataclass
class DistributeToTicketModEvent(EventRecord):
    kind: ClassVar[str] = EntityKind.DISTRIBUTE_TO_TICKET_MOD_EVENT

    print_reserves_event: str = ""
    funding_cycle_id: int = 0
    mod_beneficiary: str = ""
    mod_prefer_unstaked: bool = False
    mod_cut: int = 0


# ---------------------------------------------------------------------------
# NFT collections
# ---------------------------------------------------------------------------


@dataclass
class Collection(Entity):
    kind: ClassVar[str] = EntityKind.COLLECTION

    address: str = ""
    pv: str = ""
    project_id: int = 0
    project: str = ""
    governance_type: int = 0
    name: str = ""
    symbol: str = ""
    created_at: int = 0


@dataclass
class Tier(Entity):
    kind: ClassVar[str] = EntityKind.TIER

    collection: str = ""
    tier_id: int = 0
    price: int = 0
    initial_quantity: int = 0
    remaining_quantity: int = 0
    voting_units: int = 0
    reserved_rate: int = 0
    reserved_token_beneficiary: str = ""
    encoded_ipfs_uri: str = ""
    resolved_uri: str = ""
    category: int = 0
    allow_manual_mint: bool = False
    transfers_pausable: bool = False
    created_at: int = 0


ENTITY_TYPES: dict[str, type] = {
    cls.kind: cls
    for cls in (
        Project,
        Participant,
        ProtocolLog,
        ProtocolTotals,
        ProjectEvent,
        ProjectCreateEvent,
        PayEvent,
        TapEvent,
        RedeemEvent,
        AddToBalanceEvent,
        MintTokensEvent,
        PrintReservesEvent,
        DistributeToPayoutModEvent,
        DistributeToTicketModEvent,
        Collection,
        Tier,
    )
}


def entity_from_dict(kind: str, data: dict[str, Any]) -> Entity:
    """Rebuild a stored entity.

    Raises:
        KeyError: If ``kind`` is not a known entity kind.
    """
    return ENTITY_TYPES[kind].from_dict(data)
