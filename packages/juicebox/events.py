"""Raw and canonical event records.

A :class:`RawEvent` is exactly what the event source delivers: the
emitting contract variant, the ABI event name, decoded parameters and the
block/transaction context. The normalizer turns it into one
:class:`CanonicalEvent`, the only shape the aggregation engine reads.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping

from .normalization import normalize_address, normalize_hex, to_int
from .schema import EventKind


@dataclass(frozen=True)
class RawEvent:
    """One delivered log with its context."""

    source: str
    name: str
    params: Mapping[str, Any]
    address: str
    block_number: int
    block_timestamp: int
    tx_hash: str
    tx_from: str
    log_index: int
    seq: int = 0

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "RawEvent":
        """Build from a tape row (see :mod:`.schema` for the envelope).

        Raises:
            KeyError: If a required envelope field is missing.
            ValueError: If a numeric field does not parse.
        """
        return cls(
            source=str(payload["source"]),
            name=str(payload["name"]),
            params=dict(payload.get("params") or {}),
            address=normalize_address(payload.get("address")),
            block_number=to_int(payload["block_number"]),
            block_timestamp=to_int(payload["block_timestamp"]),
            tx_hash=normalize_hex(payload["tx_hash"]),
            tx_from=normalize_address(payload.get("tx_from")),
            log_index=to_int(payload["log_index"]),
            seq=to_int(payload.get("seq", 0)),
        )


@dataclass(frozen=True)
class TxContext:
    """Block and transaction attribution shared by every record."""

    tx_hash: str
    log_index: int
    block_number: int
    timestamp: int
    caller: str
    contract: str


@dataclass(frozen=True)
class CanonicalEvent:
    """Version-agnostic event.

    Field vocabulary is fixed across versions: ``amount`` is the primary
    value moved or minted (``amount``/``value``/``tokenCount`` in the
    ABIs), ``return_amount`` is what a redemption paid out
    (``returnAmount``/``reclaimedAmount``), ``gov_fee_amount`` and
    ``net_transfer_amount`` are the two parts a tap removes from the
    project balance. Fields that a kind does not use keep their defaults.
    """

    kind: EventKind
    pv: str
    project_id: int
    tx: TxContext
    amount: int = 0
    return_amount: int = 0
    gov_fee_amount: int = 0
    net_transfer_amount: int = 0
    beneficiary_transfer_amount: int = 0
    beneficiary_token_amount: int = 0
    count: int = 0
    currency: int = 0
    funding_cycle_id: int = 0
    beneficiary: str = ""
    holder: str = ""
    owner: str = ""
    memo: str = ""
    handle: str = ""
    metadata_uri: str = ""
    terminal: str = ""
    mod_project_id: int = 0
    mod_beneficiary: str = ""
    mod_allocator: str = ""
    mod_prefer_unstaked: bool = False
    mod_cut: int = 0
    delegate: str = ""
    governance_type: int = 0
    template: str = ""
    creates_collection: bool = False

    @property
    def timestamp(self) -> int:
        return self.tx.timestamp

    @property
    def caller(self) -> str:
        return self.tx.caller


def tx_context(raw: RawEvent) -> TxContext:
    """Context for ``raw``; records attribute the call to the transaction sender."""
    return TxContext(
        tx_hash=normalize_hex(raw.tx_hash),
        log_index=int(raw.log_index),
        block_number=int(raw.block_number),
        timestamp=int(raw.block_timestamp),
        caller=normalize_address(raw.tx_from),
        contract=normalize_address(raw.address),
    )
