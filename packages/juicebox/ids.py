"""Canonical entity keys.

Every store key is built here; no other module formats keys ad hoc. All
functions are pure and total: inputs are already-normalized event values,
and a malformed input is a caller bug rather than a runtime condition.
"""

from __future__ import annotations

from .normalization import normalize_address, normalize_hex
from .schema import PROTOCOL_ID


def id_for_project(pv: str, project_id: int) -> str:
    """Project key, distinct across protocol versions for the same numeric id."""
    return f"{pv}-{int(project_id)}"


def id_for_participant(pv: str, project_id: int, wallet: str) -> str:
    return f"{id_for_project(pv, project_id)}-{normalize_address(wallet)}"


def id_for_project_tx(
    pv: str,
    project_id: int,
    tx_hash: str,
    log_index: int,
    secondary: bool = False,
) -> str:
    """Key for an event record scoped to a project and transaction.

    The primary form (``secondary=False``) omits the log index so related
    records emitted later in the same transaction can point back at it:
    a DistributeToPayoutMod record references its Tap this way. Records
    that may repeat within one transaction use ``secondary=True``, which
    appends the log index.
    """
    key = f"{id_for_project(pv, project_id)}-{normalize_hex(tx_hash)}"
    if secondary:
        key = f"{key}-{int(log_index)}"
    return key


def id_for_pay_event(tx_hash: str, log_index: int) -> str:
    return f"{normalize_hex(tx_hash)}-{int(log_index)}"


def id_for_project_event(pv: str, project_id: int, tx_hash: str, log_index: int) -> str:
    """Timeline entry key. Unique per log, so it also marks a delivered event."""
    return id_for_project_tx(pv, project_id, tx_hash, log_index, secondary=True)


def id_for_protocol_log(pv: str) -> str:
    return f"{PROTOCOL_ID}-pv{pv}"


def id_for_protocol_totals() -> str:
    return PROTOCOL_ID


def id_for_collection(address: str) -> str:
    return normalize_address(address)


def id_for_tier(collection_address: str, tier_id: int) -> str:
    return f"{id_for_collection(collection_address)}-{int(tier_id)}"
