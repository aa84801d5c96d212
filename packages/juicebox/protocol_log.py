"""Protocol-wide singletons: per-version ProtocolLog and cross-version totals."""

from __future__ import annotations

from .entities import ProtocolLog, ProtocolTotals
from .ids import id_for_protocol_log, id_for_protocol_totals
from .schema import PV, EntityKind
from .store import StoreTransaction

_SUMMED_FIELDS = (
    "projects_count",
    "volume_paid",
    "volume_paid_usd",
    "payments_count",
    "volume_redeemed",
    "volume_redeemed_usd",
    "redeem_count",
)


def get_or_create_protocol_log(txn: StoreTransaction, pv: str) -> ProtocolLog:
    """Load the version's log, or a zeroed one under its well-known key.

    The caller stages the returned entity after mutating it.
    """
    key = id_for_protocol_log(pv)
    log = txn.load(EntityKind.PROTOCOL_LOG, key)
    if log is None:
        log = ProtocolLog(id=key, pv=pv)
    return log


def refresh_protocol_totals(txn: StoreTransaction) -> ProtocolTotals:
    """Recompute ProtocolTotals as the sum of every version's ProtocolLog."""
    totals = ProtocolTotals(id=id_for_protocol_totals())
    for pv in PV.ALL:
        log = txn.load(EntityKind.PROTOCOL_LOG, id_for_protocol_log(pv))
        if log is None:
            continue
        for name in _SUMMED_FIELDS:
            setattr(totals, name, getattr(totals, name) + getattr(log, name))
    txn.upsert(totals)
    return totals
