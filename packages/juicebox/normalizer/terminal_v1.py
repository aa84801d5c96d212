"""Juicebox V1 terminal adapters (TerminalV1 and TerminalV1_1)."""

from __future__ import annotations

from ..events import CanonicalEvent, RawEvent
from ..schema import PV, SOURCE_TERMINAL_V1, SOURCE_TERMINAL_V1_1, EventKind
from .base import EventAdapter, Params


class TerminalV1Adapter(EventAdapter):
    """TerminalV1 (v1.0).

    Premined tickets are announced with ``PrintPreminedTickets``; the
    v1.0 ``AddToBalance`` carries its amount as ``value``.
    """

    source = SOURCE_TERMINAL_V1
    pv = PV.PV1
    handlers = {
        "Pay": "_pay",
        "Tap": "_tap",
        "Redeem": "_redeem",
        "AddToBalance": "_add_to_balance",
        "PrintPreminedTickets": "_print_premined_tickets",
        "PrintReserveTickets": "_print_reserve_tickets",
        "DistributeToPayoutMod": "_distribute_to_payout_mod",
        "DistributeToTicketMod": "_distribute_to_ticket_mod",
    }

    def _pay(self, raw: RawEvent, p: Params) -> CanonicalEvent:
        return self.event(
            EventKind.PAY,
            raw,
            p.uint("projectId"),
            amount=p.uint("amount"),
            beneficiary=p.address("beneficiary"),
            funding_cycle_id=p.uint("fundingCycleId"),
            memo=p.text("note"),
        )

    def _tap(self, raw: RawEvent, p: Params) -> CanonicalEvent:
        return self.event(
            EventKind.TAP,
            raw,
            p.uint("projectId"),
            amount=p.uint("amount"),
            beneficiary=p.address("beneficiary"),
            beneficiary_transfer_amount=p.uint("beneficiaryTransferAmount"),
            currency=p.uint("currency"),
            funding_cycle_id=p.uint("fundingCycleId"),
            gov_fee_amount=p.uint("govFeeAmount"),
            net_transfer_amount=p.uint("netTransferAmount"),
        )

    def _redeem(self, raw: RawEvent, p: Params) -> CanonicalEvent:
        return self.event(
            EventKind.REDEEM,
            raw,
            p.uint("_projectId"),
            amount=p.uint("amount"),
            return_amount=p.uint("returnAmount"),
            beneficiary=p.address("beneficiary"),
            holder=p.address("holder"),
        )

    def _add_to_balance(self, raw: RawEvent, p: Params) -> CanonicalEvent:
        return self.event(
            EventKind.ADD_TO_BALANCE,
            raw,
            p.uint("projectId"),
            amount=p.uint("value"),
        )

    def _print_premined_tickets(self, raw: RawEvent, p: Params) -> CanonicalEvent:
        return self.event(
            EventKind.MINT_TOKENS,
            raw,
            p.uint("projectId"),
            amount=p.uint("amount"),
            beneficiary=p.address("beneficiary"),
            currency=p.uint("currency"),
            memo=p.text("memo"),
        )

    def _print_reserve_tickets(self, raw: RawEvent, p: Params) -> CanonicalEvent:
        return self.event(
            EventKind.PRINT_RESERVES,
            raw,
            p.uint("projectId"),
            beneficiary=p.address("beneficiary"),
            beneficiary_token_amount=p.uint("beneficiaryTicketAmount"),
            count=p.uint("count"),
            funding_cycle_id=p.uint("fundingCycleId"),
        )

    def _distribute_to_payout_mod(self, raw: RawEvent, p: Params) -> CanonicalEvent:
        mod = p.struct("mod")
        return self.event(
            EventKind.DISTRIBUTE_TO_PAYOUT_MOD,
            raw,
            p.uint("projectId"),
            funding_cycle_id=p.uint("fundingCycleId"),
            mod_project_id=mod.uint("projectId"),
            mod_beneficiary=mod.address("beneficiary"),
            mod_allocator=mod.address("allocator"),
            mod_prefer_unstaked=mod.flag("preferUnstaked"),
            mod_cut=p.uint("modCut"),
        )

    def _distribute_to_ticket_mod(self, raw: RawEvent, p: Params) -> CanonicalEvent:
        mod = p.struct("mod")
        return self.event(
            EventKind.DISTRIBUTE_TO_TICKET_MOD,
            raw,
            p.uint("projectId"),
            funding_cycle_id=p.uint("fundingCycleId"),
            mod_beneficiary=mod.address("beneficiary"),
            mod_prefer_unstaked=mod.flag("preferUnstaked"),
            mod_cut=p.uint("modCut"),
        )


class TerminalV1_1Adapter(TerminalV1Adapter):
    """TerminalV1_1: premined tickets become ``PrintTickets`` with a memo."""

    source = SOURCE_TERMINAL_V1_1
    handlers = {
        **{k: v for k, v in TerminalV1Adapter.handlers.items() if k != "PrintPreminedTickets"},
        "PrintTickets": "_print_tickets",
    }

    def _print_tickets(self, raw: RawEvent, p: Params) -> CanonicalEvent:
        return self.event(
            EventKind.MINT_TOKENS,
            raw,
            p.uint("projectId"),
            amount=p.uint("amount"),
            beneficiary=p.address("beneficiary"),
            memo=p.text("memo"),
        )
