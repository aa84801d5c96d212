"""Juicebox V2 ``JBController`` adapter (token minting and reserved distribution)."""

from __future__ import annotations

from ..events import CanonicalEvent, RawEvent
from ..schema import PV, SOURCE_JB_CONTROLLER, EventKind
from .base import EventAdapter, Params


class JBControllerAdapter(EventAdapter):
    source = SOURCE_JB_CONTROLLER
    pv = PV.PV2
    handlers = {
        "MintTokens": "_mint_tokens",
        "DistributeReservedTokens": "_distribute_reserved_tokens",
        "DistributeToReservedTokenSplit": "_distribute_to_reserved_token_split",
    }

    def _mint_tokens(self, raw: RawEvent, p: Params) -> CanonicalEvent:
        return self.event(
            EventKind.MINT_TOKENS,
            raw,
            p.uint("projectId"),
            amount=p.uint("tokenCount"),
            beneficiary=p.address("beneficiary"),
            beneficiary_token_amount=p.uint("beneficiaryTokenCount"),
            memo=p.text("memo"),
        )

    def _distribute_reserved_tokens(self, raw: RawEvent, p: Params) -> CanonicalEvent:
        return self.event(
            EventKind.PRINT_RESERVES,
            raw,
            p.uint("projectId"),
            beneficiary=p.address("beneficiary"),
            beneficiary_token_amount=p.uint("beneficiaryTokenCount"),
            count=p.uint("tokenCount"),
            funding_cycle_id=p.uint("fundingCycleNumber"),
            memo=p.text("memo"),
        )

    def _distribute_to_reserved_token_split(self, raw: RawEvent, p: Params) -> CanonicalEvent:
        split = p.struct("split")
        return self.event(
            EventKind.DISTRIBUTE_TO_TICKET_MOD,
            raw,
            p.uint("projectId"),
            funding_cycle_id=p.uint("domain"),
            mod_project_id=split.uint("projectId"),
            mod_beneficiary=split.address("beneficiary"),
            mod_allocator=split.address("allocator"),
            mod_prefer_unstaked=split.flag("preferClaimed"),
            mod_cut=p.uint("tokenCount"),
        )
