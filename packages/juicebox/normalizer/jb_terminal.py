"""Juicebox V2 ``JBETHPaymentTerminal`` adapter.

V2 renames most V1 concepts; this adapter folds them back into the V1
vocabulary the aggregation engine uses:

  RedeemTokens.reclaimedAmount     -> return_amount
  RedeemTokens.tokenCount          -> amount
  DistributePayouts                -> TAP (fee -> gov_fee_amount,
                                      distributedAmount -> net_transfer_amount)
  DistributeToPayoutSplit          -> DISTRIBUTE_TO_PAYOUT_MOD
  split.preferClaimed              -> mod_prefer_unstaked
  domain / fundingCycleNumber      -> funding_cycle_id
"""

from __future__ import annotations

from ..events import CanonicalEvent, RawEvent
from ..schema import PV, SOURCE_JB_ETH_TERMINAL, EventKind
from .base import EventAdapter, Params


class JBETHPaymentTerminalAdapter(EventAdapter):
    source = SOURCE_JB_ETH_TERMINAL
    pv = PV.PV2
    handlers = {
        "Pay": "_pay",
        "RedeemTokens": "_redeem_tokens",
        "AddToBalance": "_add_to_balance",
        "DistributePayouts": "_distribute_payouts",
        "DistributeToPayoutSplit": "_distribute_to_payout_split",
    }

    def _pay(self, raw: RawEvent, p: Params) -> CanonicalEvent:
        return self.event(
            EventKind.PAY,
            raw,
            p.uint("projectId"),
            amount=p.uint("amount"),
            beneficiary=p.address("beneficiary"),
            funding_cycle_id=p.uint("fundingCycleNumber"),
            memo=p.text("memo"),
        )

    def _redeem_tokens(self, raw: RawEvent, p: Params) -> CanonicalEvent:
        return self.event(
            EventKind.REDEEM,
            raw,
            p.uint("projectId"),
            amount=p.uint("tokenCount"),
            return_amount=p.uint("reclaimedAmount"),
            beneficiary=p.address("beneficiary"),
            holder=p.address("holder"),
            funding_cycle_id=p.uint("fundingCycleNumber"),
            memo=p.text("memo"),
        )

    def _add_to_balance(self, raw: RawEvent, p: Params) -> CanonicalEvent:
        return self.event(
            EventKind.ADD_TO_BALANCE,
            raw,
            p.uint("projectId"),
            amount=p.uint("amount"),
            memo=p.text("memo"),
        )

    def _distribute_payouts(self, raw: RawEvent, p: Params) -> CanonicalEvent:
        return self.event(
            EventKind.TAP,
            raw,
            p.uint("projectId"),
            amount=p.uint("amount"),
            beneficiary=p.address("beneficiary"),
            beneficiary_transfer_amount=p.uint("beneficiaryDistributionAmount"),
            funding_cycle_id=p.uint("fundingCycleNumber"),
            gov_fee_amount=p.uint("fee"),
            net_transfer_amount=p.uint("distributedAmount"),
            memo=p.text("memo"),
        )

    def _distribute_to_payout_split(self, raw: RawEvent, p: Params) -> CanonicalEvent:
        split = p.struct("split")
        return self.event(
            EventKind.DISTRIBUTE_TO_PAYOUT_MOD,
            raw,
            p.uint("projectId"),
            funding_cycle_id=p.uint("domain"),
            mod_project_id=split.uint("projectId"),
            mod_beneficiary=split.address("beneficiary"),
            mod_allocator=split.address("allocator"),
            mod_prefer_unstaked=split.flag("preferClaimed"),
            mod_cut=p.uint("amount"),
        )
