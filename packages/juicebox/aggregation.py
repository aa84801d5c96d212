"""Aggregation engine: canonical events into entity mutations.

Every handler works inside one :class:`StoreTransaction`: it loads the
aggregates it needs, applies the accumulation rules, and stages the
updated snapshots together with one write-once event record and one
ProjectEvent timeline entry. The orchestrator commits or rolls back.

Delivery is at-least-once. The timeline key is unique per log, so an
event whose timeline entry already exists was applied before and is
skipped without touching any aggregate.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Optional

from .entities import (
    AddToBalanceEvent,
    Collection,
    DistributeToPayoutModEvent,
    DistributeToTicketModEvent,
    EventRecord,
    MintTokensEvent,
    Participant,
    PayEvent,
    PrintReservesEvent,
    Project,
    ProjectCreateEvent,
    ProjectEvent,
    RedeemEvent,
    TapEvent,
    Tier,
)
from .enrichment import Enrichment
from .errors import OrderingViolation, ReadThroughError, RecordConflict
from .events import CanonicalEvent
from .ids import (
    id_for_collection,
    id_for_participant,
    id_for_pay_event,
    id_for_project,
    id_for_project_event,
    id_for_project_tx,
    id_for_tier,
)
from .prices import add_converted, converted_or_none
from .protocol_log import get_or_create_protocol_log, refresh_protocol_totals
from .schema import EntityKind, EventKind
from .store import StoreTransaction

logger = logging.getLogger(__name__)


class ApplyStatus:
    APPLIED = "applied"
    DUPLICATE = "duplicate"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class ApplyResult:
    status: str
    record_kind: str = ""
    record_key: str = ""
    reason: str = ""


Handler = Callable[[CanonicalEvent, Enrichment, StoreTransaction], Optional[EventRecord]]


class AggregationEngine:
    """Applies canonical events to the entity store.

    The engine holds no state between events; everything it needs is
    loaded through the transaction.
    """

    def __init__(self) -> None:
        self._handlers: dict[EventKind, Handler] = {
            EventKind.PROJECT_CREATED: self._on_project_created,
            EventKind.PAY: self._on_pay,
            EventKind.TAP: self._on_tap,
            EventKind.REDEEM: self._on_redeem,
            EventKind.ADD_TO_BALANCE: self._on_add_to_balance,
            EventKind.MINT_TOKENS: self._on_mint_tokens,
            EventKind.PRINT_RESERVES: self._on_print_reserves,
            EventKind.DISTRIBUTE_TO_PAYOUT_MOD: self._on_distribute_to_payout_mod,
            EventKind.DISTRIBUTE_TO_TICKET_MOD: self._on_distribute_to_ticket_mod,
        }

    def apply(
        self,
        event: CanonicalEvent,
        enrichment: Enrichment,
        txn: StoreTransaction,
    ) -> ApplyResult:
        """Stage every write ``event`` implies.

        Raises:
            OrderingViolation: A balance-affecting event names a project
                that does not exist yet.
            ReadThroughError: A collection-creating event arrived without
                its collection data.
            RecordConflict: The event record key is already taken by a
                different log in the same transaction.
        """
        if event.kind == EventKind.DELEGATE_DEPLOYED:
            return self._on_delegate_deployed(event, enrichment, txn)

        timeline_key = id_for_project_event(
            event.pv, event.project_id, event.tx.tx_hash, event.tx.log_index
        )
        if txn.exists(EntityKind.PROJECT_EVENT, timeline_key):
            logger.info(
                "Skipping duplicate %s for project %s at %s:%d",
                event.kind.value,
                id_for_project(event.pv, event.project_id),
                event.tx.tx_hash,
                event.tx.log_index,
            )
            return ApplyResult(status=ApplyStatus.DUPLICATE, reason="already applied")

        handler = self._handlers[event.kind]
        record = handler(event, enrichment, txn)
        if record is None:
            return ApplyResult(status=ApplyStatus.SKIPPED, reason="nothing to apply")

        if not txn.create(record):
            raise RecordConflict(
                f"{record.kind} {record.id} already written by another log; "
                f"{event.kind.value} at {event.tx.tx_hash}:{event.tx.log_index} has no record of its own"
            )
        txn.create(
            ProjectEvent(
                id=timeline_key,
                pv=event.pv,
                project_id=event.project_id,
                project=id_for_project(event.pv, event.project_id),
                event_kind=event.kind.value,
                event_key=record.id,
                terminal=event.tx.contract,
                timestamp=event.timestamp,
                tx_hash=event.tx.tx_hash,
                log_index=event.tx.log_index,
            )
        )
        return ApplyResult(
            status=ApplyStatus.APPLIED,
            record_kind=record.kind,
            record_key=record.id,
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _record_fields(event: CanonicalEvent) -> dict:
        return {
            "pv": event.pv,
            "project_id": event.project_id,
            "project": id_for_project(event.pv, event.project_id),
            "terminal": event.tx.contract,
            "caller": event.caller,
            "timestamp": event.timestamp,
            "tx_hash": event.tx.tx_hash,
        }

    @staticmethod
    def _require_project(event: CanonicalEvent, txn: StoreTransaction) -> Project:
        key = id_for_project(event.pv, event.project_id)
        project = txn.load(EntityKind.PROJECT, key)
        if project is None:
            raise OrderingViolation(
                f"{event.kind.value} for project {key} before its creation "
                f"({event.tx.tx_hash}:{event.tx.log_index})"
            )
        if not project.terminal:
            project.terminal = event.tx.contract
        return project

    @staticmethod
    def _debit(project: Project, amount: int, event: CanonicalEvent) -> None:
        project.current_balance -= amount
        if project.current_balance < 0:
            logger.warning(
                "Project %s balance went negative (%d) after %s at %s:%d",
                project.id,
                project.current_balance,
                event.kind.value,
                event.tx.tx_hash,
                event.tx.log_index,
            )

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    def _on_project_created(
        self, event: CanonicalEvent, enrichment: Enrichment, txn: StoreTransaction
    ) -> Optional[EventRecord]:
        key = id_for_project(event.pv, event.project_id)
        if txn.exists(EntityKind.PROJECT, key):
            logger.warning("Project %s already exists; ignoring repeated creation", key)
            return None

        txn.upsert(
            Project(
                id=key,
                pv=event.pv,
                project_id=event.project_id,
                owner=event.owner,
                handle=event.handle,
                metadata_uri=event.metadata_uri,
                terminal=event.terminal,
                created_at=event.timestamp,
                creator=event.caller,
            )
        )

        log = get_or_create_protocol_log(txn, event.pv)
        log.projects_count += 1
        txn.upsert(log)
        refresh_protocol_totals(txn)

        return ProjectCreateEvent(
            id=id_for_project_tx(
                event.pv, event.project_id, event.tx.tx_hash, event.tx.log_index, secondary=True
            ),
            owner=event.owner,
            handle=event.handle,
            metadata_uri=event.metadata_uri,
            **self._record_fields(event),
        )

    def _on_pay(
        self, event: CanonicalEvent, enrichment: Enrichment, txn: StoreTransaction
    ) -> Optional[EventRecord]:
        project = self._require_project(event, txn)
        priced = enrichment.price("amount")

        project.total_paid += event.amount
        project.total_paid_usd = add_converted(project.total_paid_usd, priced)
        project.current_balance += event.amount
        project.payments_count += 1
        txn.upsert(project)

        participant_key = id_for_participant(event.pv, event.project_id, event.beneficiary)
        participant = txn.load(EntityKind.PARTICIPANT, participant_key)
        if participant is None:
            participant = Participant(
                id=participant_key,
                pv=event.pv,
                project_id=event.project_id,
                project=project.id,
                wallet=event.beneficiary,
            )
        participant.total_paid += event.amount
        participant.total_paid_usd = add_converted(participant.total_paid_usd, priced)
        participant.last_paid_timestamp = event.timestamp
        txn.upsert(participant)

        log = get_or_create_protocol_log(txn, event.pv)
        log.volume_paid += event.amount
        log.volume_paid_usd = add_converted(log.volume_paid_usd, priced)
        log.payments_count += 1
        txn.upsert(log)
        refresh_protocol_totals(txn)

        return PayEvent(
            id=id_for_pay_event(event.tx.tx_hash, event.tx.log_index),
            amount=event.amount,
            amount_usd=converted_or_none(priced),
            beneficiary=event.beneficiary,
            note=event.memo,
            funding_cycle_id=event.funding_cycle_id,
            **self._record_fields(event),
        )

    def _on_tap(
        self, event: CanonicalEvent, enrichment: Enrichment, txn: StoreTransaction
    ) -> Optional[EventRecord]:
        project = self._require_project(event, txn)
        self._debit(project, event.gov_fee_amount + event.net_transfer_amount, event)
        txn.upsert(project)

        return TapEvent(
            id=id_for_project_tx(event.pv, event.project_id, event.tx.tx_hash, event.tx.log_index),
            amount=event.amount,
            amount_usd=converted_or_none(enrichment.price("amount")),
            beneficiary=event.beneficiary,
            beneficiary_transfer_amount=event.beneficiary_transfer_amount,
            currency=event.currency,
            funding_cycle_id=event.funding_cycle_id,
            gov_fee_amount=event.gov_fee_amount,
            gov_fee_amount_usd=converted_or_none(enrichment.price("gov_fee_amount")),
            net_transfer_amount=event.net_transfer_amount,
            net_transfer_amount_usd=converted_or_none(enrichment.price("net_transfer_amount")),
            memo=event.memo,
            **self._record_fields(event),
        )

    def _on_redeem(
        self, event: CanonicalEvent, enrichment: Enrichment, txn: StoreTransaction
    ) -> Optional[EventRecord]:
        project = self._require_project(event, txn)
        priced = enrichment.price("return_amount")

        project.total_redeemed += event.return_amount
        project.total_redeemed_usd = add_converted(project.total_redeemed_usd, priced)
        project.redeem_count += 1
        self._debit(project, event.return_amount, event)
        txn.upsert(project)

        log = get_or_create_protocol_log(txn, event.pv)
        log.volume_redeemed += event.return_amount
        log.volume_redeemed_usd = add_converted(log.volume_redeemed_usd, priced)
        log.redeem_count += 1
        txn.upsert(log)
        refresh_protocol_totals(txn)

        return RedeemEvent(
            id=id_for_project_tx(
                event.pv, event.project_id, event.tx.tx_hash, event.tx.log_index, secondary=True
            ),
            amount=event.amount,
            beneficiary=event.beneficiary,
            holder=event.holder,
            return_amount=event.return_amount,
            return_amount_usd=converted_or_none(priced),
            memo=event.memo,
            **self._record_fields(event),
        )

    def _on_add_to_balance(
        self, event: CanonicalEvent, enrichment: Enrichment, txn: StoreTransaction
    ) -> Optional[EventRecord]:
        project = self._require_project(event, txn)
        project.current_balance += event.amount
        txn.upsert(project)

        return AddToBalanceEvent(
            id=id_for_project_tx(
                event.pv, event.project_id, event.tx.tx_hash, event.tx.log_index, secondary=True
            ),
            amount=event.amount,
            amount_usd=converted_or_none(enrichment.price("amount")),
            memo=event.memo,
            **self._record_fields(event),
        )

    # Informational kinds: records only, no aggregate is touched, so a
    # missing project is not an ordering error here.

    def _on_mint_tokens(
        self, event: CanonicalEvent, enrichment: Enrichment, txn: StoreTransaction
    ) -> Optional[EventRecord]:
        return MintTokensEvent(
            id=id_for_project_tx(
                event.pv, event.project_id, event.tx.tx_hash, event.tx.log_index, secondary=True
            ),
            amount=event.amount,
            beneficiary=event.beneficiary,
            memo=event.memo,
            **self._record_fields(event),
        )

    def _on_print_reserves(
        self, event: CanonicalEvent, enrichment: Enrichment, txn: StoreTransaction
    ) -> Optional[EventRecord]:
        return PrintReservesEvent(
            id=id_for_project_tx(event.pv, event.project_id, event.tx.tx_hash, event.tx.log_index),
            beneficiary=event.beneficiary,
            beneficiary_ticket_amount=event.beneficiary_token_amount,
            count=event.count,
            funding_cycle_id=event.funding_cycle_id,
            **self._record_fields(event),
        )

    def _on_distribute_to_payout_mod(
        self, event: CanonicalEvent, enrichment: Enrichment, txn: StoreTransaction
    ) -> Optional[EventRecord]:
        tx_hash, log_index = event.tx.tx_hash, event.tx.log_index
        return DistributeToPayoutModEvent(
            id=id_for_project_tx(event.pv, event.project_id, tx_hash, log_index, secondary=True),
            tap_event=id_for_project_tx(event.pv, event.project_id, tx_hash, log_index),
            funding_cycle_id=event.funding_cycle_id,
            mod_project_id=event.mod_project_id,
            mod_beneficiary=event.mod_beneficiary,
            mod_allocator=event.mod_allocator,
            mod_prefer_unstaked=event.mod_prefer_unstaked,
            mod_cut=event.mod_cut,
            mod_cut_usd=converted_or_none(enrichment.price("mod_cut")),
            **self._record_fields(event),
        )

    def _on_distribute_to_ticket_mod(
        self, event: CanonicalEvent, enrichment: Enrichment, txn: StoreTransaction
    ) -> Optional[EventRecord]:
        tx_hash, log_index = event.tx.tx_hash, event.tx.log_index
        return DistributeToTicketModEvent(
            id=id_for_project_tx(event.pv, event.project_id, tx_hash, log_index, secondary=True),
            print_reserves_event=id_for_project_tx(event.pv, event.project_id, tx_hash, log_index),
            funding_cycle_id=event.funding_cycle_id,
            mod_beneficiary=event.mod_beneficiary,
            mod_prefer_unstaked=event.mod_prefer_unstaked,
            mod_cut=event.mod_cut,
            **self._record_fields(event),
        )

    def _on_delegate_deployed(
        self, event: CanonicalEvent, enrichment: Enrichment, txn: StoreTransaction
    ) -> ApplyResult:
        if not event.creates_collection:
            return ApplyResult(status=ApplyStatus.SKIPPED, reason="registration only")

        collection_key = id_for_collection(event.delegate)
        if txn.exists(EntityKind.COLLECTION, collection_key):
            logger.info("Collection %s already indexed", collection_key)
            return ApplyResult(status=ApplyStatus.DUPLICATE, reason="collection exists")

        data = enrichment.collection
        if data is None:
            raise ReadThroughError(f"no collection data read for {event.delegate}")

        txn.create(
            Collection(
                id=collection_key,
                address=event.delegate,
                pv=event.pv,
                project_id=event.project_id,
                project=id_for_project(event.pv, event.project_id),
                governance_type=event.governance_type,
                name=data.name,
                symbol=data.symbol,
                created_at=event.timestamp,
            )
        )
        for tier in data.tiers:
            txn.create(
                Tier(
                    id=id_for_tier(event.delegate, tier.tier_id),
                    collection=collection_key,
                    tier_id=tier.tier_id,
                    price=tier.price,
                    initial_quantity=tier.initial_quantity,
                    remaining_quantity=tier.remaining_quantity,
                    voting_units=tier.voting_units,
                    reserved_rate=tier.reserved_rate,
                    reserved_token_beneficiary=tier.reserved_token_beneficiary,
                    encoded_ipfs_uri=tier.encoded_ipfs_uri,
                    resolved_uri=tier.resolved_uri,
                    category=tier.category,
                    allow_manual_mint=tier.allow_manual_mint,
                    transfers_pausable=tier.transfers_pausable,
                    created_at=event.timestamp,
                )
            )
        logger.info(
            "Created collection %s (%s) with %d tiers",
            collection_key,
            data.symbol,
            len(data.tiers),
        )
        return ApplyResult(
            status=ApplyStatus.APPLIED,
            record_kind=EntityKind.COLLECTION,
            record_key=collection_key,
        )
