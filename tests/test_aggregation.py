"""Tests for aggregation: accumulation rules, records, timeline and protocol logs.

Test plan
---------
1. Pay then redeem:     project/protocol totals, counts and balance.
2. Ordering violation:  balance-affecting event for an unknown project writes nothing.
3. Missing rate:        reference-currency totals stay put, record fields are None.
4. Tap + payout split:  balance debit and the split's back-reference to the tap.
5. Reserves + split:    ticket-mod back-reference to the print-reserves record.
6. Duplicate delivery:  re-applied event is a no-op.
7. Informational kinds: records written even without a project.
8. Balance invariant:   balance == pays + adds - taps - redeems.
9. V1 history:          redeem by _projectId, reserves and ticket-mod back-reference.
10. Key collisions:     a second record under a taken key abandons its event.
"""

from __future__ import annotations

import logging

import pytest

from packages.juicebox.aggregation import AggregationEngine, ApplyStatus
from packages.juicebox.enrichment import Enrichment, price_event
from packages.juicebox.errors import OrderingViolation, RecordConflict
from packages.juicebox.events import RawEvent
from packages.juicebox.ids import (
    id_for_participant,
    id_for_pay_event,
    id_for_project,
    id_for_project_event,
    id_for_project_tx,
    id_for_protocol_log,
    id_for_protocol_totals,
)
from packages.juicebox.normalizer import normalize
from packages.juicebox.orchestrator import Indexer, ProcessStatus
from packages.juicebox.prices import NO_RATES
from packages.juicebox.schema import EntityKind, EventKind
from packages.juicebox.store import StoreTransaction
from tests._events import (
    HOLDER,
    OWNER,
    PAYER,
    SENDER,
    TS,
    V1_TERMINAL,
    V2_TERMINAL,
    jb_add_to_balance,
    jb_distribute_payouts,
    jb_distribute_reserved_tokens,
    jb_distribute_to_payout_split,
    jb_distribute_to_reserved_token_split,
    jb_mint_tokens,
    jb_pay,
    jb_project_created,
    jb_redeem,
    tx,
    v1_distribute_to_ticket_mod,
    v1_pay,
    v1_print_reserve_tickets,
    v1_project_created,
    v1_redeem,
    v1_tap,
)


@pytest.fixture
def indexer(store, rate_2x) -> Indexer:
    return Indexer(store, oracle=rate_2x)


def _project(store, pv: str = "2", project_id: int = 7):
    return store.load(EntityKind.PROJECT, id_for_project(pv, project_id))


# ---------------------------------------------------------------------------
# 1. Pay then redeem
# ---------------------------------------------------------------------------


class TestPayThenRedeem:
    def _run(self, indexer):
        outcomes = indexer.run(
            [
                jb_project_created(7, block=100, ts=TS),
                jb_pay(7, amount=100, block=101, ts=TS + 10),
                jb_redeem(7, reclaimed=40, block=102, ts=TS + 20),
            ]
        )
        assert [o.status for o in outcomes] == [ProcessStatus.COMMITTED] * 3
        return outcomes

    def test_project_totals(self, indexer, store):
        self._run(indexer)
        project = _project(store)
        assert project.total_paid == 100
        assert project.total_paid_usd == 200
        assert project.total_redeemed == 40
        assert project.total_redeemed_usd == 80
        assert project.current_balance == 60
        assert project.payments_count == 1
        assert project.redeem_count == 1

    def test_project_creation_fields(self, indexer, store):
        self._run(indexer)
        project = _project(store)
        assert project.owner == OWNER
        assert project.creator == SENDER
        assert project.created_at == TS
        assert project.metadata_uri == "QmProjectMetadata"
        assert project.terminal == V2_TERMINAL

    def test_protocol_log_and_totals(self, indexer, store):
        self._run(indexer)
        log = store.load(EntityKind.PROTOCOL_LOG, id_for_protocol_log("2"))
        assert log.projects_count == 1
        assert log.volume_paid == 100
        assert log.volume_paid_usd == 200
        assert log.payments_count == 1
        assert log.volume_redeemed == 40
        assert log.volume_redeemed_usd == 80
        assert log.redeem_count == 1

        totals = store.load(EntityKind.PROTOCOL_TOTALS, id_for_protocol_totals())
        assert totals.volume_paid == 100
        assert totals.volume_redeemed_usd == 80
        assert store.load(EntityKind.PROTOCOL_LOG, id_for_protocol_log("1")) is None

    def test_participant(self, indexer, store):
        self._run(indexer)
        participant = store.load(EntityKind.PARTICIPANT, id_for_participant("2", 7, PAYER))
        assert participant.total_paid == 100
        assert participant.total_paid_usd == 200
        assert participant.last_paid_timestamp == TS + 10
        assert participant.project == "2-7"

    def test_records(self, indexer, store):
        self._run(indexer)
        pay = store.load(EntityKind.PAY_EVENT, id_for_pay_event(tx(101), 0))
        assert pay.amount == 100
        assert pay.amount_usd == 200
        assert pay.note == "gm"
        assert pay.caller == SENDER
        assert pay.terminal == V2_TERMINAL

        redeem = store.load(
            EntityKind.REDEEM_EVENT, id_for_project_tx("2", 7, tx(102), 0, secondary=True)
        )
        assert redeem.return_amount == 40
        assert redeem.return_amount_usd == 80
        assert redeem.amount == 4000

    def test_timeline_entries_point_at_records(self, indexer, store):
        self._run(indexer)
        assert store.count(EntityKind.PROJECT_EVENT) == 3
        entry = store.load(EntityKind.PROJECT_EVENT, id_for_project_event("2", 7, tx(101), 0))
        assert entry.event_kind == EventKind.PAY.value
        assert entry.event_key == id_for_pay_event(tx(101), 0)
        assert entry.terminal == V2_TERMINAL
        assert entry.timestamp == TS + 10

    def test_participant_accumulates(self, indexer, store):
        self._run(indexer)
        indexer.process(jb_pay(7, amount=5, block=103, ts=TS + 30))
        participant = store.load(EntityKind.PARTICIPANT, id_for_participant("2", 7, PAYER))
        assert participant.total_paid == 105
        assert participant.last_paid_timestamp == TS + 30


# ---------------------------------------------------------------------------
# 2. Ordering violation
# ---------------------------------------------------------------------------


class TestOrderingViolation:
    @pytest.mark.parametrize(
        "payload",
        [
            jb_pay(99, block=200),
            jb_redeem(99, block=200),
            jb_add_to_balance(99, block=200),
            jb_distribute_payouts(99, block=200),
        ],
    )
    def test_missing_project_writes_nothing(self, indexer, store, payload):
        indexer.process(jb_project_created(7, block=100))
        before = store.snapshot()
        outcome = indexer.process(payload)
        assert outcome.status == ProcessStatus.ABANDONED
        assert "OrderingViolation" in outcome.reason
        assert store.snapshot() == before

    def test_engine_raises(self, store):
        event = normalize(RawEvent.from_dict(jb_pay(99)))
        txn = StoreTransaction(store)
        with pytest.raises(OrderingViolation, match="2-99"):
            AggregationEngine().apply(event, Enrichment(prices=price_event(event, NO_RATES)), txn)


# ---------------------------------------------------------------------------
# 3. Missing rate
# ---------------------------------------------------------------------------


class TestMissingRate:
    def test_reference_totals_unchanged(self, store):
        indexer = Indexer(store, oracle=NO_RATES)
        indexer.run([jb_project_created(7, block=100), jb_pay(7, amount=100, block=101)])
        project = _project(store)
        assert project.total_paid == 100
        assert project.total_paid_usd == 0
        log = store.load(EntityKind.PROTOCOL_LOG, id_for_protocol_log("2"))
        assert log.volume_paid_usd == 0
        pay = store.load(EntityKind.PAY_EVENT, id_for_pay_event(tx(101), 0))
        assert pay.amount_usd is None


# ---------------------------------------------------------------------------
# 4-5. Cross-referenced records
# ---------------------------------------------------------------------------


class TestCrossReferences:
    def test_tap_debits_fee_and_distribution(self, indexer, store):
        indexer.run(
            [
                jb_project_created(7, block=100),
                jb_pay(7, amount=100, block=101),
                jb_distribute_payouts(7, amount=50, fee=1, distributed=45, block=102),
            ]
        )
        assert _project(store).current_balance == 54
        tap = store.load(EntityKind.TAP_EVENT, id_for_project_tx("2", 7, tx(102), 0))
        assert tap.gov_fee_amount == 1
        assert tap.gov_fee_amount_usd == 2
        assert tap.net_transfer_amount_usd == 90
        assert tap.amount_usd == 100

    def test_payout_split_points_at_tap(self, indexer, store):
        indexer.run(
            [
                jb_project_created(7, block=100),
                jb_pay(7, amount=100, block=101),
                jb_distribute_to_payout_split(7, amount=5, block=102, log_index=0),
                jb_distribute_payouts(7, block=102, log_index=1),
            ]
        )
        split = store.load(
            EntityKind.DISTRIBUTE_TO_PAYOUT_MOD_EVENT,
            id_for_project_tx("2", 7, tx(102), 0, secondary=True),
        )
        assert split.tap_event == id_for_project_tx("2", 7, tx(102), 1)
        assert store.load(EntityKind.TAP_EVENT, split.tap_event) is not None
        assert split.mod_cut_usd == 10

    def test_ticket_split_points_at_print_reserves(self, indexer, store):
        indexer.run(
            [
                jb_project_created(7, block=100),
                jb_distribute_to_reserved_token_split(7, block=105, log_index=3),
                jb_distribute_reserved_tokens(7, block=105, log_index=4),
            ]
        )
        split = store.load(
            EntityKind.DISTRIBUTE_TO_TICKET_MOD_EVENT,
            id_for_project_tx("2", 7, tx(105), 3, secondary=True),
        )
        assert split.print_reserves_event == id_for_project_tx("2", 7, tx(105), 3)
        assert store.load(EntityKind.PRINT_RESERVES_EVENT, split.print_reserves_event) is not None

    def test_v1_tap_uses_v1_keys(self, indexer, store):
        indexer.run(
            [
                v1_project_created(7, block=100),
                v1_pay(7, amount=100, block=101),
                v1_tap(7, amount=30, block=102),
            ]
        )
        project = _project(store, pv="1")
        assert project.current_balance == 100 - 30
        assert project.handle == "juicebox"
        assert project.terminal == V1_TERMINAL
        assert _project(store, pv="2") is None
        assert store.load(EntityKind.TAP_EVENT, id_for_project_tx("1", 7, tx(102), 0)) is not None


# ---------------------------------------------------------------------------
# 6. Duplicates
# ---------------------------------------------------------------------------


class TestDuplicates:
    def test_duplicate_pay_is_noop(self, indexer, store):
        indexer.run([jb_project_created(7, block=100), jb_pay(7, amount=100, block=101)])
        before = store.snapshot()
        outcome = indexer.process(jb_pay(7, amount=100, block=101))
        assert outcome.status == ProcessStatus.DUPLICATE
        assert outcome.writes == 0
        assert store.snapshot() == before

    def test_repeated_project_creation_is_skipped(self, indexer, store, caplog):
        indexer.process(jb_project_created(7, block=100))
        with caplog.at_level(logging.WARNING):
            outcome = indexer.process(jb_project_created(7, block=150))
        assert outcome.status == ProcessStatus.SKIPPED
        assert "already exists" in caplog.text
        log = store.load(EntityKind.PROTOCOL_LOG, id_for_protocol_log("2"))
        assert log.projects_count == 1

    def test_engine_reports_duplicate(self, store):
        event = normalize(RawEvent.from_dict(jb_mint_tokens(7)))
        engine = AggregationEngine()
        txn = StoreTransaction(store)
        assert engine.apply(event, Enrichment(), txn).status == ApplyStatus.APPLIED
        txn.commit()
        again = engine.apply(event, Enrichment(), StoreTransaction(store))
        assert again.status == ApplyStatus.DUPLICATE


# ---------------------------------------------------------------------------
# 7. Informational kinds
# ---------------------------------------------------------------------------


class TestInformationalKinds:
    def test_mint_tokens_without_project(self, indexer, store):
        outcome = indexer.process(jb_mint_tokens(99, token_count=500, block=300))
        assert outcome.status == ProcessStatus.COMMITTED
        record = store.load(
            EntityKind.MINT_TOKENS_EVENT, id_for_project_tx("2", 99, tx(300), 0, secondary=True)
        )
        assert record.amount == 500
        assert _project(store, project_id=99) is None

    def test_add_to_balance_credits_balance(self, indexer, store):
        indexer.run([jb_project_created(7, block=100), jb_add_to_balance(7, amount=25, block=101)])
        assert _project(store).current_balance == 25
        assert _project(store).total_paid == 0


# ---------------------------------------------------------------------------
# 8. Balance invariant
# ---------------------------------------------------------------------------


class TestBalance:
    def test_balance_matches_event_history(self, indexer, store):
        indexer.run(
            [
                jb_project_created(7, block=100),
                jb_pay(7, amount=1_000, block=101),
                jb_pay(7, amount=250, block=102),
                jb_add_to_balance(7, amount=30, block=103),
                jb_distribute_payouts(7, amount=300, fee=10, distributed=280, block=104),
                jb_redeem(7, reclaimed=120, block=105),
            ]
        )
        assert _project(store).current_balance == 1_000 + 250 + 30 - (10 + 280) - 120

    def test_negative_balance_is_kept_and_logged(self, indexer, store, caplog):
        indexer.process(jb_project_created(7, block=100))
        with caplog.at_level(logging.WARNING):
            outcome = indexer.process(jb_redeem(7, reclaimed=40, block=101))
        assert outcome.status == ProcessStatus.COMMITTED
        assert _project(store).current_balance == -40
        assert "went negative" in caplog.text


# ---------------------------------------------------------------------------
# 9. V1 history
# ---------------------------------------------------------------------------


class TestPV1History:
    def _run(self, indexer):
        outcomes = indexer.run(
            [
                v1_project_created(7, block=100),
                v1_pay(7, amount=100, block=101),
                v1_redeem(7, return_amount=40, block=102),
            ]
        )
        assert [o.status for o in outcomes] == [ProcessStatus.COMMITTED] * 3

    def test_redeem_updates_project(self, indexer, store):
        self._run(indexer)
        project = _project(store, pv="1")
        assert project.current_balance == 60
        assert project.total_redeemed == 40
        assert project.total_redeemed_usd == 80
        assert project.redeem_count == 1
        assert _project(store, pv="2") is None

    def test_redeem_updates_v1_protocol_log(self, indexer, store):
        self._run(indexer)
        log = store.load(EntityKind.PROTOCOL_LOG, id_for_protocol_log("1"))
        assert log.projects_count == 1
        assert log.volume_paid == 100
        assert log.volume_redeemed == 40
        assert log.volume_redeemed_usd == 80
        assert log.redeem_count == 1
        assert store.load(EntityKind.PROTOCOL_LOG, id_for_protocol_log("2")) is None

    def test_redeem_record(self, indexer, store):
        self._run(indexer)
        redeem = store.load(
            EntityKind.REDEEM_EVENT, id_for_project_tx("1", 7, tx(102), 0, secondary=True)
        )
        assert redeem.return_amount == 40
        assert redeem.holder == HOLDER
        assert redeem.terminal == V1_TERMINAL

    def test_ticket_mod_points_at_print_reserves(self, indexer, store):
        outcomes = indexer.run(
            [
                v1_project_created(7, block=100),
                v1_distribute_to_ticket_mod(7, mod_cut=100, block=105, log_index=0),
                v1_print_reserve_tickets(7, count=300, block=105, log_index=1),
            ]
        )
        assert [o.status for o in outcomes] == [ProcessStatus.COMMITTED] * 3
        split = store.load(
            EntityKind.DISTRIBUTE_TO_TICKET_MOD_EVENT,
            id_for_project_tx("1", 7, tx(105), 0, secondary=True),
        )
        assert split.mod_cut == 100
        assert split.print_reserves_event == id_for_project_tx("1", 7, tx(105), 1)
        reserves = store.load(EntityKind.PRINT_RESERVES_EVENT, split.print_reserves_event)
        assert reserves.count == 300
        assert reserves.beneficiary_ticket_amount == 200


# ---------------------------------------------------------------------------
# 10. Record key collisions
# ---------------------------------------------------------------------------


class TestRecordConflict:
    def test_second_tap_in_transaction_is_abandoned(self, indexer, store):
        outcomes = indexer.run(
            [
                v1_project_created(7, block=100),
                v1_pay(7, amount=100, block=101),
                v1_tap(7, amount=10, block=102, log_index=0),
                v1_tap(7, amount=20, block=102, log_index=1),
            ]
        )
        assert [o.status for o in outcomes] == [
            ProcessStatus.COMMITTED,
            ProcessStatus.COMMITTED,
            ProcessStatus.COMMITTED,
            ProcessStatus.ABANDONED,
        ]
        assert "RecordConflict" in outcomes[3].reason

        assert _project(store, pv="1").current_balance == 90
        assert store.count(EntityKind.TAP_EVENT) == 1
        tap = store.load(EntityKind.TAP_EVENT, id_for_project_tx("1", 7, tx(102), 0))
        assert tap.amount == 10
        assert store.load(EntityKind.PROJECT_EVENT, id_for_project_event("1", 7, tx(102), 1)) is None

    def test_engine_raises(self, store):
        engine = AggregationEngine()
        first = normalize(RawEvent.from_dict(jb_distribute_reserved_tokens(7, block=105, log_index=0)))
        txn = StoreTransaction(store)
        engine.apply(first, Enrichment(), txn)
        txn.commit()

        second = normalize(RawEvent.from_dict(jb_distribute_reserved_tokens(7, block=105, log_index=1)))
        with pytest.raises(RecordConflict, match="PrintReservesEvent"):
            engine.apply(second, Enrichment(), StoreTransaction(store))
