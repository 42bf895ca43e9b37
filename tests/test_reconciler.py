"""Tests for plan reconciliation: which sessions a new batch replaces."""

from datetime import timedelta

import pytest

from src.agent.context_builder import PlanMode
from src.agent.reconciler import PlanReconciler, find_current_batch_id
from src.memory.training_session import (
    Discipline,
    Intensity,
    ProposedSession,
    SessionSource,
    SessionStatus,
)


def _proposals(today, count, start=0):
    return [
        ProposedSession(
            date=(today + timedelta(days=start + i)).isoformat(),
            discipline="Endurance",
            sport="Running",
            duration_minutes=45,
            description=f"Day {i + 1}",
            intensity="Moderate",
        )
        for i in range(count)
    ]


@pytest.fixture
def reconciler(store):
    return PlanReconciler(store)


# ── New plan ────────────────────────────────────────────────────────


class TestNewPlan:
    def test_fourteen_replaced_by_fourteen(self, store, reconciler, make_session, today):
        store.insert_many([make_session(days=i, batch_id="B1") for i in range(14)])

        result = reconciler.reconcile(_proposals(today, 14), batch_id=None, mode=PlanMode.NEW_PLAN, today=today)

        assert result.deleted == 14
        assert result.inserted == 14
        assert result.batch_id != "B1"
        assert len(store) == 14
        assert {s.batch_id for s in store.all()} == {result.batch_id}

    def test_all_prior_batches_retired(self, store, reconciler, make_session, today):
        store.insert_many([
            make_session(days=1, batch_id="B1"),
            make_session(days=2, batch_id="B2"),
        ])

        result = reconciler.reconcile(_proposals(today, 3), today=today)

        planned_generated = store.query(lambda s: s.is_planned_generated and s.date.date() >= today)
        assert {s.batch_id for s in planned_generated} == {result.batch_id}
        assert result.deleted == 2

    def test_given_batch_id_is_reused(self, reconciler, today):
        result = reconciler.reconcile(_proposals(today, 2), batch_id="B7", today=today)

        assert result.batch_id == "B7"

    def test_proposals_normalized(self, store, reconciler, today):
        proposed = [ProposedSession(
            date=today.isoformat(), discipline="Seuil", sport="Course",
            duration_minutes=50, intensity="Intense",
        )]

        reconciler.reconcile(proposed, today=today)

        session = store.all()[0]
        assert session.discipline is Discipline.THRESHOLD
        assert session.intensity is Intensity.INTENSE
        assert session.sport == "Running"
        assert session.status is SessionStatus.PLANNED
        assert session.source is SessionSource.GENERATED


# ── Protected sessions ──────────────────────────────────────────────


class TestProtectedSessions:
    def test_only_upcoming_planned_generated_sessions_replaced(self, store, reconciler, make_session, today):
        protected = [
            make_session(days=1, status=SessionStatus.COMPLETED),
            make_session(days=2, status=SessionStatus.CANCELLED),
            make_session(days=3, status=SessionStatus.POSTPONED),
            make_session(days=-1),
            make_session(days=1, source=SessionSource.MANUAL),
            make_session(days=2, source=SessionSource.IMPORTED, status=SessionStatus.COMPLETED),
        ]
        replaceable = make_session(days=4)
        store.insert_many(protected + [replaceable])

        result = reconciler.reconcile(_proposals(today, 2), today=today)

        assert result.deleted == 1
        remaining = {s.id for s in store.all()}
        assert {s.id for s in protected} <= remaining
        assert replaceable.id not in remaining

    def test_today_counts_as_upcoming(self, store, reconciler, make_session, today):
        early_today = make_session(days=0, hour=6)
        late_yesterday = make_session(days=-1, hour=23, minute=59)
        store.insert_many([early_today, late_yesterday])

        reconciler.reconcile(_proposals(today, 1), today=today)

        remaining = {s.id for s in store.all()}
        assert early_today.id not in remaining
        assert late_yesterday.id in remaining


class TestLegacyBatchRule:
    def test_untagged_session_with_batch_counts_as_generated(self, store, make_session, today):
        legacy = make_session(days=2, source=None, batch_id="OLD")
        store.insert(legacy)

        PlanReconciler(store).reconcile(_proposals(today, 1), today=today)

        assert legacy.id not in {s.id for s in store.all()}

    def test_rule_disabled_keeps_untagged_sessions(self, store, make_session, today):
        legacy = make_session(days=2, source=None, batch_id="OLD")
        store.insert(legacy)

        PlanReconciler(store, legacy_batch_rule=False).reconcile(_proposals(today, 1), today=today)

        assert legacy.id in {s.id for s in store.all()}

    def test_untagged_without_batch_never_generated(self, store, reconciler, make_session, today):
        untagged = make_session(days=2, source=None, batch_id=None)
        store.insert(untagged)

        reconciler.reconcile(_proposals(today, 1), today=today)

        assert untagged.id in {s.id for s in store.all()}


# ── Adjustment ──────────────────────────────────────────────────────


class TestAdjustment:
    def test_other_batch_untouched(self, store, reconciler, make_session, today):
        b1 = [make_session(days=i, batch_id="B1") for i in range(1, 4)]
        b2 = [make_session(days=i, batch_id="B2") for i in range(1, 4)]
        store.insert_many(b1 + b2)

        result = reconciler.reconcile(_proposals(today, 2, start=1), batch_id="B1", mode=PlanMode.ADJUSTMENT, today=today)

        assert result.batch_id == "B1"
        assert result.deleted == 3
        assert result.inserted == 2
        remaining = {s.id for s in store.all()}
        assert {s.id for s in b2} <= remaining
        assert len(store.query(lambda s: s.batch_id == "B1")) == 2

    def test_without_batch_falls_back_to_new_plan(self, store, reconciler, make_session, today):
        store.insert(make_session(days=1, batch_id="B1"))

        result = reconciler.reconcile(_proposals(today, 1), batch_id=None, mode=PlanMode.ADJUSTMENT, today=today)

        assert result.mode is PlanMode.NEW_PLAN
        assert result.batch_id != "B1"
        assert result.deleted == 1


# ── No-op and atomicity ─────────────────────────────────────────────


class TestNoOp:
    def test_empty_proposal_deletes_nothing(self, store, reconciler, make_session, today):
        store.insert_many([make_session(days=i) for i in range(3)])

        result = reconciler.reconcile([], today=today)

        assert (result.deleted, result.inserted) == (0, 0)
        assert len(store) == 3

    def test_all_invalid_dates_deletes_nothing(self, store, reconciler, make_session, today):
        store.insert_many([make_session(days=i) for i in range(3)])

        result = reconciler.reconcile([ProposedSession(date="tomorrow")], today=today)

        assert (result.deleted, result.inserted) == (0, 0)
        assert len(store) == 3

    def test_invalid_dates_skipped(self, store, reconciler, today):
        proposed = _proposals(today, 2) + [ProposedSession(date="soon")]

        assert reconciler.reconcile(proposed, today=today).inserted == 2

    def test_failed_write_leaves_plan_intact(self, store, reconciler, make_session, today, monkeypatch):
        existing = [make_session(days=i) for i in range(3)]
        store.insert_many(existing)

        def failing_persist():
            raise OSError("disk full")

        monkeypatch.setattr(store, "_persist", failing_persist)
        with pytest.raises(OSError):
            reconciler.reconcile(_proposals(today, 5), today=today)

        assert {s.id for s in store.all()} == {s.id for s in existing}


class TestFindCurrentBatch:
    def test_batch_of_latest_planned_session(self, make_session):
        sessions = [
            make_session(days=1, batch_id="B1"),
            make_session(days=5, batch_id="B2"),
            make_session(days=9, batch_id="B3", status=SessionStatus.COMPLETED),
        ]

        assert find_current_batch_id(sessions) == "B2"

    def test_none_without_planned_sessions(self, make_session):
        assert find_current_batch_id([]) is None
        assert find_current_batch_id([make_session(status=SessionStatus.COMPLETED)]) is None

    def test_none_when_latest_planned_is_manual(self, make_session):
        sessions = [
            make_session(days=1, batch_id="B1"),
            make_session(days=3, source=SessionSource.MANUAL),
        ]

        assert find_current_batch_id(sessions) is None
