"""Plan reconciliation: replace planned generated sessions with a new batch.

A regeneration must never leave the plan with both the old and the new
sessions, nor with neither. The deletion set and the new sessions are handed
to the store as one replace operation.

Deletion set, for a batch reconciliation at time `now`:
    generated provenance (or legacy: untagged with a batch id)
    AND status Planned
    AND date >= start of today
    AND, in adjustment mode only, batch id == the batch being adjusted.

Completed, cancelled and postponed sessions, imported and manual sessions, and
anything dated before today are never touched.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import date, datetime, time
from typing import Iterable

from src.agent.context_builder import PlanMode, is_generated
from src.memory.session_store import SessionStore
from src.memory.training_session import ProposedSession, SessionStatus, TrainingSession

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReconcileResult:
    batch_id: str
    deleted: int
    inserted: int
    mode: PlanMode


def new_batch_id() -> str:
    return str(uuid.uuid4())


def find_current_batch_id(sessions: Iterable[TrainingSession]) -> str | None:
    """Batch of the latest planned session, if it belongs to one."""
    planned = [s for s in sessions if s.status is SessionStatus.PLANNED]
    if not planned:
        return None
    return max(planned, key=lambda s: s.date).batch_id


class PlanReconciler:
    """Applies proposed batches to a SessionStore."""

    def __init__(self, store: SessionStore, legacy_batch_rule: bool = True):
        self.store = store
        self.legacy_batch_rule = legacy_batch_rule

    def is_replaceable(
        self,
        session: TrainingSession,
        mode: PlanMode,
        batch_id: str | None,
        today: date,
    ) -> bool:
        """Whether session belongs to the deletion set of this reconciliation."""
        if not is_generated(session, self.legacy_batch_rule):
            return False
        if session.status is not SessionStatus.PLANNED:
            return False
        if session.date < datetime.combine(today, time.min):
            return False
        if mode is PlanMode.ADJUSTMENT and session.batch_id != batch_id:
            return False
        return True

    def deletion_set(
        self,
        sessions: Iterable[TrainingSession],
        mode: PlanMode,
        batch_id: str | None,
        today: date,
    ) -> list[TrainingSession]:
        return [s for s in sessions if self.is_replaceable(s, mode, batch_id, today)]

    def reconcile(
        self,
        proposed: list[ProposedSession],
        batch_id: str | None = None,
        mode: PlanMode = PlanMode.NEW_PLAN,
        today: date | None = None,
    ) -> ReconcileResult:
        """Replace the deletion set with the proposed batch.

        An empty proposal is a no-op: nothing is deleted. Adjustment without a
        batch id falls back to new-plan semantics under a fresh batch.
        """
        today = today or date.today()

        if mode is PlanMode.ADJUSTMENT and batch_id is None:
            logger.warning("Adjustment requested without a current batch, treating as a new plan")
            mode = PlanMode.NEW_PLAN
        if batch_id is None:
            batch_id = new_batch_id()

        if not proposed:
            logger.info("Empty proposal for batch %s, plan left untouched", batch_id)
            return ReconcileResult(batch_id=batch_id, deleted=0, inserted=0, mode=mode)

        new_sessions = []
        for p in proposed:
            session = p.to_training_session(batch_id)
            if session is None:
                logger.warning("Skipping proposed session with invalid date %r", p.date)
                continue
            new_sessions.append(session)

        if not new_sessions:
            logger.warning("No usable sessions in proposal for batch %s, plan left untouched", batch_id)
            return ReconcileResult(batch_id=batch_id, deleted=0, inserted=0, mode=mode)

        deleted, inserted = self.store.replace_matching(
            lambda s: self.is_replaceable(s, mode, batch_id, today),
            new_sessions,
        )

        logger.info(
            "Plan updated (batch %s, %s): %d deleted, %d inserted",
            batch_id, mode.value, deleted, inserted,
        )
        return ReconcileResult(batch_id=batch_id, deleted=deleted, inserted=inserted, mode=mode)
