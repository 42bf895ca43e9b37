"""Coach chat: the pipeline from a user message to an updated plan.

user message -> context builder -> generative service -> extractor -> reconciler

Each outgoing request takes a sequence number. The network call runs outside
any lock; when the reply comes back it is applied only if no newer request
has been issued in the meantime, so a slow stale reply can never overwrite a
newer plan.
"""

import logging
import threading
from dataclasses import dataclass
from datetime import date

from src.agent.context_builder import HISTORY_LIMIT, PlanMode, build_chat_request
from src.agent.llm import GenerationError, GenerativeClient
from src.agent.prompts import build_system_prompt
from src.agent.reconciler import PlanReconciler, ReconcileResult, find_current_batch_id, new_batch_id
from src.agent.session_extractor import confirmation_message, extract_sessions
from src.memory.conversation import (
    ADJUST_INVITATION,
    ERROR_MESSAGE,
    ConversationLog,
)
from src.memory.profile import AthleteProfile
from src.memory.session_store import SessionStore

logger = logging.getLogger(__name__)

NEW_PLAN_REQUEST = "Can you generate a training plan for my goal?"
REGENERATE_REQUEST = "Can you regenerate my training plan for the coming weeks?"


@dataclass(frozen=True)
class ChatOutcome:
    """What happened to one user message."""

    reply: str | None
    sequence: int
    reconciliation: ReconcileResult | None = None
    stale: bool = False
    error: str | None = None
    retryable: bool = False

    @property
    def plan_updated(self) -> bool:
        return self.reconciliation is not None and self.reconciliation.inserted > 0


class CoachChat:
    """Conversation with the coach, bound to one session store and history."""

    def __init__(
        self,
        store: SessionStore,
        history: ConversationLog,
        llm: GenerativeClient,
        profile: AthleteProfile | None = None,
        reconciler: PlanReconciler | None = None,
        confirm_plan_message: bool = True,
        history_limit: int = HISTORY_LIMIT,
    ):
        self.store = store
        self.history = history
        self.llm = llm
        self.profile = profile
        self.reconciler = reconciler or PlanReconciler(store)
        self.confirm_plan_message = confirm_plan_message
        self.history_limit = history_limit

        self.mode = PlanMode.NEW_PLAN
        self.batch_id: str | None = None

        self._sequence = 0
        self._seq_lock = threading.Lock()
        self._apply_lock = threading.Lock()

    # ── Request sequencing ───────────────────────────────────────

    def _next_sequence(self) -> int:
        with self._seq_lock:
            self._sequence += 1
            return self._sequence

    def is_latest(self, sequence: int) -> bool:
        with self._seq_lock:
            return sequence == self._sequence

    # ── Plan flows ───────────────────────────────────────────────

    def start_new_plan(self, today: date | None = None) -> ChatOutcome:
        """Start a fresh batch and ask the coach for a plan."""
        self.mode = PlanMode.NEW_PLAN
        self.batch_id = new_batch_id()
        return self.send_message(NEW_PLAN_REQUEST, today=today)

    def modify_current_plan(self) -> str | None:
        """Switch to adjusting the current batch; posts the coach's invitation.

        Returns the batch being adjusted (None if no planned batch exists, in
        which case the next reply is applied as a new plan).
        """
        self.batch_id = find_current_batch_id(self.store.all())
        self.mode = PlanMode.ADJUSTMENT if self.batch_id else PlanMode.NEW_PLAN
        self.history.add_assistant_message(ADJUST_INVITATION)
        return self.batch_id

    def regenerate_plan(self, today: date | None = None) -> ChatOutcome:
        """Replace every upcoming generated session with a fresh plan."""
        self.mode = PlanMode.NEW_PLAN
        self.batch_id = None
        return self.send_message(REGENERATE_REQUEST, today=today)

    def clear_conversation(self) -> None:
        """Delete the history and forget the current batch."""
        self.history.clear()
        self.mode = PlanMode.NEW_PLAN
        self.batch_id = None

    # ── Main pipeline ────────────────────────────────────────────

    def send_message(self, text: str, today: date | None = None) -> ChatOutcome:
        """Send one user message and apply any plan found in the reply."""
        text = text.strip()
        if not text:
            raise ValueError("Message is empty")
        today = today or date.today()

        sequence = self._next_sequence()
        prior = self.history.messages()
        self.history.add_user_message(text)

        request = build_chat_request(
            history=prior,
            user_message=text,
            profile=self.profile,
            sessions=self.store.all(),
            mode=self.mode,
            today=today,
            history_limit=self.history_limit,
            legacy_batch_rule=self.reconciler.legacy_batch_rule,
        )
        system_prompt = build_system_prompt(request, today)

        try:
            reply = self.llm.generate(system_prompt, request.messages)
        except GenerationError as e:
            logger.warning("Generation failed for request %d: %s", sequence, e)
            if not self.is_latest(sequence):
                return ChatOutcome(reply=None, sequence=sequence, stale=True, error=str(e))
            self.history.add_assistant_message(ERROR_MESSAGE)
            return ChatOutcome(
                reply=ERROR_MESSAGE, sequence=sequence, error=str(e), retryable=e.retryable,
            )

        with self._apply_lock:
            if not self.is_latest(sequence):
                logger.info("Discarding stale reply for request %d", sequence)
                return ChatOutcome(reply=None, sequence=sequence, stale=True)
            return self._apply_reply(reply, sequence, today)

    def _apply_reply(self, reply: str, sequence: int, today: date) -> ChatOutcome:
        extraction = extract_sessions(reply)
        message = extraction.message
        result = None

        if extraction.found:
            result = self.reconciler.reconcile(
                extraction.sessions,
                batch_id=self.batch_id,
                mode=self.mode,
                today=today,
            )
            # Later replies in this conversation revise the same batch
            self.batch_id = result.batch_id
            self.mode = PlanMode.ADJUSTMENT
            if self.confirm_plan_message and result.inserted:
                message = confirmation_message(result.inserted)

        self.history.add_assistant_message(message)
        return ChatOutcome(reply=message, sequence=sequence, reconciliation=result)
