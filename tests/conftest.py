"""Shared test fixtures for the plancoach test suite.

Provides a throwaway session store and conversation log under tmp_path, a
fixed "today", and a factory for sessions relative to it.
"""

from datetime import date, datetime, time, timedelta

import pytest

from src.memory.conversation import ConversationLog
from src.memory.session_store import SessionStore
from src.memory.training_session import (
    Discipline,
    SessionSource,
    SessionStatus,
    TrainingSession,
)

TODAY = date(2024, 6, 3)


@pytest.fixture
def today():
    return TODAY


@pytest.fixture
def store(tmp_path):
    return SessionStore(tmp_path / "training" / "sessions.json")


@pytest.fixture
def history(tmp_path):
    return ConversationLog(tmp_path / "conversation" / "messages.jsonl")


@pytest.fixture
def make_session():
    """Build a TrainingSession `days` days from TODAY (negative for the past)."""

    def _make(
        days: int = 1,
        hour: int = 9,
        minute: int = 0,
        discipline: Discipline = Discipline.ENDURANCE,
        status: SessionStatus = SessionStatus.PLANNED,
        source: SessionSource | None = SessionSource.GENERATED,
        batch_id: str | None = "B1",
        **kwargs,
    ) -> TrainingSession:
        when = datetime.combine(TODAY + timedelta(days=days), time(hour=hour, minute=minute))
        if source not in (SessionSource.GENERATED, None):
            batch_id = None
        if source is SessionSource.IMPORTED:
            kwargs.setdefault("external_activity_id", f"ext-{days}-{hour}-{minute}")
        return TrainingSession(
            date=when,
            discipline=discipline,
            duration_minutes=kwargs.pop("duration_minutes", 45),
            status=status,
            source=source,
            batch_id=batch_id,
            **kwargs,
        )

    return _make
