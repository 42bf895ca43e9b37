"""Context builder: assemble the request sent to the generative service.

All arithmetic (average speeds, weeks remaining, formatted paces) happens
here so the model only interprets and coaches.

Public API:
    PlanMode
    ChatTurn, ChatRequest
    build_chat_request(...) -> ChatRequest
    summarize_profile(profile, today) -> dict | None
    recent_activity_digest(sessions, limit) -> list[dict]
    current_plan_digest(sessions, today) -> list[dict]
"""

from dataclasses import dataclass, field
from datetime import date, datetime, time
from enum import Enum
from typing import Iterable

from src.memory.conversation import ConversationMessage
from src.memory.profile import AthleteProfile, format_pace
from src.memory.training_session import SessionSource, SessionStatus, TrainingSession

HISTORY_LIMIT = 20
RECENT_ACTIVITY_LIMIT = 5


class PlanMode(Enum):
    NEW_PLAN = "new_plan"
    ADJUSTMENT = "adjustment"


@dataclass(frozen=True)
class ChatTurn:
    role: str  # "user" | "assistant"
    content: str

    def to_dict(self) -> dict:
        return {"role": self.role, "content": self.content}


@dataclass
class ChatRequest:
    """Everything the generative service sees for one user message."""

    messages: list[ChatTurn]
    mode: PlanMode = PlanMode.NEW_PLAN
    athlete: dict | None = None
    recent_activity: list[dict] = field(default_factory=list)
    current_plan: list[dict] = field(default_factory=list)

    def to_dict(self) -> dict:
        payload = {
            "messages": [m.to_dict() for m in self.messages],
            "mode": self.mode.value,
        }
        if self.athlete is not None:
            payload["athlete"] = self.athlete
        if self.recent_activity:
            payload["recentActivity"] = self.recent_activity
        if self.current_plan:
            payload["currentPlan"] = self.current_plan
        return payload


def is_generated(session: TrainingSession, legacy_batch_rule: bool = True) -> bool:
    """Machine-generated provenance.

    With legacy_batch_rule, an untagged session that carries a batch id counts
    as generated too (records written before provenance tags existed).
    """
    if session.source is SessionSource.GENERATED:
        return True
    return legacy_batch_rule and session.source is None and session.batch_id is not None


def build_chat_request(
    history: Iterable[ConversationMessage],
    user_message: str,
    profile: AthleteProfile | None = None,
    sessions: Iterable[TrainingSession] = (),
    mode: PlanMode = PlanMode.NEW_PLAN,
    today: date | None = None,
    history_limit: int = HISTORY_LIMIT,
    legacy_batch_rule: bool = True,
) -> ChatRequest:
    """Build the request payload for one outgoing user message.

    The last history_limit messages go first (oldest first), the new message
    last. The current plan is only included in adjustment mode.
    """
    today = today or date.today()
    sessions = list(sessions)

    recent = list(history)[-history_limit:] if history_limit > 0 else []
    turns = [ChatTurn(role=m.role, content=m.content) for m in recent]
    turns.append(ChatTurn(role="user", content=user_message))

    current_plan = []
    if mode is PlanMode.ADJUSTMENT:
        current_plan = current_plan_digest(sessions, today, legacy_batch_rule)

    return ChatRequest(
        messages=turns,
        mode=mode,
        athlete=summarize_profile(profile, today),
        recent_activity=recent_activity_digest(sessions),
        current_plan=current_plan,
    )


def summarize_profile(profile: AthleteProfile | None, today: date | None = None) -> dict | None:
    """Compact profile summary; optional fields only when present."""
    if profile is None or not profile.onboarding_complete:
        return None
    today = today or date.today()

    summary = {
        "name": profile.name or "Athlete",
        "goalType": profile.goal_type,
        "goalDate": profile.goal_date.isoformat(),
        "weeksRemaining": profile.weeks_remaining(today),
        "weeklyHours": profile.weekly_hours,
        "sports": list(profile.sports),
    }
    optional = {
        "maxAerobicSpeedKmh": profile.max_aerobic_speed_kmh,
        "maxHeartRate": profile.max_heart_rate,
        "restingHeartRate": profile.resting_heart_rate,
        "injuries": profile.injuries,
        "notes": profile.notes,
    }
    summary.update({k: v for k, v in optional.items() if v is not None})

    paces = profile.effective_paces()
    for name, key in (("endurance", "endurancePace"), ("threshold", "thresholdPace"), ("mas", "masPace")):
        if paces.get(name) is not None:
            summary[key] = format_pace(paces[name])
    return summary


def recent_activity_digest(
    sessions: Iterable[TrainingSession],
    limit: int = RECENT_ACTIVITY_LIMIT,
) -> list[dict]:
    """Most recent completed sessions, newest first."""
    completed = [s for s in sessions if s.status is SessionStatus.COMPLETED]
    completed.sort(key=lambda s: s.date, reverse=True)

    digest = []
    for s in completed[:limit]:
        entry = {
            "date": s.date.date().isoformat(),
            "sport": s.sport,
            "discipline": s.discipline.label,
            "durationMinutes": s.duration_minutes,
        }
        if s.distance_km:
            entry["distanceKm"] = round(s.distance_km, 2)
        if s.avg_speed_kmh is not None:
            entry["avgSpeedKmh"] = s.avg_speed_kmh
        if s.avg_heart_rate is not None:
            entry["avgHeartRate"] = s.avg_heart_rate
        if s.perceived_effort is not None:
            entry["perceivedEffort"] = s.perceived_effort
        if s.comment:
            entry["comment"] = s.comment
        digest.append(entry)
    return digest


def current_plan_digest(
    sessions: Iterable[TrainingSession],
    today: date | None = None,
    legacy_batch_rule: bool = True,
) -> list[dict]:
    """Planned generated sessions from today onwards, oldest first."""
    start_of_today = datetime.combine(today or date.today(), time.min)
    upcoming = [
        s for s in sessions
        if is_generated(s, legacy_batch_rule)
        and s.status is SessionStatus.PLANNED
        and s.date >= start_of_today
    ]
    upcoming.sort(key=lambda s: s.date)
    return [
        {
            "date": s.date.date().isoformat(),
            "discipline": s.discipline.label,
            "sport": s.sport,
            "durationMinutes": s.duration_minutes,
            "description": s.description,
            "intensity": s.intensity.value,
        }
        for s in upcoming
    ]
