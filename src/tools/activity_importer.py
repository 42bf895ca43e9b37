"""Merge externally fetched activities into the session store.

An activity matches an existing session when the external ids are equal or,
as a fallback, when both start at the same minute. Matched activities are
skipped (first write wins: an existing session is never overwritten), so
importing the same list twice inserts nothing the second time.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable

from src.memory.session_store import SessionStore
from src.memory.training_session import (
    Discipline,
    Intensity,
    SessionSource,
    SessionStatus,
    TrainingSession,
)
from src.tools.strava_client import ExternalActivity

logger = logging.getLogger(__name__)

DEFAULT_SPORT = "Running"

# Provider activity type -> internal sport vocabulary
SPORT_TRANSLATIONS = {
    "Run": "Running",
    "TrailRun": "Running",
    "VirtualRun": "Running",
    "Ride": "Cycling",
    "VirtualRide": "Cycling",
    "EBikeRide": "Cycling",
    "Swim": "Swimming",
    "WeightTraining": "Strength",
    "Workout": "Strength",
    "Yoga": "Mobility",
}


@dataclass
class ImportResult:
    inserted: list[TrainingSession] = field(default_factory=list)
    skipped: int = 0

    @property
    def inserted_count(self) -> int:
        return len(self.inserted)


def translate_sport(activity_type: str) -> str:
    return SPORT_TRANSLATIONS.get(activity_type, DEFAULT_SPORT)


def _minute(dt: datetime) -> datetime:
    return dt.replace(second=0, microsecond=0, tzinfo=None)


def to_training_session(activity: ExternalActivity) -> TrainingSession:
    """Translate one provider activity into a completed imported session."""
    return TrainingSession(
        date=activity.start,
        # The provider has no notion of our disciplines
        discipline=Discipline.ENDURANCE,
        sport=translate_sport(activity.type),
        duration_minutes=activity.moving_time_s // 60,
        description=activity.name,
        intensity=Intensity.MODERATE,
        status=SessionStatus.COMPLETED,
        source=SessionSource.IMPORTED,
        distance_km=round(activity.distance_m / 1000, 2) if activity.distance_m else None,
        avg_heart_rate=int(activity.average_heartrate) if activity.average_heartrate else None,
        external_activity_id=activity.id,
    )


class ActivityImporter:
    """Deduplicating importer for provider activities."""

    def __init__(self, store: SessionStore):
        self.store = store

    def import_activities(self, activities: Iterable[ExternalActivity]) -> ImportResult:
        """Insert the activities that match no existing session."""
        result = ImportResult()
        with self.store.transaction():
            existing = self.store.all()
            known_ids = {s.external_activity_id for s in existing if s.external_activity_id}
            known_minutes = {_minute(s.date) for s in existing}

            for activity in activities:
                if activity.id in known_ids or _minute(activity.start) in known_minutes:
                    result.skipped += 1
                    continue
                result.inserted.append(to_training_session(activity))
                # Duplicates within the same fetch are matched too
                known_ids.add(activity.id)
                known_minutes.add(_minute(activity.start))

            if result.inserted:
                self.store.insert_many(result.inserted)
        logger.info(
            "Activity import: %d new, %d already present",
            result.inserted_count, result.skipped,
        )
        return result
