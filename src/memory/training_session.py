"""Training session data model: enumerations, label normalization, records.

A TrainingSession is the single persisted unit of the plan. Provenance
(`source`) decides how later operations treat it: generated sessions can be
retired by a regeneration, imported sessions are matched by their external
activity id, manual sessions are never touched by either.

Public API:
    Discipline, Intensity, SessionStatus, SessionSource
    normalize_discipline(label) -> Discipline
    normalize_intensity(label) -> Intensity
    normalize_sport(label) -> str
    TrainingSession
    ProposedSession
"""

import unicodedata
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, time
from enum import Enum

# Generated sessions carry a calendar date only; they are scheduled at this hour.
DEFAULT_SESSION_HOUR = 9


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class Discipline(Enum):
    ENDURANCE = "endurance"
    THRESHOLD = "threshold"
    MAX_AEROBIC_SPEED = "max_aerobic_speed"
    INTERVALS = "intervals"
    LONG_OUTING = "long_outing"
    RECOVERY = "recovery"
    STRENGTH = "strength"
    MOBILITY = "mobility"
    REST = "rest"
    COMPETITION = "competition"
    TEST = "test"

    @property
    def label(self) -> str:
        return _DISCIPLINE_LABELS[self]


_DISCIPLINE_LABELS = {
    Discipline.ENDURANCE: "Endurance",
    Discipline.THRESHOLD: "Threshold",
    Discipline.MAX_AEROBIC_SPEED: "MAS",
    Discipline.INTERVALS: "Intervals",
    Discipline.LONG_OUTING: "Long Outing",
    Discipline.RECOVERY: "Recovery",
    Discipline.STRENGTH: "Strength",
    Discipline.MOBILITY: "Mobility",
    Discipline.REST: "Rest",
    Discipline.COMPETITION: "Competition",
    Discipline.TEST: "Test",
}


class Intensity(Enum):
    """Ordered intensity scale: light < moderate < intense < maximal."""

    LIGHT = "light"
    MODERATE = "moderate"
    INTENSE = "intense"
    MAXIMAL = "maximal"

    @property
    def rank(self) -> int:
        return _INTENSITY_ORDER.index(self) + 1

    def __lt__(self, other):
        if not isinstance(other, Intensity):
            return NotImplemented
        return self.rank < other.rank

    def __le__(self, other):
        if not isinstance(other, Intensity):
            return NotImplemented
        return self.rank <= other.rank

    def __gt__(self, other):
        if not isinstance(other, Intensity):
            return NotImplemented
        return self.rank > other.rank

    def __ge__(self, other):
        if not isinstance(other, Intensity):
            return NotImplemented
        return self.rank >= other.rank


_INTENSITY_ORDER = [Intensity.LIGHT, Intensity.MODERATE, Intensity.INTENSE, Intensity.MAXIMAL]


class SessionStatus(Enum):
    PLANNED = "planned"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    POSTPONED = "postponed"


class SessionSource(Enum):
    GENERATED = "generated"
    IMPORTED = "imported"
    MANUAL = "manual"


# ---------------------------------------------------------------------------
# Label normalization
# ---------------------------------------------------------------------------


def _fold(label: str) -> str:
    """Lower-case, strip accents, collapse separators to single spaces."""
    decomposed = unicodedata.normalize("NFKD", label)
    stripped = "".join(c for c in decomposed if not unicodedata.combining(c))
    return " ".join(stripped.lower().replace("_", " ").replace("-", " ").split())


DISCIPLINE_ALIASES: dict[str, Discipline] = {
    "endurance": Discipline.ENDURANCE,
    "easy": Discipline.ENDURANCE,
    "footing": Discipline.ENDURANCE,
    "seuil": Discipline.THRESHOLD,
    "threshold": Discipline.THRESHOLD,
    "tempo": Discipline.THRESHOLD,
    "vma": Discipline.MAX_AEROBIC_SPEED,
    "mas": Discipline.MAX_AEROBIC_SPEED,
    "max aerobic speed": Discipline.MAX_AEROBIC_SPEED,
    "maximal aerobic speed": Discipline.MAX_AEROBIC_SPEED,
    "intervalles": Discipline.INTERVALS,
    "intervalle": Discipline.INTERVALS,
    "intervals": Discipline.INTERVALS,
    "interval": Discipline.INTERVALS,
    "fractionne": Discipline.INTERVALS,
    "sortie longue": Discipline.LONG_OUTING,
    "long outing": Discipline.LONG_OUTING,
    "long run": Discipline.LONG_OUTING,
    "long ride": Discipline.LONG_OUTING,
    "recuperation": Discipline.RECOVERY,
    "recup": Discipline.RECOVERY,
    "recovery": Discipline.RECOVERY,
    "renforcement": Discipline.STRENGTH,
    "musculation": Discipline.STRENGTH,
    "ppg": Discipline.STRENGTH,
    "strength": Discipline.STRENGTH,
    "etirements": Discipline.MOBILITY,
    "stretching": Discipline.MOBILITY,
    "mobilite": Discipline.MOBILITY,
    "mobility": Discipline.MOBILITY,
    "repos": Discipline.REST,
    "rest": Discipline.REST,
    "competition": Discipline.COMPETITION,
    "course": Discipline.COMPETITION,
    "race": Discipline.COMPETITION,
    "test": Discipline.TEST,
}

INTENSITY_ALIASES: dict[str, Intensity] = {
    "leger": Intensity.LIGHT,
    "light": Intensity.LIGHT,
    "facile": Intensity.LIGHT,
    "easy": Intensity.LIGHT,
    "modere": Intensity.MODERATE,
    "moderate": Intensity.MODERATE,
    "moyen": Intensity.MODERATE,
    "intense": Intensity.INTENSE,
    "hard": Intensity.INTENSE,
    "difficile": Intensity.INTENSE,
    "maximal": Intensity.MAXIMAL,
    "max": Intensity.MAXIMAL,
    "maximum": Intensity.MAXIMAL,
}

SPORT_ALIASES: dict[str, str] = {
    "course": "Running",
    "course a pied": "Running",
    "running": "Running",
    "run": "Running",
    "trail": "Running",
    "velo": "Cycling",
    "cyclisme": "Cycling",
    "cycling": "Cycling",
    "bike": "Cycling",
    "natation": "Swimming",
    "swimming": "Swimming",
    "swim": "Swimming",
    "renforcement": "Strength",
    "musculation": "Strength",
    "strength": "Strength",
    "etirements": "Mobility",
    "mobilite": "Mobility",
    "mobility": "Mobility",
    "yoga": "Mobility",
    "repos": "Rest",
    "rest": "Rest",
}


def normalize_discipline(label: str | None) -> Discipline:
    """Map a free-text discipline label to the enumeration (default: endurance)."""
    if not label:
        return Discipline.ENDURANCE
    folded = _fold(str(label))
    for member in Discipline:
        if folded == _fold(member.value):
            return member
    return DISCIPLINE_ALIASES.get(folded, Discipline.ENDURANCE)


def normalize_intensity(label: str | None) -> Intensity:
    """Map a free-text intensity label to the enumeration (default: moderate)."""
    if not label:
        return Intensity.MODERATE
    return INTENSITY_ALIASES.get(_fold(str(label)), Intensity.MODERATE)


def normalize_sport(label: str | None) -> str:
    """Normalize a sport label; unknown sports are kept, title-cased."""
    if not label or not str(label).strip():
        return "Running"
    folded = _fold(str(label))
    if folded in SPORT_ALIASES:
        return SPORT_ALIASES[folded]
    return " ".join(str(label).split()).title()


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------


def _new_id() -> str:
    return str(uuid.uuid4())


@dataclass
class TrainingSession:
    """A persisted training session.

    `source` is None only for records written before provenance existed;
    `provenance` reports those as generated when they carry a batch id, else manual.
    """

    date: datetime
    discipline: Discipline
    duration_minutes: int
    description: str = ""
    sport: str = "Running"
    intensity: Intensity = Intensity.MODERATE
    status: SessionStatus = SessionStatus.PLANNED
    source: SessionSource | None = SessionSource.MANUAL
    batch_id: str | None = None

    # Post-completion metrics
    distance_km: float | None = None
    avg_heart_rate: int | None = None
    perceived_effort: int | None = None
    comment: str | None = None
    external_activity_id: str | None = None

    id: str = field(default_factory=_new_id)

    def __post_init__(self):
        if self.duration_minutes < 0:
            raise ValueError(f"duration_minutes must be >= 0, got {self.duration_minutes}")
        if self.batch_id and self.source not in (SessionSource.GENERATED, None):
            raise ValueError("batch_id is only allowed on generated sessions")
        if self.source is SessionSource.IMPORTED and not self.external_activity_id:
            raise ValueError("imported sessions require an external_activity_id")
        if self.perceived_effort is not None and not 1 <= self.perceived_effort <= 10:
            raise ValueError(f"perceived_effort must be within 1-10, got {self.perceived_effort}")

    # ── Derived properties ─────────────────────────────────────────

    @property
    def provenance(self) -> SessionSource:
        if self.source is not None:
            return self.source
        # Untagged records with a batch id predate provenance tags on generated sessions
        return SessionSource.GENERATED if self.batch_id is not None else SessionSource.MANUAL

    @property
    def is_planned_generated(self) -> bool:
        return self.source is SessionSource.GENERATED and self.status is SessionStatus.PLANNED

    @property
    def counts_in_stats(self) -> bool:
        """Completed sessions count, except generated ones (the plan, not the training)."""
        return self.status is SessionStatus.COMPLETED and self.source is not SessionSource.GENERATED

    @property
    def avg_speed_kmh(self) -> float | None:
        if not self.distance_km or not self.duration_minutes:
            return None
        return round(self.distance_km / (self.duration_minutes / 60), 1)

    # ── Serialization ──────────────────────────────────────────────

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "date": self.date.isoformat(timespec="seconds"),
            "discipline": self.discipline.value,
            "sport": self.sport,
            "duration_minutes": self.duration_minutes,
            "description": self.description,
            "intensity": self.intensity.value,
            "status": self.status.value,
            "source": self.source.value if self.source else None,
            "batch_id": self.batch_id,
            "distance_km": self.distance_km,
            "avg_heart_rate": self.avg_heart_rate,
            "perceived_effort": self.perceived_effort,
            "comment": self.comment,
            "external_activity_id": self.external_activity_id,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "TrainingSession":
        source = data.get("source")
        return cls(
            id=data["id"],
            date=datetime.fromisoformat(data["date"]),
            discipline=Discipline(data["discipline"]),
            sport=data.get("sport", "Running"),
            duration_minutes=int(data.get("duration_minutes", 0)),
            description=data.get("description", ""),
            intensity=Intensity(data.get("intensity", Intensity.MODERATE.value)),
            status=SessionStatus(data.get("status", SessionStatus.PLANNED.value)),
            source=SessionSource(source) if source else None,
            batch_id=data.get("batch_id"),
            distance_km=data.get("distance_km"),
            avg_heart_rate=data.get("avg_heart_rate"),
            perceived_effort=data.get("perceived_effort"),
            comment=data.get("comment"),
            external_activity_id=data.get("external_activity_id"),
        )


def _coerce_minutes(value) -> int:
    try:
        return max(0, int(round(float(value))))
    except (TypeError, ValueError, OverflowError):
        return 0


def _first_present(record: dict, *keys, default=None):
    for key in keys:
        if record.get(key) is not None:
            return record[key]
    return default


@dataclass(frozen=True)
class ProposedSession:
    """A loosely-typed session as emitted by the generative service.

    Nothing here is validated against the enumerations yet; `to_training_session`
    does the normalization when the reconciler applies the batch.
    """

    date: str
    discipline: str = ""
    sport: str = ""
    duration_minutes: int = 0
    description: str = ""
    intensity: str = ""

    @classmethod
    def from_record(cls, record: dict) -> "ProposedSession":
        """Build from one decoded JSON object, accepting French and English keys."""
        return cls(
            date=str(record.get("date") or "").strip(),
            discipline=str(_first_present(record, "type", "discipline", default="")),
            sport=str(_first_present(record, "sport", default="")),
            duration_minutes=_coerce_minutes(
                _first_present(record, "dureeMinutes", "durationMinutes", "duration_minutes", default=0)
            ),
            description=str(_first_present(record, "description", default="")),
            intensity=str(_first_present(record, "intensite", "intensity", default="")),
        )

    def parse_date(self) -> date | None:
        """Calendar date of the session, or None when the date is unparseable."""
        try:
            return date.fromisoformat(self.date[:10])
        except ValueError:
            return None

    def to_training_session(self, batch_id: str) -> TrainingSession | None:
        """Normalize into a planned generated session; None if the date is invalid."""
        day = self.parse_date()
        if day is None:
            return None
        return TrainingSession(
            date=datetime.combine(day, time(hour=DEFAULT_SESSION_HOUR)),
            discipline=normalize_discipline(self.discipline),
            sport=normalize_sport(self.sport),
            duration_minutes=self.duration_minutes,
            description=self.description,
            intensity=normalize_intensity(self.intensity),
            status=SessionStatus.PLANNED,
            source=SessionSource.GENERATED,
            batch_id=batch_id,
        )
