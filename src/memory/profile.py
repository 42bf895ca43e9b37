"""Athlete profile creation, persistence, and pace helpers."""

import json
from dataclasses import asdict, dataclass, field, fields
from datetime import date, datetime, timedelta
from pathlib import Path

DATA_DIR = Path(__file__).parent.parent.parent / "data"
PROFILE_PATH = DATA_DIR / "athlete" / "profile.json"

# Share of max aerobic speed held at each reference pace
PACE_FRACTIONS = {
    "endurance": 0.70,
    "threshold": 0.85,
    "mas": 1.00,
}

# Share of max aerobic speed sustainable over each reference race distance
RACE_MAS_FRACTIONS = {
    "5k": (5.0, 0.93),
    "10k": (10.0, 0.90),
    "half_marathon": (21.1, 0.85),
    "marathon": (42.195, 0.80),
}


@dataclass
class AthleteProfile:
    """Singleton-per-user athlete record. Paces are seconds per kilometer."""

    name: str = ""
    goal_type: str = "Marathon"
    goal_date: date = field(default_factory=lambda: date.today() + timedelta(days=90))
    max_aerobic_speed_kmh: float | None = None
    max_heart_rate: int | None = None
    resting_heart_rate: int | None = None
    endurance_pace_s_per_km: int | None = None
    threshold_pace_s_per_km: int | None = None
    mas_pace_s_per_km: int | None = None
    sports: list[str] = field(default_factory=lambda: ["Running"])
    available_days: list[int] = field(default_factory=lambda: [1, 3, 5])  # 0=Sunday
    weekly_hours: int = 5
    injuries: str | None = None
    notes: str | None = None
    onboarding_complete: bool = False
    created_at: str = field(default_factory=lambda: datetime.now().isoformat(timespec="seconds"))

    def weeks_remaining(self, today: date | None = None) -> int:
        today = today or date.today()
        return max(0, (self.goal_date - today).days // 7)

    def effective_paces(self) -> dict[str, int | None]:
        """Custom paces where set, otherwise derived from max aerobic speed."""
        derived = paces_from_mas(self.max_aerobic_speed_kmh) if self.max_aerobic_speed_kmh else {}
        return {
            "endurance": self.endurance_pace_s_per_km or derived.get("endurance"),
            "threshold": self.threshold_pace_s_per_km or derived.get("threshold"),
            "mas": self.mas_pace_s_per_km or derived.get("mas"),
        }

    def to_dict(self) -> dict:
        data = asdict(self)
        data["goal_date"] = self.goal_date.isoformat()
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "AthleteProfile":
        known = {f.name for f in fields(cls)}
        kwargs = {k: v for k, v in data.items() if k in known}
        if "goal_date" in kwargs and isinstance(kwargs["goal_date"], str):
            kwargs["goal_date"] = date.fromisoformat(kwargs["goal_date"][:10])
        return cls(**kwargs)


# ---------------------------------------------------------------------------
# Pace helpers
# ---------------------------------------------------------------------------


def format_pace(seconds_per_km: int | None) -> str:
    """120 -> "2'00"; None -> "--'--"."""
    if seconds_per_km is None:
        return "--'--"
    minutes, seconds = divmod(int(seconds_per_km), 60)
    return f"{minutes}'{seconds:02d}"


def parse_pace(text: str) -> int | None:
    """Inverse of format_pace. Returns None for anything not shaped M'SS."""
    parts = text.strip().split("'")
    if len(parts) != 2:
        return None
    try:
        minutes, seconds = int(parts[0]), int(parts[1])
    except ValueError:
        return None
    if minutes < 0 or not 0 <= seconds < 60:
        return None
    return minutes * 60 + seconds


def paces_from_mas(mas_kmh: float) -> dict[str, int]:
    """Reference paces (s/km) at fixed fractions of max aerobic speed."""
    if mas_kmh <= 0:
        raise ValueError(f"max aerobic speed must be positive, got {mas_kmh}")
    return {
        name: int(round(3600 / (mas_kmh * fraction)))
        for name, fraction in PACE_FRACTIONS.items()
    }


def estimate_mas_from_race(race: str, total_seconds: float) -> float | None:
    """Estimate max aerobic speed (km/h) from a reference race result."""
    if race not in RACE_MAS_FRACTIONS or total_seconds <= 0:
        return None
    distance_km, fraction = RACE_MAS_FRACTIONS[race]
    average_kmh = distance_km / (total_seconds / 3600)
    return round(average_kmh / fraction, 1)


def revise_objective(
    profile: AthleteProfile,
    goal_type: str | None = None,
    goal_date: date | None = None,
    max_aerobic_speed_kmh: float | None = None,
    custom_paces: dict[str, int] | None = None,
) -> bool:
    """Apply a wizard-style objective revision in place.

    Without custom_paces the stored paces are cleared so they derive from max
    aerobic speed again. Returns True when MAS, goal type, or goal date changed,
    which is the signal that the current plan should be regenerated.
    """
    before = (profile.max_aerobic_speed_kmh, profile.goal_type, profile.goal_date)

    if goal_type is not None:
        profile.goal_type = goal_type
    if goal_date is not None:
        profile.goal_date = goal_date
    if max_aerobic_speed_kmh is not None:
        profile.max_aerobic_speed_kmh = max_aerobic_speed_kmh

    if custom_paces:
        profile.endurance_pace_s_per_km = custom_paces.get("endurance", profile.endurance_pace_s_per_km)
        profile.threshold_pace_s_per_km = custom_paces.get("threshold", profile.threshold_pace_s_per_km)
        profile.mas_pace_s_per_km = custom_paces.get("mas", profile.mas_pace_s_per_km)
    else:
        profile.endurance_pace_s_per_km = None
        profile.threshold_pace_s_per_km = None
        profile.mas_pace_s_per_km = None

    return before != (profile.max_aerobic_speed_kmh, profile.goal_type, profile.goal_date)


# ---------------------------------------------------------------------------
# Persistence
# ---------------------------------------------------------------------------


def save_profile(profile: AthleteProfile, path: str | Path | None = None) -> Path:
    """Save athlete profile to data/athlete/profile.json. Returns the path."""
    dest = Path(path) if path else PROFILE_PATH
    dest.parent.mkdir(parents=True, exist_ok=True)
    dest.write_text(json.dumps(profile.to_dict(), indent=2))
    return dest


def load_profile(path: str | Path | None = None) -> AthleteProfile | None:
    """Load athlete profile from disk. Returns None if no profile exists yet."""
    src = Path(path) if path else PROFILE_PATH
    if not src.exists():
        return None
    return AthleteProfile.from_dict(json.loads(src.read_text()))
