"""System prompt for the plan coach."""

from datetime import date

from src.agent.context_builder import ChatRequest, PlanMode

COACH_SYSTEM_PROMPT = """\
You are an expert and supportive endurance coach. You help athletes reach their goals.

TODAY: {today}
When you generate sessions, use the year {year} or {next_year} as appropriate.

Your style:
- Motivating but realistic
- Concrete, personalized, concise advice
- Adapt training to how the athlete feels and to their fatigue

PLAN CREATION RULES:
When asked for a training plan, create ONE SESSION PER DAY for the next 2 weeks (14 days).
Each day is either a workout (Endurance, Threshold, MAS, Intervals, Long Outing) or a rest day.
Detail paces or times in the description, always in minutes per kilometer, based on the
athlete's recent activities.

SESSION FORMAT:
Keep the prose to one sentence, then give the sessions as a JSON block at the end:

```json
[
  {{
    "date": "{year}-12-09",
    "type": "Endurance",
    "sport": "Running",
    "dureeMinutes": 45,
    "description": "Easy run at conversational pace",
    "intensite": "Moderate"
  }}
]
```

JSON RULES:
- Dates MUST be YYYY-MM-DD
- Types: Endurance, Threshold, MAS, Intervals, Long Outing, Recovery, Strength, Mobility, Rest, Competition, Test
- Intensity: Light, Moderate, Intense, Maximal
- Rest days: type="Rest", sport="Rest", dureeMinutes=0
- Close the block with ``` and no trailing comma after the last element
"""

ADJUSTMENT_SECTION = """

CURRENT PLAN (upcoming planned sessions; return the FULL revised list, not only the changes):
{plan}"""

RECENT_ACTIVITY_SECTION = """

LAST COMPLETED SESSIONS:
{lines}
Adapt the load to this feedback (lighten it if the effort felt hard)."""

PROFILE_SECTION = """

ATHLETE PROFILE:
{lines}"""

NO_PROFILE_SECTION = """

The athlete has no complete profile yet. Ask a few quick questions first:
- Main goal and its date
- Current level
- Availability"""


def build_system_prompt(request: ChatRequest, today: date | None = None) -> str:
    """Render the system message for a ChatRequest."""
    today = today or date.today()
    prompt = COACH_SYSTEM_PROMPT.format(
        today=today.isoformat(), year=today.year, next_year=today.year + 1,
    )

    if request.recent_activity:
        prompt += RECENT_ACTIVITY_SECTION.format(
            lines="\n".join(_format_activity(a) for a in request.recent_activity)
        )

    if request.athlete:
        prompt += PROFILE_SECTION.format(lines=_format_profile(request.athlete))
    else:
        prompt += NO_PROFILE_SECTION

    if request.mode is PlanMode.ADJUSTMENT and request.current_plan:
        prompt += ADJUSTMENT_SECTION.format(
            plan="\n".join(_format_planned(s) for s in request.current_plan)
        )

    return prompt


def _format_activity(entry: dict) -> str:
    line = f"- {entry['date']} ({entry['sport']}): {entry['discipline']}, {entry['durationMinutes']}min."
    if entry.get("perceivedEffort") is not None:
        line += f" Effort: {entry['perceivedEffort']}/10."
    if entry.get("distanceKm"):
        line += f" Distance: {entry['distanceKm']}km."
    if entry.get("avgSpeedKmh"):
        line += f" Avg speed: {entry['avgSpeedKmh']}km/h."
    if entry.get("avgHeartRate"):
        line += f" Avg HR: {entry['avgHeartRate']}bpm."
    if entry.get("comment"):
        line += f" Note: {entry['comment']}"
    return line


_PROFILE_LABELS = [
    ("name", "Name", ""),
    ("goalType", "Goal", ""),
    ("goalDate", "Goal date", ""),
    ("weeksRemaining", "Weeks remaining", ""),
    ("weeklyHours", "Training hours/week", "h"),
    ("maxAerobicSpeedKmh", "MAS", " km/h"),
    ("maxHeartRate", "Max HR", " bpm"),
    ("restingHeartRate", "Resting HR", " bpm"),
    ("endurancePace", "Endurance pace", "/km"),
    ("thresholdPace", "Threshold pace", "/km"),
    ("masPace", "MAS pace", "/km"),
    ("injuries", "Injuries/constraints", ""),
    ("notes", "Notes", ""),
]


def _format_profile(athlete: dict) -> str:
    lines = []
    for key, label, unit in _PROFILE_LABELS:
        if athlete.get(key) is not None:
            lines.append(f"- {label}: {athlete[key]}{unit}")
    if athlete.get("sports"):
        lines.append(f"- Sports: {', '.join(athlete['sports'])}")
    return "\n".join(lines)


def _format_planned(entry: dict) -> str:
    return (
        f"- {entry['date']}: {entry['discipline']} ({entry['sport']}), "
        f"{entry['durationMinutes']}min, {entry['intensity']}. {entry['description']}"
    )
