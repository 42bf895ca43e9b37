"""Extract proposed training sessions from a free-form coach reply.

The generative service is asked to append a JSON array of sessions to its
reply, but does so inconsistently: sometimes in a ```json fence, sometimes in
an untagged fence with prose around the array, sometimes with no fence at
all. Strategies are tried in a fixed order and the first one that yields a
valid session list wins.

The function is pure: same text in, same result out, and malformed JSON only
ever degrades to "no sessions".

Public API:
    extract_sessions(text) -> ExtractionResult
    confirmation_message(count) -> str
"""

import json
import logging
import re
from dataclasses import dataclass, field

from src.memory.training_session import ProposedSession

logger = logging.getLogger(__name__)

# Ordered strategies: (name, pattern). Group 1 is the candidate JSON text,
# group 0 is the span removed from the message on success.
EXTRACTION_STRATEGIES: list[tuple[str, re.Pattern]] = [
    ("tagged_fence", re.compile(r"```json\s*([\s\S]*?)\s*```")),
    ("array_fence", re.compile(
        r"```\s*((?:(?!```)[\s\S])*?\[\s*\{(?:(?!```)[\s\S])*?\}\s*\](?:(?!```)[\s\S])*?)\s*```"
    )),
    ("bare_array", re.compile(r"(\[\s*\{\s*\"date\"[\s\S]*?\}\s*\])")),
]

_INNER_ARRAY = re.compile(r"(\[\s*\{[\s\S]*\}\s*\])")
_BLANK_RUNS = re.compile(r"\n{3,}")


@dataclass(frozen=True)
class ExtractionResult:
    message: str
    sessions: list[ProposedSession] = field(default_factory=list)
    strategy: str | None = None

    @property
    def found(self) -> bool:
        return bool(self.sessions)


def confirmation_message(count: int) -> str:
    """Short canned reply that replaces the raw text once a plan was extracted."""
    return (
        "Done! I've built your personalized training plan.\n\n"
        f"You have {count} sessions scheduled. Check your planning for the details!"
    )


def extract_sessions(text: str) -> ExtractionResult:
    """Split a coach reply into (cleaned message, proposed sessions)."""
    for name, pattern in EXTRACTION_STRATEGIES:
        match = pattern.search(text)
        if not match:
            continue

        records = _decode_records(match.group(1))
        if records is None:
            continue

        sessions = [ProposedSession.from_record(r) for r in records if isinstance(r, dict)]
        cleaned = text.replace(match.group(0), "", 1).strip()
        cleaned = _BLANK_RUNS.sub("\n\n", cleaned)
        logger.debug("Extracted %d sessions via %s", len(sessions), name)
        return ExtractionResult(message=cleaned, sessions=sessions, strategy=name)

    return ExtractionResult(message=text)


def _decode_records(candidate: str) -> list | None:
    """Decode candidate text into a session list, or None if it isn't one."""
    candidate = candidate.strip()
    if not candidate.startswith("["):
        inner = _INNER_ARRAY.search(candidate)
        if inner:
            candidate = inner.group(1)

    try:
        parsed = json.loads(candidate)
    except json.JSONDecodeError as e:
        logger.warning("Could not decode sessions JSON (%s): %.200s", e, candidate)
        return None

    if not _looks_like_sessions(parsed):
        return None
    return parsed


def _looks_like_sessions(parsed) -> bool:
    """A non-empty list whose first element carries a date."""
    return (
        isinstance(parsed, list)
        and len(parsed) > 0
        and isinstance(parsed[0], dict)
        and bool(parsed[0].get("date"))
    )
