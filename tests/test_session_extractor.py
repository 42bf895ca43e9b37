"""Fixture-based tests for the structured extractor.

Every reply shape seen in practice gets a fixture: tagged fences, untagged
fences with prose inside, bare arrays, and the malformed variants that must
degrade to "no sessions" with the text left untouched.
"""

import pytest

from src.agent.session_extractor import confirmation_message, extract_sessions


# ── Fixtures ────────────────────────────────────────────────────────

TAGGED_ONLY = (
    '```json\n[{"date":"2024-06-03","type":"Endurance","sport":"Running",'
    '"dureeMinutes":45,"description":"Easy run","intensite":"Modéré"}]\n```'
)

TAGGED_WITH_PROSE = """Here is your plan for the next days.

```json
[
  {"date": "2024-06-03", "type": "Endurance", "sport": "Running", "dureeMinutes": 45, "description": "Easy run", "intensite": "Light"},
  {"date": "2024-06-04", "type": "Rest", "sport": "Rest", "dureeMinutes": 0, "description": "Rest day", "intensite": "Light"},
  {"date": "2024-06-05", "type": "Threshold", "sport": "Running", "dureeMinutes": 60, "description": "3x10min at threshold", "intensite": "Intense"}
]
```


Good luck, tell me how it goes!"""

UNTAGGED_FENCE = """Plan below.

```
Sessions:
[{"date": "2024-06-06", "type": "VMA", "sport": "Course", "dureeMinutes": 50, "description": "10x400m", "intensite": "Maximal"}]
```
"""

BARE_ARRAY = (
    'Voici: [{"date": "2024-06-07", "type": "Sortie Longue", "sport": "Course", '
    '"dureeMinutes": 90, "description": "Long run", "intensite": "Modéré"}] bonne chance'
)

TRUNCATED = """Here you go:

```json
[{"date": "2024-06-03", "type": "Endurance", "dureeMinutes": 45
```"""

MISSING_DATE = """```json
[{"type": "Endurance", "sport": "Running", "dureeMinutes": 30}]
```"""

PLAIN_TEXT = "How are you feeling after yesterday's long run?"


# ── Successful extraction ───────────────────────────────────────────


class TestTaggedFence:
    def test_single_session_scenario(self):
        result = extract_sessions(TAGGED_ONLY)

        assert result.found
        assert result.strategy == "tagged_fence"
        assert len(result.sessions) == 1
        session = result.sessions[0]
        assert session.date == "2024-06-03"
        assert session.discipline == "Endurance"
        assert session.duration_minutes == 45
        assert session.sport == "Running"
        assert session.intensity == "Modéré"
        assert result.message == ""

    def test_prose_is_kept_and_fence_removed(self):
        result = extract_sessions(TAGGED_WITH_PROSE)

        assert len(result.sessions) == 3
        assert [s.date for s in result.sessions] == ["2024-06-03", "2024-06-04", "2024-06-05"]
        assert "```" not in result.message
        assert "dureeMinutes" not in result.message
        assert result.message.startswith("Here is your plan")
        assert result.message.endswith("tell me how it goes!")

    def test_blank_line_runs_collapse_to_one_blank_line(self):
        result = extract_sessions(TAGGED_WITH_PROSE)

        assert "\n\n\n" not in result.message
        assert result.message == (
            "Here is your plan for the next days.\n\nGood luck, tell me how it goes!"
        )

    def test_english_keys_accepted(self):
        text = (
            '```json\n[{"date": "2024-06-03", "discipline": "Intervals", "sport": "Cycling", '
            '"durationMinutes": "40", "intensity": "Intense"}]\n```'
        )
        session = extract_sessions(text).sessions[0]

        assert session.discipline == "Intervals"
        assert session.duration_minutes == 40
        assert session.intensity == "Intense"

    def test_non_object_members_dropped(self):
        text = '```json\n[{"date": "2024-06-03", "type": "Rest"}, 42, "noise"]\n```'
        result = extract_sessions(text)

        assert len(result.sessions) == 1
        assert result.sessions[0].discipline == "Rest"


class TestUntaggedFence:
    def test_array_found_inside_prose_in_fence(self):
        result = extract_sessions(UNTAGGED_FENCE)

        assert result.strategy == "array_fence"
        assert len(result.sessions) == 1
        assert result.sessions[0].date == "2024-06-06"
        assert result.sessions[0].discipline == "VMA"
        assert result.message == "Plan below."

    def test_earlier_unrelated_fence_and_prose_kept(self):
        text = (
            "Warm-up:\n```\njog 10 min\n```\nKeep it easy.\n\n"
            '```\n[{"date": "2024-06-06", "type": "Endurance", "dureeMinutes": 40}]\n```\nBye'
        )
        result = extract_sessions(text)

        assert result.strategy == "array_fence"
        assert len(result.sessions) == 1
        assert result.message == "Warm-up:\n```\njog 10 min\n```\nKeep it easy.\n\nBye"


class TestBareArray:
    def test_bare_array_in_running_text(self):
        result = extract_sessions(BARE_ARRAY)

        assert result.strategy == "bare_array"
        assert len(result.sessions) == 1
        assert result.sessions[0].duration_minutes == 90
        assert "[" not in result.message
        assert result.message.startswith("Voici:")
        assert result.message.endswith("bonne chance")

    def test_multiple_records(self):
        text = (
            'Plan: [{"date": "2024-06-03", "type": "Endurance"}, '
            '{"date": "2024-06-04", "type": "Rest"}]'
        )
        result = extract_sessions(text)

        assert [s.date for s in result.sessions] == ["2024-06-03", "2024-06-04"]
        assert result.message == "Plan:"

    def test_falls_through_when_earlier_match_is_not_a_session_list(self):
        text = (
            'Summary:\n```json\n{"weeks": 2}\n```\n'
            'Sessions: [{"date": "2024-06-03", "type": "Endurance", "dureeMinutes": 30}]'
        )
        result = extract_sessions(text)

        assert result.strategy == "bare_array"
        assert len(result.sessions) == 1
        assert '{"weeks": 2}' in result.message


# ── Degraded extraction ─────────────────────────────────────────────


class TestMalformedReplies:
    @pytest.mark.parametrize("text", [TRUNCATED, MISSING_DATE, PLAIN_TEXT, "", "```json\n[]\n```"])
    def test_no_sessions_and_text_unchanged(self, text):
        result = extract_sessions(text)

        assert result.sessions == []
        assert not result.found
        assert result.strategy is None
        assert result.message == text

    def test_invalid_json_in_fence_does_not_raise(self):
        text = '```json\n[{"date": "2024-06-03", "type": Endurance}]\n```'
        result = extract_sessions(text)

        assert result.sessions == []
        assert result.message == text

    def test_first_element_without_date_rejected(self):
        text = '```json\n[{"type": "Endurance"}, {"date": "2024-06-04"}]\n```'

        assert extract_sessions(text).sessions == []

    @pytest.mark.parametrize("duration", ["Infinity", "-Infinity", "NaN", "1e400", '"inf"', '"abc"'])
    def test_unusable_duration_becomes_zero(self, duration):
        text = f'```json\n[{{"date": "2024-06-03", "type": "Endurance", "dureeMinutes": {duration}}}]\n```'
        result = extract_sessions(text)

        assert len(result.sessions) == 1
        assert result.sessions[0].duration_minutes == 0
        assert result.message == ""


class TestDeterminism:
    @pytest.mark.parametrize("text", [TAGGED_WITH_PROSE, UNTAGGED_FENCE, BARE_ARRAY, TRUNCATED])
    def test_same_input_same_output(self, text):
        assert extract_sessions(text) == extract_sessions(text)


class TestConfirmationMessage:
    def test_names_the_session_count(self):
        message = confirmation_message(14)

        assert "14 sessions" in message
        assert message.startswith("Done!")
