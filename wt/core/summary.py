"""End-of-session review: an isolated, editable copy of the finished session."""

import copy
import re

from wt.common.logger import log
from wt.core.session import EDGE_SIZES, PHASES, as_number, normalize_amount

# Field kinds understood at the edit boundary
NUMBER = "number"
TIME_STRING = "timeString"
TEXT = "text"

_TIME_STRING_CHARS = re.compile(r"^[0-9ms\s]*$")
# "10m 30s", "10m30", "5m", "45s", "120" (bare number = seconds)
_DURATION_TEXT = re.compile(r"^\s*(?:(\d+)\s*m)?\s*(?:(\d+)\s*s?)?\s*$")


def validate_input(value, kind=TEXT):
    """Cheap per-keystroke check of whether a field's text could be a valid value of its kind."""
    if kind == NUMBER:
        return value.strip() == "" or as_number(value) is not None
    if kind == TIME_STRING:
        return bool(_TIME_STRING_CHARS.match(value))
    return True


def parse_duration_text(text):
    """Seconds for a duration typed as minutes/seconds text, or None if it doesn't parse."""
    match = _DURATION_TEXT.match(text)
    if match is None:
        return None
    minutes, seconds = match.groups()
    return int(minutes or 0) * 60 + int(seconds or 0)


class EditableSummary:
    """Deep copy of a Session taken when the session finishes.

    Edits only ever touch ``self.data``.  Total time and total moves are re-derived from the copy's own
    durations and stats whenever those are edited.  Every setter returns False (leaving the copy as it was)
    when the text isn't acceptable.
    """

    def __init__(self, session):
        self.data = copy.deepcopy(session)

    def to_dict(self):
        return self.data.to_dict()

    def set_duration(self, phase, text):
        if phase not in PHASES:
            raise ValueError(f"Unknown phase '{phase}'")
        seconds = parse_duration_text(text)
        if seconds is None:
            log.debug(f"Rejected duration edit for '{phase}': {text!r}")
            return False
        self.data.durations[phase] = seconds
        self.data.recount_elapsed()
        return True

    # Blank means zero. Counts must be whole and non-negative.
    def set_climbing_stat(self, key, text):
        count = 0 if text.strip() == "" else as_number(text)
        if count is None or count < 0 or count != int(count):
            log.debug(f"Rejected climbing stat edit for '{key}': {text!r}")
            return False
        self.data.climbing_stats[key] = int(count)
        self.data.recount_moves()
        return True

    def set_hangboard_field(self, index, field, text):
        hang = self.data.hangboard_sets[index]
        if field == "edge_size":
            edge = as_number(text)
            if edge not in EDGE_SIZES:
                return False
            hang.edge_size = edge
            return True
        if field not in ("weight", "duration"):
            raise ValueError(f"Unknown hangboard field '{field}'")
        if not validate_input(text, NUMBER):
            return False
        setattr(hang, field, normalize_amount(text))
        return True

    def set_weighted_pull_field(self, index, field, text):
        if field not in ("weight", "reps"):
            raise ValueError(f"Unknown weighted pull field '{field}'")
        if not validate_input(text, NUMBER):
            return False
        setattr(self.data.weighted_pulls[index], field, normalize_amount(text))
        return True

    def set_power_endurance_grade(self, index, text):
        self.data.power_endurance_sets[index].grade = text
        return True
