"""Session data model — phases, per-phase form records and the Session aggregate.

Pure data, no UI and no timing.  Everything here round-trips through plain dicts so it can live in
state.json.
"""

import math
from dataclasses import dataclass, field, asdict


# Tracked phases in order.  The index past the last one is the summary (terminal) phase.
PHASES = ("stretching", "hangboard", "climbing", "power_endurance", "rehab")
PHASE_TITLES = {
    "stretching": "Stretching",
    "hangboard": "Hangboard",
    "climbing": "Climbing",
    "power_endurance": "Power Endurance",
    "rehab": "Rehab",
}
TERMINAL_PHASE = len(PHASES)
CLIMBING_PHASE = PHASES.index("climbing")

GRADES = ("<V5", "V5-V6", "V7-V8", "V9-V10", "V11+")
STAT_TYPES = ("attempts", "sends", "flashes")
EDGE_SIZES = (6, 8, 10)

HANGBOARD_SET_COUNT = 6
WEIGHTED_PULL_COUNT = 4
POWER_ENDURANCE_SET_COUNT = 3
DEFAULT_HANG_SECONDS = 8
DEFAULT_EDGE_SIZE = 10


def stat_key(grade, stat_type):
    """Composite climbing stat key, e.g. ``V5-V6_sends``."""
    if stat_type not in STAT_TYPES:
        raise ValueError(f"Unknown climbing stat type '{stat_type}'")
    return f"{grade}_{stat_type}"


def split_stat_key(key):
    """Inverse of stat_key().  Grades may contain '_' in theory, so split from the right."""
    grade, _, stat_type = key.rpartition("_")
    return grade, stat_type


def as_number(value):
    """Interpret a raw field value as a number, or None when it isn't one.

    Blank strings, None, booleans, NaN and anything non-numeric are all "not recorded".  Integral floats
    come back as ints so they render as ``10`` rather than ``10.0``.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = value
    else:
        text = str(value).strip()
        if not text:
            return None
        try:
            number = float(text)
        except ValueError:
            return None
    if isinstance(number, float):
        if math.isnan(number) or math.isinf(number):
            return None
        if number.is_integer():
            return int(number)
    return number


def normalize_amount(value):
    """Form-entry normalization for weights, reps and hang durations: blank or junk -> None, negatives -> 0."""
    number = as_number(value)
    if number is None:
        return None
    return max(0, number)


@dataclass
class HangboardSet:
    weight: int | float | None = None
    duration: int | float | None = DEFAULT_HANG_SECONDS
    edge_size: int = DEFAULT_EDGE_SIZE


@dataclass
class WeightedPull:
    weight: int | float | None = None
    reps: int | float | None = None


@dataclass
class PowerEnduranceSet:
    grade: str = ""


def _default_durations():
    return {name: 0 for name in PHASES}


@dataclass
class Session:
    durations: dict = field(default_factory=_default_durations)
    total_elapsed: int = 0
    total_moves: int = 0
    climbing_stats: dict = field(default_factory=dict)
    hangboard_sets: list = field(
        default_factory=lambda: [HangboardSet() for _ in range(HANGBOARD_SET_COUNT)])
    weighted_pulls: list = field(
        default_factory=lambda: [WeightedPull() for _ in range(WEIGHTED_PULL_COUNT)])
    power_endurance_sets: list = field(
        default_factory=lambda: [PowerEnduranceSet() for _ in range(POWER_ENDURANCE_SET_COUNT)])
    started_at: str | None = None
    ended_at: str | None = None

    def recount_moves(self):
        self.total_moves = sum(int(v) for v in self.climbing_stats.values())
        return self.total_moves

    def recount_elapsed(self):
        self.total_elapsed = sum(int(self.durations.get(name, 0)) for name in PHASES)
        return self.total_elapsed

    def to_dict(self):
        return asdict(self)

    # Rebuilds a Session from a saved dict.  Anything missing or malformed falls back to the defaults, and the
    # fixed-length set lists are padded/truncated back to their proper lengths.
    @staticmethod
    def from_dict(data):
        session = Session()
        if not isinstance(data, dict):
            return session

        durations = data.get("durations")
        if isinstance(durations, dict):
            for name in PHASES:
                seconds = as_number(durations.get(name))
                session.durations[name] = int(seconds) if seconds is not None else 0

        stats = data.get("climbing_stats")
        if isinstance(stats, dict):
            for key, count in stats.items():
                count = as_number(count)
                session.climbing_stats[str(key)] = max(0, int(count)) if count is not None else 0
        session.recount_moves()

        session.total_elapsed = int(as_number(data.get("total_elapsed")) or 0)

        def _rows(key, count):
            rows = data.get(key)
            rows = rows if isinstance(rows, list) else []
            rows = [r if isinstance(r, dict) else {} for r in rows[:count]]
            return rows + [{}] * (count - len(rows))

        session.hangboard_sets = []
        for row in _rows("hangboard_sets", HANGBOARD_SET_COUNT):
            edge = as_number(row.get("edge_size"))
            session.hangboard_sets.append(HangboardSet(
                weight=normalize_amount(row.get("weight")),
                duration=normalize_amount(row.get("duration", DEFAULT_HANG_SECONDS)),
                edge_size=edge if edge in EDGE_SIZES else DEFAULT_EDGE_SIZE,
            ))
        session.weighted_pulls = [
            WeightedPull(weight=normalize_amount(row.get("weight")), reps=normalize_amount(row.get("reps")))
            for row in _rows("weighted_pulls", WEIGHTED_PULL_COUNT)
        ]
        session.power_endurance_sets = [
            PowerEnduranceSet(grade=str(row.get("grade") or ""))
            for row in _rows("power_endurance_sets", POWER_ENDURANCE_SET_COUNT)
        ]

        session.started_at = data.get("started_at")
        session.ended_at = data.get("ended_at")
        return session
