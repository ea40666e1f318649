"""Flat renderings of a finished session: the emailed CSV summary and the attribute rows sent to the backend.

Both come from the same filtering rules.  Numeric fields that are blank or garbage count as "not recorded"
and are left out instead of being written as 0; only total moves and the climbing counts default to 0.
"""

import csv
import io
from urllib.parse import quote

from wt.core.session import GRADES, PHASES, PHASE_TITLES, STAT_TYPES, as_number, split_stat_key

CSV_HEADER = ("Category", "Value", "Unit")


def format_duration(seconds):
    """``<minutes>m <seconds>s``, e.g. 300 -> ``5m 0s``."""
    seconds = max(0, int(seconds or 0))
    return f"{seconds // 60}m {seconds % 60}s"


def format_total_time(seconds):
    """``H:MM``, e.g. 1575 -> ``0:26``."""
    seconds = max(0, int(seconds or 0))
    return f"{seconds // 3600}:{(seconds % 3600) // 60:02d}"


def _count(value):
    number = as_number(value)
    return int(number) if number is not None else 0


# Climbing stats with a positive count, known grades/stat types first in display order, anything else after.
def _climbing_entries(stats):
    ordered = []
    seen = set()
    for grade in GRADES:
        for stat_type in STAT_TYPES:
            key = f"{grade}_{stat_type}"
            if key in stats:
                seen.add(key)
                ordered.append((grade, stat_type, _count(stats[key])))
    for key in sorted(set(stats) - seen):
        grade, stat_type = split_stat_key(key)
        ordered.append((grade, stat_type, _count(stats[key])))
    return [entry for entry in ordered if entry[2] > 0]


# Hangboard sets are only kept when their weight is a real, non-negative number.
def _hangboard_entries(sets):
    for number, hang in enumerate(sets, start=1):
        weight = as_number(hang.weight)
        if weight is None or weight < 0:
            continue
        yield number, weight, as_number(hang.duration), as_number(hang.edge_size)


def _weighted_pull_entries(pulls):
    for number, pull in enumerate(pulls, start=1):
        weight, reps = as_number(pull.weight), as_number(pull.reps)
        if weight is None and reps is None:
            continue
        yield number, weight, reps


def _power_endurance_entries(climbs):
    for number, climb in enumerate(climbs, start=1):
        grade = str(climb.grade or "").strip()
        if grade:
            yield number, grade


def build_csv(data):
    """Render a Session (or summary snapshot) as the ``Category,Value,Unit`` text summary."""
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(CSV_HEADER)

    for name in PHASES:
        writer.writerow([f"{PHASE_TITLES[name]} Duration", format_duration(data.durations.get(name, 0)), "min:sec"])
    writer.writerow(["Total Time", format_total_time(data.total_elapsed), "hours:minutes"])
    writer.writerow(["Total Moves (Climbing)", _count(data.total_moves), "moves"])

    writer.writerow([])
    writer.writerow(["Climbing Details"])
    writer.writerow(["Grade", "Type", "Count"])
    for grade, stat_type, count in _climbing_entries(data.climbing_stats):
        writer.writerow([grade, stat_type, count])

    writer.writerow([])
    writer.writerow(["Hangboard Sets Data"])
    for number, weight, duration, edge_size in _hangboard_entries(data.hangboard_sets):
        writer.writerow([f"Set {number} Weight", weight, "lbs"])
        if duration is not None:
            writer.writerow([f"Set {number} Duration", duration, "seconds"])
        if edge_size is not None:
            writer.writerow([f"Set {number} Edge Size", edge_size, "mm"])

    writer.writerow([])
    writer.writerow(["Weighted Pulls Sets Data"])
    for number, weight, reps in _weighted_pull_entries(data.weighted_pulls):
        if weight is not None:
            writer.writerow([f"Set {number} Weight", weight, "lbs"])
        if reps is not None:
            writer.writerow([f"Set {number} Reps", reps, "reps"])

    writer.writerow([])
    writer.writerow(["Power Endurance Climbs Data"])
    for number, grade in _power_endurance_entries(data.power_endurance_sets):
        writer.writerow([f"Climb {number} Grade", grade, "grade"])

    return buffer.getvalue()


def build_attribute_rows(data, session_id):
    """One ``session_attributes`` row per recorded value.  ``value`` is always text."""
    rows = []

    def add(category, variable_name, value, unit):
        rows.append({
            "session_id": session_id,
            "category": category,
            "variable_name": variable_name,
            "value": str(value),
            "unit": unit,
        })

    for name in PHASES:
        add("duration", name, int(data.durations.get(name, 0) or 0), "seconds")
    add("summary", "total_time", int(data.total_elapsed or 0), "seconds")
    add("summary", "total_moves", _count(data.total_moves), "moves")

    for grade, stat_type, count in _climbing_entries(data.climbing_stats):
        add("climbing", f"{grade}_{stat_type}", count, "count")

    for number, weight, duration, edge_size in _hangboard_entries(data.hangboard_sets):
        add("hangboard", f"set_{number}_weight", weight, "lbs")
        if duration is not None:
            add("hangboard", f"set_{number}_duration", duration, "seconds")
        if edge_size is not None:
            add("hangboard", f"set_{number}_edge_size", edge_size, "mm")

    for number, weight, reps in _weighted_pull_entries(data.weighted_pulls):
        if weight is not None:
            add("weighted_pulls", f"set_{number}_weight", weight, "lbs")
        if reps is not None:
            add("weighted_pulls", f"set_{number}_reps", reps, "reps")

    for number, grade in _power_endurance_entries(data.power_endurance_sets):
        add("power_endurance", f"climb_{number}_grade", grade, "grade")

    return rows


def build_mailto(recipient, subject, body):
    """``mailto:`` URL that opens a compose window with the CSV summary as its body."""
    return f"mailto:{quote(recipient or '', safe='@')}?subject={quote(subject or '')}&body={quote(body)}"
