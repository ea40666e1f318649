"""Widget builders for the phase pages and the summary page.

Builders return a (container, widget_dict) tuple, same as always: the container goes into the page layout and
the dict maps logical names to sub-widgets the window updates later.  Nothing here owns session data; every
edit is handed to a callback.
"""

from PySide6.QtCore import Qt
from PySide6.QtGui import QFont
from PySide6.QtWidgets import (
    QButtonGroup,
    QFormLayout,
    QGridLayout,
    QGroupBox,
    QHBoxLayout,
    QLabel,
    QLineEdit,
    QPushButton,
    QRadioButton,
    QVBoxLayout,
    QWidget,
)

from wt.core.counter import TallyCounter
from wt.core.export import format_duration, format_total_time
from wt.core.session import EDGE_SIZES, GRADES, PHASES, PHASE_TITLES, STAT_TYPES, split_stat_key, stat_key
from wt.core.summary import NUMBER, TEXT, TIME_STRING, validate_input

_VALID_CSS = "QLineEdit { border: 1px solid #cccccc; border-radius: 4px; padding: 4px; background: white; }"
_INVALID_CSS = "QLineEdit { border: 1px solid red; border-radius: 4px; padding: 4px; background: #fff0f0; }"
_READONLY_CSS = "QLineEdit { border: 1px solid #cccccc; border-radius: 4px; padding: 4px; " \
                "background: #f0f0f0; color: #555555; }"


def _format_time(seconds):
    """Format elapsed seconds as HH:MM:SS. Negative values clamp to zero."""
    seconds = max(0, int(seconds))
    h, rem = divmod(seconds, 3600)
    m, s = divmod(rem, 60)
    return f"{h:02d}:{m:02d}:{s:02d}"


def _text(value):
    return "" if value is None else str(value)


def _heading(text, size=14):
    lbl = QLabel(text)
    f = QFont()
    f.setPointSize(size)
    f.setBold(True)
    lbl.setFont(f)
    return lbl


class CounterWidget(QWidget):
    """``-  value  +`` around a TallyCounter."""

    def __init__(self, label, on_delta=None, step=1, value=0, parent=None):
        super().__init__(parent)
        self.counter = TallyCounter(label=label, step=step, value=value, on_delta=on_delta)

        lay = QHBoxLayout(self)
        lay.setContentsMargins(0, 0, 0, 0)
        lay.addWidget(QLabel(label))
        minus = QPushButton("-")
        minus.setFixedWidth(32)
        minus.clicked.connect(self._on_minus)
        lay.addWidget(minus)
        self._value_lbl = QLabel(str(self.counter.value))
        self._value_lbl.setMinimumWidth(28)
        self._value_lbl.setAlignment(Qt.AlignCenter)
        lay.addWidget(self._value_lbl)
        plus = QPushButton("+")
        plus.setFixedWidth(32)
        plus.clicked.connect(self._on_plus)
        lay.addWidget(plus)

    def _on_plus(self):
        self.counter.increment()
        self._value_lbl.setText(str(self.counter.value))

    def _on_minus(self):
        self.counter.decrement()
        self._value_lbl.setText(str(self.counter.value))


class EditableField(QWidget):
    """Label + line edit + unit, validated per keystroke.

    The text always updates as typed.  Only text that passes validation is handed to ``on_change``; if it
    fails (or ``on_change`` returns False) the field is flagged red until the next accepted edit or refresh().
    """

    def __init__(self, label, value, on_change=None, kind=TEXT, unit="", read_only=False, max_length=None,
                 parent=None):
        super().__init__(parent)
        self.kind = kind
        self.on_change = on_change
        self.read_only = read_only
        self.valid = True

        lay = QHBoxLayout(self)
        lay.setContentsMargins(0, 0, 0, 0)
        if label:
            name_lbl = QLabel(f"{label}:")
            f = name_lbl.font()
            f.setBold(True)
            name_lbl.setFont(f)
            lay.addWidget(name_lbl)
        self.edit = QLineEdit(_text(value))
        self.edit.setReadOnly(read_only)
        if max_length:
            self.edit.setMaxLength(max_length)
        self.edit.textEdited.connect(self._on_edited)
        lay.addWidget(self.edit, 1)
        if unit:
            lay.addWidget(QLabel(unit))
        self._set_valid(True)

    def _set_valid(self, valid):
        self.valid = valid
        if self.read_only:
            self.edit.setStyleSheet(_READONLY_CSS)
        else:
            self.edit.setStyleSheet(_VALID_CSS if valid else _INVALID_CSS)

    def _on_edited(self, text):
        valid = validate_input(text, self.kind)
        if valid and self.on_change is not None:
            valid = self.on_change(text) is not False
        self._set_valid(valid)

    def refresh(self, value):
        self.edit.setText(_text(value))
        self._set_valid(True)


#region === Phase pages ===

def build_hangboard_form(session, on_hang_change, on_pull_change):
    """Six hangboard sets (weight, hang time, edge size) and four weighted-pull sets."""
    page = QWidget()
    lay = QVBoxLayout(page)
    widgets = {"hang": [], "pulls": [], "edge_groups": []}

    lay.addWidget(_heading("Hangboard Sets", 12))
    grid = QGridLayout()
    for col, title in enumerate(("", "Weight Added (lbs)", "Hang Duration (s)", "Edge Size")):
        grid.addWidget(QLabel(title), 0, col)
    for i, hang in enumerate(session.hangboard_sets):
        row = i + 1
        grid.addWidget(QLabel(f"Set {row}"), row, 0)

        weight = QLineEdit(_text(hang.weight))
        weight.setPlaceholderText("e.g., 10")
        weight.textEdited.connect(lambda text, idx=i: on_hang_change(idx, "weight", text))
        grid.addWidget(weight, row, 1)

        duration = QLineEdit(_text(hang.duration))
        duration.textEdited.connect(lambda text, idx=i: on_hang_change(idx, "duration", text))
        grid.addWidget(duration, row, 2)

        edge_box = QWidget()
        edge_lay = QHBoxLayout(edge_box)
        edge_lay.setContentsMargins(0, 0, 0, 0)
        group = QButtonGroup(edge_box)
        for size in EDGE_SIZES:
            radio = QRadioButton(f"{size}mm")
            radio.setChecked(hang.edge_size == size)
            radio.toggled.connect(
                lambda checked, idx=i, s=size: checked and on_hang_change(idx, "edge_size", s))
            group.addButton(radio, size)
            edge_lay.addWidget(radio)
        grid.addWidget(edge_box, row, 3)

        widgets["hang"].append({"weight": weight, "duration": duration})
        widgets["edge_groups"].append(group)
    lay.addLayout(grid)

    lay.addWidget(_heading("Weighted Pulls", 12))
    pull_grid = QGridLayout()
    pull_grid.addWidget(QLabel("Weight Added (lbs)"), 0, 1)
    pull_grid.addWidget(QLabel("Number of Reps"), 0, 2)
    for i, pull in enumerate(session.weighted_pulls):
        row = i + 1
        pull_grid.addWidget(QLabel(f"Set {row}"), row, 0)
        weight = QLineEdit(_text(pull.weight))
        weight.setPlaceholderText("e.g., 10")
        weight.textEdited.connect(lambda text, idx=i: on_pull_change(idx, "weight", text))
        pull_grid.addWidget(weight, row, 1)
        reps = QLineEdit(_text(pull.reps))
        reps.setPlaceholderText("e.g., 5")
        reps.textEdited.connect(lambda text, idx=i: on_pull_change(idx, "reps", text))
        pull_grid.addWidget(reps, row, 2)
        widgets["pulls"].append({"weight": weight, "reps": reps})
    lay.addLayout(pull_grid)
    lay.addStretch()
    return page, widgets


def build_climbing_groups(session, on_stat):
    """One box per grade with Attempts/Sends/Flashes counters feeding ``on_stat(grade, stat_type, delta)``."""
    page = QWidget()
    lay = QVBoxLayout(page)
    widgets = {"counters": {}}
    widgets["total"] = _heading(f"Total Moves: {session.total_moves}", 12)
    lay.addWidget(widgets["total"])

    for grade in GRADES:
        box = QGroupBox(grade)
        box_lay = QHBoxLayout(box)
        for stat_type in STAT_TYPES:
            key = stat_key(grade, stat_type)
            counter = CounterWidget(
                stat_type.capitalize(),
                on_delta=lambda delta, g=grade, st=stat_type: on_stat(g, st, delta),
                value=session.climbing_stats.get(key, 0),
            )
            box_lay.addWidget(counter)
            widgets["counters"][key] = counter
        lay.addWidget(box)
    lay.addStretch()
    return page, widgets


def build_power_endurance_inputs(session, on_grade):
    page = QWidget()
    lay = QFormLayout(page)
    widgets = {"grades": []}
    for i, climb in enumerate(session.power_endurance_sets):
        edit = QLineEdit(climb.grade)
        edit.setPlaceholderText("e.g., V6")
        edit.setMaxLength(10)
        edit.textEdited.connect(lambda text, idx=i: on_grade(idx, text))
        lay.addRow(f"Climb {i + 1} Grade:", edit)
        widgets["grades"].append(edit)
    return page, widgets


def build_rehab_page():
    page = QWidget()
    lay = QVBoxLayout(page)
    counter = CounterWidget("Rehab Sets")
    lay.addWidget(counter)
    lay.addStretch()
    return page, {"counter": counter}

#endregion === Phase pages ===

#region === Summary page ===

def build_summary_fields(summary, on_totals_changed):
    """Editable fields for every part of the summary snapshot.

    ``on_totals_changed`` is called after any accepted duration or stat edit so the read-only totals can be
    refreshed from the snapshot.
    """
    data = summary.data
    page = QWidget()
    lay = QVBoxLayout(page)
    widgets = {}

    def _after(result):
        if result:
            on_totals_changed()
        return result

    lay.addWidget(_heading("Durations", 12))
    for name in PHASES:
        lay.addWidget(EditableField(
            f"{PHASE_TITLES[name]} Duration", format_duration(data.durations[name]),
            on_change=lambda text, n=name: _after(summary.set_duration(n, text)),
            kind=TIME_STRING,
        ))
    widgets["total_time"] = EditableField("Total Time", format_total_time(data.total_elapsed),
                                          unit="H:MM", read_only=True)
    lay.addWidget(widgets["total_time"])
    widgets["total_moves"] = EditableField("Total Moves (Climbing)", data.total_moves, read_only=True)
    lay.addWidget(widgets["total_moves"])

    if data.climbing_stats:
        lay.addWidget(_heading("Climbing Details", 12))
        for key in sorted(data.climbing_stats):
            grade, stat_type = split_stat_key(key)
            lay.addWidget(EditableField(
                f"{grade} {stat_type}", data.climbing_stats[key],
                on_change=lambda text, k=key: _after(summary.set_climbing_stat(k, text)),
                kind=NUMBER,
            ))

    lay.addWidget(_heading("Hangboard Sets", 12))
    for i, hang in enumerate(data.hangboard_sets):
        row = QHBoxLayout()
        row.addWidget(QLabel(f"Set {i + 1}"))
        for field, unit in (("weight", "lbs"), ("duration", "s"), ("edge_size", "mm")):
            row.addWidget(EditableField(
                "", getattr(hang, field),
                on_change=lambda text, idx=i, f=field: summary.set_hangboard_field(idx, f, text),
                kind=NUMBER, unit=unit,
            ))
        lay.addLayout(row)

    lay.addWidget(_heading("Weighted Pulls", 12))
    for i, pull in enumerate(data.weighted_pulls):
        row = QHBoxLayout()
        row.addWidget(QLabel(f"Set {i + 1}"))
        for field, unit in (("weight", "lbs"), ("reps", "reps")):
            row.addWidget(EditableField(
                "", getattr(pull, field),
                on_change=lambda text, idx=i, f=field: summary.set_weighted_pull_field(idx, f, text),
                kind=NUMBER, unit=unit,
            ))
        lay.addLayout(row)

    lay.addWidget(_heading("Power Endurance Climbs", 12))
    for i, climb in enumerate(data.power_endurance_sets):
        lay.addWidget(EditableField(
            f"Climb {i + 1} Grade", climb.grade,
            on_change=lambda text, idx=i: summary.set_power_endurance_grade(idx, text),
            max_length=10,
        ))
    lay.addStretch()
    return page, widgets

#endregion === Summary page ===
