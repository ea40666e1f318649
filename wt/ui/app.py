import copy
import sys
from PySide6.QtCore import Qt, QThreadPool, QTimer, QUrl
from PySide6.QtGui import QDesktopServices, QFont
from PySide6.QtWidgets import (
    QApplication,
    QComboBox,
    QHBoxLayout,
    QLabel,
    QMainWindow,
    QMessageBox,
    QPushButton,
    QScrollArea,
    QVBoxLayout,
    QWidget,
)
from wt.common.logger import log
from wt.core import config
from wt.core.controller import PhaseSessionController
from wt.core.export import build_csv, build_mailto, format_total_time
from wt.core.session import PHASE_TITLES, TERMINAL_PHASE
from wt.core.store import DurableStore
from wt.gateway.client import GatewayError, IdentityTracker, SupabaseGateway
from wt.ui.widgets import (
    _format_time,
    build_climbing_groups,
    build_hangboard_form,
    build_power_endurance_inputs,
    build_rehab_page,
    build_summary_fields,
)
from wt.ui.workers import SaveWorker

# Persist the running session aggregate every this many ticks, on top of the writes every edit already does.
_AUTOSAVE_TICKS = 20


# ---------------------------------------------------------------------------
# Main window
# ---------------------------------------------------------------------------

# Main window of the workout tracker. Shows the timers, the page for whatever phase is active, and the editable
# summary once the last phase is done.
class MainWindow(QMainWindow):

    def __init__(self, store=None):
        super().__init__()
        self.setWindowTitle("Workout Tracker")
        self.resize(720, 820)

        # -- Session state --
        self.store = store or DurableStore()
        self.identity = IdentityTracker()
        self.controller = PhaseSessionController(self.store)
        self._pool = QThreadPool.globalInstance()
        self._pending_saves = []
        self._page_widgets = {}

        # -- Build UI skeleton --
        central = QWidget()
        self.setCentralWidget(central)
        self._main_lay = QVBoxLayout(central)

        header = QHBoxLayout()
        self._phase_lbl = QLabel()
        title_font = QFont()
        title_font.setPointSize(16)
        title_font.setBold(True)
        self._phase_lbl.setFont(title_font)
        header.addWidget(self._phase_lbl, 1)
        self._total_lbl = QLabel()
        self._current_lbl = QLabel()
        header.addWidget(self._current_lbl)
        header.addWidget(self._total_lbl)
        self._main_lay.addLayout(header)

        self._scroll = QScrollArea()
        self._scroll.setWidgetResizable(True)
        self._main_lay.addWidget(self._scroll, 1)

        footer = QHBoxLayout()
        self._start_btn = QPushButton("Start Workout")
        self._start_btn.clicked.connect(self._on_start)
        footer.addWidget(self._start_btn)
        footer.addStretch()
        self._complete_btn = QPushButton("Complete Phase")
        self._complete_btn.clicked.connect(self._on_complete_phase)
        footer.addWidget(self._complete_btn)
        self._main_lay.addLayout(footer)

        # -- Tick timer (1 s), only runs while a session is active --
        self._tick_n = 0
        self._timer = QTimer(self)
        self._timer.timeout.connect(self._tick)

        if self.controller.resume():
            self._timer.start(1000)
        self._show_phase()

    # ------------------------------------------------------------------ #
    #  Page building                                                       #
    # ------------------------------------------------------------------ #

    def _show_phase(self):
        ctl = self.controller
        self._page_widgets = {}
        if ctl.is_terminal:
            self._phase_lbl.setText("Workout Summary")
            page = self._build_summary_page()
        elif not ctl.is_active:
            self._phase_lbl.setText("Workout Tracker")
            page = QLabel("Press Start Workout to begin a new session.")
            page.setAlignment(Qt.AlignCenter)
        else:
            self._phase_lbl.setText(f"{PHASE_TITLES[ctl.current_phase]} Phase")
            page = self._build_phase_page(ctl.current_phase)

        old = self._scroll.takeWidget()
        if old is not None:
            old.deleteLater()
        self._scroll.setWidget(page)

        self._start_btn.setText("New Session" if ctl.is_terminal else "Start Workout")
        self._start_btn.setVisible(not ctl.is_active)
        self._complete_btn.setVisible(ctl.is_active)
        self._complete_btn.setText(
            "Finish Workout" if ctl.phase_index == TERMINAL_PHASE - 1 else "Complete Phase")
        self._update_time_labels()

    def _build_phase_page(self, phase):
        ctl = self.controller
        session = ctl.session
        if phase == "hangboard":
            page, self._page_widgets = build_hangboard_form(
                session, on_hang_change=ctl.update_hangboard_set, on_pull_change=ctl.update_weighted_pull)
        elif phase == "climbing":
            page, self._page_widgets = build_climbing_groups(session, on_stat=self._on_climbing_stat)
        elif phase == "power_endurance":
            page, self._page_widgets = build_power_endurance_inputs(
                session, on_grade=ctl.update_power_endurance_grade)
        elif phase == "rehab":
            page, self._page_widgets = build_rehab_page()
        else:
            page = QLabel("Stretch it out. Complete the phase when you're warm.")
            page.setAlignment(Qt.AlignCenter)
        return page

    def _build_summary_page(self):
        page = QWidget()
        lay = QVBoxLayout(page)
        fields, self._page_widgets = build_summary_fields(
            self.controller.summary, on_totals_changed=self._refresh_summary_totals)
        lay.addWidget(fields)

        actions = QHBoxLayout()
        email_btn = QPushButton("Email Summary")
        email_btn.clicked.connect(self._on_email)
        actions.addWidget(email_btn)
        actions.addStretch()

        self._athlete_box = QComboBox()
        settings = self.store.settings
        self._athlete_box.addItems(sorted(settings.get("athletes", {})))
        if settings.get("default_athlete"):
            self._athlete_box.setCurrentText(settings["default_athlete"])
        actions.addWidget(self._athlete_box)
        save_btn = QPushButton("Save Workout")
        save_btn.clicked.connect(self._on_save)
        actions.addWidget(save_btn)
        lay.addLayout(actions)
        return page

    # ------------------------------------------------------------------ #
    #  Button handlers                                                     #
    # ------------------------------------------------------------------ #

    def _on_start(self):
        self.controller.start()
        self._tick_n = 0
        self._timer.start(1000)
        self._show_phase()

    def _on_complete_phase(self):
        if not self.controller.complete_phase():
            return
        if self.controller.is_terminal:
            self._timer.stop()
        self._show_phase()

    def _on_climbing_stat(self, grade, stat_type, delta):
        self.controller.record_climbing_stat(grade, stat_type, delta)
        total_lbl = self._page_widgets.get("total")
        if total_lbl is not None:
            total_lbl.setText(f"Total Moves: {self.controller.session.total_moves}")

    def _refresh_summary_totals(self):
        data = self.controller.summary_source()
        self._page_widgets["total_time"].refresh(format_total_time(data.total_elapsed))
        self._page_widgets["total_moves"].refresh(data.total_moves)
        self._update_time_labels()

    def _on_email(self):
        settings = self.store.settings
        body = build_csv(self.controller.summary_source())
        url = build_mailto(settings.get("email_recipient"), settings.get("email_subject"), body)
        if not QDesktopServices.openUrl(QUrl(url)):
            log.warning("No mail client accepted the summary mailto: link")
            QMessageBox.warning(self, "Email Summary", "Couldn't open a mail client for the summary.")

    def _on_save(self):
        athlete = self._athlete_box.currentText()
        if not athlete:
            QMessageBox.warning(self, "Save Workout", "No athlete configured, add one under settings.athletes.")
            return
        try:
            gateway = SupabaseGateway.from_settings(self.store.settings, identity=self.identity)
        except GatewayError as e:
            QMessageBox.warning(self, "Save Workout", str(e))
            return

        snapshot = copy.deepcopy(self.controller.summary_source())
        worker = SaveWorker(gateway, athlete, snapshot)
        signals = worker.signals
        self._pending_saves.append(signals)
        signals.saved.connect(lambda session_id, s=signals: self._on_saved(s, athlete, snapshot, session_id))
        signals.failed.connect(lambda message, mismatch, s=signals: self._on_save_failed(s, message, mismatch))
        log.info(f"Saving workout for '{athlete}'")
        self._pool.start(worker)

    def _on_saved(self, signals, athlete, snapshot, session_id):
        self._pending_saves.remove(signals)
        try:
            config.save_completed_session(snapshot.to_dict(), athlete, session_id)
        except OSError:
            log.warning("Workout saved remotely but the local archive copy failed", exc_info=True)
        QMessageBox.information(self, "Save Workout", f"Workout saved for {athlete}.")

    def _on_save_failed(self, signals, message, mismatch):
        self._pending_saves.remove(signals)
        title = "Identity Mismatch" if mismatch else "Save Failed"
        QMessageBox.critical(self, title, f"The workout was not saved:\n{message}")

    # ------------------------------------------------------------------ #
    #  Tick                                                                #
    # ------------------------------------------------------------------ #

    def _update_time_labels(self):
        ctl = self.controller
        self._total_lbl.setText(f"Total: {_format_time(ctl.summary_source().total_elapsed)}")
        if ctl.is_active:
            self._current_lbl.setText(f"Phase: {_format_time(ctl.current_phase_elapsed)}")
        else:
            self._current_lbl.setText("")

    def _tick(self):
        if self.controller.tick() is None:
            self._timer.stop()
            return
        self._update_time_labels()

        self._tick_n += 1
        if self._tick_n % _AUTOSAVE_TICKS == 0:
            self.controller.persist()

    # ------------------------------------------------------------------ #
    #  Window close                                                        #
    # ------------------------------------------------------------------ #

    def closeEvent(self, event):
        self._timer.stop()
        try:
            if self.controller.is_active:
                self.controller.persist()
        except OSError as e:
            QMessageBox.warning(self, "Save Error", f"Failed to save state:\n{e}")
        event.accept()


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def main():
    app = QApplication(sys.argv)
    window = MainWindow()
    window.show()
    sys.exit(app.exec())
