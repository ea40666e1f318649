"""Phase/timer/session state machine for one workout.

    INACTIVE --start()--> ACTIVE(phase 0) --complete_phase()--> ... ACTIVE(phase N-1) --complete_phase()--> TERMINAL
    TERMINAL --start()--> ACTIVE(phase 0)
    TERMINAL --(restart with no durable start instant)--> INACTIVE

All methods are plain synchronous calls; the UI calls them and then reads the controller's fields back.
"""

from wt.common.logger import log
from wt.core.clock import ElapsedTimeClock
from wt.core.config import START_KEY, PHASE_KEY
from wt.core.session import (
    CLIMBING_PHASE,
    EDGE_SIZES,
    PHASES,
    TERMINAL_PHASE,
    Session,
    as_number,
    normalize_amount,
    stat_key,
)
from wt.core.summary import EditableSummary

INACTIVE = "inactive"
ACTIVE = "active"
TERMINAL = "terminal"


class PhaseSessionController:
    """Single source of truth for the in-progress workout.

    ``store`` is the DurableStore the two durable keys (and the session aggregate) are written through.
    ``clock`` defaults to the wall clock.
    """

    def __init__(self, store, clock=None):
        self.store = store
        self.clock = clock or ElapsedTimeClock()
        self._reset()

    def _reset(self):
        self.phase_index = 0
        self.start_instant = None          # epoch ms, None while not started
        self.phase_boundary = 0            # total elapsed at the most recent phase transition
        self.current_phase_elapsed = 0
        self.session = Session()
        self.summary = None                # EditableSummary, only once terminal

    #region === State ===

    @property
    def is_terminal(self):
        return self.phase_index >= TERMINAL_PHASE

    @property
    def is_active(self):
        return self.start_instant is not None and not self.is_terminal

    @property
    def status(self):
        if self.is_terminal:
            return TERMINAL
        return ACTIVE if self.is_active else INACTIVE

    @property
    def current_phase(self):
        return None if self.is_terminal else PHASES[self.phase_index]

    # What export and save read from: the edited snapshot once there is one, the live session before that.
    def summary_source(self):
        if self.summary is not None:
            return self.summary.data
        return self.session

    def persist(self):
        self.store.save_session(self.session.to_dict())

    #endregion === State ===

    #region === Lifecycle ===

    # Throws away whatever was in progress and starts a new session at phase 0.
    def start(self):
        if self.is_active:
            log.info(f"Discarding in-progress session at phase {self.phase_index} for a new one")
        self._reset()
        self.start_instant = self.clock.now_ms()
        self.session.started_at = self.clock.now_datetime().isoformat()
        self.store.set(START_KEY, self.start_instant)
        self.store.set(PHASE_KEY, self.phase_index)
        self.persist()
        log.info(f"Started new session at {self.session.started_at}")
        return self.phase_index

    # Recomputes elapsed time from the start instant. Returns (total, current phase) seconds, or None when there is
    # no active session to tick.
    def tick(self):
        if not self.is_active:
            return None
        total = self.clock.elapsed_seconds(self.start_instant)
        self.session.total_elapsed = total
        self.current_phase_elapsed = max(0, total - self.phase_boundary)
        return total, self.current_phase_elapsed

    # Records the current phase's duration and advances one phase. Returns False (and changes nothing) when there
    # is no active session.
    def complete_phase(self):
        if not self.is_active:
            log.warning(f"complete_phase() called while {self.status}, ignoring")
            return False

        self.tick()
        finished = PHASES[self.phase_index]
        self.session.durations[finished] = self.current_phase_elapsed
        self.phase_boundary = max(self.phase_boundary, self.session.total_elapsed)
        self.current_phase_elapsed = 0
        self.phase_index += 1
        log.info(f"Completed phase '{finished}' in {self.session.durations[finished]}s, now at phase {self.phase_index}")

        if self.phase_index == CLIMBING_PHASE:
            self.session.total_moves = 0
            self.session.climbing_stats = {}

        self.store.set(PHASE_KEY, self.phase_index)
        if self.is_terminal:
            self.session.ended_at = self.clock.now_datetime().isoformat()
            self.session.recount_elapsed()
            self.start_instant = None
            self.store.remove(START_KEY)
            self.summary = EditableSummary(self.session)
            log.info(f"Session finished, total {self.session.total_elapsed}s and {self.session.total_moves} moves")
        self.persist()
        return True

    # Called once at startup with the durable keys. A finished session left behind with no start instant is
    # cleared back to phase 0; a running one is picked back up, session data included. Returns True if the session
    # is active afterwards (i.e. the caller should start ticking).
    def resume_from_durable_state(self, start_instant=None, phase_index=None):
        if start_instant is None:
            if phase_index is not None and phase_index >= TERMINAL_PHASE:
                log.info("Found a finished session from a previous run, resetting to phase 0")
                self._reset()
                self.store.set(PHASE_KEY, self.phase_index)
                self.store.clear_session()
            return False

        phase = phase_index if phase_index is not None else 0
        if not 0 <= phase < TERMINAL_PHASE:
            log.warning(f"Durable phase {phase} is out of range for a running session, resetting")
            self._reset()
            self.store.remove(START_KEY)
            self.store.set(PHASE_KEY, self.phase_index)
            self.store.clear_session()
            return False

        self._reset()
        self.start_instant = int(start_instant)
        self.phase_index = phase
        saved = self.store.load_session()
        if saved is not None:
            self.session = Session.from_dict(saved)
            # Each recorded duration is the gap between two transitions, so they sum to the last boundary.
            self.phase_boundary = sum(self.session.durations[name] for name in PHASES[:phase])
        else:
            log.warning("No saved session data to resume, only the timer and phase were restored")
        self.tick()
        log.info(f"Resumed session at phase {self.phase_index}, {self.session.total_elapsed}s elapsed")
        return True

    def resume(self):
        return self.resume_from_durable_state(self.store.read_start_instant(), self.store.read_phase_index())

    #endregion === Lifecycle ===

    #region === Data collection ===

    # Adds delta to one climbing stat and to total moves. Callers (the counters) have already clamped delta.
    def record_climbing_stat(self, grade, stat_type, delta):
        key = stat_key(grade, stat_type)
        self.session.climbing_stats[key] = self.session.climbing_stats.get(key, 0) + delta
        self.session.total_moves += delta
        log.debug(f"Climbing stat '{key}' {delta:+d} -> {self.session.climbing_stats[key]}, "
                  f"total moves {self.session.total_moves}")
        self.persist()
        return self.session.climbing_stats[key]

    def update_hangboard_set(self, index, field, value):
        hang = self.session.hangboard_sets[index]
        if field == "edge_size":
            edge = as_number(value)
            if edge not in EDGE_SIZES:
                raise ValueError(f"Edge size must be one of {EDGE_SIZES}, got {value!r}")
            hang.edge_size = edge
        elif field in ("weight", "duration"):
            setattr(hang, field, normalize_amount(value))
        else:
            raise ValueError(f"Unknown hangboard field '{field}'")
        self.persist()
        return hang

    def update_weighted_pull(self, index, field, value):
        if field not in ("weight", "reps"):
            raise ValueError(f"Unknown weighted pull field '{field}'")
        pull = self.session.weighted_pulls[index]
        setattr(pull, field, normalize_amount(value))
        self.persist()
        return pull

    def update_power_endurance_grade(self, index, grade):
        climb = self.session.power_endurance_sets[index]
        climb.grade = str(grade or "")
        self.persist()
        return climb

    #endregion === Data collection ===
