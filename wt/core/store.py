"""Durable local state: the two durable keys plus the persisted session aggregate.

One DurableStore is built at startup and handed to whoever needs it, instead of everybody reading and
writing the state file on their own.  Every write goes straight to disk, so the file always matches the
in-memory state that produced it.
"""

from wt.common.logger import log
from wt.core import config


class DurableStore:

    def __init__(self, path=None):
        self._path = path
        self.state = config.load_state(self._path)

    @property
    def path(self):
        return self._path or config.STATE_PATH

    @property
    def settings(self):
        return self.state["settings"]

    def flush(self):
        config.save_state(self.state, self.path)

    # --- Durable keys -------------------------------------------------------

    def get(self, key, default=None):
        return self.state["durable"].get(key, default)

    def set(self, key, value):
        self.state["durable"][key] = str(value)
        self.flush()

    def remove(self, key):
        if self.state["durable"].pop(key, None) is not None:
            self.flush()

    def read_start_instant(self):
        """workoutStartTime as epoch milliseconds, or None when absent/garbled."""
        raw = self.get(config.START_KEY)
        if raw is None:
            return None
        try:
            return int(raw)
        except ValueError:
            log.warning(f"Ignoring unreadable {config.START_KEY} value '{raw}'")
            return None

    def read_phase_index(self):
        raw = self.get(config.PHASE_KEY)
        if raw is None:
            return None
        try:
            return int(raw)
        except ValueError:
            log.warning(f"Ignoring unreadable {config.PHASE_KEY} value '{raw}'")
            return None

    # --- Session aggregate --------------------------------------------------

    def load_session(self):
        return self.state.get("session")

    def save_session(self, session_dict):
        self.state["session"] = session_dict
        self.flush()

    def clear_session(self):
        self.state["session"] = None
        self.flush()
