import copy
import json
from datetime import datetime
from wt.common.logger import log
from wt.common.setup import PATHS


_SCHEMA_VERSION = 1

#region === Helpers and Paths ===

STATE_PATH = PATHS.current / "state.json"
COMPLETED_DIR = PATHS.sessions

# Names of the two durable keys, kept exactly as the old browser build stored them.
START_KEY = "workoutStartTime"
PHASE_KEY = "appPhase"

# Default values just for the settings section of the state dict.
_SETTINGS_DEFAULTS = {
    "backend_url": "",
    "backend_anon_key": "",
    "athletes": {},
    "default_athlete": "",
    "email_recipient": "",
    "email_subject": "Workout Summary",
    "request_timeout": 30,
}

# Simply returns the current local time as an ISO8601 string with timezone offset.
def now_iso():
    return datetime.now().astimezone().isoformat()

# Helper to return a truly fresh, default state.
def build_default_state():
    return {
        "meta": {
            "schema_version": _SCHEMA_VERSION,
            "saved_at": now_iso(),
        },
        "settings": copy.deepcopy(_SETTINGS_DEFAULTS),
        "durable": {},
        "session": None,
    }

#endregion === Helpers and Paths ===

#region === Saving and Loading State ===

# Loads the current state from STATE_PATH (or the given path), ensuring the schema is valid and handling default
# fallbacks. Never raises; a broken file just means a fresh state.
def load_state(path=None):
    path = path or STATE_PATH
    try:
        if not path.exists():
            log.info(f"No existing state file found at '{path}', loading fresh state dict.")
            return build_default_state()

        with open(path, "r", encoding="utf-8") as f:
            state = json.load(f)
        if not isinstance(state, dict):
            raise TypeError(f"State file root is a {type(state).__name__}, expected an object")
        defaulted_values = set()

        # Validate the meta dict
        if "meta" not in state or not isinstance(state["meta"], dict):
            defaulted_values.add("meta")
            state["meta"] = {}
        if "schema_version" not in state["meta"] or not isinstance(state["meta"]["schema_version"], int):
            defaulted_values.add("meta.schema_version")
            state["meta"]["schema_version"] = _SCHEMA_VERSION

        # Validate the settings dict, fill in any necessary defaults
        if "settings" not in state or not isinstance(state["settings"], dict):
            defaulted_values.add("settings")
            state["settings"] = copy.deepcopy(_SETTINGS_DEFAULTS)
        else:
            for key, default in _SETTINGS_DEFAULTS.items():
                if key not in state["settings"]:
                    defaulted_values.add(f"settings.{key}")
                    state["settings"][key] = copy.deepcopy(default)
            if not isinstance(state["settings"]["athletes"], dict):
                defaulted_values.add("settings.athletes")
                state["settings"]["athletes"] = {}

        # Durable keys are always strings; drop anything else rather than guess at it.
        if "durable" not in state or not isinstance(state["durable"], dict):
            defaulted_values.add("durable")
            state["durable"] = {}
        else:
            for key in list(state["durable"]):
                if not isinstance(state["durable"][key], str):
                    defaulted_values.add(f"durable.{key}")
                    del state["durable"][key]

        # The session aggregate is optional, but if present must at least be an object
        if "session" not in state:
            state["session"] = None
        elif state["session"] is not None and not isinstance(state["session"], dict):
            defaulted_values.add("session")
            state["session"] = None

        # Log results
        if defaulted_values:
            log.warning(f"Loaded state from '{path}', but with missing values that were defaulted: "
                        f"{', '.join(sorted(defaulted_values))}")
        else:
            log.info(f"Successfully loaded state from '{path}'.")
        return state
    # Fall back to a fresh state dict in case of error, but warn in log
    except (json.JSONDecodeError, OSError, TypeError):
        log.warning(f"Ran into an error while trying to load '{path}', falling back to a fresh state dict.",
                    exc_info=True)
        return build_default_state()

# Write the given state to disk, stamping meta.saved_at.
def save_state(state, path=None):
    path = path or STATE_PATH
    state["meta"]["saved_at"] = now_iso()
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(state, f, indent=2)
    log.debug(f"Saved state to '{path}'")

# Archives a finished, remotely-saved workout summary as its own file under COMPLETED_DIR.
def save_completed_session(summary_dict, athlete, remote_session_id=None, directory=None):
    directory = directory or COMPLETED_DIR
    directory.mkdir(parents=True, exist_ok=True)
    completed = {
        "meta": {
            "schema_version": _SCHEMA_VERSION,
            "saved_at": now_iso(),
            "athlete": athlete,
            "remote_session_id": remote_session_id,
        },
        "summary": copy.deepcopy(summary_dict),
    }

    ts = datetime.now().strftime("%Y%m%d_%H%M%S_%f")
    final_path = directory / f"session_{ts}.json"
    with open(final_path, "w", encoding="utf-8") as f:
        json.dump(completed, f, indent=2)
    log.info(f"Archived completed session to '{final_path}'")
    return final_path

#endregion === Saving and Loading State ===
