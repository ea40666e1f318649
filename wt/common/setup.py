import os
from pathlib import Path
from dataclasses import dataclass

# Lil helper function to create missing directories if missing, and optionally error out when a path
# doesn't exist.
def ensure_directory(path: Path,must_exist=False):
    if must_exist:
        if not path.exists():
            raise FileNotFoundError(f"Required directory is missing: {path}")
        if not path.is_dir():
            raise NotADirectoryError(f"Expected a directory, got a file: {path}")
    else:
        path.mkdir(parents=True,exist_ok=True)
    return path

# Dataclass for accessing paths across program.
@dataclass(frozen=False)
class ProjectPaths:

    data: Path
    logs: Path
    current: Path
    sessions: Path

    @staticmethod
    def build():
        # WORKOUT_TRACKER_HOME wins, then the roaming APPDATA folder on Windows, then a dotfolder in home.
        override = os.getenv("WORKOUT_TRACKER_HOME")
        appdata = os.getenv("APPDATA")
        if override:
            data = ensure_directory(Path(override))
        elif appdata:
            data = ensure_directory(Path(appdata) / "WorkoutTracker")
        else:
            data = ensure_directory(Path.home() / ".workout-tracker")

        # Folders within the data folder
        logs = ensure_directory(data / "logs")
        current = ensure_directory(data / "current")
        sessions = ensure_directory(data / "completed_sessions")

        return ProjectPaths(
            data = data,
            logs = logs,
            current = current,
            sessions = sessions
        )
PATHS = ProjectPaths.build()
