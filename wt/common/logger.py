import logging
import os
from pathlib import Path
from logging.handlers import RotatingFileHandler
from wt.common.setup import PATHS
from datetime import datetime

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s:%(filename)s:%(lineno)d] %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Attaches the given handler under a unique name, unless a handler with that name is already on the logger. Returns
# True if the handler was actually added.
def _attach(logger: logging.Logger, handler: logging.Handler, name: str, level, fmt) -> bool:
    if any(h.get_name() == name for h in logger.handlers):
        handler.close()
        return False
    handler.setLevel(level)
    handler.setFormatter(fmt)
    handler.set_name(name)
    logger.addHandler(handler)
    return True

def get_logger(
        name = "workouttracker",
        level = logging.INFO,
        log_dir: Path | None = None,
        max_bytes = 5 * 1024 * 1024,
        backup_count = 5,
        persistent = True,
        console = False,
        historical_debugs: int = 10
) -> logging.Logger:
    logger = logging.getLogger(name)
    logger.propagate = False
    logger.setLevel(level)

    log_dir = log_dir or PATHS.logs
    log_dir.mkdir(parents=True,exist_ok=True)
    fmt = logging.Formatter(LOG_FORMAT,LOG_DATE_FORMAT)

    # Rotating log that survives across runs
    persistent_name = f"{name}:persistent"
    if persistent and not any(h.get_name() == persistent_name for h in logger.handlers):
        _attach(logger, RotatingFileHandler(filename=log_dir / f"{name}.log", maxBytes=max_bytes,
                                            backupCount=backup_count, encoding="utf-8"),
                persistent_name, level, fmt)

    # Latest-only log, overwritten each run
    latest_name = f"{name}:latest"
    if not any(h.get_name() == latest_name for h in logger.handlers):
        _attach(logger, logging.FileHandler(log_dir / "latest.log", mode="w", encoding="utf-8"),
                latest_name, level, fmt)

    # One full debug log per run, only the newest `historical_debugs` runs are kept
    debug_name = f"{name}:historical_debug"
    if historical_debugs > 0 and not any(h.get_name() == debug_name for h in logger.handlers):
        debug_dir = log_dir / "debug"
        debug_dir.mkdir(parents=True,exist_ok=True)
        run_path = debug_dir / f"{name}_{datetime.now():%Y-%m-%d_%H-%M-%S}.log"
        _attach(logger, logging.FileHandler(run_path, encoding="utf-8"), debug_name, logging.DEBUG, fmt)

        runs = sorted(debug_dir.glob(f"{name}_*.log"),key=lambda p: p.stat().st_mtime,reverse=True)
        for run in runs[historical_debugs:]:
            try: run.unlink()
            except OSError: pass

    if console:
        _attach(logger, logging.StreamHandler(), f"{name}:console", level, fmt)

    return logger

# WORKOUT_TRACKER_CONSOLE_LOG=1 mirrors the log to stderr, handy when running from a terminal.
log = get_logger(level=logging.DEBUG,
                 console=os.getenv("WORKOUT_TRACKER_CONSOLE_LOG", "") not in ("", "0"),
                 historical_debugs=10)
log.info("=== WORKOUT TRACKER STARTED ===")
