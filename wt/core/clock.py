import time
from datetime import datetime

# Derives elapsed time from a stored wall-clock start instant. Unlike a ticking counter there is nothing to drift:
# every read is just `now - start`, which is also what lets a session resume correctly after a restart.
class ElapsedTimeClock:

    # `now` returns epoch seconds as a float; tests pass a fake one.
    def __init__(self, now=time.time):
        self._now = now

    # Current instant as integer epoch milliseconds, the encoding used for the workoutStartTime durable key.
    def now_ms(self):
        return int(self._now() * 1000)

    # Whole seconds elapsed since `start_ms`. A start instant in the future (clock moved backwards) reads as 0.
    def elapsed_seconds(self, start_ms):
        if start_ms is None:
            return 0
        return max(0, (self.now_ms() - int(start_ms)) // 1000)

    # Aware local datetime for the current instant, used for session start/end stamps.
    def now_datetime(self):
        return datetime.fromtimestamp(self._now()).astimezone()
