from wt.common.logger import log

# A small non-negative tally that reports every change it makes to an optional aggregate callback, so the
# aggregate always moves by exactly the distance the counter moved.
class TallyCounter:

    def __init__(self, label="", step=1, value=0, on_delta=None):
        self.label = label
        self.step = int(step)
        self.value = max(0, int(value))
        self.on_delta = on_delta

    def _report(self, delta):
        if delta and self.on_delta is not None:
            self.on_delta(delta)
        return delta

    # Returns the delta that was reported.
    def increment(self):
        self.value += self.step
        return self._report(self.step)

    # Decrements by one step, clamping at zero. Only the distance actually moved is reported, and nothing is
    # reported at all when already at zero.
    def decrement(self):
        if self.value == 0:
            return 0
        candidate = self.value - self.step
        if candidate < 0:
            delta = -self.value
            self.value = 0
        else:
            delta = -self.step
            self.value = candidate
        return self._report(delta)

    # Overwrites the displayed value with an authoritative count from outside (e.g. after the aggregate was reset
    # or edited). Does not report anything.
    def sync(self, value):
        value = max(0, int(value or 0))
        if value != self.value:
            log.debug(f"Counter '{self.label}' synced from {self.value} to {value}")
        self.value = value
