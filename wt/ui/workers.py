from PySide6.QtCore import QObject, QRunnable, Signal, Slot

from wt.common.logger import log
from wt.gateway.client import GatewayError, IdentityMismatchError
from wt.gateway.save import save_workout


class SaveSignals(QObject):
    saved = Signal(object)          # remote session id
    failed = Signal(str, bool)      # message, identity mismatch


# Runs save_workout() on the thread pool so the summary stays editable while the request is out. The summary it's
# given should be a copy; later edits to the on-screen summary don't affect a save already in flight.
class SaveWorker(QRunnable):

    def __init__(self, gateway, athlete, summary):
        super().__init__()
        self.gateway = gateway
        self.athlete = athlete
        self.summary = summary
        self.signals = SaveSignals()

    @Slot()
    def run(self):
        try:
            session_id = save_workout(self.gateway, self.athlete, self.summary)
        except IdentityMismatchError as e:
            log.error(f"Save for '{self.athlete}' aborted: {e}")
            self.signals.failed.emit(str(e), True)
        except GatewayError as e:
            log.exception(f"Save for '{self.athlete}' failed")
            self.signals.failed.emit(str(e), False)
        else:
            self.signals.saved.emit(session_id)
