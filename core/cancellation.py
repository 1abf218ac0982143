import threading

from core.errors import Cancelled


class CancellationToken:
    """Cooperative cancellation shared between the task controller and one running task.

    Pipeline stages call ``check()`` before every network call and use
    ``sleep()`` for their pacing delays, so a cancel request is observed at the
    next suspension point at the latest.
    """

    def __init__(self):
        self._event = threading.Event()

    def cancel(self):
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def check(self):
        if self._event.is_set():
            raise Cancelled("Operation cancelled")

    def sleep(self, seconds: float):
        """Pacing delay that wakes up immediately when cancelled."""
        if seconds and seconds > 0:
            self._event.wait(seconds)
        self.check()
