import logging
import threading
import time


class ContinuationScheduler:
    """
    Chains batches with a fixed delay between them.

    At most one continuation is pending at a time; registering a new one replaces it.
    run_pending() is the long-lived loop that waits for the pending continuation and runs it,
    so the whole scan stays on one thread and batches never overlap. cancel() may be called
    from any thread.
    """

    def __init__(self, default_delay=5.0, clock=time.monotonic):
        self.default_delay = default_delay
        self._clock = clock
        self._due_at = None
        self._lock = threading.Lock()
        self._wakeup = threading.Event()

    @property
    def has_pending(self):
        with self._lock:
            return self._due_at is not None

    def schedule_continuation(self, delay=None):
        delay = self.default_delay if delay is None else delay
        with self._lock:
            if self._due_at is not None:
                logging.info("Replacing previously scheduled batch.")
            self._due_at = self._clock() + delay
            self._wakeup.set()
        logging.info(f"Scheduling next batch in {delay:g} seconds...")

    def cancel(self):
        with self._lock:
            if self._due_at is not None:
                logging.info("Cancelled pending batch continuation.")
            self._due_at = None
            self._wakeup.set()

    def run_pending(self, job):
        """Runs scheduled continuations until none is left. Returns how many ran."""
        invocations = 0
        while True:
            with self._lock:
                if self._due_at is None:
                    return invocations
                remaining = self._due_at - self._clock()
                if remaining <= 0:
                    self._due_at = None
                else:
                    # Cleared under the lock so a concurrent cancel or reschedule still wakes us.
                    self._wakeup.clear()
            if remaining > 0:
                self._wakeup.wait(timeout=remaining)
                continue
            job()
            invocations += 1
