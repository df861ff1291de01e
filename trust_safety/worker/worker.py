import threading
from abc import ABC, abstractmethod

from trust_safety.analysis.orchestrator import AnalysisOrchestrator
from trust_safety.logging.logger import Log
from trust_safety.notifications.dispatcher import NotificationDispatcher


class PollingWorker(ABC):
    """Poll loop: claim -> handle, or sleep when there is nothing to do.

    The loop stops when ``stop_event`` is set or on KeyboardInterrupt.
    """

    name = "worker"

    def __init__(
        self, poll_interval_seconds: float, stop_event: threading.Event | None = None
    ) -> None:
        self._poll_interval_seconds = poll_interval_seconds
        self._stop_event = stop_event or threading.Event()

    def stop(self) -> None:
        self._stop_event.set()

    def run(self, max_iterations: int | None = None) -> None:
        """Main poll loop. Runs until stopped.

        If max_iterations is set, stop after that many units of work (for testing).
        """
        Log.info(f"{self.name} started, polling for work")
        done = 0
        try:
            while not self._stop_event.is_set():
                if max_iterations is not None and done >= max_iterations:
                    break
                if self._poll_once():
                    done += 1
                else:
                    Log.debug(f"{self.name}: nothing to do, sleeping")
                    self._stop_event.wait(self._poll_interval_seconds)
        except KeyboardInterrupt:
            Log.info(f"{self.name} interrupted")
        Log.info(f"{self.name} shutting down gracefully")

    @abstractmethod
    def _poll_once(self) -> bool:
        """Do one unit of work. Returns False when there was nothing to do."""


class AnalysisWorker(PollingWorker):
    """Drains submissions waiting in ``intake``."""

    name = "analysis-worker"

    def __init__(
        self,
        orchestrator: AnalysisOrchestrator,
        poll_interval_seconds: float,
        stop_event: threading.Event | None = None,
    ) -> None:
        super().__init__(poll_interval_seconds, stop_event)
        self._orchestrator = orchestrator

    def _poll_once(self) -> bool:
        try:
            submission = self._orchestrator.claim_next()
        except Exception as exc:
            Log.warning(f"Database error, will retry: {exc}")
            return False
        if submission is None:
            return False
        self._orchestrator.process(submission)
        return True


class NotificationWorker(PollingWorker):
    """Delivers eligible notification tasks in batches."""

    name = "notification-worker"

    def __init__(
        self,
        dispatcher: NotificationDispatcher,
        poll_interval_seconds: float,
        stop_event: threading.Event | None = None,
    ) -> None:
        super().__init__(poll_interval_seconds, stop_event)
        self._dispatcher = dispatcher

    def _poll_once(self) -> bool:
        try:
            return self._dispatcher.dispatch_batch() > 0
        except Exception as exc:
            Log.warning(f"Notification batch failed, will retry: {exc}")
            return False
