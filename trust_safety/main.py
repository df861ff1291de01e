import signal
import threading
from types import FrameType

from trust_safety.config.settings import Settings
from trust_safety.database.connection import close_pool, init_pool
from trust_safety.logging.logger import Log
from trust_safety.pipeline import Pipeline, build_pipeline
from trust_safety.worker.worker import AnalysisWorker, NotificationWorker, PollingWorker

WORKER_ROLES = ("all", "analysis", "notifications")


def build_workers(
    pipeline: Pipeline,
    settings: Settings,
    stop_event: threading.Event,
) -> list[PollingWorker]:
    role = settings.worker_role.lower()
    if role not in WORKER_ROLES:
        raise ValueError(f"Unknown worker role '{role}'. Choose from: {list(WORKER_ROLES)}")

    workers: list[PollingWorker] = []
    if role in ("all", "analysis"):
        workers.append(
            AnalysisWorker(
                pipeline.orchestrator,
                settings.analysis_poll_interval_seconds,
                stop_event,
            )
        )
    if role in ("all", "notifications"):
        workers.append(
            NotificationWorker(
                pipeline.dispatcher,
                settings.notification_poll_interval_seconds,
                stop_event,
            )
        )
    return workers


def run_workers(workers: list[PollingWorker], stop_event: threading.Event) -> None:
    """Run one worker inline, or several as threads until the stop event is set."""
    if len(workers) == 1:
        workers[0].run()
        return

    threads = [threading.Thread(target=worker.run, name=worker.name) for worker in workers]
    for thread in threads:
        thread.start()
    try:
        while any(thread.is_alive() for thread in threads):
            stop_event.wait(1.0)
    except KeyboardInterrupt:
        stop_event.set()
    for thread in threads:
        thread.join()


def main() -> None:
    """Entry point: initialize pool -> build pipeline -> start worker loops."""
    settings = Settings()
    Log.configure(settings.log_level)
    Log.info("Starting trust & safety worker", env=settings.app_env, role=settings.worker_role)
    init_pool(settings)

    stop_event = threading.Event()

    def _request_stop(signum: int, frame: FrameType | None) -> None:
        _ = frame
        Log.info(f"Received signal {signum}, stopping workers")
        stop_event.set()

    signal.signal(signal.SIGTERM, _request_stop)
    signal.signal(signal.SIGINT, _request_stop)

    try:
        pipeline = build_pipeline(settings)
        run_workers(build_workers(pipeline, settings, stop_event), stop_event)
    finally:
        close_pool()


if __name__ == "__main__":
    main()
