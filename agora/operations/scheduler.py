# agora/operations/scheduler.py

# Background timers: the hourly resolution sweep and the daily cleanup.
# Each timer is a daemon thread; every iteration runs inside an application
# context so the repositories get their own database session.

import logging
import threading
from datetime import timedelta
from typing import Callable, Dict, Optional

from agora.governance.records import utcnow

logger = logging.getLogger(__name__)

LEAD_RETENTION = timedelta(weeks=2)


def cleanup_booking_leads(leads, clock=utcnow, retention=LEAD_RETENTION) -> int:
    """Delete booking leads dated before the retention window."""
    cutoff = (clock() - retention).date()
    removed = leads.delete_older_than(cutoff)
    logger.info("Old leads cleanup completed (%d removed, cutoff %s)", removed, cutoff)
    return removed


class PeriodicTask:
    def __init__(self, name: str, interval_seconds: float, func: Callable, app=None, run_at_start=False):
        self.name = name
        self.interval = interval_seconds
        self.func = func
        self.app = app
        self.run_at_start = run_at_start
        self.last_run = None
        self.last_error: Optional[str] = None
        self.runs = 0
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def run_once(self):
        """Run one iteration; failures are logged and kept for the health check."""
        try:
            if self.app is not None:
                with self.app.app_context():
                    result = self.func()
            else:
                result = self.func()
            self.last_error = None
            return result
        except Exception as e:
            self.last_error = str(e)
            logger.exception("Periodic task %s failed", self.name)
            return None
        finally:
            self.runs += 1
            self.last_run = utcnow()

    def _loop(self):
        if self.run_at_start:
            self.run_once()
        while not self._stop.wait(self.interval):
            self.run_once()

    def start(self):
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name=self.name, daemon=True)
        self._thread.start()
        logger.info("Started %s every %ss", self.name, self.interval)

    def stop(self, timeout=5.0):
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)

    def is_alive(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def status(self) -> Dict:
        return {
            "last_run": self.last_run.isoformat() if self.last_run else None,
            "last_error": self.last_error,
            "runs": self.runs,
        }


class Sweeper:
    def __init__(self, app, service, leads, sweep_interval=3600, cleanup_interval=86400, clock=utcnow):
        self.tasks = [
            PeriodicTask("resolution-sweep", sweep_interval, service.run_sweep, app=app, run_at_start=True),
            PeriodicTask("daily-cleanup", cleanup_interval,
                         lambda: cleanup_booking_leads(leads, clock), app=app),
        ]
        self.started = False

    def start(self):
        for task in self.tasks:
            task.start()
        self.started = True

    def stop(self):
        for task in self.tasks:
            task.stop()
        self.started = False

    def is_alive(self) -> bool:
        return all(task.is_alive() for task in self.tasks)

    def last_runs(self) -> Dict:
        return {task.name: task.status() for task in self.tasks}
