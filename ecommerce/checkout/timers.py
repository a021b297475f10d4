"""
Repeating timers for the payment session.

Quick jobs share the default worker. Jobs that block on the network run on
their own worker, so a slow poll never holds back the countdown.
"""
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.executors.pool import ThreadPoolExecutor
from apscheduler.jobstores.base import JobLookupError
import logging
import time
import uuid

logger = logging.getLogger(__name__)

BLOCKING_EXECUTOR = 'blocking'


class TimerHandle:
    """A scheduled repeating job that can be cancelled on its own."""

    def __init__(self, scheduler, job_id, name):
        self._scheduler = scheduler
        self.job_id = job_id
        self.name = name
        self.cancelled = False

    def cancel(self):
        if self.cancelled:
            return
        self.cancelled = True
        try:
            self._scheduler.remove_job(self.job_id)
        except JobLookupError:
            # Already gone (scheduler shut down)
            logger.debug(f"Timer {self.name} already removed")


class TimerScheduler:
    """
    Thin wrapper around an APScheduler BackgroundScheduler with one worker
    for quick jobs and one for blocking jobs.
    """

    def __init__(self, scheduler=None):
        self._scheduler = scheduler or BackgroundScheduler(
            executors={
                'default': ThreadPoolExecutor(1),
                BLOCKING_EXECUTOR: ThreadPoolExecutor(1),
            },
            job_defaults={'coalesce': True, 'max_instances': 1},
        )

    def _ensure_running(self):
        if not self._scheduler.running:
            self._scheduler.start()

    def clock(self):
        """Seconds on a monotonic clock; deadlines are measured against it."""
        return time.monotonic()

    def every(self, seconds, func, name=None, blocking=False):
        """Run func every `seconds`, first run one interval from now."""
        self._ensure_running()
        job_id = f"{name or func.__name__}-{uuid.uuid4().hex[:8]}"
        self._scheduler.add_job(
            func, 'interval', seconds=seconds, id=job_id, name=name,
            executor=BLOCKING_EXECUTOR if blocking else 'default',
        )
        return TimerHandle(self._scheduler, job_id, name)

    def shutdown(self, wait=False):
        if self._scheduler.running:
            self._scheduler.shutdown(wait=wait)
