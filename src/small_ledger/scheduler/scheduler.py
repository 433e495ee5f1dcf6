"""Ledger maintenance scheduler using APScheduler with a database job store.

Jobs periodically run the denormalisation pass and take balance snapshots.
They are persisted in the ledger database and survive process restarts.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from apscheduler.executors.pool import ThreadPoolExecutor
from apscheduler.jobstores.base import JobLookupError
from apscheduler.jobstores.sqlalchemy import SQLAlchemyJobStore
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from small_ledger.domain.errors import LedgerError

logger = logging.getLogger(__name__)


@dataclass
class ScheduledJob:
    """Definition of a scheduled ledger job.

    Attributes:
        job_id: Unique identifier for the job.
        command: Ledger command to execute (snapshot/denormalise).
        interval: Scheduling interval (day/hour/minute).
        at_time: Execution time point (e.g., "02:00"), only for day interval.
        enabled: Whether the job is enabled (running state).
        next_run: Next scheduled run time.
    """

    job_id: str
    command: str
    interval: str
    at_time: str | None = None
    enabled: bool = True
    next_run: datetime | None = None


def execute_ledger_job(config: dict[str, Any], command: str) -> None:
    """Execute a ledger maintenance job.

    Called by APScheduler when a job is triggered. Errors are logged, never
    raised, so a failing run does not unschedule the job.

    Args:
        config: Configuration dictionary.
        command: Ledger command to execute (snapshot/denormalise).
    """
    from omegaconf import OmegaConf

    from small_ledger.application.ledger import LedgerService

    logger.info(f"[Scheduler] Executing ledger job: command={command}")

    try:
        cfg = OmegaConf.create(config)

        with LedgerService(cfg) as ledger:
            if command == "denormalise":
                result = ledger.run_denormalisation()
                logger.info(
                    f"[Scheduler] Denormalisation resolved {result.resolved_count} trades, "
                    f"{result.unresolved_count} unresolved"
                )
            elif command == "snapshot":
                # Attribution first, so strategy snapshots see as many trades as possible.
                ledger.run_denormalisation()
                snapshot = ledger.take_snapshot()
                logger.info(
                    f"[Scheduler] Snapshot at {snapshot.as_of.isoformat()} appended {snapshot.total_rows} rows"
                )
            else:
                raise ValueError(f"Unknown command: {command}")

    except LedgerError as e:
        logger.error(f"[Scheduler] Ledger job '{command}' failed: {e}")
    except Exception as e:
        logger.exception(f"[Scheduler] Ledger job '{command}' error: {e}")


class LedgerScheduler:
    """Ledger task scheduler using APScheduler with database persistence.

    Args:
        config: Configuration dictionary with db and scheduler settings.
        blocking: If True, use BlockingScheduler; otherwise BackgroundScheduler.
    """

    VALID_COMMANDS = {"snapshot", "denormalise"}
    VALID_INTERVALS = {"day", "hour", "minute"}

    def __init__(self, config: dict[str, Any], blocking: bool = True) -> None:
        self._config = config
        self._blocking = blocking

        db_url = config.get("db", {}).get("url", "")
        if not db_url:
            raise ValueError("Database URL is required for scheduler job store")

        scheduler_config = config.get("scheduler") or {}
        jobstores = {"default": SQLAlchemyJobStore(url=db_url)}
        executors = {"default": ThreadPoolExecutor(max_workers=scheduler_config.get("max_workers", 2))}
        job_defaults = {
            "coalesce": True,
            "max_instances": 1,
            "misfire_grace_time": 60 * 60,
        }

        if blocking:
            self._scheduler = BlockingScheduler(jobstores=jobstores, executors=executors, job_defaults=job_defaults)
        else:
            self._scheduler = BackgroundScheduler(jobstores=jobstores, executors=executors, job_defaults=job_defaults)
            # Started paused so job edits reach the job store without running anything.
            self._scheduler.start(paused=True)

    @staticmethod
    def _build_trigger(interval: str, at_time: str | None) -> CronTrigger | IntervalTrigger:
        if interval == "day":
            if at_time:
                hour, minute = map(int, at_time.split(":"))
                return CronTrigger(hour=hour, minute=minute, timezone="UTC")
            return CronTrigger(hour=0, minute=0, timezone="UTC")
        if interval == "hour":
            return IntervalTrigger(hours=1)
        return IntervalTrigger(minutes=1)

    def add_job(
        self,
        job_id: str,
        command: str,
        interval: str,
        at_time: str | None = None,
    ) -> ScheduledJob:
        """Add a new scheduled job.

        Args:
            job_id: Unique identifier for the job.
            command: Ledger command (snapshot/denormalise).
            interval: Scheduling interval (day/hour/minute).
            at_time: Execution time point in UTC (e.g., "02:00"), only for day interval.

        Returns:
            The created ScheduledJob instance.

        Raises:
            ValueError: If job_id already exists or invalid parameters.
        """
        if self._scheduler.get_job(job_id):
            raise ValueError(f"Job with id '{job_id}' already exists")

        if command not in self.VALID_COMMANDS:
            raise ValueError(f"Invalid command '{command}'. Must be one of: {sorted(self.VALID_COMMANDS)}")

        if interval not in self.VALID_INTERVALS:
            raise ValueError(f"Invalid interval '{interval}'. Must be one of: {sorted(self.VALID_INTERVALS)}")

        if interval != "day":
            at_time = None
        trigger = self._build_trigger(interval, at_time)

        job = self._scheduler.add_job(
            func=execute_ledger_job,
            trigger=trigger,
            args=[self._config, command],
            id=job_id,
            name=f"Ledger {command} ({interval})",
            replace_existing=False,
        )

        logger.info(f"Added job: {job_id} (command={command}, interval={interval}, at_time={at_time})")

        return ScheduledJob(
            job_id=job_id,
            command=command,
            interval=interval,
            at_time=at_time,
            enabled=True,
            next_run=getattr(job, "next_run_time", None),
        )

    def remove_job(self, job_id: str) -> bool:
        """Remove a scheduled job. Returns False if not found."""
        try:
            self._scheduler.remove_job(job_id)
        except JobLookupError:
            return False
        logger.info(f"Removed job: {job_id}")
        return True

    def pause_job(self, job_id: str) -> bool:
        """Pause a scheduled job. Returns False if not found."""
        try:
            self._scheduler.pause_job(job_id)
        except JobLookupError:
            return False
        logger.info(f"Paused job: {job_id}")
        return True

    def resume_job(self, job_id: str) -> bool:
        """Resume a paused job. Returns False if not found."""
        try:
            self._scheduler.resume_job(job_id)
        except JobLookupError:
            return False
        logger.info(f"Resumed job: {job_id}")
        return True

    @staticmethod
    def _describe(job: Any) -> ScheduledJob:
        command = job.args[1] if len(job.args) > 1 else "unknown"

        interval = "unknown"
        at_time = None
        if isinstance(job.trigger, CronTrigger):
            interval = "day"
            fields = {f.name: str(f) for f in job.trigger.fields}
            if fields.get("hour", "*") != "*":
                at_time = f"{fields['hour'].zfill(2)}:{fields.get('minute', '0').zfill(2)}"
        elif isinstance(job.trigger, IntervalTrigger):
            seconds = job.trigger.interval.total_seconds()
            if seconds == 3600:
                interval = "hour"
            elif seconds == 60:
                interval = "minute"

        next_run = getattr(job, "next_run_time", None)
        return ScheduledJob(
            job_id=job.id,
            command=command,
            interval=interval,
            at_time=at_time,
            enabled=next_run is not None,
            next_run=next_run,
        )

    def list_jobs(self) -> list[ScheduledJob]:
        """List all scheduled jobs."""
        return [self._describe(job) for job in self._scheduler.get_jobs()]

    def get_job(self, job_id: str) -> ScheduledJob | None:
        """Get a specific job by ID, or None if not found."""
        job = self._scheduler.get_job(job_id)
        if not job:
            return None
        return self._describe(job)

    def start(self) -> None:
        """Start the scheduler.

        If blocking=True (default), this method blocks until shutdown.
        If blocking=False, the already started scheduler is resumed.
        """
        logger.info(f"Starting scheduler (blocking={self._blocking})")

        if not self._blocking:
            self._scheduler.resume()
            return
        try:
            self._scheduler.start()
        except KeyboardInterrupt:
            self.stop()

    def stop(self) -> None:
        """Stop the scheduler without waiting for running jobs."""
        logger.info("Stopping scheduler...")
        self.shutdown(wait=False)

    def shutdown(self, wait: bool = True) -> None:
        """Shutdown the scheduler.

        Args:
            wait: If True, wait for running jobs to complete.
        """
        if self._scheduler.running:
            self._scheduler.shutdown(wait=wait)

    @property
    def is_running(self) -> bool:
        """Check if the scheduler is running."""
        return self._scheduler.running

    @property
    def job_count(self) -> int:
        """Get the number of registered jobs."""
        return len(self._scheduler.get_jobs())
