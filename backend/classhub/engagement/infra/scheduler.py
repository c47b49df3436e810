"""Periodic maintenance jobs for the engagement core."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from classhub.engagement.workers.retention import JOB_NAME as RETENTION_JOB, RetentionJob

_LOG = logging.getLogger(__name__)

JobFunc = Callable[[], Awaitable[object]]


class MaintenanceScheduler:
	"""AsyncIOScheduler holding at most one instance of each named job."""

	def __init__(self, *, scheduler: Optional[AsyncIOScheduler] = None) -> None:
		self._scheduler = scheduler or AsyncIOScheduler(timezone="UTC")
		self._started = False

	@property
	def started(self) -> bool:
		return self._started

	def start(self) -> None:
		if not self._started:
			self._scheduler.start()
			self._started = True

	def shutdown(self) -> None:
		if self._started:
			self._scheduler.shutdown(wait=False)
			self._started = False

	def every(self, job_id: str, func: JobFunc, *, hours: int, run_now: bool = False) -> None:
		if hours < 1:
			raise ValueError("interval must be at least one hour")
		options: dict[str, object] = {}
		if run_now:
			# an explicit None would add the job paused
			options["next_run_time"] = datetime.now(timezone.utc)
		self._scheduler.add_job(
			func,
			trigger=IntervalTrigger(hours=hours),
			id=job_id,
			replace_existing=True,
			coalesce=True,
			max_instances=1,
			**options,
		)
		_LOG.info("scheduler.job_registered", extra={"job_id": job_id, "hours": hours})

	def schedule_retention(self, job: RetentionJob, *, hours: int, run_now: bool = False) -> None:
		self.every(RETENTION_JOB, job.run_once, hours=hours, run_now=run_now)

	def job_ids(self) -> list[str]:
		return [job.id for job in self._scheduler.get_jobs()]


__all__ = ["MaintenanceScheduler"]
