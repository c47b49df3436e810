"""Background job pruning notifications past the retention window."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Callable

from classhub.engagement.domain.store import Store
from classhub.obs import metrics as obs_metrics
from classhub.settings import settings

_LOG = logging.getLogger(__name__)

JOB_NAME = "notifications-retention"


class RetentionJob:
	"""Deletes notifications older than ``retention_days``."""

	def __init__(
		self,
		*,
		store: Store,
		retention_days: int | None = None,
		clock: Callable[[], datetime] | None = None,
	) -> None:
		self.store = store
		self.retention_days = retention_days if retention_days is not None else settings.notification_retention_days
		self._clock = clock or (lambda: datetime.now(timezone.utc))

	def cutoff(self) -> datetime:
		return self._clock() - timedelta(days=self.retention_days)

	async def run_once(self) -> int:
		cutoff = self.cutoff()
		try:
			async with self.store.transaction() as session:
				deleted = await session.prune_notifications(older_than=cutoff)
		except Exception:
			obs_metrics.background_run(JOB_NAME, "error")
			_LOG.exception("retention.failed", extra={"cutoff": cutoff.isoformat()})
			raise
		obs_metrics.background_run(JOB_NAME, "success")
		obs_metrics.notifications_pruned(deleted)
		_LOG.info("retention.pruned", extra={"deleted": deleted, "cutoff": cutoff.isoformat()})
		return deleted


__all__ = ["JOB_NAME", "RetentionJob"]
