"""Post-commit dispatcher handing composed notifications to the broker."""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from dataclasses import dataclass
from typing import Any, Deque, Protocol, Sequence

from classhub.engagement.domain.models import Notification
from classhub.engagement.domain.store import StoreSession
from classhub.engagement.realtime.routes import route_family
from classhub.engagement.schemas import dto
from classhub.obs import metrics as obs_metrics
from classhub.settings import settings

_LOG = logging.getLogger(__name__)


class Broker(Protocol):
	async def publish(self, route: str, payload: dict[str, Any]) -> None: ...


class NullBroker:
	"""Broker used before the realtime server is wired; drops every publication."""

	async def publish(self, route: str, payload: dict[str, Any]) -> None:
		_LOG.debug("dispatcher.no_broker", extra={"route": route})


@dataclass(slots=True)
class Publication:
	routes: tuple[str, ...]
	notification: Notification


class Dispatcher:
	"""Single-consumer FIFO so each receiver sees notifications in commit order."""

	def __init__(
		self,
		*,
		broker: Broker | None = None,
		timeout: float | None = None,
		poll_interval: float = 0.5,
		batch_size: int = 200,
		max_pending: int = 10_000,
	) -> None:
		self.broker: Broker = broker or NullBroker()
		self.timeout = timeout if timeout is not None else settings.broker_timeout_seconds
		self.poll_interval = poll_interval
		self.batch_size = batch_size
		self.max_pending = max_pending
		self._pending: Deque[Publication] = deque()
		self._wakeup = asyncio.Event()
		self._running = False

	def set_broker(self, broker: Broker) -> None:
		self.broker = broker

	@property
	def pending(self) -> int:
		return len(self._pending)

	def publish_after_commit(
		self,
		session: StoreSession,
		notification: Notification,
		routes: Sequence[str],
	) -> None:
		"""Queue the publication once ``session`` commits; nothing happens on rollback."""
		publication = Publication(routes=tuple(routes), notification=notification)
		session.after_commit(lambda: self.enqueue(publication))

	def enqueue(self, publication: Publication) -> None:
		if len(self._pending) >= self.max_pending:
			for route in publication.routes:
				obs_metrics.dispatch_published(route_family(route), "dropped")
			_LOG.warning(
				"dispatcher.queue_full",
				extra={"notification_id": publication.notification.id, "pending": len(self._pending)},
			)
			return
		self._pending.append(publication)
		obs_metrics.dispatch_queue_depth(len(self._pending))
		self._wakeup.set()

	async def run_forever(self) -> None:
		self._running = True
		while self._running:
			processed = await self.process_once()
			if processed == 0:
				await self._idle()

	def stop(self) -> None:
		self._running = False
		self._wakeup.set()

	async def process_once(self) -> int:
		processed = 0
		while self._pending and processed < self.batch_size:
			publication = self._pending.popleft()
			obs_metrics.dispatch_queue_depth(len(self._pending))
			await self._publish(publication)
			processed += 1
		return processed

	async def drain(self) -> int:
		"""Publish everything queued so far; used on shutdown and in tests."""
		total = 0
		while self._pending:
			total += await self.process_once()
		return total

	async def _idle(self) -> None:
		self._wakeup.clear()
		if self._pending or not self._running:
			return
		try:
			await asyncio.wait_for(self._wakeup.wait(), timeout=self.poll_interval)
		except asyncio.TimeoutError:
			return

	async def _publish(self, publication: Publication) -> None:
		payload = dto.NotificationResponse.from_model(publication.notification).model_dump(
			mode="json",
			by_alias=True,
		)
		for route in publication.routes:
			family = route_family(route)
			try:
				await asyncio.wait_for(self.broker.publish(route, payload), timeout=self.timeout)
			except asyncio.TimeoutError:
				obs_metrics.dispatch_published(family, "timeout")
				_LOG.warning(
					"dispatcher.publish_timeout",
					extra={"route": route, "notification_id": publication.notification.id},
				)
			except Exception:
				obs_metrics.dispatch_published(family, "error")
				_LOG.exception(
					"dispatcher.publish_failed",
					extra={"route": route, "notification_id": publication.notification.id},
				)
			else:
				obs_metrics.dispatch_published(family, "ok")


__all__ = ["Broker", "Dispatcher", "NullBroker", "Publication"]
