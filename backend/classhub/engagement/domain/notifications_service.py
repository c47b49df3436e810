"""Inbox queries and read-state changes for user notifications."""

from __future__ import annotations

import logging
from typing import Optional

from classhub.engagement.domain.exceptions import NotFoundError, UnauthorizedError
from classhub.engagement.domain.models import Audience, Notification
from classhub.engagement.domain.store import Store, StoreSession, decode_notification_cursor
from classhub.engagement.infra.cache import UNREAD_COUNT, ReadThroughCache
from classhub.engagement.schemas import dto
from classhub.infra.auth import AuthenticatedUser

_LOG = logging.getLogger(__name__)

_MAX_PAGE = 100


def _owned_by(notification: Notification, user_id: str) -> bool:
	return notification.audience is Audience.USER and notification.audience_key == user_id


class NotificationService:
	"""Encapsulates inbox reads, read markers and deletes."""

	def __init__(self, *, store: Store, cache: ReadThroughCache | None = None) -> None:
		self.store = store
		self.cache = cache

	async def list_notifications(
		self,
		user: AuthenticatedUser,
		*,
		only_unread: bool = False,
		limit: int = 20,
		cursor: Optional[str] = None,
	) -> tuple[list[dto.NotificationResponse], Optional[str]]:
		limit = max(1, min(limit, _MAX_PAGE))
		after = decode_notification_cursor(cursor) if cursor else None
		async with self.store.reader() as session:
			items, next_cursor = await session.list_notifications(
				user.id,
				only_unread=only_unread,
				limit=limit,
				after=after,
			)
		return [dto.NotificationResponse.from_model(item) for item in items], next_cursor

	async def unread_count(self, user: AuthenticatedUser) -> int:
		async def _load() -> int:
			async with self.store.reader() as session:
				return await session.count_unread(user.id)

		if self.cache is None:
			return await _load()
		return int(await self.cache.get_or_load(UNREAD_COUNT, user.id, _load))

	def _evict_after_commit(self, session: StoreSession, user_id: str) -> None:
		if self.cache is not None:
			session.after_commit(lambda: self.cache.invalidate_unread_count(user_id))

	async def mark_read(self, user: AuthenticatedUser, notification_id: int) -> None:
		"""Mark one notification read; a missing or already-read id is a no-op."""
		async with self.store.transaction() as session:
			existing = await session.get_notification(notification_id)
			if existing is None or existing.is_read:
				return
			if not _owned_by(existing, user.id):
				raise UnauthorizedError("not_notification_owner")
			await session.mark_read(notification_id)
			self._evict_after_commit(session, user.id)

	async def mark_all_read(self, user: AuthenticatedUser) -> int:
		async with self.store.transaction() as session:
			updated = await session.mark_all_read(user.id)
			self._evict_after_commit(session, user.id)
		_LOG.info("notifications.marked_all_read", extra={"updated": updated})
		return updated

	async def delete(self, user: AuthenticatedUser, notification_id: int) -> None:
		async with self.store.transaction() as session:
			existing = await session.get_notification(notification_id)
			if existing is None:
				raise NotFoundError("notification_not_found")
			if not _owned_by(existing, user.id):
				raise UnauthorizedError("not_notification_owner")
			await session.delete_notification(notification_id)
			self._evict_after_commit(session, user.id)


__all__ = ["NotificationService"]
