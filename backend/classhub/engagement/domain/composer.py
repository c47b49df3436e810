"""Notification composer: domain event in, persisted notification plus routes out.

Composition runs inside the source event's transaction. Publication and cache
invalidation are registered as after-commit hooks, so a rollback leaves nothing
behind on the wire.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Optional

from classhub.engagement.domain.models import (
	ENGAGEMENT_KINDS,
	Audience,
	MessageType,
	Notification,
	NotificationDraft,
	NotificationKind,
)
from classhub.engagement.domain.store import StoreSession
from classhub.engagement.realtime import routes as route_names
from classhub.obs import metrics as obs_metrics
from classhub.settings import settings

if TYPE_CHECKING:  # pragma: no cover - type-only imports
	from classhub.engagement.infra.cache import ReadThroughCache
	from classhub.engagement.realtime.dispatcher import Dispatcher

_LOG = logging.getLogger(__name__)

_INBOX_KINDS = ENGAGEMENT_KINDS | {
	NotificationKind.POST_APPROVED,
	NotificationKind.MESSAGE,
	NotificationKind.SEEN,
	NotificationKind.IMAGE,
	NotificationKind.MEMBER_ADDED,
	NotificationKind.MEMBER_REMOVED,
	NotificationKind.CO_ADMIN_ASSIGNED,
}

_BROADCAST_KINDS = frozenset(
	{
		NotificationKind.NEW_POST,
		NotificationKind.GROUP_CREATED,
		NotificationKind.GROUP_DELETED,
		NotificationKind.GROUP_ARCHIVED,
	}
)

_GROUP_TOPIC_KINDS = frozenset({NotificationKind.MEMBER_LEFT})


@dataclass(slots=True)
class DomainEvent:
	"""Something that happened which may deserve a notification.

	``receiver_id`` is the user whose inbox an inbox-bound kind targets: the post
	author for engagement, the other chat participant for chat kinds, the affected
	member for membership kinds.
	"""

	kind: NotificationKind
	origin_user_id: str
	origin_user_name: Optional[str] = None
	receiver_id: Optional[str] = None
	post_id: Optional[int] = None
	chat_id: Optional[str] = None
	group_id: Optional[int] = None
	group_name: Optional[str] = None
	message_type: Optional[MessageType] = None
	content: Optional[str] = None
	media: Optional[bytes] = field(default=None, repr=False)


@dataclass(slots=True)
class Composed:
	notification: Notification
	routes: list[str]


def preview(content: Optional[str], limit: int | None = None) -> Optional[str]:
	"""Cut ``content`` to ``limit`` characters and mark the cut with an ellipsis."""
	if content is None:
		return None
	limit = settings.content_preview_limit if limit is None else limit
	if len(content) <= limit:
		return content
	return content[:limit] + "..."


def _subject(event: DomainEvent) -> tuple[Optional[str], Optional[str]]:
	if event.chat_id is not None:
		return "chat", event.chat_id
	if event.post_id is not None:
		return "post", str(event.post_id)
	if event.group_id is not None:
		return "group", str(event.group_id)
	return None, None


def _message_text(event: DomainEvent) -> str:
	actor = event.origin_user_name or event.origin_user_id
	group = event.group_name or (str(event.group_id) if event.group_id is not None else "")
	kind = event.kind
	if kind is NotificationKind.NEW_POST:
		return f"New post created by {actor}"
	if kind is NotificationKind.POST_LIKED:
		return f"{actor} liked your post"
	if kind is NotificationKind.POST_BOOKMARKED:
		return f"{actor} bookmarked your post"
	if kind is NotificationKind.POST_UPVOTED:
		return f"{actor} upvoted your post"
	if kind is NotificationKind.POST_DOWNVOTED:
		return f"{actor} downvoted your post"
	if kind is NotificationKind.NEW_COMMENT:
		return f"{actor} commented on your post"
	if kind is NotificationKind.POST_APPROVED:
		return "Your post has been approved"
	if kind is NotificationKind.MESSAGE:
		return f"{actor} sent you a message"
	if kind is NotificationKind.IMAGE:
		return f"{actor} sent you an image"
	if kind is NotificationKind.SEEN:
		return f"{actor} has seen your messages"
	if kind is NotificationKind.MEMBER_ADDED:
		return f"User has been added to group '{group}'"
	if kind is NotificationKind.MEMBER_REMOVED:
		return f"User has been removed from group '{group}'"
	if kind is NotificationKind.MEMBER_LEFT:
		return f"User has left group '{group}'"
	if kind is NotificationKind.CO_ADMIN_ASSIGNED:
		return f"User has been designated as co-admin for group '{group}'"
	if kind is NotificationKind.GROUP_CREATED:
		return f"Group '{group}' has been created"
	if kind is NotificationKind.GROUP_DELETED:
		return f"Group '{group}' has been deleted"
	return f"Group '{group}' has been archived"


class NotificationComposer:
	"""Builds, persists and schedules publication of notifications."""

	def __init__(
		self,
		*,
		dispatcher: "Dispatcher",
		cache: "ReadThroughCache | None" = None,
		preview_limit: int | None = None,
	) -> None:
		self.dispatcher = dispatcher
		self.cache = cache
		self.preview_limit = preview_limit if preview_limit is not None else settings.content_preview_limit

	@staticmethod
	def resolve_audience(event: DomainEvent) -> tuple[Audience, str]:
		if event.kind in _INBOX_KINDS:
			if not event.receiver_id:
				raise ValueError(f"{event.kind.value} requires a receiver")
			return Audience.USER, event.receiver_id
		if event.kind in _GROUP_TOPIC_KINDS:
			if event.group_id is None:
				raise ValueError(f"{event.kind.value} requires a group")
			return Audience.GROUP, str(event.group_id)
		if event.kind in _BROADCAST_KINDS:
			return Audience.BROADCAST, route_names.GLOBAL_TOPIC
		raise ValueError(f"no audience for {event.kind.value}")

	def build(self, event: DomainEvent) -> Optional[NotificationDraft]:
		"""Return the draft for ``event`` or ``None`` when it must not notify."""
		audience, key = self.resolve_audience(event)
		if event.kind in ENGAGEMENT_KINDS and event.origin_user_id == event.receiver_id:
			obs_metrics.notification_suppressed(event.kind.value)
			return None
		subject_kind, subject_id = _subject(event)
		return NotificationDraft(
			kind=event.kind,
			audience=audience,
			audience_key=key,
			origin_user_id=event.origin_user_id,
			origin_user_name=event.origin_user_name,
			message=_message_text(event),
			subject_kind=subject_kind,
			subject_id=subject_id,
			chat_id=event.chat_id,
			post_id=event.post_id,
			group_id=event.group_id,
			message_type=event.message_type,
			content=preview(event.content, self.preview_limit),
			media=event.media,
		)

	async def compose(self, session: StoreSession, event: DomainEvent) -> Optional[Composed]:
		draft = self.build(event)
		if draft is None:
			return None
		notification = await session.append_notification(draft)
		routes = route_names.routes_for(notification)
		self.dispatcher.publish_after_commit(session, notification, routes)
		if notification.audience is Audience.USER and self.cache is not None:
			receiver = notification.audience_key
			session.after_commit(lambda: self.cache.invalidate_unread_count(receiver))
		obs_metrics.notification_composed(notification.kind.value)
		_LOG.info(
			"composer.notification_composed",
			extra={"notification_id": notification.id, "kind": notification.kind.value, "routes": routes},
		)
		return Composed(notification=notification, routes=routes)


__all__ = ["Composed", "DomainEvent", "NotificationComposer", "preview"]
