"""Store contracts shared by the engagement services.

``Store.transaction()`` is the unit of work: every mutation of one request runs on
the yielded session and commits when the block exits normally. Callbacks registered
with ``session.after_commit`` run only after that commit succeeded.
"""

from __future__ import annotations

import inspect
import logging
from base64 import b64decode, b64encode
from datetime import datetime
from typing import AsyncContextManager, Awaitable, Callable, Optional, Protocol, Union

from classhub.engagement.domain.exceptions import InvalidInputError
from classhub.engagement.domain.models import (
	Chat,
	Comment,
	CounterField,
	CounterView,
	EngagementRecord,
	Group,
	GroupMember,
	MemberStatus,
	Message,
	MessageType,
	Notification,
	NotificationDraft,
	Post,
	PostStatus,
	RelationKind,
)

_LOG = logging.getLogger(__name__)

AfterCommit = Callable[[], Union[Awaitable[None], None]]
NotificationCursorPair = tuple[datetime, int]


def encode_notification_cursor(value: NotificationCursorPair) -> str:
	created_at, notification_id = value
	payload = f"{created_at.isoformat()}|{notification_id}"
	return b64encode(payload.encode()).decode()


def decode_notification_cursor(cursor: str) -> NotificationCursorPair:
	try:
		decoded = b64decode(cursor.encode(), validate=True).decode()
		created_str, id_str = decoded.split("|", maxsplit=1)
		return datetime.fromisoformat(created_str), int(id_str)
	except (ValueError, UnicodeDecodeError) as exc:
		raise InvalidInputError("invalid_cursor") from exc


def page_notifications(
	rows: list[Notification],
	limit: int,
) -> tuple[list[Notification], Optional[str]]:
	"""Trim a ``limit + 1`` fetch into a page and the cursor for the next one."""
	items = list(rows)
	next_cursor: Optional[str] = None
	if len(items) > limit:
		items = items[:limit]
		tail = items[-1]
		next_cursor = encode_notification_cursor((tail.created_at, int(tail.id)))
	return items, next_cursor


class CommitHooks:
	"""Ordered after-commit callbacks for one session."""

	def __init__(self) -> None:
		self._callbacks: list[AfterCommit] = []

	def add(self, callback: AfterCommit) -> None:
		self._callbacks.append(callback)

	def discard(self) -> None:
		self._callbacks.clear()

	async def run(self) -> None:
		callbacks, self._callbacks = self._callbacks, []
		for callback in callbacks:
			try:
				result = callback()
				if inspect.isawaitable(result):
					await result
			except Exception:
				# the transaction is already durable at this point
				_LOG.exception("store.after_commit_failed", extra={"callback": repr(callback)})


class StoreSession(Protocol):
	"""Operations available inside one unit of work."""

	def after_commit(self, callback: AfterCommit) -> None: ...

	# --- posts ---------------------------------------------------------------

	async def create_post(
		self,
		*,
		author_id: str,
		content: str,
		status: PostStatus,
		image_url: Optional[str] = None,
	) -> Post: ...

	async def get_post(self, post_id: int) -> Optional[Post]: ...

	async def update_post(
		self,
		post_id: int,
		*,
		status: Optional[PostStatus] = None,
		pinned: Optional[bool] = None,
	) -> Optional[Post]: ...

	async def delete_post(self, post_id: int) -> bool: ...

	async def get_counters(self, post_id: int) -> Optional[CounterView]: ...

	# --- engagement records --------------------------------------------------

	async def lock_engagement(self, key: str) -> None: ...

	async def find_engagement(self, post_id: int, user_id: str, kind: RelationKind) -> Optional[EngagementRecord]: ...

	async def insert_engagement(
		self,
		post_id: int,
		user_id: str,
		kind: RelationKind,
		*,
		upvote: Optional[bool] = None,
	) -> EngagementRecord: ...

	async def set_vote_polarity(self, record_id: int, *, upvote: bool) -> EngagementRecord: ...

	async def delete_engagement(self, record: EngagementRecord) -> None: ...

	async def count_engagements(self, post_id: int, kind: RelationKind, *, upvote: Optional[bool] = None) -> int: ...

	async def list_bookmarked_posts(self, user_id: str, *, limit: int) -> list[Post]: ...

	# --- counters ------------------------------------------------------------

	async def adjust_counter(self, post_id: int, field: CounterField, delta: int) -> Optional[int]:
		"""Apply ``delta`` unless the result would be negative; ``None`` when refused or missing."""
		...

	async def overwrite_counters(self, post_id: int, counters: CounterView) -> None: ...

	# --- comments ------------------------------------------------------------

	async def insert_comment(
		self,
		*,
		post_id: int,
		author_id: str,
		content: str,
		parent_comment_id: Optional[int] = None,
		approved: bool = True,
	) -> Comment: ...

	async def get_comment(self, comment_id: int) -> Optional[Comment]: ...

	async def list_comments(self, post_id: int) -> list[Comment]:
		"""All comments of a post, newest first."""
		...

	async def delete_comment_thread(self, comment_id: int) -> int: ...

	async def count_comments(self, post_id: int) -> int: ...

	# --- notifications -------------------------------------------------------

	async def append_notification(self, draft: NotificationDraft) -> Notification: ...

	async def get_notification(self, notification_id: int) -> Optional[Notification]: ...

	async def list_notifications(
		self,
		user_id: str,
		*,
		only_unread: bool,
		limit: int,
		after: Optional[NotificationCursorPair] = None,
	) -> tuple[list[Notification], Optional[str]]: ...

	async def count_unread(self, user_id: str) -> int: ...

	async def mark_read(self, notification_id: int) -> Optional[Notification]: ...

	async def mark_all_read(self, user_id: str) -> int: ...

	async def delete_notification(self, notification_id: int) -> Optional[Notification]: ...

	async def prune_notifications(self, *, older_than: datetime) -> int: ...

	# --- chats ---------------------------------------------------------------

	async def get_chat(self, chat_id: str) -> Optional[Chat]: ...

	async def find_or_create_chat(self, user_id: str, other_user_id: str) -> Chat:
		"""Return the chat between the two users, creating it with ``user_id`` as sender."""
		...

	async def insert_message(
		self,
		*,
		chat_id: str,
		sender_id: str,
		receiver_id: str,
		type: MessageType,
		content: Optional[str] = None,
		media_path: Optional[str] = None,
	) -> Message: ...

	async def list_messages(self, chat_id: str, *, limit: int) -> list[Message]: ...

	async def mark_chat_seen(self, chat_id: str, viewer_id: str) -> int: ...

	async def count_unseen_messages(self, chat_id: str, user_id: str) -> int: ...

	# --- groups --------------------------------------------------------------

	async def create_group(self, *, name: str, description: Optional[str], owner_id: str) -> Group: ...

	async def get_group(self, group_id: int) -> Optional[Group]: ...

	async def set_group_archived(self, group_id: int, archived: bool) -> Optional[Group]: ...

	async def delete_group(self, group_id: int) -> bool: ...

	async def get_member(self, group_id: int, user_id: str) -> Optional[GroupMember]: ...

	async def upsert_member(
		self,
		group_id: int,
		user_id: str,
		*,
		is_admin: bool = False,
		is_co_admin: bool = False,
	) -> GroupMember: ...

	async def remove_member(self, group_id: int, user_id: str) -> bool: ...

	async def set_member_status(self, group_id: int, user_id: str, status: MemberStatus) -> Optional[GroupMember]: ...

	async def set_co_admin(self, group_id: int, user_id: str, is_co_admin: bool) -> Optional[GroupMember]: ...


class Store(Protocol):
	def transaction(self) -> AsyncContextManager[StoreSession]:
		"""Open a unit of work; commit on normal exit, roll back on any exception."""
		...

	def reader(self) -> AsyncContextManager[StoreSession]:
		"""Open a read-only session outside a transaction."""
		...


__all__ = [
	"AfterCommit",
	"CommitHooks",
	"NotificationCursorPair",
	"Store",
	"StoreSession",
	"decode_notification_cursor",
	"encode_notification_cursor",
	"page_notifications",
]
