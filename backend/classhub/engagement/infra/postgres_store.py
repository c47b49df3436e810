"""asyncpg implementation of the engagement store."""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, AsyncIterator, Awaitable, Callable, Optional
from uuid import uuid4

import asyncpg

from classhub.engagement.domain import models
from classhub.engagement.domain.exceptions import (
	ConflictError,
	DeadlineExceededError,
	NotFoundError,
	StoreUnavailableError,
)
from classhub.engagement.domain.models import (
	CounterField,
	MemberStatus,
	MessageType,
	PostStatus,
	RelationKind,
)
from classhub.engagement.domain.store import (
	AfterCommit,
	CommitHooks,
	NotificationCursorPair,
	page_notifications,
)
from classhub.infra.postgres import get_pool
from classhub.settings import settings

PoolGetter = Callable[[], Awaitable[asyncpg.pool.Pool]]

_ENGAGEMENT_TABLES = {
	RelationKind.LIKE: "likes",
	RelationKind.BOOKMARK: "bookmarks",
	RelationKind.VOTE: "votes",
}

_POST_COLUMNS = """
	id, author_id, content, image_url, status, pinned, like_count, comment_count,
	bookmark_count, upvote_count, downvote_count, created_at, updated_at
"""

_NOTIFICATION_COLUMNS = """
	id, kind, audience, audience_key, origin_user_id, origin_user_name, subject_kind,
	subject_id, chat_id, post_id, group_id, message_type, content, media, message,
	is_read, created_at, updated_at
"""

_CONNECTION_ERRORS = (
	asyncpg.PostgresConnectionError,
	asyncpg.InterfaceError,
	ConnectionError,
	OSError,
)


def _affected(status: str | None) -> int:
	return int(status.split()[-1]) if status else 0


def _engagement_select(kind: RelationKind) -> str:
	table = _ENGAGEMENT_TABLES[kind]
	upvote = "upvote" if kind is RelationKind.VOTE else "NULL::boolean AS upvote"
	return f"SELECT id, post_id, user_id, created_at, {upvote} FROM {table}"


def _engagement(kind: RelationKind, row: asyncpg.Record) -> models.EngagementRecord:
	return models.EngagementRecord.model_validate({**dict(row), "kind": kind})


class PostgresSession:
	"""Store operations bound to one connection, usually inside a transaction."""

	def __init__(self, conn: asyncpg.Connection, *, timeout: float) -> None:
		self._conn = conn
		self._timeout = timeout
		self.hooks = CommitHooks()

	def after_commit(self, callback: AfterCommit) -> None:
		self.hooks.add(callback)

	async def _call(self, method: Callable[..., Awaitable[Any]], query: str, *args: Any) -> Any:
		try:
			return await method(query, *args, timeout=self._timeout)
		except asyncio.TimeoutError as exc:
			raise DeadlineExceededError("store_timeout") from exc
		except _CONNECTION_ERRORS as exc:
			raise StoreUnavailableError() from exc

	async def _fetch(self, query: str, *args: Any) -> list[asyncpg.Record]:
		return await self._call(self._conn.fetch, query, *args)

	async def _fetchrow(self, query: str, *args: Any) -> Optional[asyncpg.Record]:
		return await self._call(self._conn.fetchrow, query, *args)

	async def _fetchval(self, query: str, *args: Any) -> Any:
		return await self._call(self._conn.fetchval, query, *args)

	async def _execute(self, query: str, *args: Any) -> str:
		return await self._call(self._conn.execute, query, *args)

	# --- posts ---------------------------------------------------------------

	async def create_post(
		self,
		*,
		author_id: str,
		content: str,
		status: PostStatus,
		image_url: Optional[str] = None,
	) -> models.Post:
		record = await self._fetchrow(
			f"""
			INSERT INTO posts (author_id, content, image_url, status)
			VALUES ($1, $2, $3, $4)
			RETURNING {_POST_COLUMNS}
			""",
			author_id,
			content,
			image_url,
			status.value,
		)
		return models.Post.model_validate(dict(record))

	async def get_post(self, post_id: int) -> Optional[models.Post]:
		record = await self._fetchrow(f"SELECT {_POST_COLUMNS} FROM posts WHERE id = $1", post_id)
		return models.Post.model_validate(dict(record)) if record else None

	async def update_post(
		self,
		post_id: int,
		*,
		status: Optional[PostStatus] = None,
		pinned: Optional[bool] = None,
	) -> Optional[models.Post]:
		record = await self._fetchrow(
			f"""
			UPDATE posts
			SET status = COALESCE($2, status),
				pinned = COALESCE($3, pinned),
				updated_at = NOW()
			WHERE id = $1
			RETURNING {_POST_COLUMNS}
			""",
			post_id,
			status.value if status is not None else None,
			pinned,
		)
		return models.Post.model_validate(dict(record)) if record else None

	async def delete_post(self, post_id: int) -> bool:
		result = await self._execute("DELETE FROM posts WHERE id = $1", post_id)
		return _affected(result) > 0

	async def get_counters(self, post_id: int) -> Optional[models.CounterView]:
		record = await self._fetchrow(
			"""
			SELECT like_count, comment_count, bookmark_count, upvote_count, downvote_count
			FROM posts WHERE id = $1
			""",
			post_id,
		)
		return models.CounterView.model_validate(dict(record)) if record else None

	# --- engagement records --------------------------------------------------

	async def lock_engagement(self, key: str) -> None:
		await self._execute("SELECT pg_advisory_xact_lock(hashtext($1))", key)

	async def find_engagement(
		self,
		post_id: int,
		user_id: str,
		kind: RelationKind,
	) -> Optional[models.EngagementRecord]:
		record = await self._fetchrow(
			f"{_engagement_select(kind)} WHERE post_id = $1 AND user_id = $2",
			post_id,
			user_id,
		)
		return _engagement(kind, record) if record else None

	async def insert_engagement(
		self,
		post_id: int,
		user_id: str,
		kind: RelationKind,
		*,
		upvote: Optional[bool] = None,
	) -> models.EngagementRecord:
		table = _ENGAGEMENT_TABLES[kind]
		try:
			if kind is RelationKind.VOTE:
				record = await self._fetchrow(
					f"""
					INSERT INTO {table} (post_id, user_id, upvote)
					VALUES ($1, $2, $3)
					RETURNING id, post_id, user_id, created_at, upvote
					""",
					post_id,
					user_id,
					bool(upvote),
				)
			else:
				record = await self._fetchrow(
					f"""
					INSERT INTO {table} (post_id, user_id)
					VALUES ($1, $2)
					RETURNING id, post_id, user_id, created_at, NULL::boolean AS upvote
					""",
					post_id,
					user_id,
				)
		except asyncpg.UniqueViolationError as exc:
			raise ConflictError(f"{kind.value}_exists") from exc
		except asyncpg.ForeignKeyViolationError as exc:
			raise NotFoundError("post_not_found") from exc
		return _engagement(kind, record)

	async def set_vote_polarity(self, record_id: int, *, upvote: bool) -> models.EngagementRecord:
		record = await self._fetchrow(
			"""
			UPDATE votes SET upvote = $2
			WHERE id = $1
			RETURNING id, post_id, user_id, created_at, upvote
			""",
			record_id,
			upvote,
		)
		if record is None:
			raise NotFoundError("vote_not_found")
		return _engagement(RelationKind.VOTE, record)

	async def delete_engagement(self, record: models.EngagementRecord) -> None:
		table = _ENGAGEMENT_TABLES[record.kind]
		await self._execute(f"DELETE FROM {table} WHERE id = $1", record.id)

	async def count_engagements(
		self,
		post_id: int,
		kind: RelationKind,
		*,
		upvote: Optional[bool] = None,
	) -> int:
		table = _ENGAGEMENT_TABLES[kind]
		if kind is RelationKind.VOTE and upvote is not None:
			value = await self._fetchval(
				f"SELECT COUNT(*) FROM {table} WHERE post_id = $1 AND upvote = $2",
				post_id,
				upvote,
			)
		else:
			value = await self._fetchval(f"SELECT COUNT(*) FROM {table} WHERE post_id = $1", post_id)
		return int(value or 0)

	async def list_bookmarked_posts(self, user_id: str, *, limit: int) -> list[models.Post]:
		rows = await self._fetch(
			"""
			SELECT p.id, p.author_id, p.content, p.image_url, p.status, p.pinned, p.like_count,
				p.comment_count, p.bookmark_count, p.upvote_count, p.downvote_count,
				p.created_at, p.updated_at
			FROM bookmarks b
			JOIN posts p ON p.id = b.post_id
			WHERE b.user_id = $1
			ORDER BY b.created_at DESC, b.id DESC
			LIMIT $2
			""",
			user_id,
			limit,
		)
		return [models.Post.model_validate(dict(row)) for row in rows]

	# --- counters ------------------------------------------------------------

	async def adjust_counter(self, post_id: int, field: CounterField, delta: int) -> Optional[int]:
		column = CounterField(field).value
		value = await self._fetchval(
			f"""
			UPDATE posts
			SET {column} = {column} + $2, updated_at = NOW()
			WHERE id = $1 AND {column} + $2 >= 0
			RETURNING {column}
			""",
			post_id,
			delta,
		)
		return int(value) if value is not None else None

	async def overwrite_counters(self, post_id: int, counters: models.CounterView) -> None:
		await self._execute(
			"""
			UPDATE posts
			SET like_count = $2, comment_count = $3, bookmark_count = $4,
				upvote_count = $5, downvote_count = $6, updated_at = NOW()
			WHERE id = $1
			""",
			post_id,
			counters.like_count,
			counters.comment_count,
			counters.bookmark_count,
			counters.upvote_count,
			counters.downvote_count,
		)

	# --- comments ------------------------------------------------------------

	async def insert_comment(
		self,
		*,
		post_id: int,
		author_id: str,
		content: str,
		parent_comment_id: Optional[int] = None,
		approved: bool = True,
	) -> models.Comment:
		try:
			record = await self._fetchrow(
				"""
				INSERT INTO comments (post_id, author_id, content, parent_comment_id, approved)
				VALUES ($1, $2, $3, $4, $5)
				RETURNING id, post_id, author_id, content, parent_comment_id, approved, created_at
				""",
				post_id,
				author_id,
				content,
				parent_comment_id,
				approved,
			)
		except asyncpg.ForeignKeyViolationError as exc:
			raise NotFoundError("comment_parent_not_found") from exc
		return models.Comment.model_validate(dict(record))

	async def get_comment(self, comment_id: int) -> Optional[models.Comment]:
		record = await self._fetchrow(
			"""
			SELECT id, post_id, author_id, content, parent_comment_id, approved, created_at
			FROM comments WHERE id = $1
			""",
			comment_id,
		)
		return models.Comment.model_validate(dict(record)) if record else None

	async def list_comments(self, post_id: int) -> list[models.Comment]:
		rows = await self._fetch(
			"""
			SELECT id, post_id, author_id, content, parent_comment_id, approved, created_at
			FROM comments
			WHERE post_id = $1
			ORDER BY created_at DESC, id DESC
			""",
			post_id,
		)
		return [models.Comment.model_validate(dict(row)) for row in rows]

	async def delete_comment_thread(self, comment_id: int) -> int:
		result = await self._execute(
			"""
			WITH RECURSIVE thread AS (
				SELECT id FROM comments WHERE id = $1
				UNION ALL
				SELECT c.id FROM comments c JOIN thread t ON c.parent_comment_id = t.id
			)
			DELETE FROM comments WHERE id IN (SELECT id FROM thread)
			""",
			comment_id,
		)
		return _affected(result)

	async def count_comments(self, post_id: int) -> int:
		value = await self._fetchval("SELECT COUNT(*) FROM comments WHERE post_id = $1", post_id)
		return int(value or 0)

	# --- notifications -------------------------------------------------------

	async def append_notification(self, draft: models.NotificationDraft) -> models.Notification:
		record = await self._fetchrow(
			f"""
			INSERT INTO notifications (
				kind, audience, audience_key, origin_user_id, origin_user_name, subject_kind,
				subject_id, chat_id, post_id, group_id, message_type, content, media, message
			)
			VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12, $13, $14)
			RETURNING {_NOTIFICATION_COLUMNS}
			""",
			draft.kind.value,
			draft.audience.value,
			draft.audience_key,
			draft.origin_user_id,
			draft.origin_user_name,
			draft.subject_kind,
			draft.subject_id,
			draft.chat_id,
			draft.post_id,
			draft.group_id,
			draft.message_type.value if draft.message_type else None,
			draft.content,
			draft.media,
			draft.message,
		)
		return models.Notification.model_validate(dict(record))

	async def get_notification(self, notification_id: int) -> Optional[models.Notification]:
		record = await self._fetchrow(
			f"SELECT {_NOTIFICATION_COLUMNS} FROM notifications WHERE id = $1",
			notification_id,
		)
		return models.Notification.model_validate(dict(record)) if record else None

	async def list_notifications(
		self,
		user_id: str,
		*,
		only_unread: bool,
		limit: int,
		after: Optional[NotificationCursorPair] = None,
	) -> tuple[list[models.Notification], Optional[str]]:
		params: list[object] = [user_id]
		conditions = ["audience = 'user'", "audience_key = $1"]
		if only_unread:
			conditions.append("is_read = FALSE")
		if after:
			params.extend([after[0], after[1]])
			conditions.append("(created_at, id) < ($%d, $%d)" % (len(params) - 1, len(params)))
		params.append(limit + 1)
		where_clause = " AND ".join(conditions)
		rows = await self._fetch(
			f"""
			SELECT {_NOTIFICATION_COLUMNS} FROM notifications
			WHERE {where_clause}
			ORDER BY created_at DESC, id DESC
			LIMIT ${len(params)}
			""",
			*params,
		)
		items = [models.Notification.model_validate(dict(row)) for row in rows]
		return page_notifications(items, limit)

	async def count_unread(self, user_id: str) -> int:
		value = await self._fetchval(
			"""
			SELECT COUNT(*) FROM notifications
			WHERE audience = 'user' AND audience_key = $1 AND is_read = FALSE
			""",
			user_id,
		)
		return int(value or 0)

	async def mark_read(self, notification_id: int) -> Optional[models.Notification]:
		await self._execute(
			"""
			UPDATE notifications SET is_read = TRUE, updated_at = NOW()
			WHERE id = $1 AND is_read = FALSE
			""",
			notification_id,
		)
		return await self.get_notification(notification_id)

	async def mark_all_read(self, user_id: str) -> int:
		result = await self._execute(
			"""
			UPDATE notifications SET is_read = TRUE, updated_at = NOW()
			WHERE audience = 'user' AND audience_key = $1 AND is_read = FALSE
			""",
			user_id,
		)
		return _affected(result)

	async def delete_notification(self, notification_id: int) -> Optional[models.Notification]:
		record = await self._fetchrow(
			f"DELETE FROM notifications WHERE id = $1 RETURNING {_NOTIFICATION_COLUMNS}",
			notification_id,
		)
		return models.Notification.model_validate(dict(record)) if record else None

	async def prune_notifications(self, *, older_than: datetime) -> int:
		result = await self._execute("DELETE FROM notifications WHERE created_at < $1", older_than)
		return _affected(result)

	# --- chats ---------------------------------------------------------------

	async def get_chat(self, chat_id: str) -> Optional[models.Chat]:
		record = await self._fetchrow(
			"SELECT id, sender_id, recipient_id, created_at FROM chats WHERE id = $1",
			chat_id,
		)
		return models.Chat.model_validate(dict(record)) if record else None

	async def find_or_create_chat(self, user_id: str, other_user_id: str) -> models.Chat:
		record = await self._fetchrow(
			"""
			SELECT id, sender_id, recipient_id, created_at FROM chats
			WHERE (sender_id = $1 AND recipient_id = $2) OR (sender_id = $2 AND recipient_id = $1)
			ORDER BY created_at ASC
			LIMIT 1
			""",
			user_id,
			other_user_id,
		)
		if record is None:
			record = await self._fetchrow(
				"""
				INSERT INTO chats (id, sender_id, recipient_id)
				VALUES ($1, $2, $3)
				RETURNING id, sender_id, recipient_id, created_at
				""",
				str(uuid4()),
				user_id,
				other_user_id,
			)
		return models.Chat.model_validate(dict(record))

	async def insert_message(
		self,
		*,
		chat_id: str,
		sender_id: str,
		receiver_id: str,
		type: MessageType,
		content: Optional[str] = None,
		media_path: Optional[str] = None,
	) -> models.Message:
		record = await self._fetchrow(
			"""
			INSERT INTO messages (chat_id, sender_id, receiver_id, type, content, media_path)
			VALUES ($1, $2, $3, $4, $5, $6)
			RETURNING id, chat_id, sender_id, receiver_id, type, content, media_path, state, created_at
			""",
			chat_id,
			sender_id,
			receiver_id,
			type.value,
			content,
			media_path,
		)
		return models.Message.model_validate(dict(record))

	async def list_messages(self, chat_id: str, *, limit: int) -> list[models.Message]:
		rows = await self._fetch(
			"""
			SELECT id, chat_id, sender_id, receiver_id, type, content, media_path, state, created_at
			FROM (
				SELECT * FROM messages WHERE chat_id = $1
				ORDER BY created_at DESC, id DESC
				LIMIT $2
			) recent
			ORDER BY created_at ASC, id ASC
			""",
			chat_id,
			limit,
		)
		return [models.Message.model_validate(dict(row)) for row in rows]

	async def mark_chat_seen(self, chat_id: str, viewer_id: str) -> int:
		result = await self._execute(
			"""
			UPDATE messages SET state = 'SEEN'
			WHERE chat_id = $1 AND receiver_id = $2 AND state <> 'SEEN'
			""",
			chat_id,
			viewer_id,
		)
		return _affected(result)

	async def count_unseen_messages(self, chat_id: str, user_id: str) -> int:
		value = await self._fetchval(
			"""
			SELECT COUNT(*) FROM messages
			WHERE chat_id = $1 AND receiver_id = $2 AND state <> 'SEEN'
			""",
			chat_id,
			user_id,
		)
		return int(value or 0)

	# --- groups --------------------------------------------------------------

	async def create_group(self, *, name: str, description: Optional[str], owner_id: str) -> models.Group:
		record = await self._fetchrow(
			"""
			INSERT INTO study_groups (name, description, owner_id)
			VALUES ($1, $2, $3)
			RETURNING id, name, description, owner_id, archived, created_at
			""",
			name,
			description,
			owner_id,
		)
		return models.Group.model_validate(dict(record))

	async def get_group(self, group_id: int) -> Optional[models.Group]:
		record = await self._fetchrow(
			"SELECT id, name, description, owner_id, archived, created_at FROM study_groups WHERE id = $1",
			group_id,
		)
		return models.Group.model_validate(dict(record)) if record else None

	async def set_group_archived(self, group_id: int, archived: bool) -> Optional[models.Group]:
		record = await self._fetchrow(
			"""
			UPDATE study_groups SET archived = $2
			WHERE id = $1
			RETURNING id, name, description, owner_id, archived, created_at
			""",
			group_id,
			archived,
		)
		return models.Group.model_validate(dict(record)) if record else None

	async def delete_group(self, group_id: int) -> bool:
		result = await self._execute("DELETE FROM study_groups WHERE id = $1", group_id)
		return _affected(result) > 0

	async def get_member(self, group_id: int, user_id: str) -> Optional[models.GroupMember]:
		record = await self._fetchrow(
			"""
			SELECT group_id, user_id, is_admin, is_co_admin, status, joined_at
			FROM study_group_members WHERE group_id = $1 AND user_id = $2
			""",
			group_id,
			user_id,
		)
		return models.GroupMember.model_validate(dict(record)) if record else None

	async def upsert_member(
		self,
		group_id: int,
		user_id: str,
		*,
		is_admin: bool = False,
		is_co_admin: bool = False,
	) -> models.GroupMember:
		try:
			record = await self._fetchrow(
				"""
				INSERT INTO study_group_members (group_id, user_id, is_admin, is_co_admin, status)
				VALUES ($1, $2, $3, $4, 'ACTIVE')
				ON CONFLICT (group_id, user_id)
				DO UPDATE SET is_admin = EXCLUDED.is_admin,
					is_co_admin = EXCLUDED.is_co_admin,
					status = 'ACTIVE',
					joined_at = NOW()
				RETURNING group_id, user_id, is_admin, is_co_admin, status, joined_at
				""",
				group_id,
				user_id,
				is_admin,
				is_co_admin,
			)
		except asyncpg.ForeignKeyViolationError as exc:
			raise NotFoundError("group_not_found") from exc
		return models.GroupMember.model_validate(dict(record))

	async def remove_member(self, group_id: int, user_id: str) -> bool:
		result = await self._execute(
			"DELETE FROM study_group_members WHERE group_id = $1 AND user_id = $2",
			group_id,
			user_id,
		)
		return _affected(result) > 0

	async def set_member_status(
		self,
		group_id: int,
		user_id: str,
		status: MemberStatus,
	) -> Optional[models.GroupMember]:
		record = await self._fetchrow(
			"""
			UPDATE study_group_members SET status = $3
			WHERE group_id = $1 AND user_id = $2
			RETURNING group_id, user_id, is_admin, is_co_admin, status, joined_at
			""",
			group_id,
			user_id,
			status.value,
		)
		return models.GroupMember.model_validate(dict(record)) if record else None

	async def set_co_admin(self, group_id: int, user_id: str, is_co_admin: bool) -> Optional[models.GroupMember]:
		record = await self._fetchrow(
			"""
			UPDATE study_group_members SET is_co_admin = $3
			WHERE group_id = $1 AND user_id = $2
			RETURNING group_id, user_id, is_admin, is_co_admin, status, joined_at
			""",
			group_id,
			user_id,
			is_co_admin,
		)
		return models.GroupMember.model_validate(dict(record)) if record else None


class PostgresStore:
	"""Unit-of-work factory over the shared asyncpg pool."""

	def __init__(self, *, pool_getter: PoolGetter | None = None, timeout: float | None = None) -> None:
		self._pool_getter = pool_getter or get_pool
		self._timeout = timeout if timeout is not None else settings.store_timeout_seconds

	async def _acquire(self) -> tuple[asyncpg.pool.Pool, asyncpg.Connection]:
		try:
			pool = await self._pool_getter()
			conn = await pool.acquire(timeout=self._timeout)
		except asyncio.TimeoutError as exc:
			raise DeadlineExceededError("store_pool_timeout") from exc
		except _CONNECTION_ERRORS as exc:
			raise StoreUnavailableError() from exc
		return pool, conn

	@asynccontextmanager
	async def transaction(self) -> AsyncIterator[PostgresSession]:
		pool, conn = await self._acquire()
		session = PostgresSession(conn, timeout=self._timeout)
		try:
			async with conn.transaction():
				yield session
		except BaseException:
			session.hooks.discard()
			raise
		finally:
			await pool.release(conn)
		await session.hooks.run()

	@asynccontextmanager
	async def reader(self) -> AsyncIterator[PostgresSession]:
		pool, conn = await self._acquire()
		session = PostgresSession(conn, timeout=self._timeout)
		try:
			yield session
		finally:
			await pool.release(conn)
		await session.hooks.run()


__all__ = ["PostgresSession", "PostgresStore"]
