"""Post engagement surface: toggles, comments and the post lifecycle."""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Optional

from pydantic import BaseModel

from classhub.engagement.domain.composer import DomainEvent, NotificationComposer
from classhub.engagement.domain.counters import CounterManager
from classhub.engagement.domain.exceptions import InvalidInputError, NotFoundError, UnauthorizedError
from classhub.engagement.domain.models import (
	Comment,
	CounterField,
	NotificationKind,
	PostStatus,
	RelationKind,
)
from classhub.engagement.domain.store import Store
from classhub.engagement.domain.toggles import ToggleEngine, ToggleResult
from classhub.engagement.infra.idempotency import IdempotentReplay, fingerprint
from classhub.engagement.infra.users import UserDirectory
from classhub.engagement.schemas import dto
from classhub.infra.auth import AuthenticatedUser
from classhub.settings import settings

_LOG = logging.getLogger(__name__)


def _record(result: ToggleResult) -> Optional[dto.EngagementRecordResponse]:
	if result.record is None or not result.present:
		return None
	return dto.EngagementRecordResponse.from_model(result.record)


def _dump(value: Optional[BaseModel]) -> Optional[dict]:
	return value.model_dump(mode="json", by_alias=True) if value is not None else None


def build_comment_tree(comments: list[Comment]) -> list[dto.CommentNode]:
	"""Top-level comments newest first; replies under each parent oldest first."""
	children: dict[int, list[Comment]] = defaultdict(list)
	roots: list[Comment] = []
	for comment in comments:
		if comment.parent_comment_id is None:
			roots.append(comment)
		else:
			children[comment.parent_comment_id].append(comment)

	def _node(comment: Comment) -> dto.CommentNode:
		replies = sorted(children.get(comment.id, []), key=lambda c: (c.created_at, c.id))
		return dto.CommentNode.from_model(comment, [_node(reply) for reply in replies])

	roots.sort(key=lambda c: (c.created_at, c.id), reverse=True)
	return [_node(root) for root in roots]


class PostService:
	"""Entry point for the post endpoints; every mutation is one unit of work."""

	def __init__(
		self,
		*,
		store: Store,
		toggles: ToggleEngine,
		composer: NotificationComposer,
		users: UserDirectory,
		counters: CounterManager | None = None,
		replay: IdempotentReplay | None = None,
	) -> None:
		self.store = store
		self.toggles = toggles
		self.composer = composer
		self.users = users
		self.counters = counters or CounterManager()
		self.replay = replay or IdempotentReplay()

	# --- toggles -------------------------------------------------------------

	async def like(
		self,
		user: AuthenticatedUser,
		post_id: int,
		*,
		idempotency_key: Optional[str] = None,
	) -> dto.LikeResponse:
		async def _produce() -> dto.LikeResponse:
			result = await self.toggles.toggle(post_id, user, RelationKind.LIKE)
			return dto.LikeResponse(
				like=_record(result),
				liked=result.present,
				action="liked" if result.present else "unliked",
				like_count=result.count,
			)

		return await self.replay.run(
			user_id=user.id,
			key=idempotency_key,
			operation=fingerprint(op="like", post=post_id),
			producer=_produce,
			encode=_dump,
			decode=dto.LikeResponse.model_validate,
		)

	async def bookmark(
		self,
		user: AuthenticatedUser,
		post_id: int,
		*,
		idempotency_key: Optional[str] = None,
	) -> dto.BookmarkResponse:
		async def _produce() -> dto.BookmarkResponse:
			result = await self.toggles.toggle(post_id, user, RelationKind.BOOKMARK)
			return dto.BookmarkResponse(
				bookmark=_record(result),
				bookmarked=result.present,
				bookmark_count=result.count,
				action="added" if result.present else "removed",
			)

		return await self.replay.run(
			user_id=user.id,
			key=idempotency_key,
			operation=fingerprint(op="bookmark", post=post_id),
			producer=_produce,
			encode=_dump,
			decode=dto.BookmarkResponse.model_validate,
		)

	async def vote(
		self,
		user: AuthenticatedUser,
		post_id: int,
		*,
		upvote: bool,
		idempotency_key: Optional[str] = None,
	) -> Optional[dto.VoteResponse]:
		"""Toggle a vote; ``None`` when the call removed the caller's vote."""

		async def _produce() -> Optional[dto.VoteResponse]:
			result = await self.toggles.toggle(post_id, user, RelationKind.VOTE, upvote=upvote)
			if result.record is None or not result.present:
				return None
			return dto.VoteResponse(
				id=result.record.id,
				post_id=result.record.post_id,
				user_id=result.record.user_id,
				upvote=bool(result.record.upvote),
				created_at=result.record.created_at,
				flipped=result.flipped,
				upvote_count=result.counters.upvote_count,
				downvote_count=result.counters.downvote_count,
			)

		return await self.replay.run(
			user_id=user.id,
			key=idempotency_key,
			operation=fingerprint(op="vote", post=post_id, upvote=upvote),
			producer=_produce,
			encode=_dump,
			decode=lambda payload: dto.VoteResponse.model_validate(payload) if payload else None,
		)

	async def is_liked(self, user: AuthenticatedUser, post_id: int) -> bool:
		return await self.toggles.has_engagement(post_id, user.id, RelationKind.LIKE)

	async def is_bookmarked(self, user: AuthenticatedUser, post_id: int) -> bool:
		return await self.toggles.has_engagement(post_id, user.id, RelationKind.BOOKMARK)

	async def list_bookmarks(self, user: AuthenticatedUser, *, limit: int = 20) -> list[dto.PostResponse]:
		limit = max(1, min(limit, 100))
		async with self.store.reader() as session:
			posts = await session.list_bookmarked_posts(user.id, limit=limit)
		return [dto.PostResponse.from_model(post) for post in posts]

	# --- post lifecycle ------------------------------------------------------

	async def get_post(self, post_id: int) -> dto.PostResponse:
		async with self.store.reader() as session:
			post = await session.get_post(post_id)
		if post is None:
			raise NotFoundError("post_not_found")
		return dto.PostResponse.from_model(post)

	async def create_post(
		self,
		user: AuthenticatedUser,
		content: str,
		*,
		image_url: Optional[str] = None,
	) -> dto.PostResponse:
		text = (content or "").strip()
		if not text:
			raise InvalidInputError("content_required")
		if len(text) > settings.post_max_length:
			raise InvalidInputError("content_too_long")
		profile = await self.users.get_user(user.id)
		status = PostStatus.APPROVED if user.is_staff() else PostStatus.PENDING
		async with self.store.transaction() as session:
			post = await session.create_post(author_id=user.id, content=text, status=status, image_url=image_url)
			if post.status is PostStatus.APPROVED:
				await self.composer.compose(
					session,
					DomainEvent(
						kind=NotificationKind.NEW_POST,
						origin_user_id=user.id,
						origin_user_name=profile.full_name or user.display_name,
						post_id=post.id,
						content=post.content,
					),
				)
		_LOG.info("posts.created", extra={"post_id": post.id, "status": post.status.value})
		return dto.PostResponse.from_model(post)

	async def update_status(self, user: AuthenticatedUser, post_id: int, status: PostStatus) -> dto.PostResponse:
		if not user.is_staff():
			raise UnauthorizedError("staff_only")
		async with self.store.transaction() as session:
			current = await session.get_post(post_id)
			if current is None:
				raise NotFoundError("post_not_found")
			post = await session.update_post(post_id, status=status)
			if post is None:
				raise NotFoundError("post_not_found")
			if status is PostStatus.APPROVED and current.status is not PostStatus.APPROVED:
				await self.composer.compose(
					session,
					DomainEvent(
						kind=NotificationKind.POST_APPROVED,
						origin_user_id=user.id,
						origin_user_name=user.display_name,
						receiver_id=post.author_id,
						post_id=post.id,
						content=post.content,
					),
				)
		return dto.PostResponse.from_model(post)

	async def set_pinned(self, user: AuthenticatedUser, post_id: int, pinned: bool) -> dto.PostResponse:
		if not user.is_staff():
			raise UnauthorizedError("staff_only")
		async with self.store.transaction() as session:
			post = await session.update_post(post_id, pinned=pinned)
		if post is None:
			raise NotFoundError("post_not_found")
		return dto.PostResponse.from_model(post)

	async def delete_post(self, user: AuthenticatedUser, post_id: int) -> None:
		async with self.store.transaction() as session:
			post = await session.get_post(post_id)
			if post is None:
				raise NotFoundError("post_not_found")
			if post.author_id != user.id:
				raise UnauthorizedError("not_post_author")
			await session.delete_post(post_id)
		_LOG.info("posts.deleted", extra={"post_id": post_id})

	# --- comments ------------------------------------------------------------

	async def add_comment(
		self,
		user: AuthenticatedUser,
		post_id: int,
		content: Optional[str],
		*,
		parent_comment_id: Optional[int] = None,
	) -> dto.CommentNode:
		text = (content or "").strip()
		if not text:
			raise InvalidInputError("content_required")
		if len(text) > settings.comment_max_length:
			raise InvalidInputError("content_too_long")
		profile = await self.users.get_user(user.id)
		async with self.store.transaction() as session:
			post = await session.get_post(post_id)
			if post is None:
				raise NotFoundError("post_not_found")
			if parent_comment_id is not None:
				parent = await session.get_comment(parent_comment_id)
				if parent is None or parent.post_id != post_id:
					raise NotFoundError("parent_comment_not_found")
			comment = await session.insert_comment(
				post_id=post_id,
				author_id=user.id,
				content=text,
				parent_comment_id=parent_comment_id,
			)
			await self.counters.increment(session, post_id, CounterField.COMMENTS)
			await self.composer.compose(
				session,
				DomainEvent(
					kind=NotificationKind.NEW_COMMENT,
					origin_user_id=user.id,
					origin_user_name=profile.full_name or user.display_name,
					receiver_id=post.author_id,
					post_id=post_id,
					content=text,
				),
			)
		return dto.CommentNode.from_model(comment)

	async def list_comments(self, post_id: int) -> list[dto.CommentNode]:
		async with self.store.reader() as session:
			if await session.get_post(post_id) is None:
				raise NotFoundError("post_not_found")
			comments = await session.list_comments(post_id)
		return build_comment_tree(comments)

	async def delete_comment(self, user: AuthenticatedUser, post_id: int, comment_id: int) -> int:
		async with self.store.transaction() as session:
			comment = await session.get_comment(comment_id)
			if comment is None or comment.post_id != post_id:
				raise NotFoundError("comment_not_found")
			if comment.author_id != user.id:
				raise UnauthorizedError("not_comment_author")
			removed = await session.delete_comment_thread(comment_id)
			if removed:
				await self.counters.adjust(session, post_id, CounterField.COMMENTS, -removed)
		return removed

	async def reconcile_counters(self, user: AuthenticatedUser, post_id: int) -> dto.CounterResponse:
		if not user.is_staff():
			raise UnauthorizedError("staff_only")
		async with self.store.transaction() as session:
			counters = await self.counters.reconcile(session, post_id)
		return dto.CounterResponse.from_model(counters)


__all__ = ["PostService", "build_comment_tree"]
