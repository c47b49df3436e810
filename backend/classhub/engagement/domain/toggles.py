"""Serialised add/remove toggles for likes, bookmarks and votes.

A toggle for one ``(post, user, relation)`` triple runs under two locks: the
in-process keyed lock map, then a transaction-scoped advisory lock in the store so
several worker processes serialise on the same key. Reading the current record,
writing the new state, moving the counters and composing the notification all share
one transaction.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from classhub.engagement.domain.composer import DomainEvent, NotificationComposer
from classhub.engagement.domain.counters import CounterManager, counter_field
from classhub.engagement.domain.exceptions import InvalidInputError, NotFoundError
from classhub.engagement.domain.models import (
	CounterView,
	EngagementRecord,
	Notification,
	NotificationKind,
	RelationKind,
	ToggleAction,
)
from classhub.engagement.domain.store import Store
from classhub.engagement.infra.users import UserDirectory
from classhub.infra.auth import AuthenticatedUser
from classhub.infra.locks import KeyedLockMap
from classhub.obs import metrics as obs_metrics

_LOG = logging.getLogger(__name__)


@dataclass(slots=True)
class ToggleResult:
	kind: RelationKind
	action: ToggleAction
	record: Optional[EngagementRecord]
	count: int
	counters: CounterView
	notification: Optional[Notification] = None

	@property
	def present(self) -> bool:
		return self.action is not ToggleAction.REMOVED

	@property
	def flipped(self) -> bool:
		return self.action is ToggleAction.CHANGED


def lock_key(post_id: int, user_id: str, kind: RelationKind) -> str:
	return f"{kind.value}:{post_id}:{user_id}"


def notification_kind(kind: RelationKind, *, upvote: Optional[bool] = None) -> NotificationKind:
	if kind is RelationKind.LIKE:
		return NotificationKind.POST_LIKED
	if kind is RelationKind.BOOKMARK:
		return NotificationKind.POST_BOOKMARKED
	return NotificationKind.POST_UPVOTED if upvote else NotificationKind.POST_DOWNVOTED


class ToggleEngine:
	"""Adds the relation when absent and removes it when present."""

	def __init__(
		self,
		*,
		store: Store,
		users: UserDirectory,
		composer: NotificationComposer,
		counters: CounterManager | None = None,
		locks: KeyedLockMap | None = None,
	) -> None:
		self.store = store
		self.users = users
		self.composer = composer
		self.counters = counters or CounterManager()
		self.locks = locks or KeyedLockMap()

	async def toggle(
		self,
		post_id: int,
		user: AuthenticatedUser,
		kind: RelationKind,
		*,
		upvote: Optional[bool] = None,
	) -> ToggleResult:
		if kind is RelationKind.VOTE and upvote is None:
			raise InvalidInputError("upvote_required")
		if kind is not RelationKind.VOTE:
			upvote = None
		# the directory call happens before any lock is taken
		profile = await self.users.get_user(user.id)
		actor_name = profile.full_name or user.display_name
		key = lock_key(post_id, user.id, kind)

		async with self.locks.hold(key):
			async with self.store.transaction() as session:
				post = await session.get_post(post_id)
				if post is None:
					raise NotFoundError("post_not_found")
				await session.lock_engagement(key)
				existing = await session.find_engagement(post_id, user.id, kind)

				record: Optional[EngagementRecord]
				if existing is None:
					record = await session.insert_engagement(post_id, user.id, kind, upvote=upvote)
					field = counter_field(kind, upvote=upvote)
					await self.counters.increment(session, post_id, field)
					action = ToggleAction.ADDED
				elif kind is not RelationKind.VOTE or existing.upvote == upvote:
					await session.delete_engagement(existing)
					field = counter_field(kind, upvote=existing.upvote)
					await self.counters.decrement(session, post_id, field)
					record = None
					action = ToggleAction.REMOVED
				else:
					record = await session.set_vote_polarity(existing.id, upvote=bool(upvote))
					field = counter_field(kind, upvote=upvote)
					await self.counters.swap(
						session,
						post_id,
						from_field=counter_field(kind, upvote=existing.upvote),
						to_field=field,
					)
					action = ToggleAction.CHANGED

				counters = await session.get_counters(post_id)
				if counters is None:
					raise NotFoundError("post_not_found")

				notification: Optional[Notification] = None
				if action is not ToggleAction.REMOVED:
					composed = await self.composer.compose(
						session,
						DomainEvent(
							kind=notification_kind(kind, upvote=upvote),
							origin_user_id=user.id,
							origin_user_name=actor_name,
							receiver_id=post.author_id,
							post_id=post.id,
							content=post.content,
						),
					)
					notification = composed.notification if composed else None

		obs_metrics.engagement_toggled(kind.value, action.value)
		_LOG.info(
			"toggles.applied",
			extra={"post_id": post_id, "kind": kind.value, "action": action.value, "count": counters.get(field)},
		)
		return ToggleResult(
			kind=kind,
			action=action,
			record=record,
			count=counters.get(field),
			counters=counters,
			notification=notification,
		)

	async def has_engagement(self, post_id: int, user_id: str, kind: RelationKind) -> bool:
		async with self.store.reader() as session:
			if await session.get_post(post_id) is None:
				raise NotFoundError("post_not_found")
			return await session.find_engagement(post_id, user_id, kind) is not None


__all__ = ["ToggleEngine", "ToggleResult", "lock_key", "notification_kind"]
