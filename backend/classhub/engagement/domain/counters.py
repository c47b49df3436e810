"""Counter manager keeping post counters in lockstep with engagement rows."""

from __future__ import annotations

import logging
from typing import Optional

from classhub.engagement.domain.exceptions import InvariantViolationError, NotFoundError
from classhub.engagement.domain.models import CounterField, CounterView, RelationKind
from classhub.engagement.domain.store import StoreSession
from classhub.obs import metrics as obs_metrics

_LOG = logging.getLogger(__name__)


def counter_field(kind: RelationKind, *, upvote: Optional[bool] = None) -> CounterField:
	"""Map a relation (and vote polarity) to the counter it feeds."""
	if kind is RelationKind.LIKE:
		return CounterField.LIKES
	if kind is RelationKind.BOOKMARK:
		return CounterField.BOOKMARKS
	if upvote is None:
		raise InvariantViolationError("vote_polarity_missing")
	return CounterField.UPVOTES if upvote else CounterField.DOWNVOTES


class CounterManager:
	"""Applies +/-1 counter changes inside the caller's transaction."""

	async def increment(self, session: StoreSession, post_id: int, field: CounterField) -> int:
		return await self.adjust(session, post_id, field, 1)

	async def decrement(self, session: StoreSession, post_id: int, field: CounterField) -> int:
		return await self.adjust(session, post_id, field, -1)

	async def adjust(self, session: StoreSession, post_id: int, field: CounterField, delta: int) -> int:
		if delta == 0:
			counters = await session.get_counters(post_id)
			if counters is None:
				raise NotFoundError("post_not_found")
			return counters.get(field)
		value = await session.adjust_counter(post_id, field, delta)
		if value is not None:
			return value
		counters = await session.get_counters(post_id)
		if counters is None:
			raise NotFoundError("post_not_found")
		obs_metrics.counter_invariant_violation(field.value)
		_LOG.error(
			"counters.negative_rejected",
			extra={"post_id": post_id, "field": field.value, "current": counters.get(field), "delta": delta},
		)
		raise InvariantViolationError(f"{field.value}_negative")

	async def swap(
		self,
		session: StoreSession,
		post_id: int,
		*,
		from_field: CounterField,
		to_field: CounterField,
	) -> CounterView:
		"""Move one unit between two counters; both changes share the transaction."""
		await self.decrement(session, post_id, from_field)
		await self.increment(session, post_id, to_field)
		counters = await session.get_counters(post_id)
		if counters is None:
			raise NotFoundError("post_not_found")
		return counters

	async def reconcile(self, session: StoreSession, post_id: int) -> CounterView:
		"""Recompute every counter from the engagement and comment rows."""
		current = await session.get_counters(post_id)
		if current is None:
			raise NotFoundError("post_not_found")
		actual = CounterView(
			like_count=await session.count_engagements(post_id, RelationKind.LIKE),
			comment_count=await session.count_comments(post_id),
			bookmark_count=await session.count_engagements(post_id, RelationKind.BOOKMARK),
			upvote_count=await session.count_engagements(post_id, RelationKind.VOTE, upvote=True),
			downvote_count=await session.count_engagements(post_id, RelationKind.VOTE, upvote=False),
		)
		if actual != current:
			_LOG.warning(
				"counters.drift_repaired",
				extra={"post_id": post_id, "stored": current.model_dump(), "actual": actual.model_dump()},
			)
			await session.overwrite_counters(post_id, actual)
		return actual


__all__ = ["CounterManager", "counter_field"]
