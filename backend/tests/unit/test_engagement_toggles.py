import asyncio

import pytest

from classhub.engagement.domain.exceptions import DeadlineExceededError, InvalidInputError, NotFoundError
from classhub.engagement.domain.models import NotificationKind, RelationKind, ToggleAction
from classhub.engagement.domain.toggles import lock_key, notification_kind
from classhub.infra.auth import AuthenticatedUser

from classhub_testkit import InMemorySession


def _user(user_id: str) -> AuthenticatedUser:
	return AuthenticatedUser(id=user_id)


def test_lock_key_is_scoped_to_relation_post_and_user():
	assert lock_key(42, "bob", RelationKind.LIKE) == "like:42:bob"
	assert lock_key(42, "bob", RelationKind.VOTE) != lock_key(42, "bob", RelationKind.LIKE)


def test_notification_kind_follows_vote_polarity():
	assert notification_kind(RelationKind.LIKE) is NotificationKind.POST_LIKED
	assert notification_kind(RelationKind.BOOKMARK) is NotificationKind.POST_BOOKMARKED
	assert notification_kind(RelationKind.VOTE, upvote=True) is NotificationKind.POST_UPVOTED
	assert notification_kind(RelationKind.VOTE, upvote=False) is NotificationKind.POST_DOWNVOTED


@pytest.mark.asyncio
async def test_like_toggle_updates_counter_and_notifies_author(engagement):
	store = engagement.store
	store.seed_post(post_id=42, author_id="alice", like_count=7)

	added = await engagement.toggles.toggle(42, _user("bob"), RelationKind.LIKE)
	assert added.action is ToggleAction.ADDED
	assert added.count == 8
	assert store.post(42).like_count == 8
	assert len(store.records(RelationKind.LIKE, 42)) == 1

	inbox = store.notifications_for("alice")
	assert len(inbox) == 1
	assert inbox[0].kind is NotificationKind.POST_LIKED
	assert inbox[0].origin_user_id == "bob"
	assert added.notification is not None and added.notification.id == inbox[0].id

	removed = await engagement.toggles.toggle(42, _user("bob"), RelationKind.LIKE)
	assert removed.action is ToggleAction.REMOVED
	assert removed.count == 7
	assert removed.notification is None
	assert store.records(RelationKind.LIKE, 42) == []
	assert len(store.notifications_for("alice")) == 1


@pytest.mark.asyncio
async def test_self_like_counts_but_does_not_notify(engagement):
	store = engagement.store
	store.seed_post(post_id=7, author_id="carol")

	result = await engagement.toggles.toggle(7, _user("carol"), RelationKind.LIKE)
	await engagement.dispatcher.drain()

	assert result.count == 1
	assert result.notification is None
	assert store.all_notifications() == []
	assert engagement.broker.published == []


@pytest.mark.asyncio
async def test_vote_flip_changes_polarity_in_place(engagement):
	store = engagement.store
	store.seed_post(post_id=100, author_id="alice", upvote_count=5, downvote_count=2)
	existing = store.seed_engagement(RelationKind.VOTE, post_id=100, user_id="dave", upvote=True)

	result = await engagement.toggles.toggle(100, _user("dave"), RelationKind.VOTE, upvote=False)

	assert result.action is ToggleAction.CHANGED
	assert result.flipped
	assert result.record is not None and result.record.id == existing.id
	assert result.record.upvote is False
	assert (result.counters.upvote_count, result.counters.downvote_count) == (4, 3)
	kinds = [n.kind for n in store.notifications_for("alice")]
	assert kinds == [NotificationKind.POST_DOWNVOTED]


@pytest.mark.asyncio
async def test_same_polarity_vote_removes_record(engagement):
	store = engagement.store
	store.seed_post(post_id=5, author_id="alice", upvote_count=1)
	store.seed_engagement(RelationKind.VOTE, post_id=5, user_id="dave", upvote=True)

	result = await engagement.toggles.toggle(5, _user("dave"), RelationKind.VOTE, upvote=True)

	assert result.action is ToggleAction.REMOVED
	assert result.record is None
	assert store.post(5).upvote_count == 0
	assert store.notifications_for("alice") == []


@pytest.mark.asyncio
async def test_vote_requires_polarity(engagement):
	engagement.store.seed_post(post_id=5, author_id="alice")

	with pytest.raises(InvalidInputError):
		await engagement.toggles.toggle(5, _user("dave"), RelationKind.VOTE)


@pytest.mark.asyncio
async def test_toggle_on_missing_post_raises_and_writes_nothing(engagement):
	with pytest.raises(NotFoundError):
		await engagement.toggles.toggle(999, _user("bob"), RelationKind.BOOKMARK)

	assert engagement.store.all_notifications() == []
	assert engagement.store.rollbacks == 1


@pytest.mark.asyncio
async def test_unknown_user_is_rejected_before_any_write(engagement):
	engagement.store.seed_post(post_id=3, author_id="alice")
	engagement.users.missing.add("ghost")

	with pytest.raises(NotFoundError):
		await engagement.toggles.toggle(3, _user("ghost"), RelationKind.LIKE)

	assert engagement.store.commits == 0
	assert engagement.store.post(3).like_count == 0


@pytest.mark.asyncio
async def test_two_toggles_restore_original_state(engagement):
	store = engagement.store
	store.seed_post(post_id=11, author_id="alice", bookmark_count=3)

	for _ in range(2):
		await engagement.toggles.toggle(11, _user("bob"), RelationKind.BOOKMARK)

	assert store.records(RelationKind.BOOKMARK, 11) == []
	assert store.post(11).bookmark_count == 3


@pytest.mark.asyncio
@pytest.mark.parametrize("calls", [1, 2, 7, 10])
async def test_parallel_likes_end_present_only_for_odd_call_counts(engagement, calls):
	store = engagement.store
	store.seed_post(post_id=42, author_id="alice", like_count=7)
	user = _user("bob")

	await asyncio.gather(*(engagement.toggles.toggle(42, user, RelationKind.LIKE) for _ in range(calls)))

	present = len(store.records(RelationKind.LIKE, 42))
	assert present == calls % 2
	assert store.post(42).like_count == 7 + calls % 2


@pytest.mark.asyncio
@pytest.mark.parametrize("calls", [1, 5, 9])
async def test_parallel_vote_waves_leave_one_downvote(engagement, calls):
	# an even wave size returns to the absent state, so only odd sizes end with a record
	store = engagement.store
	store.seed_post(post_id=100, author_id="alice")
	user = _user("dave")

	await asyncio.gather(
		*(engagement.toggles.toggle(100, user, RelationKind.VOTE, upvote=True) for _ in range(calls))
	)
	await asyncio.gather(
		*(engagement.toggles.toggle(100, user, RelationKind.VOTE, upvote=False) for _ in range(calls))
	)

	records = store.records(RelationKind.VOTE, 100)
	assert len(records) == 1
	assert records[0].upvote is False
	post = store.post(100)
	assert (post.upvote_count, post.downvote_count) == (0, 1)


@pytest.mark.asyncio
async def test_different_users_do_not_serialise_on_each_other(engagement):
	store = engagement.store
	store.seed_post(post_id=8, author_id="alice")
	people = [f"user-{i}" for i in range(12)]

	await asyncio.gather(*(engagement.toggles.toggle(8, _user(uid), RelationKind.LIKE) for uid in people))

	assert store.post(8).like_count == len(people)
	assert len(store.notifications_for("alice")) == len(people)


@pytest.mark.asyncio
async def test_has_engagement_reflects_toggle_state(engagement):
	engagement.store.seed_post(post_id=9, author_id="alice")

	assert await engagement.toggles.has_engagement(9, "bob", RelationKind.LIKE) is False
	await engagement.toggles.toggle(9, _user("bob"), RelationKind.LIKE)
	assert await engagement.toggles.has_engagement(9, "bob", RelationKind.LIKE) is True

	with pytest.raises(NotFoundError):
		await engagement.toggles.has_engagement(404, "bob", RelationKind.LIKE)


def _assert_untouched(engagement, post_id: int, *, like_count: int) -> None:
	assert engagement.store.records(RelationKind.LIKE, post_id) == []
	assert engagement.store.post(post_id).like_count == like_count
	assert engagement.store.all_notifications() == []
	assert engagement.broker.published == []
	assert engagement.toggles.locks.size() == 0
	assert not any(lock.locked() for lock in engagement.store.advisory.values())


@pytest.mark.asyncio
async def test_store_timeout_mid_toggle_rolls_everything_back(engagement, monkeypatch):
	engagement.store.seed_post(post_id=21, author_id="alice", like_count=2)
	append = InMemorySession.append_notification

	async def _append_then_time_out(self, draft):
		await append(self, draft)
		raise DeadlineExceededError("store_timeout")

	monkeypatch.setattr(InMemorySession, "append_notification", _append_then_time_out)

	with pytest.raises(DeadlineExceededError):
		await engagement.toggles.toggle(21, _user("bob"), RelationKind.LIKE)
	await engagement.dispatcher.drain()

	assert engagement.store.rollbacks == 1
	assert engagement.store.commits == 0
	_assert_untouched(engagement, 21, like_count=2)


@pytest.mark.asyncio
async def test_cancelled_toggle_releases_locks_and_leaves_no_partial_state(engagement, monkeypatch):
	engagement.store.seed_post(post_id=22, author_id="alice", like_count=5)
	insert = InMemorySession.insert_engagement
	inserted = asyncio.Event()

	async def _insert_then_block(self, *args, **kwargs):
		record = await insert(self, *args, **kwargs)
		inserted.set()
		await asyncio.Event().wait()
		return record

	monkeypatch.setattr(InMemorySession, "insert_engagement", _insert_then_block)

	task = asyncio.create_task(engagement.toggles.toggle(22, _user("bob"), RelationKind.LIKE))
	await inserted.wait()
	assert len(engagement.store.records(RelationKind.LIKE, 22)) == 1
	task.cancel()
	with pytest.raises(asyncio.CancelledError):
		await task
	await engagement.dispatcher.drain()

	assert engagement.store.rollbacks == 1
	_assert_untouched(engagement, 22, like_count=5)

	monkeypatch.setattr(InMemorySession, "insert_engagement", insert)
	result = await engagement.toggles.toggle(22, _user("bob"), RelationKind.LIKE)
	assert result.action is ToggleAction.ADDED
	assert result.count == 6
