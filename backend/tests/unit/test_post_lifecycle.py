import pytest

from classhub.engagement.domain.exceptions import InvalidInputError, NotFoundError, UnauthorizedError
from classhub.engagement.domain.models import Audience, NotificationKind, PostStatus, RelationKind
from classhub.infra.auth import AuthenticatedUser

TEACHER = AuthenticatedUser(id="teacher", roles=("ROLE_TEACHER",))
STUDENT = AuthenticatedUser(id="author", roles=("student",))


@pytest.mark.asyncio
async def test_staff_post_is_approved_and_broadcast(engagement):
	post = await engagement.posts.create_post(TEACHER, "  Exam moved to Friday  ")
	await engagement.dispatcher.drain()

	assert post.status is PostStatus.APPROVED
	assert post.content == "Exam moved to Friday"
	notifications = engagement.store.all_notifications()
	assert len(notifications) == 1
	assert notifications[0].kind is NotificationKind.NEW_POST
	assert notifications[0].audience is Audience.BROADCAST
	assert notifications[0].message == "New post created by Tess Teacher"
	assert engagement.broker.routes() == ["topic:notifications"]


@pytest.mark.asyncio
async def test_student_post_waits_for_approval_silently(engagement):
	post = await engagement.posts.create_post(STUDENT, "question about homework")

	assert post.status is PostStatus.PENDING
	assert engagement.store.all_notifications() == []


@pytest.mark.asyncio
async def test_create_post_validates_content(engagement):
	with pytest.raises(InvalidInputError):
		await engagement.posts.create_post(STUDENT, "   ")
	with pytest.raises(InvalidInputError):
		await engagement.posts.create_post(STUDENT, "x" * 5001)


@pytest.mark.asyncio
async def test_approval_notifies_author_once(engagement):
	pending = await engagement.posts.create_post(STUDENT, "draft")

	await engagement.posts.update_status(TEACHER, pending.id, PostStatus.APPROVED)
	await engagement.posts.update_status(TEACHER, pending.id, PostStatus.APPROVED)

	inbox = engagement.store.notifications_for("author")
	assert [n.kind for n in inbox] == [NotificationKind.POST_APPROVED]
	assert inbox[0].message == "Your post has been approved"


@pytest.mark.asyncio
async def test_moderation_requires_staff(engagement):
	engagement.store.seed_post(post_id=1, author_id="author", status=PostStatus.PENDING)

	with pytest.raises(UnauthorizedError):
		await engagement.posts.update_status(STUDENT, 1, PostStatus.APPROVED)
	with pytest.raises(UnauthorizedError):
		await engagement.posts.set_pinned(STUDENT, 1, True)
	with pytest.raises(UnauthorizedError):
		await engagement.posts.reconcile_counters(STUDENT, 1)


@pytest.mark.asyncio
async def test_pin_and_missing_post(engagement):
	engagement.store.seed_post(post_id=1, author_id="author")

	pinned = await engagement.posts.set_pinned(TEACHER, 1, True)
	assert pinned.pinned is True

	with pytest.raises(NotFoundError):
		await engagement.posts.set_pinned(TEACHER, 2, True)
	with pytest.raises(NotFoundError):
		await engagement.posts.get_post(2)


@pytest.mark.asyncio
async def test_delete_post_only_by_author(engagement):
	engagement.store.seed_post(post_id=1, author_id="author")
	engagement.store.seed_engagement(RelationKind.LIKE, post_id=1, user_id="reader")

	with pytest.raises(UnauthorizedError):
		await engagement.posts.delete_post(AuthenticatedUser(id="reader"), 1)

	await engagement.posts.delete_post(STUDENT, 1)

	assert 1 not in engagement.store.state.posts
	assert engagement.store.records(RelationKind.LIKE, 1) == []


@pytest.mark.asyncio
async def test_like_and_bookmark_responses(engagement):
	engagement.store.seed_post(post_id=42, author_id="alice", like_count=7)
	bob = AuthenticatedUser(id="bob")

	liked = await engagement.posts.like(bob, 42)
	assert (liked.liked, liked.action, liked.like_count) == (True, "liked", 8)
	assert liked.like is not None and liked.like.user_id == "bob"
	assert await engagement.posts.is_liked(bob, 42) is True

	unliked = await engagement.posts.like(bob, 42)
	assert (unliked.liked, unliked.action, unliked.like_count) == (False, "unliked", 7)
	assert unliked.like is None

	bookmarked = await engagement.posts.bookmark(bob, 42)
	assert (bookmarked.bookmarked, bookmarked.action, bookmarked.bookmark_count) == (True, "added", 1)
	assert [post.id for post in await engagement.posts.list_bookmarks(bob)] == [42]


@pytest.mark.asyncio
async def test_vote_responses(engagement):
	engagement.store.seed_post(post_id=100, author_id="alice")
	dave = AuthenticatedUser(id="dave")

	up = await engagement.posts.vote(dave, 100, upvote=True)
	assert up is not None and up.upvote is True and not up.flipped
	assert (up.upvote_count, up.downvote_count) == (1, 0)

	down = await engagement.posts.vote(dave, 100, upvote=False)
	assert down is not None and down.flipped
	assert down.id == up.id
	assert (down.upvote_count, down.downvote_count) == (0, 1)

	assert await engagement.posts.vote(dave, 100, upvote=False) is None


@pytest.mark.asyncio
async def test_reconcile_counters_as_staff(engagement):
	engagement.store.seed_post(post_id=3, author_id="alice", like_count=4)
	engagement.store.seed_engagement(RelationKind.LIKE, post_id=3, user_id="bob")

	counters = await engagement.posts.reconcile_counters(TEACHER, 3)

	assert counters.like_count == 1
	assert engagement.store.post(3).like_count == 1
