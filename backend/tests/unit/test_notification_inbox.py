import asyncio

import pytest

from classhub.engagement.domain.exceptions import InvalidInputError, NotFoundError, UnauthorizedError
from classhub.engagement.domain.models import RelationKind
from classhub.engagement.infra.cache import UNREAD_COUNT
from classhub.infra.auth import AuthenticatedUser

FRANK = AuthenticatedUser(id="frank")


@pytest.mark.asyncio
async def test_unread_count_and_mark_all_read_is_idempotent(engagement):
	for _ in range(4):
		engagement.store.seed_notification(receiver_id="frank")
	engagement.store.seed_notification(receiver_id="frank", is_read=True)
	service = engagement.notifications

	assert await service.unread_count(FRANK) == 4
	assert await service.mark_all_read(FRANK) == 4
	assert await service.unread_count(FRANK) == 0
	assert await service.mark_all_read(FRANK) == 0
	assert await service.unread_count(FRANK) == 0


@pytest.mark.asyncio
async def test_unread_count_is_served_from_cache_until_invalidated(engagement, fake_redis):
	engagement.store.seed_notification(receiver_id="frank")
	service = engagement.notifications

	assert await service.unread_count(FRANK) == 1
	assert await fake_redis.get(engagement.cache.key(UNREAD_COUNT, "frank")) == "1"

	# rows written behind the service's back are not seen until eviction
	engagement.store.seed_notification(receiver_id="frank")
	assert await service.unread_count(FRANK) == 1

	await engagement.cache.invalidate_unread_count("frank")
	assert await service.unread_count(FRANK) == 2


@pytest.mark.asyncio
async def test_mark_all_read_wins_over_a_count_loaded_before_it(engagement):
	for _ in range(4):
		engagement.store.seed_notification(receiver_id="frank")
	service = engagement.notifications
	read = asyncio.Event()
	resume = asyncio.Event()

	async def _slow_loader() -> int:
		async with engagement.store.reader() as session:
			count = await session.count_unread("frank")
		read.set()
		await resume.wait()
		return count

	load = asyncio.create_task(engagement.cache.get_or_load(UNREAD_COUNT, "frank", _slow_loader))
	await read.wait()
	assert await service.mark_all_read(FRANK) == 4
	resume.set()

	assert await load == 4
	assert await service.unread_count(FRANK) == 0


@pytest.mark.asyncio
async def test_mark_read_flips_one_row_and_evicts_count(engagement):
	first = engagement.store.seed_notification(receiver_id="frank")
	engagement.store.seed_notification(receiver_id="frank")
	service = engagement.notifications
	assert await service.unread_count(FRANK) == 2

	await service.mark_read(FRANK, first.id)

	assert engagement.store.state.notifications[first.id].is_read is True
	assert await service.unread_count(FRANK) == 1


@pytest.mark.asyncio
async def test_mark_read_is_noop_for_read_or_missing_rows(engagement):
	read = engagement.store.seed_notification(receiver_id="frank", is_read=True)
	before = engagement.store.state.notifications[read.id]

	await engagement.notifications.mark_read(FRANK, read.id)
	await engagement.notifications.mark_read(FRANK, 98765)

	assert engagement.store.state.notifications[read.id] == before


@pytest.mark.asyncio
async def test_mark_read_of_someone_elses_notification_is_forbidden(engagement):
	other = engagement.store.seed_notification(receiver_id="grace")

	with pytest.raises(UnauthorizedError):
		await engagement.notifications.mark_read(FRANK, other.id)

	assert engagement.store.state.notifications[other.id].is_read is False


@pytest.mark.asyncio
async def test_delete_missing_notification_is_not_found(engagement):
	with pytest.raises(NotFoundError):
		await engagement.notifications.delete(FRANK, 12345)


@pytest.mark.asyncio
async def test_delete_removes_row_and_evicts_count(engagement):
	doomed = engagement.store.seed_notification(receiver_id="frank")
	engagement.store.seed_notification(receiver_id="frank")
	service = engagement.notifications
	assert await service.unread_count(FRANK) == 2

	await service.delete(FRANK, doomed.id)

	assert doomed.id not in engagement.store.state.notifications
	assert await service.unread_count(FRANK) == 1


@pytest.mark.asyncio
async def test_delete_of_someone_elses_notification_is_forbidden(engagement):
	other = engagement.store.seed_notification(receiver_id="grace")

	with pytest.raises(UnauthorizedError):
		await engagement.notifications.delete(FRANK, other.id)

	assert other.id in engagement.store.state.notifications


@pytest.mark.asyncio
async def test_list_is_newest_first_with_cursor_pages(engagement):
	seeded = [engagement.store.seed_notification(receiver_id="frank") for _ in range(5)]
	engagement.store.seed_notification(receiver_id="grace")
	service = engagement.notifications

	first_page, cursor = await service.list_notifications(FRANK, limit=2)
	assert [item.id for item in first_page] == [seeded[4].id, seeded[3].id]
	assert cursor is not None

	second_page, cursor = await service.list_notifications(FRANK, limit=2, cursor=cursor)
	assert [item.id for item in second_page] == [seeded[2].id, seeded[1].id]

	last_page, cursor = await service.list_notifications(FRANK, limit=2, cursor=cursor)
	assert [item.id for item in last_page] == [seeded[0].id]
	assert cursor is None


@pytest.mark.asyncio
async def test_list_unread_only_skips_read_rows(engagement):
	engagement.store.seed_notification(receiver_id="frank", is_read=True)
	unread = engagement.store.seed_notification(receiver_id="frank")

	items, _ = await engagement.notifications.list_notifications(FRANK, only_unread=True)

	assert [item.id for item in items] == [unread.id]


@pytest.mark.asyncio
async def test_invalid_cursor_is_rejected(engagement):
	with pytest.raises(InvalidInputError):
		await engagement.notifications.list_notifications(FRANK, cursor="%%%")


@pytest.mark.asyncio
async def test_new_engagement_evicts_cached_count(engagement):
	engagement.store.seed_post(post_id=42, author_id="frank")
	service = engagement.notifications
	assert await service.unread_count(FRANK) == 0

	await engagement.toggles.toggle(42, AuthenticatedUser(id="bob"), RelationKind.LIKE)

	assert await service.unread_count(FRANK) == 1
