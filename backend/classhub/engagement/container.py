"""Lightweight service container shared by the engagement API and realtime layer."""

from __future__ import annotations

from typing import Optional

from classhub.engagement.domain.chat_service import ChatService
from classhub.engagement.domain.composer import NotificationComposer
from classhub.engagement.domain.counters import CounterManager
from classhub.engagement.domain.groups_service import GroupService
from classhub.engagement.domain.notifications_service import NotificationService
from classhub.engagement.domain.posts_service import PostService
from classhub.engagement.domain.store import Store
from classhub.engagement.domain.toggles import ToggleEngine
from classhub.engagement.infra.cache import ReadThroughCache
from classhub.engagement.infra.media import MediaStore
from classhub.engagement.infra.postgres_store import PostgresStore
from classhub.engagement.infra.users import HttpUserDirectory, UserDirectory
from classhub.engagement.realtime.dispatcher import Broker, Dispatcher
from classhub.infra.locks import KeyedLockMap
from classhub.settings import settings

_store: Store = PostgresStore()
_users: UserDirectory = HttpUserDirectory()
_dispatcher = Dispatcher()
_cache = ReadThroughCache()
_media = MediaStore()
_locks = KeyedLockMap(shards=settings.lock_shards)
_counters = CounterManager()
_composer: NotificationComposer
_toggles: ToggleEngine
_posts: PostService
_notifications: NotificationService
_chats: ChatService
_groups: GroupService


def _wire() -> None:
	global _composer, _toggles, _posts, _notifications, _chats, _groups
	_composer = NotificationComposer(dispatcher=_dispatcher, cache=_cache)
	_toggles = ToggleEngine(
		store=_store,
		users=_users,
		composer=_composer,
		counters=_counters,
		locks=_locks,
	)
	_posts = PostService(store=_store, toggles=_toggles, composer=_composer, users=_users, counters=_counters)
	_notifications = NotificationService(store=_store, cache=_cache)
	_chats = ChatService(store=_store, composer=_composer, users=_users, media=_media)
	_groups = GroupService(store=_store, composer=_composer, users=_users)


_wire()


def configure(
	*,
	store: Optional[Store] = None,
	users: Optional[UserDirectory] = None,
	broker: Optional[Broker] = None,
	dispatcher: Optional[Dispatcher] = None,
	cache: Optional[ReadThroughCache] = None,
	media: Optional[MediaStore] = None,
	locks: Optional[KeyedLockMap] = None,
) -> None:
	"""Swap collaborators and rebuild the services that depend on them."""
	global _store, _users, _dispatcher, _cache, _media, _locks
	if store is not None:
		_store = store
	if users is not None:
		_users = users
	if dispatcher is not None:
		_dispatcher = dispatcher
	if broker is not None:
		_dispatcher.set_broker(broker)
	if cache is not None:
		_cache = cache
	if media is not None:
		_media = media
	if locks is not None:
		_locks = locks
	_wire()


def get_store() -> Store:
	return _store


def get_users() -> UserDirectory:
	return _users


def get_dispatcher() -> Dispatcher:
	return _dispatcher


def get_cache() -> ReadThroughCache:
	return _cache


def get_composer() -> NotificationComposer:
	return _composer


def get_toggle_engine() -> ToggleEngine:
	return _toggles


def get_post_service() -> PostService:
	return _posts


def get_notification_service() -> NotificationService:
	return _notifications


def get_chat_service() -> ChatService:
	return _chats


def get_group_service() -> GroupService:
	return _groups


async def is_active_member(group_id: int, user_id: str) -> bool:
	return await _groups.is_active_member(group_id, user_id)


__all__ = [
	"configure",
	"get_cache",
	"get_chat_service",
	"get_composer",
	"get_dispatcher",
	"get_group_service",
	"get_notification_service",
	"get_post_service",
	"get_store",
	"get_toggle_engine",
	"get_users",
	"is_active_member",
]
