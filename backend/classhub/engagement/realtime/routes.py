"""Broker route names and the audience-to-route mapping.

Routes double as Socket.IO room names:

- ``user:{uid}``          one user's inbox (every live session of that user)
- ``topic:notifications`` global broadcast
- ``topic:group/{gid}``   one group's topic
"""

from __future__ import annotations

from classhub.engagement.domain.models import Audience, Notification

GLOBAL_TOPIC = "notifications"

_USER_PREFIX = "user:"
_TOPIC_PREFIX = "topic:"
_GROUP_PREFIX = "topic:group/"


def user_route(user_id: str) -> str:
	return f"{_USER_PREFIX}{user_id}"


def topic_route(name: str) -> str:
	return f"{_TOPIC_PREFIX}{name}"


def group_route(group_id: int | str) -> str:
	return f"{_GROUP_PREFIX}{group_id}"


def global_route() -> str:
	return topic_route(GLOBAL_TOPIC)


def audience_route(audience: Audience, key: str) -> str:
	if audience is Audience.USER:
		return user_route(key)
	if audience is Audience.GROUP:
		return group_route(key)
	if audience is Audience.BROADCAST:
		return global_route()
	return topic_route(key)


def routes_for(notification: Notification) -> list[str]:
	return [audience_route(notification.audience, notification.audience_key)]


def is_user_route(route: str) -> bool:
	return route.startswith(_USER_PREFIX)


def route_group_id(route: str) -> int | None:
	if not route.startswith(_GROUP_PREFIX):
		return None
	try:
		return int(route[len(_GROUP_PREFIX):])
	except ValueError:
		return None


def route_family(route: str) -> str:
	"""Low-cardinality label for metrics."""
	if is_user_route(route):
		return "user"
	if route.startswith(_GROUP_PREFIX):
		return "group"
	return "topic"


__all__ = [
	"GLOBAL_TOPIC",
	"audience_route",
	"global_route",
	"group_route",
	"is_user_route",
	"route_family",
	"route_group_id",
	"routes_for",
	"topic_route",
	"user_route",
]
