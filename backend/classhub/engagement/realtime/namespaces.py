"""Socket.IO surface for notification delivery.

Every connection on ``/ws`` joins its own inbox room ``user:{uid}`` and the global
``topic:notifications`` room. Group topics are joined on demand with a ``subscribe``
event once membership is confirmed.
"""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Dict, Optional

import socketio
from fastapi import HTTPException

from classhub.engagement.domain.models import CHAT_KINDS
from classhub.engagement.realtime import routes as route_names
from classhub.infra.auth import AuthenticatedUser, user_from_dev_headers, verify_access_jwt
from classhub.obs import logging as obs_logging
from classhub.obs import metrics as obs_metrics
from classhub.settings import settings

_LOG = logging.getLogger(__name__)

NAMESPACE = "/ws"

MembershipCheck = Callable[[int, str], Awaitable[bool]]

_CHAT_KIND_VALUES = frozenset(kind.value for kind in CHAT_KINDS)


def _header(scope: dict, name: str) -> Optional[str]:
	target = name.encode().lower()
	for key, value in scope.get("headers", []):
		if key.lower() == target:
			return value.decode()
	return None


def event_for(route: str, payload: dict[str, Any]) -> str:
	"""``chat`` for chat-family notifications on an inbox route, else ``notification``."""
	if route_names.is_user_route(route) and payload.get("kind") in _CHAT_KIND_VALUES:
		return "chat"
	return "notification"


class RealtimeNamespace(socketio.AsyncNamespace):
	"""Places each authenticated session in its inbox and the global topic."""

	def __init__(self, *, is_member: MembershipCheck | None = None, namespace: str = NAMESPACE) -> None:
		super().__init__(namespace)
		self._is_member = is_member
		self._sessions: Dict[str, AuthenticatedUser] = {}

	def get_user(self, sid: str) -> Optional[AuthenticatedUser]:
		return self._sessions.get(sid)

	def _resolve_user(self, environ: dict, auth: Optional[dict]) -> AuthenticatedUser:
		scope = environ.get("asgi.scope", environ)
		auth_payload = auth or environ.get("auth") or scope.get("auth") or {}
		token = auth_payload.get("token")
		if not token:
			header = _header(scope, "authorization") or environ.get("HTTP_AUTHORIZATION")
			if header and header.lower().startswith("bearer "):
				token = header[7:].strip()
		if token:
			try:
				return verify_access_jwt(token)
			except HTTPException as exc:
				raise ConnectionRefusedError("invalid_token") from exc
		user = user_from_dev_headers(
			auth_payload.get("userId") or _header(scope, "x-user-id"),
			auth_payload.get("roles") or _header(scope, "x-user-roles"),
		)
		if user is None:
			raise ConnectionRefusedError("invalid_token")
		return user

	async def on_connect(self, sid: str, environ: dict, auth: Optional[dict] = None) -> None:
		with obs_logging.log_context(sid=sid):
			try:
				user = self._resolve_user(environ, auth)
			except ConnectionRefusedError:
				_LOG.info("realtime.connect_refused", extra={"namespace": self.namespace})
				raise
		obs_metrics.socket_connected(self.namespace)
		self._sessions[sid] = user
		await self.enter_room(sid, route_names.user_route(user.id))
		await self.enter_room(sid, route_names.global_route())
		await self.emit("ready", {"userId": user.id}, room=sid)

	async def on_disconnect(self, sid: str, *args: Any) -> None:
		user = self._sessions.pop(sid, None)
		if user is not None:
			obs_metrics.socket_disconnected(self.namespace)

	async def on_subscribe(self, sid: str, data: Any) -> dict[str, Any]:
		user = self._sessions.get(sid)
		route = data.get("route") if isinstance(data, dict) else None
		if user is None or not route:
			obs_metrics.socket_subscription("rejected")
			return {"ok": False, "error": "invalid_request"}
		if route in (route_names.user_route(user.id), route_names.global_route()):
			return {"ok": True, "route": route}
		group_id = route_names.route_group_id(route)
		if group_id is None:
			obs_metrics.socket_subscription("rejected")
			return {"ok": False, "error": "forbidden"}
		if self._is_member is None or not await self._is_member(group_id, user.id):
			obs_metrics.socket_subscription("rejected")
			with obs_logging.log_context(sid=sid, user_id=user.id):
				_LOG.info("realtime.subscribe_rejected", extra={"group_id": group_id})
			return {"ok": False, "error": "membership_required"}
		await self.enter_room(sid, route)
		obs_metrics.socket_subscription("accepted")
		return {"ok": True, "route": route}

	async def on_unsubscribe(self, sid: str, data: Any) -> dict[str, Any]:
		route = data.get("route") if isinstance(data, dict) else None
		user = self._sessions.get(sid)
		if user is None or not route or route_names.route_group_id(route) is None:
			return {"ok": False, "error": "invalid_request"}
		await self.leave_room(sid, route)
		return {"ok": True, "route": route}


class SocketIOBroker:
	"""Dispatcher broker emitting into the Socket.IO room named after the route."""

	def __init__(self, server: socketio.AsyncServer, *, namespace: str = NAMESPACE) -> None:
		self.server = server
		self.namespace = namespace

	async def publish(self, route: str, payload: dict[str, Any]) -> None:
		event = event_for(route, payload)
		obs_metrics.socket_event(self.namespace, event)
		await self.server.emit(event, payload, room=route, namespace=self.namespace)


def build_server(allow_origins: list[str]) -> socketio.AsyncServer:
	manager = None
	if settings.broker_redis_url:
		manager = socketio.AsyncRedisManager(settings.broker_redis_url)
		_LOG.info("realtime.redis_manager_enabled")
	return socketio.AsyncServer(
		async_mode="asgi",
		cors_allowed_origins=allow_origins,
		client_manager=manager,
	)


__all__ = ["NAMESPACE", "RealtimeNamespace", "SocketIOBroker", "build_server", "event_for"]
