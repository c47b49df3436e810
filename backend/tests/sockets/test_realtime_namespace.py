from unittest.mock import AsyncMock

import pytest
import socketio

from classhub.engagement.realtime.namespaces import RealtimeNamespace, SocketIOBroker, event_for
from classhub.infra import jwt as jwt_helper


def _scope_with_authorization(token: str) -> dict:
	return {
		"headers": [(b"authorization", f"Bearer {token}".encode())],
	}


def _namespace(is_member=None) -> RealtimeNamespace:
	server = socketio.AsyncServer(async_mode="asgi")
	namespace = RealtimeNamespace(is_member=is_member)
	server.register_namespace(namespace)
	namespace.enter_room = AsyncMock()
	namespace.leave_room = AsyncMock()
	namespace.emit = AsyncMock()
	return namespace


@pytest.mark.asyncio
async def test_connect_requires_credentials():
	namespace = _namespace()

	with pytest.raises(ConnectionRefusedError):
		await namespace.trigger_event("connect", "sid-1", {"asgi.scope": {"headers": []}})


@pytest.mark.asyncio
async def test_connect_rejects_bad_token():
	namespace = _namespace()

	with pytest.raises(ConnectionRefusedError):
		await namespace.trigger_event("connect", "sid-1", {"asgi.scope": _scope_with_authorization("garbage")})


@pytest.mark.asyncio
async def test_connect_with_token_joins_inbox_and_global_topic():
	namespace = _namespace()
	token = jwt_helper.encode_access({"sub": "alice"})

	await namespace.trigger_event("connect", "sid-1", {"asgi.scope": _scope_with_authorization(token)})

	rooms = [call.args[1] for call in namespace.enter_room.await_args_list]
	assert rooms == ["user:alice", "topic:notifications"]
	namespace.emit.assert_awaited_with("ready", {"userId": "alice"}, room="sid-1")
	assert namespace.get_user("sid-1").id == "alice"


@pytest.mark.asyncio
async def test_connect_with_auth_payload_token():
	namespace = _namespace()
	token = jwt_helper.encode_access({"sub": "bob"})

	await namespace.trigger_event("connect", "sid-2", {"asgi.scope": {"headers": []}}, {"token": token})

	assert namespace.get_user("sid-2").id == "bob"


@pytest.mark.asyncio
async def test_dev_header_connect():
	namespace = _namespace()
	scope = {"headers": [(b"x-user-id", b"carol")]}

	await namespace.trigger_event("connect", "sid-3", {"asgi.scope": scope})

	assert namespace.get_user("sid-3").id == "carol"


@pytest.mark.asyncio
async def test_group_subscription_requires_membership():
	async def _is_member(group_id: int, user_id: str) -> bool:
		return (group_id, user_id) == (7, "alice")

	namespace = _namespace(is_member=_is_member)
	await namespace.trigger_event("connect", "sid-1", {"asgi.scope": {"headers": []}}, {"userId": "alice"})
	namespace.enter_room.reset_mock()

	accepted = await namespace.trigger_event("subscribe", "sid-1", {"route": "topic:group/7"})
	rejected = await namespace.trigger_event("subscribe", "sid-1", {"route": "topic:group/8"})
	foreign = await namespace.trigger_event("subscribe", "sid-1", {"route": "user:bob"})
	own = await namespace.trigger_event("subscribe", "sid-1", {"route": "user:alice"})

	assert accepted == {"ok": True, "route": "topic:group/7"}
	assert rejected == {"ok": False, "error": "membership_required"}
	assert foreign == {"ok": False, "error": "forbidden"}
	assert own == {"ok": True, "route": "user:alice"}
	namespace.enter_room.assert_awaited_once_with("sid-1", "topic:group/7")


@pytest.mark.asyncio
async def test_unsubscribe_and_disconnect():
	namespace = _namespace(is_member=AsyncMock(return_value=True))
	await namespace.trigger_event("connect", "sid-1", {"asgi.scope": {"headers": []}}, {"userId": "alice"})

	left = await namespace.trigger_event("unsubscribe", "sid-1", {"route": "topic:group/7"})
	refused = await namespace.trigger_event("unsubscribe", "sid-1", {"route": "user:alice"})
	await namespace.trigger_event("disconnect", "sid-1")

	assert left == {"ok": True, "route": "topic:group/7"}
	assert refused == {"ok": False, "error": "invalid_request"}
	namespace.leave_room.assert_awaited_once_with("sid-1", "topic:group/7")
	assert namespace.get_user("sid-1") is None


def test_event_names_by_route_and_kind():
	assert event_for("user:alice", {"kind": "MESSAGE"}) == "chat"
	assert event_for("user:alice", {"kind": "SEEN"}) == "chat"
	assert event_for("user:alice", {"kind": "POST_LIKED"}) == "notification"
	assert event_for("topic:notifications", {"kind": "NEW_POST"}) == "notification"


@pytest.mark.asyncio
async def test_broker_emits_into_route_room():
	server = AsyncMock()
	broker = SocketIOBroker(server)

	await broker.publish("user:alice", {"kind": "IMAGE", "id": 1})

	server.emit.assert_awaited_once_with("chat", {"kind": "IMAGE", "id": 1}, room="user:alice", namespace="/ws")
