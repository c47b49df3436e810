import pytest

from classhub.engagement.domain.models import NotificationKind

ALICE = {"X-User-Id": "alice"}
BOB = {"X-User-Id": "bob"}


@pytest.mark.asyncio
async def test_group_membership_flow(api_client, engagement):
	created = await api_client.post("/groups", json={"name": "Chemistry"}, headers=ALICE)
	assert created.status_code == 201
	group_id = created.json()["id"]

	added = await api_client.post(f"/groups/{group_id}/members", json={"userId": "bob"}, headers=ALICE)
	assert added.status_code == 201
	assert added.json()["status"] == "ACTIVE"

	duplicate = await api_client.post(f"/groups/{group_id}/members", json={"userId": "bob"}, headers=ALICE)
	assert duplicate.status_code == 409

	promoted = await api_client.post(f"/groups/{group_id}/co-admins/bob", headers=ALICE)
	assert promoted.json()["isCoAdmin"] is True

	assert [n.kind for n in engagement.store.notifications_for("bob")] == [
		NotificationKind.MEMBER_ADDED,
		NotificationKind.CO_ADMIN_ASSIGNED,
	]

	left = await api_client.post(f"/groups/{group_id}/leave", headers=BOB)
	assert left.status_code == 204

	await engagement.dispatcher.drain()
	assert f"topic:group/{group_id}" in engagement.broker.routes()


@pytest.mark.asyncio
async def test_non_admin_cannot_archive_or_delete(api_client, engagement):
	group = engagement.store.seed_group(name="History", owner_id="alice")
	engagement.store.seed_member(group.id, "bob")

	assert (await api_client.put(f"/groups/{group.id}/archive", headers=BOB)).status_code == 403
	assert (await api_client.delete(f"/groups/{group.id}", headers=BOB)).status_code == 403

	archived = await api_client.put(f"/groups/{group.id}/archive", headers=ALICE)
	assert archived.json()["archived"] is True
	assert (await api_client.delete(f"/groups/{group.id}", headers=ALICE)).status_code == 204
	assert (await api_client.get(f"/groups/{group.id}", headers=ALICE)).status_code == 404


@pytest.mark.asyncio
async def test_remove_member_endpoint(api_client, engagement):
	group = engagement.store.seed_group(name="History", owner_id="alice")
	engagement.store.seed_member(group.id, "bob")

	resp = await api_client.delete(f"/groups/{group.id}/members/bob", headers=ALICE)

	assert resp.status_code == 204
	assert [n.kind for n in engagement.store.notifications_for("bob")] == [NotificationKind.MEMBER_REMOVED]

	self_removal = await api_client.delete(f"/groups/{group.id}/members/alice", headers=ALICE)
	assert self_removal.status_code == 400
