"""Study group membership changes and the notifications they emit."""

from __future__ import annotations

import logging

from classhub.engagement.domain.composer import DomainEvent, NotificationComposer
from classhub.engagement.domain.exceptions import (
	ConflictError,
	InvalidInputError,
	NotFoundError,
	UnauthorizedError,
)
from classhub.engagement.domain.models import Group, GroupMember, MemberStatus, NotificationKind
from classhub.engagement.domain.store import Store, StoreSession
from classhub.engagement.infra.users import UserDirectory
from classhub.engagement.schemas import dto
from classhub.infra.auth import AuthenticatedUser

_LOG = logging.getLogger(__name__)


async def _load_group(session: StoreSession, group_id: int) -> Group:
	group = await session.get_group(group_id)
	if group is None:
		raise NotFoundError("group_not_found")
	return group


async def _require_manager(session: StoreSession, group_id: int, user_id: str) -> GroupMember:
	member = await session.get_member(group_id, user_id)
	if member is None or not member.can_manage:
		raise UnauthorizedError("group_admin_required")
	return member


async def _require_admin(session: StoreSession, group_id: int, user_id: str) -> GroupMember:
	member = await session.get_member(group_id, user_id)
	if member is None or not member.is_active or not member.is_admin:
		raise UnauthorizedError("group_owner_required")
	return member


class GroupService:
	def __init__(self, *, store: Store, composer: NotificationComposer, users: UserDirectory) -> None:
		self.store = store
		self.composer = composer
		self.users = users

	def _event(self, kind: NotificationKind, user: AuthenticatedUser, group: Group, **extra) -> DomainEvent:
		return DomainEvent(
			kind=kind,
			origin_user_id=user.id,
			origin_user_name=user.display_name,
			group_id=group.id,
			group_name=group.name,
			**extra,
		)

	async def get_group(self, group_id: int) -> dto.GroupResponse:
		async with self.store.reader() as session:
			group = await _load_group(session, group_id)
		return dto.GroupResponse.from_model(group)

	async def create_group(self, user: AuthenticatedUser, payload: dto.GroupCreateRequest) -> dto.GroupResponse:
		name = payload.name.strip()
		if not name:
			raise InvalidInputError("name_required")
		async with self.store.transaction() as session:
			group = await session.create_group(name=name, description=payload.description, owner_id=user.id)
			await session.upsert_member(group.id, user.id, is_admin=True)
			await self.composer.compose(session, self._event(NotificationKind.GROUP_CREATED, user, group))
		_LOG.info("groups.created", extra={"group_id": group.id})
		return dto.GroupResponse.from_model(group)

	async def add_member(
		self,
		user: AuthenticatedUser,
		group_id: int,
		payload: dto.AddMemberRequest,
	) -> dto.GroupMemberResponse:
		await self.users.get_user(payload.user_id)
		async with self.store.transaction() as session:
			group = await _load_group(session, group_id)
			await _require_manager(session, group_id, user.id)
			existing = await session.get_member(group_id, payload.user_id)
			if existing is not None and existing.is_active:
				raise ConflictError("already_member")
			member = await session.upsert_member(group_id, payload.user_id, is_co_admin=payload.co_admin)
			await self.composer.compose(
				session,
				self._event(NotificationKind.MEMBER_ADDED, user, group, receiver_id=payload.user_id),
			)
		return dto.GroupMemberResponse.from_model(member)

	async def remove_member(self, user: AuthenticatedUser, group_id: int, member_id: str) -> None:
		async with self.store.transaction() as session:
			group = await _load_group(session, group_id)
			requester = await _require_manager(session, group_id, user.id)
			if member_id == user.id and requester.is_admin:
				raise InvalidInputError("admin_cannot_remove_self")
			target = await session.get_member(group_id, member_id)
			if target is None:
				return
			if target.is_admin and not requester.is_admin:
				raise UnauthorizedError("cannot_remove_admin")
			await session.remove_member(group_id, member_id)
			await self.composer.compose(
				session,
				self._event(NotificationKind.MEMBER_REMOVED, user, group, receiver_id=member_id),
			)

	async def leave(self, user: AuthenticatedUser, group_id: int) -> None:
		async with self.store.transaction() as session:
			group = await _load_group(session, group_id)
			member = await session.get_member(group_id, user.id)
			if member is None or not member.is_active:
				raise NotFoundError("not_a_member")
			if member.is_admin:
				raise InvalidInputError("admin_cannot_leave")
			await session.set_member_status(group_id, user.id, MemberStatus.LEFT)
			await self.composer.compose(session, self._event(NotificationKind.MEMBER_LEFT, user, group))

	async def assign_co_admin(
		self,
		user: AuthenticatedUser,
		group_id: int,
		member_id: str,
	) -> dto.GroupMemberResponse:
		async with self.store.transaction() as session:
			group = await _load_group(session, group_id)
			await _require_admin(session, group_id, user.id)
			target = await session.get_member(group_id, member_id)
			if target is None or not target.is_active:
				raise NotFoundError("member_not_found")
			member = await session.set_co_admin(group_id, member_id, True)
			if member is None:
				raise NotFoundError("member_not_found")
			await self.composer.compose(
				session,
				self._event(NotificationKind.CO_ADMIN_ASSIGNED, user, group, receiver_id=member_id),
			)
		return dto.GroupMemberResponse.from_model(member)

	async def archive(self, user: AuthenticatedUser, group_id: int) -> dto.GroupResponse:
		async with self.store.transaction() as session:
			await _load_group(session, group_id)
			await _require_admin(session, group_id, user.id)
			group = await session.set_group_archived(group_id, True)
			if group is None:
				raise NotFoundError("group_not_found")
			await self.composer.compose(session, self._event(NotificationKind.GROUP_ARCHIVED, user, group))
		return dto.GroupResponse.from_model(group)

	async def delete(self, user: AuthenticatedUser, group_id: int) -> None:
		async with self.store.transaction() as session:
			group = await _load_group(session, group_id)
			await _require_admin(session, group_id, user.id)
			await session.delete_group(group_id)
			await self.composer.compose(session, self._event(NotificationKind.GROUP_DELETED, user, group))
		_LOG.info("groups.deleted", extra={"group_id": group_id})

	async def is_active_member(self, group_id: int, user_id: str) -> bool:
		async with self.store.reader() as session:
			member = await session.get_member(group_id, user_id)
		return member is not None and member.is_active


__all__ = ["GroupService"]
