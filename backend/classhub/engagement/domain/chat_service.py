"""Chat message state transitions and the chat notifications they emit.

Messages move SENT -> (DELIVERED) -> SEEN. Only the bulk SEEN transition is exposed:
opening a chat flips every message addressed to the viewer and sends one SEEN
notification to the other participant.
"""

from __future__ import annotations

import logging
from typing import Optional

from classhub.engagement.domain.composer import DomainEvent, NotificationComposer
from classhub.engagement.domain.exceptions import InvalidInputError, NotFoundError, UnauthorizedError
from classhub.engagement.domain.models import Chat, MessageType, NotificationKind
from classhub.engagement.domain.store import Store, StoreSession
from classhub.engagement.infra.media import MediaStore
from classhub.engagement.infra.users import UserDirectory
from classhub.engagement.schemas import dto
from classhub.infra.auth import AuthenticatedUser
from classhub.obs import metrics as obs_metrics

_LOG = logging.getLogger(__name__)


async def _participant_chat(session: StoreSession, chat_id: str, user_id: str) -> Chat:
	chat = await session.get_chat(chat_id)
	if chat is None:
		raise NotFoundError("chat_not_found")
	if not chat.has_participant(user_id):
		raise UnauthorizedError("not_chat_participant")
	return chat


class ChatService:
	def __init__(
		self,
		*,
		store: Store,
		composer: NotificationComposer,
		users: UserDirectory,
		media: MediaStore | None = None,
	) -> None:
		self.store = store
		self.composer = composer
		self.users = users
		self.media = media or MediaStore()

	async def _actor_name(self, user: AuthenticatedUser) -> Optional[str]:
		profile = await self.users.get_user(user.id)
		return profile.full_name or user.display_name

	async def open_chat(self, user: AuthenticatedUser, other_user_id: str) -> dto.ChatResponse:
		if other_user_id == user.id:
			raise InvalidInputError("cannot_chat_with_self")
		await self.users.get_user(other_user_id)
		async with self.store.transaction() as session:
			chat = await session.find_or_create_chat(user.id, other_user_id)
			unread = await session.count_unseen_messages(chat.id, user.id)
		return dto.ChatResponse.from_model(chat, unread_count=unread)

	async def get_chat(self, user: AuthenticatedUser, chat_id: str) -> dto.ChatResponse:
		async with self.store.reader() as session:
			chat = await _participant_chat(session, chat_id, user.id)
			unread = await session.count_unseen_messages(chat.id, user.id)
		return dto.ChatResponse.from_model(chat, unread_count=unread)

	async def set_chat_seen(self, user: AuthenticatedUser, chat_id: str) -> int:
		actor = await self._actor_name(user)
		async with self.store.transaction() as session:
			chat = await _participant_chat(session, chat_id, user.id)
			updated = await session.mark_chat_seen(chat_id, user.id)
			await self.composer.compose(
				session,
				DomainEvent(
					kind=NotificationKind.SEEN,
					origin_user_id=user.id,
					origin_user_name=actor,
					receiver_id=chat.other_participant(user.id),
					chat_id=chat.id,
				),
			)
		obs_metrics.chat_seen(updated)
		_LOG.info("chats.seen", extra={"chat_id": chat_id, "updated": updated})
		return updated

	async def send_message(
		self,
		user: AuthenticatedUser,
		chat_id: str,
		payload: dto.SendMessageRequest,
	) -> dto.MessageResponse:
		content = payload.content.strip()
		if not content:
			raise InvalidInputError("content_required")
		actor = await self._actor_name(user)
		async with self.store.transaction() as session:
			chat = await _participant_chat(session, chat_id, user.id)
			receiver = chat.other_participant(user.id)
			message = await session.insert_message(
				chat_id=chat.id,
				sender_id=user.id,
				receiver_id=receiver,
				type=payload.type,
				content=content,
			)
			await self.composer.compose(
				session,
				DomainEvent(
					kind=NotificationKind.MESSAGE,
					origin_user_id=user.id,
					origin_user_name=actor,
					receiver_id=receiver,
					chat_id=chat.id,
					message_type=payload.type,
					content=content,
				),
			)
		return dto.MessageResponse.from_model(message)

	async def list_messages(self, user: AuthenticatedUser, chat_id: str, *, limit: int = 50) -> list[dto.MessageResponse]:
		limit = max(1, min(limit, 200))
		async with self.store.reader() as session:
			await _participant_chat(session, chat_id, user.id)
			messages = await session.list_messages(chat_id, limit=limit)
		return [dto.MessageResponse.from_model(message) for message in messages]

	async def upload_media(
		self,
		user: AuthenticatedUser,
		chat_id: str,
		*,
		filename: Optional[str],
		data: bytes,
	) -> dto.MessageResponse:
		actor = await self._actor_name(user)
		async with self.store.reader() as session:
			await _participant_chat(session, chat_id, user.id)
		# file I/O stays outside the transaction
		stored = await self.media.save(user.id, filename, data)
		try:
			async with self.store.transaction() as session:
				chat = await _participant_chat(session, chat_id, user.id)
				receiver = chat.other_participant(user.id)
				message = await session.insert_message(
					chat_id=chat.id,
					sender_id=user.id,
					receiver_id=receiver,
					type=MessageType.IMAGE,
					media_path=stored.path,
				)
				await self.composer.compose(
					session,
					DomainEvent(
						kind=NotificationKind.IMAGE,
						origin_user_id=user.id,
						origin_user_name=actor,
						receiver_id=receiver,
						chat_id=chat.id,
						message_type=MessageType.IMAGE,
						media=data,
					),
				)
		except Exception:
			await self.media.remove(stored.path)
			raise
		return dto.MessageResponse.from_model(message)


__all__ = ["ChatService"]
