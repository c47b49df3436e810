"""Chat routes: open/read a chat, message send/list, bulk seen and media upload."""

from __future__ import annotations

from fastapi import APIRouter, Depends, File, Query, Response, UploadFile

from classhub.engagement import container
from classhub.engagement.api._errors import to_http_error
from classhub.engagement.domain.exceptions import InvalidInputError
from classhub.engagement.schemas import dto
from classhub.infra.auth import AuthenticatedUser, get_current_user

router = APIRouter(tags=["engagement:chats"])


@router.post("/chats", response_model=dto.ChatResponse)
async def open_chat_endpoint(
	payload: dto.OpenChatRequest,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> dto.ChatResponse:
	try:
		return await container.get_chat_service().open_chat(auth_user, payload.recipient_id)
	except Exception as exc:
		raise to_http_error(exc) from exc


@router.get("/chats/{chat_id}", response_model=dto.ChatResponse)
async def get_chat_endpoint(
	chat_id: str,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> dto.ChatResponse:
	try:
		return await container.get_chat_service().get_chat(auth_user, chat_id)
	except Exception as exc:
		raise to_http_error(exc) from exc


@router.patch(
	"/chats/{chat_id}/seen",
	status_code=204,
	response_class=Response,
	response_model=None,
)
async def set_chat_seen_endpoint(
	chat_id: str,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> None:
	try:
		await container.get_chat_service().set_chat_seen(auth_user, chat_id)
		return None
	except Exception as exc:
		raise to_http_error(exc) from exc


@router.post("/chats/{chat_id}/messages", response_model=dto.MessageResponse, status_code=201)
async def send_message_endpoint(
	chat_id: str,
	payload: dto.SendMessageRequest,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> dto.MessageResponse:
	try:
		return await container.get_chat_service().send_message(auth_user, chat_id, payload)
	except Exception as exc:
		raise to_http_error(exc) from exc


@router.get("/chats/{chat_id}/messages", response_model=list[dto.MessageResponse])
async def list_messages_endpoint(
	chat_id: str,
	limit: int = Query(default=50, ge=1, le=200),
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> list[dto.MessageResponse]:
	try:
		return await container.get_chat_service().list_messages(auth_user, chat_id, limit=limit)
	except Exception as exc:
		raise to_http_error(exc) from exc


@router.post("/chats/{chat_id}/media", response_model=dto.MessageResponse, status_code=201)
async def upload_media_endpoint(
	chat_id: str,
	file: UploadFile = File(...),
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> dto.MessageResponse:
	chats = container.get_chat_service()
	try:
		limit = chats.media.max_bytes
		if file.size is not None and file.size > limit:
			raise InvalidInputError("file_too_large")
		# one byte past the limit is enough for the size check in MediaStore.save
		data = await file.read(limit + 1)
		return await chats.upload_media(
			auth_user,
			chat_id,
			filename=file.filename,
			data=data,
		)
	except Exception as exc:
		raise to_http_error(exc) from exc
