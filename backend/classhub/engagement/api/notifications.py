"""Inbox routes for the caller's notifications."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, Response

from classhub.engagement import container
from classhub.engagement.api._errors import to_http_error
from classhub.engagement.schemas import dto
from classhub.infra.auth import AuthenticatedUser, get_current_user

router = APIRouter(tags=["engagement:notifications"])

NEXT_CURSOR_HEADER = "X-Next-Cursor"


async def _list(
	response: Response,
	auth_user: AuthenticatedUser,
	*,
	only_unread: bool,
	limit: int,
	cursor: Optional[str],
) -> list[dto.NotificationResponse]:
	items, next_cursor = await container.get_notification_service().list_notifications(
		auth_user,
		only_unread=only_unread,
		limit=limit,
		cursor=cursor,
	)
	if next_cursor:
		response.headers[NEXT_CURSOR_HEADER] = next_cursor
	return items


@router.get("/notifications", response_model=list[dto.NotificationResponse])
async def list_notifications_endpoint(
	response: Response,
	limit: int = Query(default=20, ge=1, le=100),
	cursor: str | None = Query(default=None),
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> list[dto.NotificationResponse]:
	try:
		return await _list(response, auth_user, only_unread=False, limit=limit, cursor=cursor)
	except Exception as exc:
		raise to_http_error(exc) from exc


@router.get("/notifications/unread", response_model=list[dto.NotificationResponse])
async def list_unread_endpoint(
	response: Response,
	limit: int = Query(default=20, ge=1, le=100),
	cursor: str | None = Query(default=None),
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> list[dto.NotificationResponse]:
	try:
		return await _list(response, auth_user, only_unread=True, limit=limit, cursor=cursor)
	except Exception as exc:
		raise to_http_error(exc) from exc


@router.get("/notifications/count", response_model=int)
async def unread_count_endpoint(
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> int:
	try:
		return await container.get_notification_service().unread_count(auth_user)
	except Exception as exc:
		raise to_http_error(exc) from exc


@router.put(
	"/notifications/read-all",
	status_code=204,
	response_class=Response,
	response_model=None,
)
async def mark_all_read_endpoint(
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> None:
	try:
		await container.get_notification_service().mark_all_read(auth_user)
		return None
	except Exception as exc:
		raise to_http_error(exc) from exc


@router.put(
	"/notifications/{notification_id}/read",
	status_code=204,
	response_class=Response,
	response_model=None,
)
async def mark_read_endpoint(
	notification_id: int,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> None:
	try:
		await container.get_notification_service().mark_read(auth_user, notification_id)
		return None
	except Exception as exc:
		raise to_http_error(exc) from exc


@router.delete(
	"/notifications/{notification_id}",
	status_code=204,
	response_class=Response,
	response_model=None,
)
async def delete_notification_endpoint(
	notification_id: int,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> None:
	try:
		await container.get_notification_service().delete(auth_user, notification_id)
		return None
	except Exception as exc:
		raise to_http_error(exc) from exc
