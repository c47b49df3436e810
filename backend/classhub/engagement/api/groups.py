"""Study group routes that emit membership and lifecycle notifications."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Response

from classhub.engagement import container
from classhub.engagement.api._errors import to_http_error
from classhub.engagement.schemas import dto
from classhub.infra.auth import AuthenticatedUser, get_current_user

router = APIRouter(tags=["engagement:groups"])


@router.post("/groups", response_model=dto.GroupResponse, status_code=201)
async def create_group_endpoint(
	payload: dto.GroupCreateRequest,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> dto.GroupResponse:
	try:
		return await container.get_group_service().create_group(auth_user, payload)
	except Exception as exc:
		raise to_http_error(exc) from exc


@router.get("/groups/{group_id}", response_model=dto.GroupResponse)
async def get_group_endpoint(
	group_id: int,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> dto.GroupResponse:
	try:
		return await container.get_group_service().get_group(group_id)
	except Exception as exc:
		raise to_http_error(exc) from exc


@router.post("/groups/{group_id}/members", response_model=dto.GroupMemberResponse, status_code=201)
async def add_member_endpoint(
	group_id: int,
	payload: dto.AddMemberRequest,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> dto.GroupMemberResponse:
	try:
		return await container.get_group_service().add_member(auth_user, group_id, payload)
	except Exception as exc:
		raise to_http_error(exc) from exc


@router.delete(
	"/groups/{group_id}/members/{user_id}",
	status_code=204,
	response_class=Response,
	response_model=None,
)
async def remove_member_endpoint(
	group_id: int,
	user_id: str,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> None:
	try:
		await container.get_group_service().remove_member(auth_user, group_id, user_id)
		return None
	except Exception as exc:
		raise to_http_error(exc) from exc


@router.post(
	"/groups/{group_id}/leave",
	status_code=204,
	response_class=Response,
	response_model=None,
)
async def leave_group_endpoint(
	group_id: int,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> None:
	try:
		await container.get_group_service().leave(auth_user, group_id)
		return None
	except Exception as exc:
		raise to_http_error(exc) from exc


@router.post("/groups/{group_id}/co-admins/{user_id}", response_model=dto.GroupMemberResponse)
async def assign_co_admin_endpoint(
	group_id: int,
	user_id: str,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> dto.GroupMemberResponse:
	try:
		return await container.get_group_service().assign_co_admin(auth_user, group_id, user_id)
	except Exception as exc:
		raise to_http_error(exc) from exc


@router.put("/groups/{group_id}/archive", response_model=dto.GroupResponse)
async def archive_group_endpoint(
	group_id: int,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> dto.GroupResponse:
	try:
		return await container.get_group_service().archive(auth_user, group_id)
	except Exception as exc:
		raise to_http_error(exc) from exc


@router.delete(
	"/groups/{group_id}",
	status_code=204,
	response_class=Response,
	response_model=None,
)
async def delete_group_endpoint(
	group_id: int,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> None:
	try:
		await container.get_group_service().delete(auth_user, group_id)
		return None
	except Exception as exc:
		raise to_http_error(exc) from exc
