"""Post routes: engagement toggles, comments and the post lifecycle."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Form, Header, Query, Response

from classhub.engagement import container
from classhub.engagement.api._errors import to_http_error
from classhub.engagement.domain.models import PostStatus
from classhub.engagement.schemas import dto
from classhub.infra.auth import AuthenticatedUser, get_current_user

router = APIRouter(tags=["engagement:posts"])


@router.post("/posts", response_model=dto.PostResponse, status_code=201)
async def create_post_endpoint(
	content: str = Form(default=""),
	image_url: Optional[str] = Form(default=None, alias="imageUrl"),
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> dto.PostResponse:
	try:
		return await container.get_post_service().create_post(auth_user, content, image_url=image_url)
	except Exception as exc:
		raise to_http_error(exc) from exc


@router.get("/posts/bookmarks", response_model=list[dto.PostResponse])
async def list_bookmarks_endpoint(
	limit: int = Query(default=20, ge=1, le=100),
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> list[dto.PostResponse]:
	try:
		return await container.get_post_service().list_bookmarks(auth_user, limit=limit)
	except Exception as exc:
		raise to_http_error(exc) from exc


@router.get("/posts/{post_id}", response_model=dto.PostResponse)
async def get_post_endpoint(
	post_id: int,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> dto.PostResponse:
	try:
		return await container.get_post_service().get_post(post_id)
	except Exception as exc:
		raise to_http_error(exc) from exc


@router.put("/posts/{post_id}/status", response_model=dto.PostResponse)
async def update_status_endpoint(
	post_id: int,
	status: PostStatus = Query(...),
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> dto.PostResponse:
	try:
		return await container.get_post_service().update_status(auth_user, post_id, status)
	except Exception as exc:
		raise to_http_error(exc) from exc


@router.put("/posts/{post_id}/pin", response_model=dto.PostResponse)
async def pin_post_endpoint(
	post_id: int,
	pinned: bool = Query(default=True),
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> dto.PostResponse:
	try:
		return await container.get_post_service().set_pinned(auth_user, post_id, pinned)
	except Exception as exc:
		raise to_http_error(exc) from exc


@router.delete(
	"/posts/{post_id}",
	status_code=204,
	response_class=Response,
	response_model=None,
)
async def delete_post_endpoint(
	post_id: int,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> None:
	try:
		await container.get_post_service().delete_post(auth_user, post_id)
		return None
	except Exception as exc:
		raise to_http_error(exc) from exc


@router.post("/posts/{post_id}/like", response_model=dto.LikeResponse)
async def toggle_like_endpoint(
	post_id: int,
	idempotency_key: str | None = Header(default=None, alias="Idempotency-Key"),
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> dto.LikeResponse:
	try:
		return await container.get_post_service().like(auth_user, post_id, idempotency_key=idempotency_key)
	except Exception as exc:
		raise to_http_error(exc) from exc


@router.get("/posts/{post_id}/liked", response_model=bool)
async def is_liked_endpoint(
	post_id: int,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> bool:
	try:
		return await container.get_post_service().is_liked(auth_user, post_id)
	except Exception as exc:
		raise to_http_error(exc) from exc


@router.post("/posts/{post_id}/bookmark", response_model=dto.BookmarkResponse)
async def toggle_bookmark_endpoint(
	post_id: int,
	idempotency_key: str | None = Header(default=None, alias="Idempotency-Key"),
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> dto.BookmarkResponse:
	try:
		return await container.get_post_service().bookmark(auth_user, post_id, idempotency_key=idempotency_key)
	except Exception as exc:
		raise to_http_error(exc) from exc


@router.get("/posts/{post_id}/bookmarked", response_model=bool)
async def is_bookmarked_endpoint(
	post_id: int,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> bool:
	try:
		return await container.get_post_service().is_bookmarked(auth_user, post_id)
	except Exception as exc:
		raise to_http_error(exc) from exc


@router.post("/posts/{post_id}/vote", response_model=Optional[dto.VoteResponse])
async def toggle_vote_endpoint(
	post_id: int,
	upvote: bool = Query(...),
	idempotency_key: str | None = Header(default=None, alias="Idempotency-Key"),
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> Optional[dto.VoteResponse]:
	try:
		return await container.get_post_service().vote(
			auth_user,
			post_id,
			upvote=upvote,
			idempotency_key=idempotency_key,
		)
	except Exception as exc:
		raise to_http_error(exc) from exc


@router.post("/posts/{post_id}/comments", response_model=dto.CommentNode, status_code=201)
async def add_comment_endpoint(
	post_id: int,
	content: str = Form(default=""),
	parent_comment_id: Optional[int] = Form(default=None, alias="parentCommentId"),
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> dto.CommentNode:
	try:
		return await container.get_post_service().add_comment(
			auth_user,
			post_id,
			content,
			parent_comment_id=parent_comment_id,
		)
	except Exception as exc:
		raise to_http_error(exc) from exc


@router.get("/posts/{post_id}/comments", response_model=list[dto.CommentNode])
async def list_comments_endpoint(
	post_id: int,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> list[dto.CommentNode]:
	try:
		return await container.get_post_service().list_comments(post_id)
	except Exception as exc:
		raise to_http_error(exc) from exc


@router.delete(
	"/posts/{post_id}/comments/{comment_id}",
	status_code=204,
	response_class=Response,
	response_model=None,
)
async def delete_comment_endpoint(
	post_id: int,
	comment_id: int,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> None:
	try:
		await container.get_post_service().delete_comment(auth_user, post_id, comment_id)
		return None
	except Exception as exc:
		raise to_http_error(exc) from exc


@router.post("/posts/{post_id}/counters/reconcile", response_model=dto.CounterResponse)
async def reconcile_counters_endpoint(
	post_id: int,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> dto.CounterResponse:
	try:
		return await container.get_post_service().reconcile_counters(auth_user, post_id)
	except Exception as exc:
		raise to_http_error(exc) from exc
