"""FastAPI routers for the engagement domain."""

from __future__ import annotations

from fastapi import APIRouter

from classhub.engagement.api import chats, groups, notifications, posts

router = APIRouter()

router.include_router(posts.router)
router.include_router(notifications.router)
router.include_router(chats.router)
router.include_router(groups.router)

__all__ = ["router"]
