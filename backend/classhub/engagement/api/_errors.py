"""Error translation helpers for the engagement API."""

from __future__ import annotations

import logging

from fastapi import HTTPException, status

from classhub.engagement.domain import exceptions

_LOG = logging.getLogger(__name__)


def to_http_error(exc: Exception) -> HTTPException:
	"""Translate domain exceptions to FastAPI HTTP errors."""
	if isinstance(exc, HTTPException):
		return exc
	if isinstance(exc, exceptions.InvariantViolationError):
		_LOG.error("api.invariant_violation", extra={"detail": exc.detail})
		return HTTPException(status_code=exc.status_code, detail=exc.detail)
	if isinstance(exc, exceptions.EngagementError):
		return HTTPException(status_code=exc.status_code, detail=exc.detail)
	if isinstance(exc, ValueError):
		return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
	_LOG.exception("api.unhandled_error", exc_info=exc)
	return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="internal_error")
