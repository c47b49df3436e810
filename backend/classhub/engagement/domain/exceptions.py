"""Custom exceptions for engagement and notification services."""

from __future__ import annotations

from fastapi import status


class EngagementError(Exception):
	"""Base class for engagement related errors."""

	status_code: int = status.HTTP_400_BAD_REQUEST
	detail: str = "engagement_error"

	def __init__(self, detail: str | None = None) -> None:
		super().__init__(detail or self.detail)
		if detail:
			self.detail = detail


class NotFoundError(EngagementError):
	"""Thrown when a referenced entity is missing."""

	status_code = status.HTTP_404_NOT_FOUND
	detail = "not_found"


class UnauthorizedError(EngagementError):
	"""Raised when the caller lacks rights for the action."""

	status_code = status.HTTP_403_FORBIDDEN
	detail = "forbidden"


class InvalidInputError(EngagementError):
	"""Raised for missing, empty, oversized or malformed input."""

	status_code = status.HTTP_400_BAD_REQUEST
	detail = "invalid_input"


class ConflictError(EngagementError):
	"""Raised for uniqueness violations not absorbed by the toggle engine."""

	status_code = status.HTTP_409_CONFLICT
	detail = "conflict"


class IdempotencyConflict(ConflictError):
	"""Raised when an idempotency key is reused with a mismatched request."""

	detail = "idempotency_conflict"


class UpstreamFailureError(EngagementError):
	"""Raised when the user directory lookup fails."""

	status_code = status.HTTP_502_BAD_GATEWAY
	detail = "upstream_failure"


class DeadlineExceededError(EngagementError):
	"""Raised when a store, broker or lookup call exceeds its deadline."""

	status_code = status.HTTP_504_GATEWAY_TIMEOUT
	detail = "timeout"


class StoreUnavailableError(EngagementError):
	"""Raised when the store cannot be reached."""

	status_code = status.HTTP_503_SERVICE_UNAVAILABLE
	detail = "store_unavailable"


class InvariantViolationError(EngagementError):
	"""A state transition that would break a counter or toggle invariant."""

	status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
	detail = "invariant_violation"
