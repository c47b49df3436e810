"""HTTP client for the user directory service."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional, Protocol

import httpx

from classhub.engagement.domain.exceptions import (
	DeadlineExceededError,
	NotFoundError,
	UpstreamFailureError,
)
from classhub.obs import metrics as obs_metrics
from classhub.settings import settings

_LOG = logging.getLogger(__name__)


@dataclass(slots=True)
class UserProfile:
	id: str
	full_name: Optional[str] = None


class UserDirectory(Protocol):
	"""Interface for user existence and display-name lookups."""

	async def get_user(self, user_id: str) -> UserProfile:
		...


def _full_name(data: dict) -> Optional[str]:
	first = str(data.get("firstName") or "").strip()
	last = str(data.get("lastName") or "").strip()
	name = f"{first} {last}".strip()
	return name or data.get("name") or data.get("username")


class HttpUserDirectory:
	"""Looks users up with ``GET {base_url}/api/v1/users/{id}``.

	Timeouts and transport errors are retried ``retries`` times; a 404 is final.
	"""

	def __init__(
		self,
		base_url: str | None = None,
		*,
		timeout: float | None = None,
		retries: int | None = None,
		client: httpx.AsyncClient | None = None,
	) -> None:
		self.base_url = (base_url or settings.user_service_url).rstrip("/")
		self.timeout = timeout if timeout is not None else settings.user_lookup_timeout_seconds
		self.retries = max(0, retries if retries is not None else settings.user_lookup_retries)
		self._client = client
		self._owns_client = client is None

	@property
	def http(self) -> httpx.AsyncClient:
		if self._client is None:
			self._client = httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout)
		return self._client

	async def aclose(self) -> None:
		if self._client is not None and self._owns_client:
			await self._client.aclose()
			self._client = None

	async def get_user(self, user_id: str) -> UserProfile:
		url = f"{self.base_url}/api/v1/users/{user_id}"
		attempt = 0
		while True:
			try:
				response = await self.http.get(url, timeout=self.timeout)
			except httpx.TimeoutException as exc:
				if attempt < self.retries:
					attempt += 1
					await asyncio.sleep(0.05 * attempt)
					continue
				obs_metrics.user_lookup("timeout")
				_LOG.warning("users.lookup_timeout", extra={"lookup_user_id": user_id, "attempts": attempt + 1})
				raise DeadlineExceededError("user_lookup_timeout") from exc
			except httpx.HTTPError as exc:
				if attempt < self.retries:
					attempt += 1
					await asyncio.sleep(0.05 * attempt)
					continue
				obs_metrics.user_lookup("error")
				_LOG.warning("users.lookup_failed", extra={"lookup_user_id": user_id}, exc_info=True)
				raise UpstreamFailureError("user_lookup_failed") from exc

			if response.status_code == 404:
				obs_metrics.user_lookup("not_found")
				raise NotFoundError("user_not_found")
			if response.status_code >= 500 and attempt < self.retries:
				attempt += 1
				await asyncio.sleep(0.05 * attempt)
				continue
			if response.status_code >= 400:
				obs_metrics.user_lookup("error")
				_LOG.warning(
					"users.lookup_failed",
					extra={"lookup_user_id": user_id, "status": response.status_code},
				)
				raise UpstreamFailureError("user_lookup_failed")
			try:
				data = response.json()
			except ValueError as exc:
				obs_metrics.user_lookup("error")
				raise UpstreamFailureError("user_lookup_bad_payload") from exc
			obs_metrics.user_lookup("ok")
			if not isinstance(data, dict):
				return UserProfile(id=user_id)
			return UserProfile(id=str(data.get("id") or user_id), full_name=_full_name(data))


__all__ = ["HttpUserDirectory", "UserDirectory", "UserProfile"]
