"""HTTP middleware binding the log context and recording request metrics."""

from __future__ import annotations

import logging
import re
import time
from uuid import uuid4

from fastapi import FastAPI, Request
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response

from classhub.obs import logging as obs_logging
from classhub.obs import metrics

REQUEST_ID_HEADER = "X-Request-Id"

_ACCEPTED_REQUEST_ID = re.compile(r"^[A-Za-z0-9._-]{8,64}$")


def request_id_for(request: Request) -> str:
	"""Reuse a well-formed client request id, otherwise mint one."""
	supplied = request.headers.get(REQUEST_ID_HEADER, "")
	if _ACCEPTED_REQUEST_ID.match(supplied):
		return supplied
	return uuid4().hex


def _route_template(request: Request) -> str:
	route = request.scope.get("route")
	return getattr(route, "path", None) or request.url.path


class ObservabilityMiddleware(BaseHTTPMiddleware):
	"""One ``http_request`` log line and one latency sample per request."""

	def __init__(self, app, *, logger: logging.Logger | None = None) -> None:
		super().__init__(app)
		self._logger = logger or obs_logging.get_logger("http")

	async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
		request_id = request_id_for(request)
		request.state.request_id = request_id
		started = time.perf_counter()
		with obs_logging.log_context(request_id=request_id, route=request.url.path):
			try:
				response = await call_next(request)
			except Exception:
				self._finish(request, 500, started)
				raise
			self._finish(request, response.status_code, started)
		response.headers.setdefault(REQUEST_ID_HEADER, request_id)
		return response

	def _finish(self, request: Request, status_code: int, started: float) -> None:
		elapsed = time.perf_counter() - started
		route = _route_template(request)
		metrics.observe_request(route, request.method, status_code, elapsed)
		level = logging.WARNING if status_code >= 500 else logging.INFO
		self._logger.log(
			level,
			"http_request",
			extra={
				"method": request.method,
				"route": route,
				"status": status_code,
				"latency_ms": round(elapsed * 1000, 3),
				"user_id": getattr(request.state, "user_id", None),
			},
		)


def install(app: FastAPI) -> None:
	app.add_middleware(ObservabilityMiddleware)
