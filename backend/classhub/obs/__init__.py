"""Observability package bootstrap."""

from __future__ import annotations

from fastapi import FastAPI
from fastapi.responses import PlainTextResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from classhub.obs import logging as obs_logging
from classhub.obs import middleware
from classhub.settings import settings

_initialised = False


async def _metrics_endpoint() -> PlainTextResponse:
	return PlainTextResponse(generate_latest(), media_type=CONTENT_TYPE_LATEST)


def init(app: FastAPI) -> None:
	global _initialised
	app.add_api_route("/metrics", _metrics_endpoint, methods=["GET"], include_in_schema=False)
	if not settings.obs_enabled:
		return
	middleware.install(app)
	if _initialised:
		return
	obs_logging.configure_logging()
	_initialised = True


__all__ = ["init"]
