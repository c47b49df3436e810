"""JSON logging with request and socket scoped context.

Every record carries the service identity plus whatever is bound through
``log_context`` (request id, route, user, socket sid). Values passed through
``extra=`` are sanitised: credentials are redacted and user-authored text such as
message bodies or previews is reduced to its length.
"""

from __future__ import annotations

import json
import logging
import random
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import asdict, dataclass, replace
from datetime import datetime, timezone
from typing import Any, Iterator, Mapping, Optional

from classhub.settings import settings

_ROOT_LOGGER = "classhub"


@dataclass(frozen=True, slots=True)
class LogContext:
	request_id: Optional[str] = None
	route: Optional[str] = None
	user_id: Optional[str] = None
	sid: Optional[str] = None

	def fields(self) -> dict[str, str]:
		return {key: value for key, value in asdict(self).items() if value}


_CONTEXT: ContextVar[LogContext] = ContextVar("classhub_log_context", default=LogContext())

_CREDENTIAL_MARKERS = ("token", "secret", "authorization", "password", "cookie")
_USER_TEXT_KEYS = frozenset({"content", "preview", "message_text", "comment", "body"})
_MAX_TEXT = 200
_MAX_ITEMS = 10

# attributes every LogRecord carries; anything else came from ``extra=``
_STANDARD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {"message", "asctime"}
_BASE_KEYS = frozenset({"ts", "level", "event", "logger", "service", "env", "commit", "exc_info"})


def current_context() -> LogContext:
	return _CONTEXT.get()


@contextmanager
def log_context(**fields: Optional[str]) -> Iterator[LogContext]:
	"""Layer ``fields`` over the active context for the duration of the block."""
	bound = replace(_CONTEXT.get(), **{key: value for key, value in fields.items() if value is not None})
	token = _CONTEXT.set(bound)
	try:
		yield bound
	finally:
		_CONTEXT.reset(token)


def _clip(text: str) -> str:
	if len(text) <= _MAX_TEXT:
		return text
	return f"{text[:_MAX_TEXT]}...(+{len(text) - _MAX_TEXT})"


def sanitize(key: str, value: Any) -> Any:
	lowered = key.lower()
	if any(marker in lowered for marker in _CREDENTIAL_MARKERS):
		return "[redacted]"
	if lowered in _USER_TEXT_KEYS and isinstance(value, str):
		return f"<{len(value)} chars>"
	if isinstance(value, (bytes, bytearray, memoryview)):
		return f"<{len(value)} bytes>"
	if isinstance(value, str):
		return _clip(value)
	if isinstance(value, Mapping):
		items = list(value.items())
		cleaned = {str(k): sanitize(str(k), v) for k, v in items[:_MAX_ITEMS]}
		if len(items) > _MAX_ITEMS:
			cleaned["_truncated"] = len(items) - _MAX_ITEMS
		return cleaned
	if isinstance(value, (list, tuple, set, frozenset)):
		values = list(value)
		cleaned_list = [sanitize(key, item) for item in values[:_MAX_ITEMS]]
		if len(values) > _MAX_ITEMS:
			cleaned_list.append(f"+{len(values) - _MAX_ITEMS} more")
		return cleaned_list
	if value is None or isinstance(value, (bool, int, float)):
		return value
	return _clip(str(value))


class JSONLogFormatter(logging.Formatter):
	"""One JSON object per record."""

	def format(self, record: logging.LogRecord) -> str:  # noqa: A003 (logging api)
		payload: dict[str, Any] = {
			"ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
			"level": record.levelname.lower(),
			"event": record.getMessage(),
			"logger": record.name,
			"service": settings.service_name,
			"env": settings.environment,
			"commit": settings.git_commit,
		}
		payload.update(current_context().fields())
		for key, value in record.__dict__.items():
			if key in _STANDARD_ATTRS or key in _BASE_KEYS:
				continue
			payload[key] = sanitize(key, value)
		if record.exc_info:
			payload["exc_info"] = self.formatException(record.exc_info)
		return json.dumps(payload, separators=(",", ":"), default=str)


class InfoSamplingFilter(logging.Filter):
	"""Keeps a fraction of INFO and below; warnings and errors always pass."""

	def __init__(self, rate: float) -> None:
		super().__init__()
		self.rate = max(0.0, min(1.0, rate))

	def filter(self, record: logging.LogRecord) -> bool:  # noqa: A003
		if record.levelno >= logging.WARNING or self.rate >= 1.0:
			return True
		return random.random() < self.rate


def configure_logging(*, level: Optional[str] = None, sampling_rate: Optional[float] = None) -> logging.Logger:
	"""Route the root logger through a single JSON stream handler."""
	handler = logging.StreamHandler()
	handler.setFormatter(JSONLogFormatter())
	handler.addFilter(
		InfoSamplingFilter(settings.obs_log_sampling_rate_info if sampling_rate is None else sampling_rate)
	)
	root = logging.getLogger()
	root.handlers[:] = [handler]
	root.setLevel(level or settings.obs_log_level)
	return logging.getLogger(_ROOT_LOGGER)


def get_logger(name: Optional[str] = None) -> logging.Logger:
	return logging.getLogger(f"{_ROOT_LOGGER}.{name}" if name else _ROOT_LOGGER)


__all__ = [
	"InfoSamplingFilter",
	"JSONLogFormatter",
	"LogContext",
	"configure_logging",
	"current_context",
	"get_logger",
	"log_context",
	"sanitize",
]
