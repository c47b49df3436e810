import json
import logging

import pytest

from classhub.obs.logging import InfoSamplingFilter, JSONLogFormatter, current_context, log_context, sanitize
from classhub.obs.middleware import REQUEST_ID_HEADER


def _record(level: int = logging.INFO, **extra) -> logging.LogRecord:
	record = logging.LogRecord("classhub.test", level, __file__, 1, "toggle.applied", None, None)
	for key, value in extra.items():
		setattr(record, key, value)
	return record


def test_sanitize_redacts_credentials_and_summarises_user_text():
	assert sanitize("access_token", "abc") == "[redacted]"
	assert sanitize("Authorization", "Bearer x") == "[redacted]"
	assert sanitize("content", "see you at the exam") == "<19 chars>"
	assert sanitize("payload", b"\x89PNG") == "<4 bytes>"
	assert sanitize("routes", [f"user:{i}" for i in range(12)])[-1] == "+2 more"


def test_formatter_merges_bound_context():
	formatter = JSONLogFormatter()

	with log_context(request_id="req-12345678", user_id="alice"):
		with log_context(sid="sid-1"):
			line = json.loads(formatter.format(_record(post_id=42, preview="hello")))

	assert line["event"] == "toggle.applied"
	assert (line["request_id"], line["user_id"], line["sid"]) == ("req-12345678", "alice", "sid-1")
	assert line["post_id"] == 42
	assert line["preview"] == "<5 chars>"
	assert current_context().fields() == {}


def test_extra_route_overrides_request_route():
	formatter = JSONLogFormatter()

	with log_context(route="/posts/{post_id}/like"):
		line = json.loads(formatter.format(_record(route="user:alice")))

	assert line["route"] == "user:alice"


def test_sampling_filter_keeps_warnings():
	never = InfoSamplingFilter(0.0)

	assert never.filter(_record(logging.INFO)) is False
	assert never.filter(_record(logging.WARNING)) is True
	assert InfoSamplingFilter(1.0).filter(_record(logging.INFO)) is True


@pytest.mark.asyncio
async def test_request_id_echoed_or_minted(api_client, engagement):
	supplied = await api_client.get("/notifications/count", headers={"X-User-Id": "frank", REQUEST_ID_HEADER: "trace-abcdef01"})
	minted = await api_client.get("/notifications/count", headers={"X-User-Id": "frank", REQUEST_ID_HEADER: "bad id!"})

	assert supplied.headers[REQUEST_ID_HEADER] == "trace-abcdef01"
	assert minted.headers[REQUEST_ID_HEADER] != "bad id!"
	assert len(minted.headers[REQUEST_ID_HEADER]) == 32
