"""Centralised JWT helpers for access tokens.

Tokens come from the external identity provider. HS256 with the shared secret is
the default; configuring a public key switches verification to the asymmetric
algorithms listed in settings.
"""

from __future__ import annotations

import time
from typing import Any, Dict

import jwt
from jwt import InvalidTokenError

from classhub.settings import settings


def _verification_key() -> str:
    return settings.jwt_public_key or settings.jwt_secret


def encode_access(payload: dict[str, object], *, ttl_seconds: int = 3600) -> str:
    """Encode an HS256 access token; used by local tooling and tests."""
    now = int(time.time())
    body: Dict[str, Any] = {"iat": now, "exp": now + ttl_seconds}
    if settings.jwt_issuer:
        body["iss"] = settings.jwt_issuer
    if settings.jwt_audience:
        body["aud"] = settings.jwt_audience
    body.update(payload)
    return jwt.encode(body, settings.jwt_secret, algorithm="HS256")


def decode_access(token: str) -> dict[str, object]:
    """Decode and validate an access token.

    Raises jwt.InvalidTokenError subclasses on failure.
    """
    options: Dict[str, Any] = {"require": ["exp", "sub"]}
    if not settings.jwt_audience:
        options["verify_aud"] = False
    payload = jwt.decode(
        token,
        _verification_key(),
        algorithms=list(settings.jwt_algorithms),
        audience=settings.jwt_audience,
        issuer=settings.jwt_issuer,
        leeway=5,
        options=options,
    )
    if not str(payload.get("sub") or "").strip():
        raise InvalidTokenError("missing_claim:sub")
    return payload  # type: ignore[return-value]
