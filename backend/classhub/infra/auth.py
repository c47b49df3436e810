"""Authentication helpers for FastAPI endpoints and socket handshakes.

- Bearer JWTs from the identity provider are verified with PyJWT.
- Roles are read from the Keycloak ``realm_access.roles`` claim and a top-level ``roles`` claim.
- Dev headers (X-User-Id / X-User-Roles) are only respected in development.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional, Tuple

from fastapi import Depends, Header, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from classhub.infra import jwt as jwt_helper
from classhub.settings import settings

STAFF_ROLES = ("teacher", "admin", "instructor")


def normalise_role(role: str) -> str:
	value = str(role).strip().lower()
	if value.startswith("role_"):
		value = value[len("role_"):]
	return value


@dataclass(slots=True)
class AuthenticatedUser:
	id: str
	roles: Tuple[str, ...] = ()
	display_name: Optional[str] = None

	def has_role(self, role: str) -> bool:
		target = normalise_role(role)
		return any(normalise_role(item) == target for item in self.roles)

	def has_any_role(self, roles: Iterable[str]) -> bool:
		return any(self.has_role(role) for role in roles)

	def is_staff(self) -> bool:
		return self.has_any_role(STAFF_ROLES)


_bearer_scheme = HTTPBearer(auto_error=False)


def _roles_from_claim(claim: object) -> Tuple[str, ...]:
	if isinstance(claim, (list, tuple)):
		return tuple(str(r).strip() for r in claim if str(r).strip())
	if isinstance(claim, str):
		return tuple(part.strip() for part in claim.split(",") if part.strip())
	return ()


def verify_access_jwt(token: str) -> AuthenticatedUser:
	"""Decode and validate an access JWT and return an AuthenticatedUser."""
	try:
		payload = jwt_helper.decode_access(token)
	except Exception:
		raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid_token")

	sub = str(payload.get("sub") or "").strip()
	if not sub:
		raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid_token")

	realm_access = payload.get("realm_access")
	realm_roles = _roles_from_claim(realm_access.get("roles")) if isinstance(realm_access, dict) else ()
	roles = tuple(dict.fromkeys(realm_roles + _roles_from_claim(payload.get("roles"))))
	display_name = payload.get("name") or payload.get("preferred_username")

	return AuthenticatedUser(
		id=sub,
		roles=roles,
		display_name=str(display_name) if display_name is not None else None,
	)


def user_from_dev_headers(user_id: Optional[str], roles_raw: Optional[str]) -> Optional[AuthenticatedUser]:
	if not settings.is_dev() or not user_id:
		return None
	roles = tuple(filter(None, (part.strip() for part in (roles_raw or "").split(","))))
	return AuthenticatedUser(id=user_id, roles=roles)


async def get_current_user(
	request: Request,
	x_user_id: Optional[str] = Header(default=None, alias="X-User-Id"),
	x_user_roles: Optional[str] = Header(default=None, alias="X-User-Roles"),
	credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer_scheme),
) -> AuthenticatedUser:
	"""Resolve the authenticated user.

	In development we allow simple headers. In all other environments, headers are
	ignored and a valid Bearer JWT is required.
	"""
	user: Optional[AuthenticatedUser] = None
	if credentials and credentials.scheme.lower() == "bearer":
		user = verify_access_jwt(credentials.credentials)
	else:
		user = user_from_dev_headers(x_user_id, x_user_roles)
	if user is not None:
		request.state.user_id = user.id
		return user

	raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid_token")
