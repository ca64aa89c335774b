"""Authentication dependencies for FastAPI endpoints.

Identity is consumed, not issued: a verified bearer JWT names the user. In
development only, an ``X-User-Id`` header stands in for local tools.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Header, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from teake.domain.common.validation import is_valid_uuid
from teake.infra import jwt as jwt_helper
from teake.obs import logging as obs_logging
from teake.settings import settings


@dataclass(slots=True)
class AuthenticatedUser:
	id: str
	email: Optional[str] = None
	nickname: Optional[str] = None


_bearer_scheme = HTTPBearer(auto_error=False)


def verify_access_jwt(token: str) -> AuthenticatedUser:
	try:
		payload = jwt_helper.decode_access(token)
	except Exception:
		# Normalise all decode failures to invalid_token for the API surface
		raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid_token")
	email = payload.get("email")
	nickname = payload.get("nickname")
	return AuthenticatedUser(
		id=str(payload["sub"]).strip(),
		email=str(email) if email is not None else None,
		nickname=str(nickname) if nickname is not None else None,
	)


async def get_current_user(
	x_user_id: Optional[str] = Header(default=None, alias="X-User-Id"),
	credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer_scheme),
) -> AuthenticatedUser:
	user: Optional[AuthenticatedUser] = None
	if credentials and credentials.scheme.lower() == "bearer":
		user = verify_access_jwt(credentials.credentials)
	elif settings.is_dev() and x_user_id:
		user = AuthenticatedUser(id=x_user_id.strip())
	# Identifiers are UUIDs; anything else cannot name an account. Stored ids are lower case.
	if user is not None and is_valid_uuid(user.id):
		user.id = user.id.lower()
		obs_logging.bind_context(user_id=user.id)
		return user
	raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid_token")
