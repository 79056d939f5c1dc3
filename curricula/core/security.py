from __future__ import annotations

from dataclasses import dataclass
from typing import Annotated

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from curricula.config import Settings, get_settings

security_scheme = HTTPBearer(auto_error=False)

ROLES = frozenset({"admin", "editor", "viewer"})
READ_ROLES = ("admin", "editor", "viewer")
WRITE_ROLES = ("admin", "editor")


@dataclass(frozen=True)
class Principal:
  """Authenticated caller resolved from verified token claims."""

  subject: str
  role: str


def _unauthorized(detail: str) -> HTTPException:
  return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail={"error": "UNAUTHORIZED", "message": detail}, headers={"WWW-Authenticate": "Bearer"})


def decode_access_token(token: str, settings: Settings) -> Principal:
  """Verify an HMAC-signed bearer token and return the caller it names."""
  if not settings.jwt_secret:
    raise _unauthorized("Token verification is not configured")
  try:
    claims = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm], options={"require": ["sub"]})
  except jwt.PyJWTError as exc:
    raise _unauthorized("Invalid token") from exc

  role = claims.get("role")
  if role not in ROLES:
    raise _unauthorized("Invalid token claims")
  return Principal(subject=str(claims["sub"]), role=str(role))


async def get_current_principal(token: Annotated[HTTPAuthorizationCredentials | None, Depends(security_scheme)], settings: Settings = Depends(get_settings)) -> Principal:  # noqa: B008
  """Resolve the bearer token on the request into a principal."""
  if token is None or not token.credentials:
    raise _unauthorized("No token provided")
  return decode_access_token(token.credentials, settings)


def require_role(*roles: str):  # noqa: ANN201
  """Build a dependency that only admits principals holding one of `roles`."""
  allowed = frozenset(roles)

  async def _dependency(principal: Principal = Depends(get_current_principal)) -> Principal:  # noqa: B008
    if principal.role not in allowed:
      raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail={"error": "FORBIDDEN", "message": "Insufficient permissions"})
    return principal

  return _dependency
