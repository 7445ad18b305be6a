from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

from jose import JWTError, jwt
from passlib.context import CryptContext

from collabtask.config import settings

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


class InvalidAccessToken(ValueError):
  pass


def hash_password(password: str) -> str:
  return pwd_context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
  return pwd_context.verify(password, password_hash)


def create_access_token(user_id: str, *, ttl: timedelta | None = None, now: datetime | None = None) -> str:
  issued = now or datetime.now(timezone.utc)
  claims: dict[str, Any] = {
    "sub": user_id,
    "iss": settings.jwt_issuer,
    "iat": int(issued.timestamp()),
    "exp": int((issued + (ttl or timedelta(minutes=settings.jwt_ttl_minutes))).timestamp()),
  }
  return jwt.encode(claims, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> str:
  """Return the user id carried by a valid token."""
  try:
    claims = jwt.decode(
      (token or "").strip(),
      settings.jwt_secret,
      algorithms=[settings.jwt_algorithm],
      issuer=settings.jwt_issuer,
    )
  except JWTError as exc:
    raise InvalidAccessToken("Invalid token") from exc
  sub = claims.get("sub")
  if not sub:
    raise InvalidAccessToken("Invalid token")
  return str(sub)
