from __future__ import annotations

import time
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any

from jose import JWTError, jwt
from passlib.context import CryptContext

from backend.app.core.config import settings

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

ALGORITHM = "HS256"

# jti -> exp of tokens revoked by logout; per process, like the login limiter
_revoked: dict[str, int] = {}


def create_access_token(subject: str, expires_delta: timedelta | None = None) -> str:
    now = datetime.now(timezone.utc)
    expire = now + (
        expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    claims = {"sub": subject, "iat": now, "exp": expire, "jti": uuid.uuid4().hex}
    return jwt.encode(claims, settings.SECRET_KEY, algorithm=ALGORITHM)


def decode_access_token(token: str) -> dict[str, Any]:
    """Return the token's claims.

    Raises ``JWTError`` for a bad signature, an expired token or one that
    was revoked by logout.
    """
    claims = jwt.decode(token, settings.SECRET_KEY, algorithms=[ALGORITHM])
    if claims.get("jti") in _revoked:
        raise JWTError("Token has been revoked")
    return claims


def revoke_token(token: str) -> None:
    claims = decode_access_token(token)
    _prune_revoked()
    _revoked[claims["jti"]] = int(claims["exp"])


def _prune_revoked() -> None:
    # Expired tokens fail decoding anyway
    now = time.time()
    for jti in [j for j, exp in _revoked.items() if exp < now]:
        del _revoked[jti]


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)
