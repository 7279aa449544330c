"""Admin authentication: bcrypt password hashes and signed, time-limited JWTs."""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

import bcrypt
import jwt

from menu_api.errors import AuthenticationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AdminClaims:
    id: uuid.UUID
    email: str
    role: str


def get_password_hash(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain_password: str, hashed_password: str) -> bool:
    try:
        return bcrypt.checkpw(plain_password.encode("utf-8"), hashed_password.encode("utf-8"))
    except ValueError as exc:
        logger.warning("Password verification error", extra={"error": str(exc)})
        return False


def create_access_token(
    claims: AdminClaims,
    secret: str,
    algorithm: str = "HS256",
    expires_delta: timedelta = timedelta(minutes=60),
) -> str:
    now = datetime.now(timezone.utc)
    payload: dict[str, Any] = {
        "sub": str(claims.id),
        "email": claims.email,
        "role": claims.role,
        "iat": now,
        "exp": now + expires_delta,
    }
    return jwt.encode(payload, secret, algorithm=algorithm)


def decode_access_token(token: str, secret: str, algorithm: str = "HS256") -> AdminClaims:
    try:
        payload = jwt.decode(token, secret, algorithms=[algorithm])
    except jwt.ExpiredSignatureError:
        raise AuthenticationError("Token expired")
    except jwt.PyJWTError:
        raise AuthenticationError("Invalid token")

    try:
        return AdminClaims(
            id=uuid.UUID(payload["sub"]),
            email=payload["email"],
            role=payload["role"],
        )
    except (KeyError, ValueError):
        raise AuthenticationError("Invalid token")


def claims_from_authorization(header: str | None, secret: str, algorithm: str = "HS256") -> AdminClaims:
    if not header:
        raise AuthenticationError("Authorization header missing")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token:
        raise AuthenticationError("Authorization header must start with Bearer")
    return decode_access_token(token.strip(), secret, algorithm)
