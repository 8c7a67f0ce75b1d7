"""Password hashing and session tokens."""

from __future__ import annotations

import time
from typing import Optional

import jwt
from fastapi import Depends, Header, HTTPException
from werkzeug.security import check_password_hash, generate_password_hash

from snapbox.config import Settings, get_settings


class InvalidTokenError(Exception):
    pass


def hash_password(plain: str) -> str:
    return generate_password_hash(plain)


def verify_password(plain: str, hashed: str) -> bool:
    if not hashed:
        return False
    return check_password_hash(hashed, plain)


def issue_token(email: str, settings: Settings, now: Optional[float] = None) -> str:
    issued_at = int(now if now is not None else time.time())
    claims = {
        "email": email,
        "iat": issued_at,
        "exp": issued_at + settings.jwt_expires_seconds,
    }
    return jwt.encode(claims, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_token(token: str, settings: Settings) -> dict:
    try:
        claims = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
            options={"require": ["exp", "email"]},
        )
    except jwt.PyJWTError as exc:
        raise InvalidTokenError(str(exc)) from exc
    return claims


def require_user(
    authorization: Optional[str] = Header(default=None),
    settings: Settings = Depends(get_settings),
) -> str:
    """FastAPI dependency returning the email carried by a Bearer token."""
    scheme, _, token = (authorization or "").partition(" ")
    if scheme.lower() != "bearer" or not token:
        raise HTTPException(status_code=401, detail="Missing bearer token")
    try:
        claims = decode_token(token.strip(), settings)
    except InvalidTokenError:
        raise HTTPException(status_code=401, detail="Invalid or expired token")
    return claims["email"]
