"""Security utilities for auth."""

from __future__ import annotations

import hashlib
import secrets
from typing import Any

import bcrypt
from jose import JWTError, jwt

from auth.exceptions import InvalidTokenError, PasswordTooLongError

# bcrypt only reads the first 72 bytes and recent releases reject anything longer.
MAX_PASSWORD_BYTES = 72


def ensure_password_hashable(password: str) -> None:
    if len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
        raise PasswordTooLongError(MAX_PASSWORD_BYTES)


def hash_password(password: str, rounds: int = 12) -> str:
    """Hash a password using bcrypt."""
    ensure_password_hashable(password)
    password_bytes = password.encode("utf-8")
    salt = bcrypt.gensalt(rounds=rounds)
    hashed = bcrypt.hashpw(password_bytes, salt)
    return hashed.decode("utf-8")


def verify_password(password: str, hashed_password: str | None) -> bool:
    """Verify a password against a hash."""
    if not password or not hashed_password:
        return False
    try:
        password_bytes = password.encode("utf-8")
        hashed_bytes = hashed_password.encode("utf-8")
        return bcrypt.checkpw(password_bytes, hashed_bytes)
    except ValueError:
        # Malformed stored hash or over-long password
        return False


def hash_token(token: str) -> str:
    """One-way hash used to persist refresh and single-use tokens."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def generate_opaque_token() -> str:
    return secrets.token_urlsafe(32)


def tokens_match(token_hash: str, expected_hash: str | None) -> bool:
    if not expected_hash:
        return False
    return secrets.compare_digest(token_hash, expected_hash)


def encode_jwt(payload: dict[str, Any], secret: str, algorithm: str) -> str:
    return jwt.encode(payload, secret, algorithm=algorithm)


def decode_jwt(token: str, secret: str, algorithm: str) -> dict[str, Any]:
    """Check the signature and claim shapes. Expiry is left to the caller's clock."""
    try:
        return jwt.decode(
            token,
            secret,
            algorithms=[algorithm],
            options={"verify_exp": False},
        )
    except JWTError as exc:
        raise InvalidTokenError(reason="bad_signature") from exc
