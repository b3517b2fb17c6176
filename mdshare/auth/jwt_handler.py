import hashlib
import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

import bcrypt
from jose import JWTError, jwt

from mdshare.config import get_settings

logger = logging.getLogger(__name__)

JWT_ALGORITHM = "HS256"

BCRYPT_ROUNDS = 12

# bcrypt only looks at the first 72 bytes; 5.x raises on anything longer.
BCRYPT_MAX_PASSWORD_BYTES = 72


def _password_bytes(password: str) -> bytes:
    return password.encode("utf-8")[:BCRYPT_MAX_PASSWORD_BYTES]


def hash_password(password: str) -> str:
    return bcrypt.hashpw(_password_bytes(password), bcrypt.gensalt(rounds=BCRYPT_ROUNDS)).decode("utf-8")


def verify_password(plain_password: str, hashed_password: Optional[str]) -> bool:
    """Check a password against a stored bcrypt hash.

    OAuth-only accounts have no hash, so a missing or malformed hash is simply
    a mismatch.
    """
    if not hashed_password:
        return False
    try:
        return bcrypt.checkpw(_password_bytes(plain_password), hashed_password.encode("utf-8"))
    except (ValueError, TypeError) as e:
        logger.warning("bcrypt.checkpw failed (hash may be malformed): %s", e)
        return False


def hash_token(token: str) -> str:
    """SHA256 digest used to store refresh tokens at rest."""
    return hashlib.sha256(token.encode()).hexdigest()


def _encode(claims: dict[str, Any], expires_delta: timedelta, secret: str) -> str:
    now = datetime.now(timezone.utc)
    payload = {**claims, "jti": uuid.uuid4().hex, "iat": now, "exp": now + expires_delta}
    return jwt.encode(payload, secret, algorithm=JWT_ALGORITHM)


def access_token_ttl() -> timedelta:
    return timedelta(minutes=get_settings().access_token_expire_minutes)


def refresh_token_ttl() -> timedelta:
    return timedelta(days=get_settings().refresh_token_expire_days)


def create_access_token(user_id: str) -> str:
    settings = get_settings()
    return _encode({"sub": user_id, "type": "access"}, access_token_ttl(), settings.jwt_secret_key)


def create_refresh_token(user_id: str) -> str:
    settings = get_settings()
    return _encode({"sub": user_id, "type": "refresh"}, refresh_token_ttl(), settings.jwt_refresh_secret_key)


def verify_token(token: str, token_type: str = "access") -> Optional[dict[str, Any]]:
    """Decode a JWT of the given type, returning None when it is invalid or expired."""
    settings = get_settings()
    secret = settings.jwt_secret_key if token_type == "access" else settings.jwt_refresh_secret_key
    try:
        payload = jwt.decode(token, secret, algorithms=[JWT_ALGORITHM])
    except JWTError:
        return None
    if payload.get("type") != token_type:
        return None
    return payload
