"""API key registry and admin credential helpers.

API keys live in memory for the lifetime of the process, seeded from
``API_KEYS``. Admin endpoints authenticate with a bcrypt password hash and
hand out JWTs signed with ``JWT_SECRET``.
"""
import logging
import secrets
import string
import time
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Optional

import bcrypt
from jose import JWTError, jwt

from server.downloaders.exceptions import ForbiddenError, UnauthorizedError

logger = logging.getLogger(__name__)

JWT_ALGORITHM = "HS256"
JWT_ISSUER = "video-downloader-api"
JWT_AUDIENCE = "video-downloader-client"

API_KEY_PREFIX = "vd_"
MASKED_KEY_LENGTH = 10

_KEY_ALPHABET = string.ascii_lowercase + string.digits


def mask_key(key: str) -> str:
    return key[:MASKED_KEY_LENGTH] + "..."


def generate_api_key() -> str:
    """Return a new key of the form ``vd_<millis>_<random>``."""
    random_part = "".join(secrets.choice(_KEY_ALPHABET) for _ in range(13))
    return f"{API_KEY_PREFIX}{int(time.time() * 1000)}_{random_part}"


class ApiKeyRegistry:
    """Set of accepted API keys with creation metadata."""

    def __init__(self, keys: Iterable[str] = ()):
        self._keys: Dict[str, Dict[str, Any]] = {}
        for key in keys:
            self._keys[key] = {"description": None, "createdAt": None}

    def __len__(self) -> int:
        return len(self._keys)

    def __contains__(self, key: object) -> bool:
        return key in self._keys

    def is_valid(self, key: Optional[str]) -> bool:
        return bool(key) and key in self._keys

    def add(self, key: str, description: Optional[str] = None) -> Dict[str, Any]:
        created_at = datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")
        self._keys[key] = {"description": description, "createdAt": created_at}
        logger.info(f"Added new API key: {mask_key(key)}")
        return {"apiKey": key, "description": description, "createdAt": created_at}

    def create(self, description: Optional[str] = None) -> Dict[str, Any]:
        return self.add(generate_api_key(), description)

    def remove(self, key: str) -> bool:
        removed = self._keys.pop(key, None) is not None
        if removed:
            logger.info(f"Removed API key: {mask_key(key)}")
        return removed

    def list_masked(self) -> List[Dict[str, Any]]:
        return [
            {
                "key": mask_key(key),
                "length": len(key),
                "description": info["description"],
                "created": info["createdAt"] or "unknown",
            }
            for key, info in self._keys.items()
        ]


def verify_password(password: str, password_hash: str) -> bool:
    """Check a plain password against a bcrypt hash.

    Hashes produced by other bcrypt implementations use the ``$2a$`` or
    ``$2y$`` prefixes; both are accepted.
    """
    if not password or not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        logger.warning("Stored admin password hash is malformed")
        return False


def create_access_token(
    username: str,
    role: str,
    secret: str,
    expires_hours: int = 24,
) -> str:
    """Issue a signed JWT for an authenticated admin."""
    now = datetime.now(timezone.utc)
    payload = {
        "username": username,
        "role": role,
        "iat": now,
        "exp": now + timedelta(hours=expires_hours),
        "iss": JWT_ISSUER,
        "aud": JWT_AUDIENCE,
    }
    return jwt.encode(payload, secret, algorithm=JWT_ALGORITHM)


def decode_access_token(token: Optional[str], secret: str) -> Dict[str, Any]:
    """Validate a JWT and return its claims.

    Raises:
        UnauthorizedError: No token was supplied
        ForbiddenError: The token is invalid or expired
    """
    if not token:
        raise UnauthorizedError("Access token is required")
    try:
        return jwt.decode(
            token,
            secret,
            algorithms=[JWT_ALGORITHM],
            audience=JWT_AUDIENCE,
            issuer=JWT_ISSUER,
        )
    except JWTError as e:
        logger.warning(f"Invalid JWT token: {e}")
        raise ForbiddenError("Invalid or expired token") from e


def bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer":
        return None
    return token.strip() or None


__all__ = [
    "ApiKeyRegistry",
    "bearer_token",
    "create_access_token",
    "decode_access_token",
    "generate_api_key",
    "mask_key",
    "verify_password",
]
