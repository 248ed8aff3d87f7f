"""Session-token issuance and verification.

Tokens are HS256 JWTs carrying ``user_id`` and ``email`` claims, issued at
login and presented either as a bearer header (HTTP routes) or as the
``token`` query parameter of the chat WebSocket upgrade.
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from bruinmarket.config import get_config

logger = logging.getLogger(__name__)

_security = HTTPBearer(auto_error=False)


class InvalidTokenError(Exception):
    """Raised when a token is missing, malformed, expired or lacks a user id."""


def create_access_token(
    user_id: str,
    email: Optional[str] = None,
    *,
    expires_minutes: Optional[int] = None,
) -> str:
    """Create a signed JWT for ``user_id``."""
    config = get_config()
    expire_delta = timedelta(
        minutes=expires_minutes or config.auth.token_expire_minutes
    )
    now = datetime.now(timezone.utc)
    payload = {
        "user_id": str(user_id),
        "email": email or "",
        "iat": now,
        "exp": now + expire_delta,
    }
    return jwt.encode(
        payload,
        config.secrets.jwt.secret_key,
        algorithm=config.secrets.jwt.algorithm,
    )


def decode_access_token(token: Optional[str]) -> str:
    """Validate a JWT and return the user id it was issued for.

    Raises:
        InvalidTokenError: If the token is missing, invalid or expired.
    """
    if not token:
        raise InvalidTokenError("Missing token")

    config = get_config()
    try:
        payload = jwt.decode(
            token,
            config.secrets.jwt.secret_key,
            algorithms=[config.secrets.jwt.algorithm],
        )
    except JWTError as exc:
        raise InvalidTokenError(str(exc)) from exc

    user_id = payload.get("user_id")
    if not user_id:
        raise InvalidTokenError("Token has no user_id claim")
    return str(user_id)


async def get_current_user_id(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_security),
) -> str:
    """FastAPI dependency resolving the bearer token to a user id."""
    token = credentials.credentials if credentials else None
    try:
        return decode_access_token(token)
    except InvalidTokenError as exc:
        logger.debug(f"Rejected bearer token: {exc}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        ) from exc
