"""
Token handling

Sessions are issued by the host application; this service only verifies
bearer tokens and resolves them to a user ID. ``create_access_token`` is
used by internal tooling and tests.
"""
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import jwt

from cycleledger.core.config import settings
from cycleledger.logging_config import get_logger

logger = get_logger(__name__)


def create_access_token(
    user_id: int,
    expires_delta: Optional[timedelta] = None,
    extra_claims: Optional[Dict[str, Any]] = None,
) -> str:
    """
    Create a signed access token for a user.

    Args:
        user_id: Subject of the token
        expires_delta: Lifetime, defaults to ACCESS_TOKEN_EXPIRE_MINUTES
        extra_claims: Additional claims to embed

    Returns:
        Encoded JWT
    """
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    payload: Dict[str, Any] = {"sub": str(user_id), "exp": expire, "type": "access"}
    if extra_claims:
        payload.update(extra_claims)
    return jwt.encode(payload, settings.SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def get_user_from_token(token: str, expected_type: str = "access") -> Optional[int]:
    """
    Decode a token and return the user ID it was issued for.

    Returns None if the token is expired, malformed, signed with another key
    or of the wrong type.
    """
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        logger.info("Rejected expired access token")
        return None
    except jwt.InvalidTokenError as e:
        logger.info(f"Rejected invalid access token: {e}")
        return None

    if payload.get("type") != expected_type:
        return None
    try:
        return int(payload["sub"])
    except (KeyError, TypeError, ValueError):
        return None
