"""
API Dependencies

Authentication, ledger configuration and common query parameter dependencies.
"""
from typing import Annotated

from fastapi import Depends, Query, Request
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session

from cycleledger.core.ledger_config import DEFAULT_LEDGER_CONFIG, LedgerConfig
from cycleledger.core.security import get_user_from_token
from cycleledger.db.session import get_db
from cycleledger.exceptions import InvalidTokenError, PermissionDeniedError
from cycleledger.models.organization import User
from cycleledger.schemas.common import PaginationParams
from cycleledger.services.cycle_lock import CycleLockGuard

# Tokens are issued by the host application's auth service
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/login")


async def get_current_user(
    token: Annotated[str, Depends(oauth2_scheme)],
    db: Session = Depends(get_db)
) -> User:
    """
    Dependency to get the current authenticated user from access token

    Raises:
        InvalidTokenError (401) if the token is invalid or the user is unknown
        PermissionDeniedError (403) if the user account is inactive
    """
    user_id = get_user_from_token(token, expected_type="access")
    if user_id is None:
        raise InvalidTokenError("Could not validate credentials")

    user = db.query(User).filter(User.id == user_id).first()
    if user is None:
        raise InvalidTokenError("Could not validate credentials")

    if not user.is_active:
        raise PermissionDeniedError("User account is inactive")

    return user


def get_ledger_config(request: Request) -> LedgerConfig:
    """Ledger configuration resolved at startup (see main.lifespan)."""
    return getattr(request.app.state, "ledger_config", DEFAULT_LEDGER_CONFIG)


def get_cycle_lock_guard(
    config: Annotated[LedgerConfig, Depends(get_ledger_config)]
) -> CycleLockGuard:
    return CycleLockGuard(config)


def get_pagination_params(
    offset: int = Query(
        default=0,
        ge=0,
        description="Number of records to skip (for pagination)"
    ),
    limit: int = Query(
        default=50,
        ge=1,
        le=500,
        description="Maximum number of records to return (1-500)"
    )
) -> PaginationParams:
    """Dependency for standardized pagination parameters."""
    return PaginationParams(offset=offset, limit=limit)
