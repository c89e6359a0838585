"""FastAPI dependency utilities."""

from functools import lru_cache

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session

from notifier.application.dispatcher import BackgroundDispatcher
from notifier.application.use_cases.notifications import (
    DeliveryCoordinator,
    PendingSweeper,
    TokenHygiene,
)
from notifier.config import get_settings
from notifier.domain.entities import User
from notifier.infrastructure.database import SessionLocal, get_db
from notifier.infrastructure.notifications import realtime_bus
from notifier.infrastructure.push import FirebasePushGateway
from notifier.infrastructure.repositories import UserRepository
from notifier.infrastructure.security import decode_access_token

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="auth/token")


def _credentials_error(detail: str = "Invalid credentials") -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def resolve_current_user(token: str, db: Session) -> User:
    """Resolve the authenticated user for the provided token."""

    try:
        payload = decode_access_token(token)
    except ValueError as exc:
        raise _credentials_error() from exc

    user_id = payload.get("sub")
    if not isinstance(user_id, str) or not user_id:
        raise _credentials_error()

    user = UserRepository(db).get(user_id)
    if user is None:
        raise _credentials_error("User not found")
    return user


def get_current_user(
    token: str = Depends(oauth2_scheme),
    db: Session = Depends(get_db),
) -> User:
    return resolve_current_user(token, db)


def get_current_active_user(current_user: User = Depends(get_current_user)) -> User:
    """Ensure the authenticated user is active."""

    if not current_user.is_active:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Inactive user",
        )
    return current_user


def require_admin(current_user: User = Depends(get_current_active_user)) -> User:
    """Ensure the authenticated user has administrator privileges."""

    if not current_user.is_admin():
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Not authorized",
        )
    return current_user


@lru_cache
def get_push_gateway() -> FirebasePushGateway:
    return FirebasePushGateway(batch_size=get_settings().push_batch_size)


@lru_cache
def get_dispatcher() -> BackgroundDispatcher:
    return BackgroundDispatcher(max_workers=get_settings().dispatch_workers)


@lru_cache
def get_token_hygiene() -> TokenHygiene:
    return TokenHygiene(SessionLocal)


@lru_cache
def get_delivery_coordinator() -> DeliveryCoordinator:
    """Return the process-wide coordinator shared by routes and producers."""

    return DeliveryCoordinator(
        SessionLocal,
        get_push_gateway(),
        realtime_bus,
        get_dispatcher(),
        token_hygiene=get_token_hygiene(),
    )


@lru_cache
def get_pending_sweeper() -> PendingSweeper:
    return PendingSweeper(
        SessionLocal,
        get_push_gateway(),
        token_hygiene=get_token_hygiene(),
        default_limit=get_settings().sweep_batch_limit,
    )


def shutdown_services() -> None:
    """Drain background deliveries and forget the cached service instances."""

    if get_dispatcher.cache_info().currsize:
        get_dispatcher().shutdown(wait=True)
    for provider in (
        get_pending_sweeper,
        get_delivery_coordinator,
        get_token_hygiene,
        get_dispatcher,
        get_push_gateway,
    ):
        provider.cache_clear()


__all__ = [
    "shutdown_services",
    "get_current_active_user",
    "get_current_user",
    "get_delivery_coordinator",
    "get_dispatcher",
    "get_pending_sweeper",
    "get_push_gateway",
    "get_token_hygiene",
    "require_admin",
    "resolve_current_user",
]
