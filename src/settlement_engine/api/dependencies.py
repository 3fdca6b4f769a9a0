"""FastAPI dependencies for dependency injection."""

from collections.abc import Generator
from dataclasses import dataclass
from typing import Annotated

import jwt
from fastapi import Depends, Header, HTTPException, Request, status
from sqlalchemy.orm import Session

from settlement_engine.config import Settings
from settlement_engine.payments.services.request_gate import client_fingerprint
from settlement_engine.payments.settlement import Settlement


@dataclass(frozen=True)
class AuthenticatedUser:
    """Caller resolved from the bearer token."""

    user_id: str
    email: str | None = None


def get_app_settings(request: Request) -> Settings:
    """Settings the app was created with."""
    return request.app.state.settings


def get_settlement(request: Request) -> Settlement:
    """Settlement facade dependency."""
    return request.app.state.settlement


def get_db_session(
    settlement: Annotated[Settlement, Depends(get_settlement)],
) -> Generator[Session, None, None]:
    """Get database session dependency."""
    with settlement.session_factory() as session:
        yield session


def get_current_user(
    settings: Annotated[Settings, Depends(get_app_settings)],
    authorization: Annotated[str | None, Header()] = None,
) -> AuthenticatedUser:
    """Resolve the caller from `Authorization: Bearer <jwt>`."""
    if not authorization or not authorization.lower().startswith("bearer "):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authorization header required",
        )
    token = authorization[len("bearer "):].strip()
    if not settings.auth_jwt_secret:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication is not configured",
        )

    try:
        payload = jwt.decode(
            token,
            settings.auth_jwt_secret,
            algorithms=["HS256"],
            audience=settings.auth_jwt_audience,
        )
    except jwt.ExpiredSignatureError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token has expired",
        )
    except jwt.InvalidTokenError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication",
        )

    user_id = payload.get("sub")
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication",
        )
    return AuthenticatedUser(user_id=str(user_id), email=payload.get("email"))


def get_client_ip(request: Request) -> str:
    """Extract client IP, respecting X-Forwarded-For for proxies."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


def get_fingerprint(request: Request) -> str:
    """Rate-limit key for the caller."""
    return client_fingerprint(get_client_ip(request), request.headers.get("user-agent"))


# Type aliases for cleaner dependency injection
DbSession = Annotated[Session, Depends(get_db_session)]
SettlementDep = Annotated[Settlement, Depends(get_settlement)]
CurrentUser = Annotated[AuthenticatedUser, Depends(get_current_user)]
Fingerprint = Annotated[str, Depends(get_fingerprint)]
