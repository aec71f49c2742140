"""
NaiyakSetu - Authentication Dependencies
Bearer extraction, principal resolution and role guards for the routers.
"""
from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from .config import Settings, get_settings
from .database import get_db
from .errors import Forbidden, Unauthorized
from .services.identity.token_service import Principal, TokenService

# Missing headers are reported through our own error envelope
security = HTTPBearer(auto_error=False)


def _resolve(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials],
    db: Session,
    settings: Settings,
) -> Principal:
    principal = TokenService(db, settings).validate(credentials.credentials)
    request.state.principal = principal
    return principal


def get_current_principal(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> Principal:
    """
    Dependency for routes that require a caller.
    Accepts signed tokens and (outside production) sandbox bundles.
    """
    if credentials is None or not credentials.credentials:
        raise Unauthorized("Access token required")
    return _resolve(request, credentials, db, settings)


def get_optional_principal(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> Optional[Principal]:
    """
    Dependency for routes open to anonymous callers.
    A token that is present but invalid is still rejected.
    """
    if credentials is None or not credentials.credentials:
        request.state.principal = None
        return None
    return _resolve(request, credentials, db, settings)


def require_admin(principal: Principal = Depends(get_current_principal)) -> Principal:
    """Dependency to require the admin role."""
    if not principal.is_admin:
        raise Forbidden("Admin access required")
    return principal


def require_staff(principal: Principal = Depends(get_current_principal)) -> Principal:
    """Dependency to require admin or staff."""
    if not principal.is_staff:
        raise Forbidden("Staff access required")
    return principal
