"""FastAPI authentication dependencies (Bearer JWT)."""
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from ipguard.domain.errors import InvalidTokenError
from ipguard.infrastructure.settings import configured_admin_emails

_security = HTTPBearer(auto_error=False)

_auth_service = None


def init_dependencies(auth_service):
    global _auth_service
    _auth_service = auth_service


def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(_security),
) -> dict:
    """Validate the Bearer token with the wired auth service.

    Returns the decoded payload dict with at least ``sub``, ``email`` and
    ``role``. Raises 401 on missing / invalid / expired tokens.
    """
    if not credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required.",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        return _auth_service.validate_token(credentials.credentials)
    except InvalidTokenError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token.",
            headers={"WWW-Authenticate": "Bearer"},
        )


def require_admin(current_user: dict = Depends(get_current_user)) -> dict:
    """403 unless the token carries role=admin or an ADMIN_EMAILS address."""
    if current_user.get("role") == "admin":
        return current_user
    email = (current_user.get("email") or "").strip().lower()
    if email and email in configured_admin_emails():
        return current_user
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied. Admin only.")
