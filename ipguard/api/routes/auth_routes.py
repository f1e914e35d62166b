"""Authentication API routes -- login through the IP guard, profile."""
import logging

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from ipguard.api.errors import to_http_exception
from ipguard.domain.errors import IPGuardError
from ipguard.infrastructure.auth.dependencies import get_current_user

router = APIRouter(prefix="/api/auth", tags=["auth"])

logger = logging.getLogger("ipguard.auth")

_auth_service = None


def init_auth_routes(auth_service):
    global _auth_service
    _auth_service = auth_service


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------

class LoginRequest(BaseModel):
    email: str = Field(..., min_length=1, max_length=120)
    password: str = Field(..., min_length=1, max_length=128)


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.post("/login")
def api_login(req: LoginRequest):
    """Authenticate by e-mail and password. Returns a JWT access token.

    Blocked IPs get 403, the request that crosses the attempt limit gets
    429, and wrong e-mail or wrong password both get the same 401.
    """
    try:
        user, token = _auth_service.authenticate(req.email, req.password)
    except IPGuardError as exc:
        raise to_http_exception(exc)

    return {
        "success": True,
        "access_token": token,
        "token_type": "bearer",
        "user": user.to_public_dict(),
    }


@router.get("/me")
def api_me(current_user: dict = Depends(get_current_user)):
    """Return the identity carried by the access token."""
    if not current_user.get("sub"):
        raise HTTPException(status_code=401, detail="Invalid or expired token.")
    return {
        "id": current_user["sub"],
        "email": current_user.get("email"),
        "role": current_user.get("role"),
    }
