"""Admin API routes -- IP block management."""
import logging

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from ipguard.api.errors import to_http_exception
from ipguard.domain.enums import BlockReason
from ipguard.domain.errors import IPGuardError
from ipguard.domain.invariant import MAX_PAGE_SIZE
from ipguard.infrastructure.audit import log_block_event, log_event
from ipguard.infrastructure.auth.dependencies import require_admin

router = APIRouter(prefix="/api/admin/ip-blocks", tags=["admin"])

logger = logging.getLogger("ipguard.admin")

MAX_TEMPORARY_SECONDS = 30 * 24 * 3600

_ip_block_service = None


def init_admin_routes(ip_block_service):
    global _ip_block_service
    _ip_block_service = ip_block_service


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------

class PermanentBlockRequest(BaseModel):
    ip: str = Field(..., min_length=2, max_length=45)
    reason: BlockReason = BlockReason.MANUAL
    comment: str = Field("", max_length=500)


class TemporaryBlockRequest(PermanentBlockRequest):
    duration_seconds: int = Field(..., gt=0, le=MAX_TEMPORARY_SECONDS)


def _audit(action: str, actor: dict, block=None, payload: dict | None = None) -> None:
    try:
        if block is not None:
            log_block_event(action, block, actor.get("sub"))
        else:
            log_event(action, actor.get("sub"), payload)
    except OSError as exc:
        logger.error("Audit write failed for %s: %s", action, exc)


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.get("")
def api_list_blocks(
    offset: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=MAX_PAGE_SIZE),
    admin: dict = Depends(require_admin),
):
    """Active blocks from both stores, newest first."""
    try:
        blocks = _ip_block_service.list_active_blocks(offset, limit)
    except IPGuardError as exc:
        raise to_http_exception(exc)
    return {
        "offset": offset,
        "limit": limit,
        "blocks": [b.to_dict() for b in blocks],
    }


@router.post("/permanent", status_code=201)
def api_create_permanent_block(req: PermanentBlockRequest, admin: dict = Depends(require_admin)):
    try:
        block = _ip_block_service.create_permanent_block(
            req.ip, req.reason, created_by=admin.get("sub"), comment=req.comment
        )
    except IPGuardError as exc:
        raise to_http_exception(exc)
    _audit("ip_block_created", admin, block=block)
    return block.to_dict()


@router.post("/temporary", status_code=201)
def api_create_temporary_block(req: TemporaryBlockRequest, admin: dict = Depends(require_admin)):
    try:
        block = _ip_block_service.create_temporary_block(
            req.ip,
            req.reason,
            req.duration_seconds,
            created_by=admin.get("sub"),
            comment=req.comment,
        )
    except IPGuardError as exc:
        raise to_http_exception(exc)
    _audit("ip_block_created", admin, block=block)
    return block.to_dict()


@router.delete("/{block_id}")
def api_remove_block(block_id: str, admin: dict = Depends(require_admin)):
    try:
        _ip_block_service.remove_block(block_id)
    except IPGuardError as exc:
        raise to_http_exception(exc)
    _audit("ip_block_removed", admin, payload={"block_id": block_id})
    return {"success": True, "id": block_id}


@router.get("/check/{ip}")
def api_check_ip(ip: str, admin: dict = Depends(require_admin)):
    """Block status, current attempt count and escalation verdict for one IP."""
    try:
        blocked, block = _ip_block_service.is_blocked(ip)
        attempts = _ip_block_service.get_login_attempts(ip)
        escalate = _ip_block_service.should_block_permanently(ip)
    except IPGuardError as exc:
        raise to_http_exception(exc)
    return {
        "ip": ip,
        "blocked": blocked,
        "block": block.to_dict() if block else None,
        "attempts": attempts,
        "should_block_permanently": escalate,
    }
