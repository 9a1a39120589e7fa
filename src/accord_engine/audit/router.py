"""Audit log API router."""

from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query

from accord_engine.audit.schemas import AuditAction, AuditChainVerification, AuditEntry
from accord_engine.common.security import require_api_key

router = APIRouter()


def _get_audit_log():
    from accord_engine.deps import get_audit_log
    return get_audit_log()


@router.get("/audit", response_model=list[AuditEntry])
async def query_audit_entries(
    actor: str | None = Query(None),
    action: AuditAction | None = Query(None),
    start: datetime | None = Query(None),
    end: datetime | None = Query(None),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    _=Depends(require_api_key),
):
    """Entries newest first, filtered by exactly one of actor, action or start+end."""
    log = _get_audit_log()
    if actor:
        return await log.by_actor(actor, limit=limit, offset=offset)
    if action:
        return await log.by_action(action, limit=limit, offset=offset)
    if start and end:
        return await log.by_date_range(start, end, limit=limit, offset=offset)
    raise HTTPException(
        status_code=422,
        detail={"error": "Provide actor, action, or both start and end", "code": "VALIDATION_ERROR"},
    )


@router.get("/audit/{contract_id}/verify", response_model=AuditChainVerification)
async def verify_audit_chain(contract_id: str, _=Depends(require_api_key)):
    return await _get_audit_log().verify_chain(contract_id)
