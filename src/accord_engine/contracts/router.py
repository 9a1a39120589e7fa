"""Contracts API router."""

from fastapi import APIRouter, Body, Depends, Header, HTTPException, Query, Request, Response

from accord_engine.audit.schemas import AuditEntry
from accord_engine.common.exceptions import AccordError
from accord_engine.common.security import require_api_key
from accord_engine.contracts.schemas import (
    Contract,
    ContractCreate,
    ContractUpdate,
    ExpiringQuery,
    PartySigningStatus,
    RenewRequest,
    SearchFilters,
    SendOptions,
    SignBody,
    SignRequest,
    SweepResult,
    TerminateRequest,
    ViewRequest,
)
from accord_engine.contracts.status import ContractStatus

router = APIRouter()

HTTP_STATUS_BY_CODE = {
    "NOT_FOUND": 404,
    "VALIDATION_ERROR": 422,
    "INVALID_TRANSITION": 422,
    "TEMPLATE_ERROR": 422,
    "SIGNATURE_ERROR": 409,
    "CONFLICT": 409,
    "CONTRACT_ERROR": 409,
}


def _get_engine():
    from accord_engine.deps import get_contract_engine
    return get_contract_engine()


def _http_error(exc: AccordError) -> HTTPException:
    detail = {"error": exc.message, "code": exc.code}
    fields = getattr(exc, "fields", None)
    if fields:
        detail["fields"] = fields
    return HTTPException(status_code=HTTP_STATUS_BY_CODE.get(exc.code, 409), detail=detail)


def _actor(x_accord_actor: str | None = Header(None, alias="X-Accord-Actor")) -> str:
    return x_accord_actor or "api"


def _client_ip(request: Request) -> str:
    return request.client.host if request.client else ""


# ── Collection routes (declared before /contracts/{contract_id}) ──

@router.post("/contracts", response_model=Contract, status_code=201)
async def create_contract(
    body: ContractCreate,
    actor: str = Depends(_actor),
    _=Depends(require_api_key),
):
    if "created_by" not in body.model_fields_set:
        body = body.model_copy(update={"created_by": actor})
    try:
        return await _get_engine().create(body)
    except AccordError as e:
        raise _http_error(e)


@router.post("/contracts/search", response_model=list[Contract])
async def search_contracts(body: SearchFilters, _=Depends(require_api_key)):
    return await _get_engine().search(body)


@router.get("/contracts/expiring", response_model=list[Contract])
async def get_expiring_contracts(
    days: int = Query(30, ge=1),
    status: list[ContractStatus] | None = Query(None),
    include_renewable: bool = Query(False),
    _=Depends(require_api_key),
):
    return await _get_engine().get_expiring(
        ExpiringQuery(days=days, status=status, include_renewable=include_renewable)
    )


@router.post("/contracts/sweep", response_model=SweepResult)
async def run_sweep(_=Depends(require_api_key)):
    engine = _get_engine()
    expired = await engine.check_expired_contracts()
    reminded = await engine.send_due_reminders()
    return SweepResult(expired=[c.id for c in expired], reminded=reminded)


# ── Single contract ──

@router.get("/contracts/{contract_id}", response_model=Contract)
async def get_contract(contract_id: str, _=Depends(require_api_key)):
    try:
        return await _get_engine().get(contract_id)
    except AccordError as e:
        raise _http_error(e)


@router.patch("/contracts/{contract_id}", response_model=Contract)
async def update_contract(
    contract_id: str,
    body: ContractUpdate,
    actor: str = Depends(_actor),
    _=Depends(require_api_key),
):
    try:
        return await _get_engine().update(contract_id, body, performed_by=actor)
    except AccordError as e:
        raise _http_error(e)


@router.delete("/contracts/{contract_id}", status_code=204)
async def delete_contract(
    contract_id: str,
    actor: str = Depends(_actor),
    _=Depends(require_api_key),
):
    try:
        await _get_engine().delete(contract_id, performed_by=actor)
    except AccordError as e:
        raise _http_error(e)


@router.post("/contracts/{contract_id}/send", response_model=Contract)
async def send_contract(
    contract_id: str,
    body: SendOptions | None = Body(None),
    actor: str = Depends(_actor),
    _=Depends(require_api_key),
):
    try:
        return await _get_engine().send(contract_id, body, performed_by=actor)
    except AccordError as e:
        raise _http_error(e)


@router.post("/contracts/{contract_id}/view", response_model=Contract)
async def view_contract(
    contract_id: str,
    body: ViewRequest,
    request: Request,
    _=Depends(require_api_key),
):
    try:
        return await _get_engine().record_view(
            contract_id, body.viewer_email,
            ip_address=_client_ip(request),
            user_agent=request.headers.get("user-agent", ""),
        )
    except AccordError as e:
        raise _http_error(e)


@router.post("/contracts/{contract_id}/sign", response_model=Contract)
async def sign_contract(
    contract_id: str,
    body: SignBody,
    request: Request,
    _=Depends(require_api_key),
):
    try:
        return await _get_engine().sign(SignRequest(
            contract_id=contract_id,
            signer_email=body.signer_email,
            signature=body.signature,
            location=body.location,
            ip_address=_client_ip(request),
            user_agent=request.headers.get("user-agent", ""),
        ))
    except AccordError as e:
        raise _http_error(e)


@router.post("/contracts/{contract_id}/reminders", response_model=Contract)
async def send_reminders(
    contract_id: str,
    actor: str = Depends(_actor),
    _=Depends(require_api_key),
):
    try:
        return await _get_engine().send_reminders(contract_id, performed_by=actor)
    except AccordError as e:
        raise _http_error(e)


@router.post("/contracts/{contract_id}/terminate", response_model=Contract)
async def terminate_contract(
    contract_id: str,
    body: TerminateRequest,
    actor: str = Depends(_actor),
    _=Depends(require_api_key),
):
    try:
        return await _get_engine().terminate(contract_id, reason=body.reason, performed_by=actor)
    except AccordError as e:
        raise _http_error(e)


@router.post("/contracts/{contract_id}/renew", response_model=Contract)
async def renew_contract(
    contract_id: str,
    body: RenewRequest,
    actor: str = Depends(_actor),
    _=Depends(require_api_key),
):
    try:
        return await _get_engine().renew(contract_id, body.extend_days, performed_by=actor)
    except AccordError as e:
        raise _http_error(e)


@router.get("/contracts/{contract_id}/signing-status", response_model=list[PartySigningStatus])
async def get_signing_status(contract_id: str, _=Depends(require_api_key)):
    try:
        return await _get_engine().get_signing_status(contract_id)
    except AccordError as e:
        raise _http_error(e)


@router.get("/contracts/{contract_id}/audit", response_model=list[AuditEntry])
async def get_audit_trail(contract_id: str, _=Depends(require_api_key)):
    return await _get_engine().get_audit_trail(contract_id)


@router.get("/contracts/{contract_id}/artifact")
async def download_artifact(
    contract_id: str,
    actor: str = Depends(_actor),
    _=Depends(require_api_key),
):
    engine = _get_engine()
    try:
        data = await engine.download_artifact(contract_id, performed_by=actor)
    except AccordError as e:
        raise _http_error(e)
    media_type = getattr(engine.artifact_generator, "media_type", "application/octet-stream")
    return Response(
        content=data,
        media_type=media_type,
        headers={"Content-Disposition": f'attachment; filename="contract-{contract_id}.txt"'},
    )
