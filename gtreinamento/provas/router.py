import logging
import uuid

from fastapi import APIRouter, Depends, Header, HTTPException, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from gtreinamento.auth.dependencies import (
    ensure_self_or_instructor,
    get_current_user,
    get_optional_user,
    require_instructor,
    require_role,
)
from gtreinamento.database import get_db
from gtreinamento.provas.models import ModoAplicacao, Prova
from gtreinamento.provas.qr_utils import build_redirect_url, generate_qr_image
from gtreinamento.provas.schemas import (
    CollectiveSubmissionResult,
    CollectiveSubmit,
    PlayerSubmit,
    ProofQrCreate,
    ProofQrOut,
    ProofTokenResolved,
    ProvaCreate,
    ProvaPlayerOut,
    ProvaSummaryOut,
    ResultadoOut,
    SubmissionResult,
)
from gtreinamento.provas.service import (
    IdempotencyConflictError,
    TokenExpiredError,
    TokenScopeError,
    create_proof_token,
    create_prova,
    get_latest_prova,
    get_latest_provas,
    get_latest_result,
    proof_links,
    resolve_proof_token,
    submit_collective,
    submit_player,
    token_covers,
)
from gtreinamento.users.models import User, UserRole
from gtreinamento.utils.cpf import normalize_cpf

logger = logging.getLogger(__name__)

router = APIRouter()


def _token_http_error(exc: Exception) -> HTTPException:
    if isinstance(exc, TokenExpiredError):
        return HTTPException(status_code=status.HTTP_410_GONE, detail=str(exc))
    if isinstance(exc, TokenScopeError):
        return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc))
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))


async def _authorize_player(
    db: AsyncSession,
    trilha_id: uuid.UUID,
    cpf: str | None,
    token: str | None,
    current_user: User | None,
) -> None:
    """A proof token, the employee's own session or an instructor may open the player."""
    if token:
        try:
            proof = await resolve_proof_token(db, token, cpf)
        except (LookupError, ValueError) as exc:
            raise _token_http_error(exc)
        if not token_covers(proof, trilha_id, cpf):
            raise HTTPException(status_code=403, detail="Token não autoriza esta trilha")
        return
    if current_user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Não autenticado",
            headers={"WWW-Authenticate": "Bearer"},
        )
    if cpf:
        ensure_self_or_instructor(current_user, normalize_cpf(cpf))
    elif not current_user.is_instrutor:
        raise HTTPException(status_code=403, detail="Informe o CPF do colaborador")


async def _require_prova(db: AsyncSession, trilha_id: uuid.UUID) -> Prova:
    prova = await get_latest_prova(db, trilha_id)
    if not prova:
        raise HTTPException(status_code=404, detail="Prova não encontrada para esta trilha")
    return prova


# ──────────────────────────────────────────────
# Authoring (admin)
# ──────────────────────────────────────────────


@router.post(
    "/trilha/{trilha_id}/objectiva",
    response_model=ProvaPlayerOut,
    status_code=status.HTTP_201_CREATED,
)
async def create_objective_prova(
    trilha_id: uuid.UUID,
    data: ProvaCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_role(UserRole.ADMIN)),
):
    try:
        return await create_prova(db, trilha_id, data, criado_por=current_user.cpf)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


# ──────────────────────────────────────────────
# Player (employee or proof token)
# ──────────────────────────────────────────────


@router.get("/trilha/{trilha_id}/objectiva/player", response_model=ProvaPlayerOut)
async def get_player_prova(
    trilha_id: uuid.UUID,
    cpf: str | None = None,
    token: str | None = None,
    db: AsyncSession = Depends(get_db),
    current_user: User | None = Depends(get_optional_user),
):
    await _authorize_player(db, trilha_id, cpf, token, current_user)
    return await _require_prova(db, trilha_id)


@router.post("/trilha/{trilha_id}/objectiva/player/submit", response_model=SubmissionResult)
async def submit_player_prova(
    trilha_id: uuid.UUID,
    data: PlayerSubmit,
    idempotency_key: str | None = Header(default=None, alias="Idempotency-Key"),
    db: AsyncSession = Depends(get_db),
    current_user: User | None = Depends(get_optional_user),
):
    await _authorize_player(db, trilha_id, data.cpf, data.token, current_user)
    prova = await _require_prova(db, trilha_id)
    try:
        return await submit_player(db, prova, data, idempotency_key=idempotency_key)
    except IdempotencyConflictError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.get("/trilha/{trilha_id}/objectiva/player/result", response_model=ResultadoOut)
async def get_player_result(
    trilha_id: uuid.UUID,
    cpf: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    cpf = normalize_cpf(cpf)
    ensure_self_or_instructor(current_user, cpf)
    result = await get_latest_result(db, trilha_id, cpf)
    if not result:
        raise HTTPException(status_code=404, detail="Nenhum resultado encontrado")
    return result


# ──────────────────────────────────────────────
# Instructor (collective session)
# ──────────────────────────────────────────────


@router.post(
    "/trilha/{trilha_id}/objectiva/instrutor/submit",
    response_model=CollectiveSubmissionResult,
)
async def submit_collective_prova(
    trilha_id: uuid.UUID,
    data: CollectiveSubmit,
    idempotency_key: str | None = Header(default=None, alias="Idempotency-Key"),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_instructor),
):
    prova = await _require_prova(db, trilha_id)
    if prova.modo_aplicacao != ModoAplicacao.COLETIVA:
        raise HTTPException(status_code=400, detail="Esta prova deve ser aplicada individualmente")
    try:
        return await submit_collective(
            db, prova, data, enviado_por=current_user.cpf, idempotency_key=idempotency_key
        )
    except IdempotencyConflictError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.post(
    "/objectiva/instrutor/individual/qr",
    response_model=ProofQrOut,
    status_code=status.HTTP_201_CREATED,
)
async def generate_proof_qr(
    data: ProofQrCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_instructor),
):
    try:
        proof, provas = await create_proof_token(db, data, criado_por=current_user.cpf)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    redirect_url, image_url = proof_links(proof)
    return ProofQrOut(
        token=proof.token,
        redirect_url=redirect_url,
        qr_code_image_url=image_url,
        expires_at=proof.expires_at,
        total_usuarios=len(proof.cpfs),
        trilhas=[ProvaSummaryOut.model_validate(p) for p in provas],
    )


@router.get("/objectiva/instrutor/individual/qr/{token}", response_model=ProofTokenResolved)
async def resolve_proof_qr(
    token: str,
    cpf: str | None = None,
    db: AsyncSession = Depends(get_db),
):
    try:
        proof = await resolve_proof_token(db, token, cpf)
    except (LookupError, ValueError) as exc:
        raise _token_http_error(exc)
    trilha_ids = [uuid.UUID(t) for t in proof.trilha_ids]
    provas = await get_latest_provas(db, trilha_ids)
    return ProofTokenResolved(
        token=proof.token,
        expires_at=proof.expires_at,
        turma_id=proof.turma_id,
        trilhas=trilha_ids,
        cpfs=list(proof.cpfs),
        provas=[ProvaSummaryOut.model_validate(p) for p in provas],
    )


@router.get("/objectiva/instrutor/individual/qr/{token}/image")
async def proof_qr_image(token: str, db: AsyncSession = Depends(get_db)):
    try:
        proof = await resolve_proof_token(db, token)
    except (LookupError, ValueError) as exc:
        raise _token_http_error(exc)
    png = generate_qr_image(build_redirect_url(proof.token))
    return Response(content=png, media_type="image/png", headers={"Cache-Control": "no-store"})
