from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from gtreinamento.auth.dependencies import ensure_self_or_instructor, get_current_user, require_instructor
from gtreinamento.database import get_db
from gtreinamento.user_trainings.schemas import (
    CollectiveTrainingCreate,
    CompletionCreate,
    CompletionRecord,
    CompletionResult,
    FaceEvidenceCreate,
    InsertedCount,
    ProcessedCount,
    TrilhaEfficacyCreate,
    TurmaEfficacyCreate,
    UpdatedCount,
)
from gtreinamento.user_trainings.service import (
    attach_face_evidence,
    complete_material,
    list_video_completions,
    rate_trilha_efficacy,
    rate_turma_efficacy,
    record_collective_training,
)
from gtreinamento.users.models import User
from gtreinamento.utils.cpf import normalize_cpf

router = APIRouter()


@router.post("/complete", response_model=CompletionResult)
async def complete(
    data: CompletionCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    ensure_self_or_instructor(current_user, data.cpf)
    inserted, completed_at = await complete_material(db, data)
    return CompletionResult(inserted=inserted, completed_at=completed_at)


@router.get("/completions/videos/{cpf}", response_model=list[CompletionRecord])
async def video_completions(
    cpf: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    cpf = normalize_cpf(cpf)
    ensure_self_or_instructor(current_user, cpf)
    return await list_video_completions(db, cpf)


# --- Collective training (instructor) ---


@router.post("", response_model=InsertedCount, status_code=status.HTTP_201_CREATED)
async def collective_training(
    data: CollectiveTrainingCreate,
    db: AsyncSession = Depends(get_db),
    _: User = Depends(require_instructor),
):
    try:
        inserted = await record_collective_training(db, data)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return InsertedCount(inserted=inserted)


@router.post("/face-evidence", response_model=ProcessedCount)
async def face_evidence(
    data: FaceEvidenceCreate,
    db: AsyncSession = Depends(get_db),
    _: User = Depends(require_instructor),
):
    try:
        processed, updated = await attach_face_evidence(db, data)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return ProcessedCount(processed=processed, updated=updated)


# --- Efficacy ---


@router.post("/eficacia/trilha", response_model=UpdatedCount)
async def trilha_efficacy(
    data: TrilhaEfficacyCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    ensure_self_or_instructor(current_user, data.cpf)
    try:
        updated = await rate_trilha_efficacy(db, data)
    except ValueError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return UpdatedCount(updated=updated)


@router.post("/eficacia/turma", response_model=ProcessedCount)
async def turma_efficacy(
    data: TurmaEfficacyCreate,
    db: AsyncSession = Depends(get_db),
    _: User = Depends(require_instructor),
):
    try:
        processed, updated = await rate_turma_efficacy(db, data)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return ProcessedCount(processed=processed, updated=updated)
