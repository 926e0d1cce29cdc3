import uuid
from datetime import datetime

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession

from gtreinamento.auth.dependencies import require_instructor
from gtreinamento.database import get_db
from gtreinamento.turmas.schemas import (
    EvidenceUploadOut,
    EvidenciaOut,
    TurmaCreate,
    TurmaDetailOut,
    TurmaOut,
)
from gtreinamento.turmas.service import (
    create_turma,
    finalize_with_evidence,
    get_turma,
    list_turmas,
    participantes_out,
    turma_out,
)
from gtreinamento.users.models import User

router = APIRouter()


@router.post("", response_model=TurmaOut, status_code=status.HTTP_201_CREATED)
async def create_collective_turma(
    data: TurmaCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_instructor),
):
    try:
        turma = await create_turma(db, data, criado_por=current_user.cpf)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return await turma_out(db, turma)


@router.get("", response_model=list[TurmaOut])
async def list_collective_turmas(
    search: str | None = None,
    db: AsyncSession = Depends(get_db),
    _: User = Depends(require_instructor),
):
    turmas = await list_turmas(db, search=search)
    return [await turma_out(db, t) for t in turmas]


@router.get("/{turma_id}", response_model=TurmaDetailOut)
async def get_collective_turma(
    turma_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    _: User = Depends(require_instructor),
):
    turma = await get_turma(db, turma_id)
    if not turma:
        raise HTTPException(status_code=404, detail="Turma não encontrada")
    return TurmaDetailOut(
        turma=await turma_out(db, turma),
        participantes=await participantes_out(db, turma),
    )


@router.post("/{turma_id}/evidencias", response_model=EvidenceUploadOut)
async def upload_turma_evidence(
    turma_id: uuid.UUID,
    duracao_horas: int = Form(0),
    duracao_minutos: int = Form(0),
    finalizado_em: datetime | None = Form(None),
    obra_local: str | None = Form(None),
    files: list[UploadFile] | None = File(None),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_instructor),
):
    turma = await get_turma(db, turma_id)
    if not turma:
        raise HTTPException(status_code=404, detail="Turma não encontrada")

    payload = [(f.filename, f.content_type, await f.read()) for f in files or []]
    try:
        created = await finalize_with_evidence(
            db,
            turma,
            duracao_horas=duracao_horas,
            duracao_minutos=duracao_minutos,
            files=payload,
            criado_por=current_user.cpf,
            finalizado_em=finalizado_em,
            obra_local=obra_local,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return EvidenceUploadOut(
        turma=await turma_out(db, turma),
        evidencias=[EvidenciaOut.model_validate(e) for e in created],
    )
