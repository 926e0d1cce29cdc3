from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from gtreinamento.auth.dependencies import require_instructor
from gtreinamento.database import get_db
from gtreinamento.faces.schemas import FaceEnrollRequest, FaceMatchRequest, FaceMatchResult, FaceOut
from gtreinamento.faces.service import enroll_face, match_face
from gtreinamento.users.models import User

router = APIRouter()


@router.post("/match", response_model=FaceMatchResult)
async def match(
    data: FaceMatchRequest,
    db: AsyncSession = Depends(get_db),
    _: User = Depends(require_instructor),
):
    return await match_face(db, data.descriptor, data.threshold, data.limit)


@router.post("/enroll", response_model=FaceOut, status_code=status.HTTP_201_CREATED)
async def enroll(
    data: FaceEnrollRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_instructor),
):
    try:
        return await enroll_face(db, data, criado_por=current_user.cpf)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
