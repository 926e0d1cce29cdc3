import uuid

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from gtreinamento.auth.dependencies import ensure_self_or_instructor, get_current_user, require_role
from gtreinamento.catalog.schemas import (
    ModuloCreate,
    ModuloOut,
    PdfCreate,
    PdfOut,
    TrilhaAssign,
    TrilhaCreate,
    TrilhaOut,
    VideoCreate,
    VideoOut,
)
from gtreinamento.catalog.service import (
    assign_trilha,
    create_modulo,
    create_pdf,
    create_trilha,
    create_video,
    get_modulo,
    get_trilha,
    list_modulos,
    list_pdfs,
    list_trilhas,
    list_videos,
)
from gtreinamento.database import get_db
from gtreinamento.users.models import User, UserRole
from gtreinamento.utils.cpf import normalize_cpf

router = APIRouter()


def _check_scope(current_user: User, cpf: str | None) -> str | None:
    """Employees see their own assignments; the full catalog is for instructors."""
    if cpf:
        cpf = normalize_cpf(cpf)
        ensure_self_or_instructor(current_user, cpf)
        return cpf
    if not current_user.is_instrutor:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Permissão insuficiente")
    return None


# --- Modulos ---


@router.get("/modules", response_model=list[ModuloOut])
async def get_modules(
    cpf: str | None = None,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return await list_modulos(db, cpf=_check_scope(current_user, cpf))


@router.post("/modules", response_model=ModuloOut, status_code=status.HTTP_201_CREATED)
async def post_module(
    data: ModuloCreate,
    db: AsyncSession = Depends(get_db),
    _: User = Depends(require_role(UserRole.ADMIN)),
):
    return await create_modulo(db, data)


# --- Trilhas ---


@router.get("/trilhas", response_model=list[TrilhaOut])
async def get_trilhas(
    cpf: str | None = None,
    modulo_id: uuid.UUID | None = None,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return await list_trilhas(db, cpf=_check_scope(current_user, cpf), modulo_id=modulo_id)


@router.post("/trilhas", response_model=TrilhaOut, status_code=status.HTTP_201_CREATED)
async def post_trilha(
    data: TrilhaCreate,
    db: AsyncSession = Depends(get_db),
    _: User = Depends(require_role(UserRole.ADMIN)),
):
    if not await get_modulo(db, data.modulo_id):
        raise HTTPException(status_code=404, detail="Módulo não encontrado")
    return await create_trilha(db, data)


@router.post("/trilhas/{trilha_id}/usuarios")
async def post_trilha_usuarios(
    trilha_id: uuid.UUID,
    data: TrilhaAssign,
    db: AsyncSession = Depends(get_db),
    _: User = Depends(require_role(UserRole.ADMIN)),
):
    trilha = await get_trilha(db, trilha_id)
    if not trilha:
        raise HTTPException(status_code=404, detail="Trilha não encontrada")
    assigned = await assign_trilha(db, trilha, data.cpfs)
    return {"assigned": assigned}


# --- Videos / PDFs ---


@router.get("/videos", response_model=list[VideoOut])
async def get_videos(
    cpf: str | None = None,
    trilha_id: uuid.UUID | None = None,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return await list_videos(db, cpf=_check_scope(current_user, cpf), trilha_id=trilha_id)


@router.post("/videos", response_model=VideoOut, status_code=status.HTTP_201_CREATED)
async def post_video(
    data: VideoCreate,
    db: AsyncSession = Depends(get_db),
    _: User = Depends(require_role(UserRole.ADMIN)),
):
    try:
        return await create_video(db, data)
    except ValueError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.get("/pdfs", response_model=list[PdfOut])
async def get_pdfs(
    cpf: str | None = None,
    trilha_id: uuid.UUID | None = None,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return await list_pdfs(db, cpf=_check_scope(current_user, cpf), trilha_id=trilha_id)


@router.post("/pdfs", response_model=PdfOut, status_code=status.HTTP_201_CREATED)
async def post_pdf(
    data: PdfCreate,
    db: AsyncSession = Depends(get_db),
    _: User = Depends(require_role(UserRole.ADMIN)),
):
    try:
        return await create_pdf(db, data)
    except ValueError as e:
        raise HTTPException(status_code=404, detail=str(e))
