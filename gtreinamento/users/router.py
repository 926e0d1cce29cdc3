from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from gtreinamento.auth.dependencies import (
    ensure_self_or_instructor,
    get_current_user,
    require_instructor,
    require_role,
)
from gtreinamento.database import get_db
from gtreinamento.users.models import User, UserRole
from gtreinamento.users.schemas import EmployeeOut, ObraOut, UserCreate, UserListItem, UserOut, UserUpdate
from gtreinamento.users.service import (
    create_user,
    get_user_by_cpf,
    list_employees,
    list_obras,
    list_users,
    update_user,
)
from gtreinamento.utils.cpf import normalize_cpf

router = APIRouter()


@router.post("", response_model=UserOut, status_code=status.HTTP_201_CREATED)
async def create_new_user(
    data: UserCreate,
    db: AsyncSession = Depends(get_db),
    _: User = Depends(require_role(UserRole.ADMIN)),
):
    existing = await get_user_by_cpf(db, data.cpf)
    if existing:
        raise HTTPException(status_code=400, detail="CPF já cadastrado")
    return await create_user(db, data)


@router.get("", response_model=list[UserListItem])
async def list_all_users(
    cpf: str | None = None,
    nome: str | None = None,
    ativo: bool | None = None,
    instrutor: bool | None = None,
    skip: int = 0,
    limit: int = 100,
    db: AsyncSession = Depends(get_db),
    _: User = Depends(require_instructor),
):
    return await list_users(db, cpf=cpf, nome=nome, ativo=ativo, instrutor=instrutor, skip=skip, limit=limit)


# --- Company roster (declared before /{cpf}) ---


@router.get("/employees", response_model=list[EmployeeOut])
async def list_company_employees(
    obra: str | None = None,
    obra_codigo: str | None = None,
    db: AsyncSession = Depends(get_db),
    _: User = Depends(require_instructor),
):
    return await list_employees(db, obra=obra, obra_codigo=obra_codigo)


@router.get("/employees/obras", response_model=list[ObraOut])
async def list_company_obras(
    db: AsyncSession = Depends(get_db),
    _: User = Depends(require_instructor),
):
    return await list_obras(db)


@router.get("/{cpf}", response_model=UserOut)
async def get_user(
    cpf: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    cpf = normalize_cpf(cpf)
    ensure_self_or_instructor(current_user, cpf)
    user = await get_user_by_cpf(db, cpf)
    if not user:
        raise HTTPException(status_code=404, detail="Usuário não encontrado")
    return user


@router.patch("/{cpf}", response_model=UserOut)
async def update_existing_user(
    cpf: str,
    data: UserUpdate,
    db: AsyncSession = Depends(get_db),
    _: User = Depends(require_role(UserRole.ADMIN)),
):
    user = await get_user_by_cpf(db, cpf)
    if not user:
        raise HTTPException(status_code=404, detail="Usuário não encontrado")
    return await update_user(db, user, data)
