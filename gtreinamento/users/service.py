from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from gtreinamento.auth.utils import get_password_hash
from gtreinamento.users.models import User
from gtreinamento.users.schemas import EmployeeOut, ObraOut, UserCreate, UserUpdate
from gtreinamento.utils.cpf import normalize_cpf


async def create_user(db: AsyncSession, data: UserCreate, password: str | None = None) -> User:
    user = User(
        **data.model_dump(),
        hashed_password=get_password_hash(password) if password else None,
    )
    db.add(user)
    await db.commit()
    await db.refresh(user)
    return user


async def get_user_by_cpf(db: AsyncSession, cpf: str) -> User | None:
    result = await db.execute(select(User).where(User.cpf == normalize_cpf(cpf)))
    return result.scalar_one_or_none()


async def get_users_by_cpfs(db: AsyncSession, cpfs: list[str]) -> dict[str, User]:
    digits = {normalize_cpf(c) for c in cpfs if c}
    if not digits:
        return {}
    result = await db.execute(select(User).where(User.cpf.in_(digits)))
    return {u.cpf: u for u in result.scalars().all()}


async def list_users(
    db: AsyncSession,
    cpf: str | None = None,
    nome: str | None = None,
    ativo: bool | None = None,
    instrutor: bool | None = None,
    skip: int = 0,
    limit: int = 100,
) -> list[User]:
    query = select(User)
    if cpf:
        query = query.where(User.cpf.contains(normalize_cpf(cpf)))
    if nome:
        query = query.where(User.nome.ilike(f"%{nome}%"))
    if ativo is not None:
        query = query.where(User.ativo == ativo)
    if instrutor is not None:
        query = query.where(User.instrutor == instrutor)
    query = query.order_by(User.nome).offset(skip).limit(limit)
    result = await db.execute(query)
    return list(result.scalars().all())


async def update_user(db: AsyncSession, user: User, data: UserUpdate) -> User:
    update_data = data.model_dump(exclude_unset=True)
    for field, value in update_data.items():
        setattr(user, field, value)
    await db.commit()
    await db.refresh(user)
    return user


async def set_password(db: AsyncSession, user: User, password: str) -> User:
    user.hashed_password = get_password_hash(password)
    await db.commit()
    await db.refresh(user)
    return user


# --- Company roster (collective training) ---


def employee_record(user: User) -> EmployeeOut:
    raw = {
        "CPF": user.cpf,
        "NOME": user.nome,
        "NOME_FUNCAO": user.cargo or "",
        "NOMEDEPARTAMENTO": user.setor or "",
        "NOMEFILIAL": user.nome_filial or "",
        "OBRA_CODIGO": user.obra_codigo or "",
        "OBRA_NOME": user.obra_nome or "",
    }
    return EmployeeOut(
        cpf=user.cpf,
        nome=user.nome,
        funcao=user.cargo,
        departamento=user.setor,
        raw=raw,
    )


async def list_employees(
    db: AsyncSession,
    obra: str | None = None,
    obra_codigo: str | None = None,
) -> list[EmployeeOut]:
    """Active employees of a site; without filters, headquarters staff."""
    query = select(User).where(User.ativo.is_(True))
    if obra_codigo:
        query = query.where(User.obra_codigo == obra_codigo)
    elif obra:
        query = query.where(User.obra_nome == obra)
    else:
        query = query.where(User.obra_codigo.is_(None))
    result = await db.execute(query.order_by(User.nome))
    return [employee_record(u) for u in result.scalars().all()]


async def list_obras(db: AsyncSession) -> list[ObraOut]:
    result = await db.execute(
        select(User.obra_codigo, User.obra_nome)
        .where(User.obra_nome.is_not(None), User.ativo.is_(True))
        .distinct()
        .order_by(User.obra_nome)
    )
    return [ObraOut(codigo=codigo, nome=nome) for codigo, nome in result.all()]
