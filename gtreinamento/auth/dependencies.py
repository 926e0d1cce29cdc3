from collections.abc import Callable
from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError
from sqlalchemy.ext.asyncio import AsyncSession

from gtreinamento.auth.blacklist import is_token_revoked
from gtreinamento.auth.service import decode_access_token
from gtreinamento.config import settings
from gtreinamento.database import get_db
from gtreinamento.users.models import User, UserRole
from gtreinamento.users.service import get_user_by_cpf

# auto_error=False so we don't 403 when no header but cookie is present
security = HTTPBearer(auto_error=False)


def _extract_token(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None,
) -> str | None:
    """Extract JWT from HttpOnly cookie first, then fall back to Authorization header."""
    cookie_token = request.cookies.get(settings.cookie_name)
    if cookie_token:
        return cookie_token
    if credentials and credentials.credentials:
        return credentials.credentials
    return None


async def _user_from_token(db: AsyncSession, token: str) -> User:
    try:
        payload = decode_access_token(token)
        cpf = payload["sub"]
        jti = payload.get("jti")
    except (JWTError, KeyError, ValueError):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token inválido",
        )
    if jti and await is_token_revoked(jti):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Sessão encerrada",
        )
    user = await get_user_by_cpf(db, cpf)
    if not user or not user.ativo:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Usuário não encontrado ou inativo",
        )
    return user


async def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: AsyncSession = Depends(get_db),
) -> User:
    token = _extract_token(request, credentials)
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Não autenticado",
            headers={"WWW-Authenticate": "Bearer"},
        )
    user = await _user_from_token(db, token)
    # Read by the audit middleware
    request.state.user = user
    return user


async def get_optional_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: AsyncSession = Depends(get_db),
) -> User | None:
    """Session user when present; proof-token routes also accept anonymous callers."""
    token = _extract_token(request, credentials)
    if not token:
        return None
    user = await _user_from_token(db, token)
    request.state.user = user
    return user


def require_role(*roles: UserRole) -> Callable:
    async def _check(current_user: User = Depends(get_current_user)) -> User:
        if current_user.permissao not in roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Permissão insuficiente",
            )
        return current_user

    return _check


async def require_instructor(current_user: User = Depends(get_current_user)) -> User:
    if not current_user.is_instrutor:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Acesso restrito a instrutores",
        )
    return current_user


def ensure_self_or_instructor(current_user: User, cpf: str) -> None:
    """Employees may only read their own data; instructors read anyone's."""
    if current_user.cpf != cpf and not current_user.is_instrutor:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Permissão insuficiente",
        )
