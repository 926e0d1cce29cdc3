import logging
import time
from collections import defaultdict

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from jose import JWTError
from sqlalchemy.ext.asyncio import AsyncSession

from gtreinamento.auth.blacklist import revoke_payload
from gtreinamento.auth.dependencies import get_current_user
from gtreinamento.auth.schemas import FirstAccessRequest, LoginRequest, PasswordChange, TokenResponse
from gtreinamento.auth.service import create_access_token, decode_access_token
from gtreinamento.auth.utils import get_password_hash, verify_password
from gtreinamento.config import settings as app_settings
from gtreinamento.database import get_db
from gtreinamento.users.models import User
from gtreinamento.users.schemas import UserOut
from gtreinamento.users.service import get_user_by_cpf, set_password
from gtreinamento.utils.cpf import normalize_cpf

logger = logging.getLogger(__name__)

router = APIRouter()

# --- Simple in-memory rate limiter for login ---
_login_attempts: dict[str, list[float]] = defaultdict(list)
_MAX_LOGIN_ATTEMPTS = 5
_LOGIN_WINDOW_SECONDS = 300


def _check_rate_limit(key: str) -> None:
    """Raise 429 if too many login attempts from this key."""
    now = time.monotonic()
    attempts = _login_attempts[key]
    _login_attempts[key] = [t for t in attempts if now - t < _LOGIN_WINDOW_SECONDS]
    if len(_login_attempts[key]) >= _MAX_LOGIN_ATTEMPTS:
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="Muitas tentativas de login. Aguarde alguns minutos.",
        )


def _record_attempt(key: str) -> None:
    _login_attempts[key].append(time.monotonic())


def _set_auth_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        key=app_settings.cookie_name,
        value=token,
        httponly=True,
        secure=app_settings.cookie_secure,
        samesite=app_settings.cookie_samesite,
        max_age=app_settings.jwt_access_token_expire_minutes * 60,
        path="/",
        domain=app_settings.cookie_domain,
    )


def _clear_auth_cookie(response: Response) -> None:
    response.delete_cookie(
        key=app_settings.cookie_name,
        path="/",
        domain=app_settings.cookie_domain,
    )


def _session_response(response: Response, user: User) -> TokenResponse:
    token = create_access_token(subject=user.cpf)
    _set_auth_cookie(response, token)
    return TokenResponse(access_token=token, user=UserOut.model_validate(user))


@router.post("/login", response_model=TokenResponse)
async def login(data: LoginRequest, request: Request, response: Response, db: AsyncSession = Depends(get_db)):
    client_ip = request.client.host if request.client else "unknown"
    rate_key = f"{client_ip}:{data.cpf}"
    _check_rate_limit(rate_key)

    user = await get_user_by_cpf(db, data.cpf)

    # Timing-safe: always hash even if user not found
    if not user or not user.hashed_password:
        get_password_hash("dummy-password-to-prevent-timing-attack")
        _record_attempt(rate_key)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="CPF ou senha inválidos",
        )
    if not verify_password(data.password, user.hashed_password):
        _record_attempt(rate_key)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="CPF ou senha inválidos",
        )
    if not user.ativo:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Usuário inativo",
        )

    logger.info("Login bem-sucedido: cpf=%s***, ip=%s", user.cpf[:3], client_ip)
    return _session_response(response, user)


@router.post("/first-access", response_model=TokenResponse)
async def first_access(
    data: FirstAccessRequest,
    request: Request,
    response: Response,
    db: AsyncSession = Depends(get_db),
):
    """Define the first password after confirming the birth date on record."""
    client_ip = request.client.host if request.client else "unknown"
    rate_key = f"{client_ip}:{data.cpf}"
    _check_rate_limit(rate_key)

    user = await get_user_by_cpf(db, data.cpf)
    if not user or not user.ativo or user.dt_nascimento != data.dt_nascimento:
        _record_attempt(rate_key)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Dados de primeiro acesso não conferem",
        )
    if user.hashed_password:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Senha já cadastrada. Utilize o login.",
        )

    user = await set_password(db, user, data.password)
    logger.info("Primeiro acesso concluído: cpf=%s***", user.cpf[:3])
    return _session_response(response, user)


@router.put("/password/{cpf}", response_model=UserOut)
async def change_password(
    cpf: str,
    data: PasswordChange,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    if normalize_cpf(cpf) != current_user.cpf:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Só é possível alterar a própria senha",
        )
    if not current_user.hashed_password or not verify_password(
        data.current_password, current_user.hashed_password
    ):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Senha atual incorreta",
        )
    return await set_password(db, current_user, data.new_password)


@router.get("/me", response_model=UserOut)
async def me(current_user: User = Depends(get_current_user)):
    return current_user


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
async def logout(request: Request, response: Response):
    """Revoke the current JWT and clear the auth cookie."""
    token = request.cookies.get(app_settings.cookie_name)
    auth_header = request.headers.get("authorization", "")
    if not token and auth_header.lower().startswith("bearer "):
        token = auth_header[7:]
    if token:
        try:
            await revoke_payload(decode_access_token(token))
        except (JWTError, ValueError):
            logger.info("Logout com token inválido ou expirado; apenas limpando cookie")
        except Exception:
            logger.exception("Falha ao revogar sessão no logout")
    _clear_auth_cookie(response)
