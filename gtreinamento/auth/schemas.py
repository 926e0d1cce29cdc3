import re
from datetime import date

from pydantic import BaseModel, field_validator

from gtreinamento.users.schemas import UserOut
from gtreinamento.utils.cpf import normalize_cpf

_PASSWORD_MIN_LENGTH = 10
_PASSWORD_PATTERN = re.compile(
    r"^(?=.*[a-z])(?=.*[A-Z])(?=.*\d)(?=.*[!@#$%^&*()_\-+=\[\]{};:'\",.<>?/\\|`~]).+$"
)


def _check_password_strength(v: str) -> str:
    if len(v) < _PASSWORD_MIN_LENGTH:
        raise ValueError(f"Senha deve ter no mínimo {_PASSWORD_MIN_LENGTH} caracteres")
    if not _PASSWORD_PATTERN.match(v):
        raise ValueError(
            "Senha deve conter pelo menos: 1 maiúscula, 1 minúscula, "
            "1 número e 1 caractere especial"
        )
    return v


class LoginRequest(BaseModel):
    cpf: str
    password: str

    @field_validator("cpf")
    @classmethod
    def digits_only(cls, v: str) -> str:
        return normalize_cpf(v)


class FirstAccessRequest(BaseModel):
    cpf: str
    dt_nascimento: date
    password: str

    @field_validator("cpf")
    @classmethod
    def digits_only(cls, v: str) -> str:
        return normalize_cpf(v)

    @field_validator("password")
    @classmethod
    def validate_password_strength(cls, v: str) -> str:
        return _check_password_strength(v)


class PasswordChange(BaseModel):
    current_password: str
    new_password: str

    @field_validator("new_password")
    @classmethod
    def validate_new_password(cls, v: str) -> str:
        return _check_password_strength(v)


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: UserOut
