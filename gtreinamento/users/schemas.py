from datetime import date, datetime

from pydantic import BaseModel, computed_field, field_validator

from gtreinamento.users.models import UserRole
from gtreinamento.utils.cpf import is_valid_cpf_length, normalize_cpf


class UserCreate(BaseModel):
    cpf: str
    nome: str
    idade: int | None = None
    sexo: str | None = None
    nome_filial: str | None = None
    dt_nascimento: date | None = None
    cargo: str | None = None
    setor: str | None = None
    permissao: UserRole = UserRole.COLABORADOR
    instrutor: bool = False
    obra_codigo: str | None = None
    obra_nome: str | None = None

    @field_validator("cpf")
    @classmethod
    def validate_cpf(cls, v: str) -> str:
        digits = normalize_cpf(v)
        if not is_valid_cpf_length(digits):
            raise ValueError("CPF deve conter 11 dígitos")
        return digits


class UserUpdate(BaseModel):
    nome: str | None = None
    cargo: str | None = None
    setor: str | None = None
    permissao: UserRole | None = None
    instrutor: bool | None = None
    ativo: bool | None = None
    obra_codigo: str | None = None
    obra_nome: str | None = None


class UserOut(BaseModel):
    cpf: str
    nome: str
    idade: int | None
    sexo: str | None
    nome_filial: str | None
    dt_nascimento: date | None
    cargo: str | None
    setor: str | None
    permissao: UserRole
    instrutor: bool
    ativo: bool
    obra_codigo: str | None
    obra_nome: str | None
    created_at: datetime

    model_config = {"from_attributes": True}

    @computed_field
    @property
    def is_instrutor(self) -> bool:
        return self.instrutor or self.permissao in (UserRole.INSTRUTOR, UserRole.ADMIN)


class UserListItem(BaseModel):
    cpf: str
    nome: str
    cargo: str | None
    setor: str | None
    ativo: bool
    instrutor: bool

    model_config = {"from_attributes": True}


class EmployeeOut(BaseModel):
    """Participant record used by the collective-training roster."""

    cpf: str
    nome: str
    funcao: str | None
    departamento: str | None
    raw: dict[str, str]


class ObraOut(BaseModel):
    codigo: str | None
    nome: str
