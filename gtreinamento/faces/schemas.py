import uuid
from datetime import datetime

from pydantic import BaseModel, Field, field_validator

from gtreinamento.config import settings
from gtreinamento.utils.cpf import is_valid_cpf_length, normalize_cpf


def _check_descriptor(v: list[float]) -> list[float]:
    if len(v) != settings.face_descriptor_length:
        raise ValueError(f"Descritor facial deve ter {settings.face_descriptor_length} posições")
    return v


class FaceMatchRequest(BaseModel):
    descriptor: list[float]
    threshold: float | None = Field(default=None, gt=0, le=2)
    limit: int = Field(default=3, ge=1, le=10)

    @field_validator("descriptor")
    @classmethod
    def validate_descriptor(cls, v: list[float]) -> list[float]:
        return _check_descriptor(v)


class FaceCandidate(BaseModel):
    cpf: str
    nome: str | None
    distance: float
    confidence: float


class FaceMatchResult(BaseModel):
    match: FaceCandidate | None
    candidates: list[FaceCandidate]
    threshold: float


class FaceEnrollRequest(BaseModel):
    cpf: str
    descriptor: list[float]
    foto_base64: str | None = None
    origem: str | None = None
    user: dict[str, str] | None = None

    @field_validator("cpf")
    @classmethod
    def validate_cpf(cls, v: str) -> str:
        cpf = normalize_cpf(v)
        if not is_valid_cpf_length(cpf):
            raise ValueError("CPF deve conter 11 dígitos")
        return cpf

    @field_validator("descriptor")
    @classmethod
    def validate_descriptor(cls, v: list[float]) -> list[float]:
        return _check_descriptor(v)


class FaceOut(BaseModel):
    id: uuid.UUID
    cpf: str
    usuario_nome: str | None
    foto_path: str | None
    origem: str | None
    created_at: datetime

    model_config = {"from_attributes": True}
