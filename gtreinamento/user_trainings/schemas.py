import uuid
from datetime import datetime

from pydantic import BaseModel, Field, field_validator

from gtreinamento.user_trainings.models import MaterialTipo, OrigemConclusao
from gtreinamento.utils.cpf import is_valid_cpf_length, normalize_cpf


def _cpf_digits(v: str) -> str:
    digits = normalize_cpf(v)
    if not is_valid_cpf_length(digits):
        raise ValueError("CPF deve conter 11 dígitos")
    return digits


# --- Individual completion ---
class CompletionCreate(BaseModel):
    cpf: str
    material_id: uuid.UUID
    material_versao: int = 1
    tipo: MaterialTipo = MaterialTipo.VIDEO
    concluido_em: datetime | None = None
    origem: OrigemConclusao = OrigemConclusao.INDIVIDUAL
    user: dict[str, str] | None = None

    @field_validator("cpf")
    @classmethod
    def validate_cpf(cls, v: str) -> str:
        return _cpf_digits(v)


class CompletionResult(BaseModel):
    inserted: int
    completed_at: datetime


class CompletionRecord(BaseModel):
    cpf: str
    usuario_nome: str | None
    material_id: uuid.UUID
    material_versao: int
    dt_conclusao: datetime
    origem: OrigemConclusao
    trilha_id: uuid.UUID | None
    trilha_titulo: str | None
    modulo_id: uuid.UUID | None
    modulo_nome: str | None
    path_video: str | None


# --- Collective attendance ---
class CollectiveMaterial(BaseModel):
    tipo: MaterialTipo = MaterialTipo.VIDEO
    material_id: uuid.UUID
    material_versao: int | None = None


class CollectiveTrainingCreate(BaseModel):
    users: list[dict[str, str]] = Field(min_length=1)
    trainings: list[CollectiveMaterial] = Field(min_length=1)
    turma_id: uuid.UUID | None = None
    concluido_em: datetime | None = None
    origem: OrigemConclusao = OrigemConclusao.COLETIVO


class InsertedCount(BaseModel):
    inserted: int


# --- Face evidence ---
class FaceEvidenceCapture(BaseModel):
    cpf: str
    foto_base64: str | None = None
    foto_url: str | None = None
    created_at: datetime | None = None

    @field_validator("cpf")
    @classmethod
    def validate_cpf(cls, v: str) -> str:
        return _cpf_digits(v)


class FaceEvidenceCreate(BaseModel):
    turma_id: uuid.UUID
    obra_local: str | None = None
    captures: list[FaceEvidenceCapture] = Field(min_length=1)


class ProcessedCount(BaseModel):
    processed: int
    updated: int


# --- Efficacy ---
class TrilhaEfficacyCreate(BaseModel):
    cpf: str
    trilha_id: uuid.UUID
    nivel: int = Field(ge=1, le=5)
    avaliado_em: datetime | None = None

    @field_validator("cpf")
    @classmethod
    def validate_cpf(cls, v: str) -> str:
        return _cpf_digits(v)


class EfficacyRating(BaseModel):
    cpf: str
    nivel: int = Field(ge=1, le=5)

    @field_validator("cpf")
    @classmethod
    def validate_cpf(cls, v: str) -> str:
        return _cpf_digits(v)


class TurmaEfficacyCreate(BaseModel):
    turma_id: uuid.UUID
    avaliacoes: list[EfficacyRating] = Field(min_length=1)
    avaliado_em: datetime | None = None


class UpdatedCount(BaseModel):
    updated: int
