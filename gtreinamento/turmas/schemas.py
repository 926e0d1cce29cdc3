import uuid
from datetime import datetime

from pydantic import BaseModel, Field

from gtreinamento.turmas.models import TurmaStatus


class TurmaCreate(BaseModel):
    nome: str | None = None
    users: list[dict[str, str]] = Field(min_length=1)
    iniciado_em: datetime | None = None
    obra_local: str | None = None


class TurmaOut(BaseModel):
    id: uuid.UUID
    nome: str
    status: TurmaStatus
    criado_por: str | None
    obra_local: str | None
    criado_em: datetime
    iniciado_em: datetime | None
    finalizado_em: datetime | None
    duracao_treinamento_minutos: int | None
    total_participantes: int
    total_treinados: int


class ParticipanteOut(BaseModel):
    turma_id: uuid.UUID
    cpf: str
    nome: str | None
    funcao: str | None
    setor: str | None
    videos_concluidos: int
    ultima_conclusao: datetime | None
    foto_evidencia_path: str | None = None
    evidencia_facial_em: datetime | None = None


class TurmaDetailOut(BaseModel):
    turma: TurmaOut
    participantes: list[ParticipanteOut]


class EvidenciaOut(BaseModel):
    arquivo_path: str
    ordem: int

    model_config = {"from_attributes": True}


class EvidenceUploadOut(BaseModel):
    turma: TurmaOut
    evidencias: list[EvidenciaOut]
