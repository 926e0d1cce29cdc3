import uuid
from datetime import datetime

from pydantic import BaseModel, Field, field_validator

from gtreinamento.provas.models import ModoAplicacao, ResultadoStatus
from gtreinamento.utils.cpf import normalize_cpf


# --- Authoring (admin) ---
class OpcaoCreate(BaseModel):
    texto: str
    correta: bool = False


class QuestaoCreate(BaseModel):
    enunciado: str
    peso: float = Field(default=1.0, gt=0)
    opcoes: list[OpcaoCreate] = Field(min_length=2)

    @field_validator("opcoes")
    @classmethod
    def one_correct_option(cls, v: list[OpcaoCreate]) -> list[OpcaoCreate]:
        if sum(1 for o in v if o.correta) != 1:
            raise ValueError("Cada questão deve ter exatamente uma opção correta")
        return v


class ProvaCreate(BaseModel):
    titulo: str | None = None
    modo_aplicacao: ModoAplicacao = ModoAplicacao.COLETIVA
    nota_total: float = Field(default=10.0, gt=0)
    media: float | None = Field(default=None, ge=0)
    questoes: list[QuestaoCreate] = Field(min_length=1)


# --- Player view (never exposes the answer key) ---
class OpcaoPlayerOut(BaseModel):
    id: uuid.UUID
    ordem: int
    texto: str

    model_config = {"from_attributes": True}


class QuestaoPlayerOut(BaseModel):
    id: uuid.UUID
    ordem: int
    enunciado: str
    peso: float
    opcoes: list[OpcaoPlayerOut]

    model_config = {"from_attributes": True}


class ProvaSummaryOut(BaseModel):
    id: uuid.UUID
    trilha_id: uuid.UUID
    versao: int
    modo_aplicacao: ModoAplicacao
    titulo: str | None
    nota_total: float
    media: float

    model_config = {"from_attributes": True}


class ProvaPlayerOut(ProvaSummaryOut):
    atualizado_em: datetime | None
    questoes: list[QuestaoPlayerOut]


# --- Submission ---
class RespostaIn(BaseModel):
    questao_id: uuid.UUID
    opcao_id: uuid.UUID


class PlayerSubmit(BaseModel):
    cpf: str
    respostas: list[RespostaIn]
    user: dict[str, str] | None = None
    token: str | None = None

    @field_validator("cpf")
    @classmethod
    def digits_only(cls, v: str) -> str:
        return normalize_cpf(v)


class CollectiveSubmit(BaseModel):
    users: list[dict[str, str]] = Field(min_length=1)
    respostas: list[RespostaIn]
    turma_id: uuid.UUID | None = None
    concluido_em: datetime | None = None
    origem: str = "treinamento-coletivo"


class GabaritoItem(BaseModel):
    questao_id: uuid.UUID
    enunciado: str
    peso: float
    opcao_marcada_id: uuid.UUID | None
    opcao_marcada_texto: str | None
    opcao_correta_id: uuid.UUID
    opcao_correta_texto: str
    acertou: bool


class ProvaRef(BaseModel):
    id: uuid.UUID
    versao: int
    titulo: str | None


class SubmissionResult(BaseModel):
    nota: float
    media: float
    status: ResultadoStatus
    acertos: int
    total_questoes: int
    aprovado: bool
    gabarito: list[GabaritoItem]
    prova: ProvaRef


class CollectiveSubmissionResult(SubmissionResult):
    usuarios_avaliados: int
    tentativas_registradas: int
    aprovacoes_registradas: int


class ResultadoOut(BaseModel):
    id: uuid.UUID
    cpf: str
    prova_id: uuid.UUID
    prova_versao: int
    trilha_id: uuid.UUID
    nota: float
    status: ResultadoStatus
    acertos: int
    total_questoes: int
    dt_realizacao: datetime
    respostas: list | None = None

    model_config = {"from_attributes": True}


# --- Collective proof token ---
class ProofQrCreate(BaseModel):
    users: list[dict[str, str]] = Field(min_length=1)
    trilha_ids: list[uuid.UUID] = Field(min_length=1)
    turma_id: uuid.UUID | None = None


class ProofQrOut(BaseModel):
    token: str
    redirect_url: str
    qr_code_image_url: str
    expires_at: datetime
    total_usuarios: int
    trilhas: list[ProvaSummaryOut]


class ProofTokenResolved(BaseModel):
    token: str
    expires_at: datetime
    turma_id: uuid.UUID | None
    trilhas: list[uuid.UUID]
    cpfs: list[str]
    provas: list[ProvaSummaryOut]
