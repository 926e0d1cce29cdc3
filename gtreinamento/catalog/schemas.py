import uuid
from datetime import datetime

from pydantic import BaseModel, Field, computed_field

from gtreinamento.catalog.assets import resolve_material_source, youtube_video_id
from gtreinamento.config import settings


# --- Modulo ---
class ModuloCreate(BaseModel):
    nome: str
    path: str | None = None
    duracao_segundos: int | None = None


class ModuloOut(BaseModel):
    id: uuid.UUID
    nome: str
    path: str | None
    duracao_segundos: int | None

    model_config = {"from_attributes": True}


# --- Trilha ---
class TrilhaCreate(BaseModel):
    modulo_id: uuid.UUID
    titulo: str
    path: str | None = None
    ordem: int = 0
    duracao_segundos: int | None = None
    eficacia_obrigatoria: bool = False
    eficacia_pergunta: str | None = None


class TrilhaOut(BaseModel):
    id: uuid.UUID
    modulo_id: uuid.UUID
    titulo: str
    path: str | None
    ordem: int
    duracao_segundos: int | None
    eficacia_obrigatoria: bool
    eficacia_pergunta: str | None
    eficacia_atualizada_em: datetime | None

    model_config = {"from_attributes": True}


class TrilhaAssign(BaseModel):
    cpfs: list[str] = Field(min_length=1)


# --- Materials ---
class VideoCreate(BaseModel):
    trilha_id: uuid.UUID
    titulo: str | None = None
    path_video: str
    procedimento_id: str | None = None
    norma_id: str | None = None
    procedimento_observacoes: str | None = None
    norma_observacoes: str | None = None
    versao: int = 1
    duracao_segundos: int | None = None
    ordem: int = 0


class VideoOut(BaseModel):
    id: uuid.UUID
    trilha_id: uuid.UUID
    titulo: str | None
    path_video: str | None
    procedimento_id: str | None
    norma_id: str | None
    procedimento_observacoes: str | None
    norma_observacoes: str | None
    versao: int
    duracao_segundos: int | None
    ordem: int

    model_config = {"from_attributes": True}

    @computed_field
    @property
    def source_url(self) -> str | None:
        return resolve_material_source(self.path_video, settings.media_base_url)

    @computed_field
    @property
    def youtube_id(self) -> str | None:
        return youtube_video_id(self.path_video)


class PdfCreate(BaseModel):
    trilha_id: uuid.UUID
    titulo: str | None = None
    pdf_path: str
    versao: int = 1
    ordem: int = 0


class PdfOut(BaseModel):
    id: uuid.UUID
    trilha_id: uuid.UUID
    titulo: str | None
    pdf_path: str | None
    versao: int
    ordem: int

    model_config = {"from_attributes": True}

    @computed_field
    @property
    def source_url(self) -> str | None:
        return resolve_material_source(self.pdf_path, settings.media_base_url)
