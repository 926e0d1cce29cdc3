import enum
import uuid
from datetime import datetime

from sqlalchemy import (
    JSON,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
    Uuid,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from gtreinamento.database import Base


class MaterialTipo(str, enum.Enum):
    VIDEO = "video"
    PDF = "pdf"


class OrigemConclusao(str, enum.Enum):
    INDIVIDUAL = "individual"
    COLETIVO = "treinamento-coletivo"


class UserTraining(Base):
    """Completion record: one row per (cpf, material, versão), never rewritten."""

    __tablename__ = "user_trainings"
    __table_args__ = (
        UniqueConstraint("cpf", "material_id", "material_versao", name="uq_user_training_material"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    cpf: Mapped[str] = mapped_column(String(11), nullable=False, index=True)
    usuario_nome: Mapped[str | None] = mapped_column(String(255))
    tipo: Mapped[MaterialTipo] = mapped_column(Enum(MaterialTipo), default=MaterialTipo.VIDEO)
    material_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    material_versao: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    trilha_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("trilhas.id", ondelete="SET NULL"), index=True
    )
    turma_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("turmas.id", ondelete="SET NULL"), index=True
    )
    origem: Mapped[OrigemConclusao] = mapped_column(
        Enum(OrigemConclusao), default=OrigemConclusao.INDIVIDUAL
    )
    dt_conclusao: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    # Participant record forwarded verbatim by the collective workflow
    usuario_raw: Mapped[dict | None] = mapped_column(JSON)
    # Facial evidence attached after a collective session
    foto_evidencia_path: Mapped[str | None] = mapped_column(String(500))
    foto_evidencia_url: Mapped[str | None] = mapped_column(String(1000))
    evidencia_facial_em: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    obra_local: Mapped[str | None] = mapped_column(String(255))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class AvaliacaoEficacia(Base):
    """Training efficacy rating (1-5) per employee and trilha; last answer wins."""

    __tablename__ = "avaliacoes_eficacia"
    __table_args__ = (UniqueConstraint("cpf", "trilha_id", name="uq_eficacia_cpf_trilha"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    cpf: Mapped[str] = mapped_column(String(11), nullable=False, index=True)
    trilha_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("trilhas.id", ondelete="CASCADE"), nullable=False
    )
    turma_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("turmas.id", ondelete="SET NULL")
    )
    nivel: Mapped[int] = mapped_column(Integer, nullable=False)
    avaliado_em: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
