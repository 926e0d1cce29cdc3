import enum
import uuid
from datetime import datetime

from sqlalchemy import JSON, DateTime, Enum, ForeignKey, Integer, String, UniqueConstraint, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from gtreinamento.database import Base


class TurmaStatus(str, enum.Enum):
    EM_ANDAMENTO = "em_andamento"
    FINALIZADA = "finalizada"


class Turma(Base):
    """Collective training session (class) run by an instructor."""

    __tablename__ = "turmas"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    nome: Mapped[str] = mapped_column(String(255), nullable=False)
    status: Mapped[TurmaStatus] = mapped_column(Enum(TurmaStatus), default=TurmaStatus.EM_ANDAMENTO)
    criado_por: Mapped[str | None] = mapped_column(String(11))
    obra_local: Mapped[str | None] = mapped_column(String(255))
    criado_em: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    iniciado_em: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    finalizado_em: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    duracao_treinamento_minutos: Mapped[int | None] = mapped_column(Integer)

    participantes = relationship(
        "TurmaParticipante", back_populates="turma", cascade="all, delete-orphan"
    )
    evidencias = relationship(
        "TurmaEvidencia",
        back_populates="turma",
        order_by="TurmaEvidencia.ordem",
        cascade="all, delete-orphan",
    )
    materiais = relationship(
        "TurmaMaterial", back_populates="turma", cascade="all, delete-orphan"
    )


class TurmaParticipante(Base):
    __tablename__ = "turma_participantes"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    turma_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("turmas.id", ondelete="CASCADE"), nullable=False, index=True
    )
    cpf: Mapped[str] = mapped_column(String(11), nullable=False)
    nome: Mapped[str | None] = mapped_column(String(255))
    raw: Mapped[dict | None] = mapped_column(JSON)
    foto_evidencia_path: Mapped[str | None] = mapped_column(String(500))
    foto_evidencia_url: Mapped[str | None] = mapped_column(String(500))
    evidencia_facial_em: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    turma = relationship("Turma", back_populates="participantes")


class TurmaEvidencia(Base):
    __tablename__ = "turma_evidencias"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    turma_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("turmas.id", ondelete="CASCADE"), nullable=False, index=True
    )
    arquivo_path: Mapped[str] = mapped_column(String(500), nullable=False)
    nome_original: Mapped[str | None] = mapped_column(String(255))
    mime_type: Mapped[str | None] = mapped_column(String(100))
    ordem: Mapped[int] = mapped_column(Integer, default=0)
    criado_por: Mapped[str | None] = mapped_column(String(11))
    criado_em: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    turma = relationship("Turma", back_populates="evidencias")


class TurmaMaterial(Base):
    """Material presented in a turma, whether or not it produced new completions."""

    __tablename__ = "turma_materiais"
    __table_args__ = (
        UniqueConstraint("turma_id", "tipo", "material_id", "material_versao", name="uq_turma_material"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    turma_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("turmas.id", ondelete="CASCADE"), nullable=False, index=True
    )
    tipo: Mapped[str] = mapped_column(String(10), nullable=False)
    material_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    material_versao: Mapped[int] = mapped_column(Integer, nullable=False)
    trilha_id: Mapped[uuid.UUID | None] = mapped_column(Uuid)

    turma = relationship("Turma", back_populates="materiais")
