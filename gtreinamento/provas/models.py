import enum
import uuid
from datetime import datetime

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from gtreinamento.database import Base


class ModoAplicacao(str, enum.Enum):
    COLETIVA = "coletiva"
    INDIVIDUAL = "individual"


class ResultadoStatus(str, enum.Enum):
    APROVADO = "aprovado"
    REPROVADO = "reprovado"


class Prova(Base):
    """Objective exam of a trilha. Editing creates a new version; the highest wins."""

    __tablename__ = "provas"
    __table_args__ = (UniqueConstraint("trilha_id", "versao", name="uq_prova_trilha_versao"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    trilha_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("trilhas.id", ondelete="CASCADE"), nullable=False, index=True
    )
    versao: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    modo_aplicacao: Mapped[ModoAplicacao] = mapped_column(
        Enum(ModoAplicacao), nullable=False, default=ModoAplicacao.COLETIVA
    )
    titulo: Mapped[str | None] = mapped_column(String(255))
    nota_total: Mapped[float] = mapped_column(Float, default=10.0)
    # Minimum grade to pass, on the same scale as nota_total
    media: Mapped[float] = mapped_column(Float, default=7.0)
    criado_por: Mapped[str | None] = mapped_column(String(11))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    atualizado_em: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    questoes = relationship(
        "Questao", back_populates="prova", order_by="Questao.ordem", cascade="all, delete-orphan"
    )


class Questao(Base):
    __tablename__ = "prova_questoes"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    prova_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("provas.id", ondelete="CASCADE"), nullable=False, index=True
    )
    ordem: Mapped[int] = mapped_column(Integer, default=0)
    enunciado: Mapped[str] = mapped_column(Text, nullable=False)
    peso: Mapped[float] = mapped_column(Float, default=1.0)

    prova = relationship("Prova", back_populates="questoes")
    opcoes = relationship(
        "Opcao", back_populates="questao", order_by="Opcao.ordem", cascade="all, delete-orphan"
    )


class Opcao(Base):
    __tablename__ = "prova_opcoes"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    questao_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("prova_questoes.id", ondelete="CASCADE"), nullable=False, index=True
    )
    ordem: Mapped[int] = mapped_column(Integer, default=0)
    texto: Mapped[str] = mapped_column(Text, nullable=False)
    correta: Mapped[bool] = mapped_column(Boolean, default=False)

    questao = relationship("Questao", back_populates="opcoes")


class ProvaSubmissao(Base):
    """One grading event. The stored payload is replayed for a repeated Idempotency-Key."""

    __tablename__ = "prova_submissoes"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    idempotency_key: Mapped[str | None] = mapped_column(String(128), unique=True)
    prova_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("provas.id", ondelete="CASCADE"), nullable=False
    )
    turma_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("turmas.id", ondelete="SET NULL")
    )
    enviado_por: Mapped[str | None] = mapped_column(String(11))
    resposta: Mapped[dict] = mapped_column(JSON, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class ProvaResultado(Base):
    """Per-employee attempt produced by a submission."""

    __tablename__ = "prova_resultados"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    submissao_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("prova_submissoes.id", ondelete="CASCADE"), nullable=False, index=True
    )
    cpf: Mapped[str] = mapped_column(String(11), nullable=False, index=True)
    prova_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("provas.id", ondelete="CASCADE"), nullable=False
    )
    prova_versao: Mapped[int] = mapped_column(Integer, nullable=False)
    trilha_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    nota: Mapped[float] = mapped_column(Float, nullable=False)
    status: Mapped[ResultadoStatus] = mapped_column(Enum(ResultadoStatus), nullable=False)
    acertos: Mapped[int] = mapped_column(Integer, nullable=False)
    total_questoes: Mapped[int] = mapped_column(Integer, nullable=False)
    respostas: Mapped[list | None] = mapped_column(JSON)
    turma_id: Mapped[uuid.UUID | None] = mapped_column(Uuid)
    origem: Mapped[str | None] = mapped_column(String(50))
    dt_realizacao: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class CollectiveProofToken(Base):
    """Time-limited grant to take individual provas of some trilhas, for some CPFs."""

    __tablename__ = "prova_tokens_coletivos"

    token: Mapped[str] = mapped_column(String(64), primary_key=True)
    turma_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("turmas.id", ondelete="SET NULL")
    )
    trilha_ids: Mapped[list] = mapped_column(JSON, nullable=False)
    cpfs: Mapped[list] = mapped_column(JSON, nullable=False)
    criado_por: Mapped[str | None] = mapped_column(String(11))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
