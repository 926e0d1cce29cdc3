import uuid
from datetime import datetime

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Table,
    Text,
    Uuid,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from gtreinamento.database import Base

# Many-to-many: Trilha <-> User (assigned employees)
trilha_usuario = Table(
    "trilha_usuarios",
    Base.metadata,
    Column(
        "trilha_id",
        Uuid,
        ForeignKey("trilhas.id", ondelete="CASCADE"),
        primary_key=True,
    ),
    Column(
        "cpf",
        String(11),
        ForeignKey("users.cpf", ondelete="CASCADE"),
        primary_key=True,
    ),
)


class Modulo(Base):
    __tablename__ = "modulos"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    nome: Mapped[str] = mapped_column(String(255), nullable=False)
    path: Mapped[str | None] = mapped_column(String(500))
    duracao_segundos: Mapped[int | None] = mapped_column(Integer)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    trilhas = relationship(
        "Trilha", back_populates="modulo", order_by="Trilha.ordem", cascade="all, delete-orphan"
    )


class Trilha(Base):
    __tablename__ = "trilhas"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    modulo_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("modulos.id", ondelete="CASCADE"), nullable=False, index=True
    )
    titulo: Mapped[str] = mapped_column(String(255), nullable=False)
    path: Mapped[str | None] = mapped_column(String(500))
    ordem: Mapped[int] = mapped_column(Integer, default=0)
    duracao_segundos: Mapped[int | None] = mapped_column(Integer)
    eficacia_obrigatoria: Mapped[bool] = mapped_column(Boolean, default=False)
    eficacia_pergunta: Mapped[str | None] = mapped_column(Text)
    eficacia_atualizada_em: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    modulo = relationship("Modulo", back_populates="trilhas")
    videos = relationship(
        "Video", back_populates="trilha", order_by="Video.ordem", cascade="all, delete-orphan"
    )
    pdfs = relationship(
        "Pdf", back_populates="trilha", order_by="Pdf.ordem", cascade="all, delete-orphan"
    )


class Video(Base):
    __tablename__ = "videos"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    trilha_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("trilhas.id", ondelete="CASCADE"), nullable=False, index=True
    )
    titulo: Mapped[str | None] = mapped_column(String(255))
    path_video: Mapped[str | None] = mapped_column(String(1000))
    # Regulatory references; any of them makes facial verification mandatory
    procedimento_id: Mapped[str | None] = mapped_column(String(100))
    norma_id: Mapped[str | None] = mapped_column(String(100))
    procedimento_observacoes: Mapped[str | None] = mapped_column(Text)
    norma_observacoes: Mapped[str | None] = mapped_column(Text)
    versao: Mapped[int] = mapped_column(Integer, default=1)
    duracao_segundos: Mapped[int | None] = mapped_column(Integer)
    ordem: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    trilha = relationship("Trilha", back_populates="videos")


class Pdf(Base):
    __tablename__ = "pdfs"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    trilha_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("trilhas.id", ondelete="CASCADE"), nullable=False, index=True
    )
    titulo: Mapped[str | None] = mapped_column(String(255))
    pdf_path: Mapped[str | None] = mapped_column(String(1000))
    versao: Mapped[int] = mapped_column(Integer, default=1)
    ordem: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    trilha = relationship("Trilha", back_populates="pdfs")
