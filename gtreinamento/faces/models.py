import uuid
from datetime import datetime

from sqlalchemy import JSON, DateTime, String, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from gtreinamento.database import Base


class Face(Base):
    """Enrolled face descriptor of an employee. A CPF may hold several samples."""

    __tablename__ = "faces"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    cpf: Mapped[str] = mapped_column(String(11), nullable=False, index=True)
    usuario_nome: Mapped[str | None] = mapped_column(String(255))
    descriptor: Mapped[list] = mapped_column(JSON, nullable=False)
    foto_path: Mapped[str | None] = mapped_column(String(500))
    # e.g. "treinamento-coletivo"
    origem: Mapped[str | None] = mapped_column(String(50))
    criado_por: Mapped[str | None] = mapped_column(String(11))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
