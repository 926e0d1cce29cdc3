import enum
from datetime import date, datetime

from sqlalchemy import Date, DateTime, Enum, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column

from gtreinamento.database import Base


class UserRole(str, enum.Enum):
    ADMIN = "admin"
    INSTRUTOR = "instrutor"
    COLABORADOR = "colaborador"


class User(Base):
    __tablename__ = "users"

    cpf: Mapped[str] = mapped_column(String(11), primary_key=True)
    nome: Mapped[str] = mapped_column(String(255), nullable=False)
    hashed_password: Mapped[str | None] = mapped_column(String(255))
    idade: Mapped[int | None] = mapped_column(Integer)
    sexo: Mapped[str | None] = mapped_column(String(20))
    nome_filial: Mapped[str | None] = mapped_column(String(255))
    dt_nascimento: Mapped[date | None] = mapped_column(Date)
    cargo: Mapped[str | None] = mapped_column(String(255))
    setor: Mapped[str | None] = mapped_column(String(255))
    permissao: Mapped[UserRole] = mapped_column(
        Enum(UserRole), nullable=False, default=UserRole.COLABORADOR
    )
    instrutor: Mapped[bool] = mapped_column(default=False)
    ativo: Mapped[bool] = mapped_column(default=True)
    # Work site ("obra"); NULL means headquarters staff
    obra_codigo: Mapped[str | None] = mapped_column(String(50), index=True)
    obra_nome: Mapped[str | None] = mapped_column(String(255))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    @property
    def is_instrutor(self) -> bool:
        return bool(self.instrutor) or self.permissao in (UserRole.INSTRUTOR, UserRole.ADMIN)
