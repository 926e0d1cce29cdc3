"""Create the schema (when not managed by alembic) and seed the admin account."""

import asyncio
import logging
import secrets

from sqlalchemy import select

from gtreinamento.auth.utils import get_password_hash
from gtreinamento.config import settings
from gtreinamento.database import Base, async_session, engine
from gtreinamento.users.models import User, UserRole

# Import all models so Base.metadata knows every table
from gtreinamento.audit.models import AuditLog  # noqa: F401
from gtreinamento.catalog.models import Modulo, Pdf, Trilha, Video  # noqa: F401
from gtreinamento.faces.models import Face  # noqa: F401
from gtreinamento.feedbacks.models import PlatformSatisfaction  # noqa: F401
from gtreinamento.provas.models import (  # noqa: F401
    CollectiveProofToken,
    Opcao,
    Prova,
    ProvaResultado,
    ProvaSubmissao,
    Questao,
)
from gtreinamento.turmas.models import Turma, TurmaEvidencia, TurmaParticipante  # noqa: F401
from gtreinamento.user_trainings.models import AvaliacaoEficacia, UserTraining  # noqa: F401

logger = logging.getLogger(__name__)


async def init_db():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables created/verified.")


async def seed_admin():
    async with async_session() as db:
        result = await db.execute(select(User).where(User.permissao == UserRole.ADMIN))
        if result.scalars().first():
            logger.info("Admin already exists, skipping seed.")
            return

        password = settings.admin_seed_password
        if not password:
            password = secrets.token_urlsafe(20)
            logger.warning(
                "ADMIN_SEED_PASSWORD não configurada. Senha gerada aleatoriamente. "
                "Defina ADMIN_SEED_PASSWORD no .env para controlar a senha do admin."
            )

        admin = User(
            cpf=settings.admin_seed_cpf,
            nome="Administrador",
            hashed_password=get_password_hash(password),
            permissao=UserRole.ADMIN,
            instrutor=True,
            setor="TI",
        )
        db.add(admin)
        await db.commit()
        # Never log the actual password
        logger.info("Seeded admin: cpf=%s", admin.cpf)


async def startup():
    await init_db()
    await seed_admin()


if __name__ == "__main__":
    asyncio.run(startup())
