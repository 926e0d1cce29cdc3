import logging
from datetime import datetime, timedelta, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from gtreinamento.config import settings
from gtreinamento.feedbacks.models import PlatformSatisfaction
from gtreinamento.feedbacks.schemas import SatisfactionCreate, SatisfactionStatus

logger = logging.getLogger(__name__)


def _aware(value: datetime) -> datetime:
    # SQLite hands back naive datetimes
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


async def satisfaction_status(
    db: AsyncSession, cpf: str, now: datetime | None = None
) -> SatisfactionStatus:
    """Whether the periodic platform satisfaction prompt should be shown to ``cpf``."""
    now = now or datetime.now(timezone.utc)
    interval = settings.platform_satisfaction_interval_days
    result = await db.execute(
        select(PlatformSatisfaction.respondido_em)
        .where(PlatformSatisfaction.cpf == cpf)
        .order_by(PlatformSatisfaction.respondido_em.desc())
        .limit(1)
    )
    last = result.scalar_one_or_none()
    if last is None:
        return SatisfactionStatus(
            deve_exibir=True,
            intervalo_dias=interval,
            ultima_resposta_em=None,
            proxima_disponivel_em=None,
            dias_desde_ultima=None,
        )
    last = _aware(last)
    next_at = last + timedelta(days=interval)
    return SatisfactionStatus(
        deve_exibir=now >= next_at,
        intervalo_dias=interval,
        ultima_resposta_em=last,
        proxima_disponivel_em=next_at,
        dias_desde_ultima=(now - last).days,
    )


async def record_satisfaction(db: AsyncSession, data: SatisfactionCreate) -> PlatformSatisfaction:
    entry = PlatformSatisfaction(
        cpf=data.cpf,
        nivel_satisfacao=data.nivel_satisfacao,
        respondido_em=data.respondido_em or datetime.now(timezone.utc),
    )
    db.add(entry)
    await db.commit()
    logger.info("Satisfação registrada: cpf=%s nivel=%d", entry.cpf, entry.nivel_satisfacao)
    return entry
