import logging

from sqlalchemy.ext.asyncio import AsyncSession

from gtreinamento.audit.models import AuditLog

logger = logging.getLogger(__name__)


async def write_audit_log(
    db: AsyncSession,
    *,
    action: str,
    user_cpf: str | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
    detail: dict | None = None,
    method: str | None = None,
    path: str | None = None,
    status_code: int | None = None,
) -> AuditLog:
    entry = AuditLog(
        action=action,
        user_cpf=user_cpf,
        ip_address=ip_address,
        user_agent=user_agent,
        detail=detail,
        method=method,
        path=path,
        status_code=status_code,
    )
    db.add(entry)
    await db.commit()
    logger.info("audit: action=%s user=%s status=%s ip=%s", action, user_cpf, status_code, ip_address)
    return entry
