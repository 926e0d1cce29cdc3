import logging
import uuid
from datetime import datetime, timezone

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from gtreinamento.turmas.models import (
    Turma,
    TurmaEvidencia,
    TurmaMaterial,
    TurmaParticipante,
    TurmaStatus,
)
from gtreinamento.turmas.schemas import ParticipanteOut, TurmaCreate, TurmaOut
from gtreinamento.user_trainings.models import UserTraining
from gtreinamento.utils.cpf import normalize_cpf
from gtreinamento.utils.files import check_upload_size, extension_for, store_upload

logger = logging.getLogger(__name__)

ALLOWED_EVIDENCE_TYPES = {"image/jpeg", "image/png", "image/webp", "application/pdf"}


def _default_nome(obra_local: str | None, started_at: datetime) -> str:
    local = obra_local or "Sede"
    return f"Treinamento coletivo - {local} - {started_at:%d/%m/%Y %H:%M}"


async def create_turma(db: AsyncSession, data: TurmaCreate, criado_por: str) -> Turma:
    started_at = data.iniciado_em or datetime.now(timezone.utc)
    turma = Turma(
        nome=(data.nome or "").strip() or _default_nome(data.obra_local, started_at),
        status=TurmaStatus.EM_ANDAMENTO,
        criado_por=criado_por,
        obra_local=data.obra_local,
        iniciado_em=started_at,
    )
    seen: set[str] = set()
    for raw in data.users:
        cpf = normalize_cpf(raw.get("CPF") or raw.get("cpf"))
        if not cpf or cpf in seen:
            continue
        seen.add(cpf)
        turma.participantes.append(
            TurmaParticipante(cpf=cpf, nome=raw.get("NOME") or raw.get("nome"), raw=raw)
        )
    if not turma.participantes:
        raise ValueError("Informe ao menos um participante com CPF")

    db.add(turma)
    await db.commit()
    logger.info(
        "Turma criada: id=%s participantes=%d obra=%s", turma.id, len(turma.participantes), turma.obra_local
    )
    return await get_turma(db, turma.id)


async def get_turma(db: AsyncSession, turma_id: uuid.UUID) -> Turma | None:
    result = await db.execute(
        select(Turma)
        .where(Turma.id == turma_id)
        .options(selectinload(Turma.participantes), selectinload(Turma.evidencias))
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def list_turmas(db: AsyncSession, search: str | None = None, limit: int = 100) -> list[Turma]:
    query = select(Turma).options(selectinload(Turma.participantes), selectinload(Turma.evidencias))
    if search:
        pattern = f"%{search.strip()}%"
        query = query.where(or_(Turma.nome.ilike(pattern), Turma.obra_local.ilike(pattern)))
    result = await db.execute(query.order_by(Turma.criado_em.desc()).limit(limit))
    return list(result.scalars().all())


async def _trained_counts(db: AsyncSession, turma_id: uuid.UUID) -> dict[str, tuple[int, datetime | None]]:
    """Per participant: how many of the turma's materials they completed, in any session."""
    participantes = select(TurmaParticipante.cpf).where(TurmaParticipante.turma_id == turma_id)
    result = await db.execute(
        select(
            UserTraining.cpf,
            func.count(func.distinct(TurmaMaterial.id)),
            func.max(UserTraining.dt_conclusao),
        )
        .join(
            TurmaMaterial,
            (TurmaMaterial.material_id == UserTraining.material_id)
            & (TurmaMaterial.material_versao == UserTraining.material_versao),
        )
        .where(TurmaMaterial.turma_id == turma_id, UserTraining.cpf.in_(participantes))
        .group_by(UserTraining.cpf)
    )
    return {cpf: (count, last) for cpf, count, last in result.all()}


async def turma_out(db: AsyncSession, turma: Turma) -> TurmaOut:
    counts = await _trained_counts(db, turma.id)
    return TurmaOut(
        id=turma.id,
        nome=turma.nome,
        status=turma.status,
        criado_por=turma.criado_por,
        obra_local=turma.obra_local,
        criado_em=turma.criado_em,
        iniciado_em=turma.iniciado_em,
        finalizado_em=turma.finalizado_em,
        duracao_treinamento_minutos=turma.duracao_treinamento_minutos,
        total_participantes=len(turma.participantes),
        total_treinados=len(counts),
    )


async def participantes_out(db: AsyncSession, turma: Turma) -> list[ParticipanteOut]:
    counts = await _trained_counts(db, turma.id)
    out = []
    for p in turma.participantes:
        raw = p.raw or {}
        videos, last = counts.get(p.cpf, (0, None))
        out.append(
            ParticipanteOut(
                turma_id=turma.id,
                cpf=p.cpf,
                nome=p.nome,
                funcao=raw.get("NOME_FUNCAO") or None,
                setor=raw.get("NOMEDEPARTAMENTO") or None,
                videos_concluidos=videos,
                ultima_conclusao=last,
                foto_evidencia_path=p.foto_evidencia_path,
                evidencia_facial_em=p.evidencia_facial_em,
            )
        )
    return out


async def finalize_with_evidence(
    db: AsyncSession,
    turma: Turma,
    *,
    duracao_horas: int,
    duracao_minutos: int,
    files: list[tuple[str | None, str | None, bytes]],
    criado_por: str,
    finalizado_em: datetime | None = None,
    obra_local: str | None = None,
) -> list[TurmaEvidencia]:
    """Store evidence photos, the session duration and close the turma.

    ``files`` holds (filename, content_type, content) tuples. May be called
    again after a failure; new files are appended after the existing ones.
    """
    if duracao_horas < 0 or duracao_minutos < 0:
        raise ValueError("Duração inválida")
    total_minutes = duracao_horas * 60 + duracao_minutos
    if total_minutes <= 0:
        raise ValueError("Informe a duração do treinamento.")
    if not files:
        raise ValueError("Envie ao menos uma foto de evidência.")
    for filename, content_type, content in files:
        if content_type not in ALLOWED_EVIDENCE_TYPES:
            raise ValueError(f"Tipo de arquivo não suportado: {content_type or filename}")
        check_upload_size(content)

    next_ordem = max((e.ordem for e in turma.evidencias), default=0) + 1
    created = []
    for offset, (filename, content_type, content) in enumerate(files):
        ordem = next_ordem + offset
        stored_name = f"{ordem:03d}-{uuid.uuid4().hex[:8]}{extension_for(content_type)}"
        path = store_upload(f"turmas/{turma.id}", stored_name, content)
        evidencia = TurmaEvidencia(
            arquivo_path=path,
            nome_original=filename,
            mime_type=content_type,
            ordem=ordem,
            criado_por=criado_por,
        )
        turma.evidencias.append(evidencia)
        created.append(evidencia)

    turma.duracao_treinamento_minutos = total_minutes
    turma.finalizado_em = finalizado_em or datetime.now(timezone.utc)
    turma.status = TurmaStatus.FINALIZADA
    if obra_local:
        turma.obra_local = obra_local
    await db.commit()
    logger.info("Evidências registradas: turma=%s arquivos=%d duracao=%dmin", turma.id, len(created), total_minutes)
    return created
