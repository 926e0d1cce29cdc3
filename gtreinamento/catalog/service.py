import uuid
from datetime import datetime, timezone

from sqlalchemy import insert, select
from sqlalchemy.ext.asyncio import AsyncSession

from gtreinamento.catalog.models import Modulo, Pdf, Trilha, Video, trilha_usuario
from gtreinamento.catalog.schemas import ModuloCreate, PdfCreate, TrilhaCreate, VideoCreate
from gtreinamento.utils.cpf import normalize_cpf


def _assigned_trilha_ids(cpf: str):
    return select(trilha_usuario.c.trilha_id).where(trilha_usuario.c.cpf == normalize_cpf(cpf))


# --- Modulo ---


async def create_modulo(db: AsyncSession, data: ModuloCreate) -> Modulo:
    modulo = Modulo(**data.model_dump())
    db.add(modulo)
    await db.commit()
    await db.refresh(modulo)
    return modulo


async def list_modulos(db: AsyncSession, cpf: str | None = None) -> list[Modulo]:
    query = select(Modulo)
    if cpf:
        query = query.where(
            Modulo.id.in_(select(Trilha.modulo_id).where(Trilha.id.in_(_assigned_trilha_ids(cpf))))
        )
    result = await db.execute(query.order_by(Modulo.nome))
    return list(result.scalars().all())


# --- Trilha ---


async def get_modulo(db: AsyncSession, modulo_id: uuid.UUID) -> Modulo | None:
    return await db.get(Modulo, modulo_id)


async def create_trilha(db: AsyncSession, data: TrilhaCreate) -> Trilha:
    trilha = Trilha(**data.model_dump())
    if trilha.eficacia_pergunta:
        trilha.eficacia_atualizada_em = datetime.now(timezone.utc)
    db.add(trilha)
    await db.commit()
    await db.refresh(trilha)
    return trilha


async def get_trilha(db: AsyncSession, trilha_id: uuid.UUID) -> Trilha | None:
    return await db.get(Trilha, trilha_id)


async def list_trilhas(
    db: AsyncSession,
    cpf: str | None = None,
    modulo_id: uuid.UUID | None = None,
) -> list[Trilha]:
    query = select(Trilha)
    if cpf:
        query = query.where(Trilha.id.in_(_assigned_trilha_ids(cpf)))
    if modulo_id:
        query = query.where(Trilha.modulo_id == modulo_id)
    result = await db.execute(query.order_by(Trilha.ordem, Trilha.titulo))
    return list(result.scalars().all())


async def assign_trilha(db: AsyncSession, trilha: Trilha, cpfs: list[str]) -> int:
    """Assign employees to a trilha; already-assigned CPFs are skipped."""
    wanted = {normalize_cpf(c) for c in cpfs if normalize_cpf(c)}
    existing = await db.execute(
        select(trilha_usuario.c.cpf).where(trilha_usuario.c.trilha_id == trilha.id)
    )
    new_cpfs = wanted - set(existing.scalars().all())
    if new_cpfs:
        await db.execute(
            insert(trilha_usuario),
            [{"trilha_id": trilha.id, "cpf": cpf} for cpf in sorted(new_cpfs)],
        )
        await db.commit()
    return len(new_cpfs)


# --- Materials ---


async def create_video(db: AsyncSession, data: VideoCreate) -> Video:
    if not await get_trilha(db, data.trilha_id):
        raise ValueError("Trilha não encontrada")
    video = Video(**data.model_dump())
    db.add(video)
    await db.commit()
    await db.refresh(video)
    return video


async def list_videos(
    db: AsyncSession,
    cpf: str | None = None,
    trilha_id: uuid.UUID | None = None,
) -> list[Video]:
    query = select(Video)
    if cpf:
        query = query.where(Video.trilha_id.in_(_assigned_trilha_ids(cpf)))
    if trilha_id:
        query = query.where(Video.trilha_id == trilha_id)
    result = await db.execute(query.order_by(Video.trilha_id, Video.ordem))
    return list(result.scalars().all())


async def get_videos_by_ids(db: AsyncSession, ids: list[uuid.UUID]) -> list[Video]:
    if not ids:
        return []
    result = await db.execute(select(Video).where(Video.id.in_(ids)))
    return list(result.scalars().all())


async def create_pdf(db: AsyncSession, data: PdfCreate) -> Pdf:
    if not await get_trilha(db, data.trilha_id):
        raise ValueError("Trilha não encontrada")
    pdf = Pdf(**data.model_dump())
    db.add(pdf)
    await db.commit()
    await db.refresh(pdf)
    return pdf


async def list_pdfs(
    db: AsyncSession,
    cpf: str | None = None,
    trilha_id: uuid.UUID | None = None,
) -> list[Pdf]:
    query = select(Pdf)
    if cpf:
        query = query.where(Pdf.trilha_id.in_(_assigned_trilha_ids(cpf)))
    if trilha_id:
        query = query.where(Pdf.trilha_id == trilha_id)
    result = await db.execute(query.order_by(Pdf.trilha_id, Pdf.ordem))
    return list(result.scalars().all())
