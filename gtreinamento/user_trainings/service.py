import logging
import uuid
from datetime import datetime, timezone

from sqlalchemy import select, tuple_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from gtreinamento.catalog.models import Modulo, Pdf, Trilha, Video
from gtreinamento.turmas.models import Turma, TurmaMaterial, TurmaParticipante
from gtreinamento.user_trainings.models import (
    AvaliacaoEficacia,
    MaterialTipo,
    UserTraining,
)
from gtreinamento.user_trainings.schemas import (
    CollectiveTrainingCreate,
    CompletionCreate,
    CompletionRecord,
    FaceEvidenceCreate,
    TrilhaEfficacyCreate,
    TurmaEfficacyCreate,
)
from gtreinamento.utils.cpf import normalize_cpf
from gtreinamento.utils.files import decode_data_url, extension_for, store_upload

logger = logging.getLogger(__name__)


async def _material_info(
    db: AsyncSession, tipo: MaterialTipo, material_id: uuid.UUID
) -> tuple[uuid.UUID | None, int | None]:
    """(trilha_id, current versão) of a catalog material, or (None, None)."""
    model = Video if tipo == MaterialTipo.VIDEO else Pdf
    material = await db.get(model, material_id)
    if material is None:
        return None, None
    return material.trilha_id, material.versao


async def _existing_triples(
    db: AsyncSession, triples: set[tuple[str, uuid.UUID, int]]
) -> dict[tuple[str, uuid.UUID, int], UserTraining]:
    if not triples:
        return {}
    result = await db.execute(
        select(UserTraining).where(
            tuple_(UserTraining.cpf, UserTraining.material_id, UserTraining.material_versao).in_(
                list(triples)
            )
        )
    )
    return {(r.cpf, r.material_id, r.material_versao): r for r in result.scalars().all()}


async def _insert_missing(db: AsyncSession, rows: list[UserTraining]) -> int:
    """Insert rows whose (cpf, material, versão) triple is not stored yet."""
    by_triple = {(r.cpf, r.material_id, r.material_versao): r for r in rows}
    for attempt in range(2):
        existing = await _existing_triples(db, set(by_triple))
        new_rows = [row for key, row in by_triple.items() if key not in existing]
        if not new_rows:
            return 0
        db.add_all(new_rows)
        try:
            await db.commit()
            return len(new_rows)
        except IntegrityError:
            # A concurrent request stored some of the triples first
            await db.rollback()
            if attempt:
                raise
    return 0


# --- Individual completion ---


async def complete_material(db: AsyncSession, data: CompletionCreate) -> tuple[int, datetime]:
    """Record a completion once per (cpf, material, versão).

    A repeated call is a no-op that returns the originally stored timestamp.
    """
    trilha_id, _ = await _material_info(db, data.tipo, data.material_id)
    key = (data.cpf, data.material_id, data.material_versao)
    existing = await _existing_triples(db, {key})
    if key in existing:
        return 0, existing[key].dt_conclusao

    completed_at = data.concluido_em or datetime.now(timezone.utc)
    row = UserTraining(
        cpf=data.cpf,
        usuario_nome=(data.user or {}).get("NOME"),
        tipo=data.tipo,
        material_id=data.material_id,
        material_versao=data.material_versao,
        trilha_id=trilha_id,
        origem=data.origem,
        dt_conclusao=completed_at,
        usuario_raw=data.user,
    )
    inserted = await _insert_missing(db, [row])
    if not inserted:
        existing = await _existing_triples(db, {key})
        return 0, existing[key].dt_conclusao
    logger.info("Conclusão registrada: cpf=%s*** material=%s v%s", data.cpf[:3], data.material_id, data.material_versao)
    return inserted, completed_at


async def list_video_completions(db: AsyncSession, cpf: str) -> list[CompletionRecord]:
    result = await db.execute(
        select(UserTraining, Trilha, Modulo, Video)
        .outerjoin(Trilha, Trilha.id == UserTraining.trilha_id)
        .outerjoin(Modulo, Modulo.id == Trilha.modulo_id)
        .outerjoin(Video, Video.id == UserTraining.material_id)
        .where(UserTraining.cpf == normalize_cpf(cpf), UserTraining.tipo == MaterialTipo.VIDEO)
        .order_by(UserTraining.dt_conclusao.desc())
    )
    return [
        CompletionRecord(
            cpf=ut.cpf,
            usuario_nome=ut.usuario_nome,
            material_id=ut.material_id,
            material_versao=ut.material_versao,
            dt_conclusao=ut.dt_conclusao,
            origem=ut.origem,
            trilha_id=trilha.id if trilha else None,
            trilha_titulo=trilha.titulo if trilha else None,
            modulo_id=modulo.id if modulo else None,
            modulo_nome=modulo.nome if modulo else None,
            path_video=video.path_video if video else None,
        )
        for ut, trilha, modulo, video in result.all()
    ]


# --- Collective attendance ---


def _raw_cpf(raw: dict[str, str]) -> str:
    return normalize_cpf(raw.get("CPF") or raw.get("cpf") or "")


def _raw_nome(raw: dict[str, str]) -> str | None:
    return raw.get("NOME") or raw.get("nome")


async def _link_turma(
    db: AsyncSession,
    turma_id: uuid.UUID,
    materiais: list[tuple[MaterialTipo, uuid.UUID, int, uuid.UUID | None]],
    users: list[dict[str, str]],
    *,
    retry: bool = True,
) -> None:
    """Register the turma's materials and participants, including those already trained elsewhere."""
    result = await db.execute(
        select(TurmaMaterial.tipo, TurmaMaterial.material_id, TurmaMaterial.material_versao).where(
            TurmaMaterial.turma_id == turma_id
        )
    )
    linked = {tuple(r) for r in result.all()}
    for tipo, material_id, versao, trilha_id in materiais:
        key = (tipo.value, material_id, versao)
        if key in linked:
            continue
        linked.add(key)
        db.add(
            TurmaMaterial(
                turma_id=turma_id,
                tipo=tipo.value,
                material_id=material_id,
                material_versao=versao,
                trilha_id=trilha_id,
            )
        )

    result = await db.execute(
        select(TurmaParticipante.cpf).where(TurmaParticipante.turma_id == turma_id)
    )
    enrolled = set(result.scalars().all())
    for raw in users:
        cpf = _raw_cpf(raw)
        if not cpf or cpf in enrolled:
            continue
        enrolled.add(cpf)
        db.add(TurmaParticipante(turma_id=turma_id, cpf=cpf, nome=_raw_nome(raw), raw=raw))
    try:
        await db.commit()
    except IntegrityError:
        # A concurrent request linked the same materials first
        await db.rollback()
        if not retry:
            raise
        await _link_turma(db, turma_id, materiais, users, retry=False)


async def record_collective_training(db: AsyncSession, data: CollectiveTrainingCreate) -> int:
    """Bulk attendance: every participant x every material, idempotent per triple."""
    obra_local = None
    if data.turma_id:
        turma = await db.get(Turma, data.turma_id)
        if not turma:
            raise ValueError("Turma não encontrada")
        obra_local = turma.obra_local

    completed_at = data.concluido_em or datetime.now(timezone.utc)

    rows: list[UserTraining] = []
    materiais: list[tuple[MaterialTipo, uuid.UUID, int, uuid.UUID | None]] = []
    for training in data.trainings:
        trilha_id, current_versao = await _material_info(db, training.tipo, training.material_id)
        versao = training.material_versao or current_versao or 1
        materiais.append((training.tipo, training.material_id, versao, trilha_id))
        for raw in data.users:
            cpf = _raw_cpf(raw)
            if not cpf:
                continue
            rows.append(
                UserTraining(
                    cpf=cpf,
                    usuario_nome=_raw_nome(raw),
                    tipo=training.tipo,
                    material_id=training.material_id,
                    material_versao=versao,
                    trilha_id=trilha_id,
                    turma_id=data.turma_id,
                    origem=data.origem,
                    dt_conclusao=completed_at,
                    usuario_raw=raw,
                    obra_local=obra_local,
                )
            )
    if not rows:
        raise ValueError("Nenhum participante com CPF informado")

    if data.turma_id:
        await _link_turma(db, data.turma_id, materiais, data.users)
    inserted = await _insert_missing(db, rows)
    logger.info(
        "Treinamento coletivo registrado: turma=%s participantes=%d materiais=%d inseridos=%d",
        data.turma_id,
        len(data.users),
        len(data.trainings),
        inserted,
    )
    return inserted


async def attach_face_evidence(db: AsyncSession, data: FaceEvidenceCreate) -> tuple[int, int]:
    """Attach facial snapshots to each participant of the turma and their turma rows."""
    turma = await db.get(Turma, data.turma_id)
    if not turma:
        raise ValueError("Turma não encontrada")

    result = await db.execute(
        select(TurmaParticipante).where(TurmaParticipante.turma_id == turma.id)
    )
    participantes = {p.cpf: p for p in result.scalars().all()}

    processed = 0
    updated = 0
    for capture in data.captures:
        if not capture.foto_base64 and not capture.foto_url:
            continue
        processed += 1
        foto_path = None
        if capture.foto_base64:
            mime, content = decode_data_url(capture.foto_base64)
            foto_path = store_upload(
                f"evidencias_faciais/{turma.id}",
                f"{capture.cpf}{extension_for(mime)}",
                content,
            )
        captured_at = capture.created_at or datetime.now(timezone.utc)

        participante = participantes.get(capture.cpf)
        if participante is None:
            participante = TurmaParticipante(turma_id=turma.id, cpf=capture.cpf)
            db.add(participante)
            participantes[capture.cpf] = participante
        participante.foto_evidencia_path = foto_path or participante.foto_evidencia_path
        participante.foto_evidencia_url = capture.foto_url or participante.foto_evidencia_url
        participante.evidencia_facial_em = captured_at
        updated += 1

        result = await db.execute(
            select(UserTraining).where(
                UserTraining.turma_id == turma.id, UserTraining.cpf == capture.cpf
            )
        )
        for row in result.scalars().all():
            row.foto_evidencia_path = foto_path or row.foto_evidencia_path
            row.foto_evidencia_url = capture.foto_url or row.foto_evidencia_url
            row.evidencia_facial_em = captured_at
            if data.obra_local:
                row.obra_local = data.obra_local
    await db.commit()
    return processed, updated


# --- Efficacy ---


async def _upsert_efficacy(
    db: AsyncSession,
    cpf: str,
    trilha_id: uuid.UUID,
    nivel: int,
    avaliado_em: datetime,
    turma_id: uuid.UUID | None = None,
) -> None:
    result = await db.execute(
        select(AvaliacaoEficacia).where(
            AvaliacaoEficacia.cpf == cpf, AvaliacaoEficacia.trilha_id == trilha_id
        )
    )
    rating = result.scalar_one_or_none()
    if rating is None:
        rating = AvaliacaoEficacia(cpf=cpf, trilha_id=trilha_id)
        db.add(rating)
    rating.nivel = nivel
    rating.avaliado_em = avaliado_em
    rating.turma_id = turma_id or rating.turma_id


async def rate_trilha_efficacy(db: AsyncSession, data: TrilhaEfficacyCreate) -> int:
    if not await db.get(Trilha, data.trilha_id):
        raise ValueError("Trilha não encontrada")
    await _upsert_efficacy(
        db, data.cpf, data.trilha_id, data.nivel, data.avaliado_em or datetime.now(timezone.utc)
    )
    await db.commit()
    return 1


async def rate_turma_efficacy(db: AsyncSession, data: TurmaEfficacyCreate) -> tuple[int, int]:
    """Apply each participant's rating to every efficacy-required trilha of the turma."""
    if not await db.get(Turma, data.turma_id):
        raise ValueError("Turma não encontrada")

    result = await db.execute(
        select(Trilha.id)
        .join(TurmaMaterial, TurmaMaterial.trilha_id == Trilha.id)
        .where(TurmaMaterial.turma_id == data.turma_id, Trilha.eficacia_obrigatoria.is_(True))
        .distinct()
    )
    trilha_ids = list(result.scalars().all())
    if not trilha_ids:
        raise ValueError("Nenhuma trilha desta turma exige avaliação de eficácia")

    avaliado_em = data.avaliado_em or datetime.now(timezone.utc)
    updated = 0
    for avaliacao in data.avaliacoes:
        for trilha_id in trilha_ids:
            await _upsert_efficacy(
                db, avaliacao.cpf, trilha_id, avaliacao.nivel, avaliado_em, data.turma_id
            )
            updated += 1
    await db.commit()
    return len(data.avaliacoes), updated

