import logging
import uuid
from datetime import datetime, timedelta, timezone

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from gtreinamento.catalog.models import Trilha
from gtreinamento.config import settings
from gtreinamento.provas.models import (
    CollectiveProofToken,
    ModoAplicacao,
    Opcao,
    Prova,
    ProvaResultado,
    ProvaSubmissao,
    Questao,
    ResultadoStatus,
)
from gtreinamento.provas.qr_utils import build_qr_image_url, build_redirect_url, generate_token
from gtreinamento.provas.schemas import (
    CollectiveSubmit,
    GabaritoItem,
    PlayerSubmit,
    ProofQrCreate,
    ProvaCreate,
    ProvaRef,
    RespostaIn,
    SubmissionResult,
)
from gtreinamento.turmas.models import Turma
from gtreinamento.utils.cpf import is_valid_cpf_length, normalize_cpf

logger = logging.getLogger(__name__)


class TokenExpiredError(ValueError):
    pass


class TokenScopeError(ValueError):
    pass


class IdempotencyConflictError(ValueError):
    pass


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _aware(value: datetime) -> datetime:
    # SQLite drops tzinfo on round-trip
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


# --- Authoring ---


async def create_prova(
    db: AsyncSession, trilha_id: uuid.UUID, data: ProvaCreate, criado_por: str | None = None
) -> Prova:
    """Store a new version of the trilha's prova; earlier versions stay for history."""
    if not await db.get(Trilha, trilha_id):
        raise ValueError("Trilha não encontrada")
    current = await db.execute(select(func.max(Prova.versao)).where(Prova.trilha_id == trilha_id))
    versao = (current.scalar() or 0) + 1

    prova = Prova(
        trilha_id=trilha_id,
        versao=versao,
        modo_aplicacao=data.modo_aplicacao,
        titulo=data.titulo,
        nota_total=data.nota_total,
        media=data.media if data.media is not None else settings.prova_media_padrao,
        criado_por=criado_por,
    )
    if prova.media > prova.nota_total:
        raise ValueError("A média não pode ser maior que a nota total")
    for q_idx, q in enumerate(data.questoes):
        questao = Questao(ordem=q_idx + 1, enunciado=q.enunciado, peso=q.peso)
        questao.opcoes = [
            Opcao(ordem=o_idx + 1, texto=o.texto, correta=o.correta) for o_idx, o in enumerate(q.opcoes)
        ]
        prova.questoes.append(questao)
    db.add(prova)
    await db.commit()
    logger.info("Prova criada: trilha=%s versao=%d modo=%s", trilha_id, versao, prova.modo_aplicacao.value)
    return await get_latest_prova(db, trilha_id)


async def get_latest_prova(db: AsyncSession, trilha_id: uuid.UUID) -> Prova | None:
    result = await db.execute(
        select(Prova)
        .where(Prova.trilha_id == trilha_id)
        .options(selectinload(Prova.questoes).selectinload(Questao.opcoes))
        .order_by(Prova.versao.desc())
        .limit(1)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def get_latest_provas(db: AsyncSession, trilha_ids: list[uuid.UUID]) -> list[Prova]:
    provas = []
    for trilha_id in trilha_ids:
        prova = await get_latest_prova(db, trilha_id)
        if prova:
            provas.append(prova)
    return provas


# --- Grading ---


def grade_prova(prova: Prova, respostas: list[RespostaIn]) -> SubmissionResult:
    """Weighted grading on the prova's scale; every question must be answered."""
    marked = {r.questao_id: r.opcao_id for r in respostas}
    missing = [q for q in prova.questoes if q.id not in marked]
    if missing:
        raise ValueError(f"Responda todas as questões ({len(missing)} sem resposta)")

    total_weight = 0.0
    earned_weight = 0.0
    acertos = 0
    gabarito: list[GabaritoItem] = []

    for questao in prova.questoes:
        options = {o.id: o for o in questao.opcoes}
        marked_id = marked[questao.id]
        if marked_id not in options:
            raise ValueError("Opção não pertence à questão informada")
        correct = next(o for o in questao.opcoes if o.correta)
        acertou = marked_id == correct.id

        total_weight += questao.peso
        if acertou:
            earned_weight += questao.peso
            acertos += 1

        gabarito.append(
            GabaritoItem(
                questao_id=questao.id,
                enunciado=questao.enunciado,
                peso=questao.peso,
                opcao_marcada_id=marked_id,
                opcao_marcada_texto=options[marked_id].texto,
                opcao_correta_id=correct.id,
                opcao_correta_texto=correct.texto,
                acertou=acertou,
            )
        )

    nota = round(prova.nota_total * earned_weight / total_weight, 2) if total_weight > 0 else 0.0
    aprovado = nota >= prova.media
    return SubmissionResult(
        nota=nota,
        media=prova.media,
        status=ResultadoStatus.APROVADO if aprovado else ResultadoStatus.REPROVADO,
        acertos=acertos,
        total_questoes=len(prova.questoes),
        aprovado=aprovado,
        gabarito=gabarito,
        prova=ProvaRef(id=prova.id, versao=prova.versao, titulo=prova.titulo),
    )


async def find_submission(
    db: AsyncSession,
    idempotency_key: str | None,
    prova_id: uuid.UUID,
    enviado_por: str | None,
) -> ProvaSubmissao | None:
    """Previous submission stored under this key by the same sender for the same prova.

    Raises IdempotencyConflictError when the key was used for another prova or sender.
    """
    if not idempotency_key:
        return None
    result = await db.execute(
        select(ProvaSubmissao).where(ProvaSubmissao.idempotency_key == idempotency_key)
    )
    submissao = result.scalar_one_or_none()
    if submissao and (submissao.prova_id != prova_id or submissao.enviado_por != enviado_por):
        raise IdempotencyConflictError("Idempotency-Key já utilizada em outro envio")
    return submissao


async def _store_submission(
    db: AsyncSession,
    *,
    prova: Prova,
    payload: dict,
    cpfs: list[str],
    respostas: list[RespostaIn],
    idempotency_key: str | None,
    turma_id: uuid.UUID | None,
    enviado_por: str | None,
    origem: str,
    realizado_em: datetime,
) -> ProvaSubmissao:
    submissao = ProvaSubmissao(
        idempotency_key=idempotency_key,
        prova_id=prova.id,
        turma_id=turma_id,
        enviado_por=enviado_por,
        resposta=payload,
    )
    db.add(submissao)
    await db.flush()
    answers = [{"questao_id": str(r.questao_id), "opcao_id": str(r.opcao_id)} for r in respostas]
    for cpf in cpfs:
        db.add(
            ProvaResultado(
                submissao_id=submissao.id,
                cpf=cpf,
                prova_id=prova.id,
                prova_versao=prova.versao,
                trilha_id=prova.trilha_id,
                nota=payload["nota"],
                status=ResultadoStatus(payload["status"]),
                acertos=payload["acertos"],
                total_questoes=payload["total_questoes"],
                respostas=answers,
                turma_id=turma_id,
                origem=origem,
                dt_realizacao=realizado_em,
            )
        )
    try:
        await db.commit()
    except IntegrityError:
        # Same Idempotency-Key committed by a concurrent request
        await db.rollback()
        existing = await find_submission(db, idempotency_key, prova.id, enviado_por)
        if existing is None:
            raise
        return existing
    return submissao


async def submit_player(
    db: AsyncSession,
    prova: Prova,
    data: PlayerSubmit,
    idempotency_key: str | None = None,
) -> dict:
    existing = await find_submission(db, idempotency_key, prova.id, data.cpf)
    if existing:
        return existing.resposta

    result = grade_prova(prova, data.respostas)
    payload = result.model_dump(mode="json")
    submissao = await _store_submission(
        db,
        prova=prova,
        payload=payload,
        cpfs=[data.cpf],
        respostas=data.respostas,
        idempotency_key=idempotency_key,
        turma_id=None,
        enviado_por=data.cpf,
        origem="individual",
        realizado_em=_utcnow(),
    )
    logger.info(
        "Prova individual corrigida: trilha=%s cpf=%s*** nota=%.2f status=%s",
        prova.trilha_id,
        data.cpf[:3],
        result.nota,
        result.status.value,
    )
    return submissao.resposta


async def submit_collective(
    db: AsyncSession,
    prova: Prova,
    data: CollectiveSubmit,
    enviado_por: str,
    idempotency_key: str | None = None,
) -> dict:
    """Grade one shared answer set and record the same result for every participant."""
    existing = await find_submission(db, idempotency_key, prova.id, enviado_por)
    if existing:
        return existing.resposta

    if data.turma_id and not await db.get(Turma, data.turma_id):
        raise ValueError("Turma não encontrada")

    cpfs = []
    for raw in data.users:
        cpf = normalize_cpf(raw.get("CPF") or raw.get("cpf"))
        if is_valid_cpf_length(cpf) and cpf not in cpfs:
            cpfs.append(cpf)
    if not cpfs:
        raise ValueError("Nenhum participante com CPF válido")

    result = grade_prova(prova, data.respostas)
    payload = result.model_dump(mode="json")
    payload.update(
        usuarios_avaliados=len(cpfs),
        tentativas_registradas=len(cpfs),
        aprovacoes_registradas=len(cpfs) if result.aprovado else 0,
    )
    submissao = await _store_submission(
        db,
        prova=prova,
        payload=payload,
        cpfs=cpfs,
        respostas=data.respostas,
        idempotency_key=idempotency_key,
        turma_id=data.turma_id,
        enviado_por=enviado_por,
        origem=data.origem,
        realizado_em=data.concluido_em or _utcnow(),
    )
    logger.info(
        "Prova coletiva corrigida: trilha=%s turma=%s participantes=%d status=%s",
        prova.trilha_id,
        data.turma_id,
        len(cpfs),
        result.status.value,
    )
    return submissao.resposta


async def get_latest_result(db: AsyncSession, trilha_id: uuid.UUID, cpf: str) -> ProvaResultado | None:
    result = await db.execute(
        select(ProvaResultado)
        .where(ProvaResultado.trilha_id == trilha_id, ProvaResultado.cpf == normalize_cpf(cpf))
        .order_by(ProvaResultado.dt_realizacao.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


# --- Collective proof tokens ---


async def create_proof_token(
    db: AsyncSession, data: ProofQrCreate, criado_por: str
) -> tuple[CollectiveProofToken, list[Prova]]:
    cpfs = []
    for raw in data.users:
        cpf = normalize_cpf(raw.get("CPF") or raw.get("cpf"))
        if is_valid_cpf_length(cpf) and cpf not in cpfs:
            cpfs.append(cpf)
    if not cpfs:
        raise ValueError("Nenhum participante com CPF válido")
    if data.turma_id and not await db.get(Turma, data.turma_id):
        raise ValueError("Turma não encontrada")

    trilha_ids = list(dict.fromkeys(data.trilha_ids))
    provas = await get_latest_provas(db, trilha_ids)
    individual = [p for p in provas if p.modo_aplicacao == ModoAplicacao.INDIVIDUAL]
    if len(individual) != len(trilha_ids):
        raise ValueError("Todas as trilhas devem possuir prova individual")

    proof = CollectiveProofToken(
        token=generate_token(),
        turma_id=data.turma_id,
        trilha_ids=[str(t) for t in trilha_ids],
        cpfs=cpfs,
        criado_por=criado_por,
        expires_at=_utcnow() + timedelta(minutes=settings.collective_proof_token_ttl_minutes),
    )
    db.add(proof)
    await db.commit()
    logger.info(
        "Token de prova individual gerado: turma=%s trilhas=%d participantes=%d",
        data.turma_id,
        len(trilha_ids),
        len(cpfs),
    )
    return proof, individual


def proof_links(proof: CollectiveProofToken) -> tuple[str, str]:
    return build_redirect_url(proof.token), build_qr_image_url(proof.token)


async def resolve_proof_token(
    db: AsyncSession, token: str, cpf: str | None = None
) -> CollectiveProofToken:
    proof = await db.get(CollectiveProofToken, token.strip())
    if proof is None:
        raise LookupError("Token de prova não encontrado")
    if _aware(proof.expires_at) <= _utcnow():
        raise TokenExpiredError("Token de prova expirado")
    if cpf is not None and normalize_cpf(cpf) not in proof.cpfs:
        raise TokenScopeError("CPF não autorizado para este token")
    return proof


def token_covers(proof: CollectiveProofToken, trilha_id: uuid.UUID, cpf: str | None) -> bool:
    if str(trilha_id) not in proof.trilha_ids:
        return False
    return cpf is None or normalize_cpf(cpf) in proof.cpfs
