"""Collective (in-person) training workflow run by an instructor.

A session moves a group of participants through::

    setup -> selection -> ordering -> playback -> exam -> evidence
          -> individual_qr -> facial -> efficacy -> closed

Phases after playback are skipped when the selected content does not need
them. The next phase is always derived from the current data (pending
coletiva provas, individual provas without a QR, procedimento/norma videos,
trilhas requiring efficacy) and never from a plan fixed at start.

Every server failure is stored in ``state.error`` and re-raised; the phase
never advances on failure. Only one call may be in flight at a time.
"""

import asyncio
import contextlib
import enum
import functools
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone

import httpx

from gtreinamento.client.api import PortalApiClient
from gtreinamento.client.errors import (
    ApiError,
    BusyError,
    ClientError,
    NotFoundError,
    PhaseError,
    ValidationError,
)
from gtreinamento.client.exam import ExamEngine, ExamMode
from gtreinamento.client.facial import FaceCapturer, FacialVerificationSession
from gtreinamento.client.token_bridge import ProofTokenBridge
from gtreinamento.utils.cpf import is_valid_cpf_length, normalize_cpf

logger = logging.getLogger(__name__)


class Phase(str, enum.Enum):
    SETUP = "setup"
    SELECTION = "selection"
    ORDERING = "ordering"
    PLAYBACK = "playback"
    EXAM = "exam"
    EVIDENCE = "evidence"
    INDIVIDUAL_QR = "individual_qr"
    FACIAL = "facial"
    EFFICACY = "efficacy"
    CLOSED = "closed"


@dataclass
class Participant:
    cpf: str
    nome: str
    funcao: str | None = None
    departamento: str | None = None
    raw: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_employee(cls, data: dict) -> "Participant":
        cpf = normalize_cpf(data.get("cpf") or (data.get("raw") or {}).get("CPF"))
        nome = data.get("nome") or ""
        raw = dict(data.get("raw") or {})
        raw.setdefault("CPF", cpf)
        raw.setdefault("NOME", nome)
        return cls(
            cpf=cpf,
            nome=nome,
            funcao=data.get("funcao"),
            departamento=data.get("departamento"),
            raw=raw,
        )

    @property
    def has_valid_cpf(self) -> bool:
        return is_valid_cpf_length(self.cpf)


@dataclass
class Material:
    id: str
    trilha_id: str
    versao: int = 1
    titulo: str | None = None
    path: str | None = None
    tipo: str = "video"
    procedimento_id: str | None = None
    norma_id: str | None = None

    @classmethod
    def from_video(cls, data: dict) -> "Material":
        return cls(
            id=str(data["id"]),
            trilha_id=str(data["trilha_id"]),
            versao=data.get("versao") or 1,
            titulo=data.get("titulo"),
            path=data.get("path_video") or data.get("source_url"),
            procedimento_id=data.get("procedimento_id"),
            norma_id=data.get("norma_id"),
        )

    @property
    def requires_facial_validation(self) -> bool:
        return bool(self.procedimento_id or self.norma_id)


@dataclass
class OrchestratorState:
    phase: Phase = Phase.SETUP
    error: str | None = None

    # setup
    obras: list[dict] = field(default_factory=list)
    obra: dict | None = None
    employees: list[Participant] = field(default_factory=list)
    catalog: list[Material] = field(default_factory=list)
    trilhas: dict[str, dict] = field(default_factory=dict)
    modulos: dict[str, dict] = field(default_factory=dict)

    # selection and ordering
    selected_cpfs: list[str] = field(default_factory=list)
    selected_material_ids: list[str] = field(default_factory=list)
    queue: list[Material] = field(default_factory=list)

    # playback
    turma_id: str | None = None
    current_index: int = 0
    completed: dict[str, set[str]] = field(default_factory=dict)
    attendance_recorded: bool = False

    # exams
    exams_loaded: bool = False
    exams: list[ExamEngine] = field(default_factory=list)
    individual_trilhas: list[str] = field(default_factory=list)
    exams_finished: bool = False

    # evidence, proof QR, facial, efficacy
    evidence_submitted: bool = False
    proof: dict | None = None
    facial_session: FacialVerificationSession | None = None
    facial_done: bool = False
    efficacy_ratings: dict[str, int] = field(default_factory=dict)
    efficacy_done: bool = False


@dataclass
class SessionSummary:
    turma_id: str | None
    participantes: int
    materiais: int
    provas_coletivas: int
    proof: dict | None
    facial_validados: int
    avaliacoes_eficacia: int
    encerrado_em: datetime


def _exclusive(method):
    """Run the action as the single tracked in-flight task."""

    @functools.wraps(method)
    async def wrapper(self: "CollectiveTrainingOrchestrator", *args, **kwargs):
        self._ensure_idle()
        self.state.error = None
        task = asyncio.ensure_future(method(self, *args, **kwargs))
        self._inflight = task
        try:
            return await task
        except ClientError as exc:
            if self._inflight is task:
                self.state.error = getattr(exc, "message", None) or str(exc)
            raise
        except httpx.HTTPError as exc:
            if self._inflight is task:
                self.state.error = "Falha de comunicação com o servidor."
            logger.warning("Falha de rede no treinamento coletivo: %s", exc)
            raise
        finally:
            if self._inflight is task:
                self._inflight = None

    return wrapper


class CollectiveTrainingOrchestrator:
    def __init__(self, api: PortalApiClient, *, instructor_cpf: str | None = None):
        self.api = api
        self.instructor_cpf = instructor_cpf
        self.state = OrchestratorState()
        self.summary: SessionSummary | None = None
        self._inflight: asyncio.Task | None = None

    # ──────────────────────────────────────────────
    # Guards and derived data
    # ──────────────────────────────────────────────

    @property
    def busy(self) -> bool:
        return self._inflight is not None and not self._inflight.done()

    def _ensure_idle(self) -> None:
        if self.busy:
            raise BusyError("Aguarde a conclusão da operação em andamento.")

    def _require_phase(self, *phases: Phase) -> None:
        if self.state.phase not in phases:
            raise PhaseError(f"Ação indisponível na etapa atual ({self.state.phase.value}).")

    @property
    def participants(self) -> list[Participant]:
        by_cpf = {p.cpf: p for p in self.state.employees}
        return [by_cpf[cpf] for cpf in self.state.selected_cpfs if cpf in by_cpf]

    @property
    def valid_participants(self) -> list[Participant]:
        return [p for p in self.participants if p.has_valid_cpf]

    def _users_payload(self) -> list[dict[str, str]]:
        return [p.raw for p in self.valid_participants]

    @property
    def current_material(self) -> Material | None:
        if self.state.phase != Phase.PLAYBACK or self.state.current_index >= len(self.state.queue):
            return None
        return self.state.queue[self.state.current_index]

    @property
    def visited_trilha_ids(self) -> list[str]:
        seen: list[str] = []
        for material in self.state.queue[: self.state.current_index]:
            if material.trilha_id not in seen:
                seen.append(material.trilha_id)
        return seen

    @property
    def requires_facial_validation(self) -> bool:
        visited = self.state.queue[: self.state.current_index]
        return any(m.requires_facial_validation for m in visited) and bool(self.valid_participants)

    @property
    def requires_efficacy(self) -> bool:
        return any(
            self.state.trilhas.get(t, {}).get("eficacia_obrigatoria") for t in self.visited_trilha_ids
        )

    @property
    def current_exam(self) -> ExamEngine | None:
        return next((e for e in self.state.exams if e.result is None), None)

    def _derive_phase(self) -> Phase:
        s = self.state
        if s.current_index < len(s.queue) or not s.attendance_recorded or not s.exams_loaded:
            return Phase.PLAYBACK
        if s.exams and not s.exams_finished:
            return Phase.EXAM
        if not s.evidence_submitted:
            return Phase.EVIDENCE
        if s.individual_trilhas and s.proof is None:
            return Phase.INDIVIDUAL_QR
        if self.requires_facial_validation and not s.facial_done:
            return Phase.FACIAL
        if self.requires_efficacy and not s.efficacy_done:
            return Phase.EFFICACY
        return Phase.CLOSED

    def _advance(self) -> Phase:
        phase = self._derive_phase()
        if phase == Phase.CLOSED:
            self._close()
        else:
            self.state.phase = phase
        logger.info("Treinamento coletivo: etapa=%s turma=%s", phase.value, self.state.turma_id)
        return phase

    def _close(self) -> None:
        s = self.state
        self.summary = SessionSummary(
            turma_id=s.turma_id,
            participantes=len(self.participants),
            materiais=len(s.queue),
            provas_coletivas=len(s.exams),
            proof=s.proof,
            facial_validados=len(s.facial_session.validated) if s.facial_session else 0,
            avaliacoes_eficacia=len(s.efficacy_ratings),
            encerrado_em=datetime.now(timezone.utc),
        )
        self.state = OrchestratorState(phase=Phase.CLOSED)

    # ──────────────────────────────────────────────
    # 1. Setup
    # ──────────────────────────────────────────────

    @_exclusive
    async def load_locations(self) -> list[dict]:
        self._require_phase(Phase.SETUP, Phase.CLOSED)
        self.state.obras = await self.api.list_obras()
        return self.state.obras

    @_exclusive
    async def select_location(self, obra_codigo: str | None = None) -> Phase:
        """Load the participant pool of a site (``None`` = headquarters) and the catalog."""
        self._require_phase(Phase.SETUP, Phase.SELECTION, Phase.CLOSED)
        obra = None
        if obra_codigo is not None:
            obra = next((o for o in self.state.obras if o.get("codigo") == obra_codigo), None)
            obra = obra or {"codigo": obra_codigo, "nome": obra_codigo}

        employees = await self.api.list_employees(obra_codigo=obra_codigo)
        modulos = await self.api.list_modulos()
        trilhas = await self.api.list_trilhas()
        videos = await self.api.list_videos()

        obras = self.state.obras
        self.state = OrchestratorState(phase=Phase.SELECTION, obras=obras, obra=obra)
        self.summary = None
        self.state.employees = [Participant.from_employee(e) for e in employees]
        self.state.modulos = {str(m["id"]): m for m in modulos}
        self.state.trilhas = {str(t["id"]): t for t in trilhas}
        self.state.catalog = [Material.from_video(v) for v in videos]
        return self.state.phase

    # ──────────────────────────────────────────────
    # 2. Selection / 3. Ordering
    # ──────────────────────────────────────────────

    def search_participants(self, term: str = "") -> list[Participant]:
        term = term.strip().lower()
        digits = normalize_cpf(term)
        return [
            p
            for p in self.state.employees
            if not term
            or term in p.nome.lower()
            or (digits and digits in p.cpf)
            or term in (p.funcao or "").lower()
            or term in (p.departamento or "").lower()
        ]

    def search_materials(self, term: str = "") -> list[Material]:
        """Match by video title, trilha title or módulo name."""
        term = term.strip().lower()
        if not term:
            return list(self.state.catalog)
        found = []
        for material in self.state.catalog:
            trilha = self.state.trilhas.get(material.trilha_id, {})
            modulo = self.state.modulos.get(str(trilha.get("modulo_id")), {})
            haystack = " ".join(
                filter(None, [material.titulo, trilha.get("titulo"), modulo.get("nome")])
            ).lower()
            if term in haystack:
                found.append(material)
        return found

    def toggle_participant(self, cpf: str) -> bool:
        self._ensure_idle()
        self._require_phase(Phase.SELECTION)
        cpf = normalize_cpf(cpf)
        if cpf not in {p.cpf for p in self.state.employees}:
            raise ValidationError("Colaborador não encontrado.")
        if cpf in self.state.selected_cpfs:
            self.state.selected_cpfs.remove(cpf)
            return False
        self.state.selected_cpfs.append(cpf)
        return True

    def toggle_material(self, material_id: str) -> bool:
        self._ensure_idle()
        self._require_phase(Phase.SELECTION)
        material_id = str(material_id)
        if material_id not in {m.id for m in self.state.catalog}:
            raise ValidationError("Material não encontrado.")
        if material_id in self.state.selected_material_ids:
            self.state.selected_material_ids.remove(material_id)
            return False
        self.state.selected_material_ids.append(material_id)
        return True

    def confirm_selection(self) -> Phase:
        self._ensure_idle()
        self._require_phase(Phase.SELECTION)
        if not self.state.selected_cpfs:
            raise ValidationError("Selecione ao menos um colaborador.")
        if not self.state.selected_material_ids:
            raise ValidationError("Selecione ao menos um material.")
        by_id = {m.id: m for m in self.state.catalog}
        self.state.queue = [by_id[i] for i in self.state.selected_material_ids]
        self.state.error = None
        self.state.phase = Phase.ORDERING
        return self.state.phase

    def back_to_selection(self) -> Phase:
        self._ensure_idle()
        self._require_phase(Phase.ORDERING)
        self.state.phase = Phase.SELECTION
        return self.state.phase

    def move_material(self, material_id: str, delta: int) -> list[str]:
        self._ensure_idle()
        self._require_phase(Phase.ORDERING)
        queue = self.state.queue
        index = next((i for i, m in enumerate(queue) if m.id == str(material_id)), None)
        if index is None:
            raise ValidationError("Material não está na sequência.")
        target = max(0, min(len(queue) - 1, index + delta))
        queue.insert(target, queue.pop(index))
        return [m.id for m in queue]

    def reorder(self, material_ids: list[str]) -> list[str]:
        self._ensure_idle()
        self._require_phase(Phase.ORDERING)
        ids = [str(i) for i in material_ids]
        if sorted(ids) != sorted(m.id for m in self.state.queue):
            raise ValidationError("A nova ordem deve conter exatamente os materiais selecionados.")
        by_id = {m.id: m for m in self.state.queue}
        self.state.queue = [by_id[i] for i in ids]
        return ids

    # ──────────────────────────────────────────────
    # 4. Start / 5. Playback
    # ──────────────────────────────────────────────

    @_exclusive
    async def start_training(self) -> Phase:
        """Create the turma (once per run) and begin playback."""
        self._require_phase(Phase.ORDERING)
        if self.state.turma_id is None:
            try:
                turma = await self.api.create_turma(
                    self._users_payload(),
                    obra_local=(self.state.obra or {}).get("nome"),
                    iniciado_em=datetime.now(timezone.utc),
                )
            except ApiError as exc:
                raise PhaseError(f"Não foi possível iniciar o treinamento: {exc.message}") from exc
            self.state.turma_id = str(turma["id"])
        self.state.current_index = 0
        self.state.phase = Phase.PLAYBACK
        return self.state.phase

    @_exclusive
    async def material_ended(self) -> Phase:
        """Playback of the current material finished for the whole group."""
        self._require_phase(Phase.PLAYBACK)
        material = self.current_material
        if material is None:
            raise PhaseError("Todos os materiais já foram reproduzidos.")
        self.state.completed[material.id] = {p.cpf for p in self.valid_participants}
        self.state.current_index += 1
        if self.state.current_index < len(self.state.queue):
            return self.state.phase
        await self._finish_playback()
        return self._advance()

    @_exclusive
    async def retry_attendance(self) -> Phase:
        self._require_phase(Phase.PLAYBACK)
        if self.state.current_index < len(self.state.queue):
            raise PhaseError("Reprodução ainda em andamento.")
        await self._finish_playback()
        return self._advance()

    async def _finish_playback(self) -> None:
        s = self.state
        if not s.attendance_recorded:
            trainings = [
                {"tipo": m.tipo, "material_id": m.id, "material_versao": m.versao}
                for m in s.queue
                if s.completed.get(m.id)
            ]
            await self.api.record_collective_training(
                self._users_payload(),
                trainings,
                turma_id=s.turma_id,
                concluido_em=datetime.now(timezone.utc),
            )
            s.attendance_recorded = True
        if not s.exams_loaded:
            await self._load_exams()

    async def _load_exams(self) -> None:
        exams: list[ExamEngine] = []
        individual: list[str] = []
        for trilha_id in self.visited_trilha_ids:
            engine = ExamEngine(self.api, trilha_id, mode=ExamMode.COLLECTIVE)
            try:
                prova = await engine.load()
            except NotFoundError:
                continue
            except ApiError as exc:
                titulo = self.state.trilhas.get(trilha_id, {}).get("titulo", trilha_id)
                raise PhaseError(f"Falha ao carregar a prova da trilha {titulo}: {exc.message}") from exc
            if prova.get("modo_aplicacao") == ExamMode.INDIVIDUAL.value:
                individual.append(trilha_id)
            else:
                exams.append(engine)
        self.state.exams = exams
        self.state.individual_trilhas = individual
        self.state.exams_loaded = True

    # ──────────────────────────────────────────────
    # 6. Exam (coletiva provas, one trilha at a time)
    # ──────────────────────────────────────────────

    def answer(self, questao_id: str, opcao_id: str) -> None:
        self._ensure_idle()
        self._require_phase(Phase.EXAM)
        exam = self.current_exam
        if exam is None:
            raise ValidationError("Todas as provas já foram enviadas.")
        exam.answer(questao_id, opcao_id)

    @_exclusive
    async def submit_exam(self) -> dict:
        self._require_phase(Phase.EXAM)
        exam = self.current_exam
        if exam is None:
            raise ValidationError("Todas as provas já foram enviadas.")
        return await exam.submit(users=self._users_payload(), turma_id=self.state.turma_id)

    def retry_exam(self, trilha_id: str) -> None:
        """New attempt for one trilha; other trilhas keep their results."""
        self._ensure_idle()
        self._require_phase(Phase.EXAM)
        exam = next((e for e in self.state.exams if e.trilha_id == str(trilha_id)), None)
        if exam is None:
            raise ValidationError("Trilha sem prova coletiva.")
        exam.retry()

    def finish_exams(self) -> Phase:
        self._ensure_idle()
        self._require_phase(Phase.EXAM)
        if self.current_exam is not None:
            raise ValidationError("Envie todas as provas antes de continuar.")
        self.state.exams_finished = True
        return self._advance()

    # ──────────────────────────────────────────────
    # 7. Evidence / 8. Individual proof QR
    # ──────────────────────────────────────────────

    @_exclusive
    async def submit_evidence(
        self, hours: int, minutes: int, files: list[tuple[str, str, bytes]]
    ) -> Phase:
        """Upload session duration and photos; ``files`` are (name, content_type, bytes)."""
        self._require_phase(Phase.EVIDENCE)
        if hours < 0 or minutes < 0 or hours * 60 + minutes <= 0:
            raise ValidationError("Informe a duração do treinamento.")
        if not files:
            raise ValidationError("Envie ao menos uma foto de evidência.")
        await self.api.upload_turma_evidence(
            self.state.turma_id,
            hours,
            minutes,
            files,
            obra_local=(self.state.obra or {}).get("nome"),
            finalizado_em=datetime.now(timezone.utc),
        )
        self.state.evidence_submitted = True
        return self._advance()

    @_exclusive
    async def generate_proof_qr(self) -> dict:
        self._require_phase(Phase.INDIVIDUAL_QR)
        bridge = ProofTokenBridge(self.api)
        self.state.proof = await bridge.generate(
            self._users_payload(), self.state.individual_trilhas, self.state.turma_id
        )
        return self.state.proof

    def continue_after_qr(self) -> Phase:
        self._ensure_idle()
        self._require_phase(Phase.INDIVIDUAL_QR)
        if self.state.proof is None:
            raise ValidationError("Gere o QR Code das provas individuais.")
        return self._advance()

    # ──────────────────────────────────────────────
    # 9. Facial / 10. Efficacy
    # ──────────────────────────────────────────────

    @_exclusive
    async def open_facial_session(self, capturer: FaceCapturer) -> FacialVerificationSession:
        self._require_phase(Phase.FACIAL)
        if self.state.facial_session is not None:
            await self.state.facial_session.close()
        session = FacialVerificationSession(
            self.api,
            capturer,
            [{"cpf": p.cpf, "nome": p.nome, "raw": p.raw} for p in self.valid_participants],
            descriptor_length=self.api.settings.face_descriptor_length,
        )
        self.state.facial_session = session
        await session.open()
        return session

    @_exclusive
    async def complete_facial(self) -> Phase:
        """Attach the confirmed captures to the turma's completion records."""
        self._require_phase(Phase.FACIAL)
        session = self.state.facial_session
        if session is None:
            raise ValidationError("Abra a coleta facial.")
        results = session.complete()
        await self.api.attach_face_evidence(
            self.state.turma_id,
            [
                {"cpf": r.cpf, "foto_base64": r.foto_base64, "created_at": r.captured_at.isoformat()}
                for r in results
            ],
            obra_local=(self.state.obra or {}).get("nome"),
        )
        await session.close()
        self.state.facial_done = True
        return self._advance()

    def rate_efficacy(self, cpf: str, nivel: int) -> None:
        self._ensure_idle()
        self._require_phase(Phase.EFFICACY)
        cpf = normalize_cpf(cpf)
        if cpf not in {p.cpf for p in self.valid_participants}:
            raise ValidationError("Colaborador não participa desta turma.")
        if nivel not in range(1, 6):
            raise ValidationError("A avaliação deve estar entre 1 e 5.")
        self.state.efficacy_ratings[cpf] = nivel

    @_exclusive
    async def submit_efficacy(self) -> Phase:
        self._require_phase(Phase.EFFICACY)
        missing = [p.nome for p in self.valid_participants if p.cpf not in self.state.efficacy_ratings]
        if missing:
            raise ValidationError("Avalie a eficácia de todos os colaboradores: " + ", ".join(missing))
        await self.api.submit_turma_efficacy(
            self.state.turma_id,
            [{"cpf": cpf, "nivel": nivel} for cpf, nivel in self.state.efficacy_ratings.items()],
        )
        self.state.efficacy_done = True
        return self._advance()

    # ──────────────────────────────────────────────
    # Cancellation
    # ──────────────────────────────────────────────

    async def cancel(self) -> None:
        """Abort the in-flight call, if any, and discard the whole session."""
        task = self._inflight
        self._inflight = None
        if task is not None and not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        session = self.state.facial_session
        if session is not None:
            await session.close()
        self.state = OrchestratorState()
        self.summary = None
        logger.info("Treinamento coletivo cancelado")
