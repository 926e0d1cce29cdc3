"""Objective exam player used by employees and by the collective workflow."""

import enum
import logging
import uuid

from gtreinamento.client.api import PortalApiClient
from gtreinamento.client.errors import BusyError, ValidationError

logger = logging.getLogger(__name__)


class ExamStatus(str, enum.Enum):
    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    ANSWERED = "answered"
    SUBMITTED = "submitted"


class ExamMode(str, enum.Enum):
    COLLECTIVE = "coletiva"
    INDIVIDUAL = "individual"


class ExamEngine:
    """One attempt at one trilha's prova.

    In collective mode a single answer set is graded for every participant;
    in individual mode the attempt belongs to ``cpf`` and may be authorized
    by a proof ``token``.
    """

    def __init__(
        self,
        api: PortalApiClient,
        trilha_id: str,
        *,
        mode: ExamMode = ExamMode.INDIVIDUAL,
        cpf: str | None = None,
        token: str | None = None,
    ):
        self.api = api
        self.trilha_id = str(trilha_id)
        self.mode = mode
        self.cpf = cpf
        self.token = token
        self.status = ExamStatus.IDLE
        self.prova: dict | None = None
        self.answers: dict[str, str] = {}
        self.result: dict | None = None
        self._attempt_key = uuid.uuid4().hex
        self._submitting = False

    @property
    def modo_aplicacao(self) -> str | None:
        return self.prova.get("modo_aplicacao") if self.prova else None

    @property
    def questoes(self) -> list[dict]:
        return self.prova.get("questoes", []) if self.prova else []

    async def load(self) -> dict:
        """Fetch the latest prova. ``NotFoundError`` means the trilha has none."""
        self.status = ExamStatus.LOADING
        try:
            self.prova = await self.api.get_prova(self.trilha_id, cpf=self.cpf, token=self.token)
        except Exception:
            self.status = ExamStatus.IDLE
            raise
        self.answers = {}
        self.result = None
        self.status = ExamStatus.READY
        return self.prova

    def answer(self, questao_id: str, opcao_id: str) -> None:
        if self.result is not None:
            raise ValidationError("Prova já enviada. Inicie uma nova tentativa para responder novamente.")
        if self.prova is None:
            raise ValidationError("Prova não carregada.")
        questao = next((q for q in self.questoes if str(q["id"]) == str(questao_id)), None)
        if questao is None:
            raise ValidationError("Questão não pertence a esta prova.")
        if not any(str(o["id"]) == str(opcao_id) for o in questao["opcoes"]):
            raise ValidationError("Opção não pertence à questão.")
        self.answers[str(questao_id)] = str(opcao_id)
        self.status = ExamStatus.ANSWERED

    def unanswered(self) -> list[str]:
        return [str(q["id"]) for q in self.questoes if str(q["id"]) not in self.answers]

    @property
    def is_complete(self) -> bool:
        return self.prova is not None and not self.unanswered()

    @property
    def aprovado(self) -> bool:
        return bool(self.result and self.result.get("aprovado"))

    async def submit(
        self,
        *,
        users: list[dict[str, str]] | None = None,
        turma_id: str | None = None,
        user: dict[str, str] | None = None,
    ) -> dict:
        if self._submitting:
            raise BusyError("Envio da prova em andamento.")
        if self.prova is None:
            raise ValidationError("Prova não carregada.")
        if self.result is not None:
            raise ValidationError("Prova já enviada.")
        if self.unanswered():
            raise ValidationError("Responda todas as questões antes de enviar.")

        respostas = [{"questao_id": q, "opcao_id": o} for q, o in self.answers.items()]
        self._submitting = True
        try:
            if self.mode == ExamMode.COLLECTIVE:
                if not users:
                    raise ValidationError("Selecione ao menos um colaborador.")
                result = await self.api.submit_collective_prova(
                    self.trilha_id,
                    users,
                    respostas,
                    turma_id=turma_id,
                    idempotency_key=self._attempt_key,
                )
            else:
                if not self.cpf:
                    raise ValidationError("Informe o CPF do colaborador.")
                result = await self.api.submit_prova(
                    self.trilha_id,
                    self.cpf,
                    respostas,
                    token=self.token,
                    user=user,
                    idempotency_key=self._attempt_key,
                )
        finally:
            self._submitting = False

        self.result = result
        self.status = ExamStatus.SUBMITTED
        logger.info(
            "Prova enviada: trilha=%s modo=%s nota=%s aprovado=%s",
            self.trilha_id,
            self.mode.value,
            result.get("nota"),
            result.get("aprovado"),
        )
        return result

    def retry(self) -> None:
        """Start a fresh attempt: answers and result are discarded together."""
        if self._submitting:
            raise BusyError("Envio da prova em andamento.")
        self.answers = {}
        self.result = None
        self._attempt_key = uuid.uuid4().hex
        self.status = ExamStatus.READY if self.prova is not None else ExamStatus.IDLE


def answer_styling(prova: dict, result: dict | None) -> dict[str, dict[str, str]]:
    """Per question, map each option id to ``correct``, ``incorrect`` or ``neutral``."""
    gabarito = {str(g["questao_id"]): g for g in (result or {}).get("gabarito", [])}
    styling: dict[str, dict[str, str]] = {}
    for questao in prova.get("questoes", []):
        qid = str(questao["id"])
        item = gabarito.get(qid)
        options = {}
        for opcao in questao["opcoes"]:
            oid = str(opcao["id"])
            if item is None:
                options[oid] = "neutral"
            elif oid == str(item["opcao_correta_id"]):
                options[oid] = "correct"
            elif oid == str(item.get("opcao_marcada_id")):
                options[oid] = "incorrect"
            else:
                options[oid] = "neutral"
        styling[qid] = options
    return styling
