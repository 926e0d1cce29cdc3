"""Facial verification of a collective session's participants.

Descriptor extraction is done by a :class:`FaceCapturer` (camera plus face
model); the portal only compares descriptors and stores confirmed samples.
A server match is a suggestion: nothing is persisted until the instructor
confirms it or picks the participant manually.
"""

import enum
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Protocol

from gtreinamento.client.api import PortalApiClient
from gtreinamento.client.errors import (
    BusyError,
    CameraUnavailableError,
    NoFaceDetectedError,
    ValidationError,
)
from gtreinamento.utils.cpf import is_valid_cpf_length, normalize_cpf

logger = logging.getLogger(__name__)

DESCRIPTOR_LENGTH = 128
ORIGEM_COLETIVO = "treinamento-coletivo"


@dataclass
class FaceCapture:
    descriptor: list[float]
    # JPEG snapshot as a data URL
    photo: str
    captured_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class FaceCapturer(Protocol):
    async def start(self) -> None:
        """Open the camera. Raises CameraUnavailableError."""

    async def capture(self) -> FaceCapture:
        """Grab a frame. Raises NoFaceDetectedError when no face is in it."""

    async def stop(self) -> None: ...


class FacialStatus(str, enum.Enum):
    INITIALIZING = "initializing"
    READY = "ready"
    CAPTURING = "capturing"
    MATCHED = "matched"
    UNMATCHED = "unmatched"
    CONFIRMING = "confirming"
    SAVED = "saved"
    CLOSED = "closed"


@dataclass
class FacialCaptureResult:
    cpf: str
    nome: str
    captured_at: datetime
    foto_base64: str | None
    match: dict | None = None


class FacialVerificationSession:
    def __init__(
        self,
        api: PortalApiClient,
        capturer: FaceCapturer,
        participants: list[dict],
        *,
        origem: str = ORIGEM_COLETIVO,
        threshold: float | None = None,
        descriptor_length: int = DESCRIPTOR_LENGTH,
    ):
        """``participants`` are roster entries with ``cpf``, ``nome`` and ``raw``."""
        self.api = api
        self.capturer = capturer
        self.origem = origem
        self.threshold = threshold
        self.descriptor_length = descriptor_length
        self.roster: dict[str, dict] = {}
        for p in participants:
            cpf = normalize_cpf(p.get("cpf"))
            if is_valid_cpf_length(cpf):
                self.roster[cpf] = p
        self.status = FacialStatus.INITIALIZING
        self.message = "Aguardando abertura da coleta facial."
        self.pending: FaceCapture | None = None
        self.match: dict | None = None
        self.selected_cpf: str | None = None
        self.validated: dict[str, FacialCaptureResult] = {}
        self._busy = False

    # --- roster ---

    @property
    def pending_cpfs(self) -> list[str]:
        return [cpf for cpf in self.roster if cpf not in self.validated]

    @property
    def all_validated(self) -> bool:
        return bool(self.roster) and not self.pending_cpfs

    @property
    def matched_participant(self) -> dict | None:
        if not self.match:
            return None
        return self.roster.get(self.match.get("cpf"))

    def _guard(self) -> None:
        if self._busy:
            raise BusyError("Aguarde a captura em andamento.")
        if self.status == FacialStatus.CLOSED:
            raise ValidationError("Coleta facial encerrada.")

    # --- camera ---

    async def open(self) -> None:
        self.status = FacialStatus.INITIALIZING
        try:
            await self.capturer.start()
        except CameraUnavailableError as exc:
            self.status = FacialStatus.CLOSED
            self.message = str(exc) or "Câmera indisponível."
            raise
        self.status = FacialStatus.READY
        self.message = "Câmera pronta. Posicione o colaborador e capture."

    async def close(self) -> None:
        if self.status != FacialStatus.CLOSED:
            await self.capturer.stop()
        self.status = FacialStatus.CLOSED

    async def capture(self) -> dict:
        """Capture a face and ask the server who it looks like."""
        self._guard()
        if self.status in (FacialStatus.INITIALIZING, FacialStatus.CONFIRMING):
            raise ValidationError("Câmera ainda não está pronta.")

        self._busy = True
        self.status = FacialStatus.CAPTURING
        try:
            try:
                capture = await self.capturer.capture()
            except NoFaceDetectedError:
                self.status = FacialStatus.READY
                self.message = "Nenhum rosto detectado. Reposicione e tente novamente."
                raise
            except CameraUnavailableError as exc:
                self.message = str(exc) or "Câmera indisponível."
                await self.close()
                raise

            if len(capture.descriptor) != self.descriptor_length:
                self.status = FacialStatus.READY
                self.message = "Não foi possível extrair o descritor facial."
                raise ValidationError(self.message)

            try:
                response = await self.api.match_face(capture.descriptor, self.threshold)
            except Exception:
                self.status = FacialStatus.READY
                self.message = "Falha ao comparar a face capturada."
                raise
        finally:
            self._busy = False

        self.pending = capture
        self.match = response.get("match")
        matched = self.matched_participant
        pending = self.pending_cpfs
        self.selected_cpf = (
            matched["cpf"] if matched else (pending[0] if pending else next(iter(self.roster), None))
        )
        if self.match:
            self.status = FacialStatus.MATCHED
            self.message = f"Rosto identificado como {self.match.get('nome') or self.match.get('cpf')}."
        else:
            self.status = FacialStatus.UNMATCHED
            self.message = "Rosto capturado. Selecione o colaborador e confirme."
        return response

    # --- confirmation ---

    async def confirm_match(self) -> FacialCaptureResult | None:
        """Accept the server's suggestion for the matched roster participant."""
        self._guard()
        if self.status != FacialStatus.MATCHED:
            raise ValidationError("Nenhuma correspondência para confirmar.")
        matched = self.matched_participant
        if matched is None:
            self.status = FacialStatus.UNMATCHED
            self.message = "Rosto encontrado fora da lista selecionada. Vincule manualmente."
            return None
        return await self._persist(normalize_cpf(matched["cpf"]))

    def reject_match(self) -> None:
        self._guard()
        if self.status == FacialStatus.MATCHED:
            self.status = FacialStatus.UNMATCHED
            self.message = "Confirme manualmente o colaborador correspondente."

    async def confirm(self, cpf: str | None = None) -> FacialCaptureResult:
        """Link the pending capture to a roster participant chosen by the instructor."""
        self._guard()
        target = normalize_cpf(cpf) if cpf else self.selected_cpf
        if not target:
            raise ValidationError("Selecione o colaborador correspondente.")
        return await self._persist(target)

    async def _persist(self, cpf: str) -> FacialCaptureResult:
        participant = self.roster.get(cpf)
        if participant is None:
            raise ValidationError("Colaborador selecionado inválido.")
        if self.pending is None:
            raise ValidationError("Capture um rosto antes de confirmar.")

        previous = self.status
        self._busy = True
        self.status = FacialStatus.CONFIRMING
        try:
            await self.api.enroll_face(
                cpf,
                self.pending.descriptor,
                foto_base64=self.pending.photo,
                origem=self.origem,
                user=participant.get("raw"),
            )
        except Exception as exc:
            self.status = previous
            self.message = str(exc) or "Falha ao salvar facial."
            raise
        finally:
            self._busy = False

        nome = participant.get("nome") or cpf
        result = FacialCaptureResult(
            cpf=cpf,
            nome=nome,
            captured_at=self.pending.captured_at,
            foto_base64=self.pending.photo,
            match=self.match,
        )
        self.validated[cpf] = result
        self.pending = None
        self.match = None
        self.selected_cpf = None
        self.status = FacialStatus.SAVED
        self.message = f"Facial confirmada para {nome}."
        logger.info("Facial confirmada: cpf=%s", cpf)
        return result

    def complete(self) -> list[FacialCaptureResult]:
        if not self.all_validated:
            self.message = "Confirme a facial de todos os colaboradores antes de finalizar."
            raise ValidationError(self.message)
        return sorted(self.validated.values(), key=lambda r: r.nome.lower())
