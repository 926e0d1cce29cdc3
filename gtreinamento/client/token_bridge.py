"""Hand-off of individual provas from a collective session to each employee.

The instructor generates a proof token scoped to some trilhas and CPFs; the
employee opens the QR link on their own device, where the token is read from
the URL, kept locally and resolved into the provas it authorizes.
"""

import logging
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

import httpx

from gtreinamento.client.api import PortalApiClient
from gtreinamento.client.errors import ApiError, ValidationError
from gtreinamento.client.exam import ExamEngine, ExamMode
from gtreinamento.client.storage import PROOF_TOKEN_KEY, LocalStore
from gtreinamento.utils.cpf import is_valid_cpf_length, normalize_cpf

logger = logging.getLogger(__name__)

TOKEN_QUERY_PARAM = "coletivoProvaToken"


class ProofTokenBridge:
    def __init__(self, api: PortalApiClient, store: LocalStore | None = None):
        self.api = api
        self.store = store or LocalStore()

    # --- local copy ---

    @property
    def stored_token(self) -> str | None:
        token = self.store.get(PROOF_TOKEN_KEY)
        return token.strip() if isinstance(token, str) and token.strip() else None

    def save(self, token: str | None) -> None:
        normalized = (token or "").strip()
        if not normalized:
            self.store.delete(PROOF_TOKEN_KEY)
            return
        self.store.set(PROOF_TOKEN_KEY, normalized)

    def clear(self) -> None:
        self.store.delete(PROOF_TOKEN_KEY)

    def consume_from_url(self, url: str) -> tuple[str | None, str]:
        """Take the token out of ``url``; returns (token, url without it)."""
        parts = urlsplit(url)
        params = parse_qsl(parts.query, keep_blank_values=True)
        token = next((v.strip() for k, v in params if k == TOKEN_QUERY_PARAM and v.strip()), None)
        if token is None:
            return None, url
        self.save(token)
        remaining = [(k, v) for k, v in params if k != TOKEN_QUERY_PARAM]
        return token, urlunsplit(parts._replace(query=urlencode(remaining)))

    # --- server ---

    async def generate(
        self,
        participants: list[dict[str, str]],
        trilha_ids: list[str],
        turma_id: str | None = None,
    ) -> dict:
        """Token for exactly these trilhas and the participants with a valid CPF."""
        users = [p for p in participants if is_valid_cpf_length(normalize_cpf(p.get("CPF") or p.get("cpf")))]
        if not users:
            raise ValidationError("Nenhum colaborador com CPF válido para gerar o QR Code.")
        if not trilha_ids:
            raise ValidationError("Nenhuma trilha com prova individual.")
        proof = await self.api.generate_proof_qr(users, trilha_ids, turma_id)
        logger.info(
            "QR de prova individual gerado: usuarios=%s trilhas=%d expira=%s",
            proof.get("total_usuarios"),
            len(trilha_ids),
            proof.get("expires_at"),
        )
        return proof

    async def resolve(self, token: str | None = None, cpf: str | None = None) -> dict:
        """Resolve a token (or the stored one). Any failure drops the local copy."""
        token = (token or "").strip() or self.stored_token
        if not token:
            raise ValidationError("Nenhum token de prova informado.")
        cpf = normalize_cpf(cpf) if cpf else None
        try:
            resolved = await self.api.resolve_proof_token(token, cpf)
        except (ApiError, httpx.HTTPError) as exc:
            logger.info("Falha ao validar token de prova: %s", exc)
            self.clear()
            raise
        self.save(token)
        return resolved


class IndividualExamFlow:
    """Individual provas authorized by a resolved proof token, for one employee."""

    def __init__(self, api: PortalApiClient, bridge: ProofTokenBridge, resolved: dict, cpf: str):
        cpf = normalize_cpf(cpf)
        if cpf not in resolved.get("cpfs", []):
            raise ValidationError("CPF não autorizado por este QR Code.")
        self.bridge = bridge
        self.token = resolved["token"]
        self.cpf = cpf
        self.engines: dict[str, ExamEngine] = {
            str(trilha_id): ExamEngine(
                api, str(trilha_id), mode=ExamMode.INDIVIDUAL, cpf=cpf, token=self.token
            )
            for trilha_id in resolved.get("trilhas", [])
        }
        self.done = False

    @property
    def pending(self) -> list[str]:
        return [t for t, engine in self.engines.items() if engine.result is None]

    async def load_all(self) -> None:
        for engine in self.engines.values():
            if engine.prova is None:
                await engine.load()

    async def submit(self, trilha_id: str, user: dict[str, str] | None = None) -> dict:
        engine = self.engines.get(str(trilha_id))
        if engine is None:
            raise ValidationError("Trilha não autorizada por este QR Code.")
        result = await engine.submit(user=user)
        if not self.pending:
            self.bridge.clear()
            self.done = True
        return result
