"""Async HTTP client for the portal API.

Every method returns the decoded JSON payload. Non-2xx responses raise
:class:`ApiError` (:class:`NotFoundError` for 404) carrying the server's
``detail`` message.
"""

import logging
import uuid
from datetime import datetime
from typing import Any

import httpx

from gtreinamento.client.errors import ApiError, NotFoundError
from gtreinamento.client.settings import LEGACY_API_PREFIX, ClientSettings

logger = logging.getLogger(__name__)


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _error_message(status: int, data: Any) -> str:
    if isinstance(data, dict):
        detail = data.get("detail")
        if isinstance(detail, str):
            return detail
        if isinstance(detail, list) and detail:
            # FastAPI validation errors
            first = detail[0]
            return f"Dados inválidos: {first.get('msg', first)}" if isinstance(first, dict) else str(first)
        for key in ("message", "error"):
            if isinstance(data.get(key), str):
                return data[key]
    return f"Erro na requisição ({status})"


class PortalApiClient:
    def __init__(
        self,
        settings: ClientSettings | None = None,
        *,
        token: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.settings = settings or ClientSettings()
        self.token = token
        self._http = httpx.AsyncClient(
            base_url=self.settings.api_base,
            timeout=self.settings.timeout_seconds,
            transport=transport,
        )

    async def __aenter__(self) -> "PortalApiClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    def resolve_path(self, path: str) -> str:
        """Apply the legacy ``/api`` prefix rule to a portal path."""
        if path.startswith("http") or not self.settings.strips_legacy_prefix:
            return path
        if path == LEGACY_API_PREFIX:
            return ""
        if path.startswith(LEGACY_API_PREFIX + "/"):
            return path[len(LEGACY_API_PREFIX):]
        return path

    async def request(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        params: dict | None = None,
        data: dict | None = None,
        files: list | None = None,
        headers: dict | None = None,
    ) -> Any:
        request_headers = dict(headers or {})
        if self.token:
            request_headers["Authorization"] = f"Bearer {self.token}"
        if params:
            params = {k: v for k, v in params.items() if v is not None}

        response = await self._http.request(
            method,
            self.resolve_path(path),
            json=json,
            params=params,
            data=data,
            files=files,
            headers=request_headers,
        )
        payload = None
        if response.content:
            try:
                payload = response.json()
            except ValueError:
                payload = None

        if response.is_error:
            message = _error_message(response.status_code, payload)
            logger.info("%s %s -> %d: %s", method, path, response.status_code, message)
            error_cls = NotFoundError if response.status_code == 404 else ApiError
            raise error_cls(response.status_code, message, payload)
        return payload

    # --- Auth ---

    async def login(self, cpf: str, password: str) -> dict:
        payload = await self.request("POST", "/api/auth/login", json={"cpf": cpf, "password": password})
        self.token = payload["access_token"]
        return payload

    async def first_access(self, cpf: str, dt_nascimento: str, password: str) -> dict:
        payload = await self.request(
            "POST",
            "/api/auth/first-access",
            json={"cpf": cpf, "dt_nascimento": dt_nascimento, "password": password},
        )
        self.token = payload["access_token"]
        return payload

    async def change_password(self, cpf: str, current_password: str, new_password: str) -> dict:
        return await self.request(
            "PUT",
            f"/api/auth/password/{cpf}",
            json={"current_password": current_password, "new_password": new_password},
        )

    async def logout(self) -> None:
        try:
            await self.request("POST", "/api/auth/logout")
        finally:
            self.token = None
            self._http.cookies.clear()

    async def me(self) -> dict:
        return await self.request("GET", "/api/auth/me")

    # --- Users ---

    async def list_obras(self) -> list[dict]:
        return await self.request("GET", "/api/users/employees/obras")

    async def list_employees(self, obra_codigo: str | None = None, obra: str | None = None) -> list[dict]:
        return await self.request(
            "GET", "/api/users/employees", params={"obra_codigo": obra_codigo, "obra": obra}
        )

    # --- Catalog ---

    async def list_modulos(self, cpf: str | None = None) -> list[dict]:
        return await self.request("GET", "/api/modules", params={"cpf": cpf})

    async def list_trilhas(self, cpf: str | None = None) -> list[dict]:
        return await self.request("GET", "/api/trilhas", params={"cpf": cpf})

    async def list_videos(self, cpf: str | None = None, trilha_id: str | None = None) -> list[dict]:
        return await self.request("GET", "/api/videos", params={"cpf": cpf, "trilha_id": trilha_id})

    async def list_pdfs(self, cpf: str | None = None, trilha_id: str | None = None) -> list[dict]:
        return await self.request("GET", "/api/pdfs", params={"cpf": cpf, "trilha_id": trilha_id})

    # --- User trainings ---

    async def complete_material(
        self,
        cpf: str,
        material_id: str,
        material_versao: int = 1,
        *,
        tipo: str = "video",
        user: dict[str, str] | None = None,
        concluido_em: datetime | None = None,
    ) -> dict:
        return await self.request(
            "POST",
            "/api/user-trainings/complete",
            json={
                "cpf": cpf,
                "material_id": str(material_id),
                "material_versao": material_versao,
                "tipo": tipo,
                "user": user,
                "concluido_em": _iso(concluido_em),
            },
        )

    async def list_video_completions(self, cpf: str) -> list[dict]:
        return await self.request("GET", f"/api/user-trainings/completions/videos/{cpf}")

    async def record_collective_training(
        self,
        users: list[dict[str, str]],
        trainings: list[dict],
        turma_id: str | None = None,
        concluido_em: datetime | None = None,
    ) -> dict:
        return await self.request(
            "POST",
            "/api/user-trainings",
            json={
                "users": users,
                "trainings": trainings,
                "turma_id": turma_id,
                "concluido_em": _iso(concluido_em),
            },
        )

    async def attach_face_evidence(
        self, turma_id: str, captures: list[dict], obra_local: str | None = None
    ) -> dict:
        return await self.request(
            "POST",
            "/api/user-trainings/face-evidence",
            json={"turma_id": turma_id, "captures": captures, "obra_local": obra_local},
        )

    async def submit_trilha_efficacy(self, cpf: str, trilha_id: str, nivel: int) -> dict:
        return await self.request(
            "POST",
            "/api/user-trainings/eficacia/trilha",
            json={"cpf": cpf, "trilha_id": str(trilha_id), "nivel": nivel},
        )

    async def submit_turma_efficacy(self, turma_id: str, avaliacoes: list[dict]) -> dict:
        return await self.request(
            "POST",
            "/api/user-trainings/eficacia/turma",
            json={"turma_id": turma_id, "avaliacoes": avaliacoes},
        )

    # --- Turmas ---

    async def create_turma(
        self,
        users: list[dict[str, str]],
        *,
        nome: str | None = None,
        obra_local: str | None = None,
        iniciado_em: datetime | None = None,
    ) -> dict:
        return await self.request(
            "POST",
            "/api/turmas",
            json={
                "users": users,
                "nome": nome,
                "obra_local": obra_local,
                "iniciado_em": _iso(iniciado_em),
            },
        )

    async def upload_turma_evidence(
        self,
        turma_id: str,
        duracao_horas: int,
        duracao_minutos: int,
        files: list[tuple[str, str, bytes]],
        *,
        obra_local: str | None = None,
        finalizado_em: datetime | None = None,
    ) -> dict:
        """``files`` holds (filename, content_type, content) tuples."""
        form = {"duracao_horas": str(duracao_horas), "duracao_minutos": str(duracao_minutos)}
        if obra_local:
            form["obra_local"] = obra_local
        if finalizado_em:
            form["finalizado_em"] = finalizado_em.isoformat()
        return await self.request(
            "POST",
            f"/api/turmas/{turma_id}/evidencias",
            data=form,
            files=[("files", (name, content, content_type)) for name, content_type, content in files],
        )

    # --- Provas ---

    async def get_prova(self, trilha_id: str, cpf: str | None = None, token: str | None = None) -> dict:
        return await self.request(
            "GET",
            f"/api/provas/trilha/{trilha_id}/objectiva/player",
            params={"cpf": cpf, "token": token},
        )

    async def submit_prova(
        self,
        trilha_id: str,
        cpf: str,
        respostas: list[dict],
        *,
        token: str | None = None,
        user: dict[str, str] | None = None,
        idempotency_key: str | None = None,
    ) -> dict:
        return await self.request(
            "POST",
            f"/api/provas/trilha/{trilha_id}/objectiva/player/submit",
            json={"cpf": cpf, "respostas": respostas, "token": token, "user": user},
            headers={"Idempotency-Key": idempotency_key or uuid.uuid4().hex},
        )

    async def submit_collective_prova(
        self,
        trilha_id: str,
        users: list[dict[str, str]],
        respostas: list[dict],
        *,
        turma_id: str | None = None,
        idempotency_key: str | None = None,
    ) -> dict:
        return await self.request(
            "POST",
            f"/api/provas/trilha/{trilha_id}/objectiva/instrutor/submit",
            json={"users": users, "respostas": respostas, "turma_id": turma_id},
            headers={"Idempotency-Key": idempotency_key or uuid.uuid4().hex},
        )

    async def get_prova_result(self, trilha_id: str, cpf: str) -> dict:
        return await self.request(
            "GET", f"/api/provas/trilha/{trilha_id}/objectiva/player/result", params={"cpf": cpf}
        )

    async def generate_proof_qr(
        self, users: list[dict[str, str]], trilha_ids: list[str], turma_id: str | None = None
    ) -> dict:
        return await self.request(
            "POST",
            "/api/provas/objectiva/instrutor/individual/qr",
            json={
                "users": users,
                "trilha_ids": [str(t) for t in trilha_ids],
                "turma_id": turma_id,
            },
        )

    async def resolve_proof_token(self, token: str, cpf: str | None = None) -> dict:
        return await self.request(
            "GET", f"/api/provas/objectiva/instrutor/individual/qr/{token}", params={"cpf": cpf}
        )

    # --- Faces ---

    async def match_face(self, descriptor: list[float], threshold: float | None = None) -> dict:
        body: dict[str, Any] = {"descriptor": list(descriptor)}
        if threshold is not None:
            body["threshold"] = threshold
        return await self.request("POST", "/api/faces/match", json=body)

    async def enroll_face(
        self,
        cpf: str,
        descriptor: list[float],
        *,
        foto_base64: str | None = None,
        origem: str | None = None,
        user: dict[str, str] | None = None,
    ) -> dict:
        return await self.request(
            "POST",
            "/api/faces/enroll",
            json={
                "cpf": cpf,
                "descriptor": list(descriptor),
                "foto_base64": foto_base64,
                "origem": origem,
                "user": user,
            },
        )

    # --- Feedbacks ---

    async def satisfaction_status(self, cpf: str) -> dict:
        return await self.request("GET", f"/api/feedbacks/platform-satisfaction/status/{cpf}")

    async def submit_satisfaction(self, cpf: str, nivel_satisfacao: int) -> dict:
        return await self.request(
            "POST",
            "/api/feedbacks/platform-satisfaction",
            json={"cpf": cpf, "nivel_satisfacao": nivel_satisfacao},
        )
