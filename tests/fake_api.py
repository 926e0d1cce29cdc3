"""In-memory stand-in for PortalApiClient used by the workflow client tests."""

from __future__ import annotations

import asyncio
from typing import Any

from gtreinamento.client.errors import NotFoundError
from gtreinamento.client.settings import ClientSettings


def video(id: str, trilha_id: str, *, procedimento_id=None, norma_id=None, versao=1) -> dict:
    return {
        "id": id,
        "trilha_id": trilha_id,
        "titulo": f"Vídeo {id}",
        "path_video": "https://youtu.be/abc12345678",
        "procedimento_id": procedimento_id,
        "norma_id": norma_id,
        "versao": versao,
    }


def prova(trilha_id: str, modo: str = "coletiva", questoes: int = 2) -> dict:
    return {
        "id": f"prova-{trilha_id}",
        "trilha_id": trilha_id,
        "versao": 1,
        "modo_aplicacao": modo,
        "titulo": f"Prova {trilha_id}",
        "questoes": [
            {
                "id": f"{trilha_id}-q{n}",
                "ordem": n,
                "enunciado": f"Questão {n}",
                "peso": 1.0,
                "opcoes": [
                    {"id": f"{trilha_id}-q{n}-certa", "ordem": 1, "texto": "Certa"},
                    {"id": f"{trilha_id}-q{n}-errada", "ordem": 2, "texto": "Errada"},
                ],
            }
            for n in range(1, questoes + 1)
        ],
    }


class FakePortalApi:
    def __init__(
        self,
        *,
        employees: list[dict] | None = None,
        trilhas: list[dict] | None = None,
        videos: list[dict] | None = None,
        provas: dict[str, dict] | None = None,
    ):
        self.settings = ClientSettings(api_url="http://fake", storage_path=None)
        self.obras = [{"codigo": "OB-7", "nome": "Obra Porto"}]
        self.employees = employees or []
        self.modulos = [{"id": "m1", "nome": "Segurança"}]
        self.trilhas = trilhas or []
        self.videos = videos or []
        self.provas = provas or {}
        self.match_response: dict = {"match": None, "candidates": [], "threshold": 0.6}
        self.resolved_token: dict | None = None
        self.failures: dict[str, Exception] = {}
        self.calls: list[tuple[str, dict]] = []
        # When set, calls wait on it before returning
        self.gate: asyncio.Event | None = None

    def names(self) -> list[str]:
        return [name for name, _ in self.calls]

    def calls_to(self, name: str) -> list[dict]:
        return [kwargs for n, kwargs in self.calls if n == name]

    async def _call(self, name: str, result: Any = None, **kwargs) -> Any:
        self.calls.append((name, kwargs))
        if self.gate is not None:
            await self.gate.wait()
        if name in self.failures:
            raise self.failures.pop(name)
        return result

    # --- users / catalog ---

    async def list_obras(self):
        return await self._call("list_obras", self.obras)

    async def list_employees(self, obra_codigo=None, obra=None):
        return await self._call("list_employees", self.employees, obra_codigo=obra_codigo)

    async def list_modulos(self, cpf=None):
        return await self._call("list_modulos", self.modulos)

    async def list_trilhas(self, cpf=None):
        return await self._call("list_trilhas", self.trilhas)

    async def list_videos(self, cpf=None, trilha_id=None):
        return await self._call("list_videos", self.videos)

    # --- trainings ---

    async def create_turma(self, users, *, nome=None, obra_local=None, iniciado_em=None):
        return await self._call("create_turma", {"id": "turma-1"}, users=users, obra_local=obra_local)

    async def record_collective_training(self, users, trainings, turma_id=None, concluido_em=None):
        return await self._call(
            "record_collective_training",
            {"inserted": len(users) * len(trainings)},
            users=users,
            trainings=trainings,
            turma_id=turma_id,
        )

    async def complete_material(self, cpf, material_id, material_versao=1, *, tipo="video", user=None, concluido_em=None):
        return await self._call(
            "complete_material",
            {"inserted": 1, "completed_at": "2026-03-01T12:00:00+00:00"},
            cpf=cpf,
            material_id=material_id,
            material_versao=material_versao,
        )

    async def upload_turma_evidence(self, turma_id, duracao_horas, duracao_minutos, files, *, obra_local=None, finalizado_em=None):
        return await self._call(
            "upload_turma_evidence",
            {"turma": {"id": turma_id}},
            turma_id=turma_id,
            duracao_horas=duracao_horas,
            duracao_minutos=duracao_minutos,
            files=files,
        )

    async def attach_face_evidence(self, turma_id, captures, obra_local=None):
        return await self._call(
            "attach_face_evidence",
            {"processed": len(captures), "updated": len(captures)},
            turma_id=turma_id,
            captures=captures,
        )

    async def submit_turma_efficacy(self, turma_id, avaliacoes):
        return await self._call(
            "submit_turma_efficacy",
            {"processed": len(avaliacoes), "updated": len(avaliacoes)},
            turma_id=turma_id,
            avaliacoes=avaliacoes,
        )

    # --- provas ---

    async def get_prova(self, trilha_id, cpf=None, token=None):
        found = self.provas.get(str(trilha_id))
        if found is None:
            self.failures.setdefault("get_prova", NotFoundError(404, "Prova não encontrada para esta trilha"))
        return await self._call("get_prova", found, trilha_id=trilha_id, cpf=cpf, token=token)

    def _grade(self, trilha_id: str, respostas: list[dict]) -> dict:
        acertos = sum(1 for r in respostas if r["opcao_id"].endswith("-certa"))
        total = len(respostas)
        aprovado = acertos == total
        return {
            "nota": 10.0 * acertos / total if total else 0.0,
            "media": 7.0,
            "aprovado": aprovado,
            "status": "aprovado" if aprovado else "reprovado",
            "acertos": acertos,
            "total_questoes": total,
            "gabarito": [
                {
                    "questao_id": r["questao_id"],
                    "opcao_marcada_id": r["opcao_id"],
                    "opcao_correta_id": f"{r['questao_id']}-certa",
                    "acertou": r["opcao_id"].endswith("-certa"),
                }
                for r in respostas
            ],
        }

    async def submit_collective_prova(self, trilha_id, users, respostas, *, turma_id=None, idempotency_key=None):
        return await self._call(
            "submit_collective_prova",
            self._grade(trilha_id, respostas),
            trilha_id=trilha_id,
            users=users,
            respostas=respostas,
            turma_id=turma_id,
            idempotency_key=idempotency_key,
        )

    async def submit_prova(self, trilha_id, cpf, respostas, *, token=None, user=None, idempotency_key=None):
        return await self._call(
            "submit_prova",
            self._grade(trilha_id, respostas),
            trilha_id=trilha_id,
            cpf=cpf,
            token=token,
            idempotency_key=idempotency_key,
        )

    async def generate_proof_qr(self, users, trilha_ids, turma_id=None):
        return await self._call(
            "generate_proof_qr",
            {
                "token": "tok-123",
                "redirect_url": "http://portal/home/treinamentos?coletivoProvaToken=tok-123",
                "qr_code_image_url": "/api/provas/objectiva/instrutor/individual/qr/tok-123/image",
                "expires_at": "2026-03-01T16:00:00+00:00",
                "total_usuarios": len(users),
                "trilhas": [],
            },
            users=users,
            trilha_ids=list(trilha_ids),
            turma_id=turma_id,
        )

    async def resolve_proof_token(self, token, cpf=None):
        return await self._call("resolve_proof_token", self.resolved_token, token=token, cpf=cpf)

    # --- faces ---

    async def match_face(self, descriptor, threshold=None):
        return await self._call("match_face", self.match_response, descriptor=descriptor)

    async def enroll_face(self, cpf, descriptor, *, foto_base64=None, origem=None, user=None):
        return await self._call("enroll_face", {"cpf": cpf}, cpf=cpf, origem=origem)


class FakeCapturer:
    """Face capturer returning queued outcomes: a FaceCapture or an exception."""

    def __init__(self, outcomes=None, *, start_error: Exception | None = None):
        self.outcomes = list(outcomes or [])
        self.start_error = start_error
        self.started = False
        self.stopped = False

    async def start(self):
        if self.start_error:
            raise self.start_error
        self.started = True

    async def capture(self):
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    async def stop(self):
        self.stopped = True
