"""Writes an audit entry for every mutating request under /api/.

The authenticated user, when any, is read from request.state (set by the
auth dependencies).
"""

import logging
import re

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from gtreinamento.audit.service import write_audit_log
from gtreinamento.database import async_session

logger = logging.getLogger(__name__)

_AUDITED_METHODS = {"POST", "PUT", "PATCH", "DELETE"}

_ACTIONS = [
    ("POST", re.compile(r"^/api/auth/login$"), "auth.login"),
    ("POST", re.compile(r"^/api/auth/logout$"), "auth.logout"),
    ("POST", re.compile(r"^/api/auth/first-access$"), "auth.first_access"),
    ("PUT", re.compile(r"^/api/auth/password/[^/]+$"), "auth.password_change"),
    ("POST", re.compile(r"^/api/turmas$"), "turma.create"),
    ("POST", re.compile(r"^/api/turmas/[^/]+/evidencias$"), "turma.evidence_upload"),
    ("POST", re.compile(r"^/api/user-trainings$"), "training.collective_attendance"),
    ("POST", re.compile(r"^/api/user-trainings/face-evidence$"), "training.face_evidence"),
    ("POST", re.compile(r"^/api/provas/trilha/[^/]+/objectiva/instrutor/submit$"), "prova.collective_submit"),
    ("POST", re.compile(r"^/api/provas/trilha/[^/]+/objectiva/player/submit$"), "prova.player_submit"),
    ("POST", re.compile(r"^/api/provas/objectiva/instrutor/individual/qr$"), "prova.proof_token"),
    ("POST", re.compile(r"^/api/faces/enroll$"), "face.enroll"),
]


class AuditLogMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next) -> Response:
        if request.method not in _AUDITED_METHODS or not request.url.path.startswith("/api/"):
            return await call_next(request)

        response = await call_next(request)

        # Own session; a failed audit write never breaks the request
        try:
            user = getattr(request.state, "user", None)
            async with async_session() as db:
                await write_audit_log(
                    db,
                    action=derive_action(request.method, request.url.path),
                    user_cpf=user.cpf if user else None,
                    ip_address=request.client.host if request.client else None,
                    user_agent=request.headers.get("user-agent", "")[:512],
                    method=request.method,
                    path=request.url.path[:500],
                    status_code=response.status_code,
                )
        except Exception:
            logger.exception("Failed to write audit log for %s %s", request.method, request.url.path)

        return response


def derive_action(method: str, path: str) -> str:
    for action_method, pattern, action in _ACTIONS:
        if method == action_method and pattern.match(path):
            return action

    # Generic: "PATCH /api/users/{cpf}" -> "users.update"
    segments = [s for s in path.split("/") if s and s != "api"]
    resource = segments[0] if segments else "unknown"
    verb_map = {"POST": "create", "PUT": "update", "PATCH": "update", "DELETE": "delete"}
    return f"{resource}.{verb_map.get(method, method.lower())}"
