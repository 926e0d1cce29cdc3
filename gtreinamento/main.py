import logging
import os
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import Depends, FastAPI, HTTPException, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse
from jose import JWTError
from starlette.middleware.base import BaseHTTPMiddleware

from gtreinamento.audit.middleware import AuditLogMiddleware
from gtreinamento.auth.dependencies import get_current_user
from gtreinamento.auth.router import router as auth_router
from gtreinamento.auth.service import create_access_token, decode_access_token
from gtreinamento.catalog.router import router as catalog_router
from gtreinamento.config import settings
from gtreinamento.faces.router import router as faces_router
from gtreinamento.feedbacks.router import router as feedbacks_router
from gtreinamento.init_db import startup as init_startup
from gtreinamento.provas.router import router as provas_router
from gtreinamento.redis import close_redis
from gtreinamento.turmas.router import router as turmas_router
from gtreinamento.user_trainings.router import router as user_trainings_router
from gtreinamento.users.models import User
from gtreinamento.users.router import router as users_router

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


# --- Security Headers Middleware ---


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next) -> Response:
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-XSS-Protection"] = "1; mode=block"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        # Facial verification captures frames from the instructor's camera
        response.headers["Permissions-Policy"] = "camera=(self), microphone=(), geolocation=()"

        # PDFs and videos are embedded by the portal itself
        is_embeddable = request.url.path.startswith("/api/media/")
        response.headers["X-Frame-Options"] = "SAMEORIGIN" if is_embeddable else "DENY"

        if settings.app_env == "production":
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
            response.headers["Content-Security-Policy"] = (
                "default-src 'self'; script-src 'self' 'unsafe-inline'; "
                "style-src 'self' 'unsafe-inline'; "
                "img-src 'self' data: https://img.youtube.com; font-src 'self'; "
                "connect-src 'self'; frame-src 'self' https://www.youtube.com"
            )
        return response


# --- Sliding-window session refresh middleware ---


class SessionRefreshMiddleware(BaseHTTPMiddleware):
    """Refresh the session cookie while the user is active.

    On a successful authenticated response, a JWT past half of its lifetime
    is replaced by a fresh one. Collective sessions last hours, so an active
    instructor never gets logged out mid-training; the hard expiry still
    ends abandoned sessions.
    """

    _SKIP_PATHS = frozenset({
        "/api/auth/login",
        "/api/auth/logout",
        "/api/auth/first-access",
        "/api/health",
    })

    async def dispatch(self, request: Request, call_next) -> Response:
        response = await call_next(request)

        if response.status_code >= 300 or request.url.path in self._SKIP_PATHS:
            return response

        cookie_token = request.cookies.get(settings.cookie_name)
        if not cookie_token:
            return response

        try:
            payload = decode_access_token(cookie_token)
        except JWTError:
            # Invalid or expired; the regular auth flow rejects it
            return response

        exp = payload.get("exp", 0)
        iat = payload.get("iat", 0)
        lifetime = exp - iat
        elapsed = datetime.now(timezone.utc).timestamp() - iat
        if lifetime > 0 and elapsed > lifetime / 2:
            response.set_cookie(
                key=settings.cookie_name,
                value=create_access_token(subject=payload["sub"]),
                httponly=True,
                secure=settings.cookie_secure,
                samesite=settings.cookie_samesite,
                path="/",
                domain=settings.cookie_domain,
            )
        return response


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings.validate_secrets()
    logger.info("CORS origins: %s", settings.cors_origins)
    await init_startup()
    yield
    await close_redis()


# Disable interactive docs in production
_docs_url = "/docs" if settings.app_env != "production" else None
_redoc_url = "/redoc" if settings.app_env != "production" else None

app = FastAPI(
    title="Gestão Treinamento",
    description="Portal de treinamentos corporativos e treinamentos coletivos",
    version="0.1.0",
    root_path="",
    lifespan=lifespan,
    docs_url=_docs_url,
    redoc_url=_redoc_url,
)

# Security headers must be added first (outermost middleware)
app.add_middleware(SecurityHeadersMiddleware)

if settings.audit_enabled:
    app.add_middleware(AuditLogMiddleware)

app.add_middleware(SessionRefreshMiddleware)

cors_origins = list(settings.cors_origins)
# Only include localhost in non-production environments
if settings.app_env != "production":
    for origin in ["http://localhost:5173", "http://127.0.0.1:5173"]:
        if origin not in cors_origins:
            cors_origins.append(origin)

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "Idempotency-Key"],
)

app.include_router(auth_router, prefix="/api/auth", tags=["auth"])
app.include_router(users_router, prefix="/api/users", tags=["users"])
app.include_router(catalog_router, prefix="/api", tags=["catalog"])
app.include_router(user_trainings_router, prefix="/api/user-trainings", tags=["user-trainings"])
app.include_router(provas_router, prefix="/api/provas", tags=["provas"])
app.include_router(turmas_router, prefix="/api/turmas", tags=["turmas"])
app.include_router(faces_router, prefix="/api/faces", tags=["faces"])
app.include_router(feedbacks_router, prefix="/api/feedbacks", tags=["feedbacks"])


@app.get("/api/media/{file_path:path}")
async def media(file_path: str, _: User = Depends(get_current_user)):
    root = os.path.realpath(settings.upload_dir)
    full_path = os.path.realpath(os.path.join(root, file_path))
    if not full_path.startswith(root + os.sep) or not os.path.isfile(full_path):
        raise HTTPException(status_code=404, detail="Arquivo não encontrado")
    return FileResponse(full_path)


@app.get("/api/health")
async def health_check():
    return {"status": "ok"}
