from __future__ import annotations

import os
import tempfile

os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["APP_ENV"] = "test"
os.environ["JWT_ALGORITHM"] = "HS256"
os.environ["JWT_SECRET_KEY"] = "test-secret-key-with-at-least-thirty-two-chars"
os.environ["APP_SECRET_KEY"] = "test-app-secret-key-with-at-least-thirty-two"
os.environ["COOKIE_SECURE"] = "false"
os.environ["AUDIT_ENABLED"] = "false"
os.environ["UPLOAD_DIR"] = tempfile.mkdtemp(prefix="gtreinamento-tests-")

import httpx  # noqa: E402
import pytest  # noqa: E402

from gtreinamento.auth import router as auth_router  # noqa: E402
from gtreinamento.auth.service import create_access_token  # noqa: E402
from gtreinamento.auth.utils import get_password_hash  # noqa: E402
from gtreinamento.catalog.models import Modulo, Trilha, Video  # noqa: E402
from gtreinamento.database import Base, async_session, engine  # noqa: E402
from gtreinamento.main import app  # noqa: E402
from gtreinamento.provas.schemas import OpcaoCreate, ProvaCreate, QuestaoCreate  # noqa: E402
from gtreinamento.provas.service import create_prova  # noqa: E402
from gtreinamento.users.models import User, UserRole  # noqa: E402

PASSWORD = "Senha@Forte123"
INSTRUCTOR_CPF = "90000000001"
EMPLOYEE_CPF = "11122233344"
OTHER_CPF = "55566677788"


@pytest.fixture(autouse=True)
async def database(monkeypatch):
    async def _never_revoked(jti: str) -> bool:
        return False

    async def _revoke(payload: dict) -> bool:
        return True

    monkeypatch.setattr("gtreinamento.auth.dependencies.is_token_revoked", _never_revoked)
    monkeypatch.setattr("gtreinamento.auth.router.revoke_payload", _revoke)
    auth_router._login_attempts.clear()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    await engine.dispose()


@pytest.fixture
async def db():
    async with async_session() as session:
        yield session


@pytest.fixture
async def client():
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


def auth_headers(cpf: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(subject=cpf)}"}


async def make_user(
    db,
    cpf: str,
    nome: str,
    *,
    permissao: UserRole = UserRole.COLABORADOR,
    instrutor: bool = False,
    password: str | None = PASSWORD,
    **extra,
) -> User:
    user = User(
        cpf=cpf,
        nome=nome,
        permissao=permissao,
        instrutor=instrutor,
        hashed_password=get_password_hash(password) if password else None,
        **extra,
    )
    db.add(user)
    await db.commit()
    return user


@pytest.fixture
async def instructor(db):
    return await make_user(db, INSTRUCTOR_CPF, "Instrutora Souza", permissao=UserRole.INSTRUTOR)


@pytest.fixture
async def employee(db):
    return await make_user(
        db, EMPLOYEE_CPF, "Carlos Pereira", cargo="Eletricista", setor="Manutenção",
        obra_codigo="OB-7", obra_nome="Obra Porto",
    )


async def make_trilha(
    db,
    titulo: str = "Segurança em Altura",
    *,
    eficacia_obrigatoria: bool = False,
    procedimento_id: str | None = None,
    videos: int = 1,
) -> tuple[Trilha, list[Video]]:
    modulo = Modulo(nome=f"Módulo {titulo}")
    trilha = Trilha(titulo=titulo, eficacia_obrigatoria=eficacia_obrigatoria)
    modulo.trilhas.append(trilha)
    created = []
    for i in range(videos):
        video = Video(
            titulo=f"{titulo} - parte {i + 1}",
            path_video="https://youtu.be/abc12345678",
            procedimento_id=procedimento_id,
            versao=1,
            ordem=i,
        )
        trilha.videos.append(video)
        created.append(video)
    db.add(modulo)
    await db.commit()
    return trilha, created


async def make_prova(db, trilha: Trilha, *, modo: str = "coletiva", questoes: int = 2):
    data = ProvaCreate(
        titulo=f"Prova {trilha.titulo}",
        modo_aplicacao=modo,
        nota_total=10,
        media=7,
        questoes=[
            QuestaoCreate(
                enunciado=f"Questão {n + 1}",
                opcoes=[OpcaoCreate(texto="Certa", correta=True), OpcaoCreate(texto="Errada")],
            )
            for n in range(questoes)
        ],
    )
    return await create_prova(db, trilha.id, data, criado_por=INSTRUCTOR_CPF)


def answers(prova, *, correct: bool = True) -> list[dict[str, str]]:
    """Answer every question of ``prova`` right (or wrong)."""
    picked = []
    for questao in prova.questoes:
        opcao = next(o for o in questao.opcoes if o.correta == correct)
        picked.append({"questao_id": str(questao.id), "opcao_id": str(opcao.id)})
    return picked
