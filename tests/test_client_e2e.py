import uuid

import httpx
import pytest
from sqlalchemy import select

from conftest import EMPLOYEE_CPF, INSTRUCTOR_CPF, PASSWORD, make_prova, make_trilha
from gtreinamento.auth.service import create_access_token
from gtreinamento.client.api import PortalApiClient
from gtreinamento.client.errors import NotFoundError
from gtreinamento.client.orchestrator import CollectiveTrainingOrchestrator, Phase
from gtreinamento.client.session import PortalSession
from gtreinamento.client.settings import ClientSettings
from gtreinamento.client.storage import LocalStore
from gtreinamento.database import async_session
from gtreinamento.main import app
from gtreinamento.provas.models import ProvaResultado, ResultadoStatus
from gtreinamento.turmas.models import Turma, TurmaStatus
from gtreinamento.user_trainings.models import UserTraining


@pytest.fixture
async def portal():
    settings = ClientSettings(api_url="http://test", storage_path=None)
    async with PortalApiClient(settings, transport=httpx.ASGITransport(app=app)) as api:
        yield api


async def test_login_through_session(portal, employee):
    session = PortalSession(portal, LocalStore())

    profile = await session.login("111.222.333-44", PASSWORD)
    assert profile.cpf == EMPLOYEE_CPF
    assert profile.instrutor is False
    assert session.profile.obra_nome == "Obra Porto"
    assert await session.refresh_instructor_flag() is False

    await session.logout()
    assert session.profile is None
    assert portal.token is None


async def test_collective_session_against_api(portal, db, instructor, employee):
    trilha, videos = await make_trilha(db)
    await make_prova(db, trilha)
    portal.token = create_access_token(subject=INSTRUCTOR_CPF)
    orch = CollectiveTrainingOrchestrator(portal, instructor_cpf=INSTRUCTOR_CPF)

    obras = await orch.load_locations()
    assert obras == [{"codigo": "OB-7", "nome": "Obra Porto"}]
    await orch.select_location("OB-7")
    assert [p.cpf for p in orch.state.employees] == [EMPLOYEE_CPF]

    orch.toggle_participant(EMPLOYEE_CPF)
    orch.toggle_material(str(videos[0].id))
    orch.confirm_selection()
    await orch.start_training()
    assert await orch.material_ended() == Phase.EXAM

    exam = orch.current_exam
    for questao in exam.questoes:
        certa = next(o for o in questao["opcoes"] if o["texto"] == "Certa")
        orch.answer(questao["id"], certa["id"])
    result = await orch.submit_exam()
    assert result["aprovado"] is True
    assert orch.finish_exams() == Phase.EVIDENCE

    files = [("evidencia.jpg", "image/jpeg", b"\xff\xd8\xff\xe0fake")]
    assert await orch.submit_evidence(1, 30, files) == Phase.CLOSED
    turma_id = orch.summary.turma_id

    async with async_session() as s:
        turma = await s.get(Turma, uuid.UUID(turma_id))
        assert turma.status == TurmaStatus.FINALIZADA
        assert turma.duracao_treinamento_minutos == 90
        trainings = (await s.execute(select(UserTraining))).scalars().all()
        assert [(t.cpf, str(t.turma_id)) for t in trainings] == [(EMPLOYEE_CPF, turma_id)]
        resultado = (await s.execute(select(ProvaResultado))).scalar_one()
        assert resultado.cpf == EMPLOYEE_CPF
        assert resultado.status == ResultadoStatus.APROVADO
        assert str(resultado.turma_id) == turma_id


async def test_missing_prova_surfaces_as_not_found(portal, db, instructor):
    trilha, _ = await make_trilha(db)
    portal.token = create_access_token(subject=INSTRUCTOR_CPF)

    with pytest.raises(NotFoundError):
        await portal.get_prova(str(trilha.id))
