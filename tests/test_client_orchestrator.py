import asyncio

import pytest

from fake_api import FakeCapturer, FakePortalApi, prova, video
from gtreinamento.client.errors import ApiError, BusyError, PhaseError, ValidationError
from gtreinamento.client.facial import FaceCapture, FacialStatus
from gtreinamento.client.orchestrator import CollectiveTrainingOrchestrator, Phase

CPF = "11122233344"
OTHER = "55566677788"
PHOTO = ("evidencia.jpg", "image/jpeg", b"\xff\xd8\xff\xe0fake")


def employee(cpf: str, nome: str) -> dict:
    return {
        "cpf": cpf,
        "nome": nome,
        "funcao": "Eletricista",
        "departamento": "Manutenção",
        "raw": {"CPF": cpf, "NOME": nome, "NOME_FUNCAO": "Eletricista"},
    }


def trilha(id: str, *, eficacia: bool = False) -> dict:
    return {"id": id, "titulo": f"Trilha {id}", "modulo_id": "m1", "eficacia_obrigatoria": eficacia}


def make_api(*, videos=None, trilhas=None, provas=None, employees=None) -> FakePortalApi:
    return FakePortalApi(
        employees=employees or [employee(CPF, "Carlos Pereira"), employee(OTHER, "Ana Lima")],
        trilhas=trilhas or [trilha("t1")],
        videos=videos or [video("v1", "t1")],
        provas=provas,
    )


async def ordered(api: FakePortalApi, cpfs=(CPF,), material_ids=("v1",)) -> CollectiveTrainingOrchestrator:
    orch = CollectiveTrainingOrchestrator(api)
    await orch.load_locations()
    await orch.select_location("OB-7")
    for cpf in cpfs:
        orch.toggle_participant(cpf)
    for material_id in material_ids:
        orch.toggle_material(material_id)
    orch.confirm_selection()
    return orch


async def played(api: FakePortalApi, **kwargs) -> CollectiveTrainingOrchestrator:
    orch = await ordered(api, **kwargs)
    await orch.start_training()
    while orch.state.phase == Phase.PLAYBACK:
        await orch.material_ended()
    return orch


def face(value: float = 0.1) -> FaceCapture:
    return FaceCapture(descriptor=[value] * 128, photo="data:image/jpeg;base64,AAAA")


# --- setup and selection ---


async def test_select_location_loads_pool_and_catalog():
    api = make_api()
    orch = CollectiveTrainingOrchestrator(api)
    await orch.load_locations()
    phase = await orch.select_location("OB-7")

    assert phase == Phase.SELECTION
    assert orch.state.obra == {"codigo": "OB-7", "nome": "Obra Porto"}
    assert [p.cpf for p in orch.state.employees] == [CPF, OTHER]
    assert api.calls_to("list_employees") == [{"obra_codigo": "OB-7"}]


async def test_search_participants_and_materials():
    orch = CollectiveTrainingOrchestrator(make_api(videos=[video("v1", "t1"), video("v2", "t1")]))
    await orch.select_location(None)

    assert [p.nome for p in orch.search_participants("ana")] == ["Ana Lima"]
    assert [p.cpf for p in orch.search_participants("111.222")] == [CPF]
    assert [m.id for m in orch.search_materials("v2")] == ["v2"]
    # module name matches every video of its trilhas
    assert [m.id for m in orch.search_materials("segurança")] == ["v1", "v2"]


async def test_confirm_selection_requires_people_and_material():
    orch = CollectiveTrainingOrchestrator(make_api())
    await orch.select_location(None)

    with pytest.raises(ValidationError, match="colaborador"):
        orch.confirm_selection()
    orch.toggle_participant(CPF)
    with pytest.raises(ValidationError, match="material"):
        orch.confirm_selection()
    with pytest.raises(ValidationError):
        orch.toggle_material("desconhecido")


async def test_reorder_queue():
    api = make_api(videos=[video("v1", "t1"), video("v2", "t1"), video("v3", "t1")])
    orch = await ordered(api, material_ids=("v1", "v2", "v3"))

    assert orch.move_material("v3", -1) == ["v1", "v3", "v2"]
    assert orch.move_material("v1", -5) == ["v1", "v3", "v2"]
    assert orch.reorder(["v2", "v1", "v3"]) == ["v2", "v1", "v3"]
    with pytest.raises(ValidationError):
        orch.reorder(["v1", "v2"])


# --- playback ---


async def test_start_creates_turma_with_valid_participants():
    api = make_api(employees=[employee(CPF, "Carlos Pereira"), employee("123", "Sem Documento")])
    orch = await ordered(api, cpfs=(CPF, "123"))
    await orch.start_training()

    assert orch.state.phase == Phase.PLAYBACK
    assert orch.state.turma_id == "turma-1"
    (call,) = api.calls_to("create_turma")
    assert call["users"] == [{"CPF": CPF, "NOME": "Carlos Pereira", "NOME_FUNCAO": "Eletricista"}]
    assert call["obra_local"] == "Obra Porto"


async def test_turma_creation_failure_keeps_ordering():
    api = make_api()
    api.failures["create_turma"] = ApiError(400, "Informe ao menos um colaborador")
    orch = await ordered(api)

    with pytest.raises(PhaseError):
        await orch.start_training()
    assert orch.state.phase == Phase.ORDERING
    assert orch.state.turma_id is None
    assert orch.state.error.startswith("Não foi possível iniciar o treinamento")


async def test_attendance_recorded_once_after_last_material():
    api = make_api(videos=[video("v1", "t1"), video("v2", "t1", versao=3)])
    orch = await ordered(api, material_ids=("v1", "v2"))
    await orch.start_training()

    assert orch.current_material.id == "v1"
    assert await orch.material_ended() == Phase.PLAYBACK
    assert orch.current_material.id == "v2"
    assert api.calls_to("record_collective_training") == []

    assert await orch.material_ended() == Phase.EVIDENCE
    (call,) = api.calls_to("record_collective_training")
    assert call["turma_id"] == "turma-1"
    assert call["trainings"] == [
        {"tipo": "video", "material_id": "v1", "material_versao": 1},
        {"tipo": "video", "material_id": "v2", "material_versao": 3},
    ]
    assert orch.state.completed == {"v1": {CPF}, "v2": {CPF}}


async def test_attendance_failure_can_be_retried():
    api = make_api()
    orch = await ordered(api)
    await orch.start_training()
    api.failures["record_collective_training"] = ApiError(500, "Erro ao registrar treinamento")

    with pytest.raises(ApiError):
        await orch.material_ended()
    assert orch.state.phase == Phase.PLAYBACK
    assert orch.state.error == "Erro ao registrar treinamento"

    assert await orch.retry_attendance() == Phase.EVIDENCE
    assert orch.state.error is None
    assert len(api.calls_to("record_collective_training")) == 2


# --- exams ---


async def test_exam_phase_skipped_without_prova():
    api = make_api()
    orch = await played(api)

    assert orch.state.phase == Phase.EVIDENCE
    assert orch.state.exams == []
    assert "submit_collective_prova" not in api.names()


async def test_collective_exam_submitted_for_group():
    api = make_api(provas={"t1": prova("t1")})
    orch = await played(api, cpfs=(CPF, OTHER))
    assert orch.state.phase == Phase.EXAM

    with pytest.raises(ValidationError, match="Envie todas as provas"):
        orch.finish_exams()

    orch.answer("t1-q1", "t1-q1-certa")
    orch.answer("t1-q2", "t1-q2-certa")
    result = await orch.submit_exam()
    assert result["aprovado"] is True

    (call,) = api.calls_to("submit_collective_prova")
    assert [u["CPF"] for u in call["users"]] == [CPF, OTHER]
    assert call["turma_id"] == "turma-1"
    assert call["idempotency_key"]
    assert orch.finish_exams() == Phase.EVIDENCE


async def test_unanswered_exam_is_not_sent():
    api = make_api(provas={"t1": prova("t1")})
    orch = await played(api)
    orch.answer("t1-q1", "t1-q1-certa")

    with pytest.raises(ValidationError):
        await orch.submit_exam()
    assert "submit_collective_prova" not in api.names()
    assert orch.state.error == "Responda todas as questões antes de enviar."


async def test_retry_exam_only_resets_that_trilha():
    api = make_api(
        trilhas=[trilha("t1"), trilha("t2")],
        videos=[video("v1", "t1"), video("v2", "t2")],
        provas={"t1": prova("t1"), "t2": prova("t2")},
    )
    orch = await played(api, material_ids=("v1", "v2"))

    orch.answer("t1-q1", "t1-q1-certa")
    orch.answer("t1-q2", "t1-q2-certa")
    await orch.submit_exam()
    orch.answer("t2-q1", "t2-q1-errada")
    orch.answer("t2-q2", "t2-q2-certa")
    failed = await orch.submit_exam()
    assert failed["aprovado"] is False

    orch.retry_exam("t2")
    first, second = orch.state.exams
    assert first.result["aprovado"] is True
    assert second.result is None and second.answers == {}
    assert orch.current_exam is second
    with pytest.raises(ValidationError):
        orch.retry_exam("t9")


async def test_prova_load_failure_blocks_exam_phase():
    api = make_api()
    orch = await ordered(api)
    await orch.start_training()
    api.failures["get_prova"] = ApiError(500, "Erro interno")

    with pytest.raises(PhaseError, match="Trilha t1"):
        await orch.material_ended()
    assert orch.state.phase == Phase.PLAYBACK
    assert orch.state.attendance_recorded is True

    assert await orch.retry_attendance() == Phase.EVIDENCE
    assert len(api.calls_to("record_collective_training")) == 1


# --- evidence, proof QR ---


async def test_evidence_validation_is_local():
    api = make_api()
    orch = await played(api)

    with pytest.raises(ValidationError):
        await orch.submit_evidence(0, 0, [PHOTO])
    assert orch.state.error == "Informe a duração do treinamento."
    with pytest.raises(ValidationError):
        await orch.submit_evidence(1, 0, [])
    assert orch.state.error == "Envie ao menos uma foto de evidência."
    assert "upload_turma_evidence" not in api.names()
    assert orch.state.phase == Phase.EVIDENCE


async def test_evidence_closes_plain_session():
    api = make_api()
    orch = await played(api)

    assert await orch.submit_evidence(1, 15, [PHOTO]) == Phase.CLOSED
    (call,) = api.calls_to("upload_turma_evidence")
    assert (call["turma_id"], call["duracao_horas"], call["duracao_minutos"]) == ("turma-1", 1, 15)
    assert orch.state.phase == Phase.CLOSED
    assert orch.state.turma_id is None
    assert orch.summary.turma_id == "turma-1"
    assert orch.summary.participantes == 1
    assert orch.summary.materiais == 1


async def test_individual_prova_requires_proof_qr():
    api = make_api(provas={"t1": prova("t1", modo="individual")})
    orch = await played(api)
    assert orch.state.phase == Phase.EVIDENCE
    assert orch.state.individual_trilhas == ["t1"]

    assert await orch.submit_evidence(0, 50, [PHOTO]) == Phase.INDIVIDUAL_QR
    with pytest.raises(ValidationError):
        orch.continue_after_qr()

    proof = await orch.generate_proof_qr()
    assert proof["redirect_url"].endswith("?coletivoProvaToken=tok-123")
    (call,) = api.calls_to("generate_proof_qr")
    assert call["trilha_ids"] == ["t1"]
    assert call["turma_id"] == "turma-1"

    assert orch.continue_after_qr() == Phase.CLOSED
    assert orch.summary.proof["token"] == "tok-123"


# --- facial and efficacy ---


async def test_facial_phase_for_procedure_videos():
    api = make_api(videos=[video("v1", "t1", procedimento_id="PROC-7")])
    api.match_response = {"match": {"cpf": CPF, "nome": "Carlos Pereira", "distance": 0.2}, "candidates": []}
    orch = await played(api)
    assert await orch.submit_evidence(0, 30, [PHOTO]) == Phase.FACIAL

    capturer = FakeCapturer([face()])
    session = await orch.open_facial_session(capturer)
    assert capturer.started

    with pytest.raises(ValidationError):
        await orch.complete_facial()
    assert orch.state.phase == Phase.FACIAL

    await session.capture()
    assert session.status == FacialStatus.MATCHED
    await session.confirm_match()
    assert api.calls_to("enroll_face") == [{"cpf": CPF, "origem": "treinamento-coletivo"}]

    assert await orch.complete_facial() == Phase.CLOSED
    (call,) = api.calls_to("attach_face_evidence")
    assert call["turma_id"] == "turma-1"
    assert [c["cpf"] for c in call["captures"]] == [CPF]
    assert call["captures"][0]["foto_base64"] == "data:image/jpeg;base64,AAAA"
    assert capturer.stopped
    assert orch.summary.facial_validados == 1


async def test_facial_phase_needs_a_valid_cpf():
    api = make_api(
        videos=[video("v1", "t1", norma_id="NR-35")],
        employees=[employee("123", "Sem Documento")],
    )
    orch = await played(api, cpfs=("123",))

    assert orch.requires_facial_validation is False
    assert await orch.submit_evidence(0, 30, [PHOTO]) == Phase.CLOSED


async def test_efficacy_required_by_trilha():
    api = make_api(trilhas=[trilha("t1", eficacia=True)])
    orch = await played(api, cpfs=(CPF, OTHER))
    assert await orch.submit_evidence(2, 0, [PHOTO]) == Phase.EFFICACY

    orch.rate_efficacy(CPF, 4)
    with pytest.raises(ValidationError):
        orch.rate_efficacy(OTHER, 6)
    with pytest.raises(ValidationError):
        orch.rate_efficacy("99988877766", 3)
    with pytest.raises(ValidationError, match="Ana Lima"):
        await orch.submit_efficacy()

    orch.rate_efficacy(OTHER, 2)
    assert await orch.submit_efficacy() == Phase.CLOSED
    (call,) = api.calls_to("submit_turma_efficacy")
    assert sorted(call["avaliacoes"], key=lambda a: a["cpf"]) == [
        {"cpf": CPF, "nivel": 4},
        {"cpf": OTHER, "nivel": 2},
    ]
    assert orch.summary.avaliacoes_eficacia == 2


async def test_full_session_visits_every_phase():
    api = make_api(
        trilhas=[trilha("t1", eficacia=True), trilha("t2")],
        videos=[video("v1", "t1", procedimento_id="PROC-7"), video("v2", "t2")],
        provas={"t1": prova("t1"), "t2": prova("t2", modo="individual")},
    )
    api.match_response = {"match": {"cpf": CPF, "nome": "Carlos Pereira", "distance": 0.1}}
    orch = await ordered(api, material_ids=("v1", "v2"))
    await orch.start_training()
    await orch.material_ended()
    phases = [await orch.material_ended()]

    orch.answer("t1-q1", "t1-q1-certa")
    orch.answer("t1-q2", "t1-q2-certa")
    await orch.submit_exam()
    phases.append(orch.finish_exams())
    phases.append(await orch.submit_evidence(1, 0, [PHOTO]))
    await orch.generate_proof_qr()
    phases.append(orch.continue_after_qr())
    session = await orch.open_facial_session(FakeCapturer([face()]))
    assert session.descriptor_length == api.settings.face_descriptor_length
    await session.capture()
    await session.confirm()
    phases.append(await orch.complete_facial())
    orch.rate_efficacy(CPF, 5)
    phases.append(await orch.submit_efficacy())

    assert phases == [
        Phase.EXAM,
        Phase.EVIDENCE,
        Phase.INDIVIDUAL_QR,
        Phase.FACIAL,
        Phase.EFFICACY,
        Phase.CLOSED,
    ]


# --- concurrency and cancellation ---


async def test_second_action_while_busy_is_rejected():
    api = make_api()
    orch = await ordered(api)
    api.gate = asyncio.Event()

    task = asyncio.create_task(orch.start_training())
    await asyncio.sleep(0)
    assert orch.busy
    with pytest.raises(BusyError):
        await orch.start_training()
    with pytest.raises(BusyError):
        orch.back_to_selection()

    api.gate.set()
    assert await task == Phase.PLAYBACK
    assert not orch.busy
    assert len(api.calls_to("create_turma")) == 1


async def test_cancel_aborts_inflight_call_and_resets():
    api = make_api()
    orch = await ordered(api)
    api.gate = asyncio.Event()

    task = asyncio.create_task(orch.start_training())
    await asyncio.sleep(0)
    await orch.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task
    assert not orch.busy
    assert orch.state.phase == Phase.SETUP
    assert orch.state.turma_id is None
    assert orch.summary is None
