import pytest

from fake_api import FakePortalApi, prova
from gtreinamento.client.errors import NotFoundError, ValidationError
from gtreinamento.client.exam import ExamEngine, ExamMode, ExamStatus, answer_styling

CPF = "11122233344"


async def loaded(api: FakePortalApi, **kwargs) -> ExamEngine:
    engine = ExamEngine(api, "t1", **kwargs)
    await engine.load()
    return engine


async def test_load_missing_prova_raises_not_found():
    engine = ExamEngine(FakePortalApi(), "t1", cpf=CPF)

    with pytest.raises(NotFoundError):
        await engine.load()
    assert engine.status == ExamStatus.IDLE
    assert engine.prova is None


async def test_answers_are_checked_against_prova():
    engine = await loaded(FakePortalApi(provas={"t1": prova("t1")}), cpf=CPF)

    with pytest.raises(ValidationError):
        engine.answer("t1-q9", "t1-q1-certa")
    with pytest.raises(ValidationError):
        engine.answer("t1-q1", "t1-q2-certa")
    engine.answer("t1-q1", "t1-q1-certa")
    assert engine.status == ExamStatus.ANSWERED
    assert engine.unanswered() == ["t1-q2"]
    assert not engine.is_complete


async def test_incomplete_answers_are_not_sent():
    api = FakePortalApi(provas={"t1": prova("t1")})
    engine = await loaded(api, cpf=CPF)
    engine.answer("t1-q1", "t1-q1-certa")

    with pytest.raises(ValidationError, match="Responda todas"):
        await engine.submit()
    assert "submit_prova" not in api.names()


async def test_individual_submit_carries_token():
    api = FakePortalApi(provas={"t1": prova("t1")})
    engine = await loaded(api, cpf=CPF, token="tok-123")
    engine.answer("t1-q1", "t1-q1-certa")
    engine.answer("t1-q2", "t1-q2-certa")

    result = await engine.submit()
    assert engine.aprovado
    assert engine.status == ExamStatus.SUBMITTED
    assert result["nota"] == 10.0
    (call,) = api.calls_to("submit_prova")
    assert call["cpf"] == CPF
    assert call["token"] == "tok-123"

    with pytest.raises(ValidationError, match="já enviada"):
        engine.answer("t1-q1", "t1-q1-errada")


async def test_collective_submit_needs_participants():
    engine = await loaded(FakePortalApi(provas={"t1": prova("t1", questoes=1)}), mode=ExamMode.COLLECTIVE)
    engine.answer("t1-q1", "t1-q1-certa")

    with pytest.raises(ValidationError):
        await engine.submit(users=[])
    assert engine.result is None


async def test_retry_starts_a_new_attempt():
    api = FakePortalApi(provas={"t1": prova("t1", questoes=1)})
    engine = await loaded(api, cpf=CPF)
    engine.answer("t1-q1", "t1-q1-errada")
    await engine.submit()
    assert not engine.aprovado

    engine.retry()
    assert engine.result is None
    assert engine.answers == {}
    assert engine.status == ExamStatus.READY

    engine.answer("t1-q1", "t1-q1-certa")
    await engine.submit()
    first, second = api.calls_to("submit_prova")
    assert first["idempotency_key"] != second["idempotency_key"]


def test_answer_styling():
    data = prova("t1")
    result = {
        "gabarito": [
            {"questao_id": "t1-q1", "opcao_marcada_id": "t1-q1-certa", "opcao_correta_id": "t1-q1-certa"},
            {"questao_id": "t1-q2", "opcao_marcada_id": "t1-q2-errada", "opcao_correta_id": "t1-q2-certa"},
        ]
    }

    styling = answer_styling(data, result)
    assert styling["t1-q1"] == {"t1-q1-certa": "correct", "t1-q1-errada": "neutral"}
    assert styling["t1-q2"] == {"t1-q2-certa": "correct", "t1-q2-errada": "incorrect"}
    assert answer_styling(data, None)["t1-q1"] == {"t1-q1-certa": "neutral", "t1-q1-errada": "neutral"}
