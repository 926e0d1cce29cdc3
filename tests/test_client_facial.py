import pytest

from fake_api import FakeCapturer, FakePortalApi
from gtreinamento.client.errors import CameraUnavailableError, NoFaceDetectedError, ValidationError
from gtreinamento.client.facial import FaceCapture, FacialStatus, FacialVerificationSession

CPF = "11122233344"
OTHER = "55566677788"
ROSTER = [
    {"cpf": CPF, "nome": "Carlos Pereira", "raw": {"CPF": CPF}},
    {"cpf": OTHER, "nome": "Ana Lima", "raw": {"CPF": OTHER}},
    {"cpf": "123", "nome": "Sem Documento", "raw": {}},
]


def face(length: int = 128) -> FaceCapture:
    return FaceCapture(descriptor=[0.5] * length, photo="data:image/jpeg;base64,AAAA")


async def opened(api, outcomes) -> FacialVerificationSession:
    session = FacialVerificationSession(api, FakeCapturer(outcomes), ROSTER)
    await session.open()
    return session


async def test_roster_ignores_invalid_cpfs():
    session = await opened(FakePortalApi(), [])

    assert session.status == FacialStatus.READY
    assert session.pending_cpfs == [CPF, OTHER]
    assert not session.all_validated


async def test_camera_unavailable_closes_session():
    capturer = FakeCapturer(start_error=CameraUnavailableError("Permissão de câmera negada"))
    session = FacialVerificationSession(FakePortalApi(), capturer, ROSTER)

    with pytest.raises(CameraUnavailableError):
        await session.open()
    assert session.status == FacialStatus.CLOSED
    assert session.message == "Permissão de câmera negada"


async def test_no_face_detected_sends_nothing():
    api = FakePortalApi()
    session = await opened(api, [NoFaceDetectedError()])

    with pytest.raises(NoFaceDetectedError):
        await session.capture()
    assert session.status == FacialStatus.READY
    assert api.calls == []


async def test_short_descriptor_is_rejected():
    api = FakePortalApi()
    session = await opened(api, [face(64)])

    with pytest.raises(ValidationError):
        await session.capture()
    assert "match_face" not in api.names()


async def test_descriptor_length_follows_face_model():
    api = FakePortalApi()
    capturer = FakeCapturer([face(128), face(64)])
    session = FacialVerificationSession(api, capturer, ROSTER, descriptor_length=64)
    await session.open()

    with pytest.raises(ValidationError):
        await session.capture()
    await session.capture()
    (call,) = api.calls_to("match_face")
    assert len(call["descriptor"]) == 64


async def test_unmatched_capture_is_linked_manually():
    api = FakePortalApi()
    session = await opened(api, [face()])

    await session.capture()
    assert session.status == FacialStatus.UNMATCHED
    assert session.selected_cpf == CPF
    with pytest.raises(ValidationError):
        await session.confirm_match()

    result = await session.confirm(OTHER)
    assert result.nome == "Ana Lima"
    assert session.status == FacialStatus.SAVED
    assert session.pending_cpfs == [CPF]
    assert api.calls_to("enroll_face") == [{"cpf": OTHER, "origem": "treinamento-coletivo"}]


async def test_match_outside_roster_is_not_saved():
    api = FakePortalApi()
    api.match_response = {"match": {"cpf": "99988877766", "nome": "Visitante", "distance": 0.3}}
    session = await opened(api, [face()])

    await session.capture()
    assert session.status == FacialStatus.MATCHED
    assert await session.confirm_match() is None
    assert session.status == FacialStatus.UNMATCHED
    assert "enroll_face" not in api.names()


async def test_reject_match_then_confirm_other_participant():
    api = FakePortalApi()
    api.match_response = {"match": {"cpf": CPF, "nome": "Carlos Pereira", "distance": 0.4}}
    session = await opened(api, [face()])

    await session.capture()
    session.reject_match()
    assert session.status == FacialStatus.UNMATCHED
    await session.confirm(OTHER)
    assert list(session.validated) == [OTHER]


async def test_complete_requires_every_participant():
    api = FakePortalApi()
    session = await opened(api, [face(), face()])

    await session.capture()
    await session.confirm(CPF)
    with pytest.raises(ValidationError):
        session.complete()

    await session.capture()
    await session.confirm(OTHER)
    assert [r.nome for r in session.complete()] == ["Ana Lima", "Carlos Pereira"]


async def test_confirm_without_capture_fails():
    session = await opened(FakePortalApi(), [])

    with pytest.raises(ValidationError):
        await session.confirm(CPF)
