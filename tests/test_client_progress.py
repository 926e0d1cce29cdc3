import pytest

from fake_api import FakePortalApi
from gtreinamento.client.errors import ApiError, ValidationError
from gtreinamento.client.progress import ProgressTracker
from gtreinamento.client.session import PortalSession, profile_from_user
from gtreinamento.client.storage import PROFILE_KEY, LocalStore

CPF = "11122233344"


def position(tracker: ProgressTracker, seconds: float, video_id: str = "v1") -> bool:
    return tracker.update_position(
        CPF, video_id=video_id, video_versao=1, trilha_id="t1", current_time_sec=seconds, duration_sec=300
    )


def test_position_writes_are_throttled():
    tracker = ProgressTracker(FakePortalApi(), LocalStore())

    assert position(tracker, 0)
    assert not position(tracker, 4)
    assert position(tracker, 12)
    assert tracker.last_watched(CPF).current_time_sec == 12
    # another video starts its own interval
    assert position(tracker, 13, "v2")
    assert tracker.last_watched(CPF).video_id == "v2"


def test_invalid_cpf_is_not_tracked():
    tracker = ProgressTracker(FakePortalApi(), LocalStore())

    assert not tracker.update_position("123", video_id="v1", video_versao=1, trilha_id="t1", current_time_sec=5)
    assert tracker.last_watched("123") is None


async def test_completion_clears_last_watched():
    api = FakePortalApi()
    tracker = ProgressTracker(api, LocalStore())
    position(tracker, 290)

    completed_at = await tracker.record_completion(CPF, "v1", 1)
    assert completed_at.year == 2026
    assert tracker.last_watched(CPF) is None
    assert api.calls_to("complete_material") == [{"cpf": CPF, "material_id": "v1", "material_versao": 1}]


async def test_failed_completion_keeps_position():
    api = FakePortalApi()
    api.failures["complete_material"] = ApiError(500, "Erro interno")
    tracker = ProgressTracker(api, LocalStore())
    position(tracker, 290)

    assert await tracker.record_completion(CPF, "v1", 1) is None
    assert tracker.last_watched(CPF).current_time_sec == 290


@pytest.mark.parametrize(
    "user, expected",
    [
        ({"cpf": CPF, "nome": "Ana", "permissao": "instrutor"}, True),
        ({"cpf": CPF, "nome": "Ana", "permissao": "colaborador", "instrutor": True}, True),
        ({"cpf": CPF, "nome": "Ana", "permissao": "colaborador"}, False),
    ],
)
def test_profile_instructor_flag(user, expected):
    assert profile_from_user(user).instrutor is expected


async def test_session_theme_and_validation():
    store = LocalStore()
    session = PortalSession(FakePortalApi(), store)

    assert session.theme == "light"
    session.set_theme("dark")
    assert session.theme == "dark"
    with pytest.raises(ValidationError):
        session.set_theme("sepia")
    with pytest.raises(ValidationError):
        await session.login("123", "x")
    assert session.profile is None

    store.set(PROFILE_KEY, {"cpf": CPF, "nome": "Carlos Pereira"})
    assert session.profile.nome == "Carlos Pereira"
    with pytest.raises(ValidationError):
        await session.submit_satisfaction(7)
