import base64

from sqlalchemy import func, select

from conftest import EMPLOYEE_CPF, INSTRUCTOR_CPF, OTHER_CPF, auth_headers, make_trilha, make_user
from gtreinamento.database import async_session
from gtreinamento.turmas.models import TurmaParticipante
from gtreinamento.user_trainings.models import AvaliacaoEficacia, UserTraining

PHOTO = "data:image/jpeg;base64," + base64.b64encode(b"\xff\xd8fake-jpeg").decode()


async def _count(model) -> int:
    async with async_session() as s:
        return (await s.execute(select(func.count()).select_from(model))).scalar_one()


async def _turma(client, users) -> str:
    resp = await client.post(
        "/api/turmas", json={"users": users, "obra_local": "Obra Porto"}, headers=auth_headers(INSTRUCTOR_CPF)
    )
    assert resp.status_code == 201
    return resp.json()["id"]


async def test_completion_is_recorded_once(client, db, employee):
    _, (video,) = await make_trilha(db)
    body = {"cpf": EMPLOYEE_CPF, "material_id": str(video.id), "material_versao": 1}

    first = await client.post("/api/user-trainings/complete", json=body, headers=auth_headers(EMPLOYEE_CPF))
    second = await client.post("/api/user-trainings/complete", json=body, headers=auth_headers(EMPLOYEE_CPF))

    assert first.json()["inserted"] == 1
    assert second.json()["inserted"] == 0
    assert second.json()["completed_at"] == first.json()["completed_at"]
    assert await _count(UserTraining) == 1

    listed = await client.get(
        f"/api/user-trainings/completions/videos/{EMPLOYEE_CPF}", headers=auth_headers(EMPLOYEE_CPF)
    )
    assert listed.json()[0]["trilha_titulo"] == "Segurança em Altura"


async def test_new_version_is_a_new_completion(client, db, employee):
    _, (video,) = await make_trilha(db)
    for versao in (1, 2):
        await client.post(
            "/api/user-trainings/complete",
            json={"cpf": EMPLOYEE_CPF, "material_id": str(video.id), "material_versao": versao},
            headers=auth_headers(EMPLOYEE_CPF),
        )
    assert await _count(UserTraining) == 2


async def test_employee_cannot_complete_for_someone_else(client, db, employee):
    _, (video,) = await make_trilha(db)
    resp = await client.post(
        "/api/user-trainings/complete",
        json={"cpf": OTHER_CPF, "material_id": str(video.id)},
        headers=auth_headers(EMPLOYEE_CPF),
    )
    assert resp.status_code == 403


async def test_collective_attendance_is_idempotent(client, db, instructor, employee):
    _, videos = await make_trilha(db, videos=2)
    users = [{"CPF": EMPLOYEE_CPF, "NOME": "Carlos Pereira"}, {"CPF": OTHER_CPF, "NOME": "Bruna", "EXTRA": "x"}]
    turma_id = await _turma(client, users)
    body = {
        "users": users,
        "trainings": [{"tipo": "video", "material_id": str(v.id), "material_versao": 1} for v in videos],
        "turma_id": turma_id,
    }

    first = await client.post("/api/user-trainings", json=body, headers=auth_headers(INSTRUCTOR_CPF))
    again = await client.post("/api/user-trainings", json=body, headers=auth_headers(INSTRUCTOR_CPF))

    assert first.status_code == 201
    assert first.json() == {"inserted": 4}
    assert again.json() == {"inserted": 0}
    async with async_session() as s:
        rows = (await s.execute(select(UserTraining).where(UserTraining.cpf == OTHER_CPF))).scalars().all()
    assert {r.obra_local for r in rows} == {"Obra Porto"}
    assert rows[0].usuario_raw["EXTRA"] == "x"


async def test_face_evidence_attaches_to_turma_rows(client, db, instructor, employee):
    _, (video,) = await make_trilha(db, procedimento_id="PR-1")
    users = [{"CPF": EMPLOYEE_CPF, "NOME": "Carlos Pereira"}]
    turma_id = await _turma(client, users)
    await client.post(
        "/api/user-trainings",
        json={"users": users, "trainings": [{"material_id": str(video.id)}], "turma_id": turma_id},
        headers=auth_headers(INSTRUCTOR_CPF),
    )

    resp = await client.post(
        "/api/user-trainings/face-evidence",
        json={"turma_id": turma_id, "captures": [{"cpf": EMPLOYEE_CPF, "foto_base64": PHOTO}]},
        headers=auth_headers(INSTRUCTOR_CPF),
    )
    assert resp.json() == {"processed": 1, "updated": 1}
    async with async_session() as s:
        row = (await s.execute(select(UserTraining))).scalar_one()
    assert row.foto_evidencia_path == f"evidencias_faciais/{turma_id}/{EMPLOYEE_CPF}.jpg"
    assert row.evidencia_facial_em is not None


async def test_turma_efficacy_applies_to_required_trilhas(client, db, instructor, employee):
    _, (required,) = await make_trilha(db, "NR-35", eficacia_obrigatoria=True)
    _, (optional,) = await make_trilha(db, "NR-10")
    await make_user(db, OTHER_CPF, "Bruna Costa")
    users = [{"CPF": EMPLOYEE_CPF}, {"CPF": OTHER_CPF}]
    turma_id = await _turma(client, users)
    await client.post(
        "/api/user-trainings",
        json={
            "users": users,
            "trainings": [{"material_id": str(required.id)}, {"material_id": str(optional.id)}],
            "turma_id": turma_id,
        },
        headers=auth_headers(INSTRUCTOR_CPF),
    )

    body = {"turma_id": turma_id, "avaliacoes": [{"cpf": EMPLOYEE_CPF, "nivel": 4}, {"cpf": OTHER_CPF, "nivel": 2}]}
    resp = await client.post("/api/user-trainings/eficacia/turma", json=body, headers=auth_headers(INSTRUCTOR_CPF))
    assert resp.json() == {"processed": 2, "updated": 2}

    body["avaliacoes"][0]["nivel"] = 5
    await client.post("/api/user-trainings/eficacia/turma", json=body, headers=auth_headers(INSTRUCTOR_CPF))
    async with async_session() as s:
        ratings = {r.cpf: r.nivel for r in (await s.execute(select(AvaliacaoEficacia))).scalars()}
    assert ratings == {EMPLOYEE_CPF: 5, OTHER_CPF: 2}


async def test_turma_covers_participants_trained_before(client, db, instructor, employee):
    _, (video,) = await make_trilha(db, "NR-35", eficacia_obrigatoria=True)
    await client.post(
        "/api/user-trainings/complete",
        json={"cpf": EMPLOYEE_CPF, "material_id": str(video.id), "material_versao": 1},
        headers=auth_headers(EMPLOYEE_CPF),
    )
    users = [{"CPF": EMPLOYEE_CPF, "NOME": "Carlos Pereira"}]
    turma_id = await _turma(client, users)

    bulk = await client.post(
        "/api/user-trainings",
        json={"users": users, "trainings": [{"material_id": str(video.id)}], "turma_id": turma_id},
        headers=auth_headers(INSTRUCTOR_CPF),
    )
    assert bulk.json() == {"inserted": 0}

    face = await client.post(
        "/api/user-trainings/face-evidence",
        json={"turma_id": turma_id, "captures": [{"cpf": EMPLOYEE_CPF, "foto_base64": PHOTO}]},
        headers=auth_headers(INSTRUCTOR_CPF),
    )
    assert face.json() == {"processed": 1, "updated": 1}
    async with async_session() as s:
        participante = (await s.execute(select(TurmaParticipante))).scalar_one()
    assert participante.foto_evidencia_path == f"evidencias_faciais/{turma_id}/{EMPLOYEE_CPF}.jpg"

    rating = await client.post(
        "/api/user-trainings/eficacia/turma",
        json={"turma_id": turma_id, "avaliacoes": [{"cpf": EMPLOYEE_CPF, "nivel": 3}]},
        headers=auth_headers(INSTRUCTOR_CPF),
    )
    assert rating.json() == {"processed": 1, "updated": 1}

    detail = await client.get(f"/api/turmas/{turma_id}", headers=auth_headers(INSTRUCTOR_CPF))
    (row,) = detail.json()["participantes"]
    assert row["videos_concluidos"] == 1
    assert row["evidencia_facial_em"] is not None


async def test_efficacy_rating_range(client, db, employee):
    trilha, _ = await make_trilha(db, eficacia_obrigatoria=True)
    resp = await client.post(
        "/api/user-trainings/eficacia/trilha",
        json={"cpf": EMPLOYEE_CPF, "trilha_id": str(trilha.id), "nivel": 6},
        headers=auth_headers(EMPLOYEE_CPF),
    )
    assert resp.status_code == 422
