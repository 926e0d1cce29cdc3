import os

from conftest import EMPLOYEE_CPF, INSTRUCTOR_CPF, OTHER_CPF, auth_headers, make_trilha
from gtreinamento.config import settings

USERS = [{"CPF": EMPLOYEE_CPF, "NOME": "Carlos Pereira", "NOME_FUNCAO": "Eletricista"}, {"CPF": OTHER_CPF}]
JPEG = ("evidencia.jpg", b"\xff\xd8\xff\xe0fake", "image/jpeg")


async def _create(client, **extra) -> dict:
    resp = await client.post(
        "/api/turmas", json={"users": USERS, **extra}, headers=auth_headers(INSTRUCTOR_CPF)
    )
    assert resp.status_code == 201
    return resp.json()


async def test_create_turma(client, instructor):
    turma = await _create(client, obra_local="Obra Porto")
    assert turma["status"] == "em_andamento"
    assert turma["total_participantes"] == 2
    assert turma["criado_por"] == INSTRUCTOR_CPF
    assert turma["nome"].startswith("Treinamento coletivo - Obra Porto - ")


async def test_create_turma_requires_cpf(client, instructor):
    resp = await client.post(
        "/api/turmas", json={"users": [{"NOME": "Sem CPF"}]}, headers=auth_headers(INSTRUCTOR_CPF)
    )
    assert resp.status_code == 400


async def test_create_turma_is_instructor_only(client, employee):
    resp = await client.post("/api/turmas", json={"users": USERS}, headers=auth_headers(EMPLOYEE_CPF))
    assert resp.status_code == 403


async def test_turma_detail_counts_trainings(client, db, instructor):
    turma = await _create(client)
    _, videos = await make_trilha(db, videos=2)
    await client.post(
        "/api/user-trainings",
        json={"users": USERS[:1], "trainings": [{"material_id": str(v.id)} for v in videos], "turma_id": turma["id"]},
        headers=auth_headers(INSTRUCTOR_CPF),
    )
    resp = await client.get(f"/api/turmas/{turma['id']}", headers=auth_headers(INSTRUCTOR_CPF))
    detail = resp.json()
    assert detail["turma"]["total_treinados"] == 1
    by_cpf = {p["cpf"]: p for p in detail["participantes"]}
    assert by_cpf[EMPLOYEE_CPF]["videos_concluidos"] == 2
    assert by_cpf[EMPLOYEE_CPF]["funcao"] == "Eletricista"
    assert by_cpf[OTHER_CPF]["videos_concluidos"] == 0


async def test_evidence_upload_closes_turma(client, instructor):
    turma = await _create(client)
    resp = await client.post(
        f"/api/turmas/{turma['id']}/evidencias",
        data={"duracao_horas": "1", "duracao_minutos": "30"},
        files=[("files", JPEG), ("files", ("ata.pdf", b"%PDF-1.4", "application/pdf"))],
        headers=auth_headers(INSTRUCTOR_CPF),
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["turma"]["status"] == "finalizada"
    assert body["turma"]["duracao_treinamento_minutos"] == 90
    assert [e["ordem"] for e in body["evidencias"]] == [1, 2]
    assert os.path.isfile(os.path.join(settings.upload_dir, body["evidencias"][0]["arquivo_path"]))


async def test_evidence_upload_can_be_repeated(client, instructor):
    turma = await _create(client)
    url = f"/api/turmas/{turma['id']}/evidencias"
    for _ in range(2):
        resp = await client.post(
            url,
            data={"duracao_horas": "0", "duracao_minutos": "45"},
            files=[("files", JPEG)],
            headers=auth_headers(INSTRUCTOR_CPF),
        )
    assert [e["ordem"] for e in resp.json()["evidencias"]] == [2]


async def test_evidence_requires_duration_and_files(client, instructor):
    turma = await _create(client)
    url = f"/api/turmas/{turma['id']}/evidencias"

    no_duration = await client.post(
        url, data={"duracao_horas": "0", "duracao_minutos": "0"}, files=[("files", JPEG)],
        headers=auth_headers(INSTRUCTOR_CPF),
    )
    assert no_duration.status_code == 400
    assert no_duration.json()["detail"] == "Informe a duração do treinamento."

    no_files = await client.post(
        url, data={"duracao_horas": "1", "duracao_minutos": "0"}, headers=auth_headers(INSTRUCTOR_CPF)
    )
    assert no_files.status_code == 400

    wrong_type = await client.post(
        url, data={"duracao_horas": "1"}, files=[("files", ("a.txt", b"x", "text/plain"))],
        headers=auth_headers(INSTRUCTOR_CPF),
    )
    assert wrong_type.status_code == 400


async def test_evidence_extension_follows_content_type(client, instructor):
    turma = await _create(client)
    resp = await client.post(
        f"/api/turmas/{turma['id']}/evidencias",
        data={"duracao_horas": "1", "duracao_minutos": "0"},
        files=[("files", ("pagina.html", b"<script>alert(1)</script>", "image/jpeg"))],
        headers=auth_headers(INSTRUCTOR_CPF),
    )
    assert resp.status_code == 200
    path = resp.json()["evidencias"][0]["arquivo_path"]
    assert path.endswith(".jpg")
    assert os.path.isfile(os.path.join(settings.upload_dir, path))


async def test_media_is_served_to_signed_in_users(client, instructor):
    turma = await _create(client)
    resp = await client.post(
        f"/api/turmas/{turma['id']}/evidencias",
        data={"duracao_horas": "1", "duracao_minutos": "0"},
        files=[("files", JPEG)],
        headers=auth_headers(INSTRUCTOR_CPF),
    )
    path = resp.json()["evidencias"][0]["arquivo_path"]

    assert (await client.get(f"/api/media/{path}")).status_code == 401
    media = await client.get(f"/api/media/{path}", headers=auth_headers(INSTRUCTOR_CPF))
    assert media.status_code == 200
    assert media.content == JPEG[1]
    assert (await client.get("/api/media/../../etc/passwd", headers=auth_headers(INSTRUCTOR_CPF))).status_code == 404
