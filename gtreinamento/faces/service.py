import logging
import uuid

import numpy as np
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from gtreinamento.config import settings
from gtreinamento.faces.models import Face
from gtreinamento.faces.schemas import FaceCandidate, FaceEnrollRequest, FaceMatchResult
from gtreinamento.utils.files import decode_data_url, extension_for, store_upload

logger = logging.getLogger(__name__)


def rank_candidates(
    descriptor: list[float], faces: list[Face], limit: int = 3
) -> list[FaceCandidate]:
    """Closest enrolled identities by Euclidean distance, one entry per CPF."""
    if not faces:
        return []
    probe = np.asarray(descriptor, dtype=np.float64)
    known = np.asarray([f.descriptor for f in faces], dtype=np.float64)
    distances = np.linalg.norm(known - probe, axis=1)

    best: dict[str, FaceCandidate] = {}
    for face, distance in zip(faces, distances.tolist()):
        current = best.get(face.cpf)
        if current is not None and current.distance <= distance:
            continue
        best[face.cpf] = FaceCandidate(
            cpf=face.cpf,
            nome=face.usuario_nome,
            distance=round(distance, 4),
            confidence=round(min(1.0, max(0.0, 1.0 - distance)), 4),
        )
    return sorted(best.values(), key=lambda c: c.distance)[:limit]


async def match_face(
    db: AsyncSession,
    descriptor: list[float],
    threshold: float | None = None,
    limit: int = 3,
) -> FaceMatchResult:
    threshold = threshold or settings.face_match_threshold
    result = await db.execute(select(Face))
    faces = [f for f in result.scalars().all() if len(f.descriptor) == len(descriptor)]
    candidates = rank_candidates(descriptor, faces, limit)
    match = candidates[0] if candidates and candidates[0].distance <= threshold else None
    logger.info(
        "Face match: enrolled=%d best=%s matched=%s",
        len(faces),
        candidates[0].distance if candidates else None,
        match is not None,
    )
    return FaceMatchResult(match=match, candidates=candidates, threshold=threshold)


async def enroll_face(db: AsyncSession, data: FaceEnrollRequest, criado_por: str | None) -> Face:
    foto_path = None
    if data.foto_base64:
        mime, content = decode_data_url(data.foto_base64)
        foto_path = store_upload(
            f"faces/{data.cpf}", f"{uuid.uuid4().hex}{extension_for(mime)}", content
        )
    user = data.user or {}
    face = Face(
        cpf=data.cpf,
        usuario_nome=user.get("NOME") or user.get("nome"),
        descriptor=list(data.descriptor),
        foto_path=foto_path,
        origem=data.origem,
        criado_por=criado_por,
    )
    db.add(face)
    await db.commit()
    await db.refresh(face)
    logger.info("Face cadastrada: cpf=%s origem=%s", face.cpf, face.origem)
    return face
