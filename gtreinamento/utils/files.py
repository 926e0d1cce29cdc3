import base64
import binascii
import logging
import os
import re

from gtreinamento.config import settings

logger = logging.getLogger(__name__)

_DATA_URL = re.compile(r"^data:(?P<mime>[\w/+.-]+);base64,(?P<data>.+)$", re.DOTALL)

_EXTENSIONS = {
    "image/jpeg": ".jpg",
    "image/png": ".png",
    "image/webp": ".webp",
    "application/pdf": ".pdf",
}


def decode_data_url(value: str) -> tuple[str, bytes]:
    """Decode a ``data:<mime>;base64,...`` URL (or bare base64 JPEG)."""
    match = _DATA_URL.match(value.strip())
    mime, payload = (match.group("mime"), match.group("data")) if match else ("image/jpeg", value)
    try:
        return mime, base64.b64decode(payload, validate=False)
    except (binascii.Error, ValueError) as exc:
        raise ValueError("Imagem em base64 inválida") from exc


def extension_for(mime: str | None) -> str:
    """Stored extension, taken from the accepted MIME type only."""
    return _EXTENSIONS.get(mime or "", ".bin")


def check_upload_size(content: bytes) -> None:
    max_bytes = settings.max_upload_size_mb * 1024 * 1024
    if len(content) > max_bytes:
        raise ValueError(f"Arquivo excede o limite de {settings.max_upload_size_mb}MB.")


def store_upload(subdir: str, filename: str, content: bytes) -> str:
    """Write ``content`` under the upload dir and return the path relative to it."""
    target_dir = os.path.join(settings.upload_dir, subdir)
    os.makedirs(target_dir, exist_ok=True)
    with open(os.path.join(target_dir, filename), "wb") as f:
        f.write(content)
    relative = os.path.join(subdir, filename).replace(os.sep, "/")
    logger.info("Arquivo gravado: %s (%d bytes)", relative, len(content))
    return relative
