"""Token and QR image helpers for individual provas taken after a collective session.

The instructor projects a QR code that opens the portal with
``?coletivoProvaToken=<token>``; each participant's device then resolves the
token to the trilhas and CPFs it authorizes.
"""

import io
import logging
import secrets
from urllib.parse import urlencode

import qrcode

from gtreinamento.config import settings

logger = logging.getLogger(__name__)

TOKEN_QUERY_PARAM = "coletivoProvaToken"
_TOKEN_BYTES = 24  # 32 URL-safe characters

_TRAININGS_ROUTE = "/home/treinamentos"


def generate_token() -> str:
    return secrets.token_urlsafe(_TOKEN_BYTES)


def build_redirect_url(token: str) -> str:
    base = settings.public_app_url.rstrip("/")
    return f"{base}{_TRAININGS_ROUTE}?{urlencode({TOKEN_QUERY_PARAM: token})}"


def build_qr_image_url(token: str) -> str:
    return f"{settings.public_api_base}/api/provas/objectiva/instrutor/individual/qr/{token}/image"


def generate_qr_image(data: str) -> bytes:
    """PNG QR code for ``data``.

    Level H error correction keeps it scannable from a phone pointed at a
    projector screen.
    """
    qr = qrcode.QRCode(
        version=None,
        error_correction=qrcode.constants.ERROR_CORRECT_H,
        box_size=10,
        border=4,
    )
    qr.add_data(data)
    qr.make(fit=True)
    img = qr.make_image(fill_color="black", back_color="white")
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()
