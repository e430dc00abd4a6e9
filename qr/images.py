# qr/images.py

import io

import qrcode
from qrcode.constants import ERROR_CORRECT_H

from core.config import FRONTEND_URL

def verification_url(code_id: str) -> str:
    """What the printed QR code encodes: the frontend verification page for this code."""
    return f"{FRONTEND_URL}/verify/{code_id}"

def image_path(code_id: str) -> str:
    return f"/qrcodes/{code_id}/image"

def render_qr_png(data: str, box_size: int = 10, border: int = 1) -> bytes:
    """Renders `data` as a PNG QR code with error correction level H."""
    qr = qrcode.QRCode(error_correction=ERROR_CORRECT_H, box_size=box_size, border=border)
    qr.add_data(data)
    qr.make(fit=True)
    img = qr.make_image(fill_color="black", back_color="white")
    buffer = io.BytesIO()
    img.save(buffer, format="PNG")
    return buffer.getvalue()
