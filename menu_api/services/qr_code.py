import base64
import io

import qrcode
from qrcode.constants import ERROR_CORRECT_H
from qrcode.exceptions import DataOverflowError

from menu_api.errors import BadRequestError


def generate_qr_png(text: str) -> bytes:
    qr = qrcode.QRCode(error_correction=ERROR_CORRECT_H, box_size=10, border=4)
    qr.add_data(text)
    qr.make(fit=True)
    img = qr.make_image(fill_color="black", back_color="white")
    buffer = io.BytesIO()
    img.save(buffer, format="PNG")
    return buffer.getvalue()


def generate_qr_data_url(text: str) -> str:
    encoded = base64.b64encode(generate_qr_png(text)).decode("ascii")
    return f"data:image/png;base64,{encoded}"


def qr_code_for_text(text: str) -> str:
    if not text or not text.strip():
        raise BadRequestError("Text is required to generate a QR code.")
    try:
        return generate_qr_data_url(text)
    except DataOverflowError:
        raise BadRequestError("Text is too long to encode as a QR code.")
