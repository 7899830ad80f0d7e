"""QR code rendering for key links."""

import base64
import io

import qrcode
from qrcode.image.pil import PilImage


def generate_qr_png(data: str) -> bytes:
    """Render ``data`` as a PNG QR code.

    Args:
        data: Data to encode in QR code

    Returns:
        PNG image bytes
    """
    qr = qrcode.QRCode(
        version=None,
        error_correction=qrcode.constants.ERROR_CORRECT_L,
        box_size=8,
        border=2,
    )
    qr.add_data(data)
    qr.make(fit=True)

    img = qr.make_image(
        fill_color="black", back_color="white", image_factory=PilImage
    )

    buffer = io.BytesIO()
    img.save(buffer, format="PNG")
    return buffer.getvalue()


def generate_qr_code(data: str) -> str:
    """Generate QR code image as base64 string for inline ``data:`` URLs."""
    return base64.b64encode(generate_qr_png(data)).decode()
