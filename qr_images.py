import base64
from io import BytesIO

import qrcode
import segno
from qrcode.constants import ERROR_CORRECT_M


def generate_qr_png(data: str, box_size: int = 10, border: int = 4) -> BytesIO:
    """Render ``data`` as a PNG QR code held in memory."""
    qr = qrcode.QRCode(error_correction=ERROR_CORRECT_M, box_size=box_size, border=border)
    qr.add_data(data)
    qr.make(fit=True)
    buffer = BytesIO()
    qr.make_image(fill_color="black", back_color="white").save(buffer, format="PNG")
    buffer.seek(0)
    return buffer


def qr_data_url(data: str) -> str:
    png = generate_qr_png(data).getvalue()
    return "data:image/png;base64," + base64.b64encode(png).decode("ascii")


def generate_qr_svg(data: str, scale: int = 10) -> BytesIO:
    qr = segno.make(data, error="m")
    buffer = BytesIO()
    qr.save(buffer, kind="svg", scale=max(1, scale))
    buffer.seek(0)
    return buffer
