"""
QR rendering for pairing codes.

The API hands out PNG data URLs; the terminal printer is for local
development (PRINT_QR_IN_TERMINAL).
"""

import base64
import io
import logging
import sys
from typing import TextIO

import qrcode

logger = logging.getLogger(__name__)


def _build_qr(code: str, box_size: int = 10, border: int = 4) -> qrcode.QRCode:
    qr = qrcode.QRCode(
        error_correction=qrcode.constants.ERROR_CORRECT_M,
        box_size=box_size,
        border=border,
    )
    qr.add_data(code)
    qr.make(fit=True)
    return qr


def render_qr_png(code: str) -> bytes:
    """Render a pairing code as PNG bytes."""
    img = _build_qr(code).make_image(fill_color="#000000", back_color="#FFFFFF").convert("RGB")
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


def render_qr_data_url(code: str) -> str:
    """Render a pairing code as "data:image/png;base64,..."."""
    encoded = base64.b64encode(render_qr_png(code)).decode("ascii")
    return f"data:image/png;base64,{encoded}"


def print_terminal_qr(tenant_id: str, code: str, out: TextIO | None = None) -> None:
    """Print a pairing code as a scannable terminal QR."""
    out = out or sys.stdout
    out.write(f"\nQR code for instance {tenant_id}:\n")
    _build_qr(code, box_size=1, border=1).print_ascii(out=out, invert=True)
    out.flush()
