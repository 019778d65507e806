"""Scannable rendering of enrollment codes for the dashboard."""

import segno

from offerbridge.observability.logging import get_logger

logger = get_logger(__name__)

QR_SCALE = 6
QR_BORDER = 2


def render_enrollment_image(code: str) -> str | None:
    """PNG data URI of `code` as a QR symbol, or None if it cannot be encoded."""
    if not code:
        return None
    try:
        qr = segno.make_qr(code, error="m")
    except ValueError:
        # segno.DataOverflowError: code too long for any QR version
        logger.warning("enrollment code could not be rendered")
        return None
    return qr.png_data_uri(scale=QR_SCALE, border=QR_BORDER)
