from __future__ import annotations

import base64
from io import BytesIO
from urllib.parse import quote

import qrcode


def check_in_url(frontend_base: str, event_id: int, token: str) -> str:
    return f"{frontend_base}/checkin/{event_id}?token={quote(token, safe='')}&eventId={event_id}"


def render_png(data: str) -> bytes:
    img = qrcode.make(data)
    b = BytesIO()
    img.save(b, format="PNG")
    return b.getvalue()


def render_data_url(data: str) -> str:
    encoded = base64.b64encode(render_png(data)).decode("ascii")
    return f"data:image/png;base64,{encoded}"
