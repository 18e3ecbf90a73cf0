"""Minimal HTML pages shown in the browser at the end of the OAuth redirect."""

from __future__ import annotations

from html import escape
from http import HTTPStatus

from fastapi.responses import HTMLResponse

_RETURN_HINT = "Return to the app and try again."

_TEMPLATE = """<!doctype html>
<html lang="en">
<head>
  <meta charset="utf-8" />
  <meta name="viewport" content="width=device-width, initial-scale=1" />
  <title>{title}</title>
  <style>body{{font-family:system-ui,-apple-system,Segoe UI,Roboto,Arial,sans-serif;max-width:720px;margin:40px auto;padding:0 16px;line-height:1.45}}</style>
</head>
<body>
<h1>{heading}</h1>
{paragraphs}
</body>
</html>"""


def render_page(
    title: str,
    heading: str,
    *paragraphs: str,
    status_code: int = HTTPStatus.OK,
) -> HTMLResponse:
    """Render a status page; every piece of text is HTML-escaped."""
    body = "\n".join(f"<p>{escape(text)}</p>" for text in paragraphs)
    html = _TEMPLATE.format(
        title=escape(title), heading=escape(heading), paragraphs=body
    )
    return HTMLResponse(
        content=html,
        status_code=status_code,
        headers={"cache-control": "no-store"},
    )


def connected_page() -> HTMLResponse:
    return render_page(
        "SmartThings Auth - Connected",
        "Connected",
        "You can close this tab and return to the app.",
    )


def already_connected_page() -> HTMLResponse:
    return render_page(
        "SmartThings Auth",
        "Already connected",
        "You can close this tab and return to the app.",
    )


def failure_page(message: str, status_code: int = HTTPStatus.OK) -> HTMLResponse:
    return render_page(
        "SmartThings Auth - Error",
        "Authentication failed",
        message,
        _RETURN_HINT,
        status_code=status_code,
    )


def unknown_session_page() -> HTMLResponse:
    return failure_page("This login session is not recognized or has expired.")


__all__ = [
    "already_connected_page",
    "connected_page",
    "failure_page",
    "render_page",
    "unknown_session_page",
]
