"""Small urllib helpers shared by the HTTP-backed collectors."""

from __future__ import annotations

import os
import ssl
import urllib.request

try:
    import certifi
except Exception:  # pragma: no cover - fallback when optional dependency unavailable
    certifi = None


USER_AGENT = "DeskPulse/0.1"


def build_ssl_context() -> ssl.SSLContext:
    """TLS context for remote APIs with explicit CA handling."""
    ca_bundle = os.environ.get("DESKPULSE_CA_BUNDLE", "").strip()
    if ca_bundle:
        return ssl.create_default_context(cafile=ca_bundle)

    if certifi is not None:
        return ssl.create_default_context(cafile=certifi.where())

    return ssl.create_default_context()


def build_request(
    url: str,
    method: str = "GET",
    headers: dict[str, str] | None = None,
    data: bytes | None = None,
) -> urllib.request.Request:
    request = urllib.request.Request(url, data=data, method=method)
    request.add_header("User-Agent", USER_AGENT)
    for key, value in (headers or {}).items():
        request.add_header(key, value)
    return request


def read_text(request: urllib.request.Request, timeout: float) -> str:
    """Perform the request and return the decoded body.

    Raises ``urllib.error.URLError`` (``HTTPError`` for non-2xx), ``TimeoutError``
    or ``OSError``; callers decide what a failure means for their collector.
    """
    context = build_ssl_context() if request.full_url.startswith("https:") else None
    with urllib.request.urlopen(request, timeout=timeout, context=context) as response:
        return response.read().decode("utf-8", errors="replace")
