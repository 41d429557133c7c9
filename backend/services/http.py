"""Shared httpx helpers for upstream API calls."""

from typing import Any, Optional
from urllib.parse import quote

import httpx

from config import get_settings

META_GRAPH_HOST = "https://graph.facebook.com"


def new_client(timeout: Optional[float] = None, **kwargs: Any) -> httpx.AsyncClient:
    """AsyncClient with the configured per-call upstream timeout."""
    if timeout is None:
        timeout = get_settings().upstream_timeout_seconds
    return httpx.AsyncClient(timeout=timeout, **kwargs)


def graph_url(graph_version: str, *path: str) -> str:
    """Meta Graph API URL, e.g. graph_url("v20.0", page_id, "insights")."""
    quoted = "/".join(quote(str(p), safe="") for p in path)
    return f"{META_GRAPH_HOST}/{graph_version}/{quoted}"


def as_dict(value: Any) -> dict:
    """The value when it is a dict, otherwise an empty dict."""
    return value if isinstance(value, dict) else {}


def read_json(response: httpx.Response) -> Any:
    """Decode a JSON body; None for empty, non-JSON or malformed bodies."""
    content_type = response.headers.get("content-type", "").lower()
    if "json" not in content_type or not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return None


def upstream_error_message(response: httpx.Response, body: Any) -> str:
    """Best error text for a failed call: the API's own message, else the status line."""
    err = as_dict(as_dict(body).get("error"))
    message = err.get("message")
    if isinstance(message, str) and message:
        return message
    return f"HTTP {response.status_code} {response.reason_phrase}".strip()


def redact(text: str, *secrets: Optional[str]) -> str:
    """Replace each secret occurrence with ``***`` for logging."""
    for secret in secrets:
        if secret:
            text = text.replace(secret, "***")
    return text
