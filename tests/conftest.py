"""Test configuration helpers for import path setup and shared fakes."""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Callable

import httpx
import pytest

ROOT = Path(__file__).resolve().parents[1]
BACKEND_ROOT = ROOT / "backend"

backend_path = str(BACKEND_ROOT)
if backend_path not in sys.path:
    sys.path.insert(0, backend_path)

from config import Settings  # noqa: E402


def mock_client(handler: Callable[[httpx.Request], httpx.Response]) -> httpx.AsyncClient:
    """AsyncClient whose requests are answered by ``handler``."""
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def graph_error(status_code: int, message: str) -> httpx.Response:
    return httpx.Response(
        status_code,
        json={"error": {"message": message, "type": "OAuthException", "code": 100}},
    )


@pytest.fixture()
def make_settings():
    """Settings built from keyword arguments only (no .env, no environment)."""

    def factory(**overrides) -> Settings:
        defaults = {
            "facebook_page_access_token": "",
            "facebook_user_access_token": "",
            "facebook_app_secret": "",
            "youtube_api_key": "",
            "x_api_key": "",
            "x_api_key_secret": "",
            "x_access_token": "",
            "x_access_token_secret": "",
        }
        defaults.update(overrides)
        return Settings(_env_file=None, **defaults)

    return factory
