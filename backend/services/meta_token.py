"""Meta Page access token resolution.

Insights endpoints need a *Page* access token. Operators configure a user
token by hand, so the input is normalized first, then exchanged through
``GET /me/accounts`` for the token of the configured page. Successful
exchanges are cached in-process for a short TTL.
"""

import json
import logging
import re
import threading
import time
from typing import Callable, Optional

import httpx

from config import Settings
from services.errors import ConfigurationError, TokenResolutionError
from services.http import as_dict, graph_url, read_json, upstream_error_message

logger = logging.getLogger(__name__)

DEFAULT_CACHE_TTL_SECONDS = 5 * 60

_BEARER_PREFIX = re.compile(r"^Bearer\s+", re.IGNORECASE)


def normalize_access_token(value: Optional[str]) -> str:
    """Undo common copy/paste mistakes around a configured access token.

    Handles a leading ``Bearer``, wrapping quotes, a pasted JSON response
    (``{"access_token": "..."}``) and a pasted ``access_token=`` pair.
    """
    token = str(value or "").strip()
    token = _BEARER_PREFIX.sub("", token)

    if len(token) >= 2 and token[0] == token[-1] and token[0] in ("'", '"'):
        token = token[1:-1].strip()

    if token.startswith("{") and token.endswith("}"):
        try:
            parsed = json.loads(token)
        except ValueError:
            parsed = None
        if isinstance(parsed, dict) and isinstance(parsed.get("access_token"), str):
            token = parsed["access_token"].strip()

    if token.startswith("access_token="):
        token = token[len("access_token="):].strip()

    return token


class PageTokenCache:
    """TTL cache of page access tokens keyed by page id.

    Built once at startup and injected; thread-safe so it can be shared by
    any worker threads as well as the event loop.
    """

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_CACHE_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[str, tuple[str, float]] = {}
        self._lock = threading.Lock()

    def get(self, page_id: str) -> Optional[str]:
        with self._lock:
            entry = self._entries.get(page_id)
            if entry is None:
                return None
            token, fetched_at = entry
            if self._clock() - fetched_at >= self.ttl_seconds:
                del self._entries[page_id]
                return None
            return token

    def set(self, page_id: str, token: str) -> None:
        with self._lock:
            self._entries[page_id] = (token, self._clock())

    def invalidate(self, page_id: Optional[str] = None) -> None:
        with self._lock:
            if page_id is None:
                self._entries.clear()
            else:
                self._entries.pop(page_id, None)


class PageTokenResolver:
    """Exchanges a user access token for a page access token via /me/accounts."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        cache: PageTokenCache,
        graph_version: str = "v20.0",
    ):
        self.client = client
        self.cache = cache
        self.graph_version = graph_version

    async def resolve(self, page_id: str, user_access_token: str) -> str:
        user_token = normalize_access_token(user_access_token)
        if not user_token:
            raise TokenResolutionError("User access token is empty")

        cached = self.cache.get(page_id)
        if cached:
            return cached

        try:
            response = await self.client.get(
                graph_url(self.graph_version, "me", "accounts"),
                params={"access_token": user_token},
            )
        except httpx.HTTPError as e:
            raise TokenResolutionError(f"Failed to fetch /me/accounts: {e}") from e

        body = read_json(response)
        if not response.is_success:
            message = upstream_error_message(response, body)
            if message.startswith("HTTP "):
                message = f"Failed to fetch /me/accounts: {message[5:]}"
            raise TokenResolutionError(message, details=body)

        pages = as_dict(body).get("data")
        pages = pages if isinstance(pages, list) else []
        match = next(
            (as_dict(p) for p in pages if str(as_dict(p).get("id") or "") == page_id),
            None,
        )
        token = match.get("access_token") if match else None

        if not token:
            names = ", ".join(
                f"{as_dict(p).get('name') or 'Unknown'} ({as_dict(p).get('id') or 'no-id'})"
                for p in pages[:20]
            )
            raise TokenResolutionError(
                f"No Page access_token found for pageId={page_id}. Pages returned: {names}"
            )

        self.cache.set(page_id, token)
        logger.info(f"Resolved page access token for page {page_id}")
        return token


def legacy_user_token(settings: Settings) -> Optional[str]:
    """FACEBOOK_APP_SECRET when it actually holds a user token (``EA...``)."""
    secret = normalize_access_token(settings.facebook_app_secret)
    return secret if secret.startswith("EA") else None


async def resolve_page_token(
    resolver: PageTokenResolver, settings: Settings, page_id: str
) -> str:
    """Page token for insights, always derived when a user token is available.

    Tries FACEBOOK_USER_ACCESS_TOKEN, then FACEBOOK_APP_SECRET, then
    FACEBOOK_PAGE_ACCESS_TOKEN as the user token; if derivation fails the
    configured page token is used as-is.
    """
    candidate = settings.facebook_page_access_token or None
    user_token = (
        settings.facebook_user_access_token
        or settings.facebook_app_secret
        or candidate
    )
    if not user_token:
        raise ConfigurationError(
            "Missing Facebook user token: set FACEBOOK_USER_ACCESS_TOKEN "
            "(recommended) or FACEBOOK_APP_SECRET (legacy)"
        )

    try:
        return await resolver.resolve(page_id, user_token)
    except TokenResolutionError as e:
        if candidate:
            logger.warning(
                f"Page token derivation failed ({e.message}); "
                "falling back to FACEBOOK_PAGE_ACCESS_TOKEN"
            )
            return normalize_access_token(candidate)
        raise


async def page_token_for_page_routes(
    resolver: PageTokenResolver, settings: Settings, page_id: str
) -> str:
    """Page token for the Facebook page routes.

    A configured FACEBOOK_PAGE_ACCESS_TOKEN is used directly; otherwise one
    is derived from FACEBOOK_USER_ACCESS_TOKEN or a legacy user token.
    """
    if settings.facebook_page_access_token:
        return normalize_access_token(settings.facebook_page_access_token)

    user_token = settings.facebook_user_access_token or legacy_user_token(settings)
    if not user_token:
        raise ConfigurationError(
            "Server configuration error: set FACEBOOK_PAGE_ACCESS_TOKEN (recommended) "
            "or FACEBOOK_USER_ACCESS_TOKEN to derive a Page token via /me/accounts."
        )
    return await resolver.resolve(page_id, user_token)


def any_user_token(settings: Settings) -> Optional[str]:
    """Any token that might be a user token, for re-deriving a page token."""
    return (
        settings.facebook_user_access_token
        or settings.facebook_page_access_token
        or legacy_user_token(settings)
        or None
    )
