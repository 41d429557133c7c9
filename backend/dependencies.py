"""FastAPI dependencies shared by the routers."""

from typing import Annotated, AsyncIterator, Optional

import httpx
from fastapi import Depends, Query, Request

from config import Settings, get_settings
from services.december_social import (
    DecemberAggregator,
    InternalRoutes,
    resolve_internal_base_url,
)
from services.http import new_client
from services.meta_token import PageTokenCache, PageTokenResolver
from services.report_service import (
    BaselineStore,
    display_overrides,
    get_baseline_store,
    load_current_report,
)

SettingsDep = Annotated[Settings, Depends(get_settings)]


async def get_upstream_client(settings: SettingsDep) -> AsyncIterator[httpx.AsyncClient]:
    """One AsyncClient per request for upstream API calls."""
    async with new_client(settings.upstream_timeout_seconds) as client:
        yield client


def get_token_cache(request: Request) -> PageTokenCache:
    """The process-wide page token cache created at startup."""
    return request.app.state.token_cache


def get_token_resolver(
    settings: SettingsDep,
    client: Annotated[httpx.AsyncClient, Depends(get_upstream_client)],
    cache: Annotated[PageTokenCache, Depends(get_token_cache)],
) -> PageTokenResolver:
    return PageTokenResolver(client, cache, settings.meta_graph_version)


def get_baselines() -> BaselineStore:
    return get_baseline_store()


def _internal_routes(client: httpx.AsyncClient, request: Request, settings: Settings) -> InternalRoutes:
    base_url = resolve_internal_base_url(settings, request.headers, str(request.base_url))
    return InternalRoutes(client, base_url, request.headers.get("cookie"))


async def get_internal_routes(
    request: Request, settings: SettingsDep
) -> AsyncIterator[InternalRoutes]:
    """Client for self-calls to the sibling routes, forwarding cookies."""
    # Each sibling route makes up to a few upstream calls of its own
    async with new_client(settings.upstream_timeout_seconds * 3) as client:
        yield _internal_routes(client, request, settings)


def _build_aggregator(
    settings: Settings,
    client: httpx.AsyncClient,
    internal: InternalRoutes,
    resolver: PageTokenResolver,
    baselines: BaselineStore,
) -> DecemberAggregator:
    return DecemberAggregator(
        settings=settings,
        upstream=client,
        internal=internal,
        resolver=resolver,
        baselines=baselines,
        display_overrides=display_overrides(load_current_report()),
    )


def get_aggregator(
    settings: SettingsDep,
    client: Annotated[httpx.AsyncClient, Depends(get_upstream_client)],
    internal: Annotated[InternalRoutes, Depends(get_internal_routes)],
    resolver: Annotated[PageTokenResolver, Depends(get_token_resolver)],
    baselines: Annotated[BaselineStore, Depends(get_baselines)],
) -> DecemberAggregator:
    return _build_aggregator(settings, client, internal, resolver, baselines)


async def get_live_aggregator(
    request: Request,
    settings: SettingsDep,
    baselines: Annotated[BaselineStore, Depends(get_baselines)],
    live: bool = Query(default=False),
) -> AsyncIterator[Optional[DecemberAggregator]]:
    """Aggregator for ``live=true`` requests, None otherwise.

    Clients are only opened for live requests.
    """
    if not live:
        yield None
        return
    async with new_client(settings.upstream_timeout_seconds) as client, \
            new_client(settings.upstream_timeout_seconds * 3) as internal_client:
        resolver = PageTokenResolver(client, get_token_cache(request), settings.meta_graph_version)
        internal = _internal_routes(internal_client, request, settings)
        yield _build_aggregator(settings, client, internal, resolver, baselines)
