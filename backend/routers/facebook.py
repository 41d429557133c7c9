"""Facebook router - Page profile and Page Insights."""

import logging
from typing import Annotated

import httpx
from fastapi import APIRouter, Depends, HTTPException, status

from dependencies import SettingsDep, get_token_resolver, get_upstream_client
from services.errors import TokenResolutionError
from services.facebook_service import (
    PAGE_EXTRA_PLANS,
    PAGE_METRIC_PLANS,
    fetch_page_profile,
    needs_page_token,
    trailing_window,
)
from services.insights import InsightsFetcher, shape_insights
from services.meta_token import PageTokenResolver, any_user_token, page_token_for_page_routes

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/facebook", tags=["facebook"])

ClientDep = Annotated[httpx.AsyncClient, Depends(get_upstream_client)]
ResolverDep = Annotated[PageTokenResolver, Depends(get_token_resolver)]


async def _page_token(resolver: PageTokenResolver, settings, page_id: str) -> str:
    try:
        return await page_token_for_page_routes(resolver, settings, page_id)
    except TokenResolutionError as e:
        logger.error(f"Failed to resolve Page access token via /me/accounts: {e.message}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={
                "error": "Failed to resolve Page access token from /me/accounts. Ensure the "
                "user access token is valid and has pages permissions.",
                "details": e.message,
            },
        )


@router.get("/page")
async def get_facebook_page(settings: SettingsDep, client: ClientDep, resolver: ResolverDep):
    """Public Page metrics (followers, likes, about, ...)."""
    page_id = settings.facebook_page_id
    token = await _page_token(resolver, settings, page_id)
    return await fetch_page_profile(client, page_id, token, settings.meta_graph_version)


@router.get("/insights")
async def get_facebook_insights(settings: SettingsDep, client: ClientDep, resolver: ResolverDep):
    """Page Insights over the trailing 30 days.

    Each field tries its candidate metrics in order; unsupported
    metric/period combinations are listed instead of failing the response.
    """
    page_id = settings.facebook_page_id
    token = await _page_token(resolver, settings, page_id)

    # A user token stored as the page token fails Insights with (#190)
    if await needs_page_token(client, page_id, token, settings.meta_graph_version):
        user_token = any_user_token(settings)
        if not user_token:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail=(
                    "Your FACEBOOK_PAGE_ACCESS_TOKEN is not a Page token (Insights requires a "
                    "Page Access Token). Replace it with the Page token from /me/accounts, or "
                    "set FACEBOOK_USER_ACCESS_TOKEN so the server can derive one."
                ),
            )
        token = await resolver.resolve(page_id, user_token)

    window = trailing_window()
    fetcher = InsightsFetcher(client, page_id, token, window, settings.meta_graph_version)
    report = await fetcher.run_plans(PAGE_METRIC_PLANS + PAGE_EXTRA_PLANS)

    logger.info(
        f"Facebook insights shaped: {report.success_count} metrics resolved, "
        f"{len(report.unsupported)} unsupported"
    )
    return shape_insights(
        report,
        fields=[p.key for p in PAGE_METRIC_PLANS],
        extras=PAGE_EXTRA_PLANS,
        window=window,
        attempted=PAGE_METRIC_PLANS,
    )
