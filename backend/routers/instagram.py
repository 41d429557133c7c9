"""Instagram router - Business profile and account Insights."""

import logging
from typing import Annotated

import httpx
from fastapi import APIRouter, Depends, HTTPException, status

from dependencies import SettingsDep, get_token_resolver, get_upstream_client
from services.errors import ConfigurationError
from services.facebook_service import trailing_window
from services.insights import InsightsFetcher, shape_insights
from services.instagram_service import (
    ACCOUNT_EXTRA_PLANS,
    ACCOUNT_METRIC_PLANS,
    fetch_profile,
    get_business_account_id,
)
from services.meta_token import PageTokenResolver, resolve_page_token

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/instagram", tags=["instagram"])

ClientDep = Annotated[httpx.AsyncClient, Depends(get_upstream_client)]
ResolverDep = Annotated[PageTokenResolver, Depends(get_token_resolver)]


async def _page_token(resolver: PageTokenResolver, settings, page_id: str) -> str:
    try:
        return await resolve_page_token(resolver, settings, page_id)
    except ConfigurationError as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={
                "error": "Server configuration error: missing Facebook token(s)",
                "details": e.message,
            },
        )


@router.get("/profile")
async def get_instagram_profile(settings: SettingsDep, client: ClientDep, resolver: ResolverDep):
    """Instagram Business profile linked to the Facebook Page."""
    page_id = settings.facebook_page_id
    token = await _page_token(resolver, settings, page_id)
    return await fetch_profile(client, page_id, token, settings.meta_graph_version)


@router.get("/insights")
async def get_instagram_insights(settings: SettingsDep, client: ClientDep, resolver: ResolverDep):
    """Account Insights over the trailing 30 days (the most one call allows)."""
    page_id = settings.facebook_page_id
    token = await _page_token(resolver, settings, page_id)
    ig_user_id, _ = await get_business_account_id(
        client, page_id, token, settings.meta_graph_version
    )

    window = trailing_window()
    fetcher = InsightsFetcher(client, ig_user_id, token, window, settings.meta_graph_version)
    report = await fetcher.run_plans(ACCOUNT_METRIC_PLANS + ACCOUNT_EXTRA_PLANS)

    logger.info(
        f"Instagram insights shaped for {ig_user_id}: {report.success_count} metrics resolved, "
        f"{len(report.unsupported)} unsupported"
    )
    return {
        "igUserId": ig_user_id,
        **shape_insights(
            report,
            fields=[p.key for p in ACCOUNT_METRIC_PLANS],
            extras=ACCOUNT_EXTRA_PLANS,
            window=window,
            attempted=ACCOUNT_METRIC_PLANS,
        ),
    }
