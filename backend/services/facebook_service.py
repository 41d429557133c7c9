"""Facebook Graph API service.

Page profile and Page Insights for the organization's Facebook Page.
Requires a Page Access Token (see services.meta_token).
"""

import logging
from datetime import datetime, timezone
from typing import Any, Optional

import httpx

from services.errors import UpstreamResponseError
from services.http import as_dict, graph_url, read_json, redact
from services.insights import InsightWindow, MetricPlan

logger = logging.getLogger(__name__)

PAGE_FIELDS = "id,name,about,fan_count,followers_count,link,category"
INSIGHTS_WINDOW_DAYS = 30
NEEDS_PAGE_TOKEN_MESSAGE = "must be called with a Page Access Token"

# Headline fields of /api/facebook/insights
PAGE_METRIC_PLANS: tuple[MetricPlan, ...] = (
    MetricPlan("impressions", ("page_media_view", "views", "page_impressions")),
    MetricPlan(
        "reach",
        ("page_impressions_unique", "page_reach", "page_reach_unique"),
    ),
    MetricPlan("engagedUsers", ("page_engaged_users", "page_post_engagements")),
    MetricPlan(
        "pageViews",
        ("page_views_total", "page_views_logged_in_total", "page_views"),
    ),
    MetricPlan("fans", ("page_fans", "page_follows"), "lifetime", "latest"),
)

PAGE_EXTRA_PLANS: tuple[MetricPlan, ...] = (
    MetricPlan("postReactionsTotal", ("page_actions_post_reactions_total",), label="Post Reactions (Total)"),
    MetricPlan("postReactionsLike", ("page_actions_post_reactions_like_total",), label="Reactions: Like"),
    MetricPlan("postReactionsLove", ("page_actions_post_reactions_love_total",), label="Reactions: Love"),
    MetricPlan("postReactionsWow", ("page_actions_post_reactions_wow_total",), label="Reactions: Wow"),
    MetricPlan("postReactionsHaha", ("page_actions_post_reactions_haha_total",), label="Reactions: Haha"),
    MetricPlan("postReactionsSorry", ("page_actions_post_reactions_sorry_total",), label="Reactions: Sorry"),
    MetricPlan("postReactionsAnger", ("page_actions_post_reactions_anger_total",), label="Reactions: Anger"),
    MetricPlan("videoViews", ("page_video_views", "page_video_views_unique"), label="Video Views"),
    MetricPlan("viewsLoggedIn", ("page_views_logged_in_total",), label="Page Views (Logged-in)"),
    MetricPlan("follows", ("page_follows",), "lifetime", "latest", label="Follows (Lifetime)"),
)

# Month-to-date numbers on the report card; day series summed over the window
REPORT_METRIC_PLANS: tuple[MetricPlan, ...] = (
    MetricPlan("views", ("page_views_total",), only_preferred_period=True),
    MetricPlan("viewers", ("page_impressions_unique",), only_preferred_period=True),
    MetricPlan("visits", ("page_views_logged_in_total",), only_preferred_period=True),
)


def trailing_window(now: Optional[datetime] = None, days: int = INSIGHTS_WINDOW_DAYS) -> InsightWindow:
    """Fixed trailing window ending now (no user input accepted)."""
    now = now or datetime.now(timezone.utc)
    until = int(now.timestamp())
    return InsightWindow(since=until - days * 24 * 60 * 60, until=until)


def _optional_number(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return value
    if value:
        try:
            return float(value)
        except (TypeError, ValueError):
            return None
    return None


def _optional_text(value: Any) -> Optional[str]:
    return value if isinstance(value, str) and value else None


def is_expired_token_error(body: Any) -> bool:
    err = as_dict(as_dict(body).get("error"))
    return (
        err.get("type") == "OAuthException"
        and err.get("code") == 190
        and err.get("error_subcode") == 463
    )


async def fetch_page_profile(
    client: httpx.AsyncClient,
    page_id: str,
    page_access_token: str,
    graph_version: str = "v20.0",
) -> dict:
    """Fetch public Page metrics.

    Returns {id, name, about, likes, followers, link, category, raw}.
    Raises UpstreamResponseError on a non-2xx answer (401 for an expired token).
    """
    url = graph_url(graph_version, page_id)
    logger.info(f"Fetching Facebook page metrics for page {page_id}")

    response = await client.get(
        url, params={"fields": PAGE_FIELDS, "access_token": page_access_token}
    )
    body = read_json(response)

    if not response.is_success:
        logger.warning(
            f"Failed to fetch Facebook page metrics: {response.status_code} - "
            f"{redact(response.text, page_access_token)}"
        )
        if is_expired_token_error(body):
            raise UpstreamResponseError(
                "Facebook access token expired. Update the user token so a Page "
                "token can be re-derived via /me/accounts.",
                status_code=401,
                details=body,
            )
        raise UpstreamResponseError(
            f"Failed to fetch Facebook page metrics: {response.status_code} {response.reason_phrase}",
            status_code=response.status_code,
            details=body,
        )

    data = as_dict(body)
    shaped = {
        "id": str(data.get("id") or ""),
        "name": str(data.get("name") or "Unknown Page"),
        "about": _optional_text(data.get("about")),
        "likes": _optional_number(data.get("fan_count")),
        "followers": _optional_number(data.get("followers_count")),
        "link": _optional_text(data.get("link")),
        "category": _optional_text(data.get("category")),
        "raw": body,
    }
    logger.info(f"Facebook page metrics shaped for {shaped['name']}: {shaped['followers']} followers")
    return shaped


async def needs_page_token(
    client: httpx.AsyncClient,
    page_id: str,
    access_token: str,
    graph_version: str = "v20.0",
) -> bool:
    """Test the token against Insights with ``page_follows (lifetime)``.

    True when Meta says the token is not a Page token (a user token was
    configured as the page token). Failed checks count as False; the real
    fetches report their own errors.
    """
    try:
        response = await client.get(
            graph_url(graph_version, page_id, "insights"),
            params={"metric": "page_follows", "period": "lifetime", "access_token": access_token},
        )
    except httpx.HTTPError as e:
        logger.warning(f"Facebook page token check failed: {redact(str(e), access_token)}")
        return False

    if response.is_success or response.status_code != 400:
        return False
    message = as_dict(as_dict(read_json(response)).get("error")).get("message")
    return isinstance(message, str) and NEEDS_PAGE_TOKEN_MESSAGE in message
