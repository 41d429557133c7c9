"""Instagram Graph API service.

Profile and account Insights for the organization's Instagram Business
account. Accessed through the Facebook Graph API with the Page token; the
Instagram account must be linked to the Facebook Page.
"""

import logging
from typing import Any, Optional

import httpx

from services.errors import ResourceNotFoundError, UpstreamResponseError
from services.http import as_dict, graph_url, read_json
from services.insights import MetricPlan

logger = logging.getLogger(__name__)

PROFILE_FIELDS = "username,name,profile_picture_url,followers_count,follows_count,media_count"

ACCOUNT_METRIC_PLANS: tuple[MetricPlan, ...] = (
    MetricPlan("impressions", ("impressions",)),
    MetricPlan("reach", ("reach",)),
    MetricPlan("profileViews", ("profile_views",)),
)

ACCOUNT_EXTRA_PLANS: tuple[MetricPlan, ...] = (
    MetricPlan("websiteClicks", ("website_clicks",), label="Website Clicks"),
    MetricPlan("emailContacts", ("email_contacts",), label="Email Contacts"),
    MetricPlan("phoneCallClicks", ("phone_call_clicks",), label="Phone Call Clicks"),
    MetricPlan("getDirectionsClicks", ("get_directions_clicks",), label="Get Directions Clicks"),
    MetricPlan("textMessageClicks", ("text_message_clicks",), label="Text Message Clicks"),
)

# Month-to-date numbers on the report card. Reach drives Instagram's
# headline growth.
REPORT_METRIC_PLANS: tuple[MetricPlan, ...] = (
    MetricPlan("reach", ("reach",), only_preferred_period=True),
    MetricPlan("views", ("impressions",), only_preferred_period=True),
    MetricPlan("visits", ("profile_views",), only_preferred_period=True),
)


async def get_business_account_id(
    client: httpx.AsyncClient,
    page_id: str,
    page_access_token: str,
    graph_version: str = "v20.0",
) -> tuple[str, Any]:
    """Resolve the Instagram Business account linked to the Page.

    Returns (ig_user_id, raw page response).
    """
    response = await client.get(
        graph_url(graph_version, page_id),
        params={"fields": "instagram_business_account", "access_token": page_access_token},
    )
    body = read_json(response)

    if not response.is_success:
        raise UpstreamResponseError(
            "Failed to resolve Instagram account from Facebook Page: "
            f"{response.status_code} {response.reason_phrase}",
            status_code=response.status_code,
            details=body,
        )

    ig_user_id = as_dict(as_dict(body).get("instagram_business_account")).get("id")
    if not ig_user_id:
        raise ResourceNotFoundError(
            "No Instagram business account linked to this Facebook Page "
            "(instagram_business_account missing).",
            details=body,
        )
    return str(ig_user_id), body


def _number_or_none(value: Any) -> Optional[int]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return value


def _text_or_none(value: Any) -> Optional[str]:
    return value if isinstance(value, str) else None


async def fetch_profile(
    client: httpx.AsyncClient,
    page_id: str,
    page_access_token: str,
    graph_version: str = "v20.0",
) -> dict:
    """Fetch the Instagram Business profile.

    Returns {igUserId, username, name, profilePictureUrl, followers,
    following, mediaCount, raw}.
    """
    ig_user_id, page_body = await get_business_account_id(
        client, page_id, page_access_token, graph_version
    )

    response = await client.get(
        graph_url(graph_version, ig_user_id),
        params={"fields": PROFILE_FIELDS, "access_token": page_access_token},
    )
    body = read_json(response)

    if not response.is_success:
        logger.warning(f"Failed to fetch Instagram profile: {response.status_code}")
        raise UpstreamResponseError(
            f"Failed to fetch Instagram profile: {response.status_code} {response.reason_phrase}",
            status_code=response.status_code,
            details=body,
        )

    data = as_dict(body)
    shaped = {
        "igUserId": ig_user_id,
        "username": _text_or_none(data.get("username")),
        "name": _text_or_none(data.get("name")),
        "profilePictureUrl": _text_or_none(data.get("profile_picture_url")),
        "followers": _number_or_none(data.get("followers_count")),
        "following": _number_or_none(data.get("follows_count")),
        "mediaCount": _number_or_none(data.get("media_count")),
        "raw": {"page": page_body, "profile": body},
    }
    logger.info(
        f"Instagram profile fetched for @{shaped['username']}: {shaped['followers']} followers"
    )
    return shaped
