"""X/Twitter API service.

User-context OAuth 1.0a (HMAC-SHA1) auth for the organization's X account.
Read-only: profile metrics, recent tweets and followers.
"""

import logging
from dataclasses import dataclass
from typing import Any, Optional
from urllib.parse import quote, urlencode

import httpx

from config import Settings
from services.errors import ConfigurationError, ResourceNotFoundError, UpstreamResponseError
from services.http import as_dict, read_json
from utils.oauth1 import create_authorization_header

logger = logging.getLogger(__name__)

USER_FIELDS = (
    "public_metrics,description,location,profile_image_url,url,verified,"
    "created_at,entities,pinned_tweet_id"
)
TWEET_FIELDS = "created_at,public_metrics"
TWEET_METRIC_KEYS = ("like_count", "reply_count", "repost_count", "quote_count", "impression_count")


@dataclass(frozen=True)
class XCredentials:
    consumer_key: str
    consumer_secret: str
    access_token: str
    access_token_secret: str

    @classmethod
    def from_settings(cls, settings: Settings) -> "XCredentials":
        values = {
            "X_API_KEY": settings.x_api_key,
            "X_API_KEY_SECRET": settings.x_api_key_secret,
            "X_ACCESS_TOKEN": settings.x_access_token,
            "X_ACCESS_TOKEN_SECRET": settings.x_access_token_secret,
        }
        missing = [name for name, value in values.items() if not value]
        if missing:
            raise ConfigurationError(
                f"OAuth 1.0a credentials not configured: set {', '.join(missing)}"
            )
        return cls(*values.values())


def build_url(base: str, path: str, params: Optional[dict[str, Any]] = None) -> str:
    url = f"{base.rstrip('/')}/{path.lstrip('/')}"
    if params:
        url = f"{url}?{urlencode(params, safe='', quote_via=quote)}"
    return url


async def signed_get(
    client: httpx.AsyncClient, credentials: XCredentials, url: str, what: str
) -> Any:
    """GET ``url`` with an OAuth 1.0a header; returns the decoded JSON body."""
    auth_header = create_authorization_header(
        "GET",
        url,
        credentials.consumer_key,
        credentials.consumer_secret,
        credentials.access_token,
        credentials.access_token_secret,
    )
    response = await client.get(
        url,
        headers={"Authorization": auth_header, "Content-Type": "application/json"},
    )
    body = read_json(response)

    if not response.is_success:
        if response.status_code == 429:
            logger.warning(f"X API rate limit exceeded ({what})")
        else:
            logger.warning(f"X API error ({what}): {response.status_code} {response.reason_phrase}")
        raise UpstreamResponseError(
            f"Failed to fetch {what}: {response.status_code} {response.reason_phrase}",
            status_code=response.status_code,
            details=body if body is not None else {},
        )
    return body


async def fetch_me(
    client: httpx.AsyncClient,
    credentials: XCredentials,
    base: str,
    user_fields: str = USER_FIELDS,
) -> dict:
    """The authenticated user (``/users/me``) with public_metrics."""
    url = build_url(base, "users/me", {"user.fields": user_fields})
    body = as_dict(await signed_get(client, credentials, url, "user"))
    user = as_dict(body.get("data"))
    logger.info(
        f"X user fetched: @{user.get('username')} "
        f"({as_dict(user.get('public_metrics')).get('followers_count')} followers)"
    )
    return body


async def fetch_my_tweets(
    client: httpx.AsyncClient,
    credentials: XCredentials,
    base: str,
    max_results: str = "10",
) -> dict:
    """Recent tweets of the authenticated user with engagement metrics.

    Two calls: resolve the user id, then ``/users/{id}/tweets``.
    """
    me = await fetch_me(client, credentials, base, user_fields="id")
    user_id = as_dict(me.get("data")).get("id")
    if not user_id:
        raise ResourceNotFoundError(
            "Authenticated user ID not found in /users/me response", details=me
        )

    url = build_url(
        base,
        f"users/{quote(str(user_id), safe='')}/tweets",
        {"tweet.fields": TWEET_FIELDS, "max_results": max_results},
    )
    body = as_dict(await signed_get(client, credentials, url, "tweets"))

    tweets = []
    for tweet in body.get("data") or []:
        tweet = as_dict(tweet)
        metrics = as_dict(tweet.get("public_metrics"))
        tweets.append({
            "id": tweet.get("id"),
            "text": tweet.get("text"),
            "created_at": tweet.get("created_at"),
            "public_metrics": {key: metrics.get(key) for key in TWEET_METRIC_KEYS},
        })

    logger.info(f"Fetched {len(tweets)} tweets for user {user_id}")
    return {"tweets": tweets, "meta": body.get("meta")}


async def fetch_followers(
    client: httpx.AsyncClient,
    credentials: XCredentials,
    base: str,
    user_id: str,
) -> dict:
    """Followers of a user (``/users/{id}/followers``)."""
    url = build_url(base, f"users/{quote(user_id, safe='')}/followers")
    body = as_dict(await signed_get(client, credentials, url, "followers"))
    count = as_dict(body.get("meta")).get("result_count") or len(body.get("data") or [])
    logger.info(f"Fetched {count} followers for user {user_id}")
    return body
