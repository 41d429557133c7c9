"""YouTube Data API service.

API key auth, public channel statistics only. The Data API has no direct
handle -> channel id lookup, so the channel is found through search first.
"""

import logging
from typing import Optional

import httpx

from services.errors import ResourceNotFoundError, UpstreamResponseError
from services.http import as_dict, read_json

logger = logging.getLogger(__name__)

YT_API_BASE = "https://www.googleapis.com/youtube/v3"


async def search_channel_id(client: httpx.AsyncClient, api_key: str, handle: str) -> str:
    """Find a channel id by searching for its handle/name (first hit wins)."""
    logger.info(f"Searching YouTube channel for handle {handle}")
    response = await client.get(
        f"{YT_API_BASE}/search",
        params={
            "part": "snippet",
            "type": "channel",
            "q": handle,
            "maxResults": 1,
            "key": api_key,
        },
    )
    body = read_json(response)

    if not response.is_success:
        logger.warning(f"YouTube search failed: {response.status_code}")
        raise UpstreamResponseError(
            f"YouTube search failed: {response.status_code} {response.reason_phrase}",
            status_code=response.status_code,
            details=body,
        )

    items = as_dict(body).get("items")
    first = as_dict(items[0]) if isinstance(items, list) and items else {}
    channel_id = (
        as_dict(first.get("snippet")).get("channelId")
        or as_dict(first.get("id")).get("channelId")
    )
    if not channel_id:
        logger.warning(f"No YouTube channel found for handle {handle}")
        raise ResourceNotFoundError(f"Channel not found for handle: {handle}", details=body)
    return channel_id


def _count(value) -> Optional[str]:
    return str(value) if value is not None else None


async def fetch_channel_stats(client: httpx.AsyncClient, api_key: str, channel_id: str) -> dict:
    """Fetch snippet + statistics for a channel id.

    Returns {title, description, thumbnailUrl, subscribers, views, videos, raw}.
    Counts are strings, as the API returns them. ``subscribers`` is None
    when the owner hides the subscriber count.
    """
    response = await client.get(
        f"{YT_API_BASE}/channels",
        params={"part": "snippet,statistics", "id": channel_id, "key": api_key},
    )
    body = read_json(response)

    if not response.is_success:
        if response.status_code == 403:
            logger.warning("YouTube API quota exceeded or key invalid")
        raise UpstreamResponseError(
            f"Failed to fetch channel details: {response.status_code} {response.reason_phrase}",
            status_code=response.status_code,
            details=body,
        )

    items = as_dict(body).get("items")
    if not isinstance(items, list) or not items:
        raise ResourceNotFoundError(f"Channel details not found for id: {channel_id}", details=body)

    channel = as_dict(items[0])
    snippet = as_dict(channel.get("snippet"))
    statistics = as_dict(channel.get("statistics"))
    thumbnails = as_dict(snippet.get("thumbnails"))

    hidden = statistics.get("hiddenSubscriberCount") is True
    shaped = {
        "title": snippet.get("title") or "Unknown Channel",
        "description": snippet.get("description") or "",
        "thumbnailUrl": (
            as_dict(thumbnails.get("high")).get("url")
            or as_dict(thumbnails.get("medium")).get("url")
            or as_dict(thumbnails.get("default")).get("url")
            or None
        ),
        "subscribers": None if hidden else _count(statistics.get("subscriberCount")),
        "views": _count(statistics.get("viewCount")),
        "videos": _count(statistics.get("videoCount")),
        "raw": body,
    }
    logger.info(
        f"YouTube stats fetched for {shaped['title']}: "
        f"{shaped['subscribers']} subscribers, {shaped['videos']} videos"
    )
    return shaped


async def fetch_channel_by_handle(client: httpx.AsyncClient, api_key: str, handle: str) -> dict:
    """Search by handle, then fetch that channel's statistics."""
    channel_id = await search_channel_id(client, api_key, handle)
    return await fetch_channel_stats(client, api_key, channel_id)
