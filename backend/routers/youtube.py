"""YouTube router - channel statistics by handle."""

import logging
from typing import Annotated, Optional

import httpx
from fastapi import APIRouter, Depends, Query

from dependencies import SettingsDep, get_upstream_client
from services.errors import ConfigurationError
from services.youtube_service import fetch_channel_by_handle

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/youtube", tags=["youtube"])


@router.get("/channel")
async def get_youtube_channel(
    settings: SettingsDep,
    client: Annotated[httpx.AsyncClient, Depends(get_upstream_client)],
    handle: Optional[str] = Query(default=None),
):
    """Channel title, thumbnail and subscriber/view/video counts."""
    if not settings.youtube_api_key:
        logger.error("YOUTUBE_API_KEY is not configured in the environment")
        raise ConfigurationError("Server configuration error: YOUTUBE_API_KEY is not set")

    handle = handle.strip() if handle and handle.strip() else settings.youtube_channel_handle
    return await fetch_channel_by_handle(client, settings.youtube_api_key, handle)
