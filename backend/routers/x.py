"""X/Twitter router - authenticated user, recent tweets and followers.

Uses OAuth 1.0a user-context credentials configured server-side.
"""

import logging
from typing import Annotated

import httpx
from fastapi import APIRouter, Depends, Query

from dependencies import SettingsDep, get_upstream_client
from services.x_service import XCredentials, fetch_followers, fetch_me, fetch_my_tweets

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/x", tags=["x"])

ClientDep = Annotated[httpx.AsyncClient, Depends(get_upstream_client)]


@router.get("/users/me")
async def get_me(settings: SettingsDep, client: ClientDep):
    """Authenticated user with public_metrics (followers, tweet count, ...)."""
    credentials = XCredentials.from_settings(settings)
    return await fetch_me(client, credentials, settings.x_api_base)


@router.get("/users/me/tweets")
async def get_my_tweets(
    settings: SettingsDep,
    client: ClientDep,
    max_results: str = Query(default="10"),
):
    """Recent tweets with like/reply/repost/quote/impression counts."""
    credentials = XCredentials.from_settings(settings)
    return await fetch_my_tweets(client, credentials, settings.x_api_base, max_results)


@router.get("/users/{user_id}/followers")
async def get_followers(user_id: str, settings: SettingsDep, client: ClientDep):
    credentials = XCredentials.from_settings(settings)
    return await fetch_followers(client, credentials, settings.x_api_base, user_id)
