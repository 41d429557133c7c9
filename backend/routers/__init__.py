"""Routers package."""

from .facebook import router as facebook_router
from .instagram import router as instagram_router
from .report import router as report_router
from .x import router as x_router
from .youtube import router as youtube_router

__all__ = [
    "facebook_router",
    "instagram_router",
    "report_router",
    "x_router",
    "youtube_router",
]
