"""Report data models."""

from models.platform import (
    PLATFORM_ORDER,
    BasePlatformRecord,
    FacebookRecord,
    InstagramRecord,
    PlatformName,
    PlatformRecord,
    XRecord,
    YouTubeRecord,
    empty_record,
    parse_platform_record,
)

__all__ = [
    "PLATFORM_ORDER",
    "BasePlatformRecord",
    "FacebookRecord",
    "InstagramRecord",
    "PlatformName",
    "PlatformRecord",
    "XRecord",
    "YouTubeRecord",
    "empty_record",
    "parse_platform_record",
]
