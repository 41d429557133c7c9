"""Platform records - one per social platform, discriminated on ``platform``.

Baseline records (previous month) and live records share these types. All
records are frozen; a live record is derived from its baseline with
``model_copy(update=...)``.
"""

import enum
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


class PlatformName(str, enum.Enum):
    """Platforms on the report, in display order."""
    FACEBOOK = "Facebook"
    X = "X (Twitter)"
    INSTAGRAM = "Instagram"
    YOUTUBE = "YouTube"


# Fixed positional order of the aggregator output
PLATFORM_ORDER: tuple[PlatformName, ...] = (
    PlatformName.FACEBOOK,
    PlatformName.X,
    PlatformName.INSTAGRAM,
    PlatformName.YOUTUBE,
)


class BasePlatformRecord(BaseModel):
    """Fields shared by every platform.

    Unknown keys from the report JSON (colors, notes, ...) are carried
    through untouched.
    """

    model_config = ConfigDict(frozen=True, extra="allow")

    handle: str = ""
    role: Optional[str] = None
    description: Optional[str] = None
    followers: int = 0
    growth_percentage: float = 0.0


class FacebookRecord(BasePlatformRecord):
    platform: Literal["Facebook"] = "Facebook"
    views: int = 0
    viewers: int = 0
    visits: int = 0
    views_growth: Optional[float] = None
    viewers_growth: Optional[float] = None
    visit_growth: Optional[float] = None


class InstagramRecord(BasePlatformRecord):
    """Instagram's headline growth is reach-based."""

    platform: Literal["Instagram"] = "Instagram"
    views: int = 0
    reach: int = 0
    visits: int = 0
    reach_growth: Optional[float] = None
    views_growth: Optional[float] = None
    visit_growth: Optional[float] = None


class YouTubeRecord(BasePlatformRecord):
    platform: Literal["YouTube"] = "YouTube"
    views: int = 0
    videos: Optional[int] = None
    views_growth: Optional[float] = None


class XRecord(BasePlatformRecord):
    platform: Literal["X (Twitter)"] = "X (Twitter)"
    posts: Optional[int] = None


PlatformRecord = Annotated[
    Union[FacebookRecord, InstagramRecord, YouTubeRecord, XRecord],
    Field(discriminator="platform"),
]

platform_record_adapter: TypeAdapter[PlatformRecord] = TypeAdapter(PlatformRecord)

RECORD_TYPES: dict[PlatformName, type[BasePlatformRecord]] = {
    PlatformName.FACEBOOK: FacebookRecord,
    PlatformName.X: XRecord,
    PlatformName.INSTAGRAM: InstagramRecord,
    PlatformName.YOUTUBE: YouTubeRecord,
}


def parse_platform_record(data: dict) -> PlatformRecord:
    """Validate a raw JSON platform entry into its concrete record type."""
    return platform_record_adapter.validate_python(data)


def empty_record(name: PlatformName) -> BasePlatformRecord:
    """Minimal record used when the baseline has no entry for a platform."""
    return RECORD_TYPES[name](handle="", followers=0, growth_percentage=0.0)
