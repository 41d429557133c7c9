"""Live month-to-date social report, compared against the previous month.

Fans out to the four platform pipelines concurrently. Each pipeline merges
its live numbers with the baseline record: a metric that could not be
fetched falls back to its baseline value, and growth is computed from the
effective values. A pipeline that fails outright yields a failed outcome
(rendered as ``null``) without affecting the other platforms.
"""

import asyncio
import calendar
import enum
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Any, Awaitable, Mapping, Optional

import httpx

from config import Settings
from models.platform import PLATFORM_ORDER, BasePlatformRecord, PlatformName
from services.errors import (
    AggregatorFatalError,
    PlatformPipelineFailure,
    UpstreamResponseError,
)
from services.growth import effective, growth, to_number
from services.http import as_dict, read_json
from services.insights import InsightsFetcher, InsightWindow
from services.meta_token import PageTokenResolver, resolve_page_token
from services.report_service import BaselineStore
from services import facebook_service, instagram_service

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AggregationWindow:
    """The most recent occurrence of the report month (UTC), up to today.

    While the month is in progress the window runs from its 1st through
    today; once it is over, through its last day. ``until`` is the display
    date; API calls use the exclusive bound at the next UTC midnight.
    """
    since: date
    until: date

    @classmethod
    def for_month(cls, now: datetime, month: int = 12) -> "AggregationWindow":
        now = now.astimezone(timezone.utc) if now.tzinfo else now.replace(tzinfo=timezone.utc)
        year = now.year if month <= now.month else now.year - 1
        last_day = date(year, month, calendar.monthrange(year, month)[1])
        return cls(since=date(year, month, 1), until=min(now.date(), last_day))

    @property
    def since_unix(self) -> int:
        return int(datetime(self.since.year, self.since.month, self.since.day, tzinfo=timezone.utc).timestamp())

    @property
    def until_unix_exclusive(self) -> int:
        next_day = self.until + timedelta(days=1)
        return int(datetime(next_day.year, next_day.month, next_day.day, tzinfo=timezone.utc).timestamp())

    def insight_window(self) -> InsightWindow:
        return InsightWindow(since=self.since_unix, until=self.until_unix_exclusive)

    def as_dict(self) -> dict:
        return {"since": self.since.isoformat(), "until": self.until.isoformat()}


class PlatformState(str, enum.Enum):
    SUCCEEDED = "succeeded"
    PARTIAL = "partially-succeeded"
    FAILED = "failed"


@dataclass
class PlatformOutcome:
    """Result of one platform pipeline: a record, or the error that stopped it."""
    platform: PlatformName
    record: Optional[BasePlatformRecord] = None
    error: Optional[PlatformPipelineFailure] = None
    fallback_fields: tuple[str, ...] = ()

    @property
    def state(self) -> PlatformState:
        if self.record is None:
            return PlatformState.FAILED
        if self.fallback_fields:
            return PlatformState.PARTIAL
        return PlatformState.SUCCEEDED


@dataclass
class DecemberReport:
    window: AggregationWindow
    generated_at: datetime
    outcomes: list[PlatformOutcome] = field(default_factory=list)

    @property
    def records(self) -> list[Optional[BasePlatformRecord]]:
        return [o.record for o in self.outcomes]

    def to_payload(self) -> dict:
        return {
            "window": self.window.as_dict(),
            "generatedAt": self.generated_at.isoformat().replace("+00:00", "Z"),
            "platforms": [
                r.model_dump(mode="json") if r is not None else None for r in self.records
            ],
        }


@dataclass
class InternalResult:
    status_code: int
    ok: bool
    json: Any
    content_type: str
    text_preview: str


class InternalRoutes:
    """HTTP client for the service's own sibling routes (profile-level fields).

    Forwards the caller's cookies so deployment protection in front of the
    service does not answer with an HTML login page.
    """

    def __init__(self, client: httpx.AsyncClient, base_url: str, cookie: Optional[str] = None):
        self.client = client
        self.base_url = base_url.rstrip("/")
        self.cookie = cookie

    async def get_json(self, path: str, params: Optional[dict] = None) -> InternalResult:
        headers = {"cookie": self.cookie} if self.cookie else {}
        response = await self.client.get(f"{self.base_url}{path}", params=params, headers=headers)
        content_type = response.headers.get("content-type", "")
        result = InternalResult(
            status_code=response.status_code,
            ok=response.is_success,
            json=read_json(response),
            content_type=content_type,
            text_preview=response.text[:200],
        )
        if result.ok and result.json is None and "application/json" not in content_type.lower():
            raise UpstreamResponseError(
                f"Internal route {path} returned non-JSON: {content_type} "
                f'body="{result.text_preview}"',
                status_code=response.status_code,
            )
        return result

    async def number(self, path: str, *keys: str, params: Optional[dict] = None) -> dict[str, Optional[float]]:
        """Numeric fields from a sibling route; all None when it failed."""
        result = await self.get_json(path, params=params)
        if not result.ok or result.json is None:
            logger.warning(f"Internal route {path} failed with {result.status_code}")
            return {key: None for key in keys}
        body = as_dict(result.json)
        return {key: _optional_number(body.get(key)) for key in keys}


def _optional_number(value: Any) -> Optional[float]:
    return None if value is None else to_number(value)


@dataclass(frozen=True)
class MetaCredentials:
    page_id: str
    page_token: str


class DecemberAggregator:
    """Builds the month-to-date platform records."""

    def __init__(
        self,
        settings: Settings,
        upstream: httpx.AsyncClient,
        internal: InternalRoutes,
        resolver: PageTokenResolver,
        baselines: BaselineStore,
        display_overrides: Optional[Mapping[PlatformName, Mapping[str, str]]] = None,
    ):
        self.settings = settings
        self.upstream = upstream
        self.internal = internal
        self.resolver = resolver
        self.baselines = baselines
        self.display_overrides = display_overrides or {}

    def _check_configured(self) -> None:
        s = self.settings
        has_meta = any([s.facebook_page_access_token, s.facebook_user_access_token, s.facebook_app_secret])
        has_youtube = bool(s.youtube_api_key)
        has_x = all([s.x_api_key, s.x_api_key_secret, s.x_access_token, s.x_access_token_secret])
        if not (has_meta or has_youtube or has_x):
            raise AggregatorFatalError(
                "No social platform credentials configured: set the FACEBOOK_*, "
                "YOUTUBE_API_KEY and/or X_* environment variables"
            )

    async def aggregate(self, now: Optional[datetime] = None) -> DecemberReport:
        self._check_configured()
        now = now or datetime.now(timezone.utc)
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        now = now.astimezone(timezone.utc)
        window = AggregationWindow.for_month(now, self.settings.report_month)

        meta_task = asyncio.ensure_future(self._resolve_meta())
        pipelines: dict[PlatformName, Awaitable[tuple[BasePlatformRecord, tuple[str, ...]]]] = {
            PlatformName.FACEBOOK: self._facebook(meta_task, window),
            PlatformName.X: self._x(),
            PlatformName.INSTAGRAM: self._instagram(meta_task, window),
            PlatformName.YOUTUBE: self._youtube(),
        }
        try:
            outcomes = await asyncio.gather(
                *(self._run(name, pipelines[name]) for name in PLATFORM_ORDER)
            )
        finally:
            if not meta_task.done():
                meta_task.cancel()

        report = DecemberReport(window=window, generated_at=now, outcomes=list(outcomes))
        logger.info(
            "December social report built: "
            + ", ".join(f"{o.platform.value}={o.state.value}" for o in report.outcomes)
        )
        return report

    async def _run(
        self,
        name: PlatformName,
        pipeline: Awaitable[tuple[BasePlatformRecord, tuple[str, ...]]],
    ) -> PlatformOutcome:
        try:
            record, fallback_fields = await pipeline
        except Exception as e:
            failure = PlatformPipelineFailure(name.value, e)
            logger.exception(f"[december-social] {name.value} build failed")
            return PlatformOutcome(platform=name, error=failure)

        if fallback_fields:
            logger.info(f"{name.value}: baseline values used for {', '.join(fallback_fields)}")
        return PlatformOutcome(platform=name, record=record, fallback_fields=fallback_fields)

    async def _resolve_meta(self) -> MetaCredentials:
        page_id = self.settings.facebook_page_id
        page_token = await resolve_page_token(self.resolver, self.settings, page_id)
        return MetaCredentials(page_id=page_id, page_token=page_token)

    def _baseline(self, name: PlatformName) -> BasePlatformRecord:
        baseline = self.baselines.get(name)
        overrides = {k: v for k, v in self.display_overrides.get(name, {}).items() if v}
        return baseline.model_copy(update=overrides) if overrides else baseline

    async def _facebook(self, meta_task: asyncio.Future, window: AggregationWindow):
        meta: MetaCredentials = await meta_task
        baseline = self._baseline(PlatformName.FACEBOOK)

        profile = await self.internal.number("/api/facebook/page", "followers")
        fetcher = InsightsFetcher(
            self.upstream, meta.page_id, meta.page_token,
            window.insight_window(), self.settings.meta_graph_version,
        )
        insights = await fetcher.run_plans(facebook_service.REPORT_METRIC_PLANS)

        live = {
            "followers": profile["followers"],
            "views": insights.value("views"),
            "viewers": insights.value("viewers"),
            "visits": insights.value("visits"),
        }
        values = _effective_values(baseline, live)
        views_growth = growth(values["views"], baseline.views)
        record = baseline.model_copy(update={
            **values,
            "growth_percentage": views_growth,
            "views_growth": views_growth,
            "viewers_growth": growth(values["viewers"], baseline.viewers),
            "visit_growth": growth(values["visits"], baseline.visits),
        })
        return record, _fallbacks(live)

    async def _instagram(self, meta_task: asyncio.Future, window: AggregationWindow):
        meta: MetaCredentials = await meta_task
        baseline = self._baseline(PlatformName.INSTAGRAM)

        profile = await self.internal.number("/api/instagram/profile", "followers")
        ig_user_id, _ = await instagram_service.get_business_account_id(
            self.upstream, meta.page_id, meta.page_token, self.settings.meta_graph_version
        )
        fetcher = InsightsFetcher(
            self.upstream, ig_user_id, meta.page_token,
            window.insight_window(), self.settings.meta_graph_version,
        )
        insights = await fetcher.run_plans(instagram_service.REPORT_METRIC_PLANS)

        live = {
            "followers": profile["followers"],
            "reach": insights.value("reach"),
            "views": insights.value("views"),
            "visits": insights.value("visits"),
        }
        values = _effective_values(baseline, live)
        reach_growth = growth(values["reach"], baseline.reach)
        record = baseline.model_copy(update={
            **values,
            # Instagram's headline growth is reach-based
            "growth_percentage": reach_growth,
            "reach_growth": reach_growth,
            "views_growth": growth(values["views"], baseline.views),
            "visit_growth": growth(values["visits"], baseline.visits),
        })
        return record, _fallbacks(live)

    async def _youtube(self):
        baseline = self._baseline(PlatformName.YOUTUBE)
        channel = await self.internal.number(
            "/api/youtube/channel", "views", "subscribers", "videos",
            params={"handle": self.settings.youtube_channel_handle},
        )
        live = {
            "followers": channel["subscribers"],
            "views": channel["views"],
            "videos": channel["videos"],
        }
        values = _effective_values(baseline, live)
        views_growth = growth(values["views"], baseline.views)
        record = baseline.model_copy(update={
            **values,
            "growth_percentage": views_growth,
            "views_growth": views_growth,
        })
        return record, _fallbacks(live)

    async def _x(self):
        baseline = self._baseline(PlatformName.X)
        result = await self.internal.get_json("/api/x/users/me")
        if result.ok and result.json is not None:
            metrics = as_dict(as_dict(as_dict(result.json).get("data")).get("public_metrics"))
            live = {
                "followers": _optional_number(metrics.get("followers_count")),
                "posts": _optional_number(metrics.get("tweet_count")),
            }
        else:
            logger.warning(f"Internal route /api/x/users/me failed with {result.status_code}")
            live = {"followers": None, "posts": None}

        values = _effective_values(baseline, live)
        record = baseline.model_copy(update={
            **values,
            "growth_percentage": growth(values["followers"], baseline.followers),
        })
        return record, _fallbacks(live)


def _effective_values(baseline: BasePlatformRecord, live: Mapping[str, Optional[float]]) -> dict:
    """Live value per field, or the baseline's value when the live fetch failed.

    Counts are whole numbers; model_copy does not re-validate.
    """
    values = {}
    for name, value in live.items():
        chosen = effective(value, getattr(baseline, name))
        values[name] = None if chosen is None else int(round(chosen))
    return values


def _fallbacks(live: Mapping[str, Optional[float]]) -> tuple[str, ...]:
    return tuple(name for name, value in live.items() if value is None)


def resolve_internal_base_url(settings: Settings, headers: Mapping[str, str], fallback: str) -> str:
    """Base URL for self-calls: VERCEL_URL, PUBLIC_BASE_URL, then the request's host."""
    if settings.vercel_url:
        return f"https://{settings.vercel_url}"
    if settings.public_base_url:
        return settings.public_base_url.rstrip("/")
    host = headers.get("host")
    if not host:
        return fallback.rstrip("/")
    proto = headers.get("x-forwarded-proto", "").split(",")[0].strip() or "http"
    return f"{proto}://{host}"
