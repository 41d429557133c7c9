"""Tests for the month-to-date aggregator."""

from __future__ import annotations

import asyncio
from datetime import date, datetime, timedelta, timezone

import httpx
import pytest

from conftest import graph_error, mock_client
from models.platform import (
    FacebookRecord,
    InstagramRecord,
    PlatformName,
    XRecord,
    YouTubeRecord,
)
from services.december_social import (
    AggregationWindow,
    DecemberAggregator,
    InternalRoutes,
    PlatformState,
    resolve_internal_base_url,
)
from services.errors import AggregatorFatalError
from services.meta_token import PageTokenCache, PageTokenResolver
from services.report_service import BaselineStore

PAGE_ID = "154572707991531"
IG_USER_ID = "17841400000000000"
NOW = datetime(2025, 12, 15, 10, 0, tzinfo=timezone.utc)

BASELINES = BaselineStore({
    PlatformName.FACEBOOK: FacebookRecord(
        handle="Magicworlds", followers=250, views=1000, viewers=500, visits=100
    ),
    PlatformName.X: XRecord(handle="@MagicworldsTV", followers=1000, posts=50),
    PlatformName.INSTAGRAM: InstagramRecord(
        handle="@magicworldstv", followers=1100, views=900, reach=400, visits=30
    ),
    PlatformName.YOUTUBE: YouTubeRecord(handle="@MagicworldsTV", followers=300, views=1500, videos=10),
})


def _series(values):
    return httpx.Response(200, json={"data": [{"values": [{"value": v} for v in values]}]})


def _upstream(page_metrics: dict, ig_metrics: dict, ig_lookup_status=None):
    def handler(request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if path == "/v20.0/me/accounts":
            return httpx.Response(
                200, json={"data": [{"id": PAGE_ID, "name": "Magicworlds", "access_token": "PT"}]}
            )
        if path == f"/v20.0/{PAGE_ID}":
            if ig_lookup_status is not None:
                return httpx.Response(ig_lookup_status, json={"error": {"message": "bad"}})
            return httpx.Response(200, json={"instagram_business_account": {"id": IG_USER_ID}})
        if path == f"/v20.0/{PAGE_ID}/insights":
            metrics = page_metrics
        elif path == f"/v20.0/{IG_USER_ID}/insights":
            metrics = ig_metrics
        else:
            return httpx.Response(404, json={"error": {"message": f"unexpected {path}"}})

        assert request.url.params["access_token"] == "PT"
        values = metrics.get(request.url.params["metric"])
        return _series(values) if values is not None else graph_error(400, "Invalid metric")

    return handler


def _internal(request: httpx.Request) -> httpx.Response:
    path = request.url.path
    if path == "/api/facebook/page":
        return httpx.Response(200, json={"id": PAGE_ID, "followers": 260})
    if path == "/api/instagram/profile":
        return httpx.Response(200, json={"igUserId": IG_USER_ID, "followers": 1200})
    if path == "/api/youtube/channel":
        assert request.url.params["handle"] == "MagicworldsTV"
        return httpx.Response(200, json={"views": "2000", "subscribers": None, "videos": "12"})
    if path == "/api/x/users/me":
        return httpx.Response(500, json={"error": "OAuth 1.0a credentials not configured"})
    return httpx.Response(404, json={"error": "Not found"})


DEFAULT_PAGE_METRICS = {
    "page_views_total": [1000, 300],
    "page_views_logged_in_total": [150],
}
DEFAULT_IG_METRICS = {"reach": [500, 300]}


def _aggregate(settings, page_metrics=None, ig_metrics=None, ig_lookup_status=None, now=NOW):
    page_metrics = DEFAULT_PAGE_METRICS if page_metrics is None else page_metrics
    ig_metrics = DEFAULT_IG_METRICS if ig_metrics is None else ig_metrics

    async def run():
        async with mock_client(_upstream(page_metrics, ig_metrics, ig_lookup_status)) as upstream, \
                mock_client(_internal) as internal_client:
            aggregator = DecemberAggregator(
                settings=settings,
                upstream=upstream,
                internal=InternalRoutes(internal_client, "http://report.test"),
                resolver=PageTokenResolver(upstream, PageTokenCache()),
                baselines=BASELINES,
            )
            return await aggregator.aggregate(now=now)

    return asyncio.run(run())


@pytest.fixture()
def settings(make_settings):
    return make_settings(facebook_page_access_token="PAGE", youtube_api_key="yt-key")


def test_platforms_are_in_fixed_order(settings) -> None:
    report = _aggregate(settings)
    payload = report.to_payload()

    assert [p["platform"] for p in payload["platforms"]] == [
        "Facebook", "X (Twitter)", "Instagram", "YouTube"
    ]
    assert payload["window"] == {"since": "2025-12-01", "until": "2025-12-15"}
    assert payload["generatedAt"] == "2025-12-15T10:00:00Z"


def test_facebook_growth_uses_live_views(settings) -> None:
    facebook = _aggregate(settings).to_payload()["platforms"][0]

    assert facebook["views"] == 1300
    assert facebook["views_growth"] == 30.0
    assert facebook["growth_percentage"] == 30.0
    assert facebook["visits"] == 150
    assert facebook["visit_growth"] == 50.0
    assert facebook["followers"] == 260
    # page_impressions_unique failed: baseline value, no growth
    assert facebook["viewers"] == 500
    assert facebook["viewers_growth"] == 0.0


def test_failed_views_fall_back_to_baseline(settings) -> None:
    report = _aggregate(settings, page_metrics={})
    facebook = report.to_payload()["platforms"][0]

    assert facebook["views"] == 1000
    assert facebook["views_growth"] == 0.0
    assert facebook["growth_percentage"] == 0.0
    assert report.outcomes[0].state == PlatformState.PARTIAL
    assert set(report.outcomes[0].fallback_fields) == {"views", "viewers", "visits"}


def test_instagram_growth_is_reach_based(settings) -> None:
    instagram = _aggregate(settings).to_payload()["platforms"][2]

    assert instagram["reach"] == 800
    assert instagram["reach_growth"] == 100.0
    assert instagram["growth_percentage"] == 100.0
    assert instagram["views"] == 900
    assert instagram["views_growth"] == 0.0
    assert instagram["followers"] == 1200


def test_x_growth_is_follower_based_and_never_negative(make_settings) -> None:
    settings = make_settings(youtube_api_key="yt-key")

    def internal(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/api/x/users/me":
            return httpx.Response(
                200, json={"data": {"public_metrics": {"followers_count": 950, "tweet_count": 60}}}
            )
        return _internal(request)

    async def run():
        async with mock_client(_upstream({}, {})) as upstream, mock_client(internal) as internal_client:
            aggregator = DecemberAggregator(
                settings=settings,
                upstream=upstream,
                internal=InternalRoutes(internal_client, "http://report.test"),
                resolver=PageTokenResolver(upstream, PageTokenCache()),
                baselines=BASELINES,
            )
            return await aggregator.aggregate(now=NOW)

    x = asyncio.run(run()).to_payload()["platforms"][1]
    assert x["followers"] == 950
    assert x["posts"] == 60
    assert x["growth_percentage"] == 0.0


def test_unreachable_x_route_keeps_baseline(settings) -> None:
    report = _aggregate(settings)
    x = report.to_payload()["platforms"][1]

    assert x["followers"] == 1000
    assert x["posts"] == 50
    assert x["growth_percentage"] == 0.0
    assert report.outcomes[1].state == PlatformState.PARTIAL


def test_youtube_hidden_subscribers_fall_back(settings) -> None:
    youtube = _aggregate(settings).to_payload()["platforms"][3]

    assert youtube["followers"] == 300
    assert youtube["views"] == 2000
    assert youtube["videos"] == 12
    assert youtube["views_growth"] == 33.33
    assert youtube["growth_percentage"] == 33.33


def test_failing_platform_does_not_affect_others(settings) -> None:
    report = _aggregate(settings, ig_lookup_status=400)
    platforms = report.to_payload()["platforms"]

    assert platforms[2] is None
    assert report.outcomes[2].state == PlatformState.FAILED
    assert report.outcomes[2].error.platform == "Instagram"
    assert platforms[0]["views"] == 1300
    assert platforms[3]["views"] == 2000


def test_missing_meta_credentials_null_facebook_and_instagram(make_settings) -> None:
    report = _aggregate(make_settings(youtube_api_key="yt-key"))
    platforms = report.to_payload()["platforms"]

    assert platforms[0] is None
    assert platforms[2] is None
    assert platforms[3]["views"] == 2000


def test_no_credentials_is_fatal(make_settings) -> None:
    with pytest.raises(AggregatorFatalError):
        _aggregate(make_settings())


def test_baseline_record_is_not_mutated(settings) -> None:
    _aggregate(settings)
    assert BASELINES.get(PlatformName.FACEBOOK).views == 1000
    assert BASELINES.get(PlatformName.FACEBOOK).views_growth is None


def test_window_for_month() -> None:
    window = AggregationWindow.for_month(datetime(2025, 12, 3, 23, 30, tzinfo=timezone.utc), 12)
    assert window.since == date(2025, 12, 1)
    assert window.until == date(2025, 12, 3)
    assert window.since_unix == 1764547200
    # Exclusive bound: next UTC midnight
    assert window.until_unix_exclusive == 1764547200 + 3 * 86400
    assert window.insight_window().days == 3


def test_window_uses_utc_date() -> None:
    tz = timezone(timedelta(hours=-8))
    window = AggregationWindow.for_month(datetime(2025, 12, 3, 20, 0, tzinfo=tz), 12)
    assert window.until == date(2025, 12, 4)


def test_window_in_january_covers_previous_december() -> None:
    window = AggregationWindow.for_month(datetime(2026, 1, 5, 12, 0, tzinfo=timezone.utc), 12)
    assert window.since == date(2025, 12, 1)
    assert window.until == date(2025, 12, 31)
    assert window.since <= window.until
    assert window.insight_window().days == 31


@pytest.mark.parametrize(
    "now",
    [
        datetime(2026, 10, 19, 8, 0, tzinfo=timezone.utc),
        datetime(2026, 2, 28, 23, 59, tzinfo=timezone.utc),
    ],
)
def test_window_before_report_month_uses_last_occurrence(now: datetime) -> None:
    window = AggregationWindow.for_month(now, 12)
    assert window.since == date(2025, 12, 1)
    assert window.until == date(2025, 12, 31)


def test_window_after_report_month_is_clamped_to_month_end() -> None:
    window = AggregationWindow.for_month(datetime(2026, 3, 10, tzinfo=timezone.utc), 2)
    assert window.since == date(2026, 2, 1)
    assert window.until == date(2026, 2, 28)


def test_internal_base_url_resolution(make_settings) -> None:
    headers = {"host": "api.example.com", "x-forwarded-proto": "https, http"}

    assert resolve_internal_base_url(
        make_settings(vercel_url="app.vercel.app"), headers, "http://fallback/"
    ) == "https://app.vercel.app"
    assert resolve_internal_base_url(
        make_settings(public_base_url="https://report.example.com/"), headers, "http://fallback/"
    ) == "https://report.example.com"
    assert resolve_internal_base_url(make_settings(), headers, "http://fallback/") == "https://api.example.com"
    assert resolve_internal_base_url(make_settings(), {}, "http://fallback/") == "http://fallback"
