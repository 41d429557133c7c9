"""Tests for the HTTP routes and the error body format."""

from __future__ import annotations

from datetime import date, datetime, timezone

import httpx
import pytest
from fastapi.testclient import TestClient

from config import get_settings
from conftest import graph_error, mock_client
import dependencies
from dependencies import get_aggregator, get_live_aggregator, get_upstream_client
from main import app
from middleware.rate_limit import limiter
from models.platform import FacebookRecord, PlatformName
from services.december_social import AggregationWindow, DecemberReport, PlatformOutcome
from services.errors import AggregatorFatalError

PAGE_ID = "154572707991531"


@pytest.fixture()
def client():
    app.dependency_overrides.clear()
    limiter.reset()
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
        limiter.reset()
        app.state.token_cache.invalidate()


def use_settings(settings) -> None:
    app.dependency_overrides[get_settings] = lambda: settings


def use_upstream(handler) -> list[httpx.Request]:
    seen: list[httpx.Request] = []

    def recording(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return handler(request)

    async def override():
        async with mock_client(recording) as upstream:
            yield upstream

    app.dependency_overrides[get_upstream_client] = override
    return seen


def test_health(client) -> None:
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_wrong_method_uses_error_body(client) -> None:
    response = client.post("/api/report/december-social")

    assert response.status_code == 405
    assert "GET" in response.headers["allow"]
    assert response.json() == {"error": "Method POST not allowed"}


def test_unknown_route_is_404_error_body(client) -> None:
    response = client.get("/api/nope")
    assert response.status_code == 404
    assert response.json() == {"error": "Not Found"}


def test_youtube_requires_api_key(client, make_settings) -> None:
    use_settings(make_settings())

    response = client.get("/api/youtube/channel")
    assert response.status_code == 500
    assert "YOUTUBE_API_KEY" in response.json()["error"]


def test_youtube_channel_with_hidden_subscribers(client, make_settings) -> None:
    use_settings(make_settings(youtube_api_key="yt-key"))

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/search"):
            assert request.url.params["q"] == "SomeHandle"
            return httpx.Response(200, json={"items": [{"id": {"channelId": "UC123"}}]})
        assert request.url.params["id"] == "UC123"
        return httpx.Response(200, json={
            "items": [{
                "snippet": {
                    "title": "Magicworlds",
                    "thumbnails": {"medium": {"url": "https://img.example/m.jpg"}},
                },
                "statistics": {
                    "hiddenSubscriberCount": True,
                    "subscriberCount": "0",
                    "viewCount": "1875400",
                    "videoCount": "214",
                },
            }]
        })

    use_upstream(handler)
    response = client.get("/api/youtube/channel", params={"handle": "SomeHandle"})

    assert response.status_code == 200
    body = response.json()
    assert body["title"] == "Magicworlds"
    assert body["thumbnailUrl"] == "https://img.example/m.jpg"
    assert body["subscribers"] is None
    assert body["views"] == "1875400"
    assert body["videos"] == "214"


def test_youtube_channel_not_found(client, make_settings) -> None:
    use_settings(make_settings(youtube_api_key="yt-key"))
    use_upstream(lambda request: httpx.Response(200, json={"items": []}))

    response = client.get("/api/youtube/channel")
    assert response.status_code == 404
    assert response.json()["error"] == "Channel not found for handle: MagicworldsTV"


def test_x_requires_oauth_credentials(client, make_settings) -> None:
    use_settings(make_settings(x_api_key="key"))

    response = client.get("/api/x/users/me")
    assert response.status_code == 500
    error = response.json()["error"]
    assert "X_API_KEY_SECRET" in error
    assert "X_API_KEY," not in error


def test_x_users_me_is_signed(client, make_settings) -> None:
    use_settings(make_settings(
        x_api_key="key", x_api_key_secret="secret",
        x_access_token="token", x_access_token_secret="token-secret",
    ))
    seen = use_upstream(lambda request: httpx.Response(200, json={
        "data": {"id": "42", "username": "MagicworldsTV", "public_metrics": {"followers_count": 9000}}
    }))

    response = client.get("/api/x/users/me")

    assert response.status_code == 200
    assert response.json()["data"]["public_metrics"]["followers_count"] == 9000
    assert seen[0].url.path == "/2/users/me"
    authorization = seen[0].headers["authorization"]
    assert authorization.startswith("OAuth ")
    assert 'oauth_consumer_key="key"' in authorization
    assert 'oauth_token="token"' in authorization


def test_x_upstream_rate_limit_is_passed_through(client, make_settings) -> None:
    use_settings(make_settings(
        x_api_key="key", x_api_key_secret="secret",
        x_access_token="token", x_access_token_secret="token-secret",
    ))
    use_upstream(lambda request: httpx.Response(429, json={"title": "Too Many Requests"}))

    response = client.get("/api/x/users/me/tweets")
    assert response.status_code == 429
    assert response.json()["details"] == {"title": "Too Many Requests"}


def test_facebook_page_profile(client, make_settings) -> None:
    use_settings(make_settings(facebook_page_access_token="PAGE-TOKEN"))
    seen = use_upstream(lambda request: httpx.Response(200, json={
        "id": PAGE_ID, "name": "Magicworlds", "fan_count": 12000, "followers_count": 12480,
    }))

    response = client.get("/api/facebook/page")

    assert response.status_code == 200
    body = response.json()
    assert body["followers"] == 12480
    assert body["likes"] == 12000
    assert seen[0].url.params["access_token"] == "PAGE-TOKEN"


def test_facebook_page_profile_keeps_zero_counts(client, make_settings) -> None:
    use_settings(make_settings(facebook_page_access_token="PAGE-TOKEN"))
    use_upstream(lambda request: httpx.Response(200, json={
        "id": PAGE_ID, "name": "New Page", "fan_count": "0", "followers_count": "0",
    }))

    response = client.get("/api/facebook/page")

    assert response.status_code == 200
    body = response.json()
    assert body["followers"] == 0
    assert body["likes"] == 0


def test_facebook_page_expired_token(client, make_settings) -> None:
    use_settings(make_settings(facebook_page_access_token="PAGE-TOKEN"))
    use_upstream(lambda request: httpx.Response(400, json={
        "error": {"type": "OAuthException", "code": 190, "error_subcode": 463, "message": "expired"}
    }))

    response = client.get("/api/facebook/page")
    assert response.status_code == 401
    assert "expired" in response.json()["error"]


def test_facebook_page_token_derivation_failure(client, make_settings) -> None:
    use_settings(make_settings(facebook_user_access_token="USER"))
    use_upstream(lambda request: graph_error(400, "Invalid OAuth access token."))

    response = client.get("/api/facebook/page")
    assert response.status_code == 401
    assert response.json()["details"] == "Invalid OAuth access token."


def test_facebook_insights_lists_unsupported_metrics(client, make_settings) -> None:
    use_settings(make_settings(facebook_page_access_token="PAGE-TOKEN"))

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.params.get("metric") == "page_impressions":
            return httpx.Response(200, json={"data": [{"values": [{"value": 4}, {"value": 6}]}]})
        return graph_error(400, "The value must be a valid insights metric")

    use_upstream(handler)
    response = client.get("/api/facebook/insights")

    assert response.status_code == 200
    body = response.json()
    assert body["impressions"] == 10
    assert body["reach"] is None
    assert "allFailed" not in body
    assert body["range"]["days"] == 30
    assert any(key.startswith("page_fans") for key in body["unsupported"])


def test_instagram_without_meta_tokens(client, make_settings) -> None:
    use_settings(make_settings())

    response = client.get("/api/instagram/profile")
    assert response.status_code == 500
    assert response.json()["error"] == "Server configuration error: missing Facebook token(s)"


def _report() -> DecemberReport:
    window = AggregationWindow(since=date(2025, 12, 1), until=date(2025, 12, 15))
    outcomes = [
        PlatformOutcome(
            platform=PlatformName.FACEBOOK,
            record=FacebookRecord(handle="Magicworlds", followers=12500, views=50000, growth_percentage=21.36),
        ),
        PlatformOutcome(platform=PlatformName.X),
        PlatformOutcome(platform=PlatformName.INSTAGRAM),
        PlatformOutcome(platform=PlatformName.YOUTUBE),
    ]
    return DecemberReport(
        window=window,
        generated_at=datetime(2025, 12, 15, 10, 0, tzinfo=timezone.utc),
        outcomes=outcomes,
    )


class StubAggregator:
    def __init__(self, report=None, error=None):
        self.report = report
        self.error = error

    async def aggregate(self, now=None):
        if self.error is not None:
            raise self.error
        return self.report


def test_december_social_report(client) -> None:
    app.dependency_overrides[get_aggregator] = lambda: StubAggregator(_report())

    response = client.get("/api/report/december-social")

    assert response.status_code == 200
    body = response.json()
    assert body["window"] == {"since": "2025-12-01", "until": "2025-12-15"}
    assert body["generatedAt"] == "2025-12-15T10:00:00Z"
    assert body["platforms"][1:] == [None, None, None]
    assert body["platforms"][0]["platform"] == "Facebook"
    assert body["platforms"][0]["views"] == 50000


def test_december_social_fatal_error(client) -> None:
    app.dependency_overrides[get_aggregator] = lambda: StubAggregator(
        error=AggregatorFatalError("No social platform credentials configured")
    )

    response = client.get("/api/report/december-social")

    assert response.status_code == 500
    assert response.json() == {
        "error": "Failed to build December social report",
        "details": "No social platform credentials configured",
    }


def test_current_report_static(client, monkeypatch) -> None:
    def no_client(timeout):
        raise AssertionError("static report opened an HTTP client")

    monkeypatch.setattr(dependencies, "new_client", no_client)

    response = client.get("/api/report/current")

    assert response.status_code == 200
    body = response.json()
    assert body["report_period"]["month"] == "December"
    assert len(body["social_media_performance"]["platforms"]) == 4
    assert "overall_growth" not in body["social_media_performance"]


def test_current_report_live_overlay(client) -> None:
    app.dependency_overrides[get_live_aggregator] = lambda: StubAggregator(_report())

    response = client.get("/api/report/current", params={"live": "true"})

    assert response.status_code == 200
    section = response.json()["social_media_performance"]
    assert [p["platform"] for p in section["platforms"]] == ["Facebook"]
    # Facebook views 50000 against the bundled 41200 baseline
    assert section["overall_growth"] == 21
    assert section["window"] == {"since": "2025-12-01", "until": "2025-12-15"}


def test_rate_limit_ignores_forwarded_for_header(client) -> None:
    app.dependency_overrides[get_aggregator] = lambda: StubAggregator(_report())

    statuses = [
        client.get(
            "/api/report/december-social",
            headers={"x-forwarded-for": f"203.0.113.{i}"},
        ).status_code
        for i in range(31)
    ]

    assert statuses[:30] == [200] * 30
    assert statuses[30] == 429
