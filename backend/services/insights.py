"""Meta Insights metric fetching with ordered fallback.

Meta renames and retires Insights metrics regularly, so each logical metric
is described by a ``MetricPlan``: an ordered list of candidate metric names
and the periods to try for each. Attempts run in order and stop at the first
HTTP-ok, parseable response. Every failed attempt is recorded under
``"metric (period)"`` instead of aborting the request.

``day`` values are summed over the window (flow metrics); ``lifetime``
values take the latest point (cumulative counters).
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Iterable, Literal, Optional, TypeVar

import httpx

from services.errors import UpstreamMetricError, UpstreamTotalFailure
from services.growth import to_number
from services.http import as_dict, graph_url, read_json, redact, upstream_error_message

logger = logging.getLogger(__name__)

Period = Literal["day", "lifetime"]
Aggregate = Literal["sum", "latest"]

T = TypeVar("T")
R = TypeVar("R")


@dataclass(frozen=True)
class InsightWindow:
    """Unix-second bounds for ``day`` queries (until is exclusive)."""
    since: int
    until: int

    @property
    def days(self) -> int:
        return max(0, (self.until - self.since) // 86400)


@dataclass(frozen=True)
class MetricPlan:
    """Candidates for one logical metric, tried in order."""
    key: str
    candidates: tuple[str, ...]
    preferred_period: Period = "day"
    aggregate: Aggregate = "sum"
    label: str = ""
    only_preferred_period: bool = False

    @property
    def periods(self) -> tuple[Period, ...]:
        if self.only_preferred_period:
            return (self.preferred_period,)
        return ("day", "lifetime") if self.preferred_period == "day" else ("lifetime", "day")

    def attempts(self) -> list[tuple[str, Period]]:
        return [(metric, period) for metric in self.candidates for period in self.periods]


@dataclass
class MetricOutcome:
    """Result of running one plan."""
    key: str
    label: str
    aggregate: Aggregate
    value: Optional[float] = None
    metric_used: Optional[str] = None
    period_used: Optional[Period] = None
    failures: list[UpstreamMetricError] = field(default_factory=list)
    error: Optional[UpstreamTotalFailure] = None
    raw: Any = None

    @property
    def succeeded(self) -> bool:
        return self.metric_used is not None

    def as_extra(self) -> dict:
        return {
            "key": self.key,
            "label": self.label,
            "value": self.value,
            "metricUsed": self.metric_used,
            "periodUsed": self.period_used,
            "aggregate": self.aggregate,
        }


@dataclass
class InsightsReport:
    """Outcomes of a batch of plans, keyed by plan key, plus every failure."""
    outcomes: dict[str, MetricOutcome]
    unsupported: dict[str, str]
    raw_by_metric: dict[str, Any]

    @property
    def success_count(self) -> int:
        return sum(1 for o in self.outcomes.values() if o.succeeded)

    def value(self, key: str) -> Optional[float]:
        outcome = self.outcomes.get(key)
        return outcome.value if outcome else None


async def first_success(
    attempts: Iterable[T],
    call: Callable[[T], Awaitable[R]],
) -> tuple[Optional[tuple[T, R]], list[UpstreamMetricError]]:
    """Run ``call`` over attempts in order until one succeeds.

    Returns ``((attempt, result), failures)`` on success, or
    ``(None, failures)`` when every attempt raised UpstreamMetricError.
    """
    failures: list[UpstreamMetricError] = []
    for attempt in attempts:
        try:
            result = await call(attempt)
        except UpstreamMetricError as e:
            failures.append(e)
            continue
        return (attempt, result), failures
    return None, failures


def sum_values(insight: Optional[dict]) -> Optional[float]:
    """Sum of all daily values; None when the series is missing."""
    if not insight or not isinstance(insight.get("values"), list):
        return None
    return sum(to_number(as_dict(v).get("value")) for v in insight["values"])


def latest_value(insight: Optional[dict]) -> Optional[float]:
    """Most recent point of the series; None when missing or non-numeric."""
    if not insight or not isinstance(insight.get("values"), list) or not insight["values"]:
        return None
    latest = as_dict(insight["values"][-1]).get("value")
    if isinstance(latest, bool) or not isinstance(latest, (int, float)):
        return None
    return latest


def first_series(body: Any) -> Optional[dict]:
    data = as_dict(body).get("data")
    if isinstance(data, list) and data:
        return as_dict(data[0])
    return None


class InsightsFetcher:
    """Fetches single Insights metrics for one Graph object (page or IG user)."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        object_id: str,
        access_token: str,
        window: InsightWindow,
        graph_version: str = "v20.0",
    ):
        self.client = client
        self.object_id = object_id
        self.access_token = access_token
        self.window = window
        self.graph_version = graph_version

    async def fetch(self, metric: str, period: Period) -> dict:
        """Fetch one metric/period; raises UpstreamMetricError on any failure."""
        params: dict[str, Any] = {"metric": metric, "period": period}
        if period == "day":
            params["since"] = str(self.window.since)
            params["until"] = str(self.window.until)
        params["access_token"] = self.access_token

        url = graph_url(self.graph_version, self.object_id, "insights")
        logger.debug(f"Fetching insights metric {metric} ({period}) for {self.object_id}")

        try:
            response = await self.client.get(url, params=params)
        except httpx.TimeoutException as e:
            raise UpstreamMetricError(f"Timed out: {e}", metric, period) from e
        except httpx.HTTPError as e:
            message = redact(str(e), self.access_token)
            raise UpstreamMetricError(message, metric, period) from e

        body = read_json(response)
        if not response.is_success:
            raise UpstreamMetricError(
                upstream_error_message(response, body),
                metric,
                period,
                status_code=response.status_code,
                details=body,
            )
        if body is None:
            raise UpstreamMetricError(
                "Response was not valid JSON", metric, period,
                status_code=response.status_code,
            )
        return body

    async def run_plan(self, plan: MetricPlan) -> MetricOutcome:
        outcome = MetricOutcome(key=plan.key, label=plan.label, aggregate=plan.aggregate)

        async def attempt(candidate: tuple[str, Period]) -> dict:
            return await self.fetch(*candidate)

        hit, failures = await first_success(plan.attempts(), attempt)
        outcome.failures = failures
        if hit is None:
            outcome.error = UpstreamTotalFailure(plan.key, failures)
            logger.warning(
                f"{outcome.error.message} on {self.object_id}: "
                f"{', '.join(f.key for f in failures)}"
            )
            return outcome

        (metric, period), body = hit
        series = first_series(body)
        outcome.metric_used = metric
        outcome.period_used = period
        outcome.raw = body
        outcome.value = latest_value(series) if plan.aggregate == "latest" else sum_values(series)
        return outcome

    async def run_plans(self, plans: Iterable[MetricPlan]) -> InsightsReport:
        """Run plans concurrently; each plan's candidates stay sequential."""
        plans = list(plans)
        outcomes = await asyncio.gather(*(self.run_plan(p) for p in plans))

        unsupported: dict[str, str] = {}
        raw_by_metric: dict[str, Any] = {}
        for outcome in outcomes:
            for failure in outcome.failures:
                unsupported[failure.key] = failure.message
            if outcome.succeeded:
                raw_by_metric[f"{outcome.metric_used} ({outcome.period_used})"] = outcome.raw

        return InsightsReport(
            outcomes={o.key: o for o in outcomes},
            unsupported=unsupported,
            raw_by_metric=raw_by_metric,
        )


def shape_insights(
    report: InsightsReport,
    fields: Iterable[str],
    extras: Iterable[MetricPlan],
    window: InsightWindow,
    attempted: Iterable[MetricPlan],
) -> dict:
    """Common response body of the insights routes."""
    fields = list(fields)
    shaped: dict[str, Any] = {name: report.value(name) for name in fields}
    shaped["extras"] = [report.outcomes[p.key].as_extra() for p in extras]
    shaped["range"] = {"since": window.since, "until": window.until, "days": window.days}
    shaped["raw"] = {
        "rawByMetric": report.raw_by_metric,
        "since": window.since,
        "until": window.until,
        "days": window.days,
        "attempted": [
            {
                "field": p.key,
                "metricsToTry": list(p.candidates),
                "preferredPeriod": p.preferred_period,
            }
            for p in attempted
        ],
    }
    if report.unsupported:
        shaped["unsupported"] = report.unsupported
    if not any(report.outcomes[name].succeeded for name in fields if name in report.outcomes):
        shaped["allFailed"] = True
    return shaped
