"""Error taxonomy for the social report services.

Failures are contained at the narrowest scope that can absorb them:
metric attempt -> metric -> platform -> aggregator.
"""

from typing import Any, Optional


class SocialReportError(Exception):
    """Base class for every error raised by the report services."""

    def __init__(self, message: str, details: Any = None):
        super().__init__(message)
        self.message = message
        self.details = details


class ConfigurationError(SocialReportError):
    """A required credential or setting is missing."""


class TokenResolutionError(SocialReportError):
    """Exchanging a user token for a page token failed."""


class UpstreamMetricError(SocialReportError):
    """One metric/period candidate failed upstream (non-fatal)."""

    def __init__(
        self,
        message: str,
        metric: str,
        period: str,
        status_code: Optional[int] = None,
        details: Any = None,
    ):
        super().__init__(message, details)
        self.metric = metric
        self.period = period
        self.status_code = status_code

    @property
    def key(self) -> str:
        return f"{self.metric} ({self.period})"


class UpstreamTotalFailure(SocialReportError):
    """Every candidate for a logical metric failed."""

    def __init__(self, field: str, failures: list[UpstreamMetricError]):
        super().__init__(
            f"All {len(failures)} candidate(s) failed for {field}",
            details={f.key: f.message for f in failures},
        )
        self.field = field
        self.failures = failures


class UpstreamResponseError(SocialReportError):
    """A single-shot upstream call (profile, channel, user lookup) failed."""

    def __init__(self, message: str, status_code: int, details: Any = None):
        super().__init__(message, details)
        self.status_code = status_code


class ResourceNotFoundError(SocialReportError):
    """An upstream lookup succeeded but the requested resource does not exist."""


class PlatformPipelineFailure(SocialReportError):
    """One platform's whole pipeline failed; its slot degrades to null."""

    def __init__(self, platform: str, cause: BaseException):
        super().__init__(f"{platform} build failed: {cause}", details=type(cause).__name__)
        self.platform = platform
        self.cause = cause


class AggregatorFatalError(SocialReportError):
    """Something outside every per-platform boundary failed."""
