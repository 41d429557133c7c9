"""Growth percentage rules for the report.

Display policy: growth is never negative. A decline is reported as 0
("no growth yet"), and every percentage is rounded to 2 decimals.
"""

import math
from typing import Any, Iterable, Optional

from models.platform import BasePlatformRecord, PlatformName


def to_number(value: Any) -> float:
    """Coerce an upstream value to a number; anything unparseable is 0."""
    if isinstance(value, bool):
        return 0
    if isinstance(value, (int, float)):
        return value if math.isfinite(value) else 0
    if isinstance(value, str):
        try:
            n = float(value)
        except ValueError:
            return 0
        if not math.isfinite(n):
            return 0
        return int(n) if n.is_integer() else n
    return 0


def pct_change(current: Optional[float], baseline: Optional[float]) -> float:
    """Raw percentage change; a zero baseline yields 100 (or 0 if current is 0)."""
    c = current if current is not None else 0
    b = baseline if baseline is not None else 0
    if not math.isfinite(c) or not math.isfinite(b):
        return 0.0
    if b == 0:
        return 0.0 if c == 0 else 100.0
    return ((c - b) / b) * 100


def clamp_non_negative_round2(value: float) -> float:
    """max(0, value) rounded half-up to 2 decimals."""
    clamped = max(0.0, value)
    return math.floor(clamped * 100 + 0.5) / 100


def growth(current: Optional[float], baseline: Optional[float]) -> float:
    return clamp_non_negative_round2(pct_change(current, baseline))


def effective(live: Optional[float], baseline: float) -> float:
    """Live value when present, otherwise the baseline value."""
    return live if live is not None else baseline


def platform_kpi(record: BasePlatformRecord) -> float:
    """Headline KPI per platform: views (FB/YT), reach (IG), followers (X)."""
    name = PlatformName(record.platform)
    if name in (PlatformName.FACEBOOK, PlatformName.YOUTUBE):
        return to_number(getattr(record, "views", 0))
    if name == PlatformName.INSTAGRAM:
        return to_number(getattr(record, "reach", 0))
    return to_number(record.followers)


def overall_social_growth(
    records: Iterable[BasePlatformRecord],
    baselines: dict[PlatformName, BasePlatformRecord],
) -> Optional[int]:
    """Mean clamped KPI growth across platforms, rounded to a whole number.

    Platforms without a positive baseline KPI are skipped; None when none qualify.
    """
    total = 0.0
    count = 0
    for record in records:
        baseline = baselines.get(PlatformName(record.platform))
        if baseline is None:
            continue
        base_kpi = platform_kpi(baseline)
        if base_kpi <= 0:
            continue
        total += max(0.0, ((platform_kpi(record) - base_kpi) / base_kpi) * 100)
        count += 1

    if count == 0:
        return None
    return math.floor(total / count + 0.5)
