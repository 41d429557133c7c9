"""Static monthly report data and report merging.

The previous month's report (baseline) is loaded once per process and never
mutated. It is the growth denominator for live numbers and the fallback for
any metric a live call fails to produce.
"""

import copy
import json
import logging
from functools import lru_cache
from pathlib import Path
from types import MappingProxyType
from typing import Any, Mapping, Optional

from config import get_settings
from models.platform import (
    BasePlatformRecord,
    PlatformName,
    empty_record,
    parse_platform_record,
)

logger = logging.getLogger(__name__)

DATA_DIR = Path(__file__).resolve().parent.parent / "data"
DEFAULT_BASELINE_PATH = DATA_DIR / "nov_report.json"
DEFAULT_CURRENT_PATH = DATA_DIR / "dec_report.json"


@lru_cache
def _read_json(path: str) -> Mapping[str, Any]:
    with open(path, encoding="utf-8") as f:
        data = json.load(f)
    logger.info(f"Loaded report data from {path}")
    return MappingProxyType(data)


def _baseline_path() -> str:
    return get_settings().baseline_report_path or str(DEFAULT_BASELINE_PATH)


def _current_path() -> str:
    return get_settings().current_report_path or str(DEFAULT_CURRENT_PATH)


def load_baseline_report() -> dict:
    """Return a private copy of the baseline (previous month) report."""
    return copy.deepcopy(dict(_read_json(_baseline_path())))


def load_current_report() -> dict:
    """Return a private copy of the current month's (partial) report."""
    return copy.deepcopy(dict(_read_json(_current_path())))


class BaselineStore:
    """Frozen per-platform baseline records, keyed by platform name."""

    def __init__(self, records: Mapping[PlatformName, BasePlatformRecord]):
        self._records = MappingProxyType(dict(records))

    @classmethod
    def from_report(cls, report: Mapping[str, Any]) -> "BaselineStore":
        platforms = (report.get("social_media_performance") or {}).get("platforms") or []
        records: dict[PlatformName, BasePlatformRecord] = {}
        for entry in platforms:
            try:
                name = PlatformName(entry.get("platform"))
            except ValueError:
                logger.warning(f"Skipping unknown baseline platform: {entry.get('platform')!r}")
                continue
            records[name] = parse_platform_record(entry)
        return cls(records)

    def get(self, name: PlatformName) -> BasePlatformRecord:
        """Baseline record for a platform, or a minimal empty record."""
        record = self._records.get(name)
        if record is None:
            logger.warning(f"No baseline record for {name.value}; using an empty record")
            return empty_record(name)
        return record

    def __contains__(self, name: object) -> bool:
        return name in self._records


@lru_cache
def get_baseline_store() -> BaselineStore:
    """Baseline store built once per process."""
    return BaselineStore.from_report(_read_json(_baseline_path()))


DISPLAY_FIELDS = ("handle", "role", "description")


def display_overrides(report: Mapping[str, Any]) -> dict[PlatformName, dict[str, str]]:
    """Non-empty handle/role/description per platform from a (partial) report."""
    platforms = (report.get("social_media_performance") or {}).get("platforms") or []
    overrides: dict[PlatformName, dict[str, str]] = {}
    for entry in platforms:
        try:
            name = PlatformName(entry.get("platform"))
        except ValueError:
            continue
        values = {
            k: entry[k] for k in DISPLAY_FIELDS
            if isinstance(entry.get(k), str) and entry[k].strip()
        }
        if values:
            overrides[name] = values
    return overrides


def _is_plain_object(value: Any) -> bool:
    return isinstance(value, Mapping)


def merge_report_data(previous: Any, current: Any) -> Any:
    """Deep-merge the current report over the previous one.

    - dicts: recurse key by key, keeping keys only the previous one has
    - lists: the current list if it is non-empty, else the previous one
    - scalars: the current value unless it is None or a blank string
    """
    if isinstance(previous, list) and isinstance(current, list):
        return current if len(current) > 0 else previous

    if _is_plain_object(previous) and _is_plain_object(current):
        out = dict(previous)
        for key, current_value in current.items():
            out[key] = merge_report_data(previous.get(key), current_value)
        return out

    if current is None:
        return previous
    if isinstance(current, str) and current.strip() == "":
        return previous
    return current


def build_merged_report(
    previous: Optional[dict] = None, current: Optional[dict] = None
) -> dict:
    """Merged report: current month over the baseline month."""
    previous = previous if previous is not None else load_baseline_report()
    current = current if current is not None else load_current_report()
    return merge_report_data(previous, current)
