"""Report router - live December social numbers and the merged monthly report."""

import logging
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from config import get_settings
from dependencies import get_aggregator, get_baselines, get_live_aggregator
from middleware.rate_limit import limiter
from models.platform import PLATFORM_ORDER
from services.december_social import DecemberAggregator
from services.errors import AggregatorFatalError
from services.growth import overall_social_growth
from services.report_service import BaselineStore, build_merged_report

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/report", tags=["report"])

AggregatorDep = Annotated[DecemberAggregator, Depends(get_aggregator)]


# Response schemas
class ReportWindow(BaseModel):
    since: str
    until: str


class DecemberSocialResponse(BaseModel):
    window: ReportWindow
    generatedAt: str
    platforms: list[Optional[dict]]


def _report_rate_limit() -> str:
    return get_settings().report_rate_limit


def _failure(e: Exception) -> JSONResponse:
    return JSONResponse(
        status_code=500,
        content={"error": "Failed to build December social report", "details": str(e)},
    )


@router.get("/december-social", response_model=DecemberSocialResponse)
@limiter.limit(_report_rate_limit)
async def get_december_social(request: Request, aggregator: AggregatorDep):
    """Month-to-date numbers for [Facebook, X, Instagram, YouTube].

    A platform that could not be built at all is ``null``; every other
    platform falls back to last month's values for any metric it could not
    fetch live.
    """
    try:
        report = await aggregator.aggregate()
    except AggregatorFatalError as e:
        logger.error(f"December social report failed: {e.message}")
        return _failure(e)
    except Exception as e:
        logger.exception("Unexpected error while building December social report")
        return _failure(e)
    return report.to_payload()


@router.get("/current")
@limiter.limit(_report_rate_limit)
async def get_current_report(
    request: Request,
    aggregator: Annotated[Optional[DecemberAggregator], Depends(get_live_aggregator)],
    baselines: Annotated[BaselineStore, Depends(get_baselines)],
):
    """The current month's report merged over last month's.

    With ``live=true`` the live platform records replace the static ones and
    the overall social growth is added.
    """
    merged = build_merged_report()
    if aggregator is None:
        return merged

    try:
        report = await aggregator.aggregate()
    except Exception as e:
        logger.exception("Live overlay for the current report failed")
        return _failure(e)

    records = [r for r in report.records if r is not None]
    section = merged.setdefault("social_media_performance", {})
    if records:
        section["platforms"] = [r.model_dump(mode="json") for r in records]
    section["overall_growth"] = overall_social_growth(
        records, {name: baselines.get(name) for name in PLATFORM_ORDER if name in baselines}
    )
    section["window"] = report.window.as_dict()
    section["generatedAt"] = report.to_payload()["generatedAt"]
    return merged
