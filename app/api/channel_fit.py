"""
Channel-Product Fit API Routes

Per-tenant channel fit scores and recommendations.
"""
from fastapi import APIRouter, HTTPException, Query, Request
from typing import Optional

from app.services.channel_fit import ChannelFitEngine, ChannelFitValidationError
from app.utils.logger import log, safe_error

router = APIRouter(prefix="/channel-fit", tags=["channel-fit"])


def get_engine(request: Request) -> ChannelFitEngine:
    engine = getattr(request.app.state, "channel_fit_engine", None)
    if engine is None:
        raise HTTPException(status_code=503, detail="Channel-fit engine is not available")
    return engine


@router.get("/analysis")
def get_channel_fit_analysis(
    request: Request,
    tenant_id: str = Query(..., description="Tenant to analyse"),
    period: Optional[str] = Query(None, description="last_30_days, last_60_days or last_90_days"),
    product: Optional[str] = Query(None, max_length=200, description="Filter by SKU or title"),
    limit: Optional[int] = Query(None, description="Products to analyse (1-20)"),
):
    """Channel fit report: per-product channel scores plus the top recommendations."""
    engine = get_engine(request)
    try:
        result = engine.analyze(tenant_id, period=period, product_filter=product, limit=limit)
        return {"success": True, "data": result.to_dict()}
    except ChannelFitValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        log.error(f"Error in /channel-fit/analysis: {safe_error(e)}")
        raise HTTPException(status_code=500, detail="Channel-fit analysis failed")
