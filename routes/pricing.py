"""
Pricing routes.

POST /api/pricing/quote runs the cost-plus engine on ad-hoc input.
POST /api/pricing/reprice recomputes every non-manual product.
"""

from fastapi import APIRouter
from fastapi.responses import JSONResponse
import structlog

from exceptions import AppError
from models.pricing import PricingBreakdown, PricingInput, RepriceReport
from services.pricing_service import get_pricing_service

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/pricing", tags=["Pricing"])


def handle_error(e: Exception) -> JSONResponse:
    """Convert exception to JSON response."""
    if isinstance(e, AppError):
        return JSONResponse(status_code=e.status_code, content=e.to_dict())
    logger.error("unexpected_error", error=str(e), type=type(e).__name__)
    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "code": "INTERNAL_ERROR",
                "message": "An unexpected error occurred"
            }
        }
    )


@router.post("/quote", response_model=PricingBreakdown)
def quote(data: PricingInput):
    """Price breakdown for the given cost drivers (no catalog writes)."""
    try:
        return get_pricing_service().quote(data)
    except Exception as e:
        return handle_error(e)


@router.post("/reprice", response_model=RepriceReport)
def reprice():
    """
    Recompute price and breakdown of every cost-plus product.

    Runs synchronously in the threadpool.
    """
    try:
        return get_pricing_service().reprice_catalog()
    except Exception as e:
        return handle_error(e)
