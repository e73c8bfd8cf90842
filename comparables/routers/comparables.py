from fastapi import APIRouter, Depends, HTTPException, Query

from structlog import get_logger

from comparables.dependencies.service import get_comparables_service
from comparables.errors import FeedUnavailable
from comparables.models.market import MarketStatistics
from comparables.models.property import PropertyType
from comparables.schemas.comparables import ComparablesReport, ComparablesRequest
from comparables.services.comparables import ComparablesService

logger = get_logger()
router = APIRouter(prefix="/api/v1", tags=["comparables"])


@router.post("/comparables", response_model=ComparablesReport)
async def find_comparables(
    request: ComparablesRequest,
    service: ComparablesService = Depends(get_comparables_service),
):
    try:
        return await service.analyze(request.to_criteria())
    except Exception as e:
        logger.error("Comparable analysis failed", city=request.city, error=str(e))
        raise HTTPException(status_code=500, detail="Comparable analysis failed")


@router.get("/market-stats", response_model=MarketStatistics)
async def market_stats(
    city: str = Query(..., min_length=1),
    property_type: str = Query(..., min_length=1),
    service: ComparablesService = Depends(get_comparables_service),
):
    try:
        return await service.market_stats(city, PropertyType.parse(property_type))
    except FeedUnavailable as e:
        logger.error("Market statistics without feed", city=city, error=str(e))
        raise HTTPException(status_code=503, detail="Property feed unavailable")
