from typing import List, Optional

from pydantic import BaseModel

from comparables.models.location import LocationResult
from comparables.models.market import MarketStatistics
from comparables.models.property import SearchCriteria
from comparables.services.matcher import ScoredComparable


class ComparablesRequest(SearchCriteria):
    class Config:
        json_schema_extra = {
            "example": {
                "city": "Marbella",
                "property_type": "apartment",
                "bedrooms": 3,
                "bathrooms": 2,
                "price": 500000,
                "build_area": 120,
                "suburb": "Nueva Andalucia",
                "street": "Calle Los Naranjos",
                "street_number": "15",
                "location_hint": "next to the bull ring",
            }
        }

    def to_criteria(self) -> SearchCriteria:
        return SearchCriteria(**self.model_dump())


class ComparablesReport(BaseModel):
    comparables: List[ScoredComparable] = []
    tier_reached: int = 0
    considered: int = 0
    degraded: bool = False
    feed_degraded: bool = False
    location_degraded: bool = False
    dropped_records: int = 0
    subject_location: Optional[LocationResult] = None
    market_statistics: Optional[MarketStatistics] = None
    error: Optional[str] = None


class FeedHealth(BaseModel):
    loaded: bool
    records: int = 0
    dropped: int = 0
    age_seconds: Optional[float] = None
    degraded: bool = False


class HealthResponse(BaseModel):
    status: str
    feed: FeedHealth
    location_cache: dict
    geocoder_configured: bool
