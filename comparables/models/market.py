import enum

from pydantic import BaseModel, Field


class Volatility(str, enum.Enum):
    LOW = "low"
    MODERATE = "moderate"
    HIGH = "high"
    INSUFFICIENT_DATA = "insufficient_data"


class PriceRange(BaseModel):
    min: float = 0.0
    max: float = 0.0


class MarketStatistics(BaseModel):
    city: str
    property_type: str
    count: int = 0
    average_price: float = 0.0
    median_price: float = 0.0
    average_price_per_sqm: float = 0.0
    price_range: PriceRange = Field(default_factory=PriceRange)
    volatility: Volatility = Volatility.INSUFFICIENT_DATA
