import enum
from typing import List, Optional

from pydantic import BaseModel, Field


class Precision(str, enum.Enum):
    PRECISE = "precise"
    BROAD = "broad"


class LocationSource(str, enum.Enum):
    GEOCODER = "geocoder"
    CACHE = "cache"
    SUBJECT = "subject"
    FALLBACK = "fallback"


class Coordinates(BaseModel):
    lat: float = Field(ge=-90, le=90, allow_inf_nan=False)
    lng: float = Field(ge=-180, le=180, allow_inf_nan=False)

    class Config:
        frozen = True


class AddressFragments(BaseModel):
    """Address pieces as they arrive from the feed or a request.

    ``address`` is a raw free-form line ("Calle Los Naranjos 15, Nueva
    Andalucia"); the structured fields win when both are present.
    """

    address: Optional[str] = None
    street: Optional[str] = None
    street_number: Optional[str] = None
    urbanization: Optional[str] = None
    suburb: Optional[str] = None
    city: Optional[str] = None
    province: Optional[str] = None


class GeocodeResult(BaseModel):
    coordinates: Coordinates
    landmarks: List[str] = Field(default_factory=list)
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    formatted: Optional[str] = None


class LocationResult(BaseModel):
    coordinates: Optional[Coordinates] = None
    precision: Precision = Precision.BROAD
    landmarks: List[str] = Field(default_factory=list)
    confidence: float = 0.0
    query: str = ""
    cache_key: Optional[str] = None
    source: LocationSource = LocationSource.GEOCODER
    degraded: bool = False

    @property
    def is_precise(self) -> bool:
        return self.precision == Precision.PRECISE and self.coordinates is not None

    @classmethod
    def unresolved(cls, query: str = "") -> "LocationResult":
        return cls(query=query, source=LocationSource.FALLBACK, degraded=True)


class CacheEntry(BaseModel):
    key: str
    result: LocationResult
    stored_at: float
