from .location import (
    AddressFragments,
    CacheEntry,
    Coordinates,
    GeocodeResult,
    LocationResult,
    LocationSource,
    Precision,
)
from .market import MarketStatistics, PriceRange, Volatility
from .property import PropertyRecord, PropertyType, SearchCriteria
from .tier import DEFAULT_TIERS, CityScope, Tier, TypeScope, validate_ladder

__all__ = [
    "AddressFragments",
    "CacheEntry",
    "Coordinates",
    "GeocodeResult",
    "LocationResult",
    "LocationSource",
    "Precision",
    "MarketStatistics",
    "PriceRange",
    "Volatility",
    "PropertyRecord",
    "PropertyType",
    "SearchCriteria",
    "DEFAULT_TIERS",
    "CityScope",
    "Tier",
    "TypeScope",
    "validate_ladder",
]
