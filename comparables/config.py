from typing import Dict, List, Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings

from comparables.models.tier import DEFAULT_TIERS, Tier, validate_ladder


class Settings(BaseSettings):
    # Feed
    FEED_URL: str = "https://propertylist.es/files/property_list_v1.xml"
    FEED_PATH: Optional[str] = None
    FEED_CACHE_TTL_SECONDS: float = 300.0
    FEED_TIMEOUT_SECONDS: float = 120.0
    FEED_FAILURE_BACKOFF_SECONDS: float = 30.0

    # Geocoding
    OPENCAGE_API_KEY: str = "your_opencage_key"
    OPENCAGE_URL: str = "https://api.opencagedata.com/geocode/v1/json"
    GEOCODE_COUNTRY_CODE: str = "es"
    GEOCODE_LANGUAGE: str = "en"
    GEOCODE_TIMEOUT_SECONDS: float = 10.0

    # Location precision cache
    LOCATION_CACHE_TTL_SECONDS: float = 86400.0 * 7
    LOCATION_CACHE_MAX_ENTRIES: int = 10_000
    LOCATION_MIN_PRECISE_CONFIDENCE: float = 0.5

    # Matching
    MAX_COMPARABLES: int = 10
    TARGET_COMPARABLES: int = 8
    MAX_CANDIDATE_RESOLUTIONS: int = 20
    TIERS: List[Tier] = DEFAULT_TIERS
    SCORE_WEIGHTS: Dict[str, float] = {
        "location": 0.40,
        "type": 0.25,
        "size": 0.20,
        "price": 0.15,
    }
    RELATED_PROPERTY_TYPES: Dict[str, List[str]] = {
        "villa": ["villa", "country-house", "plot"],
        "apartment": ["apartment", "penthouse"],
        "townhouse": ["townhouse", "semi-detached"],
        "penthouse": ["penthouse", "apartment"],
    }

    # Regional tables
    BROAD_AREA_NAMES: List[str] = [
        "golden mile",
        "marbella golden mile",
        "milla de oro",
        "la milla de oro",
        "new golden mile",
        "nueva milla de oro",
        "costa del sol",
        "marbella east",
        "east marbella",
        "marbella west",
        "west marbella",
    ]
    CITY_ADJACENCY: Dict[str, List[str]] = {
        "marbella": ["estepona", "benahavis", "san pedro de alcantara", "mijas", "ojen", "istan"],
        "estepona": ["marbella", "benahavis", "casares", "manilva"],
        "benahavis": ["marbella", "estepona", "istan"],
        "san pedro de alcantara": ["marbella", "benahavis", "estepona"],
        "mijas": ["fuengirola", "marbella", "benalmadena", "alhaurin el grande"],
        "fuengirola": ["mijas", "benalmadena"],
        "benalmadena": ["torremolinos", "fuengirola", "mijas"],
        "torremolinos": ["malaga", "benalmadena", "alhaurin de la torre"],
        "malaga": ["torremolinos", "rincon de la victoria", "alhaurin de la torre"],
        "casares": ["estepona", "manilva"],
        "manilva": ["casares", "estepona", "san roque"],
        "san roque": ["manilva"],
        "ojen": ["marbella", "istan"],
        "istan": ["marbella", "benahavis", "ojen"],
    }
    CITY_PROVINCES: Dict[str, str] = {
        "marbella": "malaga",
        "estepona": "malaga",
        "benahavis": "malaga",
        "san pedro de alcantara": "malaga",
        "mijas": "malaga",
        "fuengirola": "malaga",
        "benalmadena": "malaga",
        "torremolinos": "malaga",
        "malaga": "malaga",
        "casares": "malaga",
        "manilva": "malaga",
        "ojen": "malaga",
        "istan": "malaga",
        "san roque": "cadiz",
        "sotogrande": "cadiz",
    }

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = False

    # Server
    HOST: str = "0.0.0.0"
    PORT: int = 7860

    @field_validator("TIERS")
    def check_tiers(cls, v):
        return validate_ladder(v)

    @field_validator("SCORE_WEIGHTS")
    def check_weights(cls, v):
        missing = {"location", "type", "size", "price"} - set(v)
        if missing:
            raise ValueError(f"SCORE_WEIGHTS missing components: {sorted(missing)}")
        if abs(sum(v.values()) - 1.0) > 1e-6:
            raise ValueError("SCORE_WEIGHTS must sum to 1.0")
        return v

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


settings = Settings()
