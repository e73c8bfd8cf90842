from typing import Any, Dict, List, Optional, Protocol

import httpx
from pybreaker import CircuitBreaker, CircuitBreakerError
from structlog import get_logger

from comparables.config import settings
from comparables.errors import ResolutionFailed
from comparables.models.location import Coordinates, GeocodeResult
from comparables.utils.retry import retry_api

logger = get_logger(__name__)
breaker = CircuitBreaker(fail_max=3, reset_timeout=60)

# OpenCage result types that name an administrative area rather than a place
ADMINISTRATIVE_TYPES = {
    "road",
    "postcode",
    "neighbourhood",
    "suburb",
    "quarter",
    "city_district",
    "city",
    "town",
    "village",
    "hamlet",
    "municipality",
    "county",
    "state_district",
    "state",
    "region",
    "country",
    "continent",
    "island",
    "unknown",
}


class AuthError(ResolutionFailed):
    """Raised when the geocoding API returns an auth / billing error (401/402/403)."""

    def __init__(self, message: str, status_code: int = 403):
        super().__init__(message)
        self.status_code = status_code


class GeocoderUnavailable(ResolutionFailed):
    """Raised on throttling or server-side failures; these are retried."""


class Geocoder(Protocol):
    async def geocode(self, text: str) -> Optional[GeocodeResult]:
        ...


def _landmarks(components: Dict[str, Any]) -> List[str]:
    kind = components.get("_type")
    if not kind or kind in ADMINISTRATIVE_TYPES:
        return []
    name = components.get(kind)
    return [str(name)] if name else []


def parse_opencage_response(payload: Dict[str, Any]) -> Optional[GeocodeResult]:
    results = payload.get("results") or []
    if not results:
        return None
    best = results[0]
    geometry = best.get("geometry") or {}
    try:
        coordinates = Coordinates(lat=float(geometry["lat"]), lng=float(geometry["lng"]))
    except (KeyError, TypeError, ValueError):
        logger.error("OpenCage result without usable geometry", result=best)
        return None
    # OpenCage reports confidence on a 0-10 scale (10 == smallest bounding box)
    raw_confidence = best.get("confidence") or 0
    try:
        confidence = max(0.0, min(1.0, float(raw_confidence) / 10.0))
    except (TypeError, ValueError):
        confidence = 0.0
    return GeocodeResult(
        coordinates=coordinates,
        landmarks=_landmarks(best.get("components") or {}),
        confidence=confidence,
        formatted=best.get("formatted"),
    )


@retry_api(tries=2, delay=1, backoff=2, retry_on=(httpx.TransportError, GeocoderUnavailable))
async def opencage_geocode(
    query: str,
    *,
    api_key: str,
    url: str,
    country_code: str,
    language: str,
    timeout: float,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> Optional[GeocodeResult]:
    """
    Calls the OpenCage forward geocoding endpoint and returns the best match.
    Returns None when the API has no result for the query.
    Raises AuthError for 401/402/403 (no retries) and GeocoderUnavailable for 429/5xx.
    Every failure counts against the circuit breaker.
    """
    params = {
        "q": query,
        "key": api_key,
        "limit": 1,
        "countrycode": country_code,
        "language": language,
        "no_annotations": 1,
    }
    with breaker.calling():
        async with httpx.AsyncClient(transport=transport, timeout=timeout) as client:
            resp = await client.get(url, params=params)
        status = resp.status_code
        if status in (401, 402, 403):
            try:
                provider_msg = (resp.json().get("status") or {}).get("message") or resp.text
            except (ValueError, AttributeError):
                provider_msg = resp.text or f"HTTP {status}"
            logger.error("OpenCage auth error", status_code=status, text=provider_msg)
            raise AuthError(f"OpenCage auth error: {provider_msg}", status_code=status)
        if status == 429 or status >= 500:
            logger.warning("OpenCage unavailable", status_code=status)
            raise GeocoderUnavailable(f"OpenCage unavailable with status {status}", query=query)
        if status != 200:
            logger.error("OpenCage request failed", status_code=status, text=resp.text)
            raise ResolutionFailed(f"OpenCage request failed with status {status}", query=query)
        try:
            return parse_opencage_response(resp.json())
        except (ValueError, TypeError, KeyError, AttributeError) as e:
            logger.error("OpenCage returned an unreadable body", text=resp.text[:200], error=str(e))
            raise ResolutionFailed("OpenCage returned an unreadable body", query=query) from e


class OpenCageGeocoder:
    def __init__(
        self,
        api_key: Optional[str] = None,
        url: Optional[str] = None,
        country_code: Optional[str] = None,
        language: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key or settings.OPENCAGE_API_KEY
        self.url = url or settings.OPENCAGE_URL
        self.country_code = country_code or settings.GEOCODE_COUNTRY_CODE
        self.language = language or settings.GEOCODE_LANGUAGE
        self.timeout = timeout or settings.GEOCODE_TIMEOUT_SECONDS
        self.transport = transport

    @property
    def configured(self) -> bool:
        return self.api_key not in (None, "", "your_opencage_key")

    async def geocode(self, text: str) -> Optional[GeocodeResult]:
        try:
            return await opencage_geocode(
                text,
                api_key=self.api_key,
                url=self.url,
                country_code=self.country_code,
                language=self.language,
                timeout=self.timeout,
                transport=self.transport,
            )
        except CircuitBreakerError as e:
            logger.warning("OpenCage circuit open", query=text)
            raise ResolutionFailed("Geocoding temporarily disabled", query=text) from e
        except httpx.HTTPError as e:
            logger.error("OpenCage transport error", query=text, error=str(e))
            raise ResolutionFailed(f"Geocoding request failed: {e}", query=text) from e
