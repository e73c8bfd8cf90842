import asyncio
import re
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional

from structlog import get_logger

from comparables.config import settings
from comparables.errors import ResolutionFailed
from comparables.models.location import (
    AddressFragments,
    CacheEntry,
    LocationResult,
    LocationSource,
    Precision,
)
from comparables.models.property import PropertyRecord
from comparables.services.geocoder import Geocoder
from comparables.utils.singleflight import SingleFlight
from comparables.utils.text import digest, normalize

logger = get_logger(__name__)

# Patterns run on normalize()d text: lowercase, accents stripped
STREET_PREFIX_RE = re.compile(
    r"^(?:calle|c/|avenida|avda\.?|av\.?|paseo|pso\.?|plaza|pza\.?|camino|carretera|ctra\.?|"
    r"ronda|travesia|pasaje|glorieta|callejon|bulevar|boulevard|street|st\.?|road|rd\.?|"
    r"avenue|ave\.?|lane|drive|way)\s+\S"
)
URBANIZATION_PREFIX_RE = re.compile(
    r"^(?:urb\.?|urbanizacion|urbanization|urbanisation|residencial|complejo|conjunto)\s+(?P<name>\S.*)$"
)
# A name followed by a house number; 5-digit postcodes never match
NUMBERED_RE = re.compile(r"^(?P<name>.*[a-z].*?)\s+(?:no\.?\s*|n\.?\s*)?(?P<number>\d{1,4}[a-z]?)$")
HOUSE_NUMBER_SUFFIX_RE = re.compile(r"\s+(?:no\.?\s*|n\.?\s*)?\d{1,4}[a-z]?(?:\s*[-/]\s*\d{1,4}[a-z]?)?$")
# Words that never make a broad area name more specific ("the golden mile", "urb. golden mile area")
FILLER_WORDS = {
    "the", "area", "zone", "zona", "el", "la", "los", "las", "de", "del",
    "urb", "urbanizacion", "urbanization", "urbanisation", "residencial", "complejo", "conjunto",
}


@dataclass(frozen=True)
class AddressSignature:
    street: str
    urbanization: str
    city: str

    @property
    def key(self) -> str:
        return digest(self.street, self.urbanization, self.city)


@dataclass
class ResolutionPlan:
    query: str
    key: Optional[str]
    street_level: bool
    from_hint: bool = False


def strip_house_number(text: str) -> str:
    return HOUSE_NUMBER_SUFFIX_RE.sub("", text).strip(" ,")


def _segments(text: Optional[str]) -> List[str]:
    return [s for s in (normalize(part) for part in (text or "").split(",")) if s]


class AddressClassifier:
    """
    Decides whether address text names something street-level (reusable
    coordinates) or only a broad area that must never be shared.
    """

    def __init__(self, broad_area_names: Optional[Iterable[str]] = None):
        names = settings.BROAD_AREA_NAMES if broad_area_names is None else broad_area_names
        # Longest first so "marbella golden mile" is removed before "golden mile"
        self.broad_area_names = sorted({normalize(n) for n in names if normalize(n)}, key=len, reverse=True)

    def only_area_names(self, text: str, extra: Iterable[str] = ()) -> bool:
        """True when ``text`` holds nothing but broad area names, the city or the suburb."""
        remainder = normalize(text)
        names = list(self.broad_area_names) + sorted(
            (normalize(e) for e in extra if normalize(e)), key=len, reverse=True
        )
        for name in names:
            remainder = re.sub(rf"(?<![a-z0-9]){re.escape(name)}(?![a-z0-9])", " ", remainder)
        words = re.findall(r"[a-z0-9]+", remainder)
        return all(word in FILLER_WORDS for word in words)

    def street_token(self, segment: str, context: Iterable[str] = ()) -> Optional[str]:
        """Street name (house number stripped) when ``segment`` is a street-level address."""
        if STREET_PREFIX_RE.match(segment) or NUMBERED_RE.match(segment):
            street = strip_house_number(segment)
            if street and not self.only_area_names(street, context):
                return street
        return None

    def urbanization_token(self, segment: str) -> Optional[str]:
        match = URBANIZATION_PREFIX_RE.match(segment)
        return match.group("name").strip() if match else None

    def has_street_level_token(self, text: Optional[str], context: Iterable[str] = ()) -> bool:
        context = list(context)
        for segment in _segments(text):
            if self.street_token(segment, context):
                return True
            urb = self.urbanization_token(segment)
            if urb and not self.only_area_names(urb, context):
                return True
        return False

    def signature(self, fragments: AddressFragments) -> Optional[AddressSignature]:
        city = normalize(fragments.city)
        suburb = normalize(fragments.suburb)
        context = [city, suburb]

        street = ""
        if fragments.street:
            candidate = strip_house_number(normalize(fragments.street))
            if candidate and not self.only_area_names(candidate, context):
                street = candidate

        urbanization = normalize(fragments.urbanization)
        urbanization = self.urbanization_token(urbanization) or urbanization
        if urbanization and self.only_area_names(urbanization, context):
            urbanization = ""

        for segment in _segments(fragments.address):
            if segment.isdigit() or self.only_area_names(segment, context):
                continue
            if not street:
                street = self.street_token(segment, context) or ""
            if not urbanization:
                urb = self.urbanization_token(segment)
                if urb and not self.only_area_names(urb, context):
                    urbanization = urb

        if not street and not urbanization:
            return None
        return AddressSignature(street=street, urbanization=urbanization, city=city)

    def hint_key(self, hint: Optional[str], city: Optional[str], suburb: Optional[str] = None) -> Optional[str]:
        text = normalize(hint)
        if not text or self.only_area_names(text, [city or "", suburb or ""]):
            return None
        return "hint:" + digest(text, normalize(city))


class PrecisionCache:
    """
    In-memory TTL cache that only ever stores precise locations.

    Expiry is checked on read, the oldest entry is evicted once ``max_entries``
    is exceeded. ``put`` refuses broad results and counts them as skipped.
    """

    def __init__(
        self,
        ttl: Optional[float] = None,
        max_entries: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl = settings.LOCATION_CACHE_TTL_SECONDS if ttl is None else ttl
        self.max_entries = settings.LOCATION_CACHE_MAX_ENTRIES if max_entries is None else max_entries
        self.clock = clock
        self._entries: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self.hits = 0
        self.misses = 0
        self.sets = 0
        self.skipped = 0
        self.evictions = 0

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def get(self, key: str) -> Optional[LocationResult]:
        entry = self._entries.get(key)
        if entry is None:
            self.misses += 1
            return None
        if self.clock() - entry.stored_at >= self.ttl:
            del self._entries[key]
            self.misses += 1
            logger.debug("location_cache_expired", key=key)
            return None
        self.hits += 1
        return entry.result

    def put(self, key: str, result: LocationResult) -> bool:
        if not result.is_precise:
            self.skipped += 1
            logger.debug("location_cache_skip_broad", key=key, query=result.query)
            return False
        self._entries[key] = CacheEntry(key=key, result=result, stored_at=self.clock())
        self._entries.move_to_end(key)
        while len(self._entries) > self.max_entries:
            self._entries.popitem(last=False)
            self.evictions += 1
        self.sets += 1
        return True

    def clear(self) -> None:
        self._entries.clear()

    def stats(self) -> Dict[str, float]:
        lookups = self.hits + self.misses
        return {
            "hits": self.hits,
            "misses": self.misses,
            "sets": self.sets,
            "skipped": self.skipped,
            "evictions": self.evictions,
            "size": len(self._entries),
            "hit_rate": round(self.hits / lookups, 4) if lookups else 0.0,
        }


def fragments_for(record: PropertyRecord) -> AddressFragments:
    return AddressFragments(
        street=record.street,
        street_number=record.street_number,
        urbanization=record.urbanization,
        suburb=record.suburb,
        city=record.city,
        province=record.province,
    )


def _query_text(fragments: AddressFragments) -> str:
    parts = []
    if fragments.street:
        parts.append(f"{fragments.street} {fragments.street_number}" if fragments.street_number else fragments.street)
    for value in (fragments.address, fragments.urbanization, fragments.suburb, fragments.city, fragments.province):
        if value and normalize(value) not in {normalize(p) for p in parts}:
            parts.append(value)
    return ", ".join(p.strip() for p in parts if p and p.strip())


class LocationResolver:
    """
    Resolves address fragments / free-text hints into coordinates plus a
    precision class, sharing precise results through a PrecisionCache.
    """

    def __init__(
        self,
        geocoder: Geocoder,
        cache: Optional[PrecisionCache] = None,
        classifier: Optional[AddressClassifier] = None,
        timeout: Optional[float] = None,
        min_confidence: Optional[float] = None,
    ):
        self.geocoder = geocoder
        self.cache = cache if cache is not None else PrecisionCache()
        self.classifier = classifier or AddressClassifier()
        self.timeout = settings.GEOCODE_TIMEOUT_SECONDS if timeout is None else timeout
        self.min_confidence = (
            settings.LOCATION_MIN_PRECISE_CONFIDENCE if min_confidence is None else min_confidence
        )
        self._flight = SingleFlight()

    def plan(self, fragments: AddressFragments, hint: Optional[str] = None) -> ResolutionPlan:
        if hint and hint.strip():
            city = fragments.city or ""
            query = f"{hint.strip()}, {city}" if city and normalize(city) not in normalize(hint) else hint.strip()
            return ResolutionPlan(
                query=query,
                key=self.classifier.hint_key(hint, fragments.city, fragments.suburb),
                street_level=self.classifier.has_street_level_token(
                    hint, [normalize(fragments.city), normalize(fragments.suburb)]
                ),
                from_hint=True,
            )
        signature = self.classifier.signature(fragments)
        return ResolutionPlan(
            query=_query_text(fragments),
            key=signature.key if signature else None,
            street_level=signature is not None,
        )

    def cache_key_for(self, fragments: AddressFragments, hint: Optional[str] = None) -> Optional[str]:
        return self.plan(fragments, hint).key

    async def resolve(self, fragments: AddressFragments, hint: Optional[str] = None) -> LocationResult:
        plan = self.plan(fragments, hint)
        if not plan.query:
            raise ResolutionFailed("Nothing to resolve")
        if plan.key is None:
            # Broad inputs are never shared, not even with a concurrent identical request
            return await self._resolve(plan)

        cached = self.cache.get(plan.key)
        if cached is not None:
            logger.debug("location_cache_hit", key=plan.key, query=plan.query)
            return cached.model_copy(update={"source": LocationSource.CACHE, "query": plan.query})
        logger.debug("location_cache_miss", key=plan.key, query=plan.query)
        return await self._flight.do(plan.key, lambda: self._resolve_and_store(plan))

    async def resolve_record(self, record: PropertyRecord) -> LocationResult:
        return await self.resolve(fragments_for(record))

    async def _resolve_and_store(self, plan: ResolutionPlan) -> LocationResult:
        result = await self._resolve(plan)
        try:
            self.cache.put(plan.key, result)
        except Exception as e:
            logger.warning("location_cache_write_failed", key=plan.key, error=str(e))
        return result

    async def _resolve(self, plan: ResolutionPlan) -> LocationResult:
        try:
            found = await asyncio.wait_for(self.geocoder.geocode(plan.query), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.warning("geocode_timeout", query=plan.query, timeout=self.timeout)
            return LocationResult(
                precision=Precision.BROAD,
                query=plan.query,
                source=LocationSource.FALLBACK,
                degraded=True,
            )
        if found is None:
            logger.info("geocode_no_result", query=plan.query)
            raise ResolutionFailed("Geocoder returned no result", query=plan.query)

        precise = plan.street_level or (plan.from_hint and bool(found.landmarks))
        if precise and found.confidence < self.min_confidence:
            logger.info("location_downgraded", query=plan.query, confidence=found.confidence)
            precise = False

        result = LocationResult(
            coordinates=found.coordinates,
            precision=Precision.PRECISE if precise else Precision.BROAD,
            landmarks=found.landmarks,
            confidence=found.confidence,
            query=plan.query,
            cache_key=plan.key if precise else None,
            source=LocationSource.GEOCODER,
        )
        logger.info(
            "location_resolved",
            query=plan.query,
            precision=result.precision.value,
            confidence=result.confidence,
        )
        return result
