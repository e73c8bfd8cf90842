import asyncio
from typing import Dict, List, Optional, Sequence, Tuple, Union

from structlog import get_logger

from comparables.config import settings
from comparables.errors import FeedUnavailable, ResolutionFailed
from comparables.models.location import AddressFragments, LocationResult, LocationSource, Precision
from comparables.models.market import MarketStatistics
from comparables.models.property import PropertyRecord, PropertyType, SearchCriteria
from comparables.models.tier import Tier
from comparables.schemas.comparables import ComparablesReport
from comparables.services.feed import FeedProvider
from comparables.services.location import LocationResolver, fragments_for
from comparables.services.market_stats import compute_market_stats
from comparables.services.matcher import CandidatePool, MatchingRules, rank, select_candidates

logger = get_logger(__name__)


def subject_fragments(criteria: SearchCriteria) -> AddressFragments:
    return AddressFragments(
        address=criteria.address,
        street=criteria.street,
        street_number=criteria.street_number,
        urbanization=criteria.urbanization,
        suburb=criteria.suburb,
        city=criteria.city,
        province=criteria.province,
    )


class ComparablesService:
    """Feed -> subject location -> tiered matching -> ranking + market statistics."""

    def __init__(
        self,
        feed: FeedProvider,
        resolver: LocationResolver,
        rules: Optional[MatchingRules] = None,
        tiers: Optional[Sequence[Tier]] = None,
        max_candidate_resolutions: Optional[int] = None,
    ):
        self.feed = feed
        self.resolver = resolver
        self.rules = rules or MatchingRules.from_settings()
        self.tiers = list(tiers) if tiers is not None else list(settings.TIERS)
        self.max_candidate_resolutions = (
            settings.MAX_CANDIDATE_RESOLUTIONS if max_candidate_resolutions is None else max_candidate_resolutions
        )

    async def analyze(self, criteria: SearchCriteria) -> ComparablesReport:
        try:
            snapshot = await self.feed.load()
        except FeedUnavailable as e:
            logger.error("Comparable analysis without feed", city=criteria.city, error=str(e))
            return ComparablesReport(degraded=True, error="feed_unavailable")

        subject_location, location_degraded = await self._subject_location(criteria)

        pool = select_candidates(criteria, snapshot.records, self.tiers, self.rules)
        candidate_locations: Dict[str, LocationResult] = {}
        if subject_location is not None and subject_location.is_precise:
            candidate_locations = await self._candidate_locations(pool)

        comparables = rank(criteria, pool, subject_location, candidate_locations, self.rules)
        market = compute_market_stats(criteria.city, criteria.property_type, snapshot.records)

        logger.info(
            "Comparables analysed",
            city=criteria.city,
            property_type=criteria.property_type.value,
            tier_reached=pool.tier_reached,
            count=len(comparables),
            feed_degraded=snapshot.degraded,
            location_degraded=location_degraded,
        )
        return ComparablesReport(
            comparables=comparables,
            tier_reached=pool.tier_reached,
            considered=pool.considered,
            degraded=not comparables,
            feed_degraded=snapshot.degraded,
            location_degraded=location_degraded,
            dropped_records=snapshot.dropped,
            subject_location=subject_location,
            market_statistics=market,
        )

    async def market_stats(self, city: str, property_type: Union[PropertyType, str]) -> MarketStatistics:
        """Raises FeedUnavailable when there is no snapshot to compute from."""
        snapshot = await self.feed.load()
        return compute_market_stats(city, property_type, snapshot.records)

    async def _subject_location(self, criteria: SearchCriteria) -> Tuple[Optional[LocationResult], bool]:
        if criteria.coordinates is not None:
            return (
                LocationResult(
                    coordinates=criteria.coordinates,
                    precision=Precision.PRECISE,
                    confidence=1.0,
                    source=LocationSource.SUBJECT,
                ),
                False,
            )
        if not criteria.has_location_input:
            return None, False
        try:
            location = await self.resolver.resolve(subject_fragments(criteria), criteria.location_hint)
        except ResolutionFailed as e:
            logger.warning("Subject location unresolved", query=e.query, error=e.message)
            return LocationResult.unresolved(e.query), True
        return location, location.degraded

    async def _candidate_locations(self, pool: CandidatePool) -> Dict[str, LocationResult]:
        pending: List[PropertyRecord] = []
        for record in pool.records:
            if len(pending) >= self.max_candidate_resolutions:
                break
            if record.coordinates is not None:
                continue
            if self.resolver.cache_key_for(fragments_for(record)) is None:
                continue
            pending.append(record)
        if not pending:
            return {}

        results = await asyncio.gather(*(self._resolve_candidate(r) for r in pending))
        return {r.reference: loc for r, loc in zip(pending, results) if loc is not None}

    async def _resolve_candidate(self, record: PropertyRecord) -> Optional[LocationResult]:
        try:
            return await self.resolver.resolve_record(record)
        except ResolutionFailed as e:
            logger.debug("Candidate location unresolved", reference=record.reference, error=e.message)
            return None
