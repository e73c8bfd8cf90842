from functools import lru_cache

from structlog import get_logger

from comparables.services.comparables import ComparablesService
from comparables.services.feed import FeedProvider, build_feed_source
from comparables.services.geocoder import OpenCageGeocoder
from comparables.services.location import LocationResolver

logger = get_logger()


@lru_cache
def get_comparables_service() -> ComparablesService:
    """Process-wide service: one feed snapshot and one location cache shared by all requests."""
    source = build_feed_source()
    geocoder = OpenCageGeocoder()
    if not geocoder.configured:
        logger.warning("OPENCAGE_API_KEY not set; location lookups will fail and fall back to broad")
    logger.info("Comparables service created", feed_source=repr(source))
    return ComparablesService(FeedProvider(source), LocationResolver(geocoder))
