from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware

from comparables.config import settings
from comparables.core.logging import setup_logging
from comparables.dependencies.service import get_comparables_service
from comparables.routers import comparables
from comparables.schemas.comparables import FeedHealth, HealthResponse
from comparables.services.comparables import ComparablesService

app = FastAPI(title="Comparable Matching Microservice")
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)
app.include_router(comparables.router)


@app.on_event("startup")
async def startup_event():
    setup_logging()


@app.get("/health", tags=["health"], response_model=HealthResponse)
async def health(service: ComparablesService = Depends(get_comparables_service)):
    snapshot = service.feed.snapshot
    if snapshot is None:
        feed = FeedHealth(loaded=False)
    else:
        feed = FeedHealth(
            loaded=True,
            records=len(snapshot.records),
            dropped=snapshot.dropped,
            age_seconds=round(service.feed.clock() - snapshot.loaded_at, 1),
            degraded=service.feed.failing,
        )
    # Config presence checks (no secrets exposed)
    geocoder_configured = settings.OPENCAGE_API_KEY not in (None, "", "your_opencage_key")
    return HealthResponse(
        status="degraded" if feed.degraded else "ok",
        feed=feed,
        location_cache=service.resolver.cache.stats(),
        geocoder_configured=geocoder_configured,
    )
