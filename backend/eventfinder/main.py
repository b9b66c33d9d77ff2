"""FastAPI application entry point."""
import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from eventfinder.config import settings
from eventfinder.database import Base, engine
from eventfinder.deps import build_location_registry, build_media_resolver
from eventfinder.errors import TransientIOError

# Import routers
from eventfinder.routers import events, interactions, profiles, location, media

# Import all models so Base.metadata knows about them
from eventfinder.models.profile import Profile                # noqa: F401
from eventfinder.models.event import Event                    # noqa: F401
from eventfinder.models.attendance import EventGoing          # noqa: F401
from eventfinder.models.rating import EventRating             # noqa: F401
from eventfinder.models.comment import EventComment           # noqa: F401
from eventfinder.models.image import EventImage               # noqa: F401
from eventfinder.models.follow import OrganizerFollow         # noqa: F401

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Event Finder",
    description="Nightlife event discovery: proximity feed and post-event interactions",
    version="0.1.0",
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS.split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register routers
app.include_router(events.router, prefix="/api/events", tags=["Events"])
app.include_router(interactions.router, prefix="/api", tags=["Interactions"])
app.include_router(profiles.router, prefix="/api", tags=["Profiles"])
app.include_router(location.router, prefix="/api/location", tags=["Location"])
app.include_router(media.router, prefix="/api/media", tags=["Media"])


@app.exception_handler(TransientIOError)
def transient_io_error_handler(request: Request, exc: TransientIOError):
    logger.warning("Transient I/O failure on %s: %s", request.url.path, exc)
    return JSONResponse(status_code=503, content={"detail": {"error": "transient", "message": str(exc)}})


@app.on_event("startup")
def on_startup():
    """Build the process-wide caches; create tables in SQLite dev mode."""
    if not hasattr(app.state, "media_resolver"):
        app.state.media_resolver = build_media_resolver(settings)
    if not hasattr(app.state, "location_registry"):
        app.state.location_registry = build_location_registry(settings)
    if settings.DATABASE_URL.startswith("sqlite"):
        Base.metadata.create_all(bind=engine)


@app.get("/api/health")
def health_check():
    return {"status": "ok"}
