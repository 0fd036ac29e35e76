"""FastAPI application entry point."""
import logging
import time
import uuid

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from slowapi.middleware import SlowAPIMiddleware

from student_events.config import settings
from student_events.database import Base, engine
from student_events.errors import register_exception_handlers
from student_events.limiter import limiter
from student_events.services.email_service import build_email_sender

# Import routers
from student_events.routers import admin, auth, events, otp, rsvps

# Import all models so Base.metadata knows about them
from student_events.models.user import User      # noqa: F401
from student_events.models.event import Event    # noqa: F401
from student_events.models.rsvp import RSVP      # noqa: F401
from student_events.models.otp import OTP        # noqa: F401

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Student Events",
    description="Campus event submission, admin approval, and capacity-guarded RSVPs",
    version="0.1.0",
)

app.state.limiter = limiter
app.state.email_sender = build_email_sender(settings)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS.split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(SlowAPIMiddleware)

register_exception_handlers(app)


@app.middleware("http")
async def request_context(request: Request, call_next):
    """Tag every request with an id and log its outcome."""
    request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    request.state.request_id = request_id
    started = time.perf_counter()
    response = await call_next(request)
    elapsed_ms = (time.perf_counter() - started) * 1000
    response.headers["X-Request-ID"] = request_id
    logger.info(
        "%s %s -> %d (%.1f ms) [%s]",
        request.method, request.url.path, response.status_code, elapsed_ms, request_id,
    )
    return response


# Register routers
app.include_router(auth.router, prefix="/api/auth", tags=["Auth"])
app.include_router(otp.router, prefix="/api/otp", tags=["OTP"])
app.include_router(events.router, prefix="/api/events", tags=["Events"])
app.include_router(rsvps.router, prefix="/api/rsvp", tags=["RSVPs"])
app.include_router(admin.router, prefix="/api/admin", tags=["Admin"])


@app.on_event("startup")
def on_startup():
    """Create database tables on startup (for SQLite dev mode)."""
    if settings.DATABASE_URL.startswith("sqlite"):
        Base.metadata.create_all(bind=engine)
    logger.info("Student Events API started (environment=%s)", settings.ENVIRONMENT)


@app.get("/api/health")
def health_check():
    return {"status": "ok", "environment": settings.ENVIRONMENT}
