import logging

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from eshaafi.config import get_settings
from eshaafi.core.logging import setup_logging
from eshaafi.database import create_tables
from eshaafi.exceptions import BookingEngineError
from eshaafi.limiter import limiter
from eshaafi.routers import admin, availability, bookings, clinics, doctors, health, prescriptions, reviews, video
from eshaafi.services.video_service import build_video_provisioner

settings = get_settings()
setup_logging(settings.log_level, json_output=settings.log_json)

logger = logging.getLogger(__name__)

app = FastAPI(title=settings.app_name, version=settings.app_version, debug=settings.debug)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)


@app.exception_handler(BookingEngineError)
async def booking_engine_error_handler(request: Request, exc: BookingEngineError):
    if exc.status_code >= 500:
        logger.error(f"{type(exc).__name__} on {request.method} {request.url.path}: {exc.message}")
    else:
        logger.info(f"{type(exc).__name__} on {request.method} {request.url.path}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


@app.on_event("startup")
def on_startup():
    create_tables()
    app.state.video_provisioner = build_video_provisioner(settings)
    logger.info(f"{settings.app_name} started ({settings.environment})")


@app.on_event("shutdown")
async def on_shutdown():
    provisioner = getattr(app.state, "video_provisioner", None)
    if provisioner is not None:
        await provisioner.aclose()


app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS", "HEAD"],
    allow_headers=["*"],
)

app.include_router(bookings.router, prefix="/api/v1")
app.include_router(prescriptions.router, prefix="/api/v1")
app.include_router(availability.router, prefix="/api/v1")
app.include_router(doctors.router, prefix="/api/v1")
app.include_router(reviews.router, prefix="/api/v1")
app.include_router(video.router, prefix="/api/v1")
app.include_router(clinics.router, prefix="/api/v1")
app.include_router(admin.router, prefix="/api/v1")
app.include_router(health.router, prefix="/api/v1")


if __name__ == "__main__":
    uvicorn.run("eshaafi.main:app", host="0.0.0.0", port=8000, reload=not settings.is_production)
