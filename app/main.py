from contextlib import asynccontextmanager

import redis.asyncio as redis
import structlog
from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response

from core.MongoORJSONResponse import MongoORJSONResponse
from core.config import settings
from core.database import db_manager, shutdown_event, startup_event
from core.logging import configure_logging
from metrics.metrics import METRICS_CONTENT_TYPE, get_metrics
from routes import auth, energy, lease, payments, properties
from services.energy import EnergySimulator, SpikeNotifier
from utils.exceptions import SPMSError
from workers.scheduler import build_scheduler, start_scheduler, stop_scheduler

configure_logging()
logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Connect storage, start the energy simulator, and tear both down on exit"""
    logger.info("Starting SPMS backend...")
    await startup_event()

    redis_client = redis.from_url(settings.REDIS_URL)
    app.state.redis_client = redis_client
    app.state.scheduler = None

    if settings.ENERGY_SIMULATOR_ENABLED:
        simulator = EnergySimulator(
            db_manager.database,
            notifier=SpikeNotifier(redis_client, settings.ENERGY_SPIKE_CHANNEL),
            startup_spike=settings.ENERGY_STARTUP_SPIKE,
        )
        app.state.scheduler = build_scheduler(simulator, settings.ENERGY_TICK_SECONDS)
        start_scheduler(app.state.scheduler)

    logger.info("SPMS backend started", simulator=settings.ENERGY_SIMULATOR_ENABLED)
    yield

    if app.state.scheduler is not None:
        stop_scheduler(app.state.scheduler)
    await redis_client.aclose()
    await shutdown_event()
    logger.info("SPMS backend stopped")


app = FastAPI(
    title=settings.APP_NAME,
    description="Property requests, leases, mock rent payments and simulated energy telemetry",
    version=settings.APP_VERSION,
    lifespan=lifespan,
    default_response_class=MongoORJSONResponse,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Exception handlers
@app.exception_handler(SPMSError)
async def spms_exception_handler(request: Request, exc: SPMSError):
    """Domain errors carry their own status and stable code"""
    logger.warning(
        "domain_error",
        code=exc.code,
        status_code=exc.status_code,
        detail=exc.message,
        path=request.url.path,
        method=request.method,
    )
    return JSONResponse(
        status_code=exc.status_code,
        content={"message": exc.message, "msg": exc.message, "code": exc.code},
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    logger.warning(
        "http_exception",
        status_code=exc.status_code,
        detail=exc.detail,
        path=request.url.path,
        method=request.method
    )
    return JSONResponse(
        status_code=exc.status_code,
        content={"message": exc.detail, "msg": exc.detail, "code": "http_error"}
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Handle unexpected exceptions"""
    logger.error(
        "unexpected_exception",
        error=str(exc),
        path=request.url.path,
        method=request.method,
        exc_info=True
    )
    return JSONResponse(
        status_code=500,
        content={"message": str(exc), "msg": str(exc), "code": "internal"}
    )


app.include_router(auth.router)
app.include_router(properties.router)
app.include_router(lease.router)
app.include_router(payments.router)
app.include_router(energy.router)


@app.get("/")
async def root():
    return {
        "service": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "status": "running",
        "docs": "/docs"
    }


@app.get("/health")
async def health():
    db_health = await db_manager.health_check()
    status_code = 200 if db_health["status"] == "healthy" else 503
    return JSONResponse(status_code=status_code, content={"database": db_health})


@app.get("/metrics")
async def metrics():
    return Response(content=get_metrics().render(), media_type=METRICS_CONTENT_TYPE)
