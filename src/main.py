"""
CulinaryLens Perception & Fusion Service

FastAPI application wiring:
- /api/v1 routers (perception, fusion, protocols, models, metrics)
- structlog logging and Prometheus request metrics
- structured JSON errors for every service exception
- model backends loaded lazily on the first scan, or at startup when
  PRELOAD_MODELS is set
"""

import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from src.core.config import settings
from src.core.logging import setup_logging, get_logger
from src.core.exceptions import GlobalExceptionMiddleware, circuit_states, register_exception_handlers
from src.core.metrics import set_app_info, http_requests_total, http_request_duration_seconds
from src.api.v1 import api_v1_router
from src.api.dependencies import get_registry, preload_models_async

setup_logging(log_level=settings.LOG_LEVEL, json_format=settings.LOG_FORMAT_JSON)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    started = time.time()
    logger.info(
        "application_starting",
        app_name=settings.APP_NAME,
        version=settings.APP_VERSION,
        environment=settings.ENVIRONMENT,
        reasoning_engine="configured" if settings.REASONING_ENGINE_URL else "offline"
    )
    set_app_info(version=settings.APP_VERSION, environment=settings.ENVIRONMENT)

    stats = get_registry().get_stats()
    logger.info(
        "model_registry_ready",
        total_models=stats.total_models,
        detection_classes=stats.detection_classes,
        classification_classes=stats.classification_classes
    )

    # A failed preload is not fatal: backends retry lazily on the first scan
    if settings.PRELOAD_MODELS and not await preload_models_async():
        logger.warning("ml_models_preload_failed")

    logger.info("application_ready", startup_time_seconds=round(time.time() - started, 3))
    yield
    logger.info("application_shutdown_complete")


app = FastAPI(
    title=settings.APP_NAME,
    description="""
    Turns a photographed set of raw ingredients into a verified cooking protocol.

    - **Perception**: staged detection, segmentation, classification,
      freshness and mass estimation under a hard deadline
    - **Fusion**: cross-validates generated protocols against the inventory,
      injects mass/vitality notes, scores affinity, impact and substitution risk
    - **Protocols**: external reasoning engine with an offline fallback
    """,
    version=settings.APP_VERSION,
    debug=settings.DEBUG,
    lifespan=lifespan,
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    openapi_url="/api/openapi.json"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS.split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(GlobalExceptionMiddleware)


@app.middleware("http")
async def record_request_metrics(request: Request, call_next):
    start_time = time.time()
    response = await call_next(request)
    duration = time.time() - start_time

    # Route template, not the raw path, to keep label cardinality bounded
    route = request.scope.get("route")
    endpoint = getattr(route, "path", request.url.path)

    http_request_duration_seconds.labels(method=request.method, endpoint=endpoint).observe(duration)
    http_requests_total.labels(method=request.method, endpoint=endpoint, status=response.status_code).inc()

    response.headers["X-Process-Time"] = str(duration)
    return response


register_exception_handlers(app)
app.include_router(api_v1_router)


@app.get("/", tags=["root"])
async def root():
    return {
        "name": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
        "docs": "/api/docs",
        "api_v1": "/api/v1",
        "metrics": "/api/v1/metrics"
    }


@app.get("/health", tags=["health"])
async def health():
    """Liveness plus the state of each circuit breaker."""
    return {
        "status": "healthy",
        "version": settings.APP_VERSION,
        "reasoning_engine": "configured" if settings.REASONING_ENGINE_URL else "offline",
        "circuits": circuit_states()
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("src.main:app", host="0.0.0.0", port=8000, reload=True, log_level="info")
