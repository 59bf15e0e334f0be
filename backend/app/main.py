"""FastAPI application entry point."""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Response
from fastapi.middleware.cors import CORSMiddleware

from app.core.config import settings
from app.core.logging import setup_logging
from app.core.metrics import get_content_type, get_metrics, set_app_info
from app.core.middleware import CorrelationIdMiddleware
from app.modules.transcoding.router import router as transcoding_router
from app.modules.transcoding.service import build_transcoding_service
from app.modules.transcoding.uploads import UploadLayout


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create the transcoding service on startup, drain running jobs on shutdown."""
    if getattr(app.state, "transcoding_service", None) is None:
        app.state.transcoding_service = build_transcoding_service(settings)
    if getattr(app.state, "upload_layout", None) is None:
        app.state.upload_layout = UploadLayout(settings.UPLOAD_ROOT)
    yield
    await app.state.transcoding_service.shutdown()


app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.VERSION,
    description="""
## Video Transcode API

Upload a video once and get it back in several resolutions.

* **Uploads** - per-user video upload with type and size checks
* **Jobs** - one job per source, all resolutions encoded concurrently
* **Progress** - cheap polling of the overall job percentage
* **Results** - per-resolution outcome with artifact location or error
    """,
    openapi_url=f"{settings.API_V1_PREFIX}/openapi.json",
    lifespan=lifespan,
    openapi_tags=[
        {
            "name": "health",
            "description": "Health check endpoints",
        },
        {
            "name": "transcoding",
            "description": "Video upload, transcode jobs, progress and results",
        },
    ],
)

# Set up logging with correlation IDs
setup_logging(
    level="DEBUG" if settings.DEBUG else settings.LOG_LEVEL,
    json_format=settings.LOG_JSON,
    include_stack_trace=True,
)

# Set application info for metrics
set_app_info(
    version=settings.VERSION,
    environment="development" if settings.DEBUG else "production",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(CorrelationIdMiddleware)


@app.get("/health", tags=["health"])
async def health_check() -> dict[str, str]:
    """Health check endpoint.

    Returns:
        dict: Health status with "healthy" or "unhealthy" value.
    """
    return {"status": "healthy"}


@app.get("/metrics", include_in_schema=False)
async def metrics() -> Response:
    """Prometheus metrics exposition."""
    return Response(content=get_metrics(), media_type=get_content_type())


# Include routers
app.include_router(transcoding_router, prefix=settings.API_V1_PREFIX)
