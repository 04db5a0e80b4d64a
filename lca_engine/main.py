"""
HTTP entry point for the assessment engine.
Builds the FastAPI app: middleware, the assessment router and a health probe.
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware

from lca_engine.core.config import get_settings
from lca_engine.core.logging import configure_logging, get_logger
from lca_engine.modules.assessment.router import router as assessment_router
from lca_engine.modules.assessment.service import AssessmentService

# Configure logging before anything else
configure_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Startup and shutdown hooks.

    Loads the characterization factor sets once at startup so the first
    request does not pay for YAML parsing.
    """
    settings = get_settings()
    logger.info(
        "starting_application",
        environment=settings.environment,
        version=settings.version,
    )

    methods = AssessmentService().list_methods()
    logger.info("methods_ready", methods=[m.name for m in methods])

    yield

    logger.info("application_shutdown_complete")


def create_application() -> FastAPI:
    """
    Build the FastAPI app from current settings.

    Tests call this directly to get an app bound to their own environment.
    """
    settings = get_settings()

    app = FastAPI(
        title=settings.project_name,
        version=settings.version,
        openapi_url=f"{settings.api_v1_prefix}/openapi.json",
        docs_url=f"{settings.api_v1_prefix}/docs",
        redoc_url=f"{settings.api_v1_prefix}/redoc",
        lifespan=lifespan,
    )

    # ==========================================================================
    # Middleware Configuration
    # ==========================================================================

    # CORS middleware for the authoring frontend
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "Accept", "Origin", "X-Request-ID"],
        expose_headers=["X-Request-ID"],
    )

    # Gzip compression for responses (contribution maps can be large)
    app.add_middleware(GZipMiddleware, minimum_size=1000)

    # ==========================================================================
    # Router Registration
    # ==========================================================================

    @app.get("/health", tags=["Health"])
    async def health_check() -> dict[str, object]:
        methods = AssessmentService().list_methods()
        return {
            "status": "ok" if methods else "degraded",
            "methods": [m.name for m in methods],
        }

    app.include_router(
        assessment_router,
        prefix=f"{settings.api_v1_prefix}/assessments",
        tags=["Assessments"],
    )

    return app


# Application instance for uvicorn
app = create_application()
