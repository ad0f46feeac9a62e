import logging
import sys
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from starlette.exceptions import HTTPException as StarletteHTTPException

from healthtrack.core.config import settings
from healthtrack.db.init_db import create_tables, seed_health_types
from healthtrack.db.session import SessionLocal

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events"""
    # Startup
    logger.info(f"Starting up {settings.PROJECT_NAME} {settings.VERSION} ({settings.ENVIRONMENT.value})...")
    try:
        create_tables()
    except Exception as e:
        logger.error(f"Could not create database tables: {e}")
        raise

    if settings.SEED_HEALTH_TYPES:
        db = SessionLocal()
        try:
            added = seed_health_types(db)
            if not added:
                logger.info("Health type catalogue already populated")
        finally:
            db.close()

    disabled = [
        flag for flag in (
            "ENABLE_HEALTH_MGMT",
            "ENABLE_BEHAVIOR_TRACKING",
            "ENABLE_MICRO_BEHAVIOR_TRACKING",
            "ENABLE_USER_PROFILES",
        )
        if not getattr(settings, flag)
    ]
    if disabled:
        logger.warning(f"Features disabled by configuration: {disabled}")

    yield

    # Shutdown
    logger.info(f"Shutting down {settings.PROJECT_NAME}...")


def create_application() -> FastAPI:
    """Create and configure the FastAPI application"""
    app = FastAPI(
        title=settings.PROJECT_NAME,
        version=settings.VERSION,
        description="HealthTrack - health records, goals, reminders and behavior analytics",
        openapi_url=f"{settings.API_PREFIX}/openapi.json",
        docs_url=f"{settings.API_PREFIX}/docs",
        lifespan=lifespan,
    )

    # CORS Middleware - Environment-specific origins
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["*"],
    )
    logger.info(f"CORS configured for {settings.ENVIRONMENT.value} environment with origins: {settings.allowed_cors_origins}")

    # GZip Middleware for response compression
    app.add_middleware(GZipMiddleware, minimum_size=1000)

    from healthtrack.api.v1.api import api_router
    app.include_router(api_router, prefix=settings.API_PREFIX)

    @app.get("/health", tags=["Health Check"])
    def health_check():
        """Liveness probe with a database round trip"""
        db = SessionLocal()
        try:
            db.execute(text("SELECT 1"))
            db_status = "healthy"
        except Exception as e:
            logger.error(f"Database health check failed: {e}")
            db_status = "unhealthy"
        finally:
            db.close()

        return {
            "status": "healthy" if db_status == "healthy" else "degraded",
            "version": settings.VERSION,
            "project": settings.PROJECT_NAME,
            "database": db_status,
        }

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        """Global HTTP exception handler"""
        if exc.status_code >= 500:
            logger.error(f"HTTP {exc.status_code}: {exc.detail} - {request.url}")
        else:
            logger.info(f"HTTP {exc.status_code}: {exc.detail} - {request.method} {request.url.path}")
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "error": True,
                "message": exc.detail,
                "status_code": exc.status_code,
            },
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        logger.warning(f"Validation failed for {request.method} {request.url.path}: {len(exc.errors())} errors")
        return JSONResponse(
            status_code=422,
            content={
                "error": True,
                "message": "Validation failed",
                "status_code": 422,
                "details": jsonable_encoder(exc.errors()),
            },
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        """Global exception handler for unhandled exceptions"""
        logger.error(f"Unhandled exception: {exc} - {request.url}", exc_info=exc)
        return JSONResponse(
            status_code=500,
            content={
                "error": True,
                "message": "Internal server error",
                "status_code": 500,
            },
        )

    return app


# Create the FastAPI app instance
app = create_application()


if __name__ == "__main__":
    uvicorn.run(
        "healthtrack.main:app",
        host=settings.SERVER_HOST,
        port=settings.SERVER_PORT,
        reload=settings.is_development,
    )
