"""
ImmunoTrack - Main FastAPI Application
Childhood immunization schedule tracking service
"""

import logging
from datetime import datetime
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.orm import sessionmaker
import uvicorn

from immunotrack.config import settings
from immunotrack.engine import ImmunizationEngine
from immunotrack.errors import ImmunoTrackError, InvalidTransitionError, NotFoundError
from immunotrack.routes import (
    children as children_routes,
    notifications as notification_routes,
    schedule as schedule_routes,
    vaccinations as vaccination_routes,
)
from immunotrack.services.database import build_session_factory
from immunotrack.services.repository import ImmunizationRepository

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

VERSION = "1.0.0"


# =============================================================================
# Application Lifecycle
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events"""
    # Startup
    logger.info("Starting ImmunoTrack application...")
    logger.info(f"Environment: {settings.environment}")

    if getattr(app.state, "session_factory", None) is None:
        app.state.session_factory = build_session_factory()

    with app.state.session_factory() as session:
        repository = ImmunizationRepository(session)
        if settings.seed_schedule_on_startup:
            repository.seed_national_schedule()
        app.state.engine = ImmunizationEngine(repository.load_catalog(settings.schedule_tunables()))

    yield

    # Shutdown
    logger.info("Shutting down ImmunoTrack application...")


# =============================================================================
# Error Handlers
# =============================================================================

async def not_found_handler(request: Request, exc: NotFoundError):
    return JSONResponse(
        status_code=status.HTTP_404_NOT_FOUND,
        content={"detail": str(exc), "error_code": exc.error_code}
    )


async def invalid_transition_handler(request: Request, exc: InvalidTransitionError):
    return JSONResponse(
        status_code=status.HTTP_409_CONFLICT,
        content={"detail": str(exc), "error_code": exc.error_code}
    )


async def immunotrack_error_handler(request: Request, exc: ImmunoTrackError):
    logger.warning(f"Request to {request.url.path} failed: {exc}")
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": str(exc), "error_code": exc.error_code}
    )


# =============================================================================
# FastAPI Application
# =============================================================================

def create_app(session_factory: Optional[sessionmaker] = None) -> FastAPI:
    """
    Build the API application

    Args:
        session_factory: Session factory to use instead of the configured database

    Returns:
        FastAPI application
    """
    app = FastAPI(
        title="ImmunoTrack",
        description="Childhood immunization schedule tracking and notifications",
        version=VERSION,
        lifespan=lifespan
    )
    app.state.session_factory = session_factory

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(NotFoundError, not_found_handler)
    app.add_exception_handler(InvalidTransitionError, invalid_transition_handler)
    app.add_exception_handler(ImmunoTrackError, immunotrack_error_handler)

    # Include routers
    app.include_router(children_routes.router)
    app.include_router(vaccination_routes.router)
    app.include_router(notification_routes.router)
    app.include_router(schedule_routes.router)

    @app.get("/health", tags=["health"])
    async def health_check():
        """Health check endpoint"""
        return {
            "status": "healthy",
            "timestamp": datetime.now().isoformat(),
            "version": VERSION,
            "environment": settings.environment
        }

    return app


app = create_app()


# =============================================================================
# Main Entry Point
# =============================================================================

if __name__ == "__main__":
    uvicorn.run(
        "immunotrack.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.api_reload,
        log_level=settings.log_level.lower()
    )
