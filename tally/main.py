"""TALLY — FastAPI Application Entry Point.

Metric period & scoring engine behind a thin HTTP surface.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from tally.database import init_db, test_connection
from tally.api.scorecard_routes import router as scorecard_router
from tally.api.metric_routes import router as metric_router
from tally.api.entry_routes import router as entry_router
from tally.config import settings
from tally.core.logging import get_logger

logger = get_logger("main")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle."""
    logger.info("TALLY starting up...")
    if test_connection():
        try:
            init_db()
        except Exception as e:
            logger.error(f"Table creation failed: {e}")
    else:
        logger.error("Database NOT connected — endpoints will fail")
    yield
    logger.info("TALLY shut down")


def create_app(run_lifespan: bool = True) -> FastAPI:
    """Build the application. Tests pass ``run_lifespan=False`` and wire their own DB."""
    application = FastAPI(
        title="TALLY",
        description="Scorecard metrics: canonical periods, one value per period, target scoring and lifecycle.",
        version="1.0.0",
        lifespan=lifespan if run_lifespan else None,
    )

    application.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    application.include_router(scorecard_router)
    application.include_router(metric_router)
    application.include_router(entry_router)

    @application.get("/health", tags=["System"])
    async def health_check():
        """Health check endpoint."""
        return {"status": "healthy", "service": "tally", "version": "1.0.0"}

    return application


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "tally.main:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )
