"""
FastAPI application entry point for the shared grocery list.

This module initializes the FastAPI app with middleware, CORS, logging,
and registers all API routers.
"""

import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse

from slowapi.errors import RateLimitExceeded

from groceries.config import settings
from groceries.database import get_db_context, init_db
from groceries.dependencies import limiter
from groceries.routers import groceries, history
from groceries.services.parser_log_service import cleanup_logs

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for startup and shutdown events.
    """
    logger.info("Initializing database...")
    init_db()
    logger.info("Database initialized successfully")

    with get_db_context() as db:
        removed = cleanup_logs(db, days_to_keep=settings.PARSER_LOG_RETENTION_DAYS)
        if removed:
            logger.info(f"Removed {removed} old parser log entries")

    yield

    logger.info("Shutting down application...")


app = FastAPI(
    title="Shared Groceries API",
    description="Shared grocery list with catalog learning and shopping history",
    version="1.0.0",
    lifespan=lifespan,
)
app.state.limiter = limiter


@app.exception_handler(RateLimitExceeded)
async def custom_rate_limit_handler(request: Request, exc: RateLimitExceeded):
    return JSONResponse(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        content={"detail": "Rate limit exceeded. Please try again later."},
    )


app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_middleware(GZipMiddleware, minimum_size=1000)

# Register routers
app.include_router(groceries.router, prefix=f"{settings.API_PREFIX}/groceries", tags=["groceries"])
app.include_router(history.router, prefix=f"{settings.API_PREFIX}/history", tags=["history"])


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"Global exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"message": "Internal Server Error", "details": str(exc)},
    )


@app.get("/")
async def root():
    """Root endpoint for health check."""
    return {"message": "Shared Groceries API", "status": "running"}


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "groceries.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level="info",
    )
