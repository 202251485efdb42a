"""
Game Night FastAPI Application

Main entry point for the game night API: recurring game groups, invite
codes, scheduled games and RSVPs.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

# Common library imports
from common.database import MongoDB
from common.utils import ServiceUnavailableException, success_response

# App-specific imports
from app.config import settings
from app.groups.dependencies import init_group_services
from app.groups.errors import StoreError
from app.groups.router import router as groups_router
from app.groups.store import MemoryBackend, MongoBackend, StoreBackend, create_indexes


logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


# =============================================================================
# Database Instance
# =============================================================================
main_db = MongoDB()


async def _create_backend() -> StoreBackend:
    if settings.STORE_BACKEND == "memory":
        logger.warning("Using in-memory store; data is lost on restart")
        return MemoryBackend(max_retries=settings.TRANSACTION_MAX_RETRIES)

    await main_db.connect(
        uri=settings.MONGODB_URI,
        database_name=settings.MONGODB_DATABASE,
    )
    await create_indexes(main_db.db)
    return MongoBackend(
        client=main_db.client,
        db=main_db.db,
        in_chunk_size=settings.IN_QUERY_CHUNK_SIZE,
    )


# =============================================================================
# Application Lifespan
# =============================================================================
@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan context manager.

    Connects the store and initializes services on startup, closes the
    connection on shutdown.
    """
    logger.info("Starting Game Night API...")

    backend = await _create_backend()
    init_group_services(
        backend=backend,
        horizon=settings.OCCURRENCE_HORIZON,
        invite_code_attempts=settings.INVITE_CODE_MAX_ATTEMPTS,
    )
    logger.info(f"Group services initialized ({settings.STORE_BACKEND} store)")

    yield

    logger.info("Shutting down Game Night API...")
    await backend.close()
    if main_db.is_connected:
        await main_db.disconnect()


# =============================================================================
# FastAPI Application
# =============================================================================
app = FastAPI(
    title="Game Night API",
    description="Recurring game groups, schedules and RSVPs",
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs" if settings.is_development() else None,
    redoc_url="/redoc" if settings.is_development() else None,
)

# =============================================================================
# CORS Middleware
# =============================================================================
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.get_cors_origins(),
    allow_credentials=settings.CORS_ALLOW_CREDENTIALS,
    allow_methods=["*"],
    allow_headers=["*"],
)


# =============================================================================
# Error Handlers
# =============================================================================
@app.exception_handler(StoreError)
async def store_error_handler(request: Request, exc: StoreError):
    """Store failures are retryable: answer 503 with the usual detail shape."""
    logger.error(f"{request.method} {request.url.path} failed: {exc.code} {exc.message}")
    error = ServiceUnavailableException(exc.message, code=exc.code)
    return JSONResponse(status_code=error.status_code, content={"detail": error.detail})


# =============================================================================
# Include Routers (all under /api/v1 prefix)
# =============================================================================
API_PREFIX = "/api/v1"

app.include_router(groups_router, prefix=API_PREFIX, tags=["Groups"])


# =============================================================================
# Health Check Endpoint
# =============================================================================
@app.get("/health", tags=["Health"])
async def health():
    """
    Health check endpoint.

    Returns the status of the API and the store connection.
    """
    return success_response({
        "status": "ok",
        "version": "1.0.0",
        "store": settings.STORE_BACKEND,
        "database": main_db.is_connected,
    })


# =============================================================================
# Run with Uvicorn
# =============================================================================
if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "api:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.is_development(),
    )
