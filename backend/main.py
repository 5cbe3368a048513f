"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api import dashboard, saltedge
from api.helpers import aggregator_error_response
from config import settings
from database import init_db
from integrations.exceptions import AggregatorError, ConnectionOwnershipError
from logging_config import setup_logging

setup_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Migrate the schema to head on startup."""
    try:
        init_db()
    except Exception:
        logger.error("Database initialisation failed on startup", exc_info=True)
        raise
    logger.info(
        "Salt Edge integration running in %s mode (%s)",
        settings.SALTEDGE_STATUS,
        settings.ENVIRONMENT,
    )
    yield


app = FastAPI(
    title="Finsight",
    description="Personal banking aggregation over Salt Edge",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS configuration for frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.APP_BASE_URL],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(AggregatorError)
async def handle_aggregator_error(request: Request, exc: AggregatorError):
    logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    return aggregator_error_response(exc)


@app.exception_handler(ConnectionOwnershipError)
async def handle_ownership_error(request: Request, exc: ConnectionOwnershipError):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


# Include API routers
app.include_router(dashboard.router)
app.include_router(saltedge.router)


@app.get("/health")
def health_check():
    """Health check endpoint."""
    return {"status": "ok"}
