"""powa-ops statistics API: FastAPI entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from powa_ops import __version__
from powa_ops.framework.exceptions import ExtractionContractError
from .routers import health, stats

logger = logging.getLogger("powa_ops_app")


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("powa-ops API starting up")
    yield
    logger.info("powa-ops API shutting down")


app = FastAPI(
    title="powa-ops",
    description="Per-database function and relation statistics",
    version=__version__,
    lifespan=lifespan,
)

app.include_router(health.router)
app.include_router(stats.router)


@app.exception_handler(ExtractionContractError)
async def extraction_contract_error(request: Request, exc: ExtractionContractError):
    return JSONResponse(status_code=400, content={"error": str(exc)})


@app.get("/")
async def root():
    """Service index."""
    return {
        "status": "ok",
        "app": "powa-ops",
        "endpoints": [
            "/api/health",
            "/api/collector/settings",
            "/api/stats/functions/{database_id}",
            "/api/stats/relations/{database_id}",
        ],
    }
