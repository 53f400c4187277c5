"""RentFlow main application."""

import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from rentflow import __version__
from rentflow.api import router
from rentflow.config import settings
from rentflow.db.base import close_db, init_db, is_sqlite
from rentflow.engine import (
    ConflictError,
    ForbiddenError,
    NotFoundError,
    PaymentRailUnavailable,
    RentFlowError,
)

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper()),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger("rentflow")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create tables, report configuration, dispose the pool on shutdown."""
    logger.info(f"Starting RentFlow {__version__} ({settings.env.value})")
    backend = "sqlite" if is_sqlite(settings.database_url) else "postgresql"
    logger.info(f"Database backend: {backend}")
    if settings.payment_rail_endpoint:
        logger.info(f"Payment rail: {settings.payment_rail_endpoint}")
    else:
        logger.warning("No payment rail endpoint configured; payment submission is disabled")

    await init_db()

    yield

    logger.info("Shutting down RentFlow...")
    await close_db()


def error_status(error: RentFlowError) -> int:
    """HTTP status for a domain error family."""
    if isinstance(error, NotFoundError):
        return 404
    if isinstance(error, ForbiddenError):
        return 403
    if isinstance(error, ConflictError):
        return 409
    if isinstance(error, PaymentRailUnavailable):
        return 503
    return 500


app = FastAPI(
    title="RentFlow",
    description="Lease lifecycle and payment obligation engine",
    version=__version__,
    lifespan=lifespan,
)


@app.exception_handler(RentFlowError)
async def rentflow_error_handler(request: Request, exc: RentFlowError) -> JSONResponse:
    """Fallback for domain errors a route does not map itself."""
    status_code = error_status(exc)
    if status_code == 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=status_code, content={"detail": exc.message, "code": exc.code})


# Explicit CORS allowlist, no wildcards with credentials
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_allowed_origins,
    allow_credentials=settings.cors_allow_credentials,
    allow_methods=settings.cors_allowed_methods,
    allow_headers=settings.cors_allowed_headers,
)

app.include_router(router)


def main():
    """Entry point for the API server."""
    uvicorn.run(
        "rentflow.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
