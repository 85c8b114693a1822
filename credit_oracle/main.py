"""
Credit Oracle Service

A FastAPI-based service that scores EVM wallets on their lending history
and publishes the scores to an on-chain CreditRegistry contract.

How a score gets on-chain:
--------------------------
1. The wallet's lending activity is scanned (indexer API or mock profiles)
2. A fixed, additive formula turns the activity into a 300-850 score
3. The oracle account signs updateScore(address, score) and sends it
4. The service waits for the transaction to be mined and returns the hash

The registry contract only accepts writes from its configured oracle
address. At startup the service checks that the registry's oracle() matches
the signing key and that the account has enough balance for gas, and warns
loudly when either check fails.
"""
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from starlette.responses import Response

from credit_oracle import metrics
from credit_oracle import models  # noqa: F401  (registers tables on Base)
from credit_oracle.api import router
from credit_oracle.config import settings
from credit_oracle.database import engine, Base, SessionLocal
from credit_oracle.errors import OracleError
from credit_oracle.logging import (
    configure_logging,
    get_logger,
    set_request_context,
    clear_request_context,
    generate_request_id,
)
from credit_oracle.schemas import ErrorResponse
from credit_oracle.services.batch import BatchService
from credit_oracle.services.coordinator import build_coordinator

# Configure structured logging
configure_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    logger.info(
        "service_starting",
        service_name=settings.service_name,
        network=settings.network_name,
        rpc_url=settings.rpc_url,
        credit_registry=settings.credit_registry_address or "not deployed yet",
    )

    Base.metadata.create_all(bind=engine)

    # ConfigurationError propagates and aborts startup before serving
    coordinator = build_coordinator(settings)
    await coordinator.run_startup_checks(
        min_balance_eth=settings.min_oracle_balance_eth,
        expected_address=settings.oracle_address or None,
    )

    app.state.coordinator = coordinator
    app.state.batch_service = BatchService(coordinator, SessionLocal)

    logger.info(
        "service_started",
        service_name=settings.service_name,
        oracle_address=coordinator.oracle_address,
    )

    yield

    logger.info("service_stopping", service_name=settings.service_name)

    # Submitted transactions are not cancellable, so let running batches finish
    await app.state.batch_service.drain()


app = FastAPI(
    title="Credit Oracle Service",
    description="Scores wallet lending activity and publishes scores on-chain",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.cors_origin],
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def request_logging_middleware(request: Request, call_next):
    """
    Middleware for request tracing, logging, and metrics.

    Sets up request context with:
    - request_id: Unique identifier for tracing
    - Timing for duration_ms calculation
    - Prometheus metrics collection
    """
    method = request.method
    path = request.url.path

    # Skip logging/metrics for health and metrics endpoints
    if path in ("/health", "/metrics"):
        return await call_next(request)

    # Generate and set request ID
    request_id = request.headers.get("X-Request-ID") or generate_request_id()
    set_request_context(request_id)

    # Store request_id in request state for access in route handlers
    request.state.request_id = request_id

    start_time = time.perf_counter()

    logger.info("request_received", method=method, path=path)

    try:
        response = await call_next(request)

        duration_ms = (time.perf_counter() - start_time) * 1000

        logger.info(
            "request_completed",
            method=method,
            path=path,
            status_code=response.status_code,
            duration_ms=round(duration_ms, 2),
        )

        metrics.HTTP_REQUESTS.labels(
            method=method,
            endpoint=path,
            status=response.status_code
        ).inc()

        metrics.HTTP_REQUEST_LATENCY.labels(
            method=method,
            endpoint=path
        ).observe(duration_ms / 1000)  # Convert to seconds for histogram

        # Add request_id to response headers for tracing
        response.headers["X-Request-ID"] = request_id

        return response

    except Exception as e:
        duration_ms = (time.perf_counter() - start_time) * 1000

        logger.error(
            "request_failed",
            method=method,
            path=path,
            duration_ms=round(duration_ms, 2),
            error=str(e),
        )

        metrics.HTTP_REQUESTS.labels(
            method=method,
            endpoint=path,
            status=500
        ).inc()

        raise

    finally:
        clear_request_context()


@app.exception_handler(OracleError)
async def oracle_error_handler(request: Request, exc: OracleError):
    """Map oracle errors to their HTTP status with kind and message."""
    request_id = getattr(request.state, "request_id", "unknown")

    log = logger.warning if exc.status_code < 500 else logger.error
    log(
        "oracle_error",
        error_kind=exc.kind,
        status_code=exc.status_code,
        detail=exc.message,
        address=exc.address,
    )

    body = ErrorResponse(error=exc.kind, detail=exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content=body.model_dump(),
        headers={"X-Request-ID": request_id},
    )


# Include API routes
app.include_router(router)


@app.get("/health")
async def health_check(request: Request):
    """Health check endpoint for container orchestration."""
    initialized = getattr(request.app.state, "coordinator", None) is not None
    return {
        "status": "ok",
        "service": settings.service_name,
        "oracle": "initialized" if initialized else "not initialized",
    }


@app.get("/metrics")
async def metrics_endpoint():
    """Prometheus metrics endpoint."""
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
