"""API route handlers for the Credit Oracle service."""
import time
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, Request, status

from credit_oracle.logging import get_logger, set_request_context
from credit_oracle.schemas import (
    BatchAcceptedResponse, BatchJobResponse, BatchRequest,
    OracleStatusResponse,
    ScoreExistsResponse, ScoreUpdateResponse,
    TriggerRequest,
)
from credit_oracle.services.batch import BatchService
from credit_oracle.services.coordinator import OracleCoordinator, ScoreUpdateResult

logger = get_logger(__name__)

router = APIRouter(prefix="/api", tags=["oracle"])


def get_coordinator(request: Request) -> OracleCoordinator:
    """Dependency that provides the coordinator built at startup."""
    coordinator = getattr(request.app.state, "coordinator", None)
    if coordinator is None:
        raise HTTPException(status_code=503, detail="Oracle not initialized")
    return coordinator


def get_batch_service(request: Request) -> BatchService:
    """Dependency that provides the batch service built at startup."""
    batch_service = getattr(request.app.state, "batch_service", None)
    if batch_service is None:
        raise HTTPException(status_code=503, detail="Oracle not initialized")
    return batch_service


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _score_response(result: ScoreUpdateResult) -> ScoreUpdateResponse:
    return ScoreUpdateResponse(
        address=result.address,
        score=result.score,
        tx_hash=result.tx_hash,
        block_number=result.block_number,
        gas_used=result.gas_used,
        components=result.components,
        timestamp=_now(),
    )


@router.get("/oracle/status", response_model=OracleStatusResponse)
async def oracle_status(coordinator: OracleCoordinator = Depends(get_coordinator)):
    """Oracle account balance and whether the registry authorizes it."""
    oracle = await coordinator.status()
    return OracleStatusResponse(
        oracle_address=oracle.oracle_address,
        balance=f"{oracle.balance} ETH",
        is_authorized=oracle.is_authorized,
        timestamp=_now(),
    )


@router.post(
    "/score/batch",
    response_model=BatchAcceptedResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def start_batch(
    request_body: BatchRequest,
    batch_service: BatchService = Depends(get_batch_service),
):
    """
    Start a batch score update.

    The addresses are processed one at a time in the background. Poll
    GET /api/score/batch/{job_id} for per-address outcomes.
    """
    logger.info("batch_requested", count=len(request_body.addresses))

    job_id = await batch_service.start(request_body.addresses)

    return BatchAcceptedResponse(
        job_id=job_id,
        count=len(request_body.addresses),
        timestamp=_now(),
    )


@router.get("/score/batch/{job_id}", response_model=BatchJobResponse)
async def get_batch(
    job_id: str,
    batch_service: BatchService = Depends(get_batch_service),
):
    """Fetch a batch job with the outcome of every address processed so far."""
    job = batch_service.get(job_id)
    if job is None:
        logger.warning("batch_job_not_found", job_id=job_id, outcome="not_found")
        raise HTTPException(status_code=404, detail="Batch job not found")
    return job


@router.post("/score/{address}", response_model=ScoreUpdateResponse)
async def update_score(
    address: str,
    request: Request,
    coordinator: OracleCoordinator = Depends(get_coordinator),
):
    """
    Compute and publish a credit score for an address.

    This endpoint:
    1. Validates the address
    2. Scans the wallet's lending activity
    3. Calculates the credit score (300-850)
    4. Submits updateScore to the registry and waits for confirmation

    Returns the published score and the transaction hash.
    """
    start_time = time.perf_counter()
    request_id = getattr(request.state, "request_id", "unknown")
    set_request_context(request_id, address=address)

    logger.info("score_update_requested", address=address)

    result = await coordinator.update_score(address)

    logger.info(
        "score_update_responded",
        address=result.address,
        score=result.score,
        duration_ms=round((time.perf_counter() - start_time) * 1000, 2),
        outcome="success",
    )
    return _score_response(result)


@router.get("/score/{address}/exists", response_model=ScoreExistsResponse)
async def score_exists(
    address: str,
    coordinator: OracleCoordinator = Depends(get_coordinator),
):
    """Whether the registry already holds a score for the address."""
    has_score = await coordinator.check_score_exists(address)
    return ScoreExistsResponse(address=address, has_score=has_score, timestamp=_now())


@router.post("/trigger", response_model=ScoreUpdateResponse)
async def manual_trigger(
    request_body: TriggerRequest,
    request: Request,
    coordinator: OracleCoordinator = Depends(get_coordinator),
):
    """Manually trigger a score update (testing aid)."""
    request_id = getattr(request.state, "request_id", "unknown")
    set_request_context(request_id, address=request_body.address)

    logger.info("manual_trigger_requested", address=request_body.address)

    result = await coordinator.update_score(request_body.address)
    return _score_response(result)
