"""Batch service: runs score update batches in the background."""
import asyncio
import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.orm import sessionmaker

from credit_oracle import metrics
from credit_oracle.logging import get_logger
from credit_oracle.models import BatchItem, BatchJob
from credit_oracle.schemas import BatchItemSchema, BatchJobResponse
from credit_oracle.services.coordinator import BatchItemOutcome, OracleCoordinator

logger = get_logger(__name__)


class BatchService:
    """
    Starts batch runs and records their per-item outcomes.

    The caller gets a job ID back immediately. The batch itself runs as a
    background task on the event loop, and each outcome is written to the
    database as soon as it is known, so progress can be polled by job ID.
    """

    def __init__(self, coordinator: OracleCoordinator, session_factory: sessionmaker):
        """
        Initialize the batch service.

        Args:
            coordinator: Coordinator that performs each score update
            session_factory: Factory for database sessions used by background runs
        """
        self.coordinator = coordinator
        self.session_factory = session_factory
        self._tasks: set[asyncio.Task] = set()

    async def start(self, addresses: list[str]) -> str:
        """
        Record a new batch job and start processing it.

        Args:
            addresses: Addresses to score, in processing order

        Returns:
            The new job's ID

        Raises:
            BatchTooLarge: If the batch is empty or over the size limit
        """
        self.coordinator.validate_batch(addresses)

        job_id = uuid.uuid4()
        with self.session_factory() as db:
            job = BatchJob(id=job_id, status="running", item_count=len(addresses))
            db.add(job)
            for position, address in enumerate(addresses):
                db.add(BatchItem(job_id=job_id, position=position, address=address, status="pending"))
            db.commit()

        logger.info("batch_job_created", job_id=str(job_id), count=len(addresses))

        task = asyncio.create_task(self._run(job_id, addresses))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

        return str(job_id)

    async def _run(self, job_id: uuid.UUID, addresses: list[str]) -> None:
        metrics.BATCHES_RUNNING.inc()

        async def record(outcome: BatchItemOutcome) -> None:
            self._record_outcome(job_id, outcome)

        try:
            await self.coordinator.run_batch(addresses, on_item=record)
        except Exception as e:
            # Top of a background task: nobody awaits it, so log here
            logger.error("batch_job_failed", job_id=str(job_id), error=str(e))
        finally:
            self._mark_completed(job_id)
            metrics.BATCHES_RUNNING.dec()

    def _record_outcome(self, job_id: uuid.UUID, outcome: BatchItemOutcome) -> None:
        with self.session_factory() as db:
            item = (
                db.query(BatchItem)
                .filter(BatchItem.job_id == job_id, BatchItem.position == outcome.position)
                .one()
            )
            item.status = "succeeded" if outcome.success else "failed"
            item.score = outcome.score
            item.tx_hash = outcome.tx_hash
            item.error_kind = outcome.error_kind
            item.error = outcome.error
            db.commit()

    def _mark_completed(self, job_id: uuid.UUID) -> None:
        with self.session_factory() as db:
            job = db.get(BatchJob, job_id)
            if job is None:
                return
            job.status = "completed"
            job.completed_at = datetime.now(timezone.utc)
            db.commit()

        logger.info("batch_job_completed", job_id=str(job_id))

    def get(self, job_id: str) -> Optional[BatchJobResponse]:
        """
        Fetch a batch job and its per-item outcomes.

        Args:
            job_id: UUID of the job

        Returns:
            BatchJobResponse or None if not found
        """
        try:
            job_uuid = uuid.UUID(job_id)
        except ValueError:
            return None

        with self.session_factory() as db:
            job = db.get(BatchJob, job_uuid)
            if job is None:
                return None
            return _to_response(job)

    async def drain(self) -> None:
        """Wait for every running batch to finish."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    @property
    def running(self) -> int:
        return len(self._tasks)


def _to_response(job: BatchJob) -> BatchJobResponse:
    return BatchJobResponse(
        job_id=str(job.id),
        status=job.status,
        item_count=job.item_count,
        created_at=job.created_at,
        completed_at=job.completed_at,
        items=[
            BatchItemSchema(
                position=item.position,
                address=item.address,
                status=item.status,
                score=item.score,
                tx_hash=item.tx_hash,
                error_kind=item.error_kind,
                error=item.error,
            )
            for item in job.items
        ],
    )
