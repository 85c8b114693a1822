"""Oracle coordinator: scores an address and publishes the score on-chain."""
import asyncio
import time
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Awaitable, Callable, Optional

from credit_oracle import metrics
from credit_oracle.config import Settings, validate_settings
from credit_oracle.errors import (
    BatchTooLarge,
    OracleError,
    RegistryQueryError,
    SubmissionError,
    TransactionFailed,
    UpstreamDataError,
)
from credit_oracle.logging import TimedOperation, get_logger, log_score_update
from credit_oracle.scoring import ActivitySnapshot, CreditScoreCalculator
from credit_oracle.services.activity import ActivityProvider, build_activity_provider
from credit_oracle.services.registry_client import (
    PendingTransaction,
    RegistryClient,
    TransactionReceipt,
    normalize_address,
)

logger = get_logger(__name__)


class UpdateStage(str, Enum):
    """Stages of a single score update. FAILED is reachable from any stage."""
    IDLE = "idle"
    VALIDATING = "validating"
    FETCHING = "fetching"
    SCORING = "scoring"
    SUBMITTING = "submitting"
    CONFIRMING = "confirming"
    DONE = "done"
    FAILED = "failed"


@dataclass
class ScoreUpdateResult:
    """A confirmed on-chain score update."""
    address: str
    score: int
    tx_hash: str
    block_number: int
    gas_used: int = 0
    components: dict[str, int] = field(default_factory=dict)


@dataclass
class BatchItemOutcome:
    """Result of one address in a batch run."""
    position: int
    address: str
    success: bool
    score: Optional[int] = None
    tx_hash: Optional[str] = None
    error_kind: Optional[str] = None
    error: Optional[str] = None


@dataclass
class OracleStatus:
    """Oracle account health as seen from the registry."""
    oracle_address: str
    balance: Decimal
    is_authorized: bool


BatchItemCallback = Callable[[BatchItemOutcome], Awaitable[None]]


class OracleCoordinator:
    """
    Orchestrates score updates for wallet addresses.

    A single update runs through these stages:
    1. Validating  - reject malformed addresses before any network call
    2. Fetching    - get the wallet's activity snapshot from the provider
    3. Scoring     - apply the fixed credit score formula
    4. Submitting  - sign and send updateScore through the registry client
    5. Confirming  - wait for the transaction to be mined

    Any stage may fail. The error propagates to the caller with its kind so
    client errors stay distinguishable from upstream or chain failures.
    Nothing is retried here.
    """

    def __init__(
        self,
        registry: RegistryClient,
        activity_provider: ActivityProvider,
        calculator: Optional[CreditScoreCalculator] = None,
        *,
        batch_max_size: int = 10,
        batch_delay_seconds: float = 2.0,
        strict_score_lookup: bool = False,
    ):
        """
        Initialize the coordinator.

        Args:
            registry: Client for the on-chain registry (owns the signing key)
            activity_provider: Source of wallet activity snapshots
            calculator: Credit score calculator (defaults to new instance)
            batch_max_size: Maximum addresses accepted per batch
            batch_delay_seconds: Pause between consecutive batch items
            strict_score_lookup: Raise instead of returning False when a
                score existence query fails
        """
        self.registry = registry
        self.activity_provider = activity_provider
        self.calculator = calculator or CreditScoreCalculator()
        self.batch_max_size = batch_max_size
        self.batch_delay_seconds = batch_delay_seconds
        self.strict_score_lookup = strict_score_lookup

    @property
    def oracle_address(self) -> str:
        return self.registry.oracle_address

    async def update_score(self, address: str) -> ScoreUpdateResult:
        """
        Score an address and publish the score on-chain.

        Re-scoring an address that already has a score overwrites it.

        Args:
            address: Wallet address to score

        Returns:
            ScoreUpdateResult with the published score and transaction hash

        Raises:
            InvalidAddress: The address is malformed
            UpstreamDataError: The activity provider failed
            SubmissionError: The transaction could not be sent
            TransactionFailed: The transaction reverted or never confirmed
        """
        start_time = time.perf_counter()
        stage = _transition(address, UpdateStage.IDLE, UpdateStage.VALIDATING)
        score = None

        try:
            user = normalize_address(address)
            await self._note_existing_score(user)

            stage = _transition(user, stage, UpdateStage.FETCHING)
            activity = await self._fetch_activity(user)

            stage = _transition(user, stage, UpdateStage.SCORING)
            credit_score = self.calculator.calculate(activity)
            score = credit_score.total_score
            logger.info(
                "score_calculated",
                address=user,
                score=score,
                raw_score=credit_score.raw_score,
                components=credit_score.components,
            )

            stage = _transition(user, stage, UpdateStage.SUBMITTING)
            pending = await self._submit(user, score)

            stage = _transition(user, stage, UpdateStage.CONFIRMING)
            receipt = await self._confirm(pending)

            stage = _transition(user, stage, UpdateStage.DONE)

        except OracleError as e:
            _transition(address, stage, UpdateStage.FAILED, error_kind=e.kind, error=e.message)
            metrics.record_score_update(
                outcome=e.kind,
                latency_seconds=time.perf_counter() - start_time,
                score=score,
            )
            raise

        except Exception as e:
            _transition(address, stage, UpdateStage.FAILED, error_kind="internal_error", error=str(e))
            metrics.record_score_update(
                outcome="internal_error",
                latency_seconds=time.perf_counter() - start_time,
                score=score,
            )
            raise

        duration_seconds = time.perf_counter() - start_time
        log_score_update(
            logger=logger,
            address=user,
            score=score,
            tx_hash=receipt.tx_hash,
            block_number=receipt.block_number,
            duration_ms=duration_seconds * 1000,
        )
        metrics.record_score_update(outcome="confirmed", latency_seconds=duration_seconds, score=score)

        return ScoreUpdateResult(
            address=user,
            score=score,
            tx_hash=receipt.tx_hash,
            block_number=receipt.block_number,
            gas_used=receipt.gas_used,
            components=credit_score.components,
        )

    async def _note_existing_score(self, user: str) -> None:
        # Informational only; an existing score never blocks the update
        if await self.registry.has_score(user):
            logger.info("score_already_exists", address=user, detail="will update anyway")

    async def _fetch_activity(self, user: str) -> ActivitySnapshot:
        with TimedOperation("activity_fetch", logger, address=user):
            try:
                return await self.activity_provider.fetch(user)
            except UpstreamDataError:
                raise
            except Exception as e:
                raise UpstreamDataError(f"Activity scan failed for {user}: {e}", address=user) from e

    async def _submit(self, user: str, score: int) -> PendingTransaction:
        with TimedOperation("score_submit", logger, address=user, score=score):
            try:
                return await self.registry.submit_score(user, score)
            except SubmissionError:
                raise
            except Exception as e:
                raise SubmissionError(f"Failed to submit score for {user}: {e}", address=user) from e

    async def _confirm(self, pending: PendingTransaction) -> TransactionReceipt:
        with TimedOperation("score_confirm", logger, address=pending.address, tx_hash=pending.tx_hash):
            try:
                return await self.registry.await_confirmation(pending)
            except TransactionFailed:
                raise
            except Exception as e:
                raise TransactionFailed(
                    f"Confirmation failed for {pending.tx_hash}: {e}",
                    address=pending.address,
                    tx_hash=pending.tx_hash,
                ) from e

    async def check_score_exists(self, address: str) -> bool:
        """
        Return whether the registry holds a score for the address.

        Raises:
            InvalidAddress: The address is malformed
            RegistryQueryError: The query failed and strict lookups are enabled
        """
        user = normalize_address(address)
        return await self.registry.has_score(user, strict=self.strict_score_lookup)

    def validate_batch(self, addresses: list[str]) -> None:
        """
        Check a batch against the size bounds.

        Raises:
            BatchTooLarge: If the batch is empty or over the maximum size
        """
        if not addresses:
            raise BatchTooLarge("Batch must contain at least one address")
        if len(addresses) > self.batch_max_size:
            raise BatchTooLarge(
                f"Maximum {self.batch_max_size} addresses per batch, got {len(addresses)}"
            )

    async def run_batch(
        self,
        addresses: list[str],
        on_item: Optional[BatchItemCallback] = None,
    ) -> list[BatchItemOutcome]:
        """
        Update scores for several addresses, one at a time, in input order.

        Submissions share one signing account, so items never run
        concurrently. A fixed delay separates consecutive items. A failing
        item is recorded and the batch moves on.

        Args:
            addresses: Addresses to score, in processing order
            on_item: Awaited with each outcome as soon as it is known

        Returns:
            One BatchItemOutcome per address, in input order
        """
        self.validate_batch(addresses)

        logger.info("batch_update_started", count=len(addresses))
        outcomes: list[BatchItemOutcome] = []

        for position, address in enumerate(addresses):
            if position > 0 and self.batch_delay_seconds > 0:
                await asyncio.sleep(self.batch_delay_seconds)

            try:
                result = await self.update_score(address)
                outcome = BatchItemOutcome(
                    position=position,
                    address=result.address,
                    success=True,
                    score=result.score,
                    tx_hash=result.tx_hash,
                )
            except Exception as e:
                logger.error(
                    "batch_item_failed",
                    position=position,
                    address=address,
                    error_kind=getattr(e, "kind", "internal_error"),
                    error=str(e),
                )
                outcome = BatchItemOutcome(
                    position=position,
                    address=address,
                    success=False,
                    error_kind=getattr(e, "kind", "internal_error"),
                    error=str(e),
                )

            metrics.record_batch_item(outcome.success)
            outcomes.append(outcome)
            if on_item is not None:
                try:
                    await on_item(outcome)
                except Exception as e:
                    # The item is already on-chain or failed; keep going
                    logger.error(
                        "batch_item_record_failed",
                        position=position,
                        address=outcome.address,
                        error=str(e),
                    )

        succeeded = sum(1 for o in outcomes if o.success)
        logger.info(
            "batch_update_completed",
            count=len(outcomes),
            succeeded=succeeded,
            failed=len(outcomes) - succeeded,
        )
        return outcomes

    async def verify_authorization(self) -> bool:
        """
        Compare the registry's authorized oracle with our signing address.

        A mismatch or a failed query is reported as unauthorized. Writes
        fail at the contract level until the registry is updated.
        """
        try:
            authorized = await self.registry.current_oracle_address()
        except RegistryQueryError as e:
            logger.error("oracle_authorization_check_failed", error=e.message)
            metrics.set_oracle_health(authorized=False)
            return False

        is_authorized = authorized.lower() == self.oracle_address.lower()
        metrics.set_oracle_health(authorized=is_authorized)

        if is_authorized:
            logger.info("oracle_authorized", oracle_address=self.oracle_address)
        else:
            logger.warning(
                "oracle_not_authorized",
                expected=self.oracle_address,
                registry_oracle=authorized,
                detail="Deploy the registry with this oracle address or update the contract",
            )
        return is_authorized

    async def status(self) -> OracleStatus:
        """Return the oracle balance and authorization state."""
        balance = await self.registry.balance()
        metrics.set_oracle_health(balance_eth=float(balance))
        is_authorized = await self.verify_authorization()
        return OracleStatus(
            oracle_address=self.oracle_address,
            balance=balance,
            is_authorized=is_authorized,
        )

    async def run_startup_checks(
        self,
        min_balance_eth: float,
        expected_address: Optional[str] = None,
    ) -> None:
        """
        Warn about conditions that will make submissions fail.

        Nothing here is fatal: an unauthorized or underfunded oracle still
        starts, but every problem is logged prominently.
        """
        if expected_address and expected_address.lower() != self.oracle_address.lower():
            logger.warning(
                "oracle_address_mismatch",
                configured=expected_address,
                derived=self.oracle_address,
            )

        await self.verify_authorization()

        try:
            balance = await self.registry.balance()
        except RegistryQueryError as e:
            logger.error("oracle_balance_check_failed", error=e.message)
            return

        metrics.set_oracle_health(balance_eth=float(balance))
        logger.info("oracle_balance", balance_eth=str(balance))

        if balance < Decimal(str(min_balance_eth)):
            logger.warning(
                "oracle_balance_low",
                balance_eth=str(balance),
                minimum_eth=min_balance_eth,
                detail="Fund the oracle account or submissions may fail",
            )


def _transition(
    address: str,
    from_stage: UpdateStage,
    to_stage: UpdateStage,
    **details,
) -> UpdateStage:
    """Log a stage transition and return the new stage."""
    log = logger.warning if to_stage == UpdateStage.FAILED else logger.debug
    log(
        "score_update_stage",
        address=address,
        from_stage=from_stage.value,
        to_stage=to_stage.value,
        **details,
    )
    return to_stage


def build_coordinator(config: Settings) -> OracleCoordinator:
    """
    Construct the coordinator and its collaborators from settings.

    Raises:
        ConfigurationError: If required settings are missing or invalid
    """
    validate_settings(config)
    registry = RegistryClient.from_settings(config)
    provider = build_activity_provider(config.activity_api_base)
    return OracleCoordinator(
        registry,
        provider,
        batch_max_size=config.batch_max_size,
        batch_delay_seconds=config.batch_delay_seconds,
        strict_score_lookup=config.strict_score_lookup,
    )
