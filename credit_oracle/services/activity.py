"""Wallet activity providers that produce snapshots for scoring."""
import time
from typing import Optional, Protocol

import httpx

from credit_oracle import metrics
from credit_oracle.config import settings
from credit_oracle.errors import UpstreamDataError
from credit_oracle.logging import get_logger
from credit_oracle.schemas import ActivityPayload
from credit_oracle.scoring.activity import ActivitySnapshot, RepaymentHistory

logger = get_logger(__name__)


class ActivityProvider(Protocol):
    """Anything that can fetch an activity snapshot for an address."""

    async def fetch(self, address: str) -> ActivitySnapshot:
        ...


# Deterministic demo profiles, selected by the address's last character
MOCK_PROFILES = [
    dict(
        has_lending_activity=True,
        never_liquidated=True,
        account_age_months=12,
        protocol_count=3,
        repayment_history=RepaymentHistory.STRONG,
        total_borrowed_usd=50000,
        total_repaid_usd=50000,
    ),
    dict(
        has_lending_activity=True,
        never_liquidated=True,
        account_age_months=8,
        protocol_count=2,
        repayment_history=RepaymentHistory.GOOD,
        total_borrowed_usd=25000,
        total_repaid_usd=25000,
    ),
    dict(
        has_lending_activity=True,
        never_liquidated=True,
        account_age_months=4,
        protocol_count=1,
        repayment_history=RepaymentHistory.AVERAGE,
        total_borrowed_usd=10000,
        total_repaid_usd=9500,
    ),
    dict(
        has_lending_activity=False,
        never_liquidated=True,
        account_age_months=1,
        protocol_count=0,
        repayment_history=RepaymentHistory.NONE,
        total_borrowed_usd=0,
        total_repaid_usd=0,
    ),
]


def mock_activity_profile(address: str) -> ActivitySnapshot:
    """
    Build the demo snapshot for an address.

    The profile index is the character code of the lowercased last character
    of the address, modulo 4: strong borrower, good borrower, average
    borrower, new wallet.
    """
    profile = MOCK_PROFILES[ord(address[-1].lower()) % len(MOCK_PROFILES)]
    return ActivitySnapshot(address=address, **profile)


class MockActivityProvider:
    """Stands in for real chain scanning with deterministic profiles."""

    async def fetch(self, address: str) -> ActivitySnapshot:
        snapshot = mock_activity_profile(address)

        logger.info(
            "wallet_scan_completed",
            address=address,
            source="mock",
            has_activity=snapshot.has_lending_activity,
            liquidated=not snapshot.never_liquidated,
            account_age_months=snapshot.account_age_months,
            protocols=snapshot.protocol_count,
            repayment=snapshot.repayment_history,
        )
        return snapshot


class IndexerActivityClient:
    """Client for fetching wallet activity from an indexer API."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize the indexer client.

        Args:
            base_url: Base URL of the indexer API. Defaults to settings.activity_api_base.
            timeout: Per-request timeout in seconds
            transport: Custom httpx transport (used by tests)
        """
        self.base_url = (base_url or settings.activity_api_base).rstrip("/")
        self.timeout = timeout
        self.transport = transport

    async def fetch(self, address: str) -> ActivitySnapshot:
        """
        Fetch the activity snapshot for an address.

        Args:
            address: Checksummed wallet address

        Returns:
            ActivitySnapshot built from the indexer response

        Raises:
            UpstreamDataError: If the indexer fails or returns a malformed payload
        """
        url = f"{self.base_url}/activity/{address}"

        start_time = time.perf_counter()

        logger.info("activity_request_started", address=address, url=url)

        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            try:
                response = await client.get(url)
                response.raise_for_status()
                payload = ActivityPayload.model_validate(response.json())

            except httpx.HTTPStatusError as e:
                duration_seconds = time.perf_counter() - start_time

                logger.error(
                    "activity_http_error",
                    address=address,
                    status_code=e.response.status_code,
                    duration_ms=round(duration_seconds * 1000, 2),
                    error=str(e),
                    outcome="error",
                )
                metrics.record_activity_fetch(success=False, latency_seconds=duration_seconds, error_type="http_error")

                raise UpstreamDataError(
                    f"Indexer returned {e.response.status_code} for {address}", address=address
                ) from e

            except httpx.RequestError as e:
                duration_seconds = time.perf_counter() - start_time

                logger.error(
                    "activity_request_error",
                    address=address,
                    duration_ms=round(duration_seconds * 1000, 2),
                    error=str(e),
                    outcome="error",
                )
                error_type = "timeout" if isinstance(e, httpx.TimeoutException) else "connection_error"
                metrics.record_activity_fetch(success=False, latency_seconds=duration_seconds, error_type=error_type)

                raise UpstreamDataError(f"Indexer request failed: {e}", address=address) from e

            except ValueError as e:
                # Covers undecodable JSON and pydantic ValidationError
                duration_seconds = time.perf_counter() - start_time

                logger.error(
                    "activity_payload_invalid",
                    address=address,
                    error=str(e),
                    outcome="error",
                )
                metrics.record_activity_fetch(success=False, latency_seconds=duration_seconds, error_type="invalid_payload")

                raise UpstreamDataError(f"Malformed indexer payload for {address}", address=address) from e

        duration_seconds = time.perf_counter() - start_time

        logger.info(
            "activity_request_completed",
            address=address,
            duration_ms=round(duration_seconds * 1000, 2),
            outcome="success",
        )
        metrics.record_activity_fetch(success=True, latency_seconds=duration_seconds)

        return ActivitySnapshot(
            address=address,
            has_lending_activity=payload.has_lending_activity,
            never_liquidated=payload.never_liquidated,
            account_age_months=payload.account_age_months,
            protocol_count=payload.protocol_count,
            repayment_history=payload.repayment_history,
            total_borrowed_usd=payload.total_borrowed_usd,
            total_repaid_usd=payload.total_repaid_usd,
        )


def build_activity_provider(base_url: Optional[str] = None) -> ActivityProvider:
    """Use the indexer when one is configured, otherwise the mock profiles."""
    base_url = base_url if base_url is not None else settings.activity_api_base
    if base_url:
        return IndexerActivityClient(base_url=base_url)
    logger.warning("activity_provider_mock", detail="No ACTIVITY_API_BASE configured, using mock profiles")
    return MockActivityProvider()
