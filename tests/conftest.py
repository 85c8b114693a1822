"""
Shared fixtures for Credit Oracle tests.

The registry and activity provider are replaced by in-memory fakes so the
coordinator and API can be exercised without a chain or an indexer.
"""
from decimal import Decimal

import pytest
from sqlalchemy.orm import sessionmaker

from credit_oracle import models  # noqa: F401
from credit_oracle.database import Base, create_db_engine
from credit_oracle.errors import SubmissionError, TransactionFailed, UpstreamDataError
from credit_oracle.services.activity import MockActivityProvider
from credit_oracle.services.coordinator import OracleCoordinator
from credit_oracle.services.registry_client import PendingTransaction, TransactionReceipt

# Well-known local development key (Hardhat/Anvil account #0)
ORACLE_PRIVATE_KEY = "0xac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcae784d7bf4f2ff80"
ORACLE_ADDRESS = "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"
REGISTRY_ADDRESS = "0x5fbdb2315678afecb367f032d93f642f64180aa3"

# Digit-only addresses are their own checksum form. The last character
# selects the mock profile: 0 strong, 1 good, 2 average, 3 new wallet.
ADDR_STRONG = "0x" + "1" * 39 + "0"
ADDR_GOOD = "0x" + "2" * 39 + "1"
ADDR_AVERAGE = "0x" + "3" * 39 + "2"
ADDR_NEW = "0x" + "4" * 39 + "3"


class FakeRegistry:
    """In-memory stand-in for RegistryClient."""

    def __init__(self, registry_oracle: str = ORACLE_ADDRESS, balance: Decimal = Decimal("1.5")):
        self.oracle_address = ORACLE_ADDRESS
        self.registry_oracle = registry_oracle
        self.balance_eth = balance
        self.scores: dict[str, int] = {}
        self.submissions: list[tuple[str, int]] = []
        self.has_score_calls: list[str] = []
        self.fail_submit_for: set[str] = set()
        self.revert_for: set[str] = set()
        self.block_number = 100

    async def submit_score(self, address: str, score: int) -> PendingTransaction:
        if address in self.fail_submit_for:
            raise SubmissionError("nonce too low", address=address)
        self.submissions.append((address, score))
        return PendingTransaction(
            tx_hash=f"0x{len(self.submissions):064x}",
            address=address,
            score=score,
            nonce=len(self.submissions) - 1,
            submitted_at=0.0,
        )

    async def await_confirmation(self, pending: PendingTransaction) -> TransactionReceipt:
        if pending.address in self.revert_for:
            raise TransactionFailed("execution reverted", address=pending.address, tx_hash=pending.tx_hash)
        self.block_number += 1
        self.scores[pending.address] = pending.score
        return TransactionReceipt(tx_hash=pending.tx_hash, block_number=self.block_number, gas_used=52000)

    async def has_score(self, address: str, strict: bool = False) -> bool:
        self.has_score_calls.append(address)
        return address in self.scores

    async def current_oracle_address(self) -> str:
        return self.registry_oracle

    async def balance(self) -> Decimal:
        return self.balance_eth


class FailingProvider:
    """Activity provider that fails for selected addresses."""

    def __init__(self, failing: set[str], error: Exception = None):
        self.failing = failing
        self.error = error
        self.inner = MockActivityProvider()
        self.calls: list[str] = []

    async def fetch(self, address: str):
        self.calls.append(address)
        if address in self.failing:
            raise self.error or UpstreamDataError("indexer unavailable", address=address)
        return await self.inner.fetch(address)


@pytest.fixture
def registry():
    """Fake registry with an authorized, funded oracle."""
    return FakeRegistry()


@pytest.fixture
def coordinator(registry):
    """Coordinator wired to the fake registry and mock profiles, no batch delay."""
    return OracleCoordinator(
        registry,
        MockActivityProvider(),
        batch_max_size=10,
        batch_delay_seconds=0,
    )


@pytest.fixture
def session_factory():
    """Session factory bound to a fresh in-memory SQLite database."""
    engine = create_db_engine("sqlite://")
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.drop_all(bind=engine)
    engine.dispose()
