"""Client for the on-chain CreditRegistry contract.

All writes go through the single oracle signing identity. Submissions are
serialized with a lock so concurrent callers never race on the account nonce.
"""
import asyncio
import time
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from eth_account import Account
from web3 import AsyncWeb3, Web3
from web3.exceptions import TimeExhausted

from credit_oracle import metrics
from credit_oracle.config import Settings, settings as default_settings
from credit_oracle.errors import (
    ConfigurationError,
    ConfirmationTimeout,
    InvalidAddress,
    RegistryQueryError,
    SubmissionError,
    TransactionFailed,
)
from credit_oracle.logging import get_logger

logger = get_logger(__name__)

CREDIT_REGISTRY_ABI = [
    {
        "type": "function",
        "name": "updateScore",
        "stateMutability": "nonpayable",
        "inputs": [
            {"name": "user", "type": "address"},
            {"name": "plaintextScore", "type": "uint64"},
        ],
        "outputs": [],
    },
    {
        "type": "function",
        "name": "hasScore",
        "stateMutability": "view",
        "inputs": [{"name": "user", "type": "address"}],
        "outputs": [{"name": "", "type": "bool"}],
    },
    {
        "type": "function",
        "name": "oracle",
        "stateMutability": "view",
        "inputs": [],
        "outputs": [{"name": "", "type": "address"}],
    },
]


def normalize_address(address: str) -> str:
    """
    Validate an account address and return its checksummed form.

    Accepts all-lowercase, all-uppercase or correctly checksummed hex.

    Raises:
        InvalidAddress: If the address is malformed or fails its checksum
    """
    if not isinstance(address, str) or not Web3.is_address(address):
        raise InvalidAddress(address)
    return Web3.to_checksum_address(address)


@dataclass(frozen=True)
class PendingTransaction:
    """Handle for a score transaction that has been sent but not mined."""
    tx_hash: str
    address: str
    score: int
    nonce: int
    submitted_at: float


@dataclass(frozen=True)
class TransactionReceipt:
    """Mined score transaction."""
    tx_hash: str
    block_number: int
    gas_used: int


class RegistryClient:
    """Typed wrapper around the CreditRegistry contract."""

    def __init__(
        self,
        rpc_url: str,
        registry_address: str,
        private_key: str,
        *,
        chain_id: Optional[int] = None,
        confirmation_timeout: float = 120.0,
        poll_latency: float = 1.0,
        w3: Optional[AsyncWeb3] = None,
    ):
        """
        Initialize the registry client and load the oracle identity.

        Args:
            rpc_url: JSON-RPC endpoint of the network
            registry_address: Deployed CreditRegistry address
            private_key: Hex private key of the oracle account
            chain_id: Chain ID for signed transactions (looked up when None)
            confirmation_timeout: Seconds to wait for a receipt before giving up
            poll_latency: Seconds between receipt polls
            w3: Preconfigured AsyncWeb3 instance (defaults to an HTTP provider)

        Raises:
            ConfigurationError: If any of the identity or contract settings is unusable
        """
        if not rpc_url:
            raise ConfigurationError("RPC_URL is required")
        if not private_key:
            raise ConfigurationError("ORACLE_PRIVATE_KEY is required")

        try:
            self._account = Account.from_key(private_key)
        except (ValueError, TypeError):
            # Cause suppressed, it can echo key material
            raise ConfigurationError("ORACLE_PRIVATE_KEY is not a valid private key") from None

        if not registry_address or not Web3.is_address(registry_address):
            raise ConfigurationError(
                f"CREDIT_REGISTRY_ADDRESS is missing or invalid: {registry_address!r}"
            )

        self.registry_address = Web3.to_checksum_address(registry_address)
        self.chain_id = chain_id
        self.confirmation_timeout = confirmation_timeout
        self.poll_latency = poll_latency

        self._w3 = w3 or AsyncWeb3(AsyncWeb3.AsyncHTTPProvider(rpc_url))
        self._contract = self._w3.eth.contract(
            address=self.registry_address,
            abi=CREDIT_REGISTRY_ABI,
        )
        self._submit_lock = asyncio.Lock()

        logger.info(
            "registry_client_initialized",
            oracle_address=self.oracle_address,
            registry_address=self.registry_address,
            chain_id=chain_id,
        )

    @classmethod
    def from_settings(cls, config: Optional[Settings] = None) -> "RegistryClient":
        """Build a client from application settings."""
        config = config or default_settings
        return cls(
            rpc_url=config.rpc_url,
            registry_address=config.credit_registry_address,
            private_key=config.oracle_private_key,
            chain_id=config.chain_id,
            confirmation_timeout=config.confirmation_timeout_seconds,
            poll_latency=config.confirmation_poll_seconds,
        )

    @property
    def oracle_address(self) -> str:
        """Checksummed address derived from the oracle private key."""
        return self._account.address

    async def submit_score(self, address: str, score: int) -> PendingTransaction:
        """
        Sign and send an ``updateScore(address, score)`` transaction.

        Returns as soon as the node accepts the transaction.

        Raises:
            InvalidAddress: If the address is malformed (no network call is made)
            SubmissionError: If building, signing or sending fails
        """
        user = normalize_address(address)

        async with self._submit_lock:
            start_time = time.perf_counter()
            try:
                nonce = await self._w3.eth.get_transaction_count(self.oracle_address, "pending")
                tx_params = {"from": self.oracle_address, "nonce": nonce}
                if self.chain_id is not None:
                    tx_params["chainId"] = self.chain_id

                tx = await self._contract.functions.updateScore(user, score).build_transaction(tx_params)
                signed = self._account.sign_transaction(tx)
                raw_hash = await self._w3.eth.send_raw_transaction(signed.raw_transaction)
            except Exception as e:
                logger.error(
                    "transaction_submit_failed",
                    address=user,
                    score=score,
                    error=str(e),
                )
                raise SubmissionError(f"Failed to submit score for {user}: {e}", address=user) from e

            metrics.record_submission(time.perf_counter() - start_time)

        tx_hash = Web3.to_hex(raw_hash)
        logger.info("transaction_sent", address=user, score=score, tx_hash=tx_hash, nonce=nonce)

        return PendingTransaction(
            tx_hash=tx_hash,
            address=user,
            score=score,
            nonce=nonce,
            submitted_at=time.time(),
        )

    async def await_confirmation(self, pending: PendingTransaction) -> TransactionReceipt:
        """
        Wait until a submitted transaction is mined.

        Raises:
            ConfirmationTimeout: If no receipt arrives within the timeout
            TransactionFailed: If the transaction reverted or the wait failed
        """
        logger.info(
            "transaction_confirmation_waiting",
            tx_hash=pending.tx_hash,
            timeout_seconds=self.confirmation_timeout,
        )
        start_time = time.perf_counter()

        try:
            receipt = await self._w3.eth.wait_for_transaction_receipt(
                pending.tx_hash,
                timeout=self.confirmation_timeout,
                poll_latency=self.poll_latency,
            )
        except TimeExhausted as e:
            raise ConfirmationTimeout(
                f"Transaction {pending.tx_hash} not mined within {self.confirmation_timeout}s",
                address=pending.address,
                tx_hash=pending.tx_hash,
            ) from e
        except Exception as e:
            raise TransactionFailed(
                f"Failed waiting for {pending.tx_hash}: {e}",
                address=pending.address,
                tx_hash=pending.tx_hash,
            ) from e

        metrics.record_confirmation(time.perf_counter() - start_time)

        if receipt["status"] != 1:
            raise TransactionFailed(
                f"Transaction {pending.tx_hash} reverted in block {receipt['blockNumber']}",
                address=pending.address,
                tx_hash=pending.tx_hash,
            )

        logger.info(
            "transaction_confirmed",
            tx_hash=pending.tx_hash,
            block_number=receipt["blockNumber"],
            seconds_since_submit=round(time.time() - pending.submitted_at, 2),
        )

        return TransactionReceipt(
            tx_hash=Web3.to_hex(receipt["transactionHash"]),
            block_number=receipt["blockNumber"],
            gas_used=receipt.get("gasUsed", 0),
        )

    async def has_score(self, address: str, strict: bool = False) -> bool:
        """
        Ask the registry whether an address already has a score.

        With ``strict=False`` a failed query is logged and reported as
        ``False``, so "query failed" and "no score" look the same to the caller.

        Raises:
            InvalidAddress: If the address is malformed
            RegistryQueryError: If the query fails and ``strict`` is set
        """
        user = normalize_address(address)
        try:
            return bool(await self._contract.functions.hasScore(user).call())
        except Exception as e:
            metrics.record_registry_query_failure("has_score")
            logger.error("registry_has_score_failed", address=user, error=str(e), strict=strict)
            if strict:
                raise RegistryQueryError(f"hasScore query failed for {user}: {e}", address=user) from e
            return False

    async def current_oracle_address(self) -> str:
        """Return the oracle address the registry currently authorizes."""
        try:
            return await self._contract.functions.oracle().call()
        except Exception as e:
            metrics.record_registry_query_failure("oracle")
            raise RegistryQueryError(f"oracle() query failed: {e}") from e

    async def balance(self) -> Decimal:
        """Return the oracle account's native balance in ether."""
        try:
            wei = await self._w3.eth.get_balance(self.oracle_address)
        except Exception as e:
            metrics.record_registry_query_failure("balance")
            raise RegistryQueryError(f"Balance query failed: {e}") from e
        return Decimal(Web3.from_wei(wei, "ether"))
