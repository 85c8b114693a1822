"""Error taxonomy for the Credit Oracle service.

Each error carries a stable ``kind`` string and the HTTP status the API layer
maps it to, so callers can tell client errors from upstream or chain failures.
"""
from typing import Optional


class OracleError(Exception):
    """Base class for all errors raised by the oracle core."""

    kind = "oracle_error"
    status_code = 500

    def __init__(self, message: str, *, address: Optional[str] = None):
        self.message = message
        self.address = address
        super().__init__(message)


class InvalidAddress(OracleError):
    """The supplied address is not a well-formed account address."""

    kind = "invalid_address"
    status_code = 400

    def __init__(self, address: str):
        super().__init__(f"Invalid Ethereum address: {address!r}", address=address)


class BatchTooLarge(OracleError):
    """A batch request is empty or exceeds the configured maximum."""

    kind = "invalid_batch"
    status_code = 400


class ConfigurationError(OracleError):
    """Required settings are missing or invalid. Fatal at startup."""

    kind = "configuration_error"
    status_code = 500


class UpstreamDataError(OracleError):
    """The wallet activity provider failed."""

    kind = "upstream_data_error"
    status_code = 502


class SubmissionError(OracleError):
    """The score transaction could not be built, signed or sent."""

    kind = "submission_error"
    status_code = 502


class TransactionFailed(OracleError):
    """The score transaction reverted or never confirmed."""

    kind = "transaction_failed"
    status_code = 502

    def __init__(
        self,
        message: str,
        *,
        address: Optional[str] = None,
        tx_hash: Optional[str] = None,
    ):
        self.tx_hash = tx_hash
        super().__init__(message, address=address)


class ConfirmationTimeout(TransactionFailed):
    """No receipt arrived within the confirmation timeout.

    The transaction may still be mined afterwards.
    """

    kind = "confirmation_timeout"
    status_code = 504


class RegistryQueryError(OracleError):
    """A read-only registry query failed in strict mode."""

    kind = "registry_query_error"
    status_code = 502
