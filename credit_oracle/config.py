"""Configuration settings for the Credit Oracle service."""
from pydantic_settings import BaseSettings

from credit_oracle.errors import ConfigurationError


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Network
    rpc_url: str = "https://rpc.sepolia.org"
    network_name: str = "sepolia"
    chain_id: int = 11155111

    # Contracts
    credit_registry_address: str = ""

    # Oracle identity. The private key is never logged.
    oracle_private_key: str = ""
    oracle_address: str = ""  # Optional; compared against the derived address

    # Wallet activity indexer. Empty means use the built-in mock profiles.
    activity_api_base: str = ""

    # Database (batch job outcomes only)
    database_url: str = "sqlite:///./credit_oracle.db"

    # Service identification
    service_name: str = "credit-oracle"
    cors_origin: str = "*"

    # Batch processing
    # One signing account means submissions must stay sequential
    batch_max_size: int = 10
    batch_delay_seconds: float = 2.0

    # Transaction confirmation
    confirmation_timeout_seconds: float = 120.0
    confirmation_poll_seconds: float = 1.0

    # Startup checks
    min_oracle_balance_eth: float = 0.01

    # When true, a failed hasScore query is an error instead of "no score"
    strict_score_lookup: bool = False

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


def validate_settings(config: "Settings") -> None:
    """
    Eagerly check the settings required to serve requests.

    Raises:
        ConfigurationError: If a required value is missing
    """
    required = {
        "ORACLE_PRIVATE_KEY": config.oracle_private_key,
        "RPC_URL": config.rpc_url,
    }
    missing = [key for key, value in required.items() if not value]
    if missing:
        raise ConfigurationError(
            f"Missing required environment variables: {', '.join(missing)}"
        )


settings = Settings()
