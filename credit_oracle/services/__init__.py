"""Service layer for the Credit Oracle."""
from credit_oracle.services.activity import IndexerActivityClient, MockActivityProvider
from credit_oracle.services.batch import BatchService
from credit_oracle.services.coordinator import OracleCoordinator, build_coordinator
from credit_oracle.services.registry_client import RegistryClient

__all__ = [
    "BatchService",
    "IndexerActivityClient",
    "MockActivityProvider",
    "OracleCoordinator",
    "RegistryClient",
    "build_coordinator",
]
