"""HTTP API for the Credit Oracle service."""
from credit_oracle.api.routes import router

__all__ = ["router"]
