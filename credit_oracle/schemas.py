"""Pydantic schemas for request/response validation."""
from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field

# Bound enforced at the API boundary, before the coordinator is reached
MAX_BATCH_ADDRESSES = 10


class ActivityPayload(BaseModel):
    """Wallet activity as returned by the indexer API."""
    has_lending_activity: bool
    never_liquidated: bool
    account_age_months: int = Field(..., ge=0)
    protocol_count: int = Field(..., ge=0)
    repayment_history: str
    total_borrowed_usd: float = Field(0.0, ge=0)
    total_repaid_usd: float = Field(0.0, ge=0)


class ScoreUpdateResponse(BaseModel):
    """Response body for POST /api/score/{address}."""
    success: bool = True
    address: str
    score: int = Field(..., ge=300, le=850, description="Published credit score (300-850)")
    tx_hash: str
    block_number: int
    gas_used: int = 0
    components: dict[str, int] = Field(default_factory=dict, description="Bonus points by factor")
    message: str = "Credit score updated successfully"
    timestamp: datetime


class ScoreExistsResponse(BaseModel):
    """Response body for GET /api/score/{address}/exists."""
    address: str
    has_score: bool
    timestamp: datetime


class TriggerRequest(BaseModel):
    """Request body for POST /api/trigger."""
    address: str = Field(..., min_length=1, description="Wallet address to score")


class BatchRequest(BaseModel):
    """Request body for POST /api/score/batch."""
    addresses: list[str] = Field(
        ...,
        min_length=1,
        max_length=MAX_BATCH_ADDRESSES,
        description="Wallet addresses, processed in order",
    )


class BatchAcceptedResponse(BaseModel):
    """Response body for POST /api/score/batch."""
    success: bool = True
    job_id: str
    count: int
    message: str = "Batch update started"
    timestamp: datetime


class BatchItemSchema(BaseModel):
    """Outcome of one address within a batch."""
    position: int
    address: str
    status: str
    score: Optional[int] = None
    tx_hash: Optional[str] = None
    error_kind: Optional[str] = None
    error: Optional[str] = None


class BatchJobResponse(BaseModel):
    """Response body for GET /api/score/batch/{job_id}."""
    job_id: str
    status: str
    item_count: int
    created_at: datetime
    completed_at: Optional[datetime] = None
    items: list[BatchItemSchema]


class OracleStatusResponse(BaseModel):
    """Response body for GET /api/oracle/status."""
    oracle_address: str
    balance: str = Field(..., description="Balance in ETH, e.g. '0.5 ETH'")
    is_authorized: bool
    timestamp: datetime


class ErrorResponse(BaseModel):
    """Error body returned for oracle failures."""
    success: bool = False
    error: str
    detail: str
