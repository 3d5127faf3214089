"""
Pydantic schemas for API request/response models.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class AccountResult(BaseModel):
    """Outcome of processing one merchant account."""

    merchant_account_id: int = Field(..., description="Merchant account ID")
    outcome: str = Field(
        ..., description="collected, ledger_failed, skipped or failed"
    )
    reason: Optional[str] = Field(default=None, description="Why the account was skipped")
    transfer_id: Optional[str] = Field(default=None, description="Stripe Transfer ID")
    amount_cents: Optional[int] = Field(default=None, description="Collected amount in cents")
    moved_balances: Optional[int] = Field(
        default=None, description="Unpaid balance rows moved to the platform account"
    )
    error: Optional[str] = Field(default=None, description="Error message for failed accounts")


class CollectionRunResponse(BaseModel):
    """Response schema for a collection run triggered through the API."""

    run_id: int = Field(..., description="Collection run ID")
    status: str = Field(..., description="Run status")
    cutoff: str = Field(..., description="Activity after this moment marks an account active")
    accounts_scanned: int = Field(..., description="Candidate accounts examined")
    accounts_collected: int = Field(..., description="Accounts whose balance was collected")
    accounts_failed: int = Field(..., description="Accounts that failed processing")
    collected_cents: int = Field(..., description="Total collected in cents")
    results: List[AccountResult] = Field(..., description="Per-account outcomes")


class CollectionRunRecord(BaseModel):
    """Stored collection run."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    status: str
    accounts_scanned: int
    accounts_collected: int
    accounts_failed: int
    collected_cents: int
    details: Optional[Dict[str, Any]] = None
    started_at: datetime
    completed_at: Optional[datetime] = None


class HealthCheckResponse(BaseModel):
    """Response schema for health checks."""

    status: str = Field(..., description="Overall health status (healthy/unhealthy)")
    checks: Optional[Dict[str, Any]] = Field(default=None, description="Individual service checks")
    message: Optional[str] = Field(default=None, description="Status message")
