from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class EligibilitySnapshot(BaseModel):
    """Point-in-time eligibility figures computed by the SACCO backend."""
    eligible: bool
    reason: Optional[str] = None
    max_loan_amount: float = Field(0, ge=0)
    multiplier: float = 0
    total_deposits: float = Field(0, alias="deposits")
    is_verified: bool = False
    is_on_hold: bool = False
    outstanding_loans: float = 0
    share_capital_complete: bool = True
    has_active_loans: bool = False

    model_config = {"frozen": True, "populate_by_name": True, "extra": "ignore"}


class EligibilityStatus(str, Enum):
    ELIGIBLE = "eligible"
    NOT_ELIGIBLE = "not_eligible"
    UNAVAILABLE = "unavailable"


class EligibilityIssue(BaseModel):
    """One disqualifying condition and what the member can do about it."""
    code: str
    label: str
    message: str
    action: str


class EligibilityResult(BaseModel):
    status: EligibilityStatus
    snapshot: Optional[EligibilitySnapshot] = None
    issues: list[EligibilityIssue] = Field(default_factory=list)
    error: Optional[str] = None

    @property
    def eligible(self) -> bool:
        return self.status is EligibilityStatus.ELIGIBLE and self.snapshot is not None
