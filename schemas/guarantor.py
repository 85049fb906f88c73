from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field


class GuarantorCandidate(BaseModel):
    """A member able to guarantee the requested amount, with their ceilings."""
    id: str
    full_name: str
    contact: Optional[str] = None
    available_guarantee_amount: float = Field(0, ge=0)
    maximum_percentage: float = Field(..., ge=0, le=100)

    model_config = {"frozen": True, "extra": "ignore", "coerce_numbers_to_str": True}


class GuarantorPledge(GuarantorCandidate):
    """A selected candidate with the share of the loan they are asked to cover."""
    guarantee_percentage: float

    model_config = {"frozen": False}

    @classmethod
    def from_candidate(cls, candidate: GuarantorCandidate, percentage: float) -> "GuarantorPledge":
        return cls(**candidate.model_dump(), guarantee_percentage=percentage)


class AllocationState(BaseModel):
    pledges: list[GuarantorPledge] = Field(default_factory=list)
    total_percentage: float = 0
    remaining_percentage: float = 100
    can_submit: bool = False


class GuaranteeRequestResult(BaseModel):
    guarantor_id: str
    full_name: str
    percentage: float
    ok: bool
    request_id: Optional[str] = None
    error: Optional[str] = None
