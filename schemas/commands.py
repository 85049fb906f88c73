from typing import Optional

from pydantic import BaseModel, Field


class DetailsUpdate(BaseModel):
    amount: Optional[float] = None
    term_months: Optional[int] = Field(None, alias="termMonths")
    purpose: Optional[str] = None
    needs_guarantors: Optional[bool] = Field(None, alias="needsGuarantors")

    model_config = {"populate_by_name": True}


class GuarantorAdd(BaseModel):
    guarantor_id: str = Field(..., alias="guarantorId")

    model_config = {"populate_by_name": True, "coerce_numbers_to_str": True}


class PercentageUpdate(BaseModel):
    percentage: float


class SubmitRequest(BaseModel):
    """Optional note sent to every guarantor with the guarantee request."""
    message: Optional[str] = Field(None, max_length=500)
