from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field


class SupportingDocument(BaseModel):
    filename: str
    content_type: str = "application/octet-stream"
    content: bytes = Field(repr=False)


class LoanDraft(BaseModel):
    """Loan details as sent to the backend to create the draft application."""
    amount: float = Field(..., gt=0)
    term_months: int = Field(..., gt=0)
    purpose: str = Field(..., min_length=1)
    needs_guarantors: bool = False
    supporting_document: Optional[SupportingDocument] = None

    model_config = {"frozen": True}

    def to_payload(self) -> dict[str, str | float | int | bool]:
        """Form fields in the backend's naming; the backend calls the guarantor flag has_guarantor."""
        return {
            "amount": self.amount,
            "term_months": self.term_months,
            "purpose": self.purpose,
            "has_guarantor": self.needs_guarantors,
        }


class DetailsFormState(BaseModel):
    """Renderable state of the DETAILS step."""
    amount: Optional[float] = None
    term_months: int
    purpose: str = ""
    needs_guarantors: bool = False
    document_name: Optional[str] = None
    max_loan_amount: float
    permitted_terms: list[int]
    application_id: Optional[str] = None
    locked: bool = False
    errors: list[str] = Field(default_factory=list)
