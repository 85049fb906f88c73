from __future__ import annotations

from enum import IntEnum
from typing import Literal, Optional

from pydantic import BaseModel, Field

from schemas.eligibility import EligibilityResult
from schemas.guarantor import AllocationState, GuaranteeRequestResult, GuarantorCandidate
from schemas.loan import DetailsFormState


class WorkflowStep(IntEnum):
    ELIGIBILITY = 1
    DETAILS = 2
    GUARANTORS = 3
    CONFIRMATION = 4


ResultKind = Literal["business_rule", "validation", "transport", "navigation"]


class CommandResult(BaseModel):
    """Outcome of a workflow command. Callers branch on ``ok`` instead of catching."""
    ok: bool
    kind: Optional[ResultKind] = None
    code: Optional[str] = None
    message: Optional[str] = None
    step: Optional[WorkflowStep] = None

    @classmethod
    def success(cls, message: str | None = None, step: WorkflowStep | None = None) -> "CommandResult":
        return cls(ok=True, message=message, step=step)

    @classmethod
    def failure(cls, kind: ResultKind, code: str, message: str, step: WorkflowStep | None = None) -> "CommandResult":
        return cls(ok=False, kind=kind, code=code, message=message, step=step)


class SubmissionReport(BaseModel):
    application_id: str
    results: list[GuaranteeRequestResult] = Field(default_factory=list)

    @property
    def succeeded(self) -> list[GuaranteeRequestResult]:
        return [r for r in self.results if r.ok]

    @property
    def failed(self) -> list[GuaranteeRequestResult]:
        return [r for r in self.results if not r.ok]

    @property
    def status(self) -> Literal["submitted", "partial_failure", "failed"]:
        if not self.failed:
            return "submitted"
        if self.succeeded:
            return "partial_failure"
        return "failed"

    def summary(self) -> str:
        if self.status == "submitted":
            return f"Guarantee requests sent to {len(self.results)} guarantor(s)."
        failed = ", ".join(r.full_name for r in self.failed)
        if self.status == "failed":
            return f"No guarantee requests could be sent. Failed: {failed}."
        sent = ", ".join(r.full_name for r in self.succeeded)
        return f"Guarantee requests sent to {sent}; failed for {failed}."


class SubmissionReportResponse(BaseModel):
    application_id: str
    status: Literal["submitted", "partial_failure", "failed"]
    summary: str
    results: list[GuaranteeRequestResult]

    @classmethod
    def from_report(cls, report: SubmissionReport) -> "SubmissionReportResponse":
        return cls(
            application_id=report.application_id,
            status=report.status,
            summary=report.summary(),
            results=report.results,
        )


class ApplicationSubmitted(BaseModel):
    """Terminal event: the application is final and awaiting review."""
    application_id: str
    guarantor_count: int = 0


class WorkflowState(BaseModel):
    """Step-indexed renderable state of one member's loan application workflow."""
    id: str
    step: WorkflowStep
    step_name: str
    furthest_step: WorkflowStep
    can_go_back: bool
    submitting: bool = False
    eligibility: Optional[EligibilityResult] = None
    details: Optional[DetailsFormState] = None
    application_id: Optional[str] = None
    allocation: Optional[AllocationState] = None
    candidates: list[GuarantorCandidate] = Field(default_factory=list)
    candidates_error: Optional[str] = None
    last_submission: Optional[SubmissionReportResponse] = None
    submitted: Optional[ApplicationSubmitted] = None
