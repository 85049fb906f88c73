from schemas.eligibility import (
    EligibilityIssue,
    EligibilityResult,
    EligibilitySnapshot,
    EligibilityStatus,
)
from schemas.guarantor import (
    AllocationState,
    GuaranteeRequestResult,
    GuarantorCandidate,
    GuarantorPledge,
)
from schemas.loan import DetailsFormState, LoanDraft, SupportingDocument
from schemas.session import MemberSession
from schemas.workflow import (
    ApplicationSubmitted,
    CommandResult,
    SubmissionReport,
    SubmissionReportResponse,
    WorkflowState,
    WorkflowStep,
)

__all__ = [
    "AllocationState",
    "ApplicationSubmitted",
    "CommandResult",
    "DetailsFormState",
    "EligibilityIssue",
    "EligibilityResult",
    "EligibilitySnapshot",
    "EligibilityStatus",
    "GuaranteeRequestResult",
    "GuarantorCandidate",
    "GuarantorPledge",
    "LoanDraft",
    "MemberSession",
    "SubmissionReport",
    "SubmissionReportResponse",
    "SupportingDocument",
    "WorkflowState",
    "WorkflowStep",
]
