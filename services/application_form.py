"""
Loan details form for the DETAILS step.
The amount is clamped to the member's borrowing ceiling on every update, so the
form can never hold an amount the backend would reject for exceeding capacity.
"""
from __future__ import annotations

import logging
import math
from typing import Any

from config import settings
from schemas.loan import DetailsFormState, LoanDraft, SupportingDocument
from schemas.session import MemberSession
from schemas.workflow import CommandResult
from services.sacco_client import SaccoApiError, SaccoBackend

logger = logging.getLogger(__name__)

MSG_DRAFT_LOCKED = "The application has already been created and can no longer be edited"


class DetailsForm:
    def __init__(
        self,
        max_loan_amount: float,
        permitted_terms: tuple[int, ...] | None = None,
        default_term: int | None = None,
    ):
        self.max_loan_amount = max_loan_amount
        self.permitted_terms = tuple(permitted_terms or settings.permitted_terms)
        term = settings.default_term_months if default_term is None else default_term
        self.term_months = term if term in self.permitted_terms else self.permitted_terms[0]
        self.amount: float | None = None
        self.purpose = ""
        self.needs_guarantors = False
        self.supporting_document: SupportingDocument | None = None
        self.application_id: str | None = None
        self.draft: LoanDraft | None = None

    @property
    def locked(self) -> bool:
        return self.application_id is not None

    def _locked_result(self) -> CommandResult:
        return CommandResult.failure("validation", "draft_locked", MSG_DRAFT_LOCKED)

    def set_amount(self, raw: Any) -> CommandResult:
        if self.locked:
            return self._locked_result()
        if self.max_loan_amount <= 0:
            self.amount = None
            return CommandResult.failure(
                "business_rule", "no_borrowing_capacity", "You have no borrowing capacity at the moment"
            )
        try:
            value = float(raw)
        except (TypeError, ValueError):
            value = None
        if value is None or math.isnan(value) or value <= 0:
            self.amount = None
            return CommandResult.failure("validation", "invalid_amount", "Enter a loan amount greater than zero")
        if value > self.max_loan_amount:
            self.amount = self.max_loan_amount
            return CommandResult.success(
                f"Amount reduced to your maximum of KES {self.max_loan_amount:,.2f}"
            )
        self.amount = value
        return CommandResult.success()

    def set_term(self, term_months: int) -> CommandResult:
        if self.locked:
            return self._locked_result()
        if term_months not in self.permitted_terms:
            allowed = ", ".join(str(t) for t in self.permitted_terms)
            return CommandResult.failure(
                "validation", "invalid_term", f"Repayment period must be one of {allowed} months"
            )
        self.term_months = term_months
        return CommandResult.success()

    def set_purpose(self, purpose: str) -> CommandResult:
        if self.locked:
            return self._locked_result()
        self.purpose = purpose or ""
        if not self.purpose.strip():
            return CommandResult.failure("validation", "purpose_required", "Loan purpose is required")
        return CommandResult.success()

    def set_needs_guarantors(self, needs_guarantors: bool) -> CommandResult:
        if self.locked:
            return self._locked_result()
        self.needs_guarantors = bool(needs_guarantors)
        return CommandResult.success()

    def attach_document(self, document: SupportingDocument | None) -> CommandResult:
        if self.locked:
            return self._locked_result()
        self.supporting_document = document
        return CommandResult.success()

    def validate(self) -> list[str]:
        errors = []
        if self.amount is None:
            errors.append("Enter a loan amount greater than zero")
        if self.term_months not in self.permitted_terms:
            errors.append("Choose a permitted repayment period")
        if not self.purpose.strip():
            errors.append("Loan purpose is required")
        return errors

    def to_draft(self) -> LoanDraft:
        return LoanDraft(
            amount=self.amount,
            term_months=self.term_months,
            purpose=self.purpose.strip(),
            needs_guarantors=self.needs_guarantors,
            supporting_document=self.supporting_document,
        )

    async def submit(self, backend: SaccoBackend, session: MemberSession) -> CommandResult:
        """Create the draft application server-side. The form only locks once an id comes back."""
        if self.locked:
            return CommandResult.success()
        errors = self.validate()
        if errors:
            return CommandResult.failure("validation", "invalid_details", "; ".join(errors))

        draft = self.to_draft()
        try:
            application_id = await backend.create_loan_application(session, draft)
        except SaccoApiError as e:
            logger.warning("Draft application creation failed: %s", e.message)
            return CommandResult.failure("transport", "application_create_failed", e.message)

        self.draft = draft
        self.application_id = application_id
        logger.info("Created draft application %s for KES %.2f", application_id, draft.amount)
        return CommandResult.success("Your loan application has been created.")

    def state(self) -> DetailsFormState:
        return DetailsFormState(
            amount=self.amount,
            term_months=self.term_months,
            purpose=self.purpose,
            needs_guarantors=self.needs_guarantors,
            document_name=self.supporting_document.filename if self.supporting_document else None,
            max_loan_amount=self.max_loan_amount,
            permitted_terms=list(self.permitted_terms),
            application_id=self.application_id,
            locked=self.locked,
            errors=[] if self.locked else self.validate(),
        )
