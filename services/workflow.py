"""
Step controller for one member's loan application:
ELIGIBILITY -> DETAILS -> GUARANTORS -> CONFIRMATION (GUARANTORS skipped when no guarantors are needed).

Every forward move re-checks the gating conditions of all earlier steps at call time
rather than trusting a visited flag. Backward moves are free until CONFIRMATION,
which is final. Commands return a CommandResult; failures are never raised.
"""
from __future__ import annotations

import logging
import uuid
from typing import Any, Callable

from config import settings
from schemas.eligibility import EligibilityResult, EligibilityStatus
from schemas.loan import SupportingDocument
from schemas.session import MemberSession
from schemas.workflow import (
    ApplicationSubmitted,
    CommandResult,
    SubmissionReport,
    SubmissionReportResponse,
    WorkflowState,
    WorkflowStep,
)
from services.allocation import AllocationEngine
from services.application_form import DetailsForm
from services.eligibility import check_eligibility
from services.guarantor_pool import GuarantorPoolResolver
from services.sacco_client import SaccoApiError, SaccoBackend
from services.submission import SubmissionOrchestrator

logger = logging.getLogger(__name__)

SubmittedListener = Callable[[ApplicationSubmitted], Any]

MSG_NOT_ELIGIBLE = "Sorry, you are not currently eligible for a loan."
MSG_APPLICATION_FINAL = "The application has been submitted and can no longer be changed"
MSG_SUBMISSION_IN_PROGRESS = "Guarantee requests are still being sent"


def _navigation(code: str, message: str, step: WorkflowStep) -> CommandResult:
    return CommandResult.failure("navigation", code, message, step=step)


class LoanApplicationWorkflow:
    def __init__(
        self,
        backend: SaccoBackend,
        session: MemberSession,
        *,
        workflow_id: str | None = None,
        epsilon: float | None = None,
        outstanding_loan_ratio: float | None = None,
        permitted_terms: tuple[int, ...] | None = None,
    ):
        self.id = workflow_id or f"wf-{uuid.uuid4().hex[:12]}"
        self.backend = backend
        self.session = session
        self.step = WorkflowStep.ELIGIBILITY
        self.furthest_step = WorkflowStep.ELIGIBILITY
        self.eligibility: EligibilityResult | None = None
        self.form: DetailsForm | None = None
        self.pool = GuarantorPoolResolver(backend, session)
        self.allocation: AllocationEngine | None = None
        self.orchestrator = SubmissionOrchestrator(backend, session)
        self.last_submission: SubmissionReport | None = None
        self.submitted: ApplicationSubmitted | None = None
        self.submitting = False
        self.candidates_error: str | None = None
        self._epsilon = epsilon
        self._outstanding_loan_ratio = outstanding_loan_ratio
        self._permitted_terms = permitted_terms or settings.permitted_terms
        self._listeners: list[SubmittedListener] = []

    # -- gating ---------------------------------------------------------------

    @property
    def application_id(self) -> str | None:
        return self.form.application_id if self.form else None

    def _eligibility_passed(self) -> bool:
        return self.eligibility is not None and self.eligibility.eligible

    def _details_passed(self) -> bool:
        return self._eligibility_passed() and self.application_id is not None

    def can_enter(self, step: WorkflowStep) -> bool:
        """Whether every condition guarding ``step`` holds right now."""
        if step is WorkflowStep.ELIGIBILITY:
            return True
        if step is WorkflowStep.DETAILS:
            return self._eligibility_passed()
        if step is WorkflowStep.GUARANTORS:
            return self._details_passed() and self.form.needs_guarantors
        return self.submitted is not None

    def _move(self, step: WorkflowStep) -> None:
        logger.debug("Workflow %s: %s -> %s", self.id, self.step.name, step.name)
        self.step = step
        if step > self.furthest_step:
            self.furthest_step = step

    def on_submitted(self, listener: SubmittedListener) -> None:
        self._listeners.append(listener)

    def _finalize(self, guarantor_count: int) -> None:
        self.submitted = ApplicationSubmitted(application_id=self.application_id, guarantor_count=guarantor_count)
        self.allocation = None
        self._move(WorkflowStep.CONFIRMATION)
        logger.info("Workflow %s: application %s submitted", self.id, self.application_id)
        for listener in self._listeners:
            listener(self.submitted)

    # -- eligibility ----------------------------------------------------------

    async def start(self) -> CommandResult:
        """Fetch the eligibility snapshot. Re-fetches only after a failed check."""
        if self.step is not WorkflowStep.ELIGIBILITY:
            return _navigation("eligibility_checked", "Eligibility has already been checked", self.step)
        if self.eligibility is None or self.eligibility.status is EligibilityStatus.UNAVAILABLE:
            self.eligibility = await check_eligibility(self.backend, self.session, self._outstanding_loan_ratio)
            if self.eligibility.eligible:
                self.form = DetailsForm(
                    self.eligibility.snapshot.max_loan_amount,
                    permitted_terms=self._permitted_terms,
                )
        return self._eligibility_outcome()

    def _eligibility_outcome(self) -> CommandResult:
        if self.eligibility is None or self.eligibility.status is EligibilityStatus.UNAVAILABLE:
            message = self.eligibility.error if self.eligibility else "Eligibility has not been checked yet"
            return CommandResult.failure("transport", "eligibility_unavailable", message, step=self.step)
        if not self.eligibility.eligible:
            labels = ", ".join(i.label for i in self.eligibility.issues)
            message = f"{MSG_NOT_ELIGIBLE} ({labels})" if labels else MSG_NOT_ELIGIBLE
            return CommandResult.failure("business_rule", "not_eligible", message, step=self.step)
        return CommandResult.success(step=self.step)

    # -- navigation -----------------------------------------------------------

    async def next(self) -> CommandResult:
        if self.step is WorkflowStep.ELIGIBILITY:
            outcome = self._eligibility_outcome()
            if not outcome.ok:
                return outcome
            self._move(WorkflowStep.DETAILS)
            return CommandResult.success(step=self.step)
        if self.step is WorkflowStep.DETAILS:
            return await self._complete_details()
        if self.step is WorkflowStep.GUARANTORS:
            return await self._submit_guarantors()
        return _navigation("application_final", MSG_APPLICATION_FINAL, self.step)

    async def submit(self, message: str | None = None) -> CommandResult:
        """Create the draft on DETAILS, or send the guarantee requests on GUARANTORS."""
        if self.step is WorkflowStep.DETAILS:
            return await self._complete_details()
        if self.step is WorkflowStep.GUARANTORS:
            return await self._submit_guarantors(message)
        if self.step is WorkflowStep.CONFIRMATION:
            return _navigation("application_final", MSG_APPLICATION_FINAL, self.step)
        return _navigation("nothing_to_submit", "There is nothing to submit on this step", self.step)

    def back(self) -> CommandResult:
        if self.step is WorkflowStep.CONFIRMATION:
            return _navigation("application_final", MSG_APPLICATION_FINAL, self.step)
        if self.step is WorkflowStep.ELIGIBILITY:
            return _navigation("no_previous_step", "This is the first step", self.step)
        self._move(WorkflowStep(self.step - 1))
        return CommandResult.success(step=self.step)

    async def go_to(self, target: WorkflowStep) -> CommandResult:
        """Jump to a step: backward freely, forward only to reached steps whose conditions still hold."""
        target = WorkflowStep(target)
        if target is self.step:
            return CommandResult.success(step=self.step)
        if self.step is WorkflowStep.CONFIRMATION:
            return _navigation("application_final", MSG_APPLICATION_FINAL, self.step)
        if target < self.step:
            self._move(target)
            return CommandResult.success(step=self.step)
        if target is WorkflowStep.CONFIRMATION:
            return _navigation("submission_required", "Submit the application to reach confirmation", self.step)
        if target > self.furthest_step:
            return _navigation("step_not_reached", f"Complete the earlier steps before {target.name.lower()}", self.step)
        for step in WorkflowStep:
            if step <= target and not self.can_enter(step):
                return _navigation("step_locked", f"The {step.name.lower()} step is not available", self.step)
        self._move(target)
        if target is WorkflowStep.GUARANTORS:
            await self.refresh_candidates()
        return CommandResult.success(step=self.step)

    # -- details --------------------------------------------------------------

    def _details_guard(self) -> CommandResult | None:
        if self.step is not WorkflowStep.DETAILS or self.form is None:
            return _navigation("wrong_step", "Loan details can only be changed on the details step", self.step)
        return None

    def update_details(
        self,
        amount: Any = None,
        term_months: int | None = None,
        purpose: str | None = None,
        needs_guarantors: bool | None = None,
    ) -> CommandResult:
        """Apply the given field changes in order; stops at the first rejected field."""
        guard = self._details_guard()
        if guard:
            return guard
        messages = []
        updates = [
            (amount, self.form.set_amount),
            (term_months, self.form.set_term),
            (purpose, self.form.set_purpose),
            (needs_guarantors, self.form.set_needs_guarantors),
        ]
        for value, setter in updates:
            if value is None:
                continue
            result = setter(value)
            if not result.ok:
                return result.model_copy(update={"step": self.step})
            if result.message:
                messages.append(result.message)
        return CommandResult.success("; ".join(messages) or None, step=self.step)

    def attach_document(self, document: SupportingDocument | None) -> CommandResult:
        guard = self._details_guard()
        if guard:
            return guard
        return self.form.attach_document(document)

    async def _complete_details(self) -> CommandResult:
        if not self._eligibility_passed():
            return _navigation("not_eligible", MSG_NOT_ELIGIBLE, self.step)
        result = await self.form.submit(self.backend, self.session)
        if not result.ok:
            return result.model_copy(update={"step": self.step})
        if not self.form.needs_guarantors:
            self._finalize(guarantor_count=0)
            return CommandResult.success(result.message, step=self.step)
        if self.allocation is None:
            self.allocation = AllocationEngine(self._epsilon)
        self._move(WorkflowStep.GUARANTORS)
        await self.refresh_candidates()
        return CommandResult.success(result.message, step=self.step)

    # -- guarantors -----------------------------------------------------------

    def _guarantors_guard(self) -> CommandResult | None:
        if self.step is not WorkflowStep.GUARANTORS or self.allocation is None:
            return _navigation("wrong_step", "Guarantors can only be changed on the guarantors step", self.step)
        if self.submitting:
            return _navigation("submission_in_progress", MSG_SUBMISSION_IN_PROGRESS, self.step)
        return None

    async def refresh_candidates(self) -> CommandResult:
        if self.step is not WorkflowStep.GUARANTORS or self.form is None or self.form.amount is None:
            return _navigation("wrong_step", "Guarantors are chosen on the guarantors step", self.step)
        try:
            await self.pool.refresh(self.form.amount)
        except SaccoApiError as e:
            self.candidates_error = e.message
            return CommandResult.failure("transport", "guarantors_unavailable", e.message, step=self.step)
        self.candidates_error = None
        if not self.available_candidates():
            return CommandResult.success("No eligible guarantors for this amount", step=self.step)
        return CommandResult.success(step=self.step)

    def available_candidates(self):
        pledged = self.allocation.pledged_ids if self.allocation else set()
        return self.pool.available(pledged)

    def add_guarantor(self, guarantor_id: str) -> CommandResult:
        guard = self._guarantors_guard()
        if guard:
            return guard
        candidate = self.allocation.get(guarantor_id) or self.pool.find(guarantor_id)
        if candidate is None:
            return CommandResult.failure(
                "business_rule", "unknown_candidate", "That member cannot guarantee this loan", step=self.step
            )
        return self.allocation.add(candidate).model_copy(update={"step": self.step})

    def remove_guarantor(self, guarantor_id: str) -> CommandResult:
        guard = self._guarantors_guard()
        if guard:
            return guard
        return self.allocation.remove(guarantor_id).model_copy(update={"step": self.step})

    def set_percentage(self, guarantor_id: str, percentage: float) -> CommandResult:
        guard = self._guarantors_guard()
        if guard:
            return guard
        return self.allocation.set_percentage(guarantor_id, percentage).model_copy(update={"step": self.step})

    async def _submit_guarantors(self, message: str | None = None) -> CommandResult:
        guard = self._guarantors_guard()
        if guard:
            return guard
        if not self._details_passed():
            return _navigation("step_locked", "The application has not been created", self.step)
        if not self.allocation.can_submit:
            total = round(self.allocation.total_percentage, 2)
            return CommandResult.failure(
                "business_rule",
                "allocation_incomplete",
                f"Guarantee percentages must add up to 100% (currently {total:g}%)",
                step=self.step,
            )
        self.submitting = True
        try:
            report = await self.orchestrator.submit(
                self.application_id, self.allocation.pledges, self.form.amount, message
            )
        finally:
            self.submitting = False
        return self._settle(report)

    def _report_matches_allocation(self) -> bool:
        sent = {r.guarantor_id: r.percentage for r in self.last_submission.results}
        current = {p.id: p.guarantee_percentage for p in self.allocation.pledges}
        return sent == current

    async def retry_failed(self, message: str | None = None) -> CommandResult:
        """Re-send only the guarantee requests that failed last time."""
        guard = self._guarantors_guard()
        if guard:
            return guard
        if self.last_submission is None or not self.last_submission.failed:
            return _navigation("nothing_to_retry", "There are no failed guarantee requests to retry", self.step)
        if not self._report_matches_allocation():
            return CommandResult.failure(
                "business_rule",
                "allocation_changed",
                "Your guarantors changed since the last attempt; submit the full request again",
                step=self.step,
            )
        self.submitting = True
        try:
            report = await self.orchestrator.retry_failed(
                self.last_submission, self.allocation.pledges, self.form.amount, message
            )
        finally:
            self.submitting = False
        return self._settle(report)

    def _settle(self, report: SubmissionReport) -> CommandResult:
        self.last_submission = report
        if report.status != "submitted":
            return CommandResult.failure("transport", report.status, report.summary(), step=self.step)
        if self.step is not WorkflowStep.GUARANTORS:
            # member navigated away while the requests were in flight
            logger.warning("Workflow %s: submission completed off the guarantors step", self.id)
            return CommandResult.success(report.summary(), step=self.step)
        self._finalize(guarantor_count=len(report.results))
        return CommandResult.success(report.summary(), step=self.step)

    # -- rendering ------------------------------------------------------------

    def state(self) -> WorkflowState:
        on_guarantors = self.step is WorkflowStep.GUARANTORS
        return WorkflowState(
            id=self.id,
            step=self.step,
            step_name=self.step.name,
            furthest_step=self.furthest_step,
            can_go_back=self.step not in (WorkflowStep.ELIGIBILITY, WorkflowStep.CONFIRMATION),
            submitting=self.submitting,
            eligibility=self.eligibility,
            details=self.form.state() if self.form else None,
            application_id=self.application_id,
            allocation=self.allocation.state() if self.allocation else None,
            candidates=self.available_candidates() if on_guarantors else [],
            candidates_error=self.candidates_error if on_guarantors else None,
            last_submission=SubmissionReportResponse.from_report(self.last_submission) if self.last_submission else None,
            submitted=self.submitted,
        )
