"""
Sends one guarantee request per pledged guarantor, all at once, and waits for every
request to settle before reporting. There is no server-side transaction across the
requests and no way to cancel one, so a partial failure is reported guarantor by
guarantor and nothing is rolled back.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Iterable

from schemas.guarantor import GuaranteeRequestResult, GuarantorPledge
from schemas.session import MemberSession
from schemas.workflow import SubmissionReport
from services.sacco_client import SaccoApiError, SaccoBackend

logger = logging.getLogger(__name__)


def default_request_message(application_id: str, percentage: float, loan_amount: float | None) -> str:
    share = f"{round(percentage, 2):g}%"
    if loan_amount:
        covered = loan_amount * percentage / 100
        return (
            f"You have been asked to guarantee {share} (KES {covered:,.2f}) of a KES {loan_amount:,.2f} "
            f"loan, application {application_id}."
        )
    return f"You have been asked to guarantee {share} of loan application {application_id}."


class SubmissionOrchestrator:
    def __init__(self, backend: SaccoBackend, session: MemberSession):
        self.backend = backend
        self.session = session

    async def _send(
        self,
        application_id: str,
        pledge: GuarantorPledge,
        loan_amount: float | None,
        message: str | None,
    ) -> GuaranteeRequestResult:
        text = message or default_request_message(application_id, pledge.guarantee_percentage, loan_amount)
        try:
            ack = await self.backend.create_guarantor_request(
                self.session,
                application_id,
                pledge.id,
                pledge.guarantee_percentage,
                text,
            )
        except SaccoApiError as e:
            return GuaranteeRequestResult(
                guarantor_id=pledge.id,
                full_name=pledge.full_name,
                percentage=pledge.guarantee_percentage,
                ok=False,
                error=e.message,
            )
        request_id = ack.get("id") if ack else None
        return GuaranteeRequestResult(
            guarantor_id=pledge.id,
            full_name=pledge.full_name,
            percentage=pledge.guarantee_percentage,
            ok=True,
            request_id=str(request_id) if request_id is not None else None,
        )

    async def submit(
        self,
        application_id: str,
        pledges: Iterable[GuarantorPledge],
        loan_amount: float | None = None,
        message: str | None = None,
    ) -> SubmissionReport:
        pledges = list(pledges)
        outcomes = await asyncio.gather(
            *(self._send(application_id, p, loan_amount, message) for p in pledges),
            return_exceptions=True,
        )
        # every pledge gets a result, so requests that did go out are never hidden
        results = []
        for pledge, outcome in zip(pledges, outcomes):
            if isinstance(outcome, BaseException) and not isinstance(outcome, Exception):
                raise outcome
            if isinstance(outcome, Exception):
                logger.error(
                    "Application %s: unexpected error requesting guarantee from %s",
                    application_id, pledge.id, exc_info=outcome,
                )
                outcome = GuaranteeRequestResult(
                    guarantor_id=pledge.id,
                    full_name=pledge.full_name,
                    percentage=pledge.guarantee_percentage,
                    ok=False,
                    error=f"Unexpected error: {outcome}",
                )
            results.append(outcome)
        report = SubmissionReport(application_id=application_id, results=results)
        self._log(report)
        return report

    async def retry_failed(
        self,
        report: SubmissionReport,
        pledges: Iterable[GuarantorPledge],
        loan_amount: float | None = None,
        message: str | None = None,
    ) -> SubmissionReport:
        """Re-send only the requests that failed in ``report``; succeeded guarantors are not asked again."""
        failed_ids = {r.guarantor_id for r in report.failed}
        retry = [p for p in pledges if p.id in failed_ids]
        retried = await self.submit(report.application_id, retry, loan_amount, message)
        by_id = {r.guarantor_id: r for r in retried.results}
        merged = [by_id.get(r.guarantor_id, r) for r in report.results]
        return SubmissionReport(application_id=report.application_id, results=merged)

    def _log(self, report: SubmissionReport) -> None:
        if report.status == "submitted":
            logger.info("Application %s: %d guarantee request(s) sent", report.application_id, len(report.results))
            return
        for r in report.failed:
            logger.warning(
                "Application %s: guarantee request to %s (%s) failed: %s",
                report.application_id, r.full_name, r.guarantor_id, r.error,
            )
        logger.warning("Application %s: %s", report.application_id, report.status)
