"""
Eligibility gate: fetches the member's eligibility snapshot and explains a refusal
one condition at a time, since each condition has its own corrective action.
A failed fetch is reported as "unavailable", never as "not eligible".
"""
from __future__ import annotations

import logging

from config import settings
from schemas.eligibility import EligibilityIssue, EligibilityResult, EligibilitySnapshot, EligibilityStatus
from schemas.session import MemberSession
from services.sacco_client import SaccoApiError, SaccoBackend

logger = logging.getLogger(__name__)

MSG_ELIGIBILITY_UNAVAILABLE = "Could not check loan eligibility. Please try again later."


def disqualifying_issues(snapshot: EligibilitySnapshot, outstanding_loan_ratio: float | None = None) -> list[EligibilityIssue]:
    """List every condition that blocks a loan for this snapshot."""
    ratio = settings.outstanding_loan_ratio if outstanding_loan_ratio is None else outstanding_loan_ratio
    issues: list[EligibilityIssue] = []

    if not snapshot.is_verified:
        issues.append(
            EligibilityIssue(
                code="verification",
                label="KYC Verification",
                message="Your identity documents have not been verified.",
                action="Upload your KYC documents and wait for verification.",
            )
        )
    if snapshot.is_on_hold:
        issues.append(
            EligibilityIssue(
                code="on_hold",
                label="Account Status",
                message="Your account is on hold.",
                action="Contact the SACCO office to have the hold lifted.",
            )
        )
    if not snapshot.share_capital_complete:
        issues.append(
            EligibilityIssue(
                code="share_capital",
                label="Share Capital",
                message="Your share capital contribution is not complete.",
                action="Complete your share capital contribution.",
            )
        )
    limit = snapshot.total_deposits * ratio
    if snapshot.has_active_loans and snapshot.outstanding_loans >= limit:
        issues.append(
            EligibilityIssue(
                code="outstanding_loans",
                label="Outstanding Loans",
                message=(
                    f"Outstanding loans of KES {snapshot.outstanding_loans:,.2f} reach the limit of "
                    f"{ratio:g}x your deposits (KES {limit:,.2f})."
                ),
                action="Repay part of your outstanding loans or increase your deposits.",
            )
        )

    if not issues and not snapshot.eligible:
        issues.append(
            EligibilityIssue(
                code="other",
                label="Eligibility Issue",
                message=snapshot.reason or "You are not currently eligible for a loan.",
                action="Review your profile or contact the SACCO office.",
            )
        )
    return issues


async def check_eligibility(
    backend: SaccoBackend,
    session: MemberSession,
    outstanding_loan_ratio: float | None = None,
) -> EligibilityResult:
    try:
        snapshot = await backend.check_eligibility(session)
    except SaccoApiError as e:
        logger.warning("Eligibility check failed for member %s: %s", session.member_id, e.message)
        return EligibilityResult(status=EligibilityStatus.UNAVAILABLE, error=MSG_ELIGIBILITY_UNAVAILABLE)

    if snapshot.eligible:
        return EligibilityResult(status=EligibilityStatus.ELIGIBLE, snapshot=snapshot)

    issues = disqualifying_issues(snapshot, outstanding_loan_ratio)
    logger.info("Member %s not eligible: %s", session.member_id, ", ".join(i.code for i in issues) or "unspecified")
    return EligibilityResult(status=EligibilityStatus.NOT_ELIGIBLE, snapshot=snapshot, issues=issues)
