"""In-memory SACCO backend used by the workflow tests."""
import asyncio

from schemas.eligibility import EligibilitySnapshot
from schemas.guarantor import GuarantorCandidate
from schemas.session import MemberSession
from services.sacco_client import SaccoApiError

SESSION = MemberSession(access_token="token-123", member_id="M001")


def eligible_snapshot(**overrides) -> EligibilitySnapshot:
    data = {
        "eligible": True,
        "max_loan_amount": 150_000,
        "multiplier": 3,
        "deposits": 50_000,
        "is_verified": True,
        "is_on_hold": False,
        "outstanding_loans": 0,
        "share_capital_complete": True,
        "has_active_loans": False,
    }
    data.update(overrides)
    return EligibilitySnapshot.model_validate(data)


def candidate(candidate_id: str, name: str, maximum_percentage: float, available: float = 100_000) -> GuarantorCandidate:
    return GuarantorCandidate(
        id=candidate_id,
        full_name=name,
        contact=f"{candidate_id.lower()}@example.com",
        available_guarantee_amount=available,
        maximum_percentage=maximum_percentage,
    )


class FakeSaccoBackend:
    def __init__(self, snapshot=None, candidates=None, application_id="LA-1001"):
        self.snapshot = snapshot or eligible_snapshot()
        self.candidates = list(candidates or [])
        self.application_id = application_id
        self.eligibility_error: SaccoApiError | None = None
        self.guarantors_error: SaccoApiError | None = None
        self.application_error: SaccoApiError | None = None
        self.failing_guarantors: set[str] = set()
        self.eligibility_calls = 0
        self.guarantor_queries: list[float] = []
        self.drafts = []
        self.request_attempts: list[tuple[str, str, float]] = []
        self.created_requests: list[tuple[str, str, float]] = []
        self.messages: list[str] = []

    async def check_eligibility(self, session):
        self.eligibility_calls += 1
        if self.eligibility_error:
            raise self.eligibility_error
        return self.snapshot

    async def list_eligible_guarantors(self, session, amount):
        self.guarantor_queries.append(amount)
        if self.guarantors_error:
            raise self.guarantors_error
        return list(self.candidates)

    async def create_loan_application(self, session, draft):
        if self.application_error:
            raise self.application_error
        self.drafts.append(draft)
        return self.application_id

    async def create_guarantor_request(self, session, application_id, guarantor_id, percentage, message):
        await asyncio.sleep(0)
        self.request_attempts.append((application_id, guarantor_id, percentage))
        self.messages.append(message)
        if guarantor_id in self.failing_guarantors:
            raise SaccoApiError(f"Could not notify guarantor {guarantor_id}", status_code=503)
        self.created_requests.append((application_id, guarantor_id, percentage))
        return {"id": f"GR-{guarantor_id}"}
