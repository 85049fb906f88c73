"""
Tests for the eligibility gate: a failed check is "unavailable", never "not eligible",
and refusals are broken down into individual issues.
"""
import unittest

import httpx

from schemas.eligibility import EligibilityStatus
from services.eligibility import MSG_ELIGIBILITY_UNAVAILABLE, check_eligibility, disqualifying_issues
from services.sacco_client import SaccoApiError, SaccoClient
from tests.fakes import SESSION, FakeSaccoBackend, eligible_snapshot


class TestDisqualifyingIssues(unittest.TestCase):
    def test_each_condition_reported_separately(self):
        snapshot = eligible_snapshot(
            eligible=False,
            reason="Multiple issues",
            is_verified=False,
            is_on_hold=True,
            share_capital_complete=False,
            has_active_loans=True,
            deposits=10_000,
            outstanding_loans=30_000,
        )
        codes = [i.code for i in disqualifying_issues(snapshot, outstanding_loan_ratio=3)]
        self.assertEqual(codes, ["verification", "on_hold", "share_capital", "outstanding_loans"])

    def test_outstanding_loans_below_ratio_not_reported(self):
        snapshot = eligible_snapshot(eligible=False, has_active_loans=True, deposits=10_000, outstanding_loans=29_999)
        codes = [i.code for i in disqualifying_issues(snapshot, outstanding_loan_ratio=3)]
        self.assertNotIn("outstanding_loans", codes)

    def test_server_reason_used_when_no_condition_matches(self):
        snapshot = eligible_snapshot(eligible=False, reason="Membership is less than 6 months old")
        issues = disqualifying_issues(snapshot)
        self.assertEqual(len(issues), 1)
        self.assertEqual(issues[0].code, "other")
        self.assertEqual(issues[0].message, "Membership is less than 6 months old")


class TestCheckEligibility(unittest.IsolatedAsyncioTestCase):
    async def test_eligible(self):
        result = await check_eligibility(FakeSaccoBackend(), SESSION)
        self.assertEqual(result.status, EligibilityStatus.ELIGIBLE)
        self.assertTrue(result.eligible)
        self.assertEqual(result.snapshot.max_loan_amount, 150_000)
        self.assertEqual(result.snapshot.total_deposits, 50_000)
        self.assertEqual(result.issues, [])

    async def test_not_eligible(self):
        backend = FakeSaccoBackend(snapshot=eligible_snapshot(eligible=False, is_verified=False, reason="KYC pending"))
        result = await check_eligibility(backend, SESSION)
        self.assertEqual(result.status, EligibilityStatus.NOT_ELIGIBLE)
        self.assertFalse(result.eligible)
        self.assertEqual([i.code for i in result.issues], ["verification"])
        self.assertEqual(result.snapshot.reason, "KYC pending")

    async def test_fetch_failure_is_unavailable_not_ineligible(self):
        backend = FakeSaccoBackend()
        backend.eligibility_error = SaccoApiError("Error 500", status_code=500)
        result = await check_eligibility(backend, SESSION)
        self.assertEqual(result.status, EligibilityStatus.UNAVAILABLE)
        self.assertFalse(result.eligible)
        self.assertIsNone(result.snapshot)
        self.assertEqual(result.issues, [])
        self.assertEqual(result.error, MSG_ELIGIBILITY_UNAVAILABLE)

    async def test_malformed_payload_is_unavailable(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(200, json={"max_loan_amount": 1000}))
        async with SaccoClient("http://sacco.test/api", transport=transport) as client:
            result = await check_eligibility(client, SESSION)
        self.assertEqual(result.status, EligibilityStatus.UNAVAILABLE)
        self.assertFalse(result.eligible)
        self.assertEqual(result.error, MSG_ELIGIBILITY_UNAVAILABLE)


if __name__ == "__main__":
    unittest.main()
