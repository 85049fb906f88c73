"""
Guarantor allocation: the set of pledged guarantors and their percentages of the loan.

Invariants kept after every command:
  - each pledge is in (0, guarantor's maximum_percentage]
  - the pledges sum to at most 100 (within epsilon)
A rejected command leaves every pledge untouched. Submission is allowed only when
the pledges sum to 100 within epsilon.
"""
from __future__ import annotations

from config import settings
from schemas.guarantor import AllocationState, GuarantorCandidate, GuarantorPledge
from schemas.workflow import CommandResult

FULL_COVERAGE = 100.0


def _fmt(value: float) -> str:
    return f"{round(value, 2):g}"


class AllocationEngine:
    def __init__(self, epsilon: float | None = None):
        self.epsilon = settings.allocation_epsilon if epsilon is None else epsilon
        self._pledges: dict[str, GuarantorPledge] = {}

    @property
    def pledges(self) -> list[GuarantorPledge]:
        return list(self._pledges.values())

    @property
    def pledged_ids(self) -> set[str]:
        return set(self._pledges)

    @property
    def total_percentage(self) -> float:
        return sum(p.guarantee_percentage for p in self._pledges.values())

    @property
    def remaining_percentage(self) -> float:
        return max(0.0, FULL_COVERAGE - self.total_percentage)

    @property
    def can_submit(self) -> bool:
        return bool(self._pledges) and abs(self.total_percentage - FULL_COVERAGE) < self.epsilon

    def get(self, guarantor_id: str) -> GuarantorPledge | None:
        return self._pledges.get(guarantor_id)

    def add(self, candidate: GuarantorCandidate) -> CommandResult:
        """Pledge a candidate for as much as their ceiling and the remaining headroom allow."""
        if candidate.id in self._pledges:
            return CommandResult.failure(
                "business_rule",
                "duplicate_guarantor",
                f"{candidate.full_name} is already one of your guarantors",
            )
        if candidate.maximum_percentage <= 0:
            return CommandResult.failure(
                "business_rule",
                "no_guarantee_capacity",
                f"{candidate.full_name} cannot guarantee any part of this loan",
            )
        headroom = FULL_COVERAGE - self.total_percentage
        if headroom < self.epsilon:
            return CommandResult.failure(
                "business_rule",
                "allocation_full",
                "Your guarantors already cover 100% of the loan. Reduce a pledge before adding another guarantor",
            )
        percentage = min(candidate.maximum_percentage, headroom)
        self._pledges[candidate.id] = GuarantorPledge.from_candidate(candidate, percentage)
        return CommandResult.success(f"{candidate.full_name} added with {_fmt(percentage)}%")

    def remove(self, guarantor_id: str) -> CommandResult:
        """Drop a pledge. The remaining pledges keep their percentages."""
        pledge = self._pledges.pop(guarantor_id, None)
        if pledge is None:
            return CommandResult.failure("business_rule", "unknown_guarantor", "That member is not one of your guarantors")
        return CommandResult.success(f"{pledge.full_name} removed")

    def set_percentage(self, guarantor_id: str, value: float) -> CommandResult:
        pledge = self._pledges.get(guarantor_id)
        if pledge is None:
            return CommandResult.failure("business_rule", "unknown_guarantor", "That member is not one of your guarantors")
        try:
            value = float(value)
        except (TypeError, ValueError):
            return CommandResult.failure("validation", "invalid_percentage", "Enter a percentage greater than zero")
        if not value > 0:
            return CommandResult.failure("validation", "invalid_percentage", "Enter a percentage greater than zero")
        if value > pledge.maximum_percentage + self.epsilon:
            return CommandResult.failure(
                "business_rule",
                "exceeds_guarantor_cap",
                f"{pledge.full_name} can guarantee at most {_fmt(pledge.maximum_percentage)}% of this loan",
            )
        others = self.total_percentage - pledge.guarantee_percentage
        if others + value > FULL_COVERAGE + self.epsilon:
            return CommandResult.failure(
                "business_rule",
                "exceeds_total_cap",
                f"Total guarantee cannot exceed 100%. At most {_fmt(FULL_COVERAGE - others)}% "
                f"is left for {pledge.full_name}",
            )
        pledge.guarantee_percentage = min(value, pledge.maximum_percentage)
        return CommandResult.success()

    def state(self) -> AllocationState:
        return AllocationState(
            pledges=[p.model_copy() for p in self._pledges.values()],
            total_percentage=self.total_percentage,
            remaining_percentage=self.remaining_percentage,
            can_submit=self.can_submit,
        )
