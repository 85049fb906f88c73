from __future__ import annotations

import logging
from typing import Iterable

from schemas.guarantor import GuarantorCandidate
from schemas.session import MemberSession
from services.sacco_client import SaccoBackend

logger = logging.getLogger(__name__)


class GuarantorPoolResolver:
    """
    Members able to guarantee a given loan amount.
    The pool is cached per amount: refreshing with an unchanged amount makes no network call.
    """

    def __init__(self, backend: SaccoBackend, session: MemberSession):
        self.backend = backend
        self.session = session
        self.amount: float | None = None
        self._candidates: list[GuarantorCandidate] | None = None

    @property
    def loaded(self) -> bool:
        return self._candidates is not None

    async def refresh(self, amount: float) -> list[GuarantorCandidate]:
        """Fetch candidates for ``amount``. SaccoApiError propagates and leaves the previous pool in place."""
        if self._candidates is not None and amount == self.amount:
            return list(self._candidates)
        candidates = await self.backend.list_eligible_guarantors(self.session, amount)
        # first occurrence wins if the backend repeats a member
        unique: list[GuarantorCandidate] = []
        seen: set[str] = set()
        for c in candidates:
            if c.id not in seen:
                seen.add(c.id)
                unique.append(c)
        self.amount = amount
        self._candidates = unique
        logger.debug("Loaded %d guarantor candidate(s) for KES %.2f", len(unique), amount)
        return list(unique)

    def available(self, exclude_ids: Iterable[str] = ()) -> list[GuarantorCandidate]:
        excluded = set(exclude_ids)
        return [c for c in self._candidates or [] if c.id not in excluded]

    def find(self, candidate_id: str) -> GuarantorCandidate | None:
        return next((c for c in self._candidates or [] if c.id == candidate_id), None)
