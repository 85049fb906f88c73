"""
In-memory registry of live workflows. Nothing is persisted; a restart drops every workflow.

Workflows are released when idle for ``idle_ttl`` seconds, shortly after confirmation
(``confirmed_ttl``), or oldest-first once more than ``max_workflows`` are held.
"""
from __future__ import annotations

import logging
import time
from typing import Callable

from config import settings
from schemas.session import MemberSession
from schemas.workflow import ApplicationSubmitted
from services.sacco_client import SaccoBackend
from services.workflow import LoanApplicationWorkflow

logger = logging.getLogger(__name__)


class WorkflowRegistry:
    def __init__(
        self,
        idle_ttl: float | None = None,
        confirmed_ttl: float | None = None,
        max_workflows: int | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.idle_ttl = settings.workflow_idle_ttl_seconds if idle_ttl is None else idle_ttl
        self.confirmed_ttl = settings.workflow_confirmed_ttl_seconds if confirmed_ttl is None else confirmed_ttl
        self.max_workflows = settings.max_workflows if max_workflows is None else max_workflows
        self._clock = clock
        self._workflows: dict[str, LoanApplicationWorkflow] = {}
        # least recently used first
        self._last_seen: dict[str, float] = {}

    def __len__(self) -> int:
        return len(self._workflows)

    def _touch(self, workflow_id: str) -> None:
        self._last_seen.pop(workflow_id, None)
        self._last_seen[workflow_id] = self._clock()

    def create(self, backend: SaccoBackend, session: MemberSession) -> LoanApplicationWorkflow:
        self.prune()
        workflow = LoanApplicationWorkflow(backend, session)
        workflow.on_submitted(self._log_submitted)
        self._workflows[workflow.id] = workflow
        self._touch(workflow.id)
        while len(self._workflows) > self.max_workflows:
            oldest = next(iter(self._last_seen))
            logger.warning("Workflow limit %d reached; releasing %s", self.max_workflows, oldest)
            self.discard(oldest)
        return workflow

    def get(self, workflow_id: str, session: MemberSession) -> LoanApplicationWorkflow | None:
        """Return the workflow only to the session that created it."""
        self.prune()
        workflow = self._workflows.get(workflow_id)
        if workflow is None or workflow.session.access_token != session.access_token:
            return None
        self._touch(workflow_id)
        return workflow

    def discard(self, workflow_id: str) -> None:
        self._workflows.pop(workflow_id, None)
        self._last_seen.pop(workflow_id, None)

    def prune(self) -> int:
        """Release expired workflows; returns how many were dropped."""
        now = self._clock()
        expired = [
            workflow_id
            for workflow_id, workflow in self._workflows.items()
            if now - self._last_seen[workflow_id] >= (self.confirmed_ttl if workflow.submitted else self.idle_ttl)
        ]
        for workflow_id in expired:
            self.discard(workflow_id)
        if expired:
            logger.info("Released %d expired workflow(s)", len(expired))
        return len(expired)

    @staticmethod
    def _log_submitted(event: ApplicationSubmitted) -> None:
        logger.info(
            "Application %s submitted with %d guarantor(s)", event.application_id, event.guarantor_count
        )


registry = WorkflowRegistry()
