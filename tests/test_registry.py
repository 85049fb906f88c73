"""
Tests for the workflow registry: per-member visibility and release of idle,
confirmed and excess workflows.
"""
import unittest

from schemas.session import MemberSession
from schemas.workflow import WorkflowStep
from services.registry import WorkflowRegistry
from tests.fakes import SESSION, FakeSaccoBackend


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


class TestWorkflowRegistry(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.clock = FakeClock()
        self.registry = WorkflowRegistry(idle_ttl=600, confirmed_ttl=60, max_workflows=3, clock=self.clock)

    async def _confirmed(self):
        workflow = self.registry.create(FakeSaccoBackend(), SESSION)
        await workflow.start()
        await workflow.next()
        workflow.update_details(amount=5_000, purpose="School fees")
        self.assertTrue((await workflow.next()).ok)
        self.assertEqual(workflow.step, WorkflowStep.CONFIRMATION)
        return workflow

    def test_only_owner_sees_workflow(self):
        workflow = self.registry.create(FakeSaccoBackend(), SESSION)
        self.assertIs(self.registry.get(workflow.id, SESSION), workflow)
        self.assertIsNone(self.registry.get(workflow.id, MemberSession(access_token="other")))

    async def test_confirmed_workflow_released(self):
        workflow = await self._confirmed()
        self.clock.now += 30
        self.assertIs(self.registry.get(workflow.id, SESSION), workflow)

        self.clock.now += 61
        self.assertIsNone(self.registry.get(workflow.id, SESSION))
        self.assertEqual(len(self.registry), 0)

    def test_idle_workflow_released(self):
        workflow = self.registry.create(FakeSaccoBackend(), SESSION)
        self.clock.now += 599
        self.assertIs(self.registry.get(workflow.id, SESSION), workflow)

        # access resets the idle timer
        self.clock.now += 599
        self.assertEqual(self.registry.prune(), 0)
        self.clock.now += 1
        self.assertEqual(self.registry.prune(), 1)
        self.assertIsNone(self.registry.get(workflow.id, SESSION))

    def test_least_recently_used_evicted_over_limit(self):
        first = self.registry.create(FakeSaccoBackend(), SESSION)
        self.clock.now += 1
        second = self.registry.create(FakeSaccoBackend(), SESSION)
        self.clock.now += 1
        third = self.registry.create(FakeSaccoBackend(), SESSION)
        self.clock.now += 1
        self.registry.get(first.id, SESSION)

        fourth = self.registry.create(FakeSaccoBackend(), SESSION)
        self.assertEqual(len(self.registry), 3)
        self.assertIsNone(self.registry.get(second.id, SESSION))
        for workflow in (first, third, fourth):
            self.assertIs(self.registry.get(workflow.id, SESSION), workflow)

    def test_discard(self):
        workflow = self.registry.create(FakeSaccoBackend(), SESSION)
        self.registry.discard(workflow.id)
        self.assertEqual(len(self.registry), 0)
        self.assertEqual(self.registry.prune(), 0)


if __name__ == "__main__":
    unittest.main()
