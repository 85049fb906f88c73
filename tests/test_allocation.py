"""
Tests for the allocation engine: default pledges, ceilings, the 100% total and submit readiness.
Run from project root: python -m pytest tests/test_allocation.py -v
"""
import random
import unittest

from services.allocation import AllocationEngine
from tests.fakes import candidate

EPSILON = 1e-6


def _snapshot(engine):
    return {p.id: p.guarantee_percentage for p in engine.pledges}


class TestAllocationEngine(unittest.TestCase):
    def test_default_percentage_is_guarantor_ceiling(self):
        """Empty allocation + guarantor with 60% ceiling -> pledged 60%."""
        engine = AllocationEngine()
        result = engine.add(candidate("A", "Alice Wanjiru", 60))
        self.assertTrue(result.ok)
        self.assertEqual(engine.get("A").guarantee_percentage, 60)
        self.assertEqual(engine.total_percentage, 60)

    def test_default_percentage_capped_by_headroom(self):
        """Total already at 70% -> next guarantor (ceiling 50%) gets the remaining 30%."""
        engine = AllocationEngine()
        engine.add(candidate("A", "Alice Wanjiru", 70))
        engine.add(candidate("B", "Brian Otieno", 50))
        self.assertEqual(engine.get("B").guarantee_percentage, 30)
        self.assertEqual(engine.total_percentage, 100)

    def test_set_percentage_above_ceiling_rejected(self):
        engine = AllocationEngine()
        engine.add(candidate("A", "Alice Wanjiru", 60))
        engine.set_percentage("A", 45)
        result = engine.set_percentage("A", 80)
        self.assertFalse(result.ok)
        self.assertEqual(result.code, "exceeds_guarantor_cap")
        self.assertIn("60%", result.message)
        self.assertEqual(engine.get("A").guarantee_percentage, 45)

    def test_set_percentage_above_total_rejected(self):
        """Own ceiling allows it but the total would pass 100% -> different error naming the headroom."""
        engine = AllocationEngine()
        engine.add(candidate("A", "Alice Wanjiru", 60))
        engine.add(candidate("B", "Brian Otieno", 50))
        self.assertEqual(engine.get("B").guarantee_percentage, 40)
        result = engine.set_percentage("B", 50)
        self.assertFalse(result.ok)
        self.assertEqual(result.code, "exceeds_total_cap")
        self.assertIn("40%", result.message)
        self.assertEqual(engine.get("B").guarantee_percentage, 40)

    def test_non_positive_percentage_rejected(self):
        engine = AllocationEngine()
        engine.add(candidate("A", "Alice Wanjiru", 60))
        for value in (0, -5, "abc"):
            result = engine.set_percentage("A", value)
            self.assertFalse(result.ok)
            self.assertEqual(result.code, "invalid_percentage")
        self.assertEqual(engine.get("A").guarantee_percentage, 60)

    def test_exact_completion_enables_submit(self):
        engine = AllocationEngine()
        engine.add(candidate("A", "Alice Wanjiru", 60))
        engine.add(candidate("B", "Brian Otieno", 60))
        self.assertEqual(engine.total_percentage, 100)
        self.assertTrue(engine.can_submit)

        self.assertTrue(engine.set_percentage("B", 39.99).ok)
        self.assertAlmostEqual(engine.total_percentage, 99.99)
        self.assertFalse(engine.can_submit)

    def test_decimal_splits_reach_exactly_100(self):
        engine = AllocationEngine()
        for cid, name in (("A", "Alice"), ("B", "Brian"), ("C", "Carol")):
            engine.add(candidate(cid, name, 40))
        self.assertTrue(engine.set_percentage("A", 33.33).ok)
        self.assertTrue(engine.set_percentage("B", 33.33).ok)
        self.assertTrue(engine.set_percentage("C", 33.34).ok)
        self.assertTrue(engine.can_submit)

    def test_empty_allocation_cannot_submit(self):
        self.assertFalse(AllocationEngine().can_submit)

    def test_duplicate_guarantor_rejected(self):
        engine = AllocationEngine()
        engine.add(candidate("A", "Alice Wanjiru", 30))
        result = engine.add(candidate("A", "Alice Wanjiru", 30))
        self.assertFalse(result.ok)
        self.assertEqual(result.code, "duplicate_guarantor")
        self.assertEqual(len(engine.pledges), 1)
        self.assertEqual(engine.total_percentage, 30)

    def test_add_when_fully_allocated_rejected(self):
        engine = AllocationEngine()
        engine.add(candidate("A", "Alice Wanjiru", 100))
        result = engine.add(candidate("B", "Brian Otieno", 50))
        self.assertFalse(result.ok)
        self.assertEqual(result.code, "allocation_full")
        self.assertIsNone(engine.get("B"))

    def test_guarantor_without_capacity_rejected(self):
        engine = AllocationEngine()
        result = engine.add(candidate("Z", "Zawadi Achieng", 0))
        self.assertFalse(result.ok)
        self.assertEqual(result.code, "no_guarantee_capacity")
        self.assertEqual(engine.pledges, [])

    def test_remove_does_not_rebalance(self):
        engine = AllocationEngine()
        engine.add(candidate("A", "Alice Wanjiru", 60))
        engine.add(candidate("B", "Brian Otieno", 60))
        self.assertTrue(engine.remove("A").ok)
        self.assertEqual(_snapshot(engine), {"B": 40})
        self.assertFalse(engine.can_submit)
        self.assertEqual(engine.remaining_percentage, 60)

    def test_remove_unknown_guarantor(self):
        result = AllocationEngine().remove("nobody")
        self.assertFalse(result.ok)
        self.assertEqual(result.code, "unknown_guarantor")

    def test_state_reflects_pledges(self):
        engine = AllocationEngine()
        engine.add(candidate("A", "Alice Wanjiru", 60))
        state = engine.state()
        self.assertEqual(len(state.pledges), 1)
        self.assertEqual(state.total_percentage, 60)
        self.assertEqual(state.remaining_percentage, 40)
        self.assertFalse(state.can_submit)
        # rendered pledges are copies
        state.pledges[0].guarantee_percentage = 1
        self.assertEqual(engine.get("A").guarantee_percentage, 60)

    def test_random_command_sequences_keep_invariants(self):
        rng = random.Random(7)
        pool = [candidate(f"G{i}", f"Guarantor {i}", rng.choice([5, 12.5, 25, 40, 50, 60, 100])) for i in range(8)]
        engine = AllocationEngine(EPSILON)
        for _ in range(500):
            before = _snapshot(engine)
            op = rng.choice(["add", "remove", "set", "set"])
            if op == "add":
                result = engine.add(rng.choice(pool))
            elif op == "remove":
                result = engine.remove(rng.choice(pool).id)
            else:
                result = engine.set_percentage(rng.choice(pool).id, round(rng.uniform(-10, 120), 2))

            if not result.ok:
                self.assertEqual(_snapshot(engine), before)
            self.assertLessEqual(engine.total_percentage, 100 + EPSILON)
            for pledge in engine.pledges:
                self.assertGreater(pledge.guarantee_percentage, 0)
                self.assertLessEqual(pledge.guarantee_percentage, pledge.maximum_percentage)
            expected_ready = bool(engine.pledges) and abs(engine.total_percentage - 100) < EPSILON
            self.assertEqual(engine.can_submit, expected_ready)


if __name__ == "__main__":
    unittest.main()
