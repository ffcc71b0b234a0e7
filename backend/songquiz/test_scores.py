from __future__ import annotations

import random
from unittest import TestCase

from .scores import ScoreLedger


class ScoreLedgerTests(TestCase):
    def test_credit_starts_from_zero(self):
        ledger = ScoreLedger()
        self.assertTrue(ledger.is_empty())
        self.assertEqual(ledger.credit("a"), 1)
        self.assertEqual(ledger.credit("a"), 2)
        self.assertEqual(ledger.score_of("b"), 0)
        self.assertFalse(ledger.is_empty())

    def test_rank_is_descending_and_stable_for_ties(self):
        ledger = ScoreLedger()
        for pid in ["b", "a", "c", "a", "c"]:
            ledger.credit(pid)
        self.assertEqual(ledger.rank(), [("a", 2), ("c", 2), ("b", 1)])
        self.assertEqual([e.rank for e in ledger.leaderboard()], [1, 2, 3])

    def test_scores_never_decrease(self):
        ledger = ScoreLedger()
        rng = random.Random(7)
        previous: dict[str, int] = {}
        for _ in range(200):
            ledger.credit(rng.choice("abcde"))
            current = ledger.snapshot()
            for pid, score in previous.items():
                self.assertGreaterEqual(current[pid], score)
            previous = current

    def test_snapshot_is_a_copy(self):
        ledger = ScoreLedger()
        ledger.credit("a")
        snap = ledger.snapshot()
        snap["a"] = 100
        self.assertEqual(ledger.score_of("a"), 1)
