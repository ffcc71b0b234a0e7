from __future__ import annotations

from typing import Dict, List, Tuple

from .models import LeaderboardEntry


class ScoreLedger:
    """Per-session score counters. Scores only ever go up."""

    def __init__(self):
        self._scores: Dict[str, int] = {}

    def credit(self, participant_id: str) -> int:
        self._scores[participant_id] = self._scores.get(participant_id, 0) + 1
        return self._scores[participant_id]

    def score_of(self, participant_id: str) -> int:
        return self._scores.get(participant_id, 0)

    def is_empty(self) -> bool:
        return not self._scores

    def rank(self) -> List[Tuple[str, int]]:
        # sorted() is stable, so ties keep the order participants first scored in
        return sorted(self._scores.items(), key=lambda item: -item[1])

    def snapshot(self) -> Dict[str, int]:
        return dict(self._scores)

    def leaderboard(self) -> List[LeaderboardEntry]:
        return [
            LeaderboardEntry(rank=i + 1, participant_id=pid, score=score)
            for i, (pid, score) in enumerate(self.rank())
        ]
