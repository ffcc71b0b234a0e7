import time
from typing import Iterable, Tuple


def now_ts() -> float:
    return time.time()


def mention(participant_id: str) -> str:
    return f"<@{participant_id}>"


def format_leaderboard(ranked: Iterable[Tuple[str, int]], numbered: bool = True) -> str:
    lines = []
    for i, (participant_id, score) in enumerate(ranked):
        prefix = f"{i + 1}. " if numbered else ""
        lines.append(f"{prefix}{mention(participant_id)}: {score} points")
    return "\n".join(lines)
