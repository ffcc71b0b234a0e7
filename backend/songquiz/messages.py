"""Classification of room text.

Every chat line is classified exactly once, before dispatch: a ``!quiz``
command, a skip vote, or an answer attempt.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import FrozenSet, List, Optional, Union


@dataclass(frozen=True)
class SkipVote:
    pass


@dataclass(frozen=True)
class AnswerAttempt:
    text: str


RoundInput = Union[SkipVote, AnswerAttempt]


@dataclass(frozen=True)
class Command:
    name: str
    args: List[str] = field(default_factory=list)

    @property
    def argument(self) -> str:
        return " ".join(self.args)


def classify(text: str, skip_shortcuts: FrozenSet[str]) -> RoundInput:
    if text.strip().casefold() in skip_shortcuts:
        return SkipVote()
    return AnswerAttempt(text)


def parse_command(text: str, prefix: str) -> Optional[Command]:
    """Return the command in ``text`` or None when it is not addressed to the bot."""
    stripped = text.strip()
    if not stripped.startswith(prefix):
        return None
    rest = stripped[len(prefix):]
    if rest and not rest[0].isspace():
        # "!quizzes" is not a command
        return None
    parts = rest.split()
    if not parts:
        return Command(name="help")
    return Command(name=parts[0].lower(), args=parts[1:])
