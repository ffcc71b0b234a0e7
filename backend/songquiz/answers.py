from __future__ import annotations

import re
from typing import Iterable

_WHITESPACE = re.compile(r"\s+")


def possible_answers(canonical_name: str, alternates: Iterable[str]) -> frozenset[str]:
    """Every accepted spelling of an entry's answer.

    Each of the canonical name and its alternates contributes four variants:
    as stored, case-folded, with all whitespace removed, and both.
    """
    variants: set[str] = set()
    for answer in (canonical_name, *alternates):
        compact = _WHITESPACE.sub("", answer)
        variants.update((answer, answer.casefold(), compact, compact.casefold()))
    return frozenset(variants)


def is_correct_answer(guess: str, variants: frozenset[str]) -> bool:
    # Only case is folded on the guess. Spacing must match one of the stored
    # variants, so "ab c" does not match "a bc" even though both compact to "abc".
    return guess.casefold() in variants
