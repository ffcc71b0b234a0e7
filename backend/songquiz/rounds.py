from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Awaitable, Optional

from .answers import is_correct_answer, possible_answers
from .db import Settings
from .errors import MediaError
from .media import MediaExtractor, Playback
from .models import RoundEntry, RoundOutcome, RoundPhase, RoundResult
from .utils import mention
from .voice import VoiceGateway

if TYPE_CHECKING:
    from .game import GameSession

logger = logging.getLogger(__name__)


def _log_task_failure(task: asyncio.Task) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error("round task %s failed", task.get_name(), exc_info=exc)


def _cancel(task: Optional[asyncio.Task]) -> None:
    # a task may end up cancelling its own slot (e.g. the timer task resolving
    # its round); never cancel the task we are running in
    if task is not None and not task.done() and task is not asyncio.current_task():
        task.cancel()


class RoundController:
    """Drives one session's rounds: PREPARING -> PLAYING -> RESOLVED.

    Every resolution path (correct answer, skip majority, timeout) goes through
    ``_claim``, which checks the round generation and phase and flips the phase
    to RESOLVED before the first await. Callbacks that belong to an older
    generation find a mismatch and do nothing, so a round resolves at most once
    even when a timer and a message race each other.
    """

    def __init__(self, session: "GameSession", extractor: MediaExtractor, voice: VoiceGateway, settings: Settings):
        self.session = session
        self.extractor = extractor
        self.voice = voice
        self.settings = settings

        self.generation = 0
        self.phase = RoundPhase.IDLE
        self.outcome: Optional[RoundOutcome] = None
        self.skip_votes: set[str] = set()

        self._variants: frozenset[str] = frozenset()
        self._answer_revealed = False
        self._fast_forwarded = False
        self._timer: Optional[asyncio.Task] = None
        self._advance: Optional[asyncio.Task] = None
        self._playback: Optional[Playback] = None

    # -- scheduling -------------------------------------------------------

    def _spawn(self, coro: Awaitable, name: str) -> asyncio.Task:
        task = asyncio.create_task(coro, name=f"{self.session.room_id}:{name}")
        task.add_done_callback(_log_task_failure)
        return task

    def clip_seconds(self, entry: RoundEntry) -> float:
        cap = self.settings.MAX_ROUND_SECONDS
        if entry.plays_to_end:
            return cap
        return min(entry.play_duration, cap)

    def schedule_first_round(self, delay: float) -> None:
        self._schedule_advance(self.generation, delay, step=False)

    def _schedule_advance(self, generation: int, delay: float, step: bool = True) -> None:
        if generation != self.generation:
            return
        _cancel(self._advance)
        self._advance = self._spawn(self._advance_after(generation, delay, step), f"advance-{generation}")

    async def _advance_after(self, generation: int, delay: float, step: bool) -> None:
        await asyncio.sleep(delay)
        if generation != self.generation or not self.session.active:
            return
        if step:
            if self.phase is not RoundPhase.RESOLVED:
                return
            # leave RESOLVED before the first await so a late skip majority
            # cannot schedule a second advance for the same round
            self.phase = RoundPhase.PREPARING
            self.session.round_index += 1
        await self.begin()

    async def _expire(self, generation: int, seconds: float) -> None:
        await asyncio.sleep(seconds)
        await self.resolve_timeout(generation)

    # -- round lifecycle --------------------------------------------------

    async def begin(self) -> None:
        """Enter PREPARING for the session's current round index."""
        while self.session.active:
            entry = self.session.current_entry
            if entry is None:
                await self.session.end()
                return

            self.phase = RoundPhase.PREPARING
            await self._teardown()
            if not self.session.active:
                return
            self.generation += 1
            generation = self.generation
            self.outcome = None
            self.skip_votes.clear()
            self._answer_revealed = False
            self._fast_forwarded = False
            self._variants = possible_answers(entry.canonical_name, entry.possible_answers)

            try:
                playback = await self.extractor.open(entry)
                if generation != self.generation or not self.session.active:
                    # stopped while the media was being resolved
                    await playback.close()
                    return
                self._playback = playback
                await self.voice.play(playback.bridge)
            except MediaError as exc:
                logger.warning("room %s: skipping round %d: %s", self.session.room_id, self.session.round_index, exc)
            except Exception:
                logger.exception("room %s: could not start round %d", self.session.room_id, self.session.round_index)
            else:
                self._enter_playing(generation, entry)
                await self.session.announce(
                    "round_started",
                    f"🎵 Round {self.session.round_index + 1}/{self.session.total_rounds}",
                    round_index=self.session.round_index,
                    total_rounds=self.session.total_rounds,
                )
                return

            if generation != self.generation or not self.session.active:
                return
            await self._fail_round(entry)
            # loop straight into the next entry, no advance delay

    def _enter_playing(self, generation: int, entry: RoundEntry) -> None:
        self.phase = RoundPhase.PLAYING
        self.skip_votes.clear()
        self._timer = self._spawn(self._expire(generation, self.clip_seconds(entry)), f"timer-{generation}")

    async def _fail_round(self, entry: RoundEntry) -> None:
        self.phase = RoundPhase.RESOLVED
        self.outcome = RoundOutcome.ERROR
        self._record(entry, RoundOutcome.ERROR)
        await self._teardown()
        await self.session.announce(
            "round_error",
            f"ℹ️ Skipping a song that cannot be played. (Video ID: {entry.video_id})",
            round_index=self.session.round_index,
            video_id=entry.video_id,
        )
        self.session.round_index += 1

    def _claim(self, generation: int) -> bool:
        if generation != self.generation or self.phase is not RoundPhase.PLAYING:
            return False
        self.phase = RoundPhase.RESOLVED
        _cancel(self._timer)
        self._timer = None
        return True

    def _record(self, entry: RoundEntry, outcome: RoundOutcome, winner_id: Optional[str] = None) -> None:
        self.session.results.append(
            RoundResult(index=self.session.round_index, entry_id=entry.id, outcome=outcome, winner_id=winner_id)
        )
        logger.info(
            "room %s: round %d resolved as %s%s",
            self.session.room_id,
            self.session.round_index,
            outcome.value,
            f" by {winner_id}" if winner_id else "",
        )

    def _has_next(self) -> bool:
        return self.session.round_index + 1 < self.session.total_rounds

    # -- resolution paths -------------------------------------------------

    async def submit_answer(self, participant_id: str, text: str) -> bool:
        if self.phase is not RoundPhase.PLAYING or not is_correct_answer(text, self._variants):
            return False
        return await self.resolve_correct(self.generation, participant_id)

    async def resolve_correct(self, generation: int, participant_id: str) -> bool:
        if not self._claim(generation):
            return False
        entry = self.session.current_entry
        self.outcome = RoundOutcome.CORRECT
        self.session.ledger.credit(participant_id)
        self._answer_revealed = True
        self._record(entry, RoundOutcome.CORRECT, participant_id)

        await self.session.announce(
            "round_correct",
            f"🎉 {mention(participant_id)} got it! The answer was {entry.answer_text()}!",
            round_index=self.session.round_index,
            winner_id=participant_id,
        )
        if self._has_next():
            await self.session.announce(
                "skip_open",
                "⏭️ Type a skip shortcut to move on to the next song right away.",
                round_index=self.session.round_index,
            )
        self._schedule_advance(generation, self.settings.ADVANCE_DELAY_SECONDS)
        return True

    async def vote_skip(self, participant_id: str) -> bool:
        """Register a skip vote; returns True when it tipped the vote."""
        fast_forward = (
            self.phase is RoundPhase.RESOLVED
            and self.outcome is RoundOutcome.CORRECT
            and not self._fast_forwarded
        )
        if self.phase is not RoundPhase.PLAYING and not fast_forward:
            return False
        self.skip_votes.add(participant_id)
        if not self.session.skip_consensus(len(self.skip_votes)):
            return False

        generation = self.generation
        if fast_forward:
            # the round is already decided; only the advance delay is skipped
            self.skip_votes.clear()
            self._fast_forwarded = True
            await self.session.announce("round_fast_forward", "⏭️ Skipping ahead!", round_index=self.session.round_index)
            self._schedule_advance(generation, 0)
            return True
        return await self.resolve_skip(generation)

    async def resolve_skip(self, generation: int) -> bool:
        if not self._claim(generation):
            return False
        entry = self.session.current_entry
        self.outcome = RoundOutcome.SKIPPED
        self._record(entry, RoundOutcome.SKIPPED)

        text = "⏭️ The room voted to skip this song!"
        if not self._answer_revealed:
            text += f"\nThe answer was: {entry.answer_text()}"
            self._answer_revealed = True
        await self.session.announce("round_skipped", text, round_index=self.session.round_index)
        self._schedule_advance(generation, self.settings.ADVANCE_DELAY_SECONDS)
        return True

    async def resolve_timeout(self, generation: int) -> bool:
        if not self._claim(generation):
            return False
        entry = self.session.current_entry
        self.outcome = RoundOutcome.TIMEOUT
        self._record(entry, RoundOutcome.TIMEOUT)
        self._answer_revealed = True
        await self._teardown()

        teaser = "\n\nThe next song is coming up!" if self._has_next() else ""
        await self.session.announce(
            "round_timeout",
            f"➡️ Time's up!\nThe answer was: {entry.answer_text()}{teaser}",
            round_index=self.session.round_index,
        )
        self._schedule_advance(generation, self.settings.ADVANCE_DELAY_SECONDS)
        return True

    # -- teardown ---------------------------------------------------------

    async def _teardown(self) -> None:
        await self.voice.stop()
        if self._playback is not None:
            playback, self._playback = self._playback, None
            await playback.close()

    async def shutdown(self) -> None:
        """Invalidate the current round and release its playback."""
        self.generation += 1
        self.phase = RoundPhase.OVER
        _cancel(self._timer)
        _cancel(self._advance)
        self._timer = None
        self._advance = None
        await self._teardown()
