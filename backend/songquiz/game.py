from __future__ import annotations

import logging
import random
from typing import Callable, Dict, List, Optional

from .catalog import CatalogStore
from .db import Settings
from .errors import NoVoiceTarget, NotModerator, PackNotFound, SessionAlreadyActive, SetupError
from .events import EventStore
from .media import MediaExtractor
from .messages import SkipVote, classify
from .models import LeaderboardEntry, Pack, Participant, RoundEntry, RoundResult, SessionSnapshot
from .rounds import RoundController
from .scores import ScoreLedger
from .utils import format_leaderboard, mention
from .voice import HeadlessVoiceSink, VoiceGateway

logger = logging.getLogger(__name__)


RULES = """🎮 Starting a game with the **{name}** playlist!

**Rules:**
- Listen carefully to the song that is playing.
- Type the song title in the chat.
- The first player to answer correctly gets a point.
- Vote to skip a song with {shortcuts} (more than half of the players must agree).
- Use `{prefix} join` to take part. The player with the most points wins!"""


class GameSession:
    """One room's game: roster, scores, and the sequence of rounds."""

    def __init__(
        self,
        room_id: str,
        pack: Pack,
        moderator_id: str,
        voice_target: str,
        *,
        registry: "SessionRegistry",
        events: EventStore,
        extractor: MediaExtractor,
        voice: VoiceGateway,
        settings: Settings,
        rng: Optional[random.Random] = None,
    ):
        self.room_id = room_id
        self.pack_id = pack.id
        self.pack_name = pack.name
        self.moderator_id = moderator_id
        self.voice_target = voice_target
        self.settings = settings
        self.events = events
        self.voice = voice
        self._registry = registry

        entries = list(pack.entries)
        (rng or random.Random()).shuffle(entries)
        self.entries: tuple[RoundEntry, ...] = tuple(entries)

        self.round_index = 0
        self.active = False
        self.participants: Dict[str, Participant] = {moderator_id: Participant(id=moderator_id)}
        self.ledger = ScoreLedger()
        self.results: List[RoundResult] = []
        self.rounds = RoundController(self, extractor, voice, settings)
        self._ending = False
        self._ended = False

    @property
    def total_rounds(self) -> int:
        return len(self.entries)

    @property
    def current_entry(self) -> Optional[RoundEntry]:
        if self.round_index >= len(self.entries):
            return None
        return self.entries[self.round_index]

    def skip_consensus(self, votes: int) -> bool:
        return votes * 2 > len(self.participants)

    async def announce(self, kind: str, text: str, **data) -> None:
        await self.events.announce(self.room_id, kind, text, **data)

    async def start(self) -> None:
        self.active = True
        await self.voice.join(self.voice_target)
        shortcuts = ", ".join(f"`{s}`" for s in sorted(self.settings.skip_shortcuts))
        await self.announce(
            "session_started",
            RULES.format(name=self.pack_name, shortcuts=shortcuts, prefix=self.settings.COMMAND_PREFIX),
            pack_id=self.pack_id,
            total_rounds=self.total_rounds,
            moderator_id=self.moderator_id,
        )
        self.rounds.schedule_first_round(self.settings.START_DELAY_SECONDS)

    async def stop(self, requester_id: str) -> List[LeaderboardEntry]:
        if requester_id != self.moderator_id:
            raise NotModerator(requester_id)
        await self.end()
        return self.ledger.leaderboard()

    async def join(self, participant_id: str) -> bool:
        if not self.active or participant_id in self.participants:
            return False
        self.participants[participant_id] = Participant(id=participant_id)
        await self.announce("player_joined", f"👋 {mention(participant_id)} joined the game!", participant_id=participant_id)
        return True

    async def leave(self, participant_id: str) -> bool:
        if participant_id not in self.participants:
            return False
        del self.participants[participant_id]
        self.rounds.skip_votes.discard(participant_id)
        await self.announce("player_left", f"👋 {mention(participant_id)} left the game.", participant_id=participant_id)
        return True

    async def submit_message(self, participant_id: str, text: str) -> bool:
        """Feed one chat line into the current round. Returns True if it changed the round."""
        if not self.active or participant_id not in self.participants:
            return False
        message = classify(text, self.settings.skip_shortcuts)
        if isinstance(message, SkipVote):
            return await self.rounds.vote_skip(participant_id)
        return await self.rounds.submit_answer(participant_id, message.text)

    async def end(self, announce: bool = True) -> None:
        if self._ending:
            return
        self._ending = True
        self.active = False
        self._registry.remove(self.room_id, self)

        await self.rounds.shutdown()
        await self.voice.leave()

        logger.info("room %s: session over after %d/%d rounds", self.room_id, len(self.results), self.total_rounds)
        if announce:
            await self._announce_final_scores()
        self._ended = True

    async def _announce_final_scores(self) -> None:
        ranked = self.ledger.rank()
        text = "🏆 Final scores:\n"
        text += format_leaderboard(ranked) if ranked else "Nobody scored any points!"
        await self.announce(
            "session_over",
            text,
            leaderboard=[e.model_dump() for e in self.ledger.leaderboard()],
        )

    @property
    def ended(self) -> bool:
        return self._ended

    def snapshot(self) -> SessionSnapshot:
        return SessionSnapshot(
            room_id=self.room_id,
            pack_id=self.pack_id,
            pack_name=self.pack_name,
            moderator_id=self.moderator_id,
            active=self.active,
            phase=self.rounds.phase,
            current_round=self.round_index,
            total_rounds=self.total_rounds,
            participants=list(self.participants.values()),
            leaderboard=self.ledger.leaderboard(),
            results=list(self.results),
        )


class SessionRegistry:
    """Owns every live session, at most one per room."""

    def __init__(
        self,
        catalog: CatalogStore,
        events: EventStore,
        extractor: MediaExtractor,
        settings: Settings,
        voice_factory: Callable[[str], VoiceGateway] = lambda room_id: HeadlessVoiceSink(),
        rng: Optional[random.Random] = None,
    ):
        self.catalog = catalog
        self.events = events
        self.extractor = extractor
        self.settings = settings
        self.voice_factory = voice_factory
        self.rng = rng
        self._sessions: Dict[str, GameSession] = {}

    def get(self, room_id: str) -> Optional[GameSession]:
        return self._sessions.get(room_id)

    def is_active(self, room_id: str) -> bool:
        session = self._sessions.get(room_id)
        return session is not None and session.active

    def leaderboard(self, room_id: str) -> Optional[List[LeaderboardEntry]]:
        session = self._sessions.get(room_id)
        return session.ledger.leaderboard() if session else None

    async def start(self, room_id: str, pack_id: str, moderator_id: str, voice_target: Optional[str]) -> GameSession:
        if not voice_target:
            raise NoVoiceTarget()
        if room_id in self._sessions:
            raise SessionAlreadyActive(room_id)
        pack = await self.catalog.get_pack(pack_id)
        if pack is None:
            raise PackNotFound(pack_id)
        if not pack.entries:
            raise SetupError(f'The playlist "{pack.name}" has no songs.')
        if room_id in self._sessions:
            # another start won the race while the pack was loading
            raise SessionAlreadyActive(room_id)
        await self.catalog.increment_play_count(pack.id)

        session = GameSession(
            room_id,
            pack,
            moderator_id,
            voice_target,
            registry=self,
            events=self.events,
            extractor=self.extractor,
            voice=self.voice_factory(room_id),
            settings=self.settings,
            rng=self.rng,
        )
        self._sessions[room_id] = session
        logger.info("room %s: %s started pack %s (%d rounds)", room_id, moderator_id, pack.id, session.total_rounds)
        try:
            await session.start()
        except Exception:
            logger.exception("room %s: failed to start session", room_id)
            await session.end(announce=False)
            raise
        return session

    def remove(self, room_id: str, session: GameSession) -> None:
        if self._sessions.get(room_id) is session:
            del self._sessions[room_id]

    async def end(self, room_id: str) -> bool:
        session = self._sessions.get(room_id)
        if session is None:
            return False
        await session.end()
        return True

    async def handle_presence(self, room_id: str, occupants: int, bot_present: bool = True) -> bool:
        """End the room's session once the bot is alone in voice or has been dropped from it."""
        if not bot_present or occupants <= 1:
            return await self.end(room_id)
        return False

    async def shutdown(self) -> None:
        for session in list(self._sessions.values()):
            await session.end()
