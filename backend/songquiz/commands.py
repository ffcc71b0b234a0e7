"""Chat command handling for ``!quiz`` messages."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from .catalog import CatalogStore
from .db import Settings
from .errors import AuthorizationError, CatalogError, SetupError
from .game import SessionRegistry
from .messages import Command, parse_command
from .utils import format_leaderboard

logger = logging.getLogger(__name__)

NO_GAME = "There is no game running right now!"

HELP = """**SongQuiz commands:**
`{p} start [playlist ID]` - start a new game with the given playlist.
`{p} stop` - stop the current game (only the player who started it).
`{p} join` - join the current game.
`{p} leave` - leave the current game.
`{p} scores` - show the current scores.
`{p} list [tag]` - show the available playlists, optionally only those with a tag.
`{p} help` - show this help."""


@dataclass
class ChatResult:
    """What the platform adapter should do with an incoming message."""

    replies: List[str] = field(default_factory=list)
    handled: bool = False


@dataclass
class CommandHandler:
    registry: SessionRegistry
    catalog: CatalogStore
    settings: Settings

    async def handle_message(
        self, room_id: str, author_id: str, text: str, voice_target: Optional[str] = None
    ) -> ChatResult:
        """Route one room message to a command or to the running game."""
        command = parse_command(text, self.settings.COMMAND_PREFIX)
        if command is not None:
            reply = await self.dispatch(room_id, author_id, command, voice_target)
            return ChatResult(replies=[reply] if reply else [], handled=True)

        session = self.registry.get(room_id)
        if session is None:
            return ChatResult()
        return ChatResult(handled=await session.submit_message(author_id, text))

    async def dispatch(
        self, room_id: str, author_id: str, command: Command, voice_target: Optional[str]
    ) -> Optional[str]:
        handler = getattr(self, f"_cmd_{command.name}", None)
        if handler is None:
            return f"Unknown command. Use `{self.settings.COMMAND_PREFIX} help` to see the available commands."
        try:
            return await handler(room_id, author_id, command, voice_target)
        except (SetupError, AuthorizationError) as exc:
            return str(exc)
        except CatalogError:
            logger.exception("room %s: catalog failure during %s", room_id, command.name)
            return "Something went wrong while loading the playlists. Please try again later."

    async def _cmd_start(self, room_id, author_id, command, voice_target):
        if not command.argument:
            return "Please give the ID of a playlist!"
        try:
            await self.registry.start(room_id, command.argument, author_id, voice_target)
        except (SetupError, CatalogError):
            raise
        except Exception:
            logger.exception("room %s: error while starting a game", room_id)
            return "Something went wrong while starting the game."
        return None

    async def _cmd_stop(self, room_id, author_id, command, voice_target):
        session = self.registry.get(room_id)
        if session is None:
            return NO_GAME
        await session.stop(author_id)
        return "Game stopped!"

    async def _cmd_join(self, room_id, author_id, command, voice_target):
        session = self.registry.get(room_id)
        if session is None:
            return NO_GAME
        if not session.active:
            return "This game is wrapping up. Start a new one to play!"
        if not await session.join(author_id):
            return "You are already in the game."
        return None

    async def _cmd_leave(self, room_id, author_id, command, voice_target):
        session = self.registry.get(room_id)
        if session is None:
            return NO_GAME
        if not await session.leave(author_id):
            return "You are not in the game."
        return None

    async def _cmd_scores(self, room_id, author_id, command, voice_target):
        session = self.registry.get(room_id)
        if session is None or not session.active:
            return NO_GAME
        ranked = session.ledger.rank()
        if not ranked:
            return "Current scores:\nNobody has scored yet!"
        return "Current scores:\n" + format_leaderboard(ranked, numbered=False)

    async def _cmd_list(self, room_id, author_id, command, voice_target):
        tag = command.argument or None
        packs = await self.catalog.list_packs(tag)
        if not packs:
            if tag:
                return f'There are no playlists tagged "{tag}".'
            return "There are no playlists available!"
        lines = [f"- **{p.name}** (`{p.id}`): {p.description}" for p in packs]
        return "Available playlists:\n" + "\n".join(lines)

    async def _cmd_help(self, room_id, author_id, command, voice_target):
        return HELP.format(p=self.settings.COMMAND_PREFIX)
