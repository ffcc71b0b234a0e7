"""Error taxonomy for the quiz bot.

Setup and authorization errors are raised before any session state changes and
are turned into replies by the command layer. Media errors never escape a round:
the round controller turns them into an automatic skip.
"""

from __future__ import annotations


class SetupError(ValueError):
    """A session could not be started."""


class NoVoiceTarget(SetupError):
    def __init__(self):
        super().__init__("You need to be in a voice channel to start a game!")


class PackNotFound(SetupError):
    def __init__(self, pack_id: str):
        self.pack_id = pack_id
        super().__init__(f'Could not find a playlist with ID "{pack_id}". Use `!quiz list` to see the available playlists.')


class SessionAlreadyActive(SetupError):
    def __init__(self, room_id: str):
        self.room_id = room_id
        super().__init__("A game is already running in this room!")


class AuthorizationError(PermissionError):
    """The sender may not perform this action."""


class NotModerator(AuthorizationError):
    def __init__(self, requester: str):
        self.requester = requester
        super().__init__("Only the player who started the game can stop it.")


class MediaError(RuntimeError):
    """The media for one round entry could not be resolved or streamed."""

    def __init__(self, media_id: str, reason: str):
        self.media_id = media_id
        self.reason = reason
        super().__init__(f"{media_id}: {reason}")


class CatalogError(RuntimeError):
    """The catalog store failed while serving a command."""
