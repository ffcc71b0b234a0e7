from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Optional, Protocol

from .relay import RelayBridge

logger = logging.getLogger(__name__)


class VoiceGateway(Protocol):
    """What a session needs from the platform's voice connection."""

    async def join(self, target: str) -> None: ...

    async def play(self, source: RelayBridge) -> None: ...

    async def stop(self) -> None: ...

    async def leave(self) -> None: ...


class HeadlessVoiceSink:
    """Voice gateway used when no platform voice adapter is attached.

    It pulls the relay bridge at its own pace exactly like a real player would
    and simply counts the bytes, which keeps the extractor's pipe drained.
    """

    def __init__(self):
        self.target: Optional[str] = None
        self.bytes_played = 0
        self._reader: Optional[asyncio.Task] = None

    async def join(self, target: str) -> None:
        self.target = target
        logger.info("joined voice target %s", target)

    async def play(self, source: RelayBridge) -> None:
        await self.stop()
        self._reader = asyncio.create_task(self._drain(source))

    async def _drain(self, source: RelayBridge) -> None:
        async for chunk in source:
            self.bytes_played += len(chunk)

    async def stop(self) -> None:
        if self._reader is not None and not self._reader.done():
            self._reader.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._reader
        self._reader = None

    async def leave(self) -> None:
        await self.stop()
        if self.target is not None:
            logger.info("left voice target %s", self.target)
        self.target = None
