from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import List, Optional, Protocol

from .db import Settings
from .errors import MediaError
from .models import RoundEntry
from .relay import RelayBridge

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024
YOUTUBE_WATCH_URL = "https://www.youtube.com/watch?v={video_id}"


class Playback:
    """One round's playback pipeline: the relay bridge plus whatever feeds it."""

    def __init__(
        self,
        bridge: RelayBridge,
        pump: Optional[asyncio.Task] = None,
        process: Optional[asyncio.subprocess.Process] = None,
    ):
        self.bridge = bridge
        self._pump = pump
        self._process = process
        self.closed = False

    async def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        if self._pump is not None and not self._pump.done():
            self._pump.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._pump
        if self._process is not None and self._process.returncode is None:
            with contextlib.suppress(ProcessLookupError):
                self._process.kill()
            await self._process.wait()
        self.bridge.finish()


class MediaExtractor(Protocol):
    async def open(self, entry: RoundEntry) -> Playback:
        """Start streaming ``entry`` or raise MediaError before any audio flows."""


def section_spec(entry: RoundEntry) -> str:
    """yt-dlp ``--download-sections`` value for the entry's clip window."""
    start = entry.song_start or 0
    end = "" if entry.plays_to_end else str(start + entry.play_duration)
    return f"*{start}-{end}"


class YtDlpExtractor:
    def __init__(self, settings: Settings):
        self.settings = settings

    def command(self, entry: RoundEntry) -> List[str]:
        return [
            self.settings.YTDLP_PATH,
            YOUTUBE_WATCH_URL.format(video_id=entry.video_id),
            "--quiet",
            "--no-warnings",
            "--format", "bestaudio",
            "--download-sections", section_spec(entry),
            "--force-keyframes-at-cuts",
            "--postprocessor-args", "ffmpeg:-af loudnorm",
            "--output", "-",
        ]

    async def open(self, entry: RoundEntry) -> Playback:
        try:
            process = await asyncio.create_subprocess_exec(
                *self.command(entry),
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            raise MediaError(entry.video_id, f"could not launch {self.settings.YTDLP_PATH}: {exc}") from exc

        assert process.stdout is not None and process.stderr is not None
        stderr_task = asyncio.create_task(process.stderr.read())

        try:
            first = await asyncio.wait_for(
                process.stdout.read(CHUNK_SIZE),
                timeout=self.settings.MEDIA_OPEN_TIMEOUT_SECONDS,
            )
        except asyncio.TimeoutError:
            await self._abort(process, stderr_task)
            raise MediaError(entry.video_id, "timed out waiting for audio") from None
        except asyncio.CancelledError:
            # the round was stopped while yt-dlp was still resolving
            await self._abort(process, stderr_task)
            raise

        if not first:
            code = await process.wait()
            stderr = (await stderr_task).decode(errors="replace").strip()
            raise MediaError(entry.video_id, stderr or f"yt-dlp exited with code {code}")

        bridge = RelayBridge()
        bridge.write(first)
        pump = asyncio.create_task(self._pump(entry, process, bridge, stderr_task))
        return Playback(bridge, pump=pump, process=process)

    async def _pump(
        self,
        entry: RoundEntry,
        process: asyncio.subprocess.Process,
        bridge: RelayBridge,
        stderr_task: asyncio.Task,
    ) -> None:
        assert process.stdout is not None
        try:
            while True:
                chunk = await process.stdout.read(CHUNK_SIZE)
                if not chunk:
                    break
                bridge.write(chunk)
            code = await process.wait()
            if code != 0:
                stderr = (await stderr_task).decode(errors="replace").strip()
                logger.warning("yt-dlp for %s exited with %s mid-stream: %s", entry.video_id, code, stderr)
        finally:
            if not stderr_task.done():
                stderr_task.cancel()
            bridge.finish()

    @staticmethod
    async def _abort(process: asyncio.subprocess.Process, stderr_task: asyncio.Task) -> None:
        with contextlib.suppress(ProcessLookupError):
            process.kill()
        await process.wait()
        stderr_task.cancel()
