from __future__ import annotations

import asyncio
from typing import Union


class _EndOfStream:
    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "EOF"

    def __bool__(self) -> bool:
        return False


EOF = _EndOfStream()


class RelayBridge:
    """Turns a push-style byte producer into something a player can pull from.

    The producer calls ``write`` whenever it has data and ``finish`` once it is
    done; the consumer awaits ``read`` (or iterates) on its own schedule. The
    queue is unbounded: clips are capped in length so buffering a whole one is
    acceptable.
    """

    def __init__(self):
        self._queue: asyncio.Queue[Union[bytes, _EndOfStream]] = asyncio.Queue()
        self._finished = False
        self.bytes_written = 0

    @property
    def finished(self) -> bool:
        return self._finished

    def write(self, chunk: bytes) -> None:
        if self._finished:
            raise RuntimeError("write() after finish()")
        if not chunk:
            return
        self.bytes_written += len(chunk)
        self._queue.put_nowait(bytes(chunk))

    def finish(self) -> None:
        if self._finished:
            return
        self._finished = True
        self._queue.put_nowait(EOF)

    async def read(self) -> Union[bytes, _EndOfStream]:
        item = await self._queue.get()
        if item is EOF:
            # keep the marker in place so repeated reads keep returning EOF
            self._queue.put_nowait(EOF)
        return item

    def __aiter__(self):
        return self

    async def __anext__(self) -> bytes:
        chunk = await self.read()
        if chunk is EOF:
            raise StopAsyncIteration
        return chunk
