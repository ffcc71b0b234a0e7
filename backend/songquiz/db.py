from __future__ import annotations

import asyncio
import copy
from enum import Enum
from functools import lru_cache
from typing import Any, Callable, Dict, Iterator, List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    ADMIN_KEY: str = "change-me"
    CORS_ORIGINS: str = "http://localhost:5173,http://localhost:8080"
    CORS_ORIGIN_REGEX: Optional[str] = None
    LOG_LEVEL: str = "INFO"

    # media extraction
    YTDLP_PATH: str = "yt-dlp"
    MEDIA_OPEN_TIMEOUT_SECONDS: float = 20.0

    # round pacing; MAX_ROUND_SECONDS also caps entries that play to the end
    MAX_ROUND_SECONDS: float = 60.0
    START_DELAY_SECONDS: float = 5.0
    ADVANCE_DELAY_SECONDS: float = 3.0

    COMMAND_PREFIX: str = "!quiz"
    SKIP_SHORTCUTS: str = "!skip,/skip,⏭️"

    CATALOG_SEED_PATH: Optional[str] = None

    @property
    def skip_shortcuts(self) -> frozenset[str]:
        return frozenset(s.strip().casefold() for s in self.SKIP_SHORTCUTS.split(",") if s.strip())


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()


class ReturnDocument(str, Enum):
    BEFORE = "before"
    AFTER = "after"


def _gt(actual: Any, expected: Any) -> bool:
    return actual is not None and actual > expected


def _in(actual: Any, expected: Any) -> bool:
    if isinstance(actual, list):
        return any(a in expected for a in actual)
    return actual in expected


_QUERY_OPERATORS: Dict[str, Callable[[Any, Any], bool]] = {
    "$gt": _gt,
    "$in": _in,
}


class InMemoryCursor:
    """Lazy, Motor-style async cursor over a snapshot of matching documents."""

    def __init__(self, collection: "InMemoryCollection", query: Dict[str, Any]):
        self._collection = collection
        self._query = query or {}
        self._sort: Optional[tuple[str, int]] = None
        self._limit: Optional[int] = None
        self._docs: Optional[Iterator[Dict[str, Any]]] = None

    def sort(self, key: str, direction: int):
        self._sort = (key, direction)
        return self

    def limit(self, limit: int):
        self._limit = limit
        return self

    async def to_list(self) -> List[Dict[str, Any]]:
        return [doc async for doc in self]

    def __aiter__(self):
        return self

    async def __anext__(self):
        if self._docs is None:
            docs = await self._collection._select(self._query)
            if self._sort is not None:
                key, direction = self._sort
                docs.sort(key=lambda d: d.get(key), reverse=direction < 0)
            if self._limit is not None:
                docs = docs[: self._limit]
            self._docs = iter(docs)
        try:
            return next(self._docs)
        except StopIteration as exc:
            raise StopAsyncIteration from exc


class InMemoryCollection:
    """Tiny subset of the Motor collection API, enough for packs and room events."""

    def __init__(self):
        self._docs: List[Dict[str, Any]] = []
        self._lock = asyncio.Lock()

    async def _select(self, query: Dict[str, Any]) -> List[Dict[str, Any]]:
        async with self._lock:
            return [copy.deepcopy(doc) for doc in self._docs if self._matches(doc, query)]

    async def find_one(self, query: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        docs = await self._select(query)
        return docs[0] if docs else None

    def find(self, query: Optional[Dict[str, Any]] = None):
        return InMemoryCursor(self, query or {})

    async def insert_one(self, document: Dict[str, Any]):
        async with self._lock:
            self._docs.append(copy.deepcopy(document))

    async def update_one(self, query: Dict[str, Any], update: Dict[str, Any], upsert: bool = False) -> int:
        """Apply ``update`` to the first match and return the number of modified documents."""
        result = await self.find_one_and_update(query, update, upsert=upsert)
        return 1 if result is not None else 0

    async def find_one_and_update(
        self,
        query: Dict[str, Any],
        update: Dict[str, Any],
        *,
        upsert: bool = False,
        return_document: ReturnDocument = ReturnDocument.BEFORE,
    ) -> Optional[Dict[str, Any]]:
        async with self._lock:
            for idx, doc in enumerate(self._docs):
                if self._matches(doc, query):
                    updated = self._apply_update(copy.deepcopy(doc), update)
                    self._docs[idx] = updated
                    return copy.deepcopy(updated if return_document == ReturnDocument.AFTER else doc)

            if not upsert:
                return None

            created = self._apply_update(copy.deepcopy(query), update)
            self._docs.append(created)
            # Mongo reports an upserted document as "no previous version"
            return copy.deepcopy(created) if return_document == ReturnDocument.AFTER else {}

    @staticmethod
    def _apply_update(doc: Dict[str, Any], update: Dict[str, Any]) -> Dict[str, Any]:
        for op, payload in update.items():
            if op == "$set":
                doc.update(copy.deepcopy(payload))
            elif op == "$inc":
                for key, value in payload.items():
                    doc[key] = doc.get(key, 0) + value
            else:  # pragma: no cover - only the above operators are used today
                raise ValueError(f"Unsupported update operator: {op}")
        return doc

    @staticmethod
    def _matches(doc: Dict[str, Any], query: Dict[str, Any]) -> bool:
        for key, expected in (query or {}).items():
            actual = doc.get(key)
            if not isinstance(expected, dict):
                if actual != expected:
                    return False
                continue
            for op, operand in expected.items():
                check = _QUERY_OPERATORS.get(op)
                if check is None:  # pragma: no cover - extend as new operators are required
                    raise ValueError(f"Unsupported query operator: {op}")
                if not check(actual, operand):
                    return False
        return True


class InMemoryDatabase:
    def __init__(self):
        self.packs = InMemoryCollection()
        self.room_event_counters = InMemoryCollection()
        self.room_events = InMemoryCollection()


db: Any = InMemoryDatabase()
