from __future__ import annotations

import logging
from typing import Any, List

from .db import ReturnDocument, db
from .utils import now_ts

logger = logging.getLogger(__name__)


class EventStore:
    """Per-room announcement feed that the platform adapter relays into chat."""

    def __init__(self, database: Any = None):
        database = database if database is not None else db
        self.counters_collection = database.room_event_counters
        self.events_collection = database.room_events

    async def append(self, room_id: str, payload: dict[str, Any]) -> int:
        """Store a new event for a room and return its sequence number."""

        counter_doc = await self.counters_collection.find_one_and_update(
            {"_id": room_id},
            {"$inc": {"seq": 1}},
            upsert=True,
            return_document=ReturnDocument.AFTER,
        )
        seq = int(counter_doc["seq"])

        await self.events_collection.insert_one(
            {
                "room_id": room_id,
                "seq": seq,
                "timestamp": now_ts(),
                "payload": payload,
            }
        )
        if "text" in payload:
            logger.debug("[%s] %s", room_id, payload["text"])
        return seq

    async def announce(self, room_id: str, kind: str, text: str, **data: Any) -> int:
        """Post a human-readable message to the room."""
        return await self.append(room_id, {"type": kind, "text": text, **data})

    async def list(self, room_id: str, after: int | None = None, limit: int = 200) -> List[dict[str, Any]]:
        """Return events for a room that occur after the given sequence."""

        query: dict[str, Any] = {"room_id": room_id}
        if after is not None:
            query["seq"] = {"$gt": after}

        cursor = self.events_collection.find(query).sort("seq", 1).limit(limit)
        return [
            {
                "seq": doc["seq"],
                "timestamp": doc.get("timestamp"),
                "payload": doc.get("payload", {}),
            }
            async for doc in cursor
        ]
