from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, List, Optional

from pydantic import ValidationError

from .db import db
from .errors import CatalogError
from .models import Pack

logger = logging.getLogger(__name__)


class CatalogStore:
    """Read side of the pack catalog, used when a game starts."""

    def __init__(self, database: Any = None):
        database = database if database is not None else db
        self.packs_collection = database.packs

    async def get_pack(self, pack_id: str) -> Optional[Pack]:
        try:
            doc = await self.packs_collection.find_one({"id": pack_id})
        except Exception as exc:
            raise CatalogError(f"could not load pack {pack_id}") from exc
        if not doc:
            return None
        return Pack(**doc)

    async def list_packs(self, tag: Optional[str] = None) -> List[Pack]:
        query: dict[str, Any] = {"tags": {"$in": [tag]}} if tag else {}
        try:
            docs = await self.packs_collection.find(query).sort("name", 1).to_list()
        except Exception as exc:
            raise CatalogError("could not list packs") from exc
        return [Pack(**doc) for doc in docs]

    async def increment_play_count(self, pack_id: str) -> bool:
        try:
            modified = await self.packs_collection.update_one(
                {"id": pack_id},
                {"$inc": {"play_count": 1}},
            )
        except Exception as exc:
            raise CatalogError(f"could not update play count for {pack_id}") from exc
        return modified > 0

    async def save_pack(self, pack: Pack) -> None:
        await self.packs_collection.update_one(
            {"id": pack.id},
            {"$set": pack.model_dump(mode="json")},
            upsert=True,
        )

    async def load_seed(self, path: str | Path) -> int:
        """Load packs from a JSON file (a list of packs, or {"packs": [...]})."""
        raw = json.loads(Path(path).read_text(encoding="utf-8"))
        items = raw.get("packs", []) if isinstance(raw, dict) else raw
        loaded = 0
        for item in items:
            try:
                pack = Pack.model_validate(item)
            except ValidationError as exc:
                logger.warning("skipping invalid pack in %s: %s", path, exc)
                continue
            await self.save_pack(pack)
            loaded += 1
        logger.info("loaded %d packs from %s", loaded, path)
        return loaded
