from __future__ import annotations

import json
import tempfile
from pathlib import Path
from unittest import IsolatedAsyncioTestCase, mock

from .catalog import CatalogStore
from .db import InMemoryDatabase, ReturnDocument
from .errors import CatalogError
from .events import EventStore
from .models import Pack, RoundEntry


def _pack(pack_id: str, name: str) -> Pack:
    entry = RoundEntry(id=f"{pack_id}-e", performer="P", canonical_name="C", possible_answers=("c",), video_id="v")
    return Pack(id=pack_id, name=name, description="d", tags=["kpop"], entries=[entry])


class CatalogStoreTests(IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self.catalog = CatalogStore(InMemoryDatabase())

    async def test_round_trip_and_missing(self):
        await self.catalog.save_pack(_pack("p1", "Hits"))
        pack = await self.catalog.get_pack("p1")
        self.assertEqual(pack.name, "Hits")
        self.assertEqual(pack.entries[0].possible_answers, ("c",))
        self.assertIsNone(await self.catalog.get_pack("nope"))

    async def test_list_is_sorted_by_name(self):
        await self.catalog.save_pack(_pack("p2", "Zeta"))
        await self.catalog.save_pack(_pack("p1", "Alpha"))
        self.assertEqual([p.name for p in await self.catalog.list_packs()], ["Alpha", "Zeta"])

    async def test_list_filters_by_tag(self):
        await self.catalog.save_pack(_pack("p1", "Hits"))
        await self.catalog.save_pack(_pack("p2", "Rock").model_copy(update={"tags": ["rock"]}))
        self.assertEqual([p.id for p in await self.catalog.list_packs("rock")], ["p2"])
        self.assertEqual([p.id for p in await self.catalog.list_packs("jazz")], [])
        self.assertEqual(len(await self.catalog.list_packs()), 2)

    async def test_increment_play_count(self):
        await self.catalog.save_pack(_pack("p1", "Hits"))
        self.assertTrue(await self.catalog.increment_play_count("p1"))
        self.assertTrue(await self.catalog.increment_play_count("p1"))
        self.assertFalse(await self.catalog.increment_play_count("missing"))
        self.assertEqual((await self.catalog.get_pack("p1")).play_count, 2)

    async def test_storage_failures_become_catalog_errors(self):
        with mock.patch.object(self.catalog.packs_collection, "find_one", side_effect=OSError("disk")):
            with self.assertRaises(CatalogError):
                await self.catalog.get_pack("p1")

    async def test_load_seed_skips_invalid_packs(self):
        packs = [_pack("p1", "Hits").model_dump(mode="json"), {"id": "broken"}]
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "packs.json"
            path.write_text(json.dumps({"packs": packs}), encoding="utf-8")
            self.assertEqual(await self.catalog.load_seed(path), 1)
        self.assertIsNotNone(await self.catalog.get_pack("p1"))


class EventStoreTests(IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self.events = EventStore(InMemoryDatabase())

    async def test_sequence_numbers_are_per_room(self):
        self.assertEqual(await self.events.announce("a", "info", "hi"), 1)
        self.assertEqual(await self.events.announce("a", "info", "again"), 2)
        self.assertEqual(await self.events.announce("b", "info", "other"), 1)

    async def test_list_after(self):
        for i in range(3):
            await self.events.announce("a", "info", f"msg {i}", n=i)
        events = await self.events.list("a", after=1)
        self.assertEqual([e["seq"] for e in events], [2, 3])
        self.assertEqual(events[0]["payload"], {"type": "info", "text": "msg 1", "n": 1})


class InMemoryCollectionTests(IsolatedAsyncioTestCase):
    async def test_find_one_and_update_return_modes(self):
        coll = InMemoryDatabase().room_event_counters
        created = await coll.find_one_and_update(
            {"_id": "x"}, {"$inc": {"seq": 1}}, upsert=True, return_document=ReturnDocument.AFTER
        )
        self.assertEqual(created["seq"], 1)
        before = await coll.find_one_and_update({"_id": "x"}, {"$inc": {"seq": 1}})
        self.assertEqual(before["seq"], 1)
        self.assertEqual((await coll.find_one({"_id": "x"}))["seq"], 2)
        self.assertIsNone(await coll.find_one_and_update({"_id": "y"}, {"$inc": {"seq": 1}}))

    async def test_in_operator_matches_list_fields(self):
        coll = InMemoryDatabase().packs
        await coll.insert_one({"id": "a", "tags": ["kpop", "2000s"]})
        await coll.insert_one({"id": "b", "tags": ["rock"]})
        found = await coll.find({"tags": {"$in": ["kpop", "jazz"]}}).to_list()
        self.assertEqual([d["id"] for d in found], ["a"])
