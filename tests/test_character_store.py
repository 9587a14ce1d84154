"""
Tests for tools/character_store.py — Per-user character persistence.

MemoryCharacterStore is exercised end to end. MongoCharacterStore is
tested against an AsyncMock collection (no MongoDB needed).
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest
from pydantic import ValidationError

from tools.character_store import MemoryCharacterStore, MongoCharacterStore


class TestMemoryStoreCreate:

    def test_create_assigns_id_and_owner(self, memory_store, character_payload):
        async def run():
            created = await memory_store.create(character_payload, "alice")
            assert created.id
            assert created.user_id == "alice"
            assert created.name == "Новый персонаж"

        asyncio.run(run())

    def test_client_ids_are_ignored(self, memory_store, character_payload):
        character_payload.update({"id": "chosen", "userId": "mallory"})

        async def run():
            created = await memory_store.create(character_payload, "alice")
            assert created.id != "chosen"
            assert created.user_id == "alice"

        asyncio.run(run())

    def test_default_skills_filled(self, memory_store, character_payload, rulebook):
        character_payload.pop("skills")

        async def run():
            created = await memory_store.create(character_payload, "alice")
            assert set(created.skills) == {s.name for s in rulebook.skills}
            assert not any(p.proficient for p in created.skills.values())

        asyncio.run(run())

    def test_invalid_payload_writes_nothing(self, memory_store, character_payload):
        character_payload["abilityScores"]["DEX"] = 0

        async def run():
            with pytest.raises(ValidationError):
                await memory_store.create(character_payload, "alice")
            assert await memory_store.list("alice") == []

        asyncio.run(run())


class TestMemoryStoreOwnership:

    def test_foreign_ids_look_missing(self, memory_store, character_payload):
        async def run():
            created = await memory_store.create(character_payload, "alice")
            assert await memory_store.get(created.id, "bob") is None
            assert await memory_store.update(created.id, "bob", {"name": "Взлом"}) is None
            assert await memory_store.delete(created.id, "bob") is False
            # Untouched for the owner
            fetched = await memory_store.get(created.id, "alice")
            assert fetched.name == "Новый персонаж"

        asyncio.run(run())

    def test_list_is_scoped(self, memory_store, character_payload):
        async def run():
            await memory_store.create(character_payload, "alice")
            await memory_store.create(character_payload, "alice")
            await memory_store.create(character_payload, "bob")
            assert len(await memory_store.list("alice")) == 2
            assert len(await memory_store.list("bob")) == 1
            assert await memory_store.list("carol") == []

        asyncio.run(run())


class TestMemoryStoreUpdate:

    def test_deep_merge_update(self, memory_store, character_payload):
        async def run():
            created = await memory_store.create(character_payload, "alice")
            updated = await memory_store.update(created.id, "alice", {"abilityScores": {"STR": 15}, "currentHp": 4})
            assert updated.ability_scores.STR == 15
            assert updated.ability_scores.CON == 10
            assert updated.current_hp == 4
            assert (await memory_store.get(created.id, "alice")).current_hp == 4

        asyncio.run(run())

    def test_invalid_update_keeps_stored_document(self, memory_store, character_payload):
        async def run():
            created = await memory_store.create(character_payload, "alice")
            with pytest.raises(ValidationError):
                await memory_store.update(created.id, "alice", {"level": 0, "name": "Тор"})
            stored = await memory_store.get(created.id, "alice")
            assert stored.level == 1
            assert stored.name == "Новый персонаж"

        asyncio.run(run())

    def test_missing_id(self, memory_store):
        async def run():
            assert await memory_store.update("nope", "alice", {"name": "x"}) is None

        asyncio.run(run())

    def test_delete(self, memory_store, character_payload):
        async def run():
            created = await memory_store.create(character_payload, "alice")
            assert await memory_store.delete(created.id, "alice") is True
            assert await memory_store.get(created.id, "alice") is None
            assert await memory_store.delete(created.id, "alice") is False

        asyncio.run(run())


# ---------------------------------------------------------------------------
# MongoDB (mocked collection)
# ---------------------------------------------------------------------------

def _mongo_store(collection):
    store = MongoCharacterStore(uri="mongodb://unused", db_name="test")
    store._db = MagicMock()
    store._db.characters = collection
    return store


class TestMongoStore:

    def test_requires_connection(self):
        store = MongoCharacterStore(uri="mongodb://unused")
        assert store.is_connected is False

        async def run():
            with pytest.raises(RuntimeError):
                await store.list("alice")

        asyncio.run(run())

    def test_get_scopes_by_owner_and_strips_mongo_id(self, character_payload):
        doc = dict(character_payload, id="c1", userId="alice", _id="mongo-object-id")
        collection = MagicMock()
        collection.find_one = AsyncMock(return_value=doc)
        store = _mongo_store(collection)

        async def run():
            character = await store.get("c1", "alice")
            assert character.id == "c1"
            collection.find_one.assert_awaited_once_with({"id": "c1", "userId": "alice"})

        asyncio.run(run())

    def test_create_inserts_validated_document(self, character_payload):
        collection = MagicMock()
        collection.insert_one = AsyncMock()
        store = _mongo_store(collection)

        async def run():
            created = await store.create(character_payload, "alice")
            inserted = collection.insert_one.await_args.args[0]
            assert inserted["id"] == created.id
            assert inserted["userId"] == "alice"
            assert "createdAt" in inserted and "updatedAt" in inserted

        asyncio.run(run())

    def test_update_missing_returns_none(self):
        collection = MagicMock()
        collection.find_one = AsyncMock(return_value=None)
        collection.update_one = AsyncMock()
        store = _mongo_store(collection)

        async def run():
            assert await store.update("c1", "alice", {"name": "x"}) is None
            collection.update_one.assert_not_awaited()

        asyncio.run(run())

    def test_update_sets_merged_document(self, character_payload):
        doc = dict(character_payload, id="c1", userId="alice")
        collection = MagicMock()
        collection.find_one = AsyncMock(return_value=doc)
        collection.update_one = AsyncMock(return_value=MagicMock(matched_count=1))
        store = _mongo_store(collection)

        async def run():
            updated = await store.update("c1", "alice", {"money": {"gp": 7}})
            assert updated.money.gp == 7
            query, update = collection.update_one.await_args.args
            assert query == {"id": "c1", "userId": "alice"}
            assert update["$set"]["money"]["gp"] == 7

        asyncio.run(run())

    def test_delete(self):
        collection = MagicMock()
        collection.delete_one = AsyncMock(return_value=MagicMock(deleted_count=0))
        store = _mongo_store(collection)

        async def run():
            assert await store.delete("c1", "alice") is False

        asyncio.run(run())
