"""
Tests for tools/character_sync.py — Optimistic autosave session.

Persistence is either an AsyncMock or a small in-test fake that can hold
a request open, so in-flight behaviour is deterministic. Debounce delays
are short (0.02s) or long (10s, then flushed by hand).
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest
from pydantic import ValidationError

from tools.character_store import MemoryCharacterStore
from tools.character_sync import (
    CharacterSyncSession,
    SnapshotState,
    StorePersistence,
    SyncError,
    SyncMode,
)
from tools.merge import merge_character

from conftest import make_character


class EchoPersistence:
    """Applies patches like the server would. Can block and fail on demand."""

    def __init__(self, character):
        self.character = character
        self.calls = []
        self.gate = None
        self.fail_with = None

    async def update(self, character_id, patch):
        self.calls.append(patch)
        if self.gate is not None:
            await self.gate.wait()
        if self.fail_with is not None:
            raise self.fail_with
        self.character = merge_character(self.character, patch)
        return self.character


class TestSnapshotState:

    def test_rollback_is_assignment(self):
        confirmed = make_character()
        state = SnapshotState.from_character(confirmed)
        state.optimistic = merge_character(confirmed, {"currentHp": 1})
        state.pending = {"currentHp": 1}
        state.rollback()
        assert state.optimistic is confirmed
        assert state.pending == {}


class TestLiveMode:

    def test_apply_is_optimistic_and_buffered(self, mock_persistence):
        session = CharacterSyncSession(make_character(), mock_persistence, debounce_seconds=10)

        async def run():
            shown = session.apply({"currentHp": 4})
            assert shown.current_hp == 4
            assert session.current.current_hp == 4
            assert session.confirmed.current_hp == 10
            assert session.pending == {"currentHp": 4}
            mock_persistence.update.assert_not_awaited()
            session._timer.cancel()

        asyncio.run(run())

    def test_debounced_flush_sends_whole_buffer_once(self):
        character = make_character()
        persistence = EchoPersistence(character)
        session = CharacterSyncSession(character, persistence, debounce_seconds=0.02)

        async def run():
            session.apply({"currentHp": 8})
            session.apply({"abilityScores": {"STR": 14}})
            session.apply({"abilityScores": {"DEX": 12}})
            await session.wait_idle()
            assert persistence.calls == [
                {"currentHp": 8, "abilityScores": {"STR": 14, "DEX": 12}},
            ]
            assert session.confirmed.ability_scores.DEX == 12
            assert session.pending == {}
            assert session.has_unsaved_changes is False

        asyncio.run(run())

    def test_invalid_edit_rejected_locally(self, mock_persistence):
        session = CharacterSyncSession(make_character(), mock_persistence, debounce_seconds=10)
        with pytest.raises(ValidationError):
            session.apply({"abilityScores": {"STR": 0}})
        assert session.pending == {}
        assert session.current.ability_scores.STR == 10

    def test_mixed_key_spellings_send_the_latest_value(self):
        character = make_character()
        persistence = EchoPersistence(character)
        session = CharacterSyncSession(character, persistence, debounce_seconds=10)

        async def run():
            session.apply({"current_hp": 5})
            session.apply({"currentHp": 6})
            session.apply({"current_hp": 7})
            assert session.current.current_hp == 7
            assert session.pending == {"currentHp": 7}
            assert await session.flush() is True
            assert persistence.calls == [{"currentHp": 7}]
            assert session.confirmed.current_hp == 7
            assert session.current.current_hp == 7

        asyncio.run(run())

    def test_editing_buffer_uses_wire_keys(self):
        character = make_character()
        persistence = EchoPersistence(character)
        session = CharacterSyncSession(character, persistence)

        async def run():
            session.begin_editing()
            session.apply({"temp_hp": 2})
            session.apply({"tempHp": 4})
            assert session.edits == {"tempHp": 4}
            await session.save()
            assert persistence.calls == [{"tempHp": 4}]
            assert session.confirmed.temp_hp == 4

        asyncio.run(run())

    def test_apply_without_event_loop_changes_nothing(self, mock_persistence):
        session = CharacterSyncSession(make_character(), mock_persistence)
        with pytest.raises(RuntimeError):
            session.apply({"currentHp": 3})
        assert session.current.current_hp == 10
        assert session.pending == {}
        assert session._timer.is_armed is False

    def test_empty_patch_is_noop(self, mock_persistence):
        session = CharacterSyncSession(make_character(), mock_persistence)
        session.apply({})
        assert session.pending == {}


class TestRollback:

    def test_failure_restores_exact_snapshot(self):
        original = make_character()
        persistence = MagicMock()
        persistence.update = AsyncMock(side_effect=ConnectionError("db down"))
        errors = []
        session = CharacterSyncSession(original, persistence, debounce_seconds=10, on_error=errors.append)

        async def run():
            session.apply({"currentHp": 1, "abilityScores": {"STR": 18}})
            ok = await session.flush()
            assert ok is False
            assert session.current == original
            assert session.pending == {}
            assert len(errors) == 1
            assert isinstance(errors[0], SyncError)
            assert isinstance(errors[0].cause, ConnectionError)
            assert errors[0].patch == {"currentHp": 1, "abilityScores": {"STR": 18}}

            # Next edit starts clean on top of the snapshot
            session.apply({"name": "Тор"})
            assert session.current.name == "Тор"
            assert session.current.current_hp == original.current_hp
            assert session.current.ability_scores.STR == original.ability_scores.STR
            assert session.pending == {"name": "Тор"}
            session._timer.cancel()

        asyncio.run(run())

    def test_not_found_is_a_failure(self, mock_persistence):
        errors = []
        session = CharacterSyncSession(make_character(), mock_persistence, debounce_seconds=10, on_error=errors.append)

        async def run():
            session.apply({"currentHp": 2})
            assert await session.flush() is False
            assert session.current.current_hp == 10
            assert "not found" in str(errors[0])

        asyncio.run(run())

    def test_no_automatic_retry(self):
        persistence = MagicMock()
        persistence.update = AsyncMock(side_effect=RuntimeError("nope"))
        session = CharacterSyncSession(make_character(), persistence, debounce_seconds=0.01)

        async def run():
            session.apply({"currentHp": 2})
            await session.wait_idle()
            await asyncio.sleep(0.05)
            assert persistence.update.await_count == 1
            assert session.last_error is not None

        asyncio.run(run())

    def test_async_error_callback(self, mock_persistence):
        seen = []

        async def on_error(error):
            seen.append(error)

        session = CharacterSyncSession(make_character(), mock_persistence, debounce_seconds=10, on_error=on_error)

        async def run():
            session.apply({"currentHp": 2})
            await session.flush()
            assert len(seen) == 1

        asyncio.run(run())


class TestInFlight:

    def test_edits_during_flight_go_to_a_new_buffer(self):
        character = make_character()
        persistence = EchoPersistence(character)
        session = CharacterSyncSession(character, persistence, debounce_seconds=10)

        async def run():
            persistence.gate = asyncio.Event()
            session.apply({"currentHp": 7})
            first = asyncio.create_task(session.flush())
            await asyncio.sleep(0)
            assert session.is_saving is True

            session.apply({"tempHp": 3})
            second = asyncio.create_task(session.flush())
            await asyncio.sleep(0.01)
            # Still only the first request outstanding
            assert persistence.calls == [{"currentHp": 7}]
            assert session.pending == {"tempHp": 3}

            persistence.gate.set()
            assert await first is True
            assert await second is True
            assert persistence.calls == [{"currentHp": 7}, {"tempHp": 3}]
            assert session.confirmed.temp_hp == 3
            assert session.current.current_hp == 7
            session._timer.cancel()

        asyncio.run(run())

    def test_server_reply_keeps_newer_local_edits(self):
        character = make_character()
        persistence = EchoPersistence(character)
        session = CharacterSyncSession(character, persistence, debounce_seconds=10)

        async def run():
            persistence.gate = asyncio.Event()
            session.apply({"currentHp": 7})
            flight = asyncio.create_task(session.flush())
            await asyncio.sleep(0)
            session.apply({"name": "Тор"})
            persistence.gate.set()
            await flight
            assert session.confirmed.name == "Новый персонаж"
            assert session.current.name == "Тор"
            assert session.current.current_hp == 7
            session._timer.cancel()

        asyncio.run(run())

    def test_failed_flight_keeps_newer_edits(self):
        character = make_character()
        persistence = EchoPersistence(character)
        session = CharacterSyncSession(character, persistence, debounce_seconds=10)

        async def run():
            persistence.gate = asyncio.Event()
            persistence.fail_with = ConnectionError("lost")
            session.apply({"currentHp": 7})
            flight = asyncio.create_task(session.flush())
            await asyncio.sleep(0)
            session.apply({"name": "Тор"})
            persistence.gate.set()
            assert await flight is False
            assert session.current.current_hp == 10
            assert session.current.name == "Тор"
            assert session.pending == {"name": "Тор"}
            session._timer.cancel()

        asyncio.run(run())


class TestEditingMode:

    def test_edits_stay_local_until_save(self):
        character = make_character()
        persistence = EchoPersistence(character)
        session = CharacterSyncSession(character, persistence, debounce_seconds=0.01)

        async def run():
            session.begin_editing()
            assert session.mode is SyncMode.EDITING
            session.apply({"name": "Тор"})
            session.apply({"abilityScores": {"STR": 16}})
            await asyncio.sleep(0.05)
            assert persistence.calls == []
            assert session.current.name == "Тор"
            assert session.state.optimistic.name == "Новый персонаж"

            assert await session.save() is True
            assert session.mode is SyncMode.LIVE
            assert persistence.calls == [{"name": "Тор", "abilityScores": {"STR": 16}}]
            assert session.edits == {}
            assert session.confirmed.ability_scores.STR == 16

        asyncio.run(run())

    def test_cancel_discards_edits(self, mock_persistence):
        session = CharacterSyncSession(make_character(), mock_persistence)
        session.begin_editing()
        session.apply({"name": "Тор"})
        session.cancel_editing()
        assert session.is_editing is False
        assert session.current.name == "Новый персонаж"

    def test_failed_save_rolls_back(self):
        character = make_character()
        persistence = EchoPersistence(character)
        persistence.fail_with = RuntimeError("500")
        session = CharacterSyncSession(character, persistence)

        async def run():
            session.begin_editing()
            session.apply({"name": "Тор"})
            assert await session.save() is False
            assert session.mode is SyncMode.LIVE
            assert session.current.name == "Новый персонаж"

        asyncio.run(run())


class TestClose:

    def test_close_flushes_pending(self):
        character = make_character()
        persistence = EchoPersistence(character)
        session = CharacterSyncSession(character, persistence, debounce_seconds=10)

        async def run():
            session.apply({"currentHp": 5})
            assert await session.close() is True
            assert persistence.calls == [{"currentHp": 5}]
            with pytest.raises(RuntimeError):
                session.apply({"currentHp": 6})

        asyncio.run(run())

    def test_close_drops_unsaved_edit_mode_changes(self):
        character = make_character()
        persistence = EchoPersistence(character)
        session = CharacterSyncSession(character, persistence)

        async def run():
            session.begin_editing()
            session.apply({"name": "Тор"})
            await session.close()
            assert persistence.calls == []

        asyncio.run(run())


class TestStorePersistence:

    def test_session_over_memory_store(self, character_payload):
        store = MemoryCharacterStore()

        async def run():
            created = await store.create(character_payload, "alice")
            session = CharacterSyncSession(created, StorePersistence(store, "alice"), debounce_seconds=10)
            session.apply({"money": {"gp": 12}})
            assert await session.flush() is True
            stored = await store.get(created.id, "alice")
            assert stored.money.gp == 12

            other = CharacterSyncSession(created, StorePersistence(store, "bob"), debounce_seconds=10)
            other.apply({"money": {"gp": 99}})
            assert await other.flush() is False
            assert (await store.get(created.id, "alice")).money.gp == 12

        asyncio.run(run())
