"""
Character Sync — Optimistic autosave between a sheet and its persistence backend.

One CharacterSyncSession per open character. Two modes:
    LIVE     each edit is applied locally at once, buffered, and sent
             after a quiet period (debounced) as one partial update.
    EDITING  edits collect in a separate buffer with no network traffic
             until save() sends them in one update.

Only one update is in flight per session. Edits that arrive meanwhile go
into a fresh buffer and are sent after the current request settles.

A failed update rolls the local copy back to the last server-confirmed
character (plus any newer, still-unsent edits), drops the failed buffer,
and reports a SyncError. There is no automatic retry.

Pure Python + asyncio. The persistence object only needs:
    async update(character_id, patch) -> Character | None
"""

import asyncio
import inspect
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Optional

from models.characters import Character
from tools.character_store import CharacterStore
from tools.debounce import DebounceTimer
from tools.merge import deep_merge, merge_character, normalize_patch, patch_is_empty

logger = logging.getLogger("CharacterSync")

DEFAULT_DEBOUNCE_SECONDS = 0.5


class SyncMode(str, Enum):
    LIVE = "live"
    EDITING = "editing"


class SyncError(Exception):
    """A flush failed. The local copy has already been rolled back."""

    def __init__(self, message: str, patch: Dict[str, Any], cause: Optional[BaseException] = None):
        self.patch = patch
        self.cause = cause
        super().__init__(message)


@dataclass
class SnapshotState:
    """Confirmed server copy, optimistic local copy, and the unsent buffer.

    Rollback is a plain assignment: optimistic = confirmed.
    """

    confirmed: Character
    optimistic: Character
    pending: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_character(cls, character: Character) -> "SnapshotState":
        return cls(confirmed=character, optimistic=character)

    def rollback(self):
        self.optimistic = self.confirmed
        self.pending = {}


class StorePersistence:
    """Adapts a CharacterStore to the session's persistence interface for one owner."""

    def __init__(self, store: CharacterStore, owner_id: str):
        self.store = store
        self.owner_id = owner_id

    async def update(self, character_id: str, patch: Dict[str, Any]) -> Optional[Character]:
        return await self.store.update(character_id, self.owner_id, patch)


class CharacterSyncSession:
    """Optimistic cache + debounced, serialized flushes for one character.

    Usage:
        session = CharacterSyncSession(character, client, on_error=show_toast)
        session.apply({"currentHp": 7})   # UI updates from session.current
        ...
        await session.close()
    """

    def __init__(
        self,
        character: Character,
        persistence: Any,
        debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
        on_error: Optional[Callable[[SyncError], Any]] = None,
    ):
        self.character_id: str = character.id
        self.persistence = persistence
        self.on_error = on_error
        self.mode: SyncMode = SyncMode.LIVE
        self.last_error: Optional[SyncError] = None

        self._state = SnapshotState.from_character(character)
        self._edits: Dict[str, Any] = {}
        self._flush_lock = asyncio.Lock()
        self._timer = DebounceTimer(debounce_seconds, self.flush)
        self._closed = False

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def state(self) -> SnapshotState:
        return self._state

    @property
    def confirmed(self) -> Character:
        return self._state.confirmed

    @property
    def current(self) -> Character:
        """What the sheet should display right now."""
        if self.mode is SyncMode.EDITING and not patch_is_empty(self._edits):
            return merge_character(self._state.optimistic, self._edits)
        return self._state.optimistic

    @property
    def pending(self) -> Dict[str, Any]:
        return dict(self._state.pending)

    @property
    def edits(self) -> Dict[str, Any]:
        return dict(self._edits)

    @property
    def is_editing(self) -> bool:
        return self.mode is SyncMode.EDITING

    @property
    def is_saving(self) -> bool:
        return self._flush_lock.locked()

    @property
    def has_unsaved_changes(self) -> bool:
        return not patch_is_empty(self._state.pending) or not patch_is_empty(self._edits)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def apply(self, patch: Dict[str, Any]) -> Character:
        """Apply one edit. Returns the character as it should now display.

        Raises pydantic.ValidationError (and changes nothing) if the edit
        would produce an invalid character.
        In live mode it must be called with an event loop running;
        otherwise RuntimeError is raised, again with nothing changed.
        """
        if self._closed:
            raise RuntimeError("CharacterSyncSession is closed.")
        if patch_is_empty(patch):
            return self.current
        patch = normalize_patch(patch)

        if self.mode is SyncMode.EDITING:
            edits = deep_merge(self._edits, patch)
            merge_character(self._state.optimistic, edits)
            self._edits = edits
            return self.current

        optimistic = merge_character(self._state.optimistic, patch)
        # Arming needs a running loop; do it before touching state
        self._timer.arm()
        self._state.optimistic = optimistic
        self._state.pending = deep_merge(self._state.pending, patch)
        return self._state.optimistic

    # ------------------------------------------------------------------
    # Editing mode
    # ------------------------------------------------------------------

    def begin_editing(self):
        if self.mode is SyncMode.EDITING:
            return
        self.mode = SyncMode.EDITING
        self._edits = {}
        logger.info(f"Editing started for {self.character_id}")

    def cancel_editing(self):
        self._edits = {}
        self.mode = SyncMode.LIVE
        logger.info(f"Editing cancelled for {self.character_id}")

    async def save(self) -> bool:
        """Send the edit buffer (with any unsent live edits) in one update and leave editing mode."""
        edits = self._edits
        self._edits = {}
        self.mode = SyncMode.LIVE
        if not patch_is_empty(edits):
            self._state.optimistic = merge_character(self._state.optimistic, edits)
            self._state.pending = deep_merge(self._state.pending, edits)
        self._timer.cancel()
        return await self.flush()

    # ------------------------------------------------------------------
    # Flushing
    # ------------------------------------------------------------------

    async def flush(self) -> bool:
        """Send the pending buffer now. Returns False if the update failed.

        Waits for an in-flight update first; the buffer is swapped out
        before sending, so edits made during the request start a new one.
        """
        async with self._flush_lock:
            buffer = self._state.pending
            if patch_is_empty(buffer):
                return True
            self._state.pending = {}
            return await self._send(buffer)

    async def _send(self, buffer: Dict[str, Any]) -> bool:
        logger.info(f"Flushing {len(buffer)} field(s) for {self.character_id}")
        try:
            saved = await self.persistence.update(self.character_id, buffer)
        except Exception as e:
            await self._fail(buffer, f"Failed to save changes: {e}", e)
            return False

        if saved is None:
            await self._fail(buffer, f"Character {self.character_id} not found")
            return False

        self._state.confirmed = saved
        # Edits made during the request stay visible on top of the server copy
        self._state.optimistic = merge_character(saved, self._state.pending)
        self.last_error = None
        return True

    async def _fail(self, buffer: Dict[str, Any], message: str, cause: Optional[BaseException] = None):
        logger.warning(f"Sync failed for {self.character_id}: {message}")
        newer = self._state.pending
        self._state.rollback()
        if not patch_is_empty(newer):
            self._state.optimistic = merge_character(self._state.confirmed, newer)
            self._state.pending = newer

        error = SyncError(message, buffer, cause)
        self.last_error = error
        if self.on_error:
            try:
                result = self.on_error(error)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(f"Sync error callback failed: {e}", exc_info=True)

    async def wait_idle(self):
        """Wait for the debounce timer and any in-flight update to settle."""
        await self._timer.wait_idle()
        async with self._flush_lock:
            pass

    async def close(self) -> bool:
        """Best-effort final flush of live edits. Unsaved editing-mode changes are dropped."""
        if self._closed:
            return True
        self._closed = True
        self._timer.cancel()
        self._edits = {}
        self.mode = SyncMode.LIVE
        return await self.flush()
