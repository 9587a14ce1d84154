"""
CharacterStore — Per-user document store for character sheets.

Every create and every merged update passes through Pydantic validation.
If validation fails, pydantic.ValidationError propagates and nothing is
written. All operations are scoped by owner: another user's id behaves
exactly like a missing id.

Two implementations:
  - MongoCharacterStore: async MongoDB via motor (one `characters` collection)
  - MemoryCharacterStore: in-process dicts, for local runs and tests

Requires (Mongo):
  - MONGODB_URI in .env (default: mongodb://localhost:27017)
  - SHEET_DB_NAME in .env (default: character_sheets)
"""

import asyncio
import logging
import os
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from motor.motor_asyncio import AsyncIOMotorClient

from models.characters import Character, CharacterCreate, new_item_id
from rules.engine import default_skills
from rules.rulebook import RuleBook
from tools.merge import PROTECTED_KEYS, merge_character

logger = logging.getLogger("CharacterStore")


def _now() -> datetime:
    return datetime.now(timezone.utc)


class CharacterStore(ABC):
    """The persistence contract the API and the sync session consume."""

    def __init__(self, rulebook: Optional[RuleBook] = None):
        self.rulebook = rulebook

    @abstractmethod
    async def list(self, owner_id: str) -> List[Character]:
        ...

    @abstractmethod
    async def get(self, character_id: str, owner_id: str) -> Optional[Character]:
        ...

    @abstractmethod
    async def create(self, data: Dict[str, Any], owner_id: str) -> Character:
        ...

    @abstractmethod
    async def update(
        self, character_id: str, owner_id: str, patch: Dict[str, Any]
    ) -> Optional[Character]:
        ...

    @abstractmethod
    async def delete(self, character_id: str, owner_id: str) -> bool:
        ...

    def build_new(self, data: Dict[str, Any], owner_id: str) -> Character:
        """Validate a create payload and turn it into a stored Character.

        Client-supplied id / userId are discarded. A missing skill map is
        filled with every skill at no proficiency.
        """
        payload = {k: v for k, v in data.items() if k not in PROTECTED_KEYS}
        validated = CharacterCreate.model_validate(payload)
        doc = validated.to_document()
        if not doc.get("skills"):
            doc["skills"] = {
                name: prof.model_dump() for name, prof in default_skills(self.rulebook).items()
            }
        doc["id"] = new_item_id()
        doc["userId"] = owner_id
        return Character.model_validate(doc)


# ---------------------------------------------------------------------------
# MongoDB
# ---------------------------------------------------------------------------

class MongoCharacterStore(CharacterStore):
    """Async MongoDB-backed store.

    Document shape: the character's wire fields plus `createdAt` and
    `updatedAt`. Writes are last-write-wins per document.
    """

    def __init__(
        self,
        uri: Optional[str] = None,
        db_name: Optional[str] = None,
        rulebook: Optional[RuleBook] = None,
    ):
        super().__init__(rulebook)
        self.uri = uri or os.getenv("MONGODB_URI", "mongodb://localhost:27017")
        self.db_name = db_name or os.getenv("SHEET_DB_NAME", "character_sheets")
        self._client: Any = None
        self._db: Any = None

    # ------------------------------------------------------------------
    # Connection
    # ------------------------------------------------------------------

    async def connect(self) -> bool:
        """Connect to MongoDB. Returns True on success."""
        try:
            self._client = AsyncIOMotorClient(self.uri)
            await self._client.admin.command("ping")
            self._db = self._client[self.db_name]
            logger.info(f"CharacterStore connected to MongoDB: {self.db_name}")
            return True
        except Exception as e:
            logger.error(f"MongoDB connection failed: {e}")
            self._client = None
            self._db = None
            return False

    async def close(self):
        if self._client:
            self._client.close()
            self._client = None
            self._db = None

    @property
    def is_connected(self) -> bool:
        return self._db is not None

    def _require_connection(self):
        if not self.is_connected:
            raise RuntimeError("CharacterStore is not connected to MongoDB.")

    async def ensure_indexes(self):
        self._require_connection()
        await self._db.characters.create_index([("userId", 1), ("id", 1)], unique=True)
        logger.info("Character indexes ensured.")

    @staticmethod
    def _to_character(doc: Dict[str, Any]) -> Character:
        doc.pop("_id", None)
        return Character.model_validate(doc)

    # ------------------------------------------------------------------
    # Characters
    # ------------------------------------------------------------------

    async def list(self, owner_id: str) -> List[Character]:
        self._require_connection()
        cursor = self._db.characters.find({"userId": owner_id}).sort("createdAt", 1)
        results = []
        async for doc in cursor:
            results.append(self._to_character(doc))
        return results

    async def get(self, character_id: str, owner_id: str) -> Optional[Character]:
        self._require_connection()
        doc = await self._db.characters.find_one({"id": character_id, "userId": owner_id})
        if not doc:
            return None
        return self._to_character(doc)

    async def create(self, data: Dict[str, Any], owner_id: str) -> Character:
        self._require_connection()
        character = self.build_new(data, owner_id)
        doc = character.to_document()
        now = _now()
        doc["createdAt"] = now
        doc["updatedAt"] = now
        await self._db.characters.insert_one(doc)
        logger.info(f"Created character {character.id} ({character.name}) for {owner_id}")
        return character

    async def update(
        self, character_id: str, owner_id: str, patch: Dict[str, Any]
    ) -> Optional[Character]:
        self._require_connection()
        existing = await self.get(character_id, owner_id)
        if existing is None:
            logger.warning(f"Character not found for patch: {character_id}")
            return None
        updated = merge_character(existing, patch)
        doc = updated.to_document()
        doc["updatedAt"] = _now()
        result = await self._db.characters.update_one(
            {"id": character_id, "userId": owner_id},
            {"$set": doc},
        )
        if result.matched_count == 0:
            # Deleted between read and write
            return None
        return updated

    async def delete(self, character_id: str, owner_id: str) -> bool:
        self._require_connection()
        result = await self._db.characters.delete_one({"id": character_id, "userId": owner_id})
        deleted = result.deleted_count > 0
        if deleted:
            logger.info(f"Deleted character {character_id} for {owner_id}")
        return deleted


# ---------------------------------------------------------------------------
# In-memory
# ---------------------------------------------------------------------------

class MemoryCharacterStore(CharacterStore):
    """Process-local store with the same contract. Contents vanish on exit."""

    def __init__(self, rulebook: Optional[RuleBook] = None):
        super().__init__(rulebook)
        # owner_id -> {character_id -> document}
        self._docs: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self._lock = asyncio.Lock()

    async def list(self, owner_id: str) -> List[Character]:
        async with self._lock:
            docs = list(self._docs.get(owner_id, {}).values())
        return [Character.model_validate(d) for d in docs]

    async def get(self, character_id: str, owner_id: str) -> Optional[Character]:
        async with self._lock:
            doc = self._docs.get(owner_id, {}).get(character_id)
        if doc is None:
            return None
        return Character.model_validate(doc)

    async def create(self, data: Dict[str, Any], owner_id: str) -> Character:
        character = self.build_new(data, owner_id)
        async with self._lock:
            self._docs.setdefault(owner_id, {})[character.id] = character.to_document()
        logger.info(f"Created character {character.id} ({character.name}) for {owner_id}")
        return character

    async def update(
        self, character_id: str, owner_id: str, patch: Dict[str, Any]
    ) -> Optional[Character]:
        async with self._lock:
            doc = self._docs.get(owner_id, {}).get(character_id)
            if doc is None:
                logger.warning(f"Character not found for patch: {character_id}")
                return None
            updated = merge_character(Character.model_validate(doc), patch)
            self._docs[owner_id][character_id] = updated.to_document()
        return updated

    async def delete(self, character_id: str, owner_id: str) -> bool:
        async with self._lock:
            removed = self._docs.get(owner_id, {}).pop(character_id, None)
        return removed is not None
