"""
Shared pytest fixtures for the character sheet test suite.

Tests run synchronously and drive async code with asyncio.run(); no
async plugin is needed.
"""

import pytest
from unittest.mock import AsyncMock, MagicMock

from models.characters import Character, Equipment
from rules.engine import create_default_character
from rules.rulebook import default_rulebook
from tools.character_store import MemoryCharacterStore


# ---------------------------------------------------------------------------
# Builders (reusable outside fixtures)
# ---------------------------------------------------------------------------

def make_character(**overrides) -> Character:
    """A stored default character (Воин, Человек, level 1) with overrides applied by wire name."""
    doc = create_default_character().to_document()
    doc["id"] = overrides.pop("id", "char-1")
    doc["userId"] = overrides.pop("userId", "user-1")
    doc.update(overrides)
    return Character.model_validate(doc)


def make_armor(name: str, armor_type: str, base_ac: int, max_dex=None, equipped=False, item_id=None) -> Equipment:
    return Equipment(
        id=item_id or name,
        name=name,
        category="armor",
        is_armor=True,
        armor_type=armor_type,
        armor_base_ac=base_ac,
        armor_max_dex_bonus=max_dex,
        equipped=equipped,
    )


# ---------------------------------------------------------------------------
# Pytest fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def rulebook():
    return default_rulebook()


@pytest.fixture
def character():
    return make_character()


@pytest.fixture
def character_payload():
    """Create-request body for a fresh default character (wire keys, no id)."""
    return create_default_character().to_document()


@pytest.fixture
def memory_store(rulebook):
    return MemoryCharacterStore(rulebook=rulebook)


@pytest.fixture
def mock_persistence():
    """AsyncMock persistence whose update() echoes nothing; tests set return_value/side_effect."""
    persistence = MagicMock()
    persistence.update = AsyncMock(return_value=None)
    return persistence
