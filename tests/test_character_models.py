"""
Tests for models/characters.py — Validation gate for character documents.
"""

import pytest
from pydantic import ValidationError

from models.characters import Character, CharacterCreate, Equipment, Money

from conftest import make_armor


class TestCharacterCreate:

    def test_round_trips_wire_names(self, character_payload):
        model = CharacterCreate.model_validate(character_payload)
        doc = model.to_document()
        assert doc["class"] == "Воин"
        assert doc["abilityScores"]["STR"] == 10
        assert "char_class" not in doc
        assert "currentHp" in doc

    def test_accepts_attribute_names(self, character_payload):
        payload = dict(character_payload)
        payload["char_class"] = payload.pop("class")
        assert CharacterCreate.model_validate(payload).char_class == "Воин"

    def test_ability_score_out_of_range(self, character_payload):
        character_payload["abilityScores"]["STR"] = 31
        with pytest.raises(ValidationError):
            CharacterCreate.model_validate(character_payload)

    def test_missing_required_field(self, character_payload):
        del character_payload["race"]
        with pytest.raises(ValidationError):
            CharacterCreate.model_validate(character_payload)

    def test_empty_name_rejected(self, character_payload):
        character_payload["name"] = ""
        with pytest.raises(ValidationError):
            CharacterCreate.model_validate(character_payload)

    def test_level_bounds(self, character_payload):
        character_payload["level"] = 21
        with pytest.raises(ValidationError):
            CharacterCreate.model_validate(character_payload)

    def test_unknown_keys_ignored(self, character_payload):
        character_payload["favouriteColour"] = "green"
        doc = CharacterCreate.model_validate(character_payload).to_document()
        assert "favouriteColour" not in doc

    def test_two_body_armors_rejected(self, character_payload):
        character_payload["equipment"] = [
            make_armor("Кожаный", "light", 11, equipped=True).model_dump(by_alias=True),
            make_armor("Латы", "heavy", 18, max_dex=0, equipped=True).model_dump(by_alias=True),
        ]
        with pytest.raises(ValidationError):
            CharacterCreate.model_validate(character_payload)

    def test_armor_plus_shield_allowed(self, character_payload):
        character_payload["equipment"] = [
            make_armor("Кожаный", "light", 11, equipped=True).model_dump(by_alias=True),
            make_armor("Щит", "shield", 2, max_dex=0, equipped=True).model_dump(by_alias=True),
        ]
        assert len(CharacterCreate.model_validate(character_payload).equipment) == 2


class TestEquipmentAndMoney:

    def test_generated_ids_are_unique(self):
        assert Equipment(name="Факел").id != Equipment(name="Факел").id

    def test_quantity_must_be_positive(self):
        with pytest.raises(ValidationError):
            Equipment(name="Факел", quantity=0)

    def test_armor_slots(self):
        assert make_armor("Кираса", "medium", 15).is_body_armor is True
        assert make_armor("Щит", "shield", 2).is_shield is True
        assert make_armor("Щит", "shield", 2).is_body_armor is False
        assert Equipment(name="Факел").is_body_armor is False

    def test_negative_coins_rejected(self):
        with pytest.raises(ValidationError):
            Money(gp=-1)

    def test_total_gold(self):
        assert Money(pp=2, gp=3, ep=2, sp=10, cp=100).total_gold == pytest.approx(26.0)


class TestStoredCharacter:

    def test_requires_id(self, character_payload):
        with pytest.raises(ValidationError):
            Character.model_validate(character_payload)

    def test_user_id_alias(self, character_payload):
        character_payload.update({"id": "c1", "userId": "u1"})
        stored = Character.model_validate(character_payload)
        assert stored.user_id == "u1"
        assert stored.to_document()["userId"] == "u1"
