"""
Pydantic v2 data models — the contract for every character sheet write.

Every create and every merged update passes through these models first.
If validation fails, nothing is written.
"""

from models.characters import (
    AbilityScores,
    AbilityBonuses,
    SavingThrows,
    SkillProficiency,
    DeathSaves,
    Weapon,
    Feature,
    Equipment,
    Money,
    Proficiencies,
    CharacterCreate,
    Character,
    new_item_id,
)
from models.ruleset import (
    ABILITY_NAMES,
    ClassData,
    RaceData,
    SubraceData,
    ArmorData,
    BaseItem,
    SkillInfo,
    RulesetData,
)

__all__ = [
    "AbilityScores",
    "AbilityBonuses",
    "SavingThrows",
    "SkillProficiency",
    "DeathSaves",
    "Weapon",
    "Feature",
    "Equipment",
    "Money",
    "Proficiencies",
    "CharacterCreate",
    "Character",
    "new_item_id",
    "ABILITY_NAMES",
    "ClassData",
    "RaceData",
    "SubraceData",
    "ArmorData",
    "BaseItem",
    "SkillInfo",
    "RulesetData",
]
