"""
Ruleset schemas — the static reference tables behind every derived number.

Class, race, armor, weapon and proficiency catalogs are loaded from YAML
and validated here once at startup. The Rules Engine only ever sees these
models through a RuleBook, never the raw file.
"""

from typing import List, Optional, Dict, Literal
from pydantic import BaseModel, Field, field_validator


ABILITY_NAMES = ("STR", "DEX", "CON", "INT", "WIS", "CHA")

ArmorType = Literal["none", "light", "medium", "heavy", "shield"]
EquipmentCategory = Literal["weapon", "armor", "food", "potion", "tool", "misc", "trash"]
WeaponAbilityMod = Literal["str", "dex"]


class ClassData(BaseModel):
    """A playable class: hit die, saving throws, starting proficiencies."""

    name: str
    hit_dice: str
    hit_dice_value: int = Field(ge=1)
    saving_throws: List[str] = []
    description: str = ""
    armor_proficiencies: List[str] = []
    weapon_proficiencies: List[str] = []
    tool_proficiencies: List[str] = []


class SubraceData(BaseModel):
    name: str
    ability_bonuses: Dict[str, int] = {}
    description: str = ""
    darkvision: Optional[int] = None
    weapon_proficiencies: List[str] = []
    armor_proficiencies: List[str] = []
    tool_proficiencies: List[str] = []


class RaceData(BaseModel):
    """A playable race with optional subraces layered on top."""

    name: str
    ability_bonuses: Dict[str, int] = {}
    speed: int = 30
    description: str = ""
    traits: List[str] = []
    languages: List[str] = []
    darkvision: Optional[int] = None
    weapon_proficiencies: List[str] = []
    armor_proficiencies: List[str] = []
    tool_proficiencies: List[str] = []
    subraces: Dict[str, SubraceData] = {}


class ArmorData(BaseModel):
    """Armor as the AC formula sees it.

    max_dex_bonus=None means the DEX modifier is added uncapped.
    """

    name: str = ""
    type: ArmorType = "none"
    base_ac: int = 10
    max_dex_bonus: Optional[int] = None
    stealth_disadvantage: bool = False
    strength_requirement: Optional[int] = None


class BaseItem(BaseModel):
    """A catalog entry that can be copied into a character's inventory."""

    name: str
    category: EquipmentCategory = "misc"
    weight: Optional[float] = None
    description: Optional[str] = None
    cost: Optional[str] = None
    # Weapon properties
    is_weapon: bool = False
    damage: Optional[str] = None
    damage_type: Optional[str] = None
    weapon_properties: Optional[str] = None
    weapon_type: Optional[Literal["melee", "ranged"]] = None
    ability_mod: Optional[WeaponAbilityMod] = None
    is_finesse: bool = False
    # Armor properties
    is_armor: bool = False
    armor_type: Optional[ArmorType] = None
    armor_base_ac: Optional[int] = None
    armor_max_dex_bonus: Optional[int] = None


class SkillInfo(BaseModel):
    name: str
    ability: str

    @field_validator("ability")
    @classmethod
    def validate_ability(cls, v):
        if v.upper() not in ABILITY_NAMES:
            raise ValueError(f"unknown ability '{v}'")
        return v.upper()


class RulesetData(BaseModel):
    """Every reference table of one rule set, as loaded from YAML."""

    name: str = "default"
    simple_weapon_category: str = "Простое оружие"
    martial_weapon_category: str = "Воинское оружие"
    default_class: str = "Воин"
    default_race: str = "Человек"
    default_alignment: str = ""
    default_languages: List[str] = []

    classes: Dict[str, ClassData] = {}
    races: Dict[str, RaceData] = {}
    xp_thresholds: List[int]
    armor: List[ArmorData] = []
    weapons: List[BaseItem] = []
    items: List[BaseItem] = []
    simple_weapons: List[str] = []
    martial_weapons: List[str] = []
    languages: List[str] = []
    armor_proficiencies: List[str] = []
    tool_proficiencies: List[str] = []
    skills: List[SkillInfo] = []
    alignments: List[str] = []

    @field_validator("xp_thresholds")
    @classmethod
    def validate_thresholds(cls, v):
        if len(v) != 20:
            raise ValueError(f"expected 20 XP thresholds, got {len(v)}")
        if v[0] != 0 or any(b < a for a, b in zip(v, v[1:])):
            raise ValueError("XP thresholds must start at 0 and never decrease")
        return v
