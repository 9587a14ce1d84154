"""
Character schemas — the validated shape of a character sheet document.

These models gate ALL writes to the characters collection. A create or
merged update that fails validation is rejected whole; nothing is written.

Wire names are the camelCase JSON keys the sheet client sends
(abilityScores, currentHp, ...). Always dump with by_alias=True.
"""

from typing import List, Optional, Dict, Any
from uuid import uuid4

from pydantic import BaseModel, Field, model_validator

from models.ruleset import ArmorType, EquipmentCategory, WeaponAbilityMod


def new_item_id() -> str:
    """Identifier for a weapon, feature or equipment entry. Stable across reorder."""
    return str(uuid4())


class AbilityScores(BaseModel):
    STR: int = Field(default=10, ge=1, le=30)
    DEX: int = Field(default=10, ge=1, le=30)
    CON: int = Field(default=10, ge=1, le=30)
    INT: int = Field(default=10, ge=1, le=30)
    WIS: int = Field(default=10, ge=1, le=30)
    CHA: int = Field(default=10, ge=1, le=30)


class AbilityBonuses(BaseModel):
    STR: int = 0
    DEX: int = 0
    CON: int = 0
    INT: int = 0
    WIS: int = 0
    CHA: int = 0


class SavingThrows(BaseModel):
    STR: bool = False
    DEX: bool = False
    CON: bool = False
    INT: bool = False
    WIS: bool = False
    CHA: bool = False


class SkillProficiency(BaseModel):
    """Expertise only counts when proficient; storage allows any pair."""

    proficient: bool = False
    expertise: bool = False


class DeathSaves(BaseModel):
    successes: int = Field(default=0, ge=0, le=3)
    failures: int = Field(default=0, ge=0, le=3)


class Weapon(BaseModel):
    """A standalone weapon entry (not backed by an inventory item)."""

    id: str = Field(default_factory=new_item_id)
    name: str
    attack_bonus: int = Field(default=0, alias="attackBonus")
    damage: str = "1d4"
    damage_type: str = Field(default="", alias="damageType")
    properties: Optional[str] = None
    ability_mod: WeaponAbilityMod = Field(default="str", alias="abilityMod")
    is_finesse: Optional[bool] = Field(default=None, alias="isFinesse")

    model_config = {"populate_by_name": True}


class Feature(BaseModel):
    id: str = Field(default_factory=new_item_id)
    name: str
    source: str = ""
    description: str = ""


class Equipment(BaseModel):
    """An inventory item. Weapon and armor sub-fields are optional."""

    id: str = Field(default_factory=new_item_id)
    name: str
    quantity: int = Field(default=1, ge=1)
    weight: Optional[float] = None
    description: Optional[str] = None
    category: EquipmentCategory = "misc"
    # Armor properties
    is_armor: Optional[bool] = Field(default=None, alias="isArmor")
    armor_type: Optional[ArmorType] = Field(default=None, alias="armorType")
    armor_base_ac: Optional[int] = Field(default=None, alias="armorBaseAC")
    armor_max_dex_bonus: Optional[int] = Field(default=None, alias="armorMaxDexBonus")
    # Weapon properties
    is_weapon: Optional[bool] = Field(default=None, alias="isWeapon")
    damage: Optional[str] = None
    damage_type: Optional[str] = Field(default=None, alias="damageType")
    weapon_properties: Optional[str] = Field(default=None, alias="weaponProperties")
    attack_bonus: Optional[int] = Field(default=None, alias="attackBonus")
    ability_mod: Optional[WeaponAbilityMod] = Field(default=None, alias="abilityMod")
    is_finesse: Optional[bool] = Field(default=None, alias="isFinesse")
    equipped: Optional[bool] = None

    model_config = {"populate_by_name": True}

    @property
    def is_body_armor(self) -> bool:
        """Armor that takes the single body-armor slot (anything but a shield)."""
        return bool(self.is_armor) and self.armor_type != "shield"

    @property
    def is_shield(self) -> bool:
        return bool(self.is_armor) and self.armor_type == "shield"


class Money(BaseModel):
    cp: int = Field(default=0, ge=0)
    sp: int = Field(default=0, ge=0)
    ep: int = Field(default=0, ge=0)
    gp: int = Field(default=0, ge=0)
    pp: int = Field(default=0, ge=0)

    @property
    def total_gold(self) -> float:
        """Gold-piece equivalent. Display only; coins are never converted."""
        return self.pp * 10 + self.gp + self.ep * 0.5 + self.sp * 0.1 + self.cp * 0.01


class Proficiencies(BaseModel):
    languages: List[str] = []
    weapons: List[str] = []
    armor: List[str] = []
    tools: List[str] = []


class CharacterCreate(BaseModel):
    """Schema for a new character sheet (everything but the server-assigned id)."""

    name: str = Field(min_length=1)
    avatar: Optional[str] = None
    char_class: str = Field(alias="class")
    subclass: Optional[str] = None
    race: str
    subrace: Optional[str] = None
    level: int = Field(default=1, ge=1, le=20)
    background: Optional[str] = None
    alignment: Optional[str] = None
    experience: int = Field(default=0, ge=0)

    ability_scores: AbilityScores = Field(alias="abilityScores")
    custom_ability_bonuses: Optional[AbilityBonuses] = Field(default=None, alias="customAbilityBonuses")
    saving_throws: SavingThrows = Field(alias="savingThrows")
    skills: Optional[Dict[str, SkillProficiency]] = None

    armor_class: int = Field(default=10, ge=0, alias="armorClass")
    custom_ac_bonus: int = Field(default=0, alias="customACBonus")
    initiative: int = 0
    custom_initiative_bonus: int = Field(default=0, alias="customInitiativeBonus")
    speed: int = Field(default=30, ge=0)
    max_hp: int = Field(default=10, ge=0, alias="maxHp")
    current_hp: int = Field(default=10, alias="currentHp")
    temp_hp: int = Field(default=0, ge=0, alias="tempHp")
    hit_dice: str = Field(default="1d10", alias="hitDice")
    hit_dice_remaining: int = Field(default=1, ge=0, alias="hitDiceRemaining")
    death_saves: DeathSaves = Field(alias="deathSaves")

    weapons: List[Weapon] = []
    features: List[Feature] = []
    equipment: List[Equipment] = []
    money: Money = Field(default_factory=Money)
    proficiencies: Proficiencies = Field(default_factory=Proficiencies)
    proficiency_bonus: int = Field(default=2, alias="proficiencyBonus")

    notes: Optional[str] = None
    appearance: Optional[str] = None
    allies: Optional[str] = None
    factions: Optional[str] = None

    equipment_locked: bool = Field(default=False, alias="equipmentLocked")
    weapons_locked: bool = Field(default=False, alias="weaponsLocked")
    features_locked: bool = Field(default=False, alias="featuresLocked")

    model_config = {"populate_by_name": True, "extra": "ignore"}

    @model_validator(mode="after")
    def single_body_armor(self):
        worn = [e.name for e in self.equipment if e.equipped and e.is_body_armor]
        if len(worn) > 1:
            raise ValueError(f"only one armor may be equipped at a time, got {worn}")
        return self

    def to_document(self) -> Dict[str, Any]:
        """Plain JSON-ready dict with wire (camelCase) keys."""
        return self.model_dump(by_alias=True, mode="json")


class Character(CharacterCreate):
    """A stored character sheet, owned by exactly one user."""

    id: str
    user_id: Optional[str] = Field(default=None, alias="userId")
    skills: Dict[str, SkillProficiency] = {}
