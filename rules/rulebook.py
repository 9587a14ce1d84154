"""
RuleBook — Lookup service over one rule set's reference tables.

The Rules Engine never touches the tables directly; it asks a RuleBook.
Swapping in another YAML file swaps the rule set without touching any
derivation code.

Unknown keys return None / empty results. Lookups never raise.
"""

import logging
import os
from functools import lru_cache
from pathlib import Path
from typing import Dict, List, Optional

import yaml

from models.ruleset import (
    ArmorData,
    BaseItem,
    ClassData,
    RaceData,
    RulesetData,
    SkillInfo,
    SubraceData,
)

logger = logging.getLogger("RuleBook")

DEFAULT_RULESET_PATH = Path(__file__).resolve().parent / "data" / "ruleset_ru.yaml"

# Carry weight used for catalog armor that has no explicit weight
_ARMOR_WEIGHT = {"light": 10, "medium": 20, "heavy": 45, "shield": 6}


class RuleBook:
    """Read-only view over a validated RulesetData."""

    def __init__(self, data: RulesetData):
        self.data = data
        self._simple = set(data.simple_weapons)
        self._martial = set(data.martial_weapons)
        self._base_items: List[BaseItem] = (
            list(data.weapons) + self._armor_items() + list(data.items)
        )

    @classmethod
    def from_yaml(cls, path) -> "RuleBook":
        """Load and validate a rule set file. Raises on malformed tables."""
        with open(path, "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}
        data = RulesetData.model_validate(raw)
        logger.info(
            f"Loaded rule set '{data.name}' from {path}: "
            f"{len(data.classes)} classes, {len(data.races)} races"
        )
        return cls(data)

    # ------------------------------------------------------------------
    # Classes & races
    # ------------------------------------------------------------------

    @property
    def class_names(self) -> List[str]:
        return list(self.data.classes.keys())

    @property
    def race_names(self) -> List[str]:
        return list(self.data.races.keys())

    def get_class(self, name: Optional[str]) -> Optional[ClassData]:
        if not name:
            return None
        return self.data.classes.get(name)

    def get_race(self, name: Optional[str]) -> Optional[RaceData]:
        if not name:
            return None
        return self.data.races.get(name)

    def get_subrace(self, race: Optional[str], subrace: Optional[str]) -> Optional[SubraceData]:
        race_data = self.get_race(race)
        if race_data is None or not subrace:
            return None
        return race_data.subraces.get(subrace)

    # ------------------------------------------------------------------
    # Progression
    # ------------------------------------------------------------------

    @property
    def xp_thresholds(self) -> List[int]:
        return list(self.data.xp_thresholds)

    @property
    def max_level(self) -> int:
        return len(self.data.xp_thresholds)

    def xp_threshold(self, level: int) -> int:
        """Cumulative XP needed for a level. Levels past the table clamp to its ends."""
        index = min(max(level, 1), self.max_level) - 1
        return self.data.xp_thresholds[index]

    # ------------------------------------------------------------------
    # Weapons & armor
    # ------------------------------------------------------------------

    @property
    def simple_weapon_category(self) -> str:
        return self.data.simple_weapon_category

    @property
    def martial_weapon_category(self) -> str:
        return self.data.martial_weapon_category

    def is_simple_weapon(self, name: str) -> bool:
        return name in self._simple

    def is_martial_weapon(self, name: str) -> bool:
        return name in self._martial

    def find_armor(self, name: str) -> Optional[ArmorData]:
        for armor in self.data.armor:
            if armor.name == name:
                return armor
        return None

    @property
    def base_items(self) -> List[BaseItem]:
        """Full catalog: weapons, wearable armor, then everything else."""
        return list(self._base_items)

    def find_base_item(self, name: str) -> Optional[BaseItem]:
        for item in self._base_items:
            if item.name == name:
                return item
        return None

    def base_items_in(self, category: str) -> List[BaseItem]:
        return [i for i in self._base_items if i.category == category]

    def _armor_items(self) -> List[BaseItem]:
        items = []
        for armor in self.data.armor:
            if armor.type == "none":
                continue
            items.append(BaseItem(
                name=armor.name,
                category="armor",
                is_armor=True,
                armor_type=armor.type,
                armor_base_ac=armor.base_ac,
                armor_max_dex_bonus=armor.max_dex_bonus,
                weight=_ARMOR_WEIGHT.get(armor.type),
                description="Помеха скрытности" if armor.stealth_disadvantage else None,
            ))
        return items

    # ------------------------------------------------------------------
    # Skills & proficiency presets
    # ------------------------------------------------------------------

    @property
    def skills(self) -> List[SkillInfo]:
        return list(self.data.skills)

    def skills_for_ability(self, ability: str) -> List[SkillInfo]:
        return [s for s in self.data.skills if s.ability == ability]

    def skill_ability(self, skill: str) -> Optional[str]:
        for s in self.data.skills:
            if s.name == skill:
                return s.ability
        return None

    def proficiency_presets(self, category: str) -> List[str]:
        """Selectable values for a proficiency category ('languages', 'weapons', ...)."""
        if category == "languages":
            return list(self.data.languages)
        if category == "weapons":
            return (
                [self.data.simple_weapon_category] + list(self.data.simple_weapons)
                + [self.data.martial_weapon_category] + list(self.data.martial_weapons)
            )
        if category == "armor":
            return list(self.data.armor_proficiencies)
        if category == "tools":
            return list(self.data.tool_proficiencies)
        return []

    def to_dict(self) -> Dict:
        return self.data.model_dump(mode="json")


@lru_cache(maxsize=None)
def load_rulebook(path: str) -> RuleBook:
    return RuleBook.from_yaml(path)


def default_rulebook() -> RuleBook:
    """The process-wide rule set (SHEET_RULESET_PATH or the bundled Russian 5e tables)."""
    return load_rulebook(os.getenv("SHEET_RULESET_PATH", str(DEFAULT_RULESET_PATH)))
