"""
Dice Roller — Checks, saves and attacks rolled from a character's numbers.

Formulas are the usual XdY (count optional). Anything unparseable rolls
1d20, so a bad formula never blocks a roll. Advantage and disadvantage
roll two dice and keep the higher / lower.

Modifiers come from the Rules Engine; each roll carries the labelled
sources that made up its modifier ("Сила +2", "Владение +2", ...).
"""

import random
import re
import logging
from collections import deque
from datetime import datetime, timezone
from typing import List, Literal, Optional, Sequence, Tuple

from pydantic import BaseModel, Field

from models.characters import CharacterCreate, Weapon, new_item_id
from rules import engine
from rules.engine import format_modifier
from rules.rulebook import RuleBook, default_rulebook

logger = logging.getLogger("DiceRoller")

_DICE_RE = re.compile(r"(?P<count>\d+)?d(?P<sides>\d+)", re.IGNORECASE)

HISTORY_LIMIT = 50

ABILITY_LABELS = {
    "STR": "Сила",
    "DEX": "Ловкость",
    "CON": "Телосложение",
    "INT": "Интеллект",
    "WIS": "Мудрость",
    "CHA": "Харизма",
}


class DiceRoll(BaseModel):
    id: str = Field(default_factory=new_item_id)
    type: Literal["normal", "advantage", "disadvantage"] = "normal"
    label: str
    dice: str
    modifier: int = 0
    modifier_sources: List[str] = Field(default_factory=list, alias="modifierSources")
    results: List[int]
    total: int
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = {"populate_by_name": True}

    @property
    def sides(self) -> int:
        return parse_dice(self.dice)[1]

    @property
    def is_critical(self) -> bool:
        return self.sides == 20 and self.kept == 20

    @property
    def is_fumble(self) -> bool:
        return self.sides == 20 and self.kept == 1

    @property
    def kept(self) -> int:
        """The die that counted: max with advantage, min with disadvantage, else the sum."""
        if self.type == "advantage":
            return max(self.results)
        if self.type == "disadvantage":
            return min(self.results)
        return sum(self.results)


def parse_dice(formula: str) -> Tuple[int, int]:
    """'2d6' → (2, 6), 'd20' → (1, 20). Unparseable → (1, 20)."""
    match = _DICE_RE.search(formula or "")
    if not match:
        logger.warning(f"Could not parse dice formula: {formula!r}, rolling 1d20")
        return 1, 20
    return int(match.group("count") or "1"), int(match.group("sides"))


def roll_dice(
    label: str,
    dice: str = "1d20",
    modifier: int = 0,
    sources: Sequence[str] = (),
    advantage: bool = False,
    disadvantage: bool = False,
) -> DiceRoll:
    count, sides = parse_dice(dice)
    rolled_twice = advantage or disadvantage
    results = [random.randint(1, sides) for _ in range(2 if rolled_twice else count)]

    if advantage:
        dice_total = max(results)
        kind = "advantage"
    elif disadvantage:
        dice_total = min(results)
        kind = "disadvantage"
    else:
        dice_total = sum(results)
        kind = "normal"

    return DiceRoll(
        type=kind,
        label=label,
        dice=dice,
        modifier=modifier,
        modifier_sources=list(sources),
        results=results,
        total=dice_total + modifier,
    )


def format_roll_detail(roll: DiceRoll) -> str:
    """'1d20+5: [14] = 19' or '2d6: [4, 2] = 6'."""
    rolls_str = ", ".join(str(r) for r in roll.results)
    mod_str = format_modifier(roll.modifier) if roll.modifier else ""
    return f"{roll.dice}{mod_str}: [{rolls_str}] = {roll.total}"


# ------------------------------------------------------------------
# Character rolls
# ------------------------------------------------------------------

def roll_ability_check(
    character: CharacterCreate,
    ability: str,
    rulebook: Optional[RuleBook] = None,
    **options,
) -> DiceRoll:
    mod = engine.effective_modifier(character, ability, rulebook)
    label = ABILITY_LABELS.get(ability, ability)
    return roll_dice(f"Проверка {label}", "1d20", mod, [f"{label} {format_modifier(mod)}"], **options)


def roll_skill_check(
    character: CharacterCreate,
    skill: str,
    rulebook: Optional[RuleBook] = None,
    **options,
) -> DiceRoll:
    ability = (rulebook or default_rulebook()).skill_ability(skill) or "STR"
    ability_mod = engine.effective_modifier(character, ability, rulebook)
    prof = engine.proficiency_bonus(character.level)
    proficiency = (character.skills or {}).get(skill)

    total = ability_mod
    sources = [f"{ability} {format_modifier(ability_mod)}"]
    if proficiency and proficiency.expertise:
        total += prof * 2
        sources.append(f"Экспертность +{prof * 2}")
    elif proficiency and proficiency.proficient:
        total += prof
        sources.append(f"Владение +{prof}")
    return roll_dice(skill, "1d20", total, sources, **options)


def roll_saving_throw(
    character: CharacterCreate,
    ability: str,
    rulebook: Optional[RuleBook] = None,
    **options,
) -> DiceRoll:
    ability_mod = engine.effective_modifier(character, ability, rulebook)
    proficient = getattr(character.saving_throws, ability)
    total = engine.saving_throw_bonus(ability_mod, proficient, character.level)
    sources = [f"{ability} {format_modifier(ability_mod)}"]
    if proficient:
        sources.append(f"Владение +{engine.proficiency_bonus(character.level)}")
    label = ABILITY_LABELS.get(ability, ability)
    return roll_dice(f"Спасбросок {label}", "1d20", total, sources, **options)


def _ability_label(weapon: Weapon) -> str:
    return "ЛОВ" if weapon.ability_mod == "dex" else "СИЛ"


def roll_weapon_attack(
    weapon: Weapon,
    character: CharacterCreate,
    rulebook: Optional[RuleBook] = None,
    **options,
) -> DiceRoll:
    attack = engine.weapon_attack(weapon, character, rulebook)
    prof = engine.proficiency_bonus(character.level) if attack.proficient else 0
    sources = [
        f"{_ability_label(weapon)} {format_modifier(attack.damage_modifier)}",
        f"Мастерство +{prof}",
    ]
    if weapon.attack_bonus:
        sources.append(f"Бонус {format_modifier(weapon.attack_bonus)}")
    suffix = "" if attack.proficient else " (без влад.)"
    return roll_dice(f"Атака: {weapon.name}{suffix}", "1d20", attack.attack_bonus, sources, **options)


def roll_weapon_damage(
    weapon: Weapon,
    character: CharacterCreate,
    rulebook: Optional[RuleBook] = None,
) -> DiceRoll:
    attack = engine.weapon_attack(weapon, character, rulebook)
    sources = [weapon.damage_type] if weapon.damage_type else []
    if attack.damage_modifier:
        sources.append(f"{_ability_label(weapon)} {format_modifier(attack.damage_modifier)}")
    return roll_dice(f"Урон: {weapon.name}", weapon.damage, attack.damage_modifier, sources)


class RollHistory:
    """Most recent rolls first, capped at HISTORY_LIMIT."""

    def __init__(self, limit: int = HISTORY_LIMIT):
        self._rolls: deque = deque(maxlen=limit)

    def add(self, roll: DiceRoll) -> DiceRoll:
        self._rolls.appendleft(roll)
        return roll

    def clear(self):
        self._rolls.clear()

    @property
    def rolls(self) -> List[DiceRoll]:
        return list(self._rolls)

    def __len__(self) -> int:
        return len(self._rolls)
