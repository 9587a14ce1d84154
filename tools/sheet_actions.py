"""
SheetActions — Builds the partial updates a sheet edit produces.

Every function reads a Character and returns a patch dict (wire keys)
containing only what changes; list fields are returned whole, because a
patch always replaces a list. Nothing here mutates its input or talks to
a store. Feed the result to CharacterSyncSession.apply() or to
CharacterStore.update().

Equipment, weapons and features can be locked. While locked, adding,
removing and reordering raise SectionLockedError unless the sheet is in
editing mode. Equipping and quantity changes are always allowed.
"""

from typing import Any, Dict, List, Literal, Optional, Sequence

from models.characters import (
    CharacterCreate,
    DeathSaves,
    Equipment,
    Feature,
    SkillProficiency,
    Weapon,
)
from models.ruleset import ABILITY_NAMES
from rules import engine
from rules.rulebook import RuleBook, default_rulebook

Section = Literal["equipment", "weapons", "features"]
ProficiencyCategory = Literal["languages", "weapons", "armor", "tools"]
Denomination = Literal["cp", "sp", "ep", "gp", "pp"]

_LOCK_FIELDS = {
    "equipment": "equipmentLocked",
    "weapons": "weaponsLocked",
    "features": "featuresLocked",
}

Patch = Dict[str, Any]


class SectionLockedError(Exception):
    """A locked section was modified outside editing mode."""

    def __init__(self, section: str):
        self.section = section
        super().__init__(f"Section '{section}' is locked")


def _dump(items: Sequence[Any]) -> List[Dict[str, Any]]:
    return [item.model_dump(by_alias=True, mode="json") for item in items]


def _check_ability(ability: str) -> str:
    if ability not in ABILITY_NAMES:
        raise ValueError(f"Unknown ability: {ability}")
    return ability


# ------------------------------------------------------------------
# Locks
# ------------------------------------------------------------------

def is_locked(character: CharacterCreate, section: Section) -> bool:
    return bool(getattr(character, f"{section}_locked"))


def can_modify(character: CharacterCreate, section: Section, is_editing: bool = False) -> bool:
    return is_editing or not is_locked(character, section)


def _require_unlocked(character: CharacterCreate, section: Section, is_editing: bool):
    if not can_modify(character, section, is_editing):
        raise SectionLockedError(section)


def toggle_lock(character: CharacterCreate, section: Section) -> Patch:
    return {_LOCK_FIELDS[section]: not is_locked(character, section)}


# ------------------------------------------------------------------
# Hit points & death saves
# ------------------------------------------------------------------

def adjust_hp(character: CharacterCreate, delta: int) -> Patch:
    """Damage/heal buttons: result stays within [0, maxHp]."""
    new_hp = min(character.max_hp, max(0, character.current_hp + delta))
    return {"currentHp": new_hp}


def set_current_hp(value: int) -> Patch:
    """Direct numeric entry. Deliberately unclamped (see DESIGN.md)."""
    return {"currentHp": value}


def set_temp_hp(value: int) -> Patch:
    return {"tempHp": max(0, value)}


def toggle_death_save(
    death_saves: DeathSaves,
    kind: Literal["successes", "failures"],
    index: int,
) -> Patch:
    """Clicking pip `index` (0-2) fills up to it, or clears it back if already filled."""
    count = getattr(death_saves, kind)
    new_count = index if count >= index + 1 else index + 1
    saves = death_saves.model_dump()
    saves[kind] = new_count
    return {"deathSaves": saves}


def reset_death_saves() -> Patch:
    return {"deathSaves": {"successes": 0, "failures": 0}}


def adjust_hit_dice(character: CharacterCreate, delta: int) -> Patch:
    remaining = min(character.level, max(0, character.hit_dice_remaining + delta))
    return {"hitDiceRemaining": remaining}


# ------------------------------------------------------------------
# Abilities, saves, skills
# ------------------------------------------------------------------

def set_ability_score(character: CharacterCreate, ability: str, value: int) -> Patch:
    return {"abilityScores": {_check_ability(ability): value}}


def set_custom_bonus(character: CharacterCreate, ability: str, value: int) -> Patch:
    return {"customAbilityBonuses": {_check_ability(ability): value}}


def toggle_saving_throw(character: CharacterCreate, ability: str) -> Patch:
    current = getattr(character.saving_throws, _check_ability(ability))
    return {"savingThrows": {ability: not current}}


def cycle_skill_proficiency(current: Optional[SkillProficiency]) -> SkillProficiency:
    """none -> proficient -> expertise -> none."""
    if current is None or not current.proficient:
        return SkillProficiency(proficient=True, expertise=False)
    if not current.expertise:
        return SkillProficiency(proficient=True, expertise=True)
    return SkillProficiency(proficient=False, expertise=False)


def set_skill_proficiency(
    character: CharacterCreate, skill: str, proficiency: SkillProficiency
) -> Patch:
    return {"skills": {skill: proficiency.model_dump()}}


def cycle_skill(character: CharacterCreate, skill: str) -> Patch:
    current = (character.skills or {}).get(skill)
    return set_skill_proficiency(character, skill, cycle_skill_proficiency(current))


# ------------------------------------------------------------------
# Level, class, race, experience
# ------------------------------------------------------------------

def change_level(
    character: CharacterCreate, level: int, rulebook: Optional[RuleBook] = None
) -> Patch:
    """Clamp to 1..20 and reset proficiency bonus and hit dice for the new level."""
    level = min(20, max(1, level))
    dice, _ = engine.class_hit_die(character.char_class, rulebook)
    return {
        "level": level,
        "proficiencyBonus": engine.proficiency_bonus(level),
        "hitDice": f"{level}{dice}",
        "hitDiceRemaining": level,
    }


def change_class(
    character: CharacterCreate, class_name: str, rulebook: Optional[RuleBook] = None
) -> Patch:
    rb = rulebook if rulebook is not None else default_rulebook()
    class_data = rb.get_class(class_name)
    if class_data is None:
        return {"class": class_name}
    return {
        "class": class_name,
        "hitDice": f"{character.level}{class_data.hit_dice}",
        "savingThrows": engine.saving_throw_flags(class_name, rb),
    }


def change_race(race: str, rulebook: Optional[RuleBook] = None) -> Patch:
    """Subrace is cleared explicitly (None overwrites on merge)."""
    rb = rulebook if rulebook is not None else default_rulebook()
    race_data = rb.get_race(race)
    return {
        "race": race,
        "subrace": None,
        "speed": race_data.speed if race_data and race_data.speed else 30,
    }


def apply_experience(character: CharacterCreate, xp: int) -> Patch:
    return {"experience": max(0, xp)}


# ------------------------------------------------------------------
# Equipment
# ------------------------------------------------------------------

def _find_index(items: Sequence[Any], item_id: str) -> int:
    for index, item in enumerate(items):
        if item.id == item_id:
            return index
    return -1


def toggle_equipped(character: CharacterCreate, item_id: str) -> Patch:
    """Equip or unequip one item.

    Equipping body armor takes off any other body armor. Shields and
    non-armor items never affect anything else.
    """
    index = _find_index(character.equipment, item_id)
    if index < 0:
        return {}
    target = character.equipment[index]
    equipping = not target.equipped

    updated = []
    for item in character.equipment:
        if item.id == item_id:
            item = item.model_copy(update={"equipped": equipping})
        elif equipping and target.is_body_armor and item.is_body_armor:
            item = item.model_copy(update={"equipped": False})
        updated.append(item)
    return {"equipment": _dump(updated)}


def change_quantity(character: CharacterCreate, item_id: str, delta: int) -> Patch:
    """Quantity reaching 0 removes the item."""
    updated = []
    for item in character.equipment:
        if item.id == item_id:
            quantity = max(0, item.quantity + delta)
            if quantity == 0:
                continue
            item = item.model_copy(update={"quantity": quantity})
        updated.append(item)
    return {"equipment": _dump(updated)}


def add_equipment(
    character: CharacterCreate, item: Equipment, is_editing: bool = False
) -> Patch:
    _require_unlocked(character, "equipment", is_editing)
    return {"equipment": _dump(list(character.equipment) + [item])}


def add_equipment_from_base(
    character: CharacterCreate,
    name: str,
    quantity: int = 1,
    is_editing: bool = False,
    rulebook: Optional[RuleBook] = None,
) -> Patch:
    """Copy a catalog entry into the inventory, unequipped, with no flat attack bonus."""
    rb = rulebook if rulebook is not None else default_rulebook()
    base = rb.find_base_item(name)
    if base is None:
        raise KeyError(f"No catalog item named {name!r}")
    item = Equipment(
        name=base.name,
        quantity=quantity,
        weight=base.weight,
        description=base.description,
        category=base.category,
        is_armor=base.is_armor or None,
        armor_type=base.armor_type,
        armor_base_ac=base.armor_base_ac,
        armor_max_dex_bonus=base.armor_max_dex_bonus,
        is_weapon=base.is_weapon or None,
        damage=base.damage,
        damage_type=base.damage_type,
        weapon_properties=base.weapon_properties,
        attack_bonus=0,
        ability_mod=base.ability_mod,
        is_finesse=base.is_finesse or None,
        equipped=False,
    )
    return add_equipment(character, item, is_editing)


def remove_equipment(
    character: CharacterCreate, item_id: str, is_editing: bool = False
) -> Patch:
    _require_unlocked(character, "equipment", is_editing)
    return {"equipment": _dump([e for e in character.equipment if e.id != item_id])}


def move_equipment(
    character: CharacterCreate, item_id: str, over_id: str, is_editing: bool = False
) -> Patch:
    """Drag-and-drop reorder: move `item_id` to the position of `over_id`."""
    _require_unlocked(character, "equipment", is_editing)
    old_index = _find_index(character.equipment, item_id)
    new_index = _find_index(character.equipment, over_id)
    if old_index < 0 or new_index < 0 or old_index == new_index:
        return {}
    items = list(character.equipment)
    items.insert(new_index, items.pop(old_index))
    return {"equipment": _dump(items)}


# ------------------------------------------------------------------
# Weapons & features
# ------------------------------------------------------------------

def add_weapon(character: CharacterCreate, weapon: Weapon, is_editing: bool = False) -> Patch:
    _require_unlocked(character, "weapons", is_editing)
    return {"weapons": _dump(list(character.weapons) + [weapon])}


def remove_weapon(character: CharacterCreate, weapon_id: str, is_editing: bool = False) -> Patch:
    _require_unlocked(character, "weapons", is_editing)
    return {"weapons": _dump([w for w in character.weapons if w.id != weapon_id])}


def add_feature(character: CharacterCreate, feature: Feature, is_editing: bool = False) -> Patch:
    _require_unlocked(character, "features", is_editing)
    return {"features": _dump(list(character.features) + [feature])}


def remove_feature(character: CharacterCreate, feature_id: str, is_editing: bool = False) -> Patch:
    _require_unlocked(character, "features", is_editing)
    return {"features": _dump([f for f in character.features if f.id != feature_id])}


# ------------------------------------------------------------------
# Money & proficiencies
# ------------------------------------------------------------------

def adjust_money(character: CharacterCreate, denomination: Denomination, delta: int) -> Patch:
    current = getattr(character.money, denomination)
    return {"money": {denomination: max(0, current + delta)}}


def set_money(character: CharacterCreate, denomination: Denomination, value: int) -> Patch:
    return {"money": {denomination: max(0, value)}}


def add_proficiency(
    character: CharacterCreate, category: ProficiencyCategory, value: str
) -> Patch:
    """No-op (empty patch) when already held."""
    current = list(getattr(character.proficiencies, category))
    if value in current:
        return {}
    return {"proficiencies": {category: current + [value]}}


def remove_proficiency(
    character: CharacterCreate, category: ProficiencyCategory, value: str
) -> Patch:
    current = getattr(character.proficiencies, category)
    return {"proficiencies": {category: [v for v in current if v != value]}}
