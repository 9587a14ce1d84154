"""
Rules Engine — Pure derivations for every number a character sheet shows.

No I/O, no state. Reference data comes from an injected RuleBook
(default_rulebook() when none is passed). Unknown classes, races or
weapons fall back to neutral results; nothing here raises on a bad key.
Numeric ranges are the caller's job (the Character schema enforces them).
"""

import math
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from pydantic import BaseModel

from models.characters import (
    AbilityBonuses,
    AbilityScores,
    Character,
    CharacterCreate,
    DeathSaves,
    Equipment,
    Proficiencies,
    SavingThrows,
    SkillProficiency,
    Weapon,
)
from models.ruleset import ABILITY_NAMES, ArmorData
from rules.rulebook import RuleBook, default_rulebook

SHIELD_BONUS = 2
UNARMORED_AC = 10
DEFAULT_HIT_DIE = ("d10", 10)

ProficiencyInput = Union[Proficiencies, Dict[str, Any], None]
AnyCharacter = Union[Character, CharacterCreate]


def _rb(rulebook: Optional[RuleBook]) -> RuleBook:
    return rulebook if rulebook is not None else default_rulebook()


# ------------------------------------------------------------------
# Result models
# ------------------------------------------------------------------

class XpProgress(BaseModel):
    current: int
    next: int
    progress: float
    is_max_level: bool = False


class CombinedProficiencies(BaseModel):
    languages: List[str] = []
    weapons: List[str] = []
    armor: List[str] = []
    tools: List[str] = []
    darkvision: Optional[int] = None


class WeaponAttack(BaseModel):
    """One attack line: to-hit bonus and damage for a weapon."""

    id: str
    name: str
    proficient: bool
    attack_bonus: int
    damage: str
    damage_modifier: int
    damage_type: str = ""
    ability_mod: str = "str"
    from_inventory: bool = False


class AbilityStats(BaseModel):
    base: int
    racial: int
    custom: int
    total: int
    modifier: int


class SheetStats(BaseModel):
    """Everything derived for one character, computed in a single pass."""

    proficiency_bonus: int
    abilities: Dict[str, AbilityStats]
    saving_throws: Dict[str, int]
    skills: Dict[str, int]
    armor_class: int
    initiative: int
    xp: XpProgress
    suggested_max_hp: int
    weapon_attacks: List[WeaponAttack]
    total_gold: float
    carried_weight: float
    item_count: int
    death_save_state: str


# ------------------------------------------------------------------
# Core arithmetic
# ------------------------------------------------------------------

def ability_modifier(score: int) -> int:
    """floor((score - 10) / 2). Floors toward -inf: 8 → -1, 7 → -2."""
    return (score - 10) // 2


def proficiency_bonus(level: int) -> int:
    """ceil(level / 4) + 1: 2 at levels 1-4 up to 6 at 17-20."""
    return math.ceil(level / 4) + 1


def format_modifier(mod: int) -> str:
    return f"+{mod}" if mod >= 0 else f"{mod}"


def level_from_xp(xp: int, rulebook: Optional[RuleBook] = None) -> int:
    """Highest level whose cumulative threshold is <= xp."""
    thresholds = _rb(rulebook).xp_thresholds
    for index in range(len(thresholds) - 1, -1, -1):
        if xp >= thresholds[index]:
            return index + 1
    return 1


def xp_progress(xp: int, level: int, rulebook: Optional[RuleBook] = None) -> XpProgress:
    """Progress from the current level's threshold toward the next one.

    At max level next == current and progress is pinned at 100.
    """
    rb = _rb(rulebook)
    current = rb.xp_threshold(level)
    if level >= rb.max_level:
        return XpProgress(current=current, next=current, progress=100.0, is_max_level=True)
    nxt = rb.xp_threshold(level + 1)
    progress = (xp - current) / (nxt - current) * 100 if nxt > current else 100.0
    return XpProgress(current=current, next=nxt, progress=min(100.0, max(0.0, progress)))


# ------------------------------------------------------------------
# Classes & races
# ------------------------------------------------------------------

def racial_bonuses(
    race: Optional[str],
    subrace: Optional[str] = None,
    rulebook: Optional[RuleBook] = None,
) -> Dict[str, int]:
    """Race bonuses with recognised subrace bonuses added on top, per ability."""
    rb = _rb(rulebook)
    race_data = rb.get_race(race)
    if race_data is None:
        return {}
    bonuses = dict(race_data.ability_bonuses)
    sub = rb.get_subrace(race, subrace)
    if sub is not None:
        for ability, bonus in sub.ability_bonuses.items():
            if bonus:
                bonuses[ability] = bonuses.get(ability, 0) + bonus
    return bonuses


def class_hit_die(class_name: Optional[str], rulebook: Optional[RuleBook] = None) -> Tuple[str, int]:
    class_data = _rb(rulebook).get_class(class_name)
    if class_data is None:
        return DEFAULT_HIT_DIE
    return class_data.hit_dice, class_data.hit_dice_value


def class_saving_throws(class_name: Optional[str], rulebook: Optional[RuleBook] = None) -> List[str]:
    class_data = _rb(rulebook).get_class(class_name)
    return list(class_data.saving_throws) if class_data else []


def saving_throw_flags(class_name: Optional[str], rulebook: Optional[RuleBook] = None) -> Dict[str, bool]:
    saves = class_saving_throws(class_name, rulebook)
    return {ability: ability in saves for ability in ABILITY_NAMES}


def darkvision(race: Optional[str], rulebook: Optional[RuleBook] = None) -> Optional[int]:
    race_data = _rb(rulebook).get_race(race)
    return race_data.darkvision if race_data else None


def max_hp(
    class_name: Optional[str],
    level: int,
    con_modifier: int,
    rulebook: Optional[RuleBook] = None,
) -> int:
    """Full hit die at level 1, average roll (die/2 + 1) afterwards. Never below 1."""
    _, die = class_hit_die(class_name, rulebook)
    first_level = die + con_modifier
    later_levels = (level - 1) * (die // 2 + 1 + con_modifier)
    return max(1, first_level + later_levels)


def _union(*groups: Sequence[str]) -> List[str]:
    # dict keeps first-appearance order
    return list(dict.fromkeys(item for group in groups for item in group))


def combined_proficiencies(
    race: Optional[str],
    class_name: Optional[str],
    subrace: Optional[str] = None,
    rulebook: Optional[RuleBook] = None,
) -> CombinedProficiencies:
    """Race + subrace + class proficiencies, de-duplicated per category.

    A subrace darkvision value overrides the race's.
    """
    rb = _rb(rulebook)
    race_data = rb.get_race(race)
    sub = rb.get_subrace(race, subrace)
    class_data = rb.get_class(class_name)

    result = CombinedProficiencies()
    if race_data is not None:
        result.languages = _union(race_data.languages)
        result.weapons = _union(race_data.weapon_proficiencies)
        result.armor = _union(race_data.armor_proficiencies)
        result.tools = _union(race_data.tool_proficiencies)
        result.darkvision = race_data.darkvision
        if sub is not None:
            if sub.darkvision:
                result.darkvision = sub.darkvision
            result.weapons = _union(result.weapons, sub.weapon_proficiencies)
            result.armor = _union(result.armor, sub.armor_proficiencies)
            result.tools = _union(result.tools, sub.tool_proficiencies)

    if class_data is not None:
        result.weapons = _union(result.weapons, class_data.weapon_proficiencies)
        result.armor = _union(result.armor, class_data.armor_proficiencies)
        result.tools = _union(result.tools, class_data.tool_proficiencies)

    return result


# ------------------------------------------------------------------
# Proficiency checks
# ------------------------------------------------------------------

def _category(proficiencies: ProficiencyInput, name: str) -> List[str]:
    if proficiencies is None:
        return []
    if isinstance(proficiencies, dict):
        return list(proficiencies.get(name) or [])
    return list(getattr(proficiencies, name, None) or [])


def is_weapon_proficient(
    weapon_name: str,
    proficiencies: ProficiencyInput,
    rulebook: Optional[RuleBook] = None,
) -> bool:
    """Exact name, or a held category that covers the weapon.

    Martial-category proficiency also covers simple weapons (not the reverse).
    """
    rb = _rb(rulebook)
    held = _category(proficiencies, "weapons")
    if weapon_name in held:
        return True

    has_simple = rb.simple_weapon_category in held
    has_martial = rb.martial_weapon_category in held

    if rb.is_simple_weapon(weapon_name) and (has_simple or has_martial):
        return True
    if rb.is_martial_weapon(weapon_name) and has_martial:
        return True
    return False


_ARMOR_PROFICIENCY = {
    "light": "Лёгкие доспехи",
    "medium": "Средние доспехи",
    "heavy": "Тяжёлые доспехи",
    "shield": "Щиты",
}


def is_armor_proficient(armor_type: Optional[str], proficiencies: ProficiencyInput) -> bool:
    if not armor_type or armor_type == "none":
        return True
    needed = _ARMOR_PROFICIENCY.get(armor_type)
    return needed is not None and needed in _category(proficiencies, "armor")


# ------------------------------------------------------------------
# Armor class
# ------------------------------------------------------------------

def armor_class(
    dex_mod: int,
    armor: Optional[ArmorData],
    has_shield: bool,
    custom_bonus: int = 0,
) -> int:
    """Base 10 (or the armor's base AC) + DEX (capped by the armor) + shield + custom.

    A shield passed as `armor` counts as no armor; shields only ever add +2.
    """
    base = UNARMORED_AC
    dex_bonus = dex_mod
    if armor is not None and armor.type != "shield":
        base = armor.base_ac
        if armor.max_dex_bonus is not None:
            dex_bonus = min(dex_mod, armor.max_dex_bonus)
    shield = SHIELD_BONUS if has_shield else 0
    return base + dex_bonus + shield + custom_bonus


def equipped_armor(equipment: Sequence[Equipment]) -> Optional[ArmorData]:
    """The worn body armor as ArmorData, or None (also when it has no base AC)."""
    for item in equipment:
        if item.equipped and item.is_body_armor:
            if item.armor_base_ac is None:
                return None
            return ArmorData(
                name=item.name,
                type=item.armor_type or "none",
                base_ac=item.armor_base_ac,
                max_dex_bonus=item.armor_max_dex_bonus,
            )
    return None


def has_shield(equipment: Sequence[Equipment]) -> bool:
    return any(item.equipped and item.is_shield for item in equipment)


# ------------------------------------------------------------------
# Character-level derivations
# ------------------------------------------------------------------

def total_ability_score(
    character: AnyCharacter,
    ability: str,
    rulebook: Optional[RuleBook] = None,
) -> int:
    """Base score + racial bonus + custom bonus."""
    base = getattr(character.ability_scores, ability)
    racial = racial_bonuses(character.race, character.subrace, rulebook).get(ability, 0)
    custom = getattr(character.custom_ability_bonuses, ability, 0) if character.custom_ability_bonuses else 0
    return base + racial + custom


def effective_modifier(character: AnyCharacter, ability: str, rulebook: Optional[RuleBook] = None) -> int:
    return ability_modifier(total_ability_score(character, ability, rulebook))


def skill_bonus(ability_mod: int, proficiency: Optional[SkillProficiency], level: int) -> int:
    """Expertise doubles the proficiency bonus; plain proficiency adds it once."""
    if proficiency is None:
        return ability_mod
    bonus = proficiency_bonus(level)
    if proficiency.expertise:
        return ability_mod + bonus * 2
    if proficiency.proficient:
        return ability_mod + bonus
    return ability_mod


def saving_throw_bonus(ability_mod: int, proficient: bool, level: int) -> int:
    return ability_mod + (proficiency_bonus(level) if proficient else 0)


def initiative(character: AnyCharacter, rulebook: Optional[RuleBook] = None) -> int:
    return effective_modifier(character, "DEX", rulebook) + character.custom_initiative_bonus


def character_armor_class(character: AnyCharacter, rulebook: Optional[RuleBook] = None) -> int:
    return armor_class(
        effective_modifier(character, "DEX", rulebook),
        equipped_armor(character.equipment),
        has_shield(character.equipment),
        character.custom_ac_bonus,
    )


def equipped_weapons(equipment: Sequence[Equipment]) -> List[Weapon]:
    """Inventory weapons that are equipped, projected into Weapon records."""
    weapons = []
    for item in equipment:
        if not (item.is_weapon and item.equipped):
            continue
        weapons.append(Weapon(
            id=item.id,
            name=item.name,
            attack_bonus=item.attack_bonus or 0,
            damage=item.damage or "1d4",
            damage_type=item.damage_type or "дробящий",
            properties=item.weapon_properties,
            ability_mod=item.ability_mod or "str",
            is_finesse=item.is_finesse,
        ))
    return weapons


def weapon_attack(
    weapon: Weapon,
    character: AnyCharacter,
    rulebook: Optional[RuleBook] = None,
    from_inventory: bool = False,
) -> WeaponAttack:
    """To-hit = proficiency (if proficient) + STR/DEX modifier + flat bonus."""
    ability = "DEX" if weapon.ability_mod == "dex" else "STR"
    mod = effective_modifier(character, ability, rulebook)
    proficient = is_weapon_proficient(weapon.name, character.proficiencies, rulebook)
    prof = proficiency_bonus(character.level) if proficient else 0
    return WeaponAttack(
        id=weapon.id,
        name=weapon.name,
        proficient=proficient,
        attack_bonus=prof + mod + weapon.attack_bonus,
        damage=weapon.damage,
        damage_modifier=mod,
        damage_type=weapon.damage_type,
        ability_mod=weapon.ability_mod,
        from_inventory=from_inventory,
    )


def death_save_state(death_saves: DeathSaves) -> str:
    """Display state only; reaching 'dead' does not lock the sheet."""
    if death_saves.failures >= 3:
        return "dead"
    if death_saves.successes >= 3:
        return "stable"
    if death_saves.successes or death_saves.failures:
        return "dying"
    return "none"


def carried_weight(equipment: Sequence[Equipment]) -> float:
    return sum((item.weight or 0) * item.quantity for item in equipment)


def derive_sheet(character: AnyCharacter, rulebook: Optional[RuleBook] = None) -> SheetStats:
    rb = _rb(rulebook)
    racial = racial_bonuses(character.race, character.subrace, rb)
    custom = character.custom_ability_bonuses or AbilityBonuses()

    abilities: Dict[str, AbilityStats] = {}
    for ability in ABILITY_NAMES:
        base = getattr(character.ability_scores, ability)
        total = base + racial.get(ability, 0) + getattr(custom, ability)
        abilities[ability] = AbilityStats(
            base=base,
            racial=racial.get(ability, 0),
            custom=getattr(custom, ability),
            total=total,
            modifier=ability_modifier(total),
        )

    saves = {
        ability: saving_throw_bonus(
            abilities[ability].modifier,
            getattr(character.saving_throws, ability),
            character.level,
        )
        for ability in ABILITY_NAMES
    }

    skills = {}
    character_skills = character.skills or {}
    for skill in rb.skills:
        skills[skill.name] = skill_bonus(
            abilities[skill.ability].modifier,
            character_skills.get(skill.name),
            character.level,
        )

    attacks = [weapon_attack(w, character, rb, from_inventory=True) for w in equipped_weapons(character.equipment)]
    attacks += [weapon_attack(w, character, rb) for w in character.weapons]

    return SheetStats(
        proficiency_bonus=proficiency_bonus(character.level),
        abilities=abilities,
        saving_throws=saves,
        skills=skills,
        armor_class=armor_class(
            abilities["DEX"].modifier,
            equipped_armor(character.equipment),
            has_shield(character.equipment),
            character.custom_ac_bonus,
        ),
        initiative=abilities["DEX"].modifier + character.custom_initiative_bonus,
        xp=xp_progress(character.experience, character.level, rb),
        suggested_max_hp=max_hp(character.char_class, character.level, abilities["CON"].modifier, rb),
        weapon_attacks=attacks,
        total_gold=round(character.money.total_gold, 2),
        carried_weight=carried_weight(character.equipment),
        item_count=sum(item.quantity for item in character.equipment),
        death_save_state=death_save_state(character.death_saves),
    )


# ------------------------------------------------------------------
# New characters
# ------------------------------------------------------------------

def default_skills(rulebook: Optional[RuleBook] = None) -> Dict[str, SkillProficiency]:
    return {skill.name: SkillProficiency() for skill in _rb(rulebook).skills}


def create_default_character(rulebook: Optional[RuleBook] = None) -> CharacterCreate:
    """The starting snapshot for a brand-new sheet.

    Default class and race come from the rule set; starting HP is the
    class hit die + CON modifier at level 1 (CON 10, so +0).
    """
    rb = _rb(rulebook)
    class_name = rb.data.default_class
    dice, _ = class_hit_die(class_name, rb)
    scores = AbilityScores()
    hp = max_hp(class_name, 1, ability_modifier(scores.CON), rb)

    return CharacterCreate(
        name="Новый персонаж",
        char_class=class_name,
        race=rb.data.default_race,
        level=1,
        background="",
        alignment=rb.data.default_alignment,
        experience=0,
        ability_scores=scores,
        custom_ability_bonuses=AbilityBonuses(),
        saving_throws=SavingThrows(**saving_throw_flags(class_name, rb)),
        skills=default_skills(rb),
        armor_class=UNARMORED_AC,
        max_hp=hp,
        current_hp=hp,
        hit_dice=f"1{dice}",
        hit_dice_remaining=1,
        death_saves=DeathSaves(),
        proficiencies=Proficiencies(languages=list(rb.data.default_languages)),
        proficiency_bonus=proficiency_bonus(1),
        notes="",
        appearance="",
        allies="",
        factions="",
    )
