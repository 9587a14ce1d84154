"""
Merge — Applies partial character updates to full documents.

Two layers:
  - deep_merge(): untyped dict merge, used for nested records and for
    folding one pending buffer into another.
  - merge_character(): the typed merge. Each top-level key is classified by
    the Character schema as record / array / scalar, so arrays are always
    replaced whole because the schema says they are arrays.

Rules (both layers):
  - UNSET in a patch means "no change" and is skipped.
  - None is a real value and overwrites.
  - Records recurse; arrays and scalars replace.
  - Inputs are never mutated.
"""

import copy
import typing
from typing import Any, Dict, Literal, Mapping, Optional

from pydantic import BaseModel

from models.characters import Character

FieldKind = Literal["record", "array", "scalar"]

# Keys a client may never change through a patch
PROTECTED_KEYS = frozenset({"id", "userId", "user_id"})


class _Unset:
    """Marker for 'key present but carries no change'."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNSET"

    def __bool__(self) -> bool:
        return False

    def __deepcopy__(self, memo):
        return self


UNSET = _Unset()


def deep_merge(target: Mapping[str, Any], patch: Mapping[str, Any]) -> Dict[str, Any]:
    """Return a new dict: `target` with `patch` merged in."""
    result = copy.deepcopy(dict(target))
    for key, value in patch.items():
        if value is UNSET:
            continue
        existing = result.get(key)
        if isinstance(value, dict) and isinstance(existing, dict):
            result[key] = deep_merge(existing, value)
        else:
            result[key] = copy.deepcopy(value)
    return result


def patch_is_empty(patch: Optional[Mapping[str, Any]]) -> bool:
    """True when applying the patch would change nothing."""
    if not patch:
        return True
    return all(value is UNSET for value in patch.values())


# ------------------------------------------------------------------
# Schema-typed merge
# ------------------------------------------------------------------

def _classify(annotation: Any) -> FieldKind:
    origin = typing.get_origin(annotation)
    if origin is typing.Union:
        args = [a for a in typing.get_args(annotation) if a is not type(None)]
        if len(args) == 1:
            return _classify(args[0])
        return "scalar"
    if origin in (list, tuple, set):
        return "array"
    if origin is dict:
        return "record"
    if isinstance(annotation, type) and issubclass(annotation, BaseModel):
        return "record"
    return "scalar"


def _build_field_kinds() -> Dict[str, FieldKind]:
    kinds: Dict[str, FieldKind] = {}
    for name, info in Character.model_fields.items():
        kind = _classify(info.annotation)
        kinds[name] = kind
        if info.alias:
            kinds[info.alias] = kind
    return kinds


def _build_wire_names() -> Dict[str, str]:
    names = {}
    for name, info in Character.model_fields.items():
        names[name] = info.alias or name
    return names


_FIELD_KINDS = _build_field_kinds()
_WIRE_NAMES = _build_wire_names()


def field_kind(key: str) -> FieldKind:
    """Shape of a Character field by wire or attribute name. Unknown keys are scalars."""
    return _FIELD_KINDS.get(key, "scalar")


def wire_name(key: str) -> str:
    """The camelCase document key for a field (unchanged when already a wire name)."""
    return _WIRE_NAMES.get(key, key)


def normalize_patch(patch: Mapping[str, Any]) -> Dict[str, Any]:
    """Rename top-level keys to their wire names.

    `current_hp` and `currentHp` land on the same key; when both appear,
    the later one wins (records merge key by key).
    """
    result: Dict[str, Any] = {}
    for key, value in patch.items():
        target_key = wire_name(key)
        existing = result.get(target_key)
        if isinstance(value, dict) and isinstance(existing, dict):
            result[target_key] = deep_merge(existing, value)
        else:
            result[target_key] = value
    return result


def merge_document(document: Mapping[str, Any], patch: Mapping[str, Any]) -> Dict[str, Any]:
    """Typed merge of a patch into a character document (wire keys)."""
    result = copy.deepcopy(dict(document))
    for key, value in patch.items():
        if value is UNSET or key in PROTECTED_KEYS:
            continue
        target_key = wire_name(key)
        existing = result.get(target_key)
        if field_kind(target_key) == "record" and isinstance(value, dict) and isinstance(existing, dict):
            result[target_key] = deep_merge(existing, value)
        else:
            result[target_key] = copy.deepcopy(value)
    return result


def merge_character(existing: Character, patch: Mapping[str, Any]) -> Character:
    """Apply a patch to a stored character and revalidate the result.

    Raises pydantic.ValidationError when the merged document is invalid;
    `existing` is left untouched either way.
    """
    merged = merge_document(existing.to_document(), patch)
    merged["id"] = existing.id
    merged["userId"] = existing.user_id
    return Character.model_validate(merged)
