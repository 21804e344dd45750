"""Presence-checked access to a record's structured annotations.

Annotations are whatever a game-system integration attached to the record,
so every lookup is presence-checked and every shape is optional. Recognised
keys (flat or nested under "context" / "core"):

  roll_type       "attack-roll" | "spell-attack-roll" | "damage-roll" |
                  "saving-throw" | "skill-check" | "initiative" | ...
  outcome         "criticalSuccess" | "success" | "failure" | "criticalFailure"
  initiative_roll true on initiative rolls
  target          "Name" or {"name": ...}
  origin          {"uuid", "actor", "type", "name", "level"} item/spell reference
  spell_level     int
  hero_point      true when a hero point was spent
  speaker         {"alias": ...} or "Name"
"""

import re
from typing import Any

from chat_archive.models import EventRecord

_MISSING = object()


def lookup(record: EventRecord, *path: str) -> Any:
    """Walk nested dicts; None as soon as a step is missing or not a dict."""
    node: Any = record.structured_annotations
    for key in path:
        if not isinstance(node, dict):
            return None
        node = node.get(key, _MISSING)
        if node is _MISSING:
            return None
    return node


def first(record: EventRecord, *paths: tuple[str, ...]) -> Any:
    """First non-empty value among several candidate paths."""
    for path in paths:
        value = lookup(record, *path)
        if value not in (None, "", [], {}):
            return value
    return None


def roll_type_tag(record: EventRecord) -> str | None:
    value = first(record, ("roll_type",), ("context", "type"))
    return value.lower() if isinstance(value, str) else None


def outcome_tag(record: EventRecord) -> str | None:
    """Normalised outcome: critical-success, success, failure or critical-failure."""
    value = first(record, ("outcome",), ("context", "outcome"))
    if not isinstance(value, str):
        return None
    squashed = re.sub(r"[^a-z]", "", value.lower())
    return {
        "criticalsuccess": "critical-success",
        "success": "success",
        "failure": "failure",
        "criticalfailure": "critical-failure",
    }.get(squashed)


def has_initiative_flag(record: EventRecord) -> bool:
    return bool(first(record, ("initiative_roll",), ("core", "initiativeRoll")))


def target_name(record: EventRecord) -> str | None:
    value = first(record, ("target",), ("context", "target"))
    if isinstance(value, dict):
        value = value.get("name")
    return value.strip() if isinstance(value, str) and value.strip() else None


def origin(record: EventRecord) -> dict[str, Any] | None:
    value = first(record, ("origin",), ("context", "origin"))
    return dict(value) if isinstance(value, dict) else None


def spell_level(record: EventRecord) -> int | None:
    value = first(record, ("spell_level",), ("origin", "level"), ("context", "spellLevel"))
    if isinstance(value, bool):
        return None
    try:
        return int(value) if value is not None else None
    except (TypeError, ValueError):
        return None


def hero_point_used(record: EventRecord) -> bool:
    return bool(first(record, ("hero_point",), ("context", "heroPoint")))


def speaker_alias(record: EventRecord) -> str | None:
    value = lookup(record, "speaker")
    if isinstance(value, dict):
        value = value.get("alias")
    return value.strip() if isinstance(value, str) and value.strip() else None
