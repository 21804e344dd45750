"""Per-record classification.

Categories are additive: each rule is evaluated on its own and a record
collects every category that fires, in a stable order. A record matching
nothing gets the sentinel "all".

Whether combat is currently active is not global state. It is a value
(`CombatState`) the pipeline threads from one record to the next, starting
from the session's flag. Outside active combat no record is tagged combat.
"""

import re

from pydantic import BaseModel, ConfigDict

from chat_archive.models import Classification, EventRecord, RollAnalysis

from . import annotations
from .key_events import key_event_reason
from .markup import strip_markup

COMBAT_START_PHRASES = (
    "combat has started",
    "combat started",
    "roll initiative",
    "roll for initiative",
    "enters combat",
)

COMBAT_END_PHRASES = (
    "combat has ended",
    "combat ended",
    "combat is over",
    "encounter ended",
    "all enemies defeated",
)

CASUALTY_RE = re.compile(r"\b(?:dies|died|unconscious|reduced to 0|drops to 0)\b", re.IGNORECASE)

# Always-preserved phrases; short ones are whole-word so "expect" is not "xp".
CRITICAL_RE = re.compile(
    r"critical hit|critical miss|death save|level up|\bxp\b|\bdies\b|unconscious",
    re.IGNORECASE,
)

_COMBAT_ROLL_KINDS = ("attack", "spell-attack", "damage", "save")
_COMBAT_WORDS_RE = re.compile(r"\b(?:attacks?|damage|saving throw|initiative)\b|\bround\s+\d+", re.IGNORECASE)
_HEALING_RE = re.compile(r"\bheal", re.IGNORECASE)
_ITEMS_RE = re.compile(r"\b(?:items?|gold|loot)\b", re.IGNORECASE)
_IMPORTANT_RE = re.compile(r"\bxp\b|level|important", re.IGNORECASE)


def _body(record: EventRecord) -> str:
    return strip_markup(record.body_text).lower()


def is_combat_start(record: EventRecord) -> bool:
    return is_combat_start_phrase(record) or annotations.has_initiative_flag(record)


def is_combat_start_phrase(record: EventRecord) -> bool:
    body = _body(record)
    return any(phrase in body for phrase in COMBAT_START_PHRASES)


def is_combat_end(record: EventRecord) -> bool:
    body = _body(record)
    return any(phrase in body for phrase in COMBAT_END_PHRASES)


def is_casualty(record: EventRecord) -> bool:
    return bool(CASUALTY_RE.search(strip_markup(record.body_text)))


class CombatState(BaseModel):
    """Combat-active flag as it stands before a given record."""

    model_config = ConfigDict(frozen=True)

    active: bool = False

    def entering(self, record: EventRecord) -> "CombatState":
        """State used to classify `record`: a start signal switches combat on."""
        if not self.active and is_combat_start(record):
            return CombatState(active=True)
        return self

    def leaving(self, record: EventRecord) -> "CombatState":
        """State after `record`: an end signal switches combat off."""
        if self.active and is_combat_end(record):
            return CombatState(active=False)
        return self


def _is_combat(record: EventRecord, analysis: RollAnalysis | None) -> bool:
    if analysis is not None and analysis.kind in _COMBAT_ROLL_KINDS:
        return True
    if annotations.has_initiative_flag(record):
        return True
    if analysis is not None and analysis.kind == "initiative":
        return True
    body = strip_markup(record.body_text)
    return (
        is_combat_start_phrase(record)
        or is_combat_end(record)
        or is_casualty(record)
        or bool(_COMBAT_WORDS_RE.search(body))
    )


def classify_record(
    record: EventRecord,
    combat: CombatState | None = None,
    analysis: RollAnalysis | None = None,
    malformed: bool = False,
) -> Classification:
    """Categories, critical flag and key-event flag for one record.

    `combat` is the state returned by `CombatState.entering(record)`;
    `analysis` is the record's roll analysis, if it is a roll.
    """
    body = strip_markup(record.body_text)
    categories: list[str] = []

    if combat is not None and combat.active and _is_combat(record, analysis):
        categories.append("combat")
    if analysis is not None:
        categories.append("roll")
    if record.style_kind == "in-character":
        categories.append("speech")
    if record.style_kind == "emote":
        categories.append("emote")
    if record.is_whisper:
        categories.append("whispers")
    if record.style_kind in ("system", "out-of-character"):
        categories.append("system")
    if _HEALING_RE.search(body):
        categories.append("healing")
    if _ITEMS_RE.search(body):
        categories.append("items")
    if _IMPORTANT_RE.search(body):
        categories.append("important")
    if not categories:
        categories.append("all")

    reason = key_event_reason(record)
    return Classification(
        categories=categories,
        is_critical=bool(CRITICAL_RE.search(body)),
        is_key_event=reason is not None,
        key_event_reason=reason,
        malformed=malformed,
    )
