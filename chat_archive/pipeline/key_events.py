"""Key-event rules: which records belong in a session's highlight list.

Rules in priority order. Every rule is evaluated; the first one that matches
is reported as the reason. Conditions match on markup-stripped text, while
the raw markup is also scanned for style-class hints such as
``class="critical-success"`` that never show up as plain words.
"""

import re
from typing import Callable

from chat_archive.models import EventRecord

from . import annotations
from .markup import strip_markup

CONDITIONS = (
    "doomed",
    "drained",
    "enfeebled",
    "stupefied",
    "clumsy",
    "slowed",
    "stunned",
    "paralyzed",
    "petrified",
    "confused",
    "blinded",
    "deafened",
    "frightened",
    "sickened",
    "immobilized",
    "restrained",
    "controlled",
)

CURRENCY_THRESHOLD = 100
SPELL_LEVEL_THRESHOLD = 4

_CRITICAL_TEXT_RE = re.compile(
    r"critical (?:success|hit|failure|miss)|\bfumbled?\b|\bcrit!", re.IGNORECASE
)
_CRITICAL_CLASS_RE = re.compile(r"critical[-_ ]?(?:success|failure|hit|miss)|fumble", re.IGNORECASE)
_DYING_RE = re.compile(
    r"\b(?:dying|death|dies|died|dead|unconscious|knocked out|wounded)\b", re.IGNORECASE
)
_RECOVERY_RE = re.compile(r"death sav(?:e|ing throw)|recovery check|\bstabiliz", re.IGNORECASE)
_HERO_POINT_RE = re.compile(r"\bhero points?\b", re.IGNORECASE)
_SPELL_LEVEL_RE = re.compile(r"\b(\d+)(?:st|nd|rd|th)[- ](?:level|rank) spell", re.IGNORECASE)
_XP_RE = re.compile(
    r"\bxp\b|experience points|\blevel(?:s|ed)? up\b|gains? a level", re.IGNORECASE
)
_CURRENCY_RE = re.compile(r"\b(\d[\d,]*)\s*(?:gold|gp|pp|platinum)\b", re.IGNORECASE)
_TREASURE_RE = re.compile(
    r"\b(?:treasure|loot|artifact|relic|legendary|unique item)\b", re.IGNORECASE
)
_CONDITION_RE = re.compile(
    r"persistent damage|\b(?:" + "|".join(CONDITIONS) + r")\b", re.IGNORECASE
)


class _Texts:
    """Stripped and raw views of a record, computed once per evaluation."""

    def __init__(self, record: EventRecord):
        self.record = record
        self.plain = f"{strip_markup(record.body_text)} {strip_markup(record.flavor_text)}"
        self.raw = f"{record.body_text} {record.flavor_text or ''}"


def _critical_outcome(t: _Texts) -> bool:
    return annotations.outcome_tag(t.record) in ("critical-success", "critical-failure")


def _critical_text(t: _Texts) -> bool:
    if _CRITICAL_TEXT_RE.search(t.plain):
        return True
    return any(_CRITICAL_CLASS_RE.search(hint) for hint in re.findall(r'class="([^"]*)"', t.raw))


def _dying(t: _Texts) -> bool:
    return bool(_DYING_RE.search(t.plain))


def _recovery(t: _Texts) -> bool:
    return bool(_RECOVERY_RE.search(t.plain))


def _hero_point(t: _Texts) -> bool:
    return annotations.hero_point_used(t.record) or bool(_HERO_POINT_RE.search(t.plain))


def _high_level_spell(t: _Texts) -> bool:
    level = annotations.spell_level(t.record)
    if level is not None and level >= SPELL_LEVEL_THRESHOLD:
        return True
    return any(int(n) >= SPELL_LEVEL_THRESHOLD for n in _SPELL_LEVEL_RE.findall(t.plain))


def _experience(t: _Texts) -> bool:
    return bool(_XP_RE.search(t.plain))


def _treasure(t: _Texts) -> bool:
    for amount in _CURRENCY_RE.findall(t.plain):
        if int(amount.replace(",", "")) >= CURRENCY_THRESHOLD:
            return True
    return bool(_TREASURE_RE.search(t.plain))


def _condition(t: _Texts) -> bool:
    return bool(_CONDITION_RE.search(t.plain))


RULES: tuple[tuple[str, Callable[[_Texts], bool]], ...] = (
    ("critical outcome", _critical_outcome),
    ("critical roll", _critical_text),
    ("dying or death", _dying),
    ("death save", _recovery),
    ("hero point", _hero_point),
    ("high-level spell", _high_level_spell),
    ("experience", _experience),
    ("treasure", _treasure),
    ("condition", _condition),
)


def key_event_reasons(record: EventRecord) -> list[str]:
    """Every rule the record matches, in priority order."""
    texts = _Texts(record)
    return [reason for reason, rule in RULES if rule(texts)]


def key_event_reason(record: EventRecord) -> str | None:
    """Highest-priority matching rule, or None if the record is not a key event."""
    reasons = key_event_reasons(record)
    return reasons[0] if reasons else None
