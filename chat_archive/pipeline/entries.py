"""Archive entry construction and display formatting."""

import re
import uuid

from chat_archive.models import (
    ArchiveEntry,
    Classification,
    CombatEncounter,
    EventRecord,
    RollAnalysis,
    RollRecreation,
)

from . import annotations
from .markup import preview, sanitize_markup, strip_markup
from .rolls import actor_name, roll_summary

GAME_TERMS = (
    "attack",
    "damage",
    "hit",
    "miss",
    "critical",
    "fumble",
    "spell",
    "cast",
    "save",
    "saving throw",
    "initiative",
    "combat",
    "round",
    "turn",
    "action",
    "bonus action",
    "reaction",
    "movement",
    "heal",
    "death save",
)

COMBAT_TERMS = ("attack", "damage", "hit", "miss", "kill", "defeat", "victory")

_PROPER_NOUN_RE = re.compile(r"\b[A-Z][a-z]+\b")
_BRACKET_TAG_RE = re.compile(r"\[[^\]]*\]")
_DAMAGE_TYPE_RE = re.compile(r"(?<=[\d)])\s+[A-Za-z]+(?:\s+[A-Za-z]+)*")
_ACTION_KEYS = ("type", "action", "identifier", "traits", "dc", "outcome", "domains")


def new_entry_id() -> str:
    return uuid.uuid4().hex[:16]


# ── Display ───────────────────────────────────────────────


def content_icon(text: str) -> str:
    """Glyph guessed from the content when no formatter-specific one applies."""
    lower = text.lower()
    if "damage" in lower:
        return "⚔️"
    if "heal" in lower:
        return "❤️"
    if "item" in lower or "gold" in lower:
        return "📦"
    if re.search(r"\bxp\b", lower) or "level" in lower:
        return "⭐"
    return "📝"


def format_individual(record: EventRecord, analysis: RollAnalysis | None) -> tuple[str, str]:
    """(glyph, one-line text) for a record kept as its own entry."""
    body = strip_markup(record.body_text)

    if analysis is not None:
        if analysis.kind in ("attack", "damage"):
            icon = "⚔️"
        elif analysis.kind == "spell-attack" or annotations.spell_level(record) is not None:
            icon = "🔮"
        else:
            icon = "🎲"
        return icon, roll_summary(analysis)

    if re.search(r"\bcasts?\b", body) or annotations.spell_level(record) is not None:
        return "🔮", preview(body)

    if record.is_whisper:
        targets = ", ".join(record.whisper_targets)
        return "🤫", f"{actor_name(record)} to {targets}: {preview(body)}"

    if record.style_kind == "in-character":
        actor = actor_name(record)
        prefix = f"{actor}: " if actor != "Unknown" else ""
        return "💬", f"{prefix}{preview(body)}"
    if record.style_kind == "emote":
        return "✨", preview(body)
    if record.style_kind == "out-of-character":
        return "💭", preview(body)

    return content_icon(body), preview(body)


def format_combat(encounter: CombatEncounter) -> str:
    return f"⚔️ {encounter.title} ({len(encounter.rounds)} rounds, {encounter.outcome})"


# ── Roll recreation ───────────────────────────────────────


def clean_formula(formula: str | None) -> str | None:
    """Strip bracketed tags and the damage type after each term: "2d6+4 slashing" -> "2d6+4"."""
    if not formula:
        return None
    cleaned = _BRACKET_TAG_RE.sub("", formula)
    cleaned = _DAMAGE_TYPE_RE.sub("", cleaned.strip())
    cleaned = re.sub(r"\s+", " ", cleaned).strip()
    return cleaned or None


def roll_recreation(record: EventRecord, analysis: RollAnalysis | None) -> RollRecreation | None:
    """Enough of the roll or action payload to regenerate it later."""
    origin = annotations.origin(record)
    if analysis is None and origin is None:
        return None

    context = annotations.lookup(record, "context")
    action = None
    if isinstance(context, dict):
        action = {key: context[key] for key in _ACTION_KEYS if key in context} or None

    if analysis is None:
        return RollRecreation(origin=origin, action=action, flavor=strip_markup(record.flavor_text) or None)

    payload = record.roll_payload[0] if record.roll_payload else None
    return RollRecreation(
        formula=clean_formula(analysis.formula),
        total=analysis.total,
        roll_type=analysis.roll_type,
        kind=analysis.kind,
        flavor=(payload.flavor if payload else None) or strip_markup(record.flavor_text) or None,
        dice=list(analysis.dice),
        origin=origin,
        action=action,
    )


# ── Keywords ──────────────────────────────────────────────


def extract_keywords(text: str) -> list[str]:
    """Proper nouns plus known game terms, lowercased and deduplicated in order."""
    plain = strip_markup(text)
    lower = plain.lower()
    keywords: list[str] = []
    for word in _PROPER_NOUN_RE.findall(plain):
        if word.lower() not in keywords:
            keywords.append(word.lower())
    for term in GAME_TERMS:
        if term in lower and term not in keywords:
            keywords.append(term)
    return keywords


def combat_keywords(encounter: CombatEncounter) -> list[str]:
    keywords: list[str] = []

    def add(word: str) -> None:
        if word and word not in keywords:
            keywords.append(word)

    for name in encounter.participants:
        add(name.lower())
    add(encounter.location.lower())
    text = " ".join([encounter.title, *encounter.key_moments, encounter.outcome]).lower()
    for word in _PROPER_NOUN_RE.findall(" ".join([encounter.title, *encounter.key_moments])):
        add(word.lower())
    for term in COMBAT_TERMS:
        if term in text:
            add(term)
    add("combat")
    return keywords


# ── Builders ──────────────────────────────────────────────


def combat_entry(encounter: CombatEncounter) -> ArchiveEntry:
    if encounter.casualties:
        reason = "casualties"
    elif encounter.stats.critical_actions:
        reason = "critical roll"
    else:
        reason = None
    return ArchiveEntry(
        id=new_entry_id(),
        kind="combat-summary",
        categories=["combat"],
        timestamp=encounter.start_time,
        display_text=format_combat(encounter),
        icon="⚔️",
        original_record_ids=list(encounter.original_record_ids),
        is_key_event=reason is not None,
        key_event_reason=reason,
        is_critical=encounter.stats.critical_actions > 0,
        combat_summary=encounter,
        search_keywords=combat_keywords(encounter),
    )


def individual_entry(
    record: EventRecord,
    classification: Classification,
    analysis: RollAnalysis | None,
) -> ArchiveEntry:
    icon, text = format_individual(record, analysis)
    sanitized = record.model_dump()
    sanitized["body_text"] = sanitize_markup(record.body_text)
    sanitized["flavor_text"] = sanitize_markup(record.flavor_text) or None
    return ArchiveEntry(
        id=new_entry_id(),
        kind="individual",
        categories=list(classification.categories),
        timestamp=record.timestamp,
        display_text=f"{icon} {text}",
        icon=icon,
        original_record_ids=[record.id],
        is_key_event=classification.is_key_event,
        key_event_reason=classification.key_event_reason,
        is_critical=classification.is_critical,
        roll_recreation=roll_recreation(record, analysis),
        record=sanitized,
        search_keywords=extract_keywords(f"{record.body_text} {record.flavor_text or ''}"),
    )
