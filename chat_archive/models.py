"""Core domain models.

All pipeline stages, storage backends and API routes operate on these types.
Pydantic is used for validation and serialisation at every data boundary.

Input records are frozen value objects; everything derived from them
(classification, encounters, entries) is built once and never mutated.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

StyleKind = Literal[
    "in-character",
    "out-of-character",
    "emote",
    "system",
    "other",
]

RollKind = Literal[
    "attack",
    "spell-attack",
    "damage",
    "save",
    "skill",
    "initiative",
    "generic",
]

ActionKind = Literal["attack", "damage", "save"]

Outcome = Literal["Victory", "Defeat", "Unknown"]

EntryKind = Literal["combat-summary", "individual"]

StorageType = Literal["document", "flat-file"]


# ---------------------------------------------------------------------------
# Input
# ---------------------------------------------------------------------------

class RollTerm(BaseModel):
    """One term of a dice formula: a die, a numeric modifier or an operator."""

    model_config = ConfigDict(frozen=True)

    faces: int | None = None  # die terms only
    number: float | None = None  # dice count for die terms, value for numeric terms
    results: list[int] = Field(default_factory=list)
    flavor: str | None = None  # per-term label, e.g. "Proficiency"
    operator: str | None = None  # "+" | "-" for operator terms

    @property
    def is_die(self) -> bool:
        return self.faces is not None

    @property
    def is_numeric(self) -> bool:
        return self.faces is None and self.operator is None and self.number is not None


class RollPayload(BaseModel):
    model_config = ConfigDict(frozen=True)

    formula: str = ""
    total: float | None = None
    terms: list[RollTerm] = Field(default_factory=list)
    flavor: str | None = None  # modifier breakdown text some systems attach


class EventRecord(BaseModel):
    """A single entry of the chat log, immutable once received."""

    model_config = ConfigDict(frozen=True)

    id: str
    timestamp: int  # milliseconds, non-decreasing across a batch
    author_name: str = ""
    body_text: str = ""
    flavor_text: str | None = None
    style_kind: StyleKind = "other"
    roll_payload: list[RollPayload] = Field(default_factory=list)
    structured_annotations: dict[str, Any] = Field(default_factory=dict)
    whisper_targets: list[str] = Field(default_factory=list)

    @property
    def is_whisper(self) -> bool:
        return bool(self.whisper_targets)


class ActorRoster(BaseModel):
    """Which names belong to player-controlled characters and which to NPCs.

    Lookup is case-insensitive and ignores a trailing token number, so
    "goblin 2" resolves like "Goblin". Names in neither list are unknown.
    """

    model_config = ConfigDict(frozen=True)

    players: list[str] = Field(default_factory=list)
    npcs: list[str] = Field(default_factory=list)

    def is_player(self, name: str | None) -> bool | None:
        """True for a player character, False for a known NPC, None if unresolvable."""
        if not name:
            return None
        for candidate in _name_variants(name):
            if candidate in {p.lower() for p in self.players}:
                return True
            if candidate in {n.lower() for n in self.npcs}:
                return False
        return None


def _name_variants(name: str) -> list[str]:
    lowered = name.strip().lower()
    base = lowered.rstrip("0123456789").strip()
    return [lowered, base] if base and base != lowered else [lowered]


class CompressionContext(BaseModel):
    """Session-level inputs to one compression pass."""

    model_config = ConfigDict(frozen=True)

    active_combat: bool = False
    preserve_item_transfers: bool = True
    enable_combat_compression: bool = True
    combat_timeout_ms: int = 5 * 60 * 1000
    roster: ActorRoster = Field(default_factory=ActorRoster)
    scene_name: str | None = None
    session_number: int = 1
    session_start: int | None = None


# ---------------------------------------------------------------------------
# Derived, per record
# ---------------------------------------------------------------------------

class DieResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    faces: int
    number: int
    results: list[int] = Field(default_factory=list)
    label: str | None = None


class Modifier(BaseModel):
    model_config = ConfigDict(frozen=True)

    value: float
    label: str | None = None  # best effort, may be wrong


class RollAnalysis(BaseModel):
    model_config = ConfigDict(frozen=True)

    actor: str
    roll_type: str  # display label, e.g. "Attack", "Grapple (Athletics)"
    kind: RollKind
    total: float | None = None
    formula: str | None = None
    dice: list[DieResult] = Field(default_factory=list)
    modifiers: list[Modifier] = Field(default_factory=list)
    target: str | None = None  # None means unknown, not "no target"
    is_success: bool | None = None
    is_critical: bool = False
    is_fumble: bool = False
    degree: str | None = None


class Classification(BaseModel):
    model_config = ConfigDict(frozen=True)

    categories: list[str] = Field(default_factory=lambda: ["all"])
    is_critical: bool = False
    is_key_event: bool = False
    key_event_reason: str | None = None
    malformed: bool = False


# ---------------------------------------------------------------------------
# Combat
# ---------------------------------------------------------------------------

class Action(BaseModel):
    actor: str
    kind: ActionKind
    target: str | None = None
    roll: float | None = None
    damage: float | None = None
    hit: bool | None = None
    success: bool | None = None
    critical: bool = False
    fumble: bool = False
    record_id: str | None = None


class Round(BaseModel):
    number: int
    actions: list[Action] = Field(default_factory=list)


class CombatStats(BaseModel):
    model_config = ConfigDict(frozen=True)

    total_damage_dealt: float = 0
    total_damage_taken: float = 0
    critical_actions: int = 0


class CombatEncounter(BaseModel):
    """A finalized combat episode. Built once by the detector."""

    model_config = ConfigDict(frozen=True)

    title: str
    start_time: int
    end_time: int
    participants: list[str] = Field(default_factory=list)
    allies: list[str] = Field(default_factory=list)
    enemies: list[str] = Field(default_factory=list)
    rounds: list[Round] = Field(default_factory=list)
    casualties: list[str] = Field(default_factory=list)
    outcome: Outcome = "Unknown"
    location: str = "Unknown Location"
    key_moments: list[str] = Field(default_factory=list)
    stats: CombatStats = Field(default_factory=CombatStats)
    end_reason: Literal["signal", "timeout", "exhausted", "restart"] = "signal"
    original_record_ids: list[str] = Field(default_factory=list)

    @property
    def duration(self) -> str:
        return f"{len(self.rounds)} rounds"


# ---------------------------------------------------------------------------
# Output
# ---------------------------------------------------------------------------

class RollRecreation(BaseModel):
    """Enough of a roll or action button to regenerate it later."""

    model_config = ConfigDict(frozen=True)

    formula: str | None = None
    total: float | None = None
    roll_type: str | None = None
    kind: RollKind | None = None
    flavor: str | None = None
    dice: list[DieResult] = Field(default_factory=list)
    origin: dict[str, Any] | None = None  # item/actor reference from annotations
    action: dict[str, Any] | None = None  # roll context (type, traits, dc, ...)


class ArchiveEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    kind: EntryKind
    categories: list[str]
    timestamp: int
    display_text: str
    icon: str = "📝"
    original_record_ids: list[str]
    is_key_event: bool = False
    key_event_reason: str | None = None
    is_critical: bool = False
    roll_recreation: RollRecreation | None = None
    combat_summary: CombatEncounter | None = None  # combat-summary entries
    record: dict[str, Any] | None = None  # sanitized source record, individual entries
    search_keywords: list[str] = Field(default_factory=list)


class Statistics(BaseModel):
    total_combats: int = 0
    total_rolls: int = 0
    total_dialogues: int = 0
    total_skill_checks: int = 0
    critical_successes: int = 0
    critical_failures: int = 0
    items_transferred: int = 0
    xp_awarded: int = 0
    key_events: int = 0

    def __add__(self, other: Statistics) -> Statistics:
        return Statistics(**{
            name: getattr(self, name) + getattr(other, name)
            for name in Statistics.model_fields
        })


class SearchIndex(BaseModel):
    keywords: list[str] = Field(default_factory=list)
    actors: list[str] = Field(default_factory=list)
    scenes: list[str] = Field(default_factory=list)
    types: dict[str, list[str]] = Field(default_factory=dict)  # entry kind -> entry ids
    categories: dict[str, list[str]] = Field(default_factory=dict)  # category -> entry ids


def compression_ratio(original: int, compressed: int) -> int:
    """Percentage reduction, rounded. 0 when nothing was compressed."""
    if original <= 0:
        return 0
    return round((original - compressed) / original * 100)


class CompressionResult(BaseModel):
    """Output of one compression pass, before it is persisted."""

    entries: list[ArchiveEntry] = Field(default_factory=list)
    statistics: Statistics = Field(default_factory=Statistics)
    search_index: SearchIndex = Field(default_factory=SearchIndex)
    original_message_count: int = 0
    compressed_entry_count: int = 0
    consumed_record_ids: list[str] = Field(default_factory=list)
    combat_active: bool = False  # combat state at the end of the batch

    @property
    def compression_ratio(self) -> int:
        return compression_ratio(self.original_message_count, self.compressed_entry_count)


class Archive(BaseModel):
    """A persisted session archive, as read back from a storage backend."""

    id: str
    name: str
    session_number: int
    session_name: str = ""
    storage_type: StorageType = "document"
    created_at: str = ""
    updated_at: str = ""
    entries: list[ArchiveEntry] = Field(default_factory=list)
    statistics: Statistics = Field(default_factory=Statistics)
    search_index: SearchIndex = Field(default_factory=SearchIndex)
    original_message_count: int = 0
    compressed_entry_count: int = 0
    compression_ratio: int = 0
    consumed_record_ids: list[str] = Field(default_factory=list)
