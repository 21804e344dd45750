"""Combat encounter detection.

A two-state machine over the time-ordered combat records of one pass:

  Idle         a start signal (initiative annotation or a start phrase)
               opens an encounter at that record's timestamp.
  InEncounter  an end phrase closes it at the end record's timestamp;
               a gap longer than the timeout closes it at the last absorbed
               timestamp and the record is re-evaluated as Idle;
               a start phrase closes it and opens the next one;
               anything else is absorbed.

Encounters still open when the stream runs out close at the last absorbed
timestamp. An initiative roll inside an open encounter is absorbed rather
than treated as a restart, since every combatant rolls one.
"""

import logging
import re
from typing import Sequence

from pydantic import BaseModel, Field

from chat_archive.models import (
    Action,
    ActorRoster,
    CombatEncounter,
    CombatStats,
    EventRecord,
    Outcome,
    RollAnalysis,
    Round,
)

from . import rolls
from .classifier import is_casualty, is_combat_end, is_combat_start, is_combat_start_phrase
from .markup import strip_markup

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_MS = 5 * 60 * 1000

_ROUND_RE = re.compile(r"\bround\s+(\d+)", re.IGNORECASE)
_CASUALTY_NAME_RE = re.compile(
    r"\b((?:[Tt]he|[Aa]n?)\s+[a-z][\w'-]*(?:\s+\d+)?|[A-Z][\w'-]*(?:\s+(?:[A-Z][\w'-]*|\d+))*)\s+"
    r"(?:is\s+|falls\s+|has\s+been\s+|was\s+|is\s+knocked\s+)?"
    r"(?:dies|died|unconscious|reduced\s+to\s+0|drops\s+to\s+0)"
)
_TITLE_KEYWORDS = (("ambush", "Ambush"), ("boss", "Boss Fight"))


class _OpenEncounter(BaseModel):
    """Mutable working state of the encounter being detected."""

    start_time: int
    last_time: int
    participants: list[str] = Field(default_factory=list)
    rounds: list[Round] = Field(default_factory=list)
    casualties: list[str] = Field(default_factory=list)
    record_ids: list[str] = Field(default_factory=list)
    texts: list[str] = Field(default_factory=list)

    def add_participant(self, name: str | None) -> None:
        if name and name != "Unknown" and name not in self.participants:
            self.participants.append(name)

    def add_casualty(self, name: str | None) -> None:
        if name and name not in self.casualties:
            self.casualties.append(name)

    @property
    def current_round(self) -> Round:
        if not self.rounds:
            self.rounds.append(Round(number=1))
        return self.rounds[-1]

    def pending_attack(self) -> Action | None:
        """Last action of the round if it is an attack still waiting for damage."""
        actions = self.current_round.actions
        if actions and actions[-1].kind == "attack" and actions[-1].hit is not False and actions[-1].damage is None:
            return actions[-1]
        return None


def casualty_name(record: EventRecord, analysis: RollAnalysis | None = None) -> str | None:
    """Who fell: the subject of the casualty phrase, else the target, else the actor."""
    match = _CASUALTY_NAME_RE.search(strip_markup(record.body_text))
    if match:
        name = re.sub(r"^(?:the|an?)\s+", "", match.group(1).strip(), flags=re.IGNORECASE)
        return name[0].upper() + name[1:]
    target = analysis.target if analysis is not None else rolls.target_of(record)
    if target:
        return target
    actor = rolls.actor_name(record)
    return None if actor == "Unknown" else actor


class CombatDetector:
    """Group combat records into encounters.

    `roster` decides which participants are player-controlled; it drives
    outcome, title and damage attribution.
    """

    def __init__(
        self,
        roster: ActorRoster | None = None,
        timeout_ms: int = DEFAULT_TIMEOUT_MS,
        scene_name: str | None = None,
    ):
        self.roster = roster or ActorRoster()
        self.timeout_ms = timeout_ms
        self.scene_name = scene_name

    def detect(
        self,
        records: Sequence[EventRecord],
        analyses: dict[str, RollAnalysis | None] | None = None,
    ) -> list[CombatEncounter]:
        """Detect encounters in time-ordered `records`.

        `analyses` maps record id to a precomputed roll analysis; records
        missing from it are analysed here.
        """
        encounters: list[CombatEncounter] = []
        current: _OpenEncounter | None = None

        for record in records:
            if analyses is not None and record.id in analyses:
                analysis = analyses[record.id]
            else:
                analysis = rolls.analyze_roll(record)

            if current is not None:
                if is_combat_end(record):
                    current.record_ids.append(record.id)
                    current.texts.append(strip_markup(record.body_text).lower())
                    current.last_time = record.timestamp
                    encounters.append(self._finalize(current, "signal"))
                    current = None
                    continue
                if record.timestamp - current.last_time > self.timeout_ms:
                    logger.info(
                        "Combat timed out after %d ms of inactivity (record %s)",
                        record.timestamp - current.last_time, record.id,
                    )
                    encounters.append(self._finalize(current, "timeout"))
                    current = None
                elif is_combat_start_phrase(record):
                    encounters.append(self._finalize(current, "restart"))
                    current = self._open(record, analysis)
                    continue
                else:
                    self._absorb(current, record, analysis)
                    continue

            if is_combat_start(record):
                current = self._open(record, analysis)
            else:
                logger.debug("Record %s is outside any encounter", record.id)

        if current is not None:
            encounters.append(self._finalize(current, "exhausted"))

        logger.info("Detected %d combat encounter(s) in %d records", len(encounters), len(records))
        return encounters

    # ── Absorbing ──────────────────────────────────────────

    def _open(self, record: EventRecord, analysis: RollAnalysis | None) -> _OpenEncounter:
        logger.debug("Combat start at record %s", record.id)
        encounter = _OpenEncounter(start_time=record.timestamp, last_time=record.timestamp)
        self._absorb(encounter, record, analysis)
        return encounter

    def _absorb(self, encounter: _OpenEncounter, record: EventRecord, analysis: RollAnalysis | None) -> None:
        encounter.record_ids.append(record.id)
        encounter.last_time = record.timestamp
        text = rolls.combined_text(record)
        encounter.texts.append(text)

        round_match = _ROUND_RE.search(text)
        if round_match:
            number = int(round_match.group(1))
            if not encounter.rounds or number > encounter.rounds[-1].number:
                encounter.rounds.append(Round(number=number))

        if analysis is not None:
            self._absorb_roll(encounter, record, analysis)
        else:
            self._absorb_text(encounter, record, text)

        if is_casualty(record):
            encounter.add_casualty(casualty_name(record, analysis))

    def _absorb_roll(self, encounter: _OpenEncounter, record: EventRecord, analysis: RollAnalysis) -> None:
        encounter.add_participant(analysis.actor)
        actions = encounter.current_round.actions

        if analysis.kind in ("attack", "spell-attack"):
            actions.append(Action(
                actor=analysis.actor,
                kind="attack",
                target=analysis.target,
                roll=analysis.total,
                hit=analysis.is_success,
                critical=analysis.is_critical,
                fumble=analysis.is_fumble,
                record_id=record.id,
            ))
        elif analysis.kind == "damage":
            amount = analysis.total
            if amount is None:
                amount = rolls.extract_damage(rolls.combined_text(record))
            self._add_damage(encounter, record, analysis.actor, analysis.target, amount, analysis.is_critical)
        elif analysis.kind == "save":
            actions.append(Action(
                actor=analysis.actor,
                kind="save",
                target=analysis.target,
                roll=analysis.total,
                success=analysis.is_success,
                critical=analysis.is_critical,
                fumble=analysis.is_fumble,
                record_id=record.id,
            ))

    def _absorb_text(self, encounter: _OpenEncounter, record: EventRecord, text: str) -> None:
        if re.search(r"\battacks?\b", text):
            actor = rolls.actor_name(record)
            encounter.add_participant(actor)
            encounter.current_round.actions.append(Action(
                actor=actor,
                kind="attack",
                target=rolls.target_of(record),
                roll=rolls.roll_total(record),
                hit=rolls.is_hit(text),
                critical=rolls.is_critical_text(text),
                fumble=rolls.is_fumble_text(text),
                record_id=record.id,
            ))
        elif re.search(r"\bdamage\b", text):
            amount = rolls.extract_damage(text)
            if amount is not None:
                actor = rolls.actor_name(record)
                encounter.add_participant(actor)
                self._add_damage(encounter, record, actor, rolls.target_of(record), amount, False)

    def _add_damage(
        self,
        encounter: _OpenEncounter,
        record: EventRecord,
        actor: str,
        target: str | None,
        amount: float | None,
        critical: bool,
    ) -> None:
        pending = encounter.pending_attack()
        if pending is not None:
            pending.damage = amount
            if target and not pending.target:
                pending.target = target
            return
        encounter.current_round.actions.append(Action(
            actor=actor,
            kind="damage",
            target=target,
            damage=amount,
            critical=critical,
            record_id=record.id,
        ))

    # ── Finalizing ─────────────────────────────────────────

    def _outcome(self, casualties: list[str]) -> Outcome:
        if not casualties:
            return "Unknown"
        if any(self.roster.is_player(name) is True for name in casualties):
            return "Defeat"
        return "Victory"

    def _title(self, encounter: _OpenEncounter) -> str:
        text = " ".join(encounter.texts)
        for keyword, title in _TITLE_KEYWORDS:
            if re.search(rf"\b{keyword}", text):
                return title
        # known NPCs first, then names the roster cannot resolve
        for wanted in (False, None):
            for name in encounter.participants:
                if self.roster.is_player(name) is wanted:
                    base = name.rstrip("0123456789").strip()
                    if base:
                        return f"{base} Encounter"
        return "Combat Encounter"

    def _finalize(self, encounter: _OpenEncounter, end_reason: str) -> CombatEncounter:
        dealt = 0.0
        taken = 0.0
        criticals = 0
        key_moments: list[str] = []

        for round_ in encounter.rounds:
            for action in round_.actions:
                if action.critical:
                    criticals += 1
                    if action.damage:
                        key_moments.append(
                            f"{action.actor} scored a critical hit on {action.target or 'target'} "
                            f"({rolls.format_number(action.damage)} damage)"
                        )
                    else:
                        key_moments.append(f"{action.actor} scored a critical hit")
                if action.fumble:
                    key_moments.append(f"{action.actor} critically failed")
                if action.damage:
                    owner = self.roster.is_player(action.actor)
                    if owner is True:
                        dealt += action.damage
                    elif owner is False:
                        taken += action.damage

        for name in encounter.casualties:
            key_moments.append(f"{name} was defeated")

        summary = CombatEncounter(
            title=self._title(encounter),
            start_time=encounter.start_time,
            end_time=encounter.last_time,
            participants=list(encounter.participants),
            allies=[p for p in encounter.participants if self.roster.is_player(p) is True],
            enemies=[p for p in encounter.participants if self.roster.is_player(p) is not True],
            rounds=[r.model_copy(deep=True) for r in encounter.rounds],
            casualties=list(encounter.casualties),
            outcome=self._outcome(encounter.casualties),
            location=self.scene_name or "Unknown Location",
            key_moments=key_moments,
            stats=CombatStats(
                total_damage_dealt=dealt,
                total_damage_taken=taken,
                critical_actions=criticals,
            ),
            end_reason=end_reason,
            original_record_ids=list(encounter.record_ids),
        )
        logger.info(
            "Finalized combat %r: %d rounds, %d records, outcome %s (%s)",
            summary.title, len(summary.rounds), len(summary.original_record_ids),
            summary.outcome, end_reason,
        )
        return summary
