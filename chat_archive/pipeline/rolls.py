"""Roll analysis: turn one record's dice payload into a structured result.

Roll type precedence (first match wins):
  1. structured roll-type annotation (skill checks also read action/skill
     names out of the flavor markup)
  2. "initiative"
  3. skill names (before any attack/damage wording, so "Athletics" rolls whose
     flavor mentions an attack stay skill rolls)
  4. "skill check" / "(X Check)" phrases
  5. perception / stealth
  6. save / saving throw
  7. damage
  8. spell attack, attack / strike
  9. ability names
  10. "Roll"

Degree of success is a separate signal read from body + flavor text.
Modifier labels are zipped on best effort and may be wrong.
"""

import logging
import re

from chat_archive.models import DieResult, EventRecord, Modifier, RollAnalysis, RollKind, RollPayload

from . import annotations
from .markup import strip_markup

logger = logging.getLogger(__name__)

ROLL_TEXT_RE = re.compile(r"\b\d*d\d+\b(?:\s*[+-]\s*\d+)*\s*=\s*-?\d+", re.IGNORECASE)

SKILLS = (
    "acrobatics",
    "arcana",
    "athletics",
    "crafting",
    "deception",
    "diplomacy",
    "intimidation",
    "medicine",
    "nature",
    "occultism",
    "performance",
    "religion",
    "society",
    "survival",
    "thievery",
    "animal handling",
    "history",
    "insight",
    "investigation",
    "persuasion",
    "sleight of hand",
)

ABILITIES = (
    "strength",
    "dexterity",
    "constitution",
    "intelligence",
    "wisdom",
    "charisma",
)

# annotation roll type -> (label, kind)
_TAGGED_TYPES: dict[str, tuple[str, RollKind]] = {
    "attack-roll": ("Attack", "attack"),
    "spell-attack-roll": ("Spell Attack", "spell-attack"),
    "damage-roll": ("Damage", "damage"),
    "saving-throw": ("Saving Throw", "save"),
    "initiative": ("Initiative", "initiative"),
    "perception-check": ("Perception", "skill"),
}

_FORMULA_LABEL_HINTS = (
    ("proficiency", "Proficiency"),
    ("ability", "Ability"),
    ("item", "Item"),
    ("circumstance", "Circumstance"),
    ("status", "Status"),
)

_MODIFIER_RE = re.compile(r"([A-Za-z][A-Za-z ]*?)\s*([+-]\d+)")
_ACTION_SKILL_RE = re.compile(r"([A-Za-z]+)\s*[◆●○]?\s*\(([A-Za-z]+)\s+Check\)", re.IGNORECASE)
_SKILL_ONLY_RE = re.compile(r"\(([A-Za-z]+)\s+Check\)", re.IGNORECASE)
_STRONG_RE = re.compile(r"<strong>([A-Za-z\s]+)</strong>", re.IGNORECASE)
_TARGET_LABEL_RE = re.compile(r"Target:\s*([^,.;:()\[\]<>\n]+)", re.IGNORECASE)
_VERSUS_RE = re.compile(r"\b(?:vs\.?|versus)\s+([A-Z][\w'-]*(?:\s+(?:[A-Z][\w'-]*|\d+))*)")
_LEADING_NAME_RE = re.compile(r"^([A-Z][a-z]+(?:\s+[A-Z][a-z]+)*)")
_TOTAL_RE = re.compile(r"=\s*(-?\d+(?:\.\d+)?)")
_DAMAGE_RES = (
    re.compile(r"(\d+)\s*(?:damage|dmg)\b", re.IGNORECASE),
    re.compile(r"\b(?:takes|dealt|deals)\s*(\d+)", re.IGNORECASE),
    re.compile(r"(\d+)\s*(?:hit points|hp)\b", re.IGNORECASE),
)


def _has_word(text: str, *words: str) -> bool:
    return any(re.search(rf"\b{re.escape(w)}\b", text) for w in words)


def combined_text(record: EventRecord) -> str:
    """Stripped body + flavor, lowercased. The text most rules match against."""
    return f"{strip_markup(record.body_text)} {strip_markup(record.flavor_text)}".strip().lower()


def is_roll(record: EventRecord) -> bool:
    """True if the record carries a roll payload or reads like a rendered dice roll."""
    if record.roll_payload:
        return True
    return bool(ROLL_TEXT_RE.search(strip_markup(record.body_text)))


def roll_total(record: EventRecord) -> float | None:
    if record.roll_payload and record.roll_payload[0].total is not None:
        return record.roll_payload[0].total
    match = _TOTAL_RE.search(strip_markup(record.body_text))
    return float(match.group(1)) if match else None


def actor_name(record: EventRecord) -> str:
    if record.author_name.strip():
        return record.author_name.strip()
    alias = annotations.speaker_alias(record)
    if alias:
        return alias
    match = _LEADING_NAME_RE.match(strip_markup(record.body_text))
    return match.group(1) if match else "Unknown"


def target_of(record: EventRecord) -> str | None:
    """Resolve the roll's target, or None when it cannot be determined."""
    tagged = annotations.target_name(record)
    if tagged:
        return tagged
    body = strip_markup(record.body_text)
    match = _TARGET_LABEL_RE.search(body)
    if match and match.group(1).strip():
        return match.group(1).strip()
    match = _VERSUS_RE.search(body)
    if match:
        return match.group(1).strip()
    match = _TARGET_LABEL_RE.search(strip_markup(record.flavor_text))
    if match and match.group(1).strip():
        return match.group(1).strip()
    return None


def _skill_check_label(record: EventRecord) -> str:
    source = record.flavor_text or record.body_text or ""
    action = _STRONG_RE.search(source)
    skill = _SKILL_ONLY_RE.search(strip_markup(source))
    logger.debug("Skill check %s: action=%r skill=%r", record.id, action, skill)
    if action and skill:
        return f"{action.group(1).strip()} ({skill.group(1)})"
    if skill:
        return f"{skill.group(1)} Check"
    return "Skill Check"


def identify_roll_type(record: EventRecord) -> tuple[str, RollKind]:
    """Return (display label, kind) for a roll record."""
    tag = annotations.roll_type_tag(record)
    if tag == "skill-check":
        return _skill_check_label(record), "skill"
    if tag in _TAGGED_TYPES:
        return _TAGGED_TYPES[tag]

    text = combined_text(record)

    if _has_word(text, "initiative") or annotations.has_initiative_flag(record):
        return "Initiative", "initiative"

    for skill in SKILLS:
        if _has_word(text, skill):
            return skill[0].upper() + skill[1:], "skill"

    if "skill check" in text or "check)" in text:
        body = strip_markup(record.body_text)
        match = _ACTION_SKILL_RE.search(body)
        if match:
            return f"{match.group(1)} ({match.group(2)})", "skill"
        match = _SKILL_ONLY_RE.search(body)
        if match:
            return f"{match.group(1)} Check", "skill"
        return "Skill Check", "skill"

    if _has_word(text, "perception"):
        return "Perception", "skill"
    if _has_word(text, "stealth"):
        return "Stealth", "skill"

    if _has_word(text, "save", "saves", "saving throw"):
        return "Saving Throw", "save"

    if _has_word(text, "damage"):
        return "Damage", "damage"

    if "spell attack" in text:
        return "Spell Attack", "spell-attack"
    if _has_word(text, "attack", "attacks", "strike", "strikes"):
        return "Attack", "attack"

    for ability in ABILITIES:
        if _has_word(text, ability):
            return f"{ability.capitalize()} Check", "skill"

    return "Roll", "generic"


def degree_of_success(text: str) -> str | None:
    """Most specific degree phrase in the text, checked critical-first."""
    lower = text.lower()
    if "critical success" in lower:
        return "Critical Success"
    if "critical failure" in lower:
        return "Critical Failure"
    if _has_word(lower, "success"):
        return "Success"
    if _has_word(lower, "failure"):
        return "Failure"
    return None


def is_hit(text: str) -> bool | None:
    lower = text.lower()
    if "hit!" in lower or re.search(r"\bhits?\b(?!\s+points)", lower):
        return True
    if re.search(r"\bmiss(?:es|ed)?\b", lower):
        return False
    return None


def is_critical_text(text: str) -> bool:
    lower = text.lower()
    return "critical hit" in lower or "crit!" in lower or "critical success" in lower


def is_fumble_text(text: str) -> bool:
    lower = text.lower()
    return "fumble" in lower or "critical miss" in lower or "critical failure" in lower


def extract_damage(text: str) -> float | None:
    """Damage amount from prose like "5 damage", "takes 12", "12 hp"."""
    for pattern in _DAMAGE_RES:
        match = pattern.search(text)
        if match:
            return float(match.group(1))
    return None


def infer_modifier_label(formula: str) -> str | None:
    lower = formula.lower()
    for hint, label in _FORMULA_LABEL_HINTS:
        if hint in lower:
            return label
    return None


def zip_modifier_labels(labels: list[str | None], flavor: str | None) -> list[str | None]:
    """Fill missing modifier labels from a "Label +N, Label -N" breakdown.

    Matches are applied by position onto entries that have no label yet.
    Existing labels are never overwritten. Positional matching can pick the
    wrong label when the breakdown order differs from the term order.
    """
    result = list(labels)
    if not flavor:
        return result
    for index, match in enumerate(_MODIFIER_RE.finditer(strip_markup(flavor))):
        if index >= len(result):
            break
        if result[index] is None:
            result[index] = match.group(1).strip() or None
    return result


def _dice_and_modifiers(roll: RollPayload, flavor: str | None) -> tuple[list[DieResult], list[Modifier]]:
    dice: list[DieResult] = []
    values: list[float] = []
    labels: list[str | None] = []
    negate = False
    for term in roll.terms:
        if term.operator is not None:
            negate = term.operator.strip() == "-"
            continue
        if term.is_die:
            dice.append(DieResult(
                faces=term.faces,
                number=int(term.number or 1),
                results=list(term.results),
                label=term.flavor,
            ))
        elif term.is_numeric:
            values.append(-term.number if negate else term.number)
            labels.append(term.flavor or infer_modifier_label(roll.formula))
        negate = False

    if None in labels:
        labels = zip_modifier_labels(labels, roll.flavor or flavor)

    modifiers = [Modifier(value=v, label=label) for v, label in zip(values, labels)]
    return dice, modifiers


def analyze_roll(record: EventRecord) -> RollAnalysis | None:
    """Structured view of the record's (first) roll, or None if it is not a roll."""
    if not is_roll(record):
        return None

    roll_type, kind = identify_roll_type(record)
    text = combined_text(record)
    outcome = annotations.outcome_tag(record)

    dice: list[DieResult] = []
    modifiers: list[Modifier] = []
    formula: str | None = None
    if record.roll_payload:
        roll = record.roll_payload[0]
        formula = roll.formula or None
        dice, modifiers = _dice_and_modifiers(roll, record.flavor_text)

    if outcome is not None:
        success: bool | None = outcome in ("success", "critical-success")
    elif _has_word(text, "success") or is_hit(text):
        success = True
    elif _has_word(text, "failure") or is_hit(text) is False:
        success = False
    else:
        success = None

    degree = degree_of_success(text)
    if degree is None and outcome is not None:
        degree = outcome.replace("-", " ").title()

    return RollAnalysis(
        actor=actor_name(record),
        roll_type=roll_type,
        kind=kind,
        total=roll_total(record),
        formula=formula,
        dice=dice,
        modifiers=modifiers,
        target=target_of(record),
        is_success=success,
        is_critical=outcome == "critical-success" or is_critical_text(text),
        is_fumble=outcome == "critical-failure" or is_fumble_text(text),
        degree=degree,
    )


_HIT_KINDS = ("attack", "spell-attack", "damage")


def format_number(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else str(value)


def roll_summary(analysis: RollAnalysis) -> str:
    """One-line rendering, e.g. "Valeros Attack vs Goblin: 21 ([16], Str +4) ✓"."""
    summary = f"{analysis.actor} {analysis.roll_type}"
    if analysis.target:
        summary += f" vs {analysis.target}"
    if analysis.total is not None:
        summary += f": {format_number(analysis.total)}"

    if analysis.formula and analysis.dice:
        dice = " + ".join(
            f"[{', '.join(str(r) for r in d.results)}]" if d.results else f"{d.number}d{d.faces}"
            for d in analysis.dice
        )
        if analysis.modifiers:
            mods = ", ".join(
                f"{m.label + ' ' if m.label else ''}{'+' if m.value >= 0 else ''}{format_number(m.value)}"
                for m in analysis.modifiers
            )
            summary += f" ({dice}, {mods})"
        else:
            summary += f" ({dice})"

    if analysis.is_critical and analysis.kind in _HIT_KINDS:
        summary += " [CRITICAL HIT]"
    elif analysis.degree:
        summary += f" [{analysis.degree}]"
    elif analysis.is_critical:
        summary += " [CRITICAL SUCCESS]"
    elif analysis.is_fumble:
        summary += " [CRITICAL FAILURE]"
    elif analysis.is_success is True:
        summary += " ✓"
    elif analysis.is_success is False:
        summary += " ✗"
    return summary
