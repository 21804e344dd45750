"""Markdown export of an archive, rendered with Handlebars."""

from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any

import pybars

from chat_archive.models import Archive, ArchiveEntry
from chat_archive.pipeline.markup import strip_markup

_compiler = pybars.Compiler()
_cache: dict[str, Callable] = {}


class ExportError(Exception):
    """Raised when the export template fails to compile or render."""


ARCHIVE_TEMPLATE = """\
# {{{name}}}

## Compression Statistics
- Original Messages: {{original_message_count}}
- Compressed Entries: {{compressed_entry_count}}
- Compression Ratio: {{compression_ratio}}%

## Session Statistics
- Combat Encounters: {{statistics.total_combats}}
- Total Rolls: {{statistics.total_rolls}}
- Skill Checks: {{statistics.total_skill_checks}}
- Dialogues: {{statistics.total_dialogues}}
- Critical Successes: {{statistics.critical_successes}}
- Critical Failures: {{statistics.critical_failures}}
- Items Transferred: {{statistics.items_transferred}}
- XP Awards: {{statistics.xp_awarded}}
- Key Events: {{statistics.key_events}}

## Entries

{{#each entries}}
### [{{time}}] {{{display_text}}}{{#if is_key_event}} ★{{/if}}

{{#if combat}}
- Location: {{{combat.location}}}
- Outcome: {{combat.outcome}} ({{combat.duration}})
- Allies: {{{join combat.allies}}}
- Enemies: {{{join combat.enemies}}}
{{#if combat.casualties}}
- Casualties: {{{join combat.casualties}}}
{{/if}}
- Damage dealt / taken: {{combat.stats.total_damage_dealt}} / {{combat.stats.total_damage_taken}}
{{#each combat.key_moments}}
  - {{{this}}}
{{/each}}
{{/if}}
{{#if text}}
> {{{text}}}
{{/if}}

---

{{/each}}
"""


def _helper_join(this, items, separator=", "):
    """{{join array}} — comma-separated list, "none" when empty."""
    values = [str(item) for item in (items or [])]
    return separator.join(values) if values else "none"


_HELPERS: dict[str, Callable] = {
    "join": _helper_join,
}


def render_template(template_str: str, context: dict[str, Any]) -> str:
    """Compile (cached by source) and render a Handlebars template."""
    try:
        compiled = _cache.get(template_str)
        if compiled is None:
            compiled = _compiler.compile(template_str)
            _cache[template_str] = compiled
        return str(compiled(context, helpers=_HELPERS))
    except Exception as e:
        raise ExportError(f"Template error: {e}") from e


def _entry_context(entry: ArchiveEntry) -> dict[str, Any]:
    time = datetime.fromtimestamp(entry.timestamp / 1000, tz=timezone.utc).strftime("%H:%M:%S")
    combat = None
    if entry.combat_summary is not None:
        combat = entry.combat_summary.model_dump(mode="json")
        combat["duration"] = entry.combat_summary.duration
    text = None
    if entry.record is not None:
        text = strip_markup(entry.record.get("body_text")) or None
    return {
        "time": time,
        "display_text": entry.display_text,
        "is_key_event": entry.is_key_event,
        "combat": combat,
        "text": text,
    }


def export_markdown(archive: Archive) -> str:
    context = archive.model_dump(mode="json", exclude={"entries"})
    context["entries"] = [_entry_context(e) for e in archive.entries]
    return render_template(ARCHIVE_TEMPLATE, context)
