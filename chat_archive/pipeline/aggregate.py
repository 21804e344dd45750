"""Statistics, search index and archive merging."""

import logging
import re

from chat_archive.models import (
    Archive,
    ArchiveEntry,
    CompressionResult,
    EventRecord,
    SearchIndex,
    Statistics,
    compression_ratio,
)

from . import annotations
from .rolls import actor_name, combined_text, is_critical_text, is_fumble_text

logger = logging.getLogger(__name__)

_XP_RE = re.compile(r"\bxp\b|experience points", re.IGNORECASE)


def _source_record(entry: ArchiveEntry) -> EventRecord | None:
    if entry.record is None:
        return None
    return EventRecord.model_validate(entry.record)


def compute_statistics(entries: list[ArchiveEntry]) -> Statistics:
    """Counts over one list of entries.

    Combat summaries contribute their actions as rolls, plus their critical
    and fumbled actions. Individual entries prefer the structured outcome
    tag over text phrases when counting criticals.
    """
    stats = Statistics()
    for entry in entries:
        if entry.is_key_event:
            stats.key_events += 1

        if entry.combat_summary is not None:
            stats.total_combats += 1
            for round_ in entry.combat_summary.rounds:
                stats.total_rolls += len(round_.actions)
                stats.critical_successes += sum(1 for a in round_.actions if a.critical)
                stats.critical_failures += sum(1 for a in round_.actions if a.fumble)
            continue

        recreation = entry.roll_recreation
        if "roll" in entry.categories or (recreation is not None and recreation.kind is not None):
            stats.total_rolls += 1
        if recreation is not None and recreation.kind == "skill":
            stats.total_skill_checks += 1
        if "speech" in entry.categories or "emote" in entry.categories:
            stats.total_dialogues += 1
        if "items" in entry.categories:
            stats.items_transferred += 1

        record = _source_record(entry)
        if record is None:
            continue
        text = combined_text(record)
        if _XP_RE.search(text):
            stats.xp_awarded += 1

        outcome = annotations.outcome_tag(record)
        if outcome == "critical-success":
            stats.critical_successes += 1
        elif outcome == "critical-failure":
            stats.critical_failures += 1
        elif outcome is None:
            if is_critical_text(text):
                stats.critical_successes += 1
            elif is_fumble_text(text):
                stats.critical_failures += 1
    return stats


def _add_unique(values: list[str], value: str | None) -> None:
    if value and value not in values:
        values.append(value)


def build_search_index(entries: list[ArchiveEntry], scene_name: str | None = None) -> SearchIndex:
    index = SearchIndex()
    _add_unique(index.scenes, scene_name)

    for entry in entries:
        for keyword in entry.search_keywords:
            _add_unique(index.keywords, keyword)
        index.types.setdefault(entry.kind, []).append(entry.id)
        for category in entry.categories:
            index.categories.setdefault(category, []).append(entry.id)

        if entry.combat_summary is not None:
            for name in entry.combat_summary.participants:
                _add_unique(index.actors, name)
            if entry.combat_summary.location != "Unknown Location":
                _add_unique(index.scenes, entry.combat_summary.location)
        else:
            record = _source_record(entry)
            if record is not None:
                actor = actor_name(record)
                if actor != "Unknown":
                    _add_unique(index.actors, actor)
    return index


def merge_index(base: SearchIndex, extra: SearchIndex) -> SearchIndex:
    """Union of two indexes; id lists are concatenated without duplicates."""
    merged = base.model_copy(deep=True)
    for name in ("keywords", "actors", "scenes"):
        target = getattr(merged, name)
        for value in getattr(extra, name):
            _add_unique(target, value)
    for name in ("types", "categories"):
        target = getattr(merged, name)
        for key, ids in getattr(extra, name).items():
            bucket = target.setdefault(key, [])
            for entry_id in ids:
                _add_unique(bucket, entry_id)
    return merged


def _without_records(entry: ArchiveEntry, consumed: set[str]) -> ArchiveEntry:
    remaining = [rid for rid in entry.original_record_ids if rid not in consumed]
    update: dict = {"original_record_ids": remaining}
    if entry.combat_summary is not None:
        update["combat_summary"] = entry.combat_summary.model_copy(
            update={"original_record_ids": remaining}
        )
    return entry.model_copy(update=update)


def merge_archive(existing: Archive, result: CompressionResult, scene_name: str | None = None) -> Archive:
    """Fold a pass result into an archive.

    Entries whose records the archive has already consumed are skipped, so
    appending the same result twice leaves the archive unchanged. An entry
    that only partly overlaps keeps just its new record ids.
    Statistics are summed, index sets unioned, entries re-sorted and the
    compression ratio recomputed from the new totals.
    """
    consumed = set(existing.consumed_record_ids)
    fresh: list[ArchiveEntry] = []
    for entry in result.entries:
        seen = [rid for rid in entry.original_record_ids if rid in consumed]
        if len(seen) == len(entry.original_record_ids):
            continue
        if seen:
            logger.warning(
                "Entry %s overlaps %d already archived record(s); dropping them from it",
                entry.id, len(seen),
            )
            entry = _without_records(entry, consumed)
        fresh.append(entry)

    new_ids: list[str] = []
    for rid in result.consumed_record_ids:
        if rid not in consumed:
            consumed.add(rid)
            new_ids.append(rid)

    if not fresh and not new_ids:
        logger.info("Archive %s already contains this pass; nothing to merge", existing.id)
        return existing

    entries = sorted([*existing.entries, *fresh], key=lambda e: e.timestamp)
    original_count = existing.original_message_count + len(new_ids)
    compressed_count = existing.compressed_entry_count + len(fresh)

    return existing.model_copy(update={
        "entries": entries,
        "statistics": existing.statistics + compute_statistics(fresh),
        "search_index": merge_index(existing.search_index, build_search_index(fresh, scene_name)),
        "original_message_count": original_count,
        "compressed_entry_count": compressed_count,
        "compression_ratio": compression_ratio(original_count, compressed_count),
        "consumed_record_ids": [*existing.consumed_record_ids, *new_ids],
    })
