"""One compression pass: records in, entries + statistics + index out.

1. coerce and classify every record, threading the combat state
2. detect encounters over the combat records
3. one combat-summary entry per encounter, its records consumed
4. one individual entry per unconsumed critical record
5. one individual entry per remaining record
6. sort by (timestamp, first input position)

Every input record ends up in exactly one entry; a pass that breaks this
raises PipelineError instead of returning a lossy result.
"""

import logging
from collections import Counter
from typing import Any, Iterable, get_args

from pydantic import ValidationError

from chat_archive.models import (
    ArchiveEntry,
    Classification,
    CompressionContext,
    CompressionResult,
    EventRecord,
    RollAnalysis,
    StyleKind,
)

from .aggregate import build_search_index, compute_statistics
from .classifier import CombatState, classify_record
from .combat import CombatDetector
from .entries import combat_entry, individual_entry
from .rolls import analyze_roll

logger = logging.getLogger(__name__)


class PipelineError(Exception):
    """A compression pass violated one of its invariants."""


# ── Input coercion ────────────────────────────────────────


def _as_int(value: Any, default: int) -> int:
    if isinstance(value, bool):
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _salvage(raw: Any, index: int, previous_ts: int) -> EventRecord:
    """Best-effort record from input that failed validation."""
    data = raw if isinstance(raw, dict) else {"body_text": raw if isinstance(raw, str) else ""}
    record_id = data.get("id")
    body = data.get("body_text")
    author = data.get("author_name")
    style = data.get("style_kind")
    targets = data.get("whisper_targets")
    return EventRecord(
        id=str(record_id) if record_id not in (None, "") else f"malformed-{index}",
        timestamp=_as_int(data.get("timestamp"), previous_ts),
        author_name=author if isinstance(author, str) else "",
        body_text=body if isinstance(body, str) else "",
        style_kind=style if style in get_args(StyleKind) else "other",
        whisper_targets=[t for t in targets if isinstance(t, str)] if isinstance(targets, list) else [],
    )


def coerce_records(records: Iterable[EventRecord | dict[str, Any]]) -> list[tuple[EventRecord, bool]]:
    """Validate raw input. Returns (record, malformed) pairs in input order."""
    batch: list[tuple[EventRecord, bool]] = []
    seen: set[str] = set()
    previous_ts = 0
    for index, raw in enumerate(records):
        malformed = False
        if isinstance(raw, EventRecord):
            record = raw
        else:
            try:
                record = EventRecord.model_validate(raw)
            except ValidationError as exc:
                logger.warning(
                    "Malformed record at position %d (%d error(s)); keeping a best-effort copy",
                    index, exc.error_count(),
                )
                record = _salvage(raw, index, previous_ts)
                malformed = True

        if record.id in seen:
            logger.warning("Duplicate record id %r at position %d; renaming", record.id, index)
            record = record.model_copy(update={"id": f"{record.id}#{index}"})
            malformed = True
        seen.add(record.id)
        previous_ts = record.timestamp
        batch.append((record, malformed))
    return batch


def _analyze(record: EventRecord) -> tuple[RollAnalysis | None, bool]:
    try:
        return analyze_roll(record), False
    except (ValueError, TypeError, ArithmeticError) as exc:
        logger.warning("Unparsable roll on record %s: %s", record.id, exc)
        return None, True


# ── Pass ──────────────────────────────────────────────────


def run_compression(
    records: Iterable[EventRecord | dict[str, Any]],
    context: CompressionContext | None = None,
) -> CompressionResult:
    """Compress one ordered batch of records."""
    context = context or CompressionContext()
    batch = coerce_records(records)
    if not batch:
        logger.info("Empty batch, nothing to compress")
        return CompressionResult(combat_active=context.active_combat)

    logger.info(
        "Compressing %d records for session %d (combat active: %s)",
        len(batch), context.session_number, context.active_combat,
    )

    state = CombatState(active=context.active_combat)
    analyses: dict[str, RollAnalysis | None] = {}
    classifications: dict[str, Classification] = {}
    combat_records: list[EventRecord] = []

    for record, malformed in batch:
        state = state.entering(record)
        analysis, unparsable = (None, False) if malformed else _analyze(record)
        classification = classify_record(record, state, analysis, malformed or unparsable)
        analyses[record.id] = analysis
        classifications[record.id] = classification

        if "combat" in classification.categories:
            if context.preserve_item_transfers and "items" in classification.categories:
                logger.debug("Keeping item transfer %s out of combat summaries", record.id)
            else:
                combat_records.append(record)
        state = state.leaving(record)

    encounters = []
    if context.enable_combat_compression and combat_records:
        detector = CombatDetector(context.roster, context.combat_timeout_ms, context.scene_name)
        encounters = detector.detect(combat_records, analyses)

    position = {record.id: index for index, (record, _) in enumerate(batch)}
    processed: set[str] = set()
    keyed: list[tuple[int, int, ArchiveEntry]] = []

    for encounter in encounters:
        entry = combat_entry(encounter)
        keyed.append((encounter.start_time, position[encounter.original_record_ids[0]], entry))
        processed.update(encounter.original_record_ids)

    for record, _ in batch:
        if record.id not in processed and classifications[record.id].is_critical:
            entry = individual_entry(record, classifications[record.id], analyses[record.id])
            keyed.append((record.timestamp, position[record.id], entry))
            processed.add(record.id)

    for record, _ in batch:
        if record.id not in processed:
            entry = individual_entry(record, classifications[record.id], analyses[record.id])
            keyed.append((record.timestamp, position[record.id], entry))
            processed.add(record.id)

    keyed.sort(key=lambda item: (item[0], item[1]))
    entries = [entry for _, _, entry in keyed]

    produced = Counter(rid for entry in entries for rid in entry.original_record_ids)
    expected = Counter(record.id for record, _ in batch)
    if produced != expected:
        missing = sorted((expected - produced).keys())
        extra = sorted((produced - expected).keys())
        raise PipelineError(f"Entries do not cover the batch exactly (missing={missing}, extra={extra})")

    result = CompressionResult(
        entries=entries,
        statistics=compute_statistics(entries),
        search_index=build_search_index(entries, context.scene_name),
        original_message_count=len(batch),
        compressed_entry_count=len(entries),
        consumed_record_ids=[record.id for record, _ in batch],
        combat_active=state.active,
    )
    logger.info(
        "Compressed %d records into %d entries (%d%%), %d encounter(s)",
        result.original_message_count, result.compressed_entry_count,
        result.compression_ratio, len(encounters),
    )
    return result
