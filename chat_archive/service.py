"""Compression passes, archive lookup and search for one campaign.

A pass reads the pending records, runs the pipeline, then creates or
appends the current session's archive. Pending records are only removed
once the archive is durably written. At most one pass runs per campaign;
a trigger that arrives while one is running is logged and dropped.
"""

import logging
import threading
from typing import Any, Literal

from pydantic import BaseModel

from chat_archive import storage
from chat_archive.models import (
    ActorRoster,
    Archive,
    ArchiveEntry,
    CompressionContext,
    CompressionResult,
)
from chat_archive.pipeline import merge_archive, run_compression
from chat_archive.storage import ArchiveBackend, ArchiveNotFoundError, StorageError

logger = logging.getLogger(__name__)

_locks: dict[str, threading.Lock] = {}
_locks_guard = threading.Lock()


class PassOutcome(BaseModel):
    """What a compression pass did.

    status:
      saved     archive written with the configured backend
      fallback  configured backend failed, written with the other one
      unsaved   no backend could write; `result` is the in-memory pass
      empty     nothing was pending
    """

    status: Literal["saved", "fallback", "unsaved", "empty"]
    session_number: int
    archive_id: str | None = None
    storage_type: str | None = None
    removed_records: int = 0
    error: str | None = None
    result: CompressionResult


def _lock_for(slug: str) -> threading.Lock:
    with _locks_guard:
        return _locks.setdefault(slug, threading.Lock())


def build_context(campaign: dict[str, Any], config: dict[str, Any]) -> CompressionContext:
    session = campaign["session"]
    roster = campaign.get("roster", {})
    return CompressionContext(
        active_combat=session.get("combat_active", False),
        preserve_item_transfers=config["preserve_item_transfers"],
        enable_combat_compression=config["enable_combat_compression"],
        combat_timeout_ms=int(config["combat_timeout_minutes"] * 60 * 1000),
        roster=ActorRoster(players=roster.get("players", []), npcs=roster.get("npcs", [])),
        scene_name=campaign.get("scene_name") or None,
        session_number=session["number"],
        session_start=session.get("started_at"),
    )


def _session_archive(slug: str, session_number: int) -> tuple[ArchiveBackend, Archive] | None:
    """The session's archive and the backend holding it, across all backends.

    A stale copy left behind by an interrupted move loses to the copy that
    has consumed more records.
    """
    found = []
    for backend in storage.all_backends(slug):
        handle = backend.find_session(session_number)
        if handle is not None:
            found.append((backend, backend.read(handle)))
    if not found:
        return None
    if len(found) > 1:
        logger.warning(
            "Session %d of %s has archives in %s storage; using the most complete",
            session_number, slug, " and ".join(b.storage_type for b, _ in found),
        )
    return max(found, key=lambda item: len(item[1].consumed_record_ids))


def _unarchived(records: list[Any], archive: Archive | None) -> list[Any]:
    if archive is None:
        return records
    consumed = set(archive.consumed_record_ids)
    return [r for r in records if not (isinstance(r, dict) and r.get("id") in consumed)]


def _persist(
    campaign: dict[str, Any],
    result: CompressionResult,
    storage_type: str,
    existing: tuple[ArchiveBackend, Archive] | None,
) -> str:
    """Create or append the session archive with one backend. Returns its id.

    If the session's archive lives in another backend it is merged, written
    to this one and removed from the old one, so a session keeps one archive.
    """
    slug = campaign["slug"]
    session = campaign["session"]
    backend = storage.get_backend(slug, storage_type)
    scene = campaign.get("scene_name") or None

    if existing is None:
        empty = Archive(
            id=storage.new_archive_id(session["number"]),
            name=f"{campaign['title']} - {session['name']}",
            session_number=session["number"],
            session_name=session["name"],
        )
        return backend.create(merge_archive(empty, result, scene))

    source, archive = existing
    merged = merge_archive(archive, result, scene)
    if source.storage_type == backend.storage_type:
        return backend.append(archive.id, merged)

    handle = backend.create(merged)
    logger.warning("Moved archive %s of %s from %s to %s storage",
                   archive.id, slug, source.storage_type, backend.storage_type)
    try:
        source.delete(archive.id)
    except (StorageError, OSError) as e:
        logger.error("Could not remove the %s copy of archive %s: %s", source.storage_type, archive.id, e)
    return handle


def compress_campaign(slug: str, keep_originals: bool | None = None) -> PassOutcome | None:
    """Run one guarded pass. Returns None if a pass is already running.

    Raises LookupError for an unknown campaign. PipelineError propagates
    with the pending records untouched.
    """
    campaign = storage.get_campaign(slug)
    if campaign is None:
        raise LookupError(f"Campaign {slug} not found")

    lock = _lock_for(slug)
    if not lock.acquire(blocking=False):
        logger.info("Compression already running for %s; ignoring trigger", slug)
        return None
    try:
        return _run_pass(campaign, keep_originals)
    finally:
        lock.release()


def _run_pass(campaign: dict[str, Any], keep_originals: bool | None) -> PassOutcome:
    slug = campaign["slug"]
    session_number = campaign["session"]["number"]
    config = storage.get_config()
    context = build_context(campaign, config)
    records = storage.get_records(slug)

    if not records:
        logger.info("No pending records for %s", slug)
        return PassOutcome(
            status="empty",
            session_number=session_number,
            result=CompressionResult(combat_active=context.active_combat),
        )

    keep = config["keep_originals"] if keep_originals is None else keep_originals
    try:
        existing = _session_archive(slug, session_number)
    except StorageError as e:
        logger.error("Could not read the session %d archive of %s: %s", session_number, slug, e)
        return PassOutcome(
            status="unsaved",
            session_number=session_number,
            error=str(e),
            result=run_compression(records, context),
        )

    pending = _unarchived(records, existing[1] if existing else None)
    if len(pending) < len(records):
        logger.info("Skipping %d record(s) of %s already in the session archive",
                    len(records) - len(pending), slug)
    if not pending:
        removed = 0 if keep else storage.remove_records(slug, len(records))
        return PassOutcome(
            status="empty",
            session_number=session_number,
            archive_id=existing[1].id,
            storage_type=existing[0].storage_type,
            removed_records=removed,
            result=CompressionResult(combat_active=context.active_combat),
        )

    result = run_compression(pending, context)

    preferred = config["storage_type"]
    attempts = [preferred]
    if config["storage_fallback"]:
        attempts += [t for t in storage.STORAGE_TYPES if t != preferred]

    archive_id = None
    used = None
    error = None
    for storage_type in attempts:
        try:
            archive_id = _persist(campaign, result, storage_type, existing)
            used = storage_type
            break
        except StorageError as e:
            logger.error("Could not save archive for %s with %s storage: %s", slug, storage_type, e)
            error = str(e)

    if archive_id is None:
        logger.warning("Keeping %d pending records for %s; archive not saved", len(records), slug)
        return PassOutcome(
            status="unsaved",
            session_number=session_number,
            error=error,
            result=result,
        )
    if used != preferred:
        logger.warning("Archive for %s saved with fallback %s storage", slug, used)

    removed = 0 if keep else storage.remove_records(slug, len(records))
    storage.record_pass(slug, result.combat_active)

    return PassOutcome(
        status="saved" if used == preferred else "fallback",
        session_number=session_number,
        archive_id=archive_id,
        storage_type=used,
        removed_records=removed,
        result=result,
    )


# ── Archive lookup ────────────────────────────────────────


def list_archives(slug: str) -> list[dict[str, Any]]:
    """Archives from every backend, newest session first."""
    summaries = []
    for backend in storage.all_backends(slug):
        summaries.extend(backend.list_archives())
    return sorted(summaries, key=lambda s: s["session_number"] or 0, reverse=True)


def get_archive(slug: str, archive_id: str) -> Archive:
    for backend in storage.all_backends(slug):
        try:
            return backend.read(archive_id)
        except ArchiveNotFoundError:
            continue
    raise ArchiveNotFoundError(f"Archive {archive_id} not found")


def delete_archive(slug: str, archive_id: str) -> None:
    for backend in storage.all_backends(slug):
        try:
            backend.delete(archive_id)
            return
        except ArchiveNotFoundError:
            continue
    raise ArchiveNotFoundError(f"Archive {archive_id} not found")


def _archives(slug: str, session_number: int | None) -> list[Archive]:
    archives = []
    for summary in list_archives(slug):
        if session_number is not None and summary["session_number"] != session_number:
            continue
        archives.append(get_archive(slug, summary["id"]))
    return archives


def _entry_actors(entry: ArchiveEntry) -> list[str]:
    if entry.combat_summary is not None:
        return list(entry.combat_summary.participants)
    if entry.record is not None:
        return [entry.record.get("author_name") or ""]
    return []


def search(
    slug: str,
    query: str = "",
    kind: str | None = None,
    session_number: int | None = None,
    actor: str | None = None,
    scene: str | None = None,
) -> list[dict[str, Any]]:
    """Entries matching every given filter, in archive then timestamp order.

    `query` is a case-insensitive substring match over the whole entry.
    """
    results = []
    needle = query.lower()
    for archive in _archives(slug, session_number):
        scenes = {s.lower() for s in archive.search_index.scenes}
        if scene and scene.lower() not in scenes:
            continue
        for entry in archive.entries:
            if kind and entry.kind != kind:
                continue
            if actor and actor.lower() not in {a.lower() for a in _entry_actors(entry)}:
                continue
            if needle and needle not in entry.model_dump_json().lower():
                continue
            results.append({
                "archive_id": archive.id,
                "session_number": archive.session_number,
                "entry": entry.model_dump(mode="json"),
            })
    return results


def highlights(slug: str, session_number: int | None = None) -> list[dict[str, Any]]:
    """Key-event entries, for a session summary."""
    results = []
    for archive in _archives(slug, session_number):
        for entry in archive.entries:
            if not entry.is_key_event:
                continue
            results.append({
                "archive_id": archive.id,
                "session_number": archive.session_number,
                "entry_id": entry.id,
                "timestamp": entry.timestamp,
                "icon": entry.icon,
                "display_text": entry.display_text,
                "reason": entry.key_event_reason,
            })
    return results
