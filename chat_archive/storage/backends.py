"""Archive persistence backends.

Two interchangeable implementations of `ArchiveBackend`, both scoped to one
campaign and addressed by archive id:

  DocumentBackend   the whole archive inline in one JSON document
                    campaigns/<slug>/archives/<id>.json
  FlatFileBackend   entries in a separate file, everything else in a
                    lightweight index record
                    campaigns/<slug>/archive-index.json
                    campaigns/<slug>/archive-files/<id>.json

Every I/O or decoding problem surfaces as StorageError; a missing archive
as ArchiveNotFoundError.
"""

import json
import logging
import uuid
from pathlib import Path
from typing import Any, Protocol

from pydantic import ValidationError

from chat_archive.models import Archive, StorageType

from .core import campaign_dir, now_iso

logger = logging.getLogger(__name__)


class StorageError(Exception):
    """An archive could not be written or read back."""


class ArchiveNotFoundError(StorageError, LookupError):
    pass


class ArchiveBackend(Protocol):
    storage_type: StorageType

    def create(self, archive: Archive) -> str: ...

    def append(self, handle: str, archive: Archive) -> str: ...

    def read(self, handle: str) -> Archive: ...

    def delete(self, handle: str) -> None: ...

    def list_archives(self) -> list[dict[str, Any]]: ...

    def find_session(self, session_number: int) -> str | None: ...


def new_archive_id(session_number: int) -> str:
    return f"session-{session_number}-{uuid.uuid4().hex[:8]}"


def _summary(archive: Archive) -> dict[str, Any]:
    return {
        "id": archive.id,
        "name": archive.name,
        "session_number": archive.session_number,
        "session_name": archive.session_name,
        "storage_type": archive.storage_type,
        "created_at": archive.created_at,
        "updated_at": archive.updated_at,
        "original_message_count": archive.original_message_count,
        "compressed_entry_count": archive.compressed_entry_count,
        "compression_ratio": archive.compression_ratio,
    }


def _read_json(path: Path) -> Any:
    try:
        return json.loads(path.read_text())
    except (OSError, json.JSONDecodeError) as e:
        raise StorageError(f"Could not read {path.name}: {e}") from e


def _write_json(path: Path, data: Any) -> None:
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(data, indent=2, ensure_ascii=False))
    except OSError as e:
        raise StorageError(f"Could not write {path.name}: {e}") from e


def _stamp(archive: Archive, storage_type: StorageType) -> Archive:
    now = now_iso()
    update: dict[str, Any] = {"storage_type": storage_type, "updated_at": now}
    if not archive.created_at:
        update["created_at"] = now
    return archive.model_copy(update=update)


# ── Document backend ──────────────────────────────────────


class DocumentBackend:
    storage_type: StorageType = "document"

    def __init__(self, slug: str):
        self.slug = slug

    def _dir(self) -> Path:
        return campaign_dir(self.slug) / "archives"

    def _path(self, handle: str) -> Path:
        return self._dir() / f"{handle}.json"

    def create(self, archive: Archive) -> str:
        archive = _stamp(archive, self.storage_type)
        _write_json(self._path(archive.id), archive.model_dump(mode="json"))
        logger.info("Created document archive %s (%d entries)", archive.id, len(archive.entries))
        return archive.id

    def append(self, handle: str, archive: Archive) -> str:
        if not self._path(handle).is_file():
            raise ArchiveNotFoundError(f"Archive {handle} not found")
        archive = _stamp(archive.model_copy(update={"id": handle}), self.storage_type)
        _write_json(self._path(handle), archive.model_dump(mode="json"))
        logger.info("Updated document archive %s (%d entries)", handle, len(archive.entries))
        return handle

    def read(self, handle: str) -> Archive:
        path = self._path(handle)
        if not path.is_file():
            raise ArchiveNotFoundError(f"Archive {handle} not found")
        try:
            return Archive.model_validate(_read_json(path))
        except ValidationError as e:
            raise StorageError(f"Archive {handle} is corrupt: {e.error_count()} error(s)") from e

    def delete(self, handle: str) -> None:
        path = self._path(handle)
        if not path.is_file():
            raise ArchiveNotFoundError(f"Archive {handle} not found")
        path.unlink()
        logger.info("Deleted document archive %s", handle)

    def list_archives(self) -> list[dict[str, Any]]:
        if not self._dir().is_dir():
            return []
        return [_summary(self.read(path.stem)) for path in sorted(self._dir().glob("*.json"))]

    def find_session(self, session_number: int) -> str | None:
        for summary in self.list_archives():
            if summary["session_number"] == session_number:
                return summary["id"]
        return None


# ── Flat-file backend ─────────────────────────────────────


class FlatFileBackend:
    storage_type: StorageType = "flat-file"

    def __init__(self, slug: str):
        self.slug = slug

    def _index_path(self) -> Path:
        return campaign_dir(self.slug) / "archive-index.json"

    def _file_path(self, handle: str) -> Path:
        return campaign_dir(self.slug) / "archive-files" / f"{handle}.json"

    def _load_index(self) -> list[dict[str, Any]]:
        path = self._index_path()
        if not path.is_file():
            return []
        return _read_json(path)

    def _save_index(self, index: list[dict[str, Any]]) -> None:
        _write_json(self._index_path(), index)

    def _index_record(self, archive: Archive) -> dict[str, Any]:
        record = _summary(archive)
        record["file"] = self._file_path(archive.id).name
        record["statistics"] = archive.statistics.model_dump(mode="json")
        record["search_index"] = archive.search_index.model_dump(mode="json")
        record["consumed_record_ids"] = list(archive.consumed_record_ids)
        return record

    def _save(self, archive: Archive) -> None:
        entries = [e.model_dump(mode="json") for e in archive.entries]
        _write_json(self._file_path(archive.id), {"archive_id": archive.id, "entries": entries})
        index = [r for r in self._load_index() if r["id"] != archive.id]
        index.append(self._index_record(archive))
        self._save_index(index)

    def create(self, archive: Archive) -> str:
        archive = _stamp(archive, self.storage_type)
        self._save(archive)
        logger.info("Created flat-file archive %s (%d entries)", archive.id, len(archive.entries))
        return archive.id

    def append(self, handle: str, archive: Archive) -> str:
        if not any(r["id"] == handle for r in self._load_index()):
            raise ArchiveNotFoundError(f"Archive {handle} not found")
        archive = _stamp(archive.model_copy(update={"id": handle}), self.storage_type)
        self._save(archive)
        logger.info("Updated flat-file archive %s (%d entries)", handle, len(archive.entries))
        return handle

    def read(self, handle: str) -> Archive:
        record = next((r for r in self._load_index() if r["id"] == handle), None)
        if record is None:
            raise ArchiveNotFoundError(f"Archive {handle} not found")
        path = self._file_path(handle)
        if not path.is_file():
            raise StorageError(f"Entries file for archive {handle} is missing")
        data = {k: v for k, v in record.items() if k != "file"}
        data["entries"] = _read_json(path).get("entries", [])
        try:
            return Archive.model_validate(data)
        except ValidationError as e:
            raise StorageError(f"Archive {handle} is corrupt: {e.error_count()} error(s)") from e

    def delete(self, handle: str) -> None:
        index = self._load_index()
        remaining = [r for r in index if r["id"] != handle]
        if len(remaining) == len(index):
            raise ArchiveNotFoundError(f"Archive {handle} not found")
        self._save_index(remaining)
        path = self._file_path(handle)
        if path.is_file():
            path.unlink()
        logger.info("Deleted flat-file archive %s", handle)

    def list_archives(self) -> list[dict[str, Any]]:
        keys = ("id", "name", "session_number", "session_name", "storage_type", "created_at",
                "updated_at", "original_message_count", "compressed_entry_count", "compression_ratio")
        return [{k: r.get(k) for k in keys} for r in self._load_index()]

    def find_session(self, session_number: int) -> str | None:
        for record in self._load_index():
            if record["session_number"] == session_number:
                return record["id"]
        return None


_BACKENDS: dict[str, type] = {
    "document": DocumentBackend,
    "flat-file": FlatFileBackend,
}


def get_backend(slug: str, storage_type: str) -> ArchiveBackend:
    if storage_type not in _BACKENDS:
        raise ValueError(f"Unknown storage type: {storage_type}")
    return _BACKENDS[storage_type](slug)


def all_backends(slug: str) -> list[ArchiveBackend]:
    return [cls(slug) for cls in _BACKENDS.values()]
