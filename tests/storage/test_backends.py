"""Both archive backends must behave the same through the ArchiveBackend protocol."""

import json

import pytest

from chat_archive import storage
from chat_archive.models import Archive, ArchiveEntry, Statistics
from chat_archive.storage import ArchiveNotFoundError, DocumentBackend, FlatFileBackend, StorageError

BACKENDS = [DocumentBackend, FlatFileBackend]


@pytest.fixture
def slug():
    return storage.create_campaign("Runelords")["slug"]


def _archive(session_number=1, entries=1):
    return Archive(
        id=storage.new_archive_id(session_number),
        name=f"Runelords - Session {session_number}",
        session_number=session_number,
        session_name=f"Session {session_number}",
        entries=[
            ArchiveEntry(
                id=f"e{i}",
                kind="individual",
                categories=["speech"],
                timestamp=i,
                display_text=f"💬 Kyra: line {i}",
                original_record_ids=[f"r{i}"],
            )
            for i in range(entries)
        ],
        statistics=Statistics(total_dialogues=entries),
        original_message_count=entries,
        compressed_entry_count=entries,
        consumed_record_ids=[f"r{i}" for i in range(entries)],
    )


def test_new_archive_id():
    assert storage.new_archive_id(3).startswith("session-3-")


@pytest.mark.parametrize("backend_cls", BACKENDS)
def test_create_and_read(slug, backend_cls):
    backend = backend_cls(slug)
    archive = _archive(entries=2)
    handle = backend.create(archive)

    loaded = backend.read(handle)
    assert loaded.id == archive.id
    assert loaded.entries == archive.entries
    assert loaded.statistics.total_dialogues == 2
    assert loaded.consumed_record_ids == ["r0", "r1"]
    assert loaded.storage_type == backend.storage_type
    assert loaded.created_at


@pytest.mark.parametrize("backend_cls", BACKENDS)
def test_append_replaces_content(slug, backend_cls):
    backend = backend_cls(slug)
    handle = backend.create(_archive(entries=1))
    created_at = backend.read(handle).created_at

    bigger = backend.read(handle).model_copy(update={"entries": _archive(entries=3).entries})
    assert backend.append(handle, bigger) == handle

    loaded = backend.read(handle)
    assert len(loaded.entries) == 3
    assert loaded.created_at == created_at
    assert len(backend.list_archives()) == 1


@pytest.mark.parametrize("backend_cls", BACKENDS)
def test_find_session_and_list(slug, backend_cls):
    backend = backend_cls(slug)
    first = backend.create(_archive(1))
    second = backend.create(_archive(2))

    assert backend.find_session(1) == first
    assert backend.find_session(2) == second
    assert backend.find_session(3) is None
    summaries = backend.list_archives()
    assert {s["id"] for s in summaries} == {first, second}
    assert "entries" not in summaries[0]


@pytest.mark.parametrize("backend_cls", BACKENDS)
def test_missing_archive(slug, backend_cls):
    backend = backend_cls(slug)
    with pytest.raises(ArchiveNotFoundError):
        backend.read("session-9-missing")
    with pytest.raises(ArchiveNotFoundError):
        backend.append("session-9-missing", _archive())
    with pytest.raises(ArchiveNotFoundError):
        backend.delete("session-9-missing")
    assert backend.list_archives() == []


@pytest.mark.parametrize("backend_cls", BACKENDS)
def test_delete(slug, backend_cls):
    backend = backend_cls(slug)
    handle = backend.create(_archive())
    backend.delete(handle)
    assert backend.find_session(1) is None
    with pytest.raises(ArchiveNotFoundError):
        backend.read(handle)


def test_flat_file_layout(slug):
    handle = FlatFileBackend(slug).create(_archive(entries=2))

    index = json.loads((storage.campaign_dir(slug) / "archive-index.json").read_text())
    assert index[0]["id"] == handle
    assert index[0]["file"] == f"{handle}.json"
    assert index[0]["statistics"]["total_dialogues"] == 2
    assert "entries" not in index[0]

    entries_file = json.loads((storage.campaign_dir(slug) / "archive-files" / f"{handle}.json").read_text())
    assert entries_file["archive_id"] == handle
    assert len(entries_file["entries"]) == 2


def test_corrupt_document_is_storage_error(slug):
    backend = DocumentBackend(slug)
    handle = backend.create(_archive())
    (storage.campaign_dir(slug) / "archives" / f"{handle}.json").write_text("{not json")
    with pytest.raises(StorageError):
        backend.read(handle)


def test_flat_file_missing_entries_file(slug):
    backend = FlatFileBackend(slug)
    handle = backend.create(_archive())
    (storage.campaign_dir(slug) / "archive-files" / f"{handle}.json").unlink()
    with pytest.raises(StorageError):
        backend.read(handle)


def test_get_backend():
    assert isinstance(storage.get_backend("x", "document"), DocumentBackend)
    assert isinstance(storage.get_backend("x", "flat-file"), FlatFileBackend)
    with pytest.raises(ValueError):
        storage.get_backend("x", "floppy")
    assert [b.storage_type for b in storage.all_backends("x")] == ["document", "flat-file"]
