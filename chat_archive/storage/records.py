"""Pending chat log storage (append-only per campaign until compressed)."""

import json
from typing import Any

from .core import campaign_dir


def _records_path(slug: str):
    return campaign_dir(slug) / "records.json"


def get_records(slug: str) -> list[dict[str, Any]]:
    """Load pending records for a campaign. Returns [] if none exist."""
    path = _records_path(slug)
    if not path.is_file():
        return []
    return json.loads(path.read_text())


def append_records(slug: str, records: list[dict[str, Any]]) -> int:
    """Append records to the campaign's log. Returns the new log length."""
    existing = get_records(slug)
    existing.extend(records)
    path = _records_path(slug)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(existing, indent=2))
    return len(existing)


def remove_records(slug: str, count: int) -> int:
    """Drop the oldest `count` records. Returns how many were removed.

    Records are only ever appended, so the first `count` are exactly the
    ones a pass read, even if more arrived meanwhile.
    """
    existing = get_records(slug)
    removed = min(max(count, 0), len(existing))
    if removed:
        _records_path(slug).write_text(json.dumps(existing[removed:], indent=2))
    return removed
