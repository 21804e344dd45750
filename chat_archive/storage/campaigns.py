"""Campaign CRUD.

A campaign holds the roster (player characters and known NPCs), the
current scene and the current session state.
"""

import json
import shutil
from typing import Any

from .core import campaign_dir, campaigns_dir, now_iso, now_ms, slugify


def _campaign_path(slug: str):
    return campaigns_dir() / f"{slug}.json"


def _write(campaign: dict[str, Any]) -> None:
    _campaign_path(campaign["slug"]).write_text(json.dumps(campaign, indent=2))


def list_campaigns() -> list[dict[str, Any]]:
    results = []
    for path in sorted(campaigns_dir().glob("*.json")):
        results.append(json.loads(path.read_text()))
    return results


def get_campaign(slug: str) -> dict[str, Any] | None:
    path = _campaign_path(slug)
    if not path.is_file():
        return None
    return json.loads(path.read_text())


def create_campaign(
    title: str,
    players: list[str] | None = None,
    npcs: list[str] | None = None,
    scene_name: str = "",
) -> dict[str, Any]:
    """Create a campaign with session 1 started now. Slugs are made unique."""
    base_slug = slugify(title)
    slug = base_slug
    counter = 2
    while _campaign_path(slug).exists():
        slug = f"{base_slug}-{counter}"
        counter += 1

    created = now_iso()
    campaign = {
        "title": title,
        "slug": slug,
        "scene_name": scene_name,
        "roster": {"players": list(players or []), "npcs": list(npcs or [])},
        "session": {
            "number": 1,
            "name": "Session 1",
            "started_at": now_ms(),
            "last_pass_at": None,
            "combat_active": False,
        },
        "created_at": created,
        "updated_at": created,
    }
    campaign_dir(slug).mkdir(exist_ok=True)
    _write(campaign)
    return campaign


def update_campaign(slug: str, fields: dict[str, Any]) -> dict[str, Any] | None:
    """Update mutable campaign fields (title, scene_name, roster). Returns updated campaign."""
    campaign = get_campaign(slug)
    if campaign is None:
        return None
    allowed = {"title", "scene_name"}
    for key, value in fields.items():
        if key in allowed:
            campaign[key] = value
    if "roster" in fields:
        campaign["roster"].update(fields["roster"])
    campaign["updated_at"] = now_iso()
    _write(campaign)
    return campaign


def save_campaign(campaign: dict[str, Any]) -> None:
    campaign["updated_at"] = now_iso()
    _write(campaign)


def delete_campaign(slug: str) -> bool:
    json_path = _campaign_path(slug)
    if not json_path.is_file():
        return False
    json_path.unlink()
    child_dir = campaign_dir(slug)
    if child_dir.is_dir():
        shutil.rmtree(child_dir)
    return True
