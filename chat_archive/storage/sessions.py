"""Session state stored on the campaign: number, name, start time, last pass."""

from typing import Any

from .campaigns import get_campaign, save_campaign
from .core import now_ms


def get_session(slug: str) -> dict[str, Any] | None:
    campaign = get_campaign(slug)
    if campaign is None:
        return None
    return campaign["session"]


def start_session(slug: str, name: str | None = None) -> dict[str, Any] | None:
    """Begin the next session: number + 1, start time now, combat cleared."""
    campaign = get_campaign(slug)
    if campaign is None:
        return None
    number = campaign["session"]["number"] + 1
    campaign["session"] = {
        "number": number,
        "name": name or f"Session {number}",
        "started_at": now_ms(),
        "last_pass_at": None,
        "combat_active": False,
    }
    save_campaign(campaign)
    return campaign["session"]


def record_pass(slug: str, combat_active: bool, at: int | None = None) -> dict[str, Any] | None:
    """Write back the state a compression pass leaves behind."""
    campaign = get_campaign(slug)
    if campaign is None:
        return None
    campaign["session"]["last_pass_at"] = at if at is not None else now_ms()
    campaign["session"]["combat_active"] = combat_active
    save_campaign(campaign)
    return campaign["session"]


def set_combat_active(slug: str, active: bool) -> dict[str, Any] | None:
    campaign = get_campaign(slug)
    if campaign is None:
        return None
    campaign["session"]["combat_active"] = active
    save_campaign(campaign)
    return campaign["session"]
