"""Pydantic request/response models for API endpoints."""

from typing import Any, Literal

from pydantic import BaseModel


class Roster(BaseModel):
    players: list[str] = []
    npcs: list[str] = []


class CreateCampaign(BaseModel):
    title: str
    scene_name: str = ""
    roster: Roster = Roster()


class UpdateCampaign(BaseModel):
    title: str | None = None
    scene_name: str | None = None
    roster: Roster | None = None


class AppendRecords(BaseModel):
    records: list[dict[str, Any]]


class StartSession(BaseModel):
    name: str | None = None


class CompressBody(BaseModel):
    keep_originals: bool | None = None


class UpdateSettings(BaseModel):
    storage_type: Literal["document", "flat-file"] | None = None
    storage_fallback: bool | None = None
    enable_combat_compression: bool | None = None
    preserve_item_transfers: bool | None = None
    combat_timeout_minutes: float | None = None
    keep_originals: bool | None = None


class SetCombat(BaseModel):
    active: bool
