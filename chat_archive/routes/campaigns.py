"""Campaign CRUD, pending records and session endpoints."""

from fastapi import APIRouter, HTTPException

from chat_archive import storage

from .models import AppendRecords, CreateCampaign, SetCombat, StartSession, UpdateCampaign

router = APIRouter()


@router.get("/campaigns")
async def list_campaigns():
    """List all campaigns."""
    return storage.list_campaigns()


@router.post("/campaigns", status_code=201)
async def create_campaign(body: CreateCampaign):
    """Create a campaign; session 1 starts now."""
    if not body.title.strip():
        raise HTTPException(400, "Title is required")
    return storage.create_campaign(
        body.title.strip(),
        players=body.roster.players,
        npcs=body.roster.npcs,
        scene_name=body.scene_name,
    )


@router.get("/campaigns/{slug}")
async def get_campaign(slug: str):
    """Get a single campaign by slug."""
    campaign = storage.get_campaign(slug)
    if not campaign:
        raise HTTPException(404, "Campaign not found")
    return campaign


@router.patch("/campaigns/{slug}")
async def update_campaign(slug: str, body: UpdateCampaign):
    """Update campaign fields (title, scene_name, roster)."""
    fields = body.model_dump(exclude_none=True)
    updated = storage.update_campaign(slug, fields)
    if not updated:
        raise HTTPException(404, "Campaign not found")
    return updated


@router.delete("/campaigns/{slug}")
async def delete_campaign(slug: str):
    """Delete a campaign with its pending records and archives."""
    if not storage.delete_campaign(slug):
        raise HTTPException(404, "Campaign not found")
    return {"ok": True}


@router.get("/campaigns/{slug}/records")
async def get_records(slug: str):
    """Pending (not yet compressed) records."""
    if not storage.get_campaign(slug):
        raise HTTPException(404, "Campaign not found")
    return storage.get_records(slug)


@router.post("/campaigns/{slug}/records")
async def append_records(slug: str, body: AppendRecords):
    """Append records to the pending log. Validation happens at compression time."""
    if not storage.get_campaign(slug):
        raise HTTPException(404, "Campaign not found")
    return {"pending": storage.append_records(slug, body.records)}


@router.post("/campaigns/{slug}/sessions")
async def start_session(slug: str, body: StartSession):
    """Start the next session."""
    session = storage.start_session(slug, body.name)
    if session is None:
        raise HTTPException(404, "Campaign not found")
    return session


@router.get("/campaigns/{slug}/session")
async def get_session(slug: str):
    """Current session state."""
    session = storage.get_session(slug)
    if session is None:
        raise HTTPException(404, "Campaign not found")
    return session


@router.put("/campaigns/{slug}/session/combat")
async def set_combat(slug: str, body: SetCombat):
    """Override the combat-active flag the next pass starts from."""
    session = storage.set_combat_active(slug, body.active)
    if session is None:
        raise HTTPException(404, "Campaign not found")
    return session
