"""Health check and settings endpoints."""

from fastapi import APIRouter, HTTPException

from chat_archive import storage

from .models import UpdateSettings

router = APIRouter()


@router.get("/health")
async def health():
    """Health check."""
    return {"status": "ok"}


@router.get("/settings")
async def get_settings():
    """Get global app settings (storage backend, compression switches)."""
    return storage.get_config()


@router.patch("/settings")
async def update_settings(body: UpdateSettings):
    """Update global app settings (partial merge)."""
    try:
        return storage.update_config(body.model_dump(exclude_none=True))
    except ValueError as e:
        raise HTTPException(400, str(e))
