"""Compression, archive, search and highlight endpoints.

Storage failures surface through the app's StorageError handler: a
missing archive as 404, anything else as 502.
"""

from fastapi import APIRouter, HTTPException
from fastapi.responses import PlainTextResponse

from chat_archive import service, storage
from chat_archive.export import export_markdown

from .models import CompressBody

router = APIRouter()


def _require_campaign(slug: str) -> None:
    if not storage.get_campaign(slug):
        raise HTTPException(404, "Campaign not found")


@router.post("/campaigns/{slug}/compress")
async def compress(slug: str, body: CompressBody | None = None):
    """Run a compression pass over the pending records."""
    _require_campaign(slug)
    keep = body.keep_originals if body else None
    outcome = service.compress_campaign(slug, keep_originals=keep)
    if outcome is None:
        return {"status": "busy"}
    return outcome.model_dump(mode="json")


@router.get("/campaigns/{slug}/archives")
async def list_archives(slug: str):
    """Archive summaries, newest session first."""
    _require_campaign(slug)
    return service.list_archives(slug)


@router.get("/campaigns/{slug}/archives/{archive_id}")
async def get_archive(slug: str, archive_id: str):
    """Full archive with entries, statistics and search index."""
    _require_campaign(slug)
    return service.get_archive(slug, archive_id).model_dump(mode="json")


@router.delete("/campaigns/{slug}/archives/{archive_id}")
async def delete_archive(slug: str, archive_id: str):
    """Delete an archive."""
    _require_campaign(slug)
    service.delete_archive(slug, archive_id)
    return {"ok": True}


@router.get("/campaigns/{slug}/archives/{archive_id}/export", response_class=PlainTextResponse)
async def export_archive(slug: str, archive_id: str):
    """Archive as Markdown."""
    _require_campaign(slug)
    archive = service.get_archive(slug, archive_id)
    return PlainTextResponse(export_markdown(archive), media_type="text/markdown")


@router.get("/campaigns/{slug}/search")
async def search(
    slug: str,
    q: str = "",
    kind: str | None = None,
    session: int | None = None,
    actor: str | None = None,
    scene: str | None = None,
):
    """Search archived entries."""
    _require_campaign(slug)
    return service.search(slug, q, kind=kind, session_number=session, actor=actor, scene=scene)


@router.get("/campaigns/{slug}/highlights")
async def highlights(slug: str, session: int | None = None):
    """Key events, optionally for one session."""
    _require_campaign(slug)
    return service.highlights(slug, session_number=session)
