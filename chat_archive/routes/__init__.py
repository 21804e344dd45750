"""FastAPI API endpoints under /api.

Endpoint groups: settings, campaigns (with their pending records and
session control), archives (compression, listing, export, search and
highlights). Each campaign's child resources are nested under
/api/campaigns/{slug}/.
"""

from fastapi import APIRouter

from .archives import router as archives_router
from .campaigns import router as campaigns_router
from .settings import router as settings_router

router = APIRouter()
router.include_router(settings_router)
router.include_router(campaigns_router)
router.include_router(archives_router)
