import logging
import os
from pathlib import Path

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from chat_archive import storage
from chat_archive.pipeline import PipelineError
from chat_archive.routes import router
from chat_archive.storage import ArchiveNotFoundError, StorageError

load_dotenv(Path(__file__).parent.parent / ".env")

DEFAULT_DATA_DIR = Path(__file__).parent.parent / "data"

logger = logging.getLogger(__name__)


async def _storage_error(request: Request, exc: StorageError) -> JSONResponse:
    if isinstance(exc, ArchiveNotFoundError):
        return JSONResponse({"detail": "Archive not found"}, status_code=404)
    logger.error("Storage failure on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse({"detail": str(exc)}, status_code=502)


async def _pipeline_error(request: Request, exc: PipelineError) -> JSONResponse:
    logger.error("Compression aborted on %s: %s", request.url.path, exc)
    return JSONResponse({"detail": f"Compression aborted: {exc}"}, status_code=500)


def create_app(data_dir: Path | None = None) -> FastAPI:
    resolved = data_dir or Path(os.getenv("DATA_DIR", str(DEFAULT_DATA_DIR)))
    storage.init_storage(resolved)

    app = FastAPI(title="Chat Archive")
    app.include_router(router, prefix="/api")
    app.add_exception_handler(StorageError, _storage_error)
    app.add_exception_handler(PipelineError, _pipeline_error)
    return app


# Default app instance for uvicorn (uses DATA_DIR env var or default)
app = create_app()
