"""
eSIM Catalog admin API.

Serves the catalog, selection, package and scheduler routes under /api/v1.
With SCHEDULER_AUTOSTART=true the provider sync scheduler runs inside the
API process and stops with it.
"""

import logging
import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api.routes import get_scheduler, router
from config.settings import settings
from db.database import init_db
from services.errors import CatalogError, ProviderNotFoundError, SyncInProgressError

logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description=(
        "Admin API for the multi-provider eSIM catalog: unified sync, "
        "best-price comparison, auto-selection and provider sync scheduling."
    ),
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


# ─── Errors ──────────────────────────────────────────────────────────────────

ERROR_STATUS = {
    ProviderNotFoundError: 404,
    SyncInProgressError: 409,
}


@app.exception_handler(CatalogError)
async def catalog_error_handler(request: Request, exc: CatalogError):
    status = ERROR_STATUS.get(type(exc), 400)
    logger.warning(f"{request.method} {request.url.path} -> {status}: {exc}")
    return JSONResponse(status_code=status, content={"detail": str(exc)})


# ─── Lifecycle ───────────────────────────────────────────────────────────────

@app.on_event("startup")
async def startup_event():
    init_db()
    if settings.SCHEDULER_AUTOSTART:
        get_scheduler().start()
    logger.info(f"{settings.APP_NAME} v{settings.APP_VERSION} ready")


@app.on_event("shutdown")
async def shutdown_event():
    if settings.SCHEDULER_AUTOSTART:
        get_scheduler().stop()


app.include_router(router, prefix="/api/v1")


@app.get("/", tags=["System"])
async def root():
    return {
        "name": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "status": "running",
        "scheduler": "embedded" if settings.SCHEDULER_AUTOSTART else "external",
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("api.main:app", host=settings.API_HOST, port=settings.API_PORT, reload=settings.DEBUG)
