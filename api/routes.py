"""
FastAPI Route Handlers
eSIM Catalog admin API
"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session, joinedload

from api.schemas import (
    AlternativesRequest, CompareRequest, HealthResponse, SyncRequest, ToggleRequest,
)
from config.settings import settings
from db.database import get_db_dependency
from db.models import Provider, UnifiedPackage
from models.schemas import PackageData, PackageSpec
from services.ai_client import AIClient
from services.auto_selector import AutoSelector
from services.catalog_sync import CatalogSync
from services.price_comparison import PriceComparisonEngine
from services.scheduler import SyncScheduler
from services.similarity import SimilarityEngine

logger = logging.getLogger(__name__)

router = APIRouter()

# Process-wide singletons, created on first use
_ai_client: Optional[AIClient] = None
_scheduler: Optional[SyncScheduler] = None


def get_ai_client() -> AIClient:
    global _ai_client
    if _ai_client is None:
        _ai_client = AIClient()
    return _ai_client


def get_scheduler() -> SyncScheduler:
    global _scheduler
    if _scheduler is None:
        _scheduler = SyncScheduler(ai_client=get_ai_client())
    return _scheduler


# ─── Health ──────────────────────────────────────────────────────────────────

@router.get("/health", response_model=HealthResponse, tags=["System"])
async def health_check(ai: AIClient = Depends(get_ai_client)):
    return HealthResponse(
        status="ok",
        version=settings.APP_VERSION,
        ai_configured=ai.is_ready(),
        timestamp=datetime.utcnow(),
    )


# ─── Catalog ─────────────────────────────────────────────────────────────────

@router.post("/catalog/sync", tags=["Catalog"])
def sync_catalog(request: SyncRequest, db: Session = Depends(get_db_dependency)):
    """Copy provider packages into the unified catalog (one provider or all enabled ones)."""
    syncer = CatalogSync(db)
    if request.provider_slug:
        exists = db.query(Provider.id).filter(Provider.slug == request.provider_slug).first()
        if exists is None:
            raise HTTPException(status_code=404, detail=f"Provider {request.provider_slug} not found.")
        return syncer.sync_provider_packages(request.provider_slug).to_dict()
    return syncer.sync_all_providers().to_dict()


@router.post("/catalog/compare", tags=["Catalog"])
def compare_prices(request: CompareRequest, db: Session = Depends(get_db_dependency)):
    """Re-flag best prices, for the whole catalog or one destination/region."""
    engine = PriceComparisonEngine(db)
    if request.destination_id is None and request.region_id is None:
        return engine.run_price_comparison().to_dict()
    return engine.run_price_comparison_for_destination(
        destination_id=request.destination_id, region_id=request.region_id
    ).to_dict()


@router.get("/catalog/statistics", tags=["Catalog"])
def catalog_statistics(db: Session = Depends(get_db_dependency)):
    return PriceComparisonEngine(db).get_statistics().to_dict()


# ─── Selection ───────────────────────────────────────────────────────────────

@router.post("/selection/run", tags=["Selection"])
def run_selection(db: Session = Depends(get_db_dependency), ai: AIClient = Depends(get_ai_client)):
    result = AutoSelector(db, ai_client=ai).run_auto_selection()
    if not result.success:
        raise HTTPException(status_code=500, detail="; ".join(result.errors) or "Auto-selection failed")
    return result.to_dict()


@router.get("/selection/statistics", tags=["Selection"])
def selection_statistics(db: Session = Depends(get_db_dependency)):
    return AutoSelector(db).get_statistics().to_dict()


# ─── Packages ────────────────────────────────────────────────────────────────

@router.post("/packages/{package_id}/toggle", tags=["Packages"])
def toggle_package(package_id: int, request: ToggleRequest, db: Session = Depends(get_db_dependency)):
    """Pin a package on or off; auto-selection leaves it alone afterwards."""
    if not AutoSelector(db).toggle_package(package_id, request.enabled):
        raise HTTPException(status_code=404, detail=f"Package {package_id} not found.")
    return {"success": True, "packageId": package_id, "isEnabled": request.enabled, "manualOverride": True}


@router.post("/packages/{package_id}/clear-override", tags=["Packages"])
def clear_override(package_id: int, db: Session = Depends(get_db_dependency)):
    if not AutoSelector(db).clear_manual_override(package_id):
        raise HTTPException(status_code=404, detail=f"Package {package_id} not found.")
    row = db.get(UnifiedPackage, package_id)
    return {"success": True, "packageId": package_id, "isEnabled": bool(row.is_enabled), "manualOverride": False}


@router.post("/packages/enable-all", tags=["Packages"])
def enable_all(db: Session = Depends(get_db_dependency)):
    return AutoSelector(db).enable_all_packages()


@router.post("/packages/disable-all", tags=["Packages"])
def disable_all(db: Session = Depends(get_db_dependency)):
    return AutoSelector(db).disable_all_packages()


@router.get("/packages/grouped", tags=["Packages"])
def grouped_packages(destination_id: Optional[int] = None, db: Session = Depends(get_db_dependency)):
    """Every provider option per package group, cheapest first."""
    groups = AutoSelector(db).get_grouped_packages(destination_id)
    return {key: [p.to_dict() for p in members] for key, members in groups.items()}


@router.post("/packages/alternatives", tags=["Packages"])
def package_alternatives(
    request: AlternativesRequest,
    db: Session = Depends(get_db_dependency),
    ai: AIClient = Depends(get_ai_client),
):
    rows = (
        db.query(UnifiedPackage)
        .join(Provider, UnifiedPackage.provider_id == Provider.id)
        .filter(Provider.enabled.is_(True), UnifiedPackage.destination_id == request.destination_id)
        .options(
            joinedload(UnifiedPackage.provider),
            joinedload(UnifiedPackage.destination),
            joinedload(UnifiedPackage.region),
        )
        .order_by(UnifiedPackage.id)
        .all()
    )
    target = PackageSpec(
        data_mb=request.data_mb,
        validity_days=request.validity_days,
        destination_id=request.destination_id,
    )
    alternatives = SimilarityEngine(ai_client=ai).find_alternatives(
        target,
        [PackageData.from_row(r) for r in rows],
        max_results=request.max_results,
        use_ai=request.use_ai,
    )
    return [a.to_dict() for a in alternatives]


# ─── Scheduler ───────────────────────────────────────────────────────────────

@router.get("/scheduler/jobs", tags=["Scheduler"])
def scheduler_jobs(scheduler: SyncScheduler = Depends(get_scheduler)):
    scheduler.refresh_jobs()
    return scheduler.get_sync_jobs_status()


@router.post("/scheduler/trigger/{provider_id}", status_code=202, tags=["Scheduler"])
def trigger_sync(provider_id: int, scheduler: SyncScheduler = Depends(get_scheduler)):
    scheduler.trigger_provider_sync(provider_id)
    return {"providerId": provider_id, "status": "started"}
