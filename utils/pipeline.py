"""
Pipeline runner: wires the catalog stages together for one sync cycle.

Architecture:
  ProviderFetchStage → UnifiedSyncStage → PriceComparisonStage → AutoSelectionStage

The stages share the unified catalog, so for a given provider they always
run strictly in this order and never interleave.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, TimeoutError as FutureTimeout
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.orm import Session

from config.settings import settings
from db.models import Provider
from models.schemas import AutoSelectionResult, PriceComparisonResult, SyncResult
from services.ai_client import AIClient
from services.auto_selector import AutoSelector
from services.base import Orchestrator, Stage
from services.catalog_sync import CatalogSync
from services.errors import CatalogError, ProviderNotFoundError
from services.price_comparison import PriceComparisonEngine

logger = logging.getLogger(__name__)

ProviderFetcher = Callable[[str], Any]


@dataclass
class CycleContext:
    """State handed from stage to stage during one sync cycle."""
    provider_slug: Optional[str] = None     # None = every enabled provider
    fetched_at: Optional[datetime] = None
    sync: Optional[Any] = None              # SyncResult or SyncAllResult
    comparison: Optional[PriceComparisonResult] = None
    selection: Optional[AutoSelectionResult] = None
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "provider": self.provider_slug,
            "fetchedAt": self.fetched_at.isoformat() if self.fetched_at else None,
            "sync": self.sync.to_dict() if self.sync else None,
            "priceComparison": self.comparison.to_dict() if self.comparison else None,
            "autoSelection": self.selection.to_dict() if self.selection else None,
            "errors": list(self.errors),
        }


@dataclass
class CycleResult:
    success: bool
    context: CycleContext
    error: Optional[str] = None
    summary: str = ""
    stages: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        d = self.context.to_dict()
        d["success"] = self.success
        d["error"] = self.error
        d["stages"] = list(self.stages)
        return d


# ─── Stages ──────────────────────────────────────────────────────────────────


def call_with_timeout(fn: Callable[..., Any], timeout: float, *args: Any) -> Any:
    """
    Run `fn` on a daemon thread and give up after `timeout` seconds.

    A thread cannot be killed: a call that hangs past the timeout keeps
    running until it returns on its own, and its late result is dropped.
    The thread is a daemon so a hung fetch never blocks interpreter exit.
    """
    future: Future = Future()

    def target() -> None:
        if not future.set_running_or_notify_cancel():
            return
        try:
            future.set_result(fn(*args))
        except Exception as e:
            future.set_exception(e)

    worker = threading.Thread(target=target, name="provider-fetch", daemon=True)
    worker.start()
    try:
        return future.result(timeout=timeout)
    except FutureTimeout:
        logger.warning(f"Call still running after {timeout:.0f}s; abandoning its thread")
        raise CatalogError(f"Timed out after {timeout:.0f}s") from None


class ProviderFetchStage(Stage):
    """Refresh a provider's own package table, then stamp `last_sync_at`."""

    def __init__(self, session: Session, fetcher: Optional[ProviderFetcher] = None,
                 timeout: Optional[float] = None):
        super().__init__(name="ProviderFetch", session=session)
        self.fetcher = fetcher
        self.timeout = timeout if timeout is not None else settings.PROVIDER_SYNC_TIMEOUT_SECONDS

    def run(self, ctx: CycleContext) -> CycleContext:
        provider = self.session.query(Provider).filter(Provider.slug == ctx.provider_slug).first()
        if provider is None:
            raise ProviderNotFoundError(f"Provider not found: {ctx.provider_slug}")

        if self.fetcher is not None:
            outcome = call_with_timeout(self.fetcher, self.timeout, provider.slug)
            self.logger.info(f"[{provider.slug}] Provider fetch finished: {outcome}")

        ctx.fetched_at = datetime.utcnow()
        provider.last_sync_at = ctx.fetched_at
        self.session.commit()
        return ctx


class UnifiedSyncStage(Stage):
    def __init__(self, session: Session):
        super().__init__(name="UnifiedSync", session=session)

    def run(self, ctx: CycleContext) -> CycleContext:
        syncer = CatalogSync(self.session)
        if ctx.provider_slug:
            result: Any = syncer.sync_provider_packages(ctx.provider_slug)
        else:
            result = syncer.sync_all_providers()
        ctx.sync = result
        ctx.errors.extend(result.errors)
        # partial success (skipped rows) still continues; a failed run does not
        if isinstance(result, SyncResult) and not result.success:
            raise CatalogError("; ".join(result.errors) or "Unified sync failed")
        return ctx


class PriceComparisonStage(Stage):
    def __init__(self, session: Session):
        super().__init__(name="PriceComparison", session=session)

    def run(self, ctx: CycleContext) -> CycleContext:
        result = PriceComparisonEngine(self.session).run_price_comparison()
        ctx.comparison = result
        if result.errors:
            raise CatalogError("; ".join(result.errors))
        return ctx


class AutoSelectionStage(Stage):
    def __init__(self, session: Session, ai_client: Optional[AIClient] = None):
        super().__init__(name="AutoSelection", session=session)
        self.ai_client = ai_client

    def run(self, ctx: CycleContext) -> CycleContext:
        result = AutoSelector(self.session, ai_client=self.ai_client).run_auto_selection()
        ctx.selection = result
        ctx.errors.extend(result.errors)
        if not result.success:
            raise CatalogError("; ".join(result.errors) or "Auto-selection failed")
        return ctx


# ─── Runners ─────────────────────────────────────────────────────────────────


def _run(stages: List[Stage], ctx: CycleContext) -> CycleResult:
    pipeline = Orchestrator(stages, stop_on_failure=True)
    result = pipeline.execute(ctx)
    summary = pipeline.summary()
    logger.info(summary)
    stage_log = [r.to_dict() for r in pipeline.run_history]
    if not result.success:
        return CycleResult(success=False, context=ctx, error=result.error, summary=summary, stages=stage_log)
    return CycleResult(success=True, context=result.data, summary=summary, stages=stage_log)


def run_provider_cycle(
    session: Session,
    provider_slug: str,
    fetcher: Optional[ProviderFetcher] = None,
    ai_client: Optional[AIClient] = None,
    fetch_timeout: Optional[float] = None,
) -> CycleResult:
    """Fetch → unified sync → price comparison → auto selection for one provider."""
    return _run(
        [
            ProviderFetchStage(session, fetcher=fetcher, timeout=fetch_timeout),
            UnifiedSyncStage(session),
            PriceComparisonStage(session),
            AutoSelectionStage(session, ai_client=ai_client),
        ],
        CycleContext(provider_slug=provider_slug),
    )


def run_full_cycle(session: Session, ai_client: Optional[AIClient] = None) -> CycleResult:
    """Unified sync of every enabled provider, then one comparison and selection pass."""
    return _run(
        [
            UnifiedSyncStage(session),
            PriceComparisonStage(session),
            AutoSelectionStage(session, ai_client=ai_client),
        ],
        CycleContext(),
    )
