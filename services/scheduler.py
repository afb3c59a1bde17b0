"""
Multi-provider sync scheduler.

One job per enabled provider, each with its own `next_sync_due`. A tick
(every SCHEDULER_TICK_SECONDS) reloads the enabled providers, adds or
drops jobs, and hands every due job to a thread pool. The `is_running`
flag keeps a provider from overlapping with itself; different providers
sync concurrently. A failed cycle is retried after SYNC_RETRY_MINUTES.
"""

import logging
import threading
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

from config.settings import settings
from db.database import SessionLocal
from db.models import Provider
from models.schemas import SyncJob
from services.ai_client import AIClient
from services.errors import ProviderNotFoundError, SyncInProgressError
from utils.pipeline import CycleResult, ProviderFetcher, run_provider_cycle

logger = logging.getLogger(__name__)


class SyncScheduler:
    def __init__(
        self,
        session_factory: Callable[[], Any] = SessionLocal,
        fetcher: Optional[ProviderFetcher] = None,
        ai_client: Optional[AIClient] = None,
        clock: Callable[[], datetime] = datetime.utcnow,
        executor: Optional[Executor] = None,
        tick_seconds: Optional[float] = None,
        retry_minutes: Optional[int] = None,
        fetch_timeout: Optional[float] = None,
    ):
        self.session_factory = session_factory
        self.fetcher = fetcher
        self.ai_client = ai_client
        self.clock = clock
        self.executor = executor or ThreadPoolExecutor(
            max_workers=settings.SCHEDULER_MAX_WORKERS, thread_name_prefix="provider-sync"
        )
        self.tick_seconds = tick_seconds if tick_seconds is not None else settings.SCHEDULER_TICK_SECONDS
        self.retry_minutes = retry_minutes if retry_minutes is not None else settings.SYNC_RETRY_MINUTES
        self.fetch_timeout = fetch_timeout

        self.jobs: Dict[int, SyncJob] = {}
        self._slugs: Dict[int, str] = {}
        self._lock = threading.Lock()
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    # ── Lifecycle ─────────────────────────────────────────────────────────

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            logger.warning("Scheduler already running")
            return
        self._stop.clear()
        self.refresh_jobs()
        logger.info(f"Sync scheduler started with {len(self.jobs)} provider jobs")
        self._thread = threading.Thread(target=self._loop, name="sync-scheduler", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=self.tick_seconds + 1)
            self._thread = None
        logger.info("Sync scheduler stopped")

    def _loop(self) -> None:
        self.tick()
        while not self._stop.wait(self.tick_seconds):
            self.tick()

    # ── Jobs ──────────────────────────────────────────────────────────────

    def refresh_jobs(self) -> None:
        """Align jobs with the currently enabled providers."""
        session = self.session_factory()
        try:
            providers = session.query(Provider).filter(Provider.enabled.is_(True)).all()
            now = self.clock()
            with self._lock:
                seen = set()
                for p in providers:
                    seen.add(p.id)
                    interval = p.sync_interval_minutes or settings.DEFAULT_SYNC_INTERVAL_MINUTES
                    self._slugs[p.id] = p.slug
                    job = self.jobs.get(p.id)
                    if job is None:
                        next_due = now
                        if p.last_sync_at is not None:
                            next_due = max(now, p.last_sync_at + timedelta(minutes=interval))
                        self.jobs[p.id] = SyncJob(
                            provider_id=p.id,
                            provider_name=p.name,
                            sync_interval_minutes=interval,
                            last_sync_at=p.last_sync_at,
                            next_sync_due=next_due,
                        )
                        logger.info(f"Scheduled {p.name}: every {interval} min, next at {next_due}")
                    else:
                        job.provider_name = p.name
                        job.sync_interval_minutes = interval

                for provider_id in list(self.jobs):
                    if provider_id not in seen and not self.jobs[provider_id].is_running:
                        logger.info(f"Dropping sync job for disabled provider {provider_id}")
                        del self.jobs[provider_id]
                        self._slugs.pop(provider_id, None)
        finally:
            session.close()

    def tick(self) -> List[Future]:
        """Refresh jobs and start every due one that is not already running."""
        try:
            self.refresh_jobs()
        except Exception as e:
            logger.error(f"Failed to refresh sync jobs: {e}")
        now = self.clock()
        futures = []
        with self._lock:
            due = [
                j for j in self.jobs.values()
                if not j.is_running and j.next_sync_due <= now
            ]
            for job in due:
                job.is_running = True
        for job in due:
            futures.append(self._submit(job.provider_id))
        return futures

    def _submit(self, provider_id: int) -> Future:
        future = self.executor.submit(self.run_provider_sync, provider_id)
        future.add_done_callback(self._log_crash)
        return future

    @staticmethod
    def _log_crash(future: Future) -> None:
        # the tick loop never reads its futures, so crashes surface here
        if future.cancelled():
            return
        exc = future.exception()
        if exc is not None:
            logger.error(f"Scheduled sync raised: {exc!r}")

    def run_provider_sync(self, provider_id: int) -> CycleResult:
        """
        Run a full cycle for one provider. The caller must have marked the
        job as running; this always clears the flag.
        """
        job = self.jobs[provider_id]
        slug = self._slugs[provider_id]
        logger.info(f"Starting scheduled sync for {job.provider_name}")

        session = None
        try:
            session = self.session_factory()
            result = run_provider_cycle(
                session,
                slug,
                fetcher=self.fetcher,
                ai_client=self.ai_client,
                fetch_timeout=self.fetch_timeout,
            )
        except Exception as e:
            logger.error(f"Sync cycle for {job.provider_name} crashed: {e}")
            result = None
            error = str(e)
        else:
            error = result.error
        finally:
            if session is not None:
                session.close()

        now = self.clock()
        with self._lock:
            if result is not None and result.success:
                job.last_sync_at = now
                job.next_sync_due = now + timedelta(minutes=job.sync_interval_minutes)
                job.last_error = None
                logger.info(f"{job.provider_name} synced; next run at {job.next_sync_due}")
            else:
                job.next_sync_due = now + timedelta(minutes=self.retry_minutes)
                job.last_error = error
                logger.error(
                    f"{job.provider_name} sync failed ({error}); retrying at {job.next_sync_due}"
                )
            job.is_running = False

        if result is None:
            raise RuntimeError(error)
        return result

    # ── Manual triggers ───────────────────────────────────────────────────

    def trigger_provider_sync(self, provider_id: int) -> Future:
        if provider_id not in self.jobs:
            self.refresh_jobs()
        with self._lock:
            job = self.jobs.get(provider_id)
            if job is None:
                raise ProviderNotFoundError(f"No sync job for provider {provider_id}")
            if job.is_running:
                raise SyncInProgressError(f"Sync already running for {job.provider_name}")
            job.is_running = True
        logger.info(f"Manual sync triggered for {job.provider_name}")
        return self._submit(provider_id)

    def trigger_all_providers_sync(self) -> List[int]:
        """Start every idle provider; returns the ids that were started."""
        self.refresh_jobs()
        started = []
        for provider_id in list(self.jobs):
            try:
                self.trigger_provider_sync(provider_id)
                started.append(provider_id)
            except SyncInProgressError:
                logger.info(f"Skipping provider {provider_id}: sync already running")
        return started

    def get_sync_jobs_status(self) -> List[Dict[str, Any]]:
        with self._lock:
            return [job.to_dict() for job in sorted(self.jobs.values(), key=lambda j: j.provider_id)]
