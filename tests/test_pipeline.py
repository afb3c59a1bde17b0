"""
End-to-end sync cycle tests: stages, orchestrator and timeouts.
Run with: python -m pytest tests/ -v
"""

import threading

import pytest

from db.models import Provider, UnifiedPackage
from services.base import Orchestrator, Stage
from services.errors import CatalogError
from services.settings_store import PACKAGE_SELECTION_MODE, SettingsStore
from utils.pipeline import CycleContext, call_with_timeout, run_full_cycle, run_provider_cycle


# ─── Orchestrator ────────────────────────────────────────────────────────────

class AddOne(Stage):
    def __init__(self):
        super().__init__(name="AddOne")

    def run(self, data):
        return data + 1


class Explode(Stage):
    def __init__(self):
        super().__init__(name="Explode")

    def run(self, data):
        raise ValueError("kaboom")


class WriteThenFail(Stage):
    def __init__(self, session):
        super().__init__(name="WriteThenFail", session=session)

    def run(self, data):
        self.session.add(Provider(name="Ghost", slug="ghost"))
        self.session.flush()
        raise RuntimeError("constraint hit")


class TestOrchestrator:
    def test_output_chains_between_stages(self):
        orch = Orchestrator([AddOne(), AddOne(), AddOne()])
        result = orch.execute(0)
        assert result.success
        assert result.data == 3
        assert orch.succeeded

    def test_stops_on_failure(self):
        orch = Orchestrator([AddOne(), Explode(), AddOne()])
        result = orch.execute(0)
        assert not result.success
        assert result.error == "kaboom"
        assert len(orch.run_history) == 2
        assert "Explode" in orch.summary()
        assert orch.run_history[1].to_dict()["error"] == "kaboom"

    def test_failed_stage_rolls_back_session(self, session):
        result = WriteThenFail(session).execute(None)
        assert not result.success
        assert session.query(Provider).filter(Provider.slug == "ghost").count() == 0

    def test_continue_on_failure(self):
        orch = Orchestrator([AddOne(), Explode(), AddOne()], stop_on_failure=False)
        result = orch.execute(0)
        assert result.success
        assert result.data == 2
        assert not orch.succeeded


# ─── Timeouts ────────────────────────────────────────────────────────────────

class TestCallWithTimeout:
    def test_returns_value(self):
        assert call_with_timeout(lambda s: s.upper(), 1, "maya") == "MAYA"

    def test_exception_propagates(self):
        def boom():
            raise ConnectionError("upstream 503")

        with pytest.raises(ConnectionError):
            call_with_timeout(boom, 1)

    def test_times_out(self):
        release = threading.Event()
        try:
            with pytest.raises(CatalogError, match="Timed out"):
                call_with_timeout(lambda: release.wait(5), 0.05)
            stuck = [t for t in threading.enumerate() if t.name == "provider-fetch"]
            assert stuck and all(t.daemon for t in stuck)
        finally:
            release.set()


# ─── Full cycles ─────────────────────────────────────────────────────────────

@pytest.fixture
def seeded(session, destinations, add_package):
    add_package("airalo", "japan-1gb-7days", "1GB", 7, price="3.00")
    add_package("esim-go", "esim_1GB_7D_JP", "1024MB", 7, price="2.50")
    return session


class TestProviderCycle:
    def test_single_provider_cycle(self, seeded, providers):
        result = run_provider_cycle(seeded, "esim-go")

        assert result.success
        ctx = result.context
        assert ctx.sync.packages_synced == 1
        assert ctx.comparison.best_price_packages == 1
        assert ctx.selection.packages_enabled == 1
        assert ctx.fetched_at is not None
        seeded.expire_all()
        assert seeded.get(Provider, providers["esim-go"].id).last_sync_at == ctx.fetched_at

    def test_unknown_provider(self, seeded):
        result = run_provider_cycle(seeded, "acme-sim")
        assert not result.success
        assert "Provider not found" in result.error
        assert result.context.sync is None

    def test_fetch_failure_stops_cycle(self, seeded):
        def fetch(slug):
            raise ConnectionError("upstream 503")

        result = run_provider_cycle(seeded, "esim-go", fetcher=fetch)
        assert not result.success
        assert result.error == "upstream 503"
        assert seeded.query(UnifiedPackage).count() == 0

    def test_to_dict(self, seeded):
        d = run_provider_cycle(seeded, "esim-go").to_dict()
        assert d["success"] is True
        assert d["provider"] == "esim-go"
        assert d["sync"]["packagesSynced"] == 1
        assert [s["stage"] for s in d["stages"]] == [
            "ProviderFetch", "UnifiedSync", "PriceComparison", "AutoSelection",
        ]


class TestFullCycle:
    def test_cheapest_provider_selected(self, seeded):
        result = run_full_cycle(seeded)
        assert result.success

        rows = {r.provider.slug: r for r in seeded.query(UnifiedPackage).all()}
        assert rows["esim-go"].retail_price == "3.13"
        assert rows["airalo"].retail_price == "3.60"
        assert rows["esim-go"].is_best_price and rows["esim-go"].is_enabled
        assert not rows["airalo"].is_enabled

    def test_manual_mode_cycle_still_succeeds(self, seeded):
        SettingsStore(seeded).set(PACKAGE_SELECTION_MODE, "manual")
        result = run_full_cycle(seeded)
        assert result.success
        assert "Auto-selection skipped: mode is 'manual'" in result.context.errors
        assert seeded.query(UnifiedPackage).filter(UnifiedPackage.is_enabled.is_(True)).count() == 0

    def test_skipped_rows_reported_not_fatal(self, seeded, add_package):
        add_package("maya", "maya-jp-1gb-7d", "1 GB", 7, price="")
        result = run_full_cycle(seeded)
        assert result.success
        assert any(e.startswith("[maya]") for e in result.context.errors)

    def test_empty_context_serializes(self):
        assert CycleContext().to_dict()["sync"] is None
