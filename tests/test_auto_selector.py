"""
Auto-selection tests: price-only, composite (AI) and admin overrides.
"""

from types import SimpleNamespace

import pytest

from conftest import FakeAIClient
from db.models import UnifiedPackage
from services.auto_selector import AutoSelector
from services.catalog_sync import CatalogSync
from services.price_comparison import PriceComparisonEngine
from services.settings_store import (
    AI_SELECTION_ENABLED,
    PACKAGE_SELECTION_MODE,
    PREFERRED_PROVIDER_ID,
    SettingsStore,
)


def _rows(session):
    session.expire_all()
    return {
        (r.provider.slug, r.country_code): r
        for r in session.query(UnifiedPackage).all()
    }


@pytest.fixture
def catalog(session, destinations, add_package):
    """
    JP 1GB/7d: Airalo $3.60, eSIM Go $3.13.
    FR 1GB/7d: eSIM Access $1.10 only.
    """
    add_package("airalo", "japan-1gb-7days", "1GB", 7, price="3.00")
    add_package("esim-go", "esim_1GB_7D_JP", "1024MB", 7, price="2.50")
    add_package("esim-access", "FR_1GB_7D", "1GB", 7, price="1.00")
    CatalogSync(session).sync_all_providers()
    return session


@pytest.fixture
def compared(catalog):
    PriceComparisonEngine(catalog).run_price_comparison()
    return catalog


class TestPriceOnlySelection:
    def test_best_price_rows_enabled(self, compared):
        result = AutoSelector(compared).run_auto_selection()
        rows = _rows(compared)

        assert result.success
        assert result.mode == "auto"
        assert not result.ai_enabled
        assert result.total_groups == 2
        assert result.packages_enabled == 2
        assert result.packages_disabled == 0
        assert rows[("esim-go", "JP")].is_enabled
        assert not rows[("airalo", "JP")].is_enabled
        assert rows[("esim-access", "FR")].is_enabled

    def test_second_run_changes_nothing(self, compared):
        AutoSelector(compared).run_auto_selection()
        result = AutoSelector(compared).run_auto_selection()
        assert result.packages_enabled == 0
        assert result.packages_disabled == 0

    def test_price_change_flips_selection(self, compared):
        AutoSelector(compared).run_auto_selection()
        rows = _rows(compared)
        rows[("airalo", "JP")].retail_price = "2.00"
        compared.commit()
        PriceComparisonEngine(compared).run_price_comparison()

        result = AutoSelector(compared).run_auto_selection()
        rows = _rows(compared)
        assert result.packages_enabled == 1
        assert result.packages_disabled == 1
        assert rows[("airalo", "JP")].is_enabled
        assert not rows[("esim-go", "JP")].is_enabled

    def test_manual_mode_skips(self, compared):
        SettingsStore(compared).set(PACKAGE_SELECTION_MODE, "manual")
        result = AutoSelector(compared).run_auto_selection()

        assert result.success
        assert result.mode == "manual"
        assert result.errors == ["Auto-selection skipped: mode is 'manual'"]
        assert not any(r.is_enabled for r in _rows(compared).values())

    def test_disabled_provider_rows_untouched(self, compared, providers):
        providers["esim-access"].enabled = False
        compared.commit()
        AutoSelector(compared).run_auto_selection()
        assert not _rows(compared)[("esim-access", "FR")].is_enabled


class TestManualOverride:
    def test_override_survives_selection(self, compared):
        selector = AutoSelector(compared)
        airalo_jp = _rows(compared)[("airalo", "JP")]
        assert selector.toggle_package(airalo_jp.id, True)

        selector.run_auto_selection()
        rows = _rows(compared)
        assert rows[("airalo", "JP")].is_enabled
        assert rows[("airalo", "JP")].manual_override
        assert rows[("esim-go", "JP")].is_enabled

    def test_override_off_survives_selection(self, compared):
        selector = AutoSelector(compared)
        esim_go_jp = _rows(compared)[("esim-go", "JP")]
        selector.toggle_package(esim_go_jp.id, False)

        selector.run_auto_selection()
        assert not _rows(compared)[("esim-go", "JP")].is_enabled

    def test_pinned_off_winner_hands_group_to_next_cheapest(self, compared):
        selector = AutoSelector(compared)
        selector.toggle_package(_rows(compared)[("esim-go", "JP")].id, False)

        result = selector.run_auto_selection()
        rows = _rows(compared)
        assert not rows[("esim-go", "JP")].is_enabled
        assert rows[("airalo", "JP")].is_enabled
        assert result.packages_enabled == 2

        free_and_on = [
            r for r in rows.values()
            if r.country_code == "JP" and r.is_enabled and not r.manual_override
        ]
        assert len(free_and_on) == 1

    def test_whole_group_pinned_off_stays_off(self, compared):
        selector = AutoSelector(compared)
        for key in [("esim-go", "JP"), ("airalo", "JP")]:
            selector.toggle_package(_rows(compared)[key].id, False)

        selector.run_auto_selection()
        rows = _rows(compared)
        assert not rows[("esim-go", "JP")].is_enabled
        assert not rows[("airalo", "JP")].is_enabled

    def test_clear_override_reapplies_auto_rule(self, compared):
        selector = AutoSelector(compared)
        airalo_jp = _rows(compared)[("airalo", "JP")]
        selector.toggle_package(airalo_jp.id, True)

        assert selector.clear_manual_override(airalo_jp.id)
        row = _rows(compared)[("airalo", "JP")]
        assert not row.manual_override
        assert not row.is_enabled

    def test_clear_override_in_manual_mode_keeps_state(self, compared):
        SettingsStore(compared).set(PACKAGE_SELECTION_MODE, "manual")
        selector = AutoSelector(compared)
        airalo_jp = _rows(compared)[("airalo", "JP")]
        selector.toggle_package(airalo_jp.id, True)
        selector.clear_manual_override(airalo_jp.id)
        assert _rows(compared)[("airalo", "JP")].is_enabled

    def test_missing_package(self, session):
        selector = AutoSelector(session)
        assert selector.toggle_package(404, True) is False
        assert selector.clear_manual_override(404) is False


class TestPreferredProviderFallback:
    def test_preferred_setting_fills_empty_groups(self, catalog, providers):
        # no price comparison yet, so no group has a best-price row
        SettingsStore(catalog).set(PREFERRED_PROVIDER_ID, str(providers["airalo"].id))
        result = AutoSelector(catalog).run_auto_selection()
        rows = _rows(catalog)

        assert result.packages_enabled == 1
        assert rows[("airalo", "JP")].is_enabled
        assert not rows[("esim-go", "JP")].is_enabled
        assert not rows[("esim-access", "FR")].is_enabled

    def test_is_preferred_flag_used_without_setting(self, catalog, providers):
        providers["esim-go"].is_preferred = True
        catalog.commit()
        AutoSelector(catalog).run_auto_selection()
        assert _rows(catalog)[("esim-go", "JP")].is_enabled

    def test_groups_with_a_winner_are_left_alone(self, compared, providers):
        SettingsStore(compared).set(PREFERRED_PROVIDER_ID, str(providers["airalo"].id))
        AutoSelector(compared).run_auto_selection()
        assert not _rows(compared)[("airalo", "JP")].is_enabled

    def test_invalid_preferred_id_ignored(self, catalog):
        SettingsStore(catalog).set(PREFERRED_PROVIDER_ID, "not-a-number")
        result = AutoSelector(catalog).run_auto_selection()
        assert result.success
        assert result.packages_enabled == 0


class BrokenScorer:
    analyzer = SimpleNamespace(ai=None)

    def score_packages(self, packages, use_ai=True):
        raise RuntimeError("boom")


class TestCompositeSelection:
    def test_ai_flag_needs_ready_client(self, compared):
        SettingsStore(compared).set(AI_SELECTION_ENABLED, "true")
        assert not AutoSelector(compared).is_ai_enabled()
        assert not AutoSelector(compared, ai_client=FakeAIClient(ready=False)).is_ai_enabled()
        assert AutoSelector(compared, ai_client=FakeAIClient()).is_ai_enabled()

    def test_flag_off_means_price_only(self, compared, fake_ai):
        result = AutoSelector(compared, ai_client=fake_ai).run_auto_selection()
        assert not result.ai_enabled
        assert not fake_ai.prompts

    def test_top_composite_score_wins_group(self, compared, fake_ai):
        SettingsStore(compared).set(AI_SELECTION_ENABLED, "true")
        result = AutoSelector(compared, ai_client=fake_ai).run_auto_selection()
        rows = _rows(compared)

        assert result.success
        assert result.ai_enabled
        assert result.total_groups == 2
        assert len(result.ai_decisions) == 1
        decision = result.ai_decisions[0]
        assert decision.group_key == "JP_1024_7"
        assert decision.selected_package_id == rows[("esim-go", "JP")].id
        assert decision.selected_provider_name == "eSIM Go"
        assert decision.reasoning == "Solid value for a short trip."
        assert [a["providerName"] for a in decision.alternatives] == ["Airalo"]

        assert rows[("esim-go", "JP")].is_enabled and rows[("esim-go", "JP")].is_best_price
        assert not rows[("airalo", "JP")].is_enabled and not rows[("airalo", "JP")].is_best_price
        assert rows[("esim-access", "FR")].is_enabled

    def test_scoring_failure_falls_back_to_cheapest(self, compared, fake_ai):
        SettingsStore(compared).set(AI_SELECTION_ENABLED, "true")
        selector = AutoSelector(compared, ai_client=fake_ai, scorer=BrokenScorer())
        result = selector.run_auto_selection()
        rows = _rows(compared)

        assert result.success
        assert result.errors == ["AI failed for JP_1024_7: boom"]
        assert rows[("esim-go", "JP")].is_enabled
        assert not rows[("airalo", "JP")].is_enabled

    def test_override_respected_in_composite_path(self, compared, fake_ai):
        SettingsStore(compared).set(AI_SELECTION_ENABLED, "true")
        selector = AutoSelector(compared, ai_client=fake_ai)
        selector.toggle_package(_rows(compared)[("esim-go", "JP")].id, False)

        selector.run_auto_selection()
        row = _rows(compared)[("esim-go", "JP")]
        assert not row.is_enabled
        assert row.manual_override

        airalo = _rows(compared)[("airalo", "JP")]
        assert airalo.is_enabled and airalo.is_best_price


class TestBulkActionsAndReads:
    def test_enable_all(self, compared):
        result = AutoSelector(compared).enable_all_packages()
        assert result == {"success": True, "packagesEnabled": 3}

    def test_disable_all_spares_overrides(self, compared):
        selector = AutoSelector(compared)
        selector.enable_all_packages()
        pinned = _rows(compared)[("airalo", "JP")]
        selector.toggle_package(pinned.id, True)

        result = selector.disable_all_packages()
        rows = _rows(compared)
        assert result == {"success": True, "packagesDisabled": 2}
        assert rows[("airalo", "JP")].is_enabled
        assert not rows[("esim-go", "JP")].is_best_price

    def test_statistics(self, compared):
        selector = AutoSelector(compared)
        selector.run_auto_selection()
        selector.toggle_package(_rows(compared)[("airalo", "JP")].id, True)

        stats = selector.get_statistics().to_dict()
        assert stats == {
            "mode": "auto",
            "totalPackages": 3,
            "enabledPackages": 3,
            "disabledPackages": 0,
            "manualOverrides": 1,
            "bestPricePackages": 2,
        }

    def test_grouped_packages_cheapest_first(self, compared, destinations):
        groups = AutoSelector(compared).get_grouped_packages()
        assert set(groups) == {"JP_1024_7", "FR_1024_7"}
        assert [p.provider_name for p in groups["JP_1024_7"]] == ["eSIM Go", "Airalo"]
        assert groups["JP_1024_7"][0].retail_price == "3.13"

        only_fr = AutoSelector(compared).get_grouped_packages(destinations["FR"].id)
        assert list(only_fr) == ["FR_1024_7"]
