"""
Country resolution and group key tests.
"""

import pytest

from services.country_codes import (
    UNKNOWN_COUNTRY,
    country_from_code,
    extract_from_airalo_slug,
    extract_from_esim_access_package,
    extract_from_esim_go_package,
    extract_from_maya_package,
    generate_package_group_key,
    get_all_destinations,
    is_groupable_key,
    seed_destinations,
)
from db.models import Destination
from services.providers import PROVIDER_STRATEGIES, get_strategy
from services.errors import UnknownProviderError


class TestExtractors:
    def test_airalo_multi_word_country(self):
        m = extract_from_airalo_slug("united-states-10gb-30days")
        assert (m.code, m.name) == ("US", "United States")

    def test_airalo_single_word_country(self):
        assert extract_from_airalo_slug("japan-3gb-7days").code == "JP"

    def test_airalo_unknown(self):
        assert not extract_from_airalo_slug("atlantis-1gb-7days").resolved

    def test_esim_go_slug_suffix(self):
        assert extract_from_esim_go_package("esim_1GB_7D_US_V2").code == "US"
        assert extract_from_esim_go_package("esim_1GB_7D_fr").code == "FR"

    def test_esim_go_single_coverage_wins(self):
        assert extract_from_esim_go_package("esim_1GB_7D_US_V2", ["JP"]).code == "JP"

    def test_esim_access_prefix(self):
        assert extract_from_esim_access_package("JP_3GB_7D").code == "JP"

    def test_esim_access_multi_coverage_falls_back_to_slug(self):
        assert extract_from_esim_access_package("FR_1GB_7D", ["FR", "DE"]).code == "FR"

    def test_maya_delimited_code(self):
        assert extract_from_maya_package("maya-jp-5gb-10d").code == "JP"
        assert extract_from_maya_package("plan_DE_3gb").code == "DE"

    def test_unknown_iso_code(self):
        assert not country_from_code("ZZ").resolved
        assert country_from_code("jp").code == "JP"


class TestGroupKeys:
    def test_limited_key(self):
        assert generate_package_group_key("JP", 1024, 7) == "JP_1024_7"

    def test_unlimited_key(self):
        assert generate_package_group_key("FR", None, 10) == "FR_UNLIMITED_10"

    def test_unknown_country_is_not_groupable(self):
        key = generate_package_group_key(None, 1024, 7)
        assert key.startswith(UNKNOWN_COUNTRY)
        assert not is_groupable_key(key)
        assert not is_groupable_key(None)
        assert is_groupable_key("JP_1024_7")


class TestHelpers:
    def test_destinations_unique_and_sorted(self):
        dests = get_all_destinations()
        codes = [d["country_code"] for d in dests]
        names = [d["name"].lower() for d in dests]
        assert len(codes) == len(set(codes))
        assert names == sorted(names)

    def test_seed_destinations_skips_existing(self, session, destinations):
        added = seed_destinations(session)
        assert added == len(get_all_destinations()) - 2
        assert seed_destinations(session) == 0

        japan = session.query(Destination).filter(Destination.country_code == "JP").all()
        assert [d.id for d in japan] == [destinations["JP"].id]


class TestProviderStrategies:
    def test_every_provider_registered(self):
        assert set(PROVIDER_STRATEGIES) == {"airalo", "esim-access", "esim-go", "maya"}

    def test_unknown_provider(self):
        with pytest.raises(UnknownProviderError):
            get_strategy("acme-sim")

    def test_airalo_prefers_airalo_price(self):
        from types import SimpleNamespace
        strategy = get_strategy("airalo")
        assert strategy.wholesale_price(SimpleNamespace(airalo_price="2.50", price="4.00")) == "2.50"
        assert strategy.wholesale_price(SimpleNamespace(airalo_price=None, price="4.00")) == "4.00"
        assert strategy.wholesale_price(SimpleNamespace(airalo_price="  ", price="")) is None
