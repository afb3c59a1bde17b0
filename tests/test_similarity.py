"""
Package similarity engine tests.
"""

import pytest

from conftest import FakeAIClient
from models.schemas import PackageData, PackageSpec
from services.similarity import (
    SimilarityEngine,
    are_similar,
    calculate_similarity,
    describe_difference,
    group_label,
)


def make_pkg(id, data_mb=1024, validity=7, price="5.00", destination_id=1, region_id=None, provider="Airalo"):
    return PackageData(
        id=id,
        name=f"Package {id}",
        provider_id=id,
        provider_name=provider,
        provider_slug=provider.lower(),
        retail_price=price,
        validity_days=validity,
        data_mb=data_mb,
        destination_id=destination_id,
        destination_name="Japan",
        region_id=region_id,
    )


class TestCalculateSimilarity:
    def test_identical(self):
        assert calculate_similarity(make_pkg(1), make_pkg(2)) == 100

    def test_symmetric(self):
        a = make_pkg(1, data_mb=1024, validity=7, price="5.00")
        b = make_pkg(2, data_mb=1536, validity=10, price="7.50")
        assert calculate_similarity(a, b) == calculate_similarity(b, a)

    def test_different_location_scores_zero(self):
        a = make_pkg(1, destination_id=1, region_id=1)
        b = make_pkg(2, destination_id=2, region_id=2)
        assert calculate_similarity(a, b) == 0

    def test_shared_region_is_enough(self):
        a = make_pkg(1, destination_id=1, region_id=5)
        b = make_pkg(2, destination_id=2, region_id=5)
        assert calculate_similarity(a, b) == 100

    def test_large_data_gap(self):
        assert calculate_similarity(make_pkg(1, data_mb=1024), make_pkg(2, data_mb=2048)) == 60

    def test_unlimited_vs_limited(self):
        assert calculate_similarity(make_pkg(1, data_mb=None), make_pkg(2, data_mb=1024)) == 60

    def test_small_validity_gap(self):
        assert calculate_similarity(make_pkg(1, validity=7), make_pkg(2, validity=8)) == 98

    def test_threshold(self):
        a, b = make_pkg(1), make_pkg(2, data_mb=2048)
        assert not are_similar(a, b)
        assert are_similar(a, b, threshold=60)


class TestLabels:
    def test_gb_and_days(self):
        assert group_label(1024, 7, "Japan") == "Japan - 1GB / 7 day"

    def test_mb_and_months(self):
        assert group_label(500, 30, "France") == "France - 500MB / 1 month"

    def test_unlimited(self):
        assert group_label(0, 10, "Japan") == "Japan - Unlimited / 10 day"

    def test_describe_difference(self):
        target = PackageSpec(data_mb=1024, validity_days=7, destination_id=1)
        assert describe_difference(target, make_pkg(1)) == "Exact match"
        assert describe_difference(target, make_pkg(2, data_mb=2048, validity=10)) == (
            "1024MB more data, 3 days longer"
        )
        assert describe_difference(target, make_pkg(3, data_mb=512, validity=5)) == (
            "512MB less data, 2 days shorter"
        )
        assert describe_difference(target, make_pkg(4, data_mb=None)) == "Unlimited data instead of limited"


class TestGrouping:
    def test_groups_similar_packages(self):
        pkgs = [
            make_pkg(1),
            make_pkg(2, provider="Maya"),
            make_pkg(3, data_mb=10240, validity=30),
        ]
        groups = SimilarityEngine().group_similar_packages(pkgs)

        assert len(groups) == 2
        assert [p.id for p in groups[0].packages] == [1, 2]
        assert groups[0].group_id == "grp_1_1024_7"
        assert groups[0].group_label == "Japan - 1GB / 7 day"
        assert groups[0].similarity == 100
        assert [p.id for p in groups[1].packages] == [3]

    def test_every_package_in_exactly_one_group(self):
        pkgs = [make_pkg(i, data_mb=1024 * i, validity=7 + i) for i in range(1, 6)]
        groups = SimilarityEngine().group_similar_packages(pkgs)
        ids = [p.id for g in groups for p in g.packages]
        assert sorted(ids) == [1, 2, 3, 4, 5]

    def test_empty(self):
        assert SimilarityEngine().group_similar_packages([]) == []

    def test_grouping_is_cached(self):
        engine = SimilarityEngine()
        pkgs = [make_pkg(1), make_pkg(2)]
        first = engine.group_similar_packages(pkgs)
        assert engine.group_similar_packages(list(reversed(pkgs))) is first
        engine.clear_cache()
        assert engine.group_similar_packages(pkgs) is not first


class TestFindAlternatives:
    @pytest.fixture
    def pool(self):
        return [
            make_pkg(1, data_mb=1024, validity=7),
            make_pkg(2, data_mb=2048, validity=7),
            make_pkg(3, data_mb=1024, validity=8),
            make_pkg(4, data_mb=1024, validity=7, destination_id=2),
        ]

    def test_same_destination_ranked(self, pool):
        target = PackageSpec(data_mb=1024, validity_days=7, destination_id=1)
        alts = SimilarityEngine().find_alternatives(target, pool, use_ai=False)

        assert [a.package.id for a in alts] == [1, 3, 2]
        # every candidate takes the same price deduction against the "0" probe
        assert alts[0].similarity == 80
        assert alts[0].difference_description == "Exact match"

    def test_max_results(self, pool):
        target = PackageSpec(data_mb=1024, validity_days=7, destination_id=1)
        assert len(SimilarityEngine().find_alternatives(target, pool, max_results=1, use_ai=False)) == 1

    def test_no_candidates(self, pool):
        target = PackageSpec(data_mb=1024, validity_days=7, destination_id=99)
        assert SimilarityEngine().find_alternatives(target, pool) == []

    def test_ai_rewrites_descriptions(self, pool):
        ai = FakeAIClient(replies=[[{"index": 1, "description": "Tiny bit longer, same price"}]])
        target = PackageSpec(data_mb=1024, validity_days=7, destination_id=1)
        alts = SimilarityEngine(ai_client=ai).find_alternatives(target, pool)

        assert alts[1].difference_description == "Tiny bit longer, same price"
        assert alts[0].difference_description == "Exact match"

    def test_ai_failure_keeps_descriptions(self, pool):
        target = PackageSpec(data_mb=1024, validity_days=7, destination_id=1)
        alts = SimilarityEngine(ai_client=FakeAIClient()).find_alternatives(target, pool)
        assert alts[1].difference_description == "1 days longer"
