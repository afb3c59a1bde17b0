"""
Package Similarity Engine
-------------------------
Fuzzy matching of packages within one destination (7 days ~ 8 days,
1GB ~ 1.2GB). Starting from 100, points are deducted for relative
differences:

  data      variance > 0.25 -> min(40, v*80), else v*20
            one unlimited, one not -> 40
  validity  variance > 0.15 -> min(30, v*60), else v*15
  price     variance > 0.30 -> min(20, v*40), else v*10

Packages in different destinations *and* regions score 0.
"""

import logging
from typing import Callable, List, Optional

from config.settings import settings
from models.schemas import AlternativePackage, PackageData, PackageSpec, SimilarityGroup
from services.ai_client import AIClient
from services.normalizer import round_half_up
from utils.cache import TTLCache

logger = logging.getLogger(__name__)

DATA_VARIANCE_THRESHOLD = 0.25
VALIDITY_VARIANCE_THRESHOLD = 0.15
PRICE_VARIANCE_THRESHOLD = 0.30

UNLIMITED_MISMATCH_PENALTY = 40


def _relative_variance(a: float, b: float) -> float:
    largest = max(a, b)
    if largest <= 0:
        return 0.0
    return abs(a - b) / largest


def calculate_similarity(a: PackageData, b: PackageData) -> int:
    """Similarity score 0–100; symmetric in its arguments."""
    if a.destination_id != b.destination_id and a.region_id != b.region_id:
        return 0

    deductions = 0.0

    data_a = a.data_mb or 0
    data_b = b.data_mb or 0
    if data_a == 0 and data_b == 0:
        pass
    elif data_a == 0 or data_b == 0:
        deductions += UNLIMITED_MISMATCH_PENALTY
    else:
        v = _relative_variance(data_a, data_b)
        deductions += min(40, v * 80) if v > DATA_VARIANCE_THRESHOLD else v * 20

    v = _relative_variance(a.validity_days, b.validity_days)
    deductions += min(30, v * 60) if v > VALIDITY_VARIANCE_THRESHOLD else v * 15

    v = _relative_variance(a.price, b.price)
    deductions += min(20, v * 40) if v > PRICE_VARIANCE_THRESHOLD else v * 10

    return max(0, round_half_up(100 - deductions))


def are_similar(a: PackageData, b: PackageData, threshold: Optional[int] = None) -> bool:
    threshold = threshold if threshold is not None else settings.SIMILARITY_THRESHOLD
    return calculate_similarity(a, b) >= threshold


def group_label(avg_data_mb: float, avg_validity_days: float, destination: str) -> str:
    if avg_data_mb == 0:
        data = "Unlimited"
    elif avg_data_mb >= 1024:
        data = f"{round_half_up(avg_data_mb / 1024)}GB"
    else:
        data = f"{round_half_up(avg_data_mb)}MB"

    if avg_validity_days >= 30:
        validity = f"{round_half_up(avg_validity_days / 30)} month"
    else:
        validity = f"{round_half_up(avg_validity_days)} day"

    return f"{destination} - {data} / {validity}"


def describe_difference(target: PackageSpec, pkg: PackageData) -> str:
    differences = []
    target_data = target.data_mb or 0
    pkg_data = pkg.data_mb or 0

    if pkg_data != target_data:
        diff = pkg_data - target_data
        if pkg_data == 0:
            differences.append("Unlimited data instead of limited")
        elif diff > 0:
            differences.append(f"{abs(diff)}MB more data")
        else:
            differences.append(f"{abs(diff)}MB less data")

    if pkg.validity_days != target.validity_days:
        diff = pkg.validity_days - target.validity_days
        if diff > 0:
            differences.append(f"{diff} days longer")
        else:
            differences.append(f"{abs(diff)} days shorter")

    return ", ".join(differences) if differences else "Exact match"


class SimilarityEngine:
    def __init__(
        self,
        ai_client: Optional[AIClient] = None,
        cache_ttl_hours: Optional[float] = None,
        clock: Optional[Callable[[], float]] = None,
    ):
        self.ai = ai_client
        ttl_hours = cache_ttl_hours if cache_ttl_hours is not None else settings.AI_CACHE_TTL_HOURS
        self.group_cache = TTLCache(ttl_seconds=ttl_hours * 3600, clock=clock)

    def group_similar_packages(
        self, packages: List[PackageData], threshold: Optional[int] = None
    ) -> List[SimilarityGroup]:
        """
        Greedy single pass: each unassigned package seeds a group and absorbs
        every later unassigned package similar to the seed. Input order matters.
        """
        if not packages:
            return []
        threshold = threshold if threshold is not None else settings.SIMILARITY_THRESHOLD

        cache_key = "|".join(sorted(str(p.id) for p in packages)) + f"|t{threshold}"
        cached = self.group_cache.get(cache_key)
        if cached is not None:
            return cached

        groups: List[SimilarityGroup] = []
        assigned = set()

        for seed in packages:
            if seed.id in assigned:
                continue
            members = [seed]
            assigned.add(seed.id)
            for other in packages:
                if other.id in assigned:
                    continue
                if are_similar(seed, other, threshold):
                    members.append(other)
                    assigned.add(other.id)

            avg_data = sum(p.data_mb or 0 for p in members) / len(members)
            avg_validity = sum(p.validity_days for p in members) / len(members)
            if len(members) > 1:
                avg_similarity = sum(calculate_similarity(seed, p) for p in members[1:]) / (len(members) - 1)
            else:
                avg_similarity = 100

            groups.append(
                SimilarityGroup(
                    group_id=f"grp_{seed.destination_id}_{round_half_up(avg_data)}_{round_half_up(avg_validity)}",
                    group_label=group_label(avg_data, avg_validity, seed.destination_name),
                    packages=members,
                    similarity=round_half_up(avg_similarity),
                )
            )

        self.group_cache.set(cache_key, groups)
        return groups

    def find_alternatives(
        self,
        target: PackageSpec,
        pool: List[PackageData],
        max_results: Optional[int] = None,
        use_ai: bool = True,
    ) -> List[AlternativePackage]:
        max_results = max_results if max_results is not None else settings.MAX_ALTERNATIVES
        candidates = [p for p in pool if p.destination_id == target.destination_id]
        if not candidates:
            return []

        # price "0" makes the price deduction identical for every candidate
        probe = PackageData(
            id=0,
            name="target",
            provider_id=0,
            provider_name="Target",
            provider_slug="",
            retail_price="0",
            validity_days=target.validity_days,
            data_mb=target.data_mb,
            destination_id=target.destination_id,
        )

        scored = [
            AlternativePackage(
                package=p,
                similarity=calculate_similarity(probe, p),
                difference_description=describe_difference(target, p),
            )
            for p in candidates
        ]
        scored.sort(key=lambda a: a.similarity, reverse=True)
        top = scored[:max_results]

        if use_ai and self.ai is not None and self.ai.is_ready() and len(top) > 1:
            self._enhance_descriptions(target, top)
        return top

    def clear_cache(self) -> None:
        self.group_cache.clear()

    def _enhance_descriptions(self, target: PackageSpec, alternatives: List[AlternativePackage]) -> None:
        """Let the AI rewrite difference descriptions; keeps the originals on any failure."""
        listing = "\n".join(
            f"{i}. {alt.package.provider_name}: {alt.package.data_mb or 'Unlimited'}MB, "
            f"{alt.package.validity_days} days, ${alt.package.retail_price}"
            for i, alt in enumerate(alternatives)
        )
        wanted = f"{target.data_mb}MB" if target.data_mb else "unlimited"
        prompt = (
            f"A traveller wants an eSIM with {wanted} data for {target.validity_days} days. "
            "Write a short recommendation note for each alternative below.\n\n"
            f"{listing}\n\n"
            'Return a JSON array: [{"index": 0, "description": "..."}]'
        )
        result = self.ai.chat_completion_json(prompt, max_tokens=300)
        if not result.success or not isinstance(result.data, list):
            logger.warning(f"AI description enhancement skipped: {result.error or 'unexpected shape'}")
            return
        for item in result.data:
            if not isinstance(item, dict):
                continue
            index = item.get("index")
            description = item.get("description")
            if isinstance(index, int) and 0 <= index < len(alternatives) and description:
                alternatives[index].difference_description = str(description)
