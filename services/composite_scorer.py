"""
Composite Scorer
----------------
Ranks the members of a package group:

  finalScore = round(price * Wp/100 + quality * Wq/100 + provider * Wr/100)

  price    = round(100 * (maxPrice - price) / (maxPrice - minPrice))
             within the candidate set (100 for all when prices are equal)
  quality  = value score from the package analyzer (AI-assisted or formula)
  provider = static reputation, 75 for unknown providers

Weights come from platform settings (ai_price_weight, ai_quality_weight,
ai_provider_weight), are renormalized to sum to 100 and cached for
five minutes.
"""

import logging
import re
from typing import Callable, Dict, List, Optional

import numpy as np

from config.settings import settings
from models.schemas import CompositeScore, PackageData, PackageWithScore, ScoringWeights
from services.normalizer import round_half_up
from services.package_analyzer import PackageAnalyzer
from services.settings_store import (
    AI_PRICE_WEIGHT,
    AI_PROVIDER_WEIGHT,
    AI_QUALITY_WEIGHT,
    SettingsStore,
)
from utils.cache import TTLCache

logger = logging.getLogger(__name__)

PROVIDER_SCORES: Dict[str, int] = {
    "airalo": 90,
    "esim-access": 85,
    "esim-go": 82,
    "maya": 78,
}
DEFAULT_PROVIDER_SCORE = 75

_LEADING_INT_RE = re.compile(r"^\s*([+-]?\d+)")


def default_weights() -> ScoringWeights:
    return ScoringWeights(
        price_weight=settings.DEFAULT_PRICE_WEIGHT,
        quality_weight=settings.DEFAULT_QUALITY_WEIGHT,
        provider_weight=settings.DEFAULT_PROVIDER_WEIGHT,
    )


def parse_weight(raw: Optional[str]) -> Optional[int]:
    """Leading integer of a stored weight, if it lies in 0..100."""
    if raw is None:
        return None
    m = _LEADING_INT_RE.match(raw)
    if not m:
        return None
    value = int(m.group(1))
    return value if 0 <= value <= 100 else None


def renormalize_weights(weights: ScoringWeights) -> ScoringWeights:
    """
    Scale weights so they sum to exactly 100.

    Largest-remainder apportionment: every share is floored, then the
    leftover points go to the largest remainders (provider first on ties,
    then price, then quality). No weight ever goes below zero.
    """
    total = weights.total
    if total == 100:
        return weights
    if total <= 0:
        return default_weights()
    raw = [weights.provider_weight, weights.price_weight, weights.quality_weight]
    shares = [w * 100 // total for w in raw]
    remainders = [w * 100 % total for w in raw]
    leftover = 100 - sum(shares)
    for i in sorted(range(3), key=lambda i: -remainders[i])[:leftover]:
        shares[i] += 1
    provider, price, quality = shares
    return ScoringWeights(
        price_weight=price,
        quality_weight=quality,
        provider_weight=provider,
    )


def calculate_price_scores(prices: List[float]) -> List[int]:
    """Inverse min-max price score in [0, 100]; cheapest gets 100."""
    if not prices:
        return []
    arr = np.array(prices, dtype=float)
    p_min, p_max = arr.min(), arr.max()
    if p_max == p_min:
        return [100] * len(prices)
    scores = np.floor((p_max - arr) / (p_max - p_min) * 100 + 0.5)
    return [int(s) for s in scores]


class CompositeScorer:
    WEIGHTS_KEY = "weights"

    def __init__(
        self,
        settings_store: Optional[SettingsStore] = None,
        analyzer: Optional[PackageAnalyzer] = None,
        weights_ttl_seconds: Optional[float] = None,
        clock: Optional[Callable[[], float]] = None,
    ):
        self.settings_store = settings_store
        self.analyzer = analyzer or PackageAnalyzer(clock=clock)
        ttl = weights_ttl_seconds if weights_ttl_seconds is not None else settings.WEIGHTS_CACHE_TTL_SECONDS
        self.weights_cache = TTLCache(ttl_seconds=ttl, clock=clock)
        self.provider_scores: Dict[str, int] = {}

    # ── Weights & provider reputation ─────────────────────────────────────

    def get_weights(self) -> ScoringWeights:
        cached = self.weights_cache.get(self.WEIGHTS_KEY)
        if cached is not None:
            return cached

        weights = default_weights()
        if self.settings_store is not None:
            try:
                price = parse_weight(self.settings_store.get(AI_PRICE_WEIGHT))
                quality = parse_weight(self.settings_store.get(AI_QUALITY_WEIGHT))
                provider = parse_weight(self.settings_store.get(AI_PROVIDER_WEIGHT))
            except Exception as e:
                logger.warning(f"Failed to load scoring weights, using defaults: {e}")
                return default_weights()
            if price is not None:
                weights.price_weight = price
            if quality is not None:
                weights.quality_weight = quality
            if provider is not None:
                weights.provider_weight = provider

        weights = renormalize_weights(weights)
        self.weights_cache.set(self.WEIGHTS_KEY, weights)
        return weights

    def get_provider_score(self, provider_slug: str) -> int:
        if provider_slug not in self.provider_scores:
            self.provider_scores[provider_slug] = PROVIDER_SCORES.get(provider_slug, DEFAULT_PROVIDER_SCORE)
        return self.provider_scores[provider_slug]

    # ── Scoring ───────────────────────────────────────────────────────────

    def score_package(
        self,
        pkg: PackageData,
        price_score: int,
        weights: ScoringWeights,
        use_ai: bool = True,
    ) -> CompositeScore:
        quality = self.analyzer.analyze_package(pkg, use_ai=use_ai)
        quality_score = quality.value_score
        provider_score = self.get_provider_score(pkg.provider_slug)

        price_part = price_score * weights.price_weight / 100
        quality_part = quality_score * weights.quality_weight / 100
        provider_part = provider_score * weights.provider_weight / 100

        return CompositeScore(
            final_score=round_half_up(price_part + quality_part + provider_part),
            price_score=price_score,
            quality_score=quality_score,
            provider_score=provider_score,
            breakdown={
                "priceContribution": round_half_up(price_part),
                "qualityContribution": round_half_up(quality_part),
                "providerContribution": round_half_up(provider_part),
            },
            quality=quality,
            reasoning=quality.reasoning,
        )

    def score_packages(self, packages: List[PackageData], use_ai: bool = True) -> List[PackageWithScore]:
        """Score every candidate and return them best-first (stable on ties)."""
        if not packages:
            return []
        weights = self.get_weights()
        price_scores = calculate_price_scores([p.price for p in packages])
        scored = [
            PackageWithScore(package=pkg, score=self.score_package(pkg, ps, weights, use_ai))
            for pkg, ps in zip(packages, price_scores)
        ]
        scored.sort(key=lambda s: s.score.final_score, reverse=True)
        return scored

    def find_best_package(self, packages: List[PackageData], use_ai: bool = True) -> Optional[PackageWithScore]:
        scored = self.score_packages(packages, use_ai)
        return scored[0] if scored else None

    def clear_cache(self) -> None:
        self.weights_cache.clear()
        self.provider_scores.clear()
