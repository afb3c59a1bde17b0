"""
Package Analyzer
----------------
Quality assessment for a single package, used as the quality component
of the composite score.

Formula (always computed):

  dataValue  = min(100, round(MB per $ * 2))
  validity   = min(100, round(days per $ * 10))
  value      = round(0.7 * dataValue + 0.3 * validity)
  overall    = round(0.6 * value + 0.4 * providerReputation)

When AI is requested and available, the model writes the reasoning,
strengths and weaknesses (`AIResult`); otherwise the narrative is
rule-based (`FormulaResult`). Scores are identical in both variants.
"""

import logging
from typing import Callable, Dict, List, Optional

from config.settings import settings
from models.schemas import (
    AIResult,
    FormulaResult,
    PackageComparison,
    PackageData,
    PackageScore,
    QualityAssessment,
)
from services.ai_client import AIClient
from services.errors import AIServiceError
from services.normalizer import round_half_up
from utils.cache import TTLCache

logger = logging.getLogger(__name__)

PROVIDER_REPUTATION: Dict[str, int] = {
    "airalo": 85,
    "esim-access": 80,
    "esim-go": 78,
    "maya": 75,
}
DEFAULT_REPUTATION = 70

MAX_LISTED_POINTS = 3


# ─── Formula Scores ──────────────────────────────────────────────────────────


def calculate_base_scores(pkg: PackageData) -> PackageScore:
    price = pkg.price
    data_mb = pkg.data_mb or 0

    mb_per_dollar = data_mb / price if price > 0 else 0
    data_value_score = min(100, round_half_up(mb_per_dollar * 2))

    days_per_dollar = pkg.validity_days / price if price > 0 else 0
    validity_score = min(100, round_half_up(days_per_dollar * 10))

    provider_score = PROVIDER_REPUTATION.get(pkg.provider_slug, DEFAULT_REPUTATION)
    value_score = round_half_up(data_value_score * 0.7 + validity_score * 0.3)
    overall_score = round_half_up(value_score * 0.6 + provider_score * 0.4)

    return PackageScore(
        package_id=pkg.id,
        overall_score=overall_score,
        value_score=value_score,
        data_value_score=data_value_score,
        validity_score=validity_score,
        provider_score=provider_score,
    )


def generic_strengths(pkg: PackageData) -> List[str]:
    price = pkg.price
    data_mb = pkg.data_mb or 0
    strengths = []

    if data_mb > 5000:
        strengths.append("Large data allowance")
    elif data_mb == 0:
        strengths.append("Unlimited data")
    if pkg.validity_days >= 30:
        strengths.append("Extended validity period")
    if price < 10:
        strengths.append("Budget-friendly pricing")
    if data_mb > 0 and price > 0 and data_mb / price > 500:
        strengths.append("Excellent data value ratio")
    if pkg.voice_minutes > 0:
        strengths.append("Includes voice minutes")

    return strengths or ["Standard package offering"]


def generic_weaknesses(pkg: PackageData) -> List[str]:
    price = pkg.price
    data_mb = pkg.data_mb or 0
    weaknesses = []

    if 0 < data_mb < 1000:
        weaknesses.append("Limited data allowance")
    if pkg.validity_days < 7:
        weaknesses.append("Short validity period")
    if price > 50:
        weaknesses.append("Premium pricing")
    if data_mb > 0 and price > 0 and data_mb / price < 100:
        weaknesses.append("Lower data value ratio")
    if pkg.voice_minutes <= 0:
        weaknesses.append("Data only - no voice")

    return weaknesses or ["No significant weaknesses"]


def _data_label(pkg: PackageData) -> str:
    return f"{pkg.data_mb}MB" if pkg.data_mb else "Unlimited"


# ─── Analyzer ────────────────────────────────────────────────────────────────


class PackageAnalyzer:
    def __init__(
        self,
        ai_client: Optional[AIClient] = None,
        cache_ttl_hours: Optional[float] = None,
        clock: Optional[Callable[[], float]] = None,
    ):
        self.ai = ai_client
        ttl_hours = cache_ttl_hours if cache_ttl_hours is not None else settings.AI_CACHE_TTL_HOURS
        self.score_cache = TTLCache(ttl_seconds=ttl_hours * 3600, clock=clock)
        self.comparison_cache = TTLCache(ttl_seconds=ttl_hours * 3600, clock=clock)

    def ai_ready(self) -> bool:
        return self.ai is not None and self.ai.is_ready()

    def analyze_package(self, pkg: PackageData, use_ai: bool = True) -> QualityAssessment:
        cache_key = f"{pkg.id}:{'ai' if use_ai else 'formula'}"
        cached = self.score_cache.get(cache_key)
        if cached is not None:
            return cached

        score = calculate_base_scores(pkg)

        if not use_ai or not self.ai_ready():
            assessment: QualityAssessment = FormulaResult(
                score=score,
                reasoning=(
                    f"Score based on data value ({pkg.data_mb or 0}MB for ${pkg.retail_price}) "
                    f"and {pkg.validity_days}-day validity from {pkg.provider_name}."
                ),
                strengths=generic_strengths(pkg),
                weaknesses=generic_weaknesses(pkg),
                fallback_reason="AI not requested" if not use_ai else "AI not configured",
            )
        else:
            try:
                data = self._ask_for_assessment(pkg)
                assessment = AIResult(
                    score=score,
                    reasoning=str(data["reasoning"]),
                    strengths=[str(s) for s in data.get("strengths", [])][:MAX_LISTED_POINTS],
                    weaknesses=[str(w) for w in data.get("weaknesses", [])][:MAX_LISTED_POINTS],
                )
            except (AIServiceError, KeyError, TypeError, AttributeError) as e:
                logger.warning(f"AI analysis failed for package {pkg.id}, using formula: {e}")
                assessment = FormulaResult(
                    score=score,
                    reasoning=(
                        f"{pkg.data_mb or 'Unlimited'}MB package for ${pkg.retail_price} "
                        f"over {pkg.validity_days} days from {pkg.provider_name}."
                    ),
                    strengths=generic_strengths(pkg),
                    weaknesses=generic_weaknesses(pkg),
                    fallback_reason=str(e),
                )

        self.score_cache.set(cache_key, assessment)
        return assessment

    def compare_packages(self, packages: List[PackageData], use_ai: bool = True) -> PackageComparison:
        if not packages:
            raise ValueError("No packages to compare")

        if len(packages) == 1:
            only = packages[0]
            return PackageComparison(
                assessments=[self.analyze_package(only, use_ai)],
                best_package_id=only.id,
                comparison_summary="Only one package available for this destination.",
                recommendation=f"{only.provider_name}'s {only.name} is the available option.",
            )

        cache_key = "|".join(sorted(str(p.id) for p in packages)) + f"|{int(use_ai)}"
        cached = self.comparison_cache.get(cache_key)
        if cached is not None:
            return cached

        assessments = [self.analyze_package(p, use_ai) for p in packages]

        if not use_ai or not self.ai_ready():
            return self._score_based_comparison(packages, assessments)

        try:
            data = self._ask_for_comparison(packages, assessments)
            valid_ids = {p.id for p in packages}
            best_id = data.get("bestPackageId")
            try:
                best_id = int(best_id)
            except (TypeError, ValueError):
                best_id = None
            comparison = PackageComparison(
                assessments=assessments,
                best_package_id=best_id if best_id in valid_ids else self._best_by_score(assessments),
                comparison_summary=str(data.get("comparisonSummary", "")),
                recommendation=str(data.get("recommendation", "")),
            )
        except (AIServiceError, AttributeError) as e:
            logger.warning(f"AI comparison failed, using scores: {e}")
            comparison = self._score_based_comparison(packages, assessments)

        self.comparison_cache.set(cache_key, comparison)
        return comparison

    def clear_cache(self) -> None:
        self.score_cache.clear()
        self.comparison_cache.clear()
        logger.info("Package analyzer cache cleared")

    def cache_stats(self) -> Dict[str, int]:
        return {
            "scoreEntries": len(self.score_cache),
            "comparisonEntries": len(self.comparison_cache),
        }

    # ── AI prompts ────────────────────────────────────────────────────────

    def _ask_for_assessment(self, pkg: PackageData) -> dict:
        location = pkg.destination_name + (f" ({pkg.region_name})" if pkg.region_name else "")
        prompt = (
            "Assess this eSIM data package for a traveller.\n\n"
            f"Package: {pkg.name}\n"
            f"Provider: {pkg.provider_name}\n"
            f"Destination: {location}\n"
            f"Data: {_data_label(pkg)}\n"
            f"Validity: {pkg.validity_days} days\n"
            f"Price: ${pkg.retail_price}\n"
            f"Voice: {pkg.voice_minutes} minutes\n"
            f"SMS: {pkg.sms_count}\n\n"
            "Return JSON of the form:\n"
            '{"reasoning": "one or two sentences", '
            '"strengths": ["..."], "weaknesses": ["..."]}\n\n'
            "Weigh value for money, whether the data allowance fits the validity, "
            "and provider reliability."
        )
        result = self.ai.chat_completion_json(prompt)
        if not result.success or not isinstance(result.data, dict):
            raise AIServiceError(result.error or "Unexpected AI response shape")
        return result.data

    def _ask_for_comparison(self, packages: List[PackageData], assessments: List[QualityAssessment]) -> dict:
        lines = [
            f"- id={p.id} | {p.name} | {p.provider_name} | {_data_label(p)} | "
            f"{p.validity_days} days | ${p.retail_price} | score {a.score.overall_score}"
            for p, a in zip(packages, assessments)
        ]
        prompt = (
            f"Compare these eSIM packages for {packages[0].destination_name} "
            "and pick the best one.\n\n" + "\n".join(lines) + "\n\n"
            "Return JSON of the form:\n"
            '{"bestPackageId": <id>, "comparisonSummary": "two or three sentences", '
            '"recommendation": "why the pick wins"}'
        )
        result = self.ai.chat_completion_json(prompt)
        if not result.success or not isinstance(result.data, dict):
            raise AIServiceError(result.error or "Unexpected AI response shape")
        return result.data

    # ── Score-only comparison ─────────────────────────────────────────────

    @staticmethod
    def _best_by_score(assessments: List[QualityAssessment]) -> int:
        best = assessments[0]
        for a in assessments[1:]:
            if a.score.overall_score > best.score.overall_score:
                best = a
        return best.score.package_id

    def _score_based_comparison(
        self, packages: List[PackageData], assessments: List[QualityAssessment]
    ) -> PackageComparison:
        best_id = self._best_by_score(assessments)
        best_pkg = next(p for p in packages if p.id == best_id)
        best_score = next(a for a in assessments if a.score.package_id == best_id)
        return PackageComparison(
            assessments=assessments,
            best_package_id=best_id,
            comparison_summary=(
                f"Compared {len(packages)} packages. {best_pkg.provider_name}'s offering "
                f"scored highest at {best_score.score.overall_score}/100."
            ),
            recommendation=(
                f"{best_pkg.name} offers the best combination of value, data allowance, "
                "and provider reliability."
            ),
        )
