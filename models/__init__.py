"""
Core data models for the eSIM catalog pipeline.
"""

from .schemas import (
    NormalizedPackageData,
    CountryMatch,
    PackageData,
    PackageSpec,
    ScoringWeights,
    PackageScore,
    AIResult,
    FormulaResult,
    QualityAssessment,
    PackageComparison,
    CompositeScore,
    PackageWithScore,
    SimilarityGroup,
    AlternativePackage,
    SyncResult,
    SyncAllResult,
    PriceComparisonResult,
    PriceStatistics,
    AIDecision,
    AutoSelectionResult,
    SelectionStatistics,
    SyncJob,
)

__all__ = [
    "NormalizedPackageData",
    "CountryMatch",
    "PackageData",
    "PackageSpec",
    "ScoringWeights",
    "PackageScore",
    "AIResult",
    "FormulaResult",
    "QualityAssessment",
    "PackageComparison",
    "CompositeScore",
    "PackageWithScore",
    "SimilarityGroup",
    "AlternativePackage",
    "SyncResult",
    "SyncAllResult",
    "PriceComparisonResult",
    "PriceStatistics",
    "AIDecision",
    "AutoSelectionResult",
    "SelectionStatistics",
    "SyncJob",
]
