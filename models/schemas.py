"""
Core data models / schemas for the eSIM catalog pipeline.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import List, Optional, Dict, Any, Union
from datetime import datetime


# ---------------------------------------------------------------------------
# Normalization
# ---------------------------------------------------------------------------

@dataclass
class NormalizedPackageData:
    data_mb: Optional[int]          # None = unlimited
    validity_days: int
    voice_minutes: int = 0
    sms_count: int = 0

    @property
    def is_unlimited(self) -> bool:
        return self.data_mb is None


@dataclass
class CountryMatch:
    code: Optional[str] = None      # ISO 3166-1 alpha-2
    name: Optional[str] = None

    @property
    def resolved(self) -> bool:
        return self.code is not None


# ---------------------------------------------------------------------------
# Joined catalog read
# ---------------------------------------------------------------------------

@dataclass
class PackageData:
    """A unified catalog row joined with its provider and destination/region."""
    id: int
    name: str
    provider_id: int
    provider_name: str
    provider_slug: str
    retail_price: str
    validity_days: int
    data_mb: Optional[int] = None
    destination_id: Optional[int] = None
    destination_name: str = ""
    destination_code: Optional[str] = None
    region_id: Optional[int] = None
    region_name: Optional[str] = None
    wholesale_price: Optional[str] = None
    voice_minutes: int = 0
    sms_count: int = 0
    package_group_key: Optional[str] = None
    coverage: List[str] = field(default_factory=list)
    is_enabled: bool = False
    is_best_price: bool = False
    manual_override: bool = False

    @property
    def price(self) -> float:
        return float(self.retail_price)

    @classmethod
    def from_row(cls, row: Any) -> "PackageData":
        """Build from a UnifiedPackage ORM row with its relationships loaded."""
        provider = row.provider
        destination = row.destination
        region = row.region
        return cls(
            id=row.id,
            name=row.title,
            provider_id=row.provider_id,
            provider_name=provider.name if provider else str(row.provider_id),
            provider_slug=provider.slug if provider else "",
            retail_price=row.retail_price,
            validity_days=row.validity_days if row.validity_days is not None else row.validity,
            data_mb=row.data_mb,
            destination_id=row.destination_id,
            destination_name=(
                destination.name if destination else (row.country_name or "")
            ),
            destination_code=row.country_code,
            region_id=row.region_id,
            region_name=region.name if region else None,
            wholesale_price=row.wholesale_price,
            voice_minutes=row.voice_minutes or 0,
            sms_count=row.sms_count or 0,
            package_group_key=row.package_group_key,
            coverage=list(row.coverage or []),
            is_enabled=bool(row.is_enabled),
            is_best_price=bool(row.is_best_price),
            manual_override=bool(row.manual_override),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "providerId": self.provider_id,
            "providerName": self.provider_name,
            "destinationId": self.destination_id,
            "destinationName": self.destination_name,
            "regionId": self.region_id,
            "dataMb": self.data_mb,
            "validityDays": self.validity_days,
            "retailPrice": self.retail_price,
            "packageGroupKey": self.package_group_key,
            "isEnabled": self.is_enabled,
            "isBestPrice": self.is_best_price,
            "manualOverride": self.manual_override,
        }


@dataclass
class PackageSpec:
    """What a customer asked for, used to look up alternatives."""
    data_mb: Optional[int]
    validity_days: int
    destination_id: Optional[int]


# ---------------------------------------------------------------------------
# Scoring
# ---------------------------------------------------------------------------

@dataclass
class ScoringWeights:
    price_weight: int
    quality_weight: int
    provider_weight: int

    @property
    def total(self) -> int:
        return self.price_weight + self.quality_weight + self.provider_weight

    def to_dict(self) -> Dict[str, int]:
        return {
            "priceWeight": self.price_weight,
            "qualityWeight": self.quality_weight,
            "providerWeight": self.provider_weight,
        }


@dataclass
class PackageScore:
    """Formula-derived quality scores for one package (all 0–100)."""
    package_id: int
    overall_score: int
    value_score: int
    data_value_score: int
    validity_score: int
    provider_score: int
    analyzed_at: datetime = field(default_factory=datetime.utcnow)


@dataclass
class AIResult:
    """Quality assessment where the AI model supplied the narrative."""
    score: PackageScore
    reasoning: str
    strengths: List[str] = field(default_factory=list)
    weaknesses: List[str] = field(default_factory=list)

    ai_enhanced = True

    @property
    def value_score(self) -> int:
        return self.score.value_score


@dataclass
class FormulaResult:
    """Quality assessment computed from the deterministic formula only."""
    score: PackageScore
    reasoning: str
    strengths: List[str] = field(default_factory=list)
    weaknesses: List[str] = field(default_factory=list)
    fallback_reason: Optional[str] = None   # why AI was not used, if it was requested

    ai_enhanced = False

    @property
    def value_score(self) -> int:
        return self.score.value_score


QualityAssessment = Union[AIResult, FormulaResult]


@dataclass
class PackageComparison:
    assessments: List[QualityAssessment]
    best_package_id: int
    comparison_summary: str
    recommendation: str


@dataclass
class CompositeScore:
    final_score: int
    price_score: int
    quality_score: int
    provider_score: int
    breakdown: Dict[str, int]
    quality: Optional[QualityAssessment] = None
    reasoning: Optional[str] = None

    @property
    def ai_enhanced(self) -> bool:
        return isinstance(self.quality, AIResult)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "finalScore": self.final_score,
            "priceScore": self.price_score,
            "qualityScore": self.quality_score,
            "providerScore": self.provider_score,
            "breakdown": dict(self.breakdown),
            "reasoning": self.reasoning,
            "aiEnhanced": self.ai_enhanced,
        }


@dataclass
class PackageWithScore:
    package: PackageData
    score: CompositeScore

    def to_dict(self) -> Dict[str, Any]:
        d = self.package.to_dict()
        d["compositeScore"] = self.score.to_dict()
        return d


# ---------------------------------------------------------------------------
# Similarity
# ---------------------------------------------------------------------------

@dataclass
class SimilarityGroup:
    group_id: str
    group_label: str
    packages: List[PackageData]
    similarity: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "groupId": self.group_id,
            "groupLabel": self.group_label,
            "similarity": self.similarity,
            "packages": [p.to_dict() for p in self.packages],
        }


@dataclass
class AlternativePackage:
    package: PackageData
    similarity: int
    difference_description: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "package": self.package.to_dict(),
            "similarity": self.similarity,
            "differenceDescription": self.difference_description,
        }


# ---------------------------------------------------------------------------
# Run results (returned verbatim by admin endpoints)
# ---------------------------------------------------------------------------

@dataclass
class SyncResult:
    success: bool
    packages_synced: int = 0
    packages_updated: int = 0
    packages_removed: int = 0
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "packagesSynced": self.packages_synced,
            "packagesUpdated": self.packages_updated,
            "packagesRemoved": self.packages_removed,
            "errors": list(self.errors),
        }


@dataclass
class SyncAllResult:
    success: bool
    total_synced: int = 0
    total_updated: int = 0
    total_removed: int = 0
    errors: List[str] = field(default_factory=list)
    providers: Dict[str, SyncResult] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "totalSynced": self.total_synced,
            "totalUpdated": self.total_updated,
            "totalRemoved": self.total_removed,
            "errors": list(self.errors),
            "providers": {k: v.to_dict() for k, v in self.providers.items()},
        }


@dataclass
class PriceComparisonResult:
    total_packages: int = 0
    best_price_packages: int = 0
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "totalPackages": self.total_packages,
            "bestPricePackages": self.best_price_packages,
            "errors": list(self.errors),
        }


@dataclass
class PriceStatistics:
    total_packages: int
    best_price_packages: int
    packages_by_provider: Dict[str, int]
    best_price_by_provider: Dict[str, int]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "totalPackages": self.total_packages,
            "bestPricePackages": self.best_price_packages,
            "packagesByProvider": dict(self.packages_by_provider),
            "bestPriceByProvider": dict(self.best_price_by_provider),
        }


@dataclass
class AIDecision:
    group_key: str
    selected_package_id: int
    selected_provider_name: str
    score: int
    reasoning: Optional[str]
    alternatives: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "groupKey": self.group_key,
            "selectedPackageId": self.selected_package_id,
            "selectedProviderName": self.selected_provider_name,
            "score": self.score,
            "reasoning": self.reasoning,
            "alternatives": list(self.alternatives),
        }


@dataclass
class AutoSelectionResult:
    success: bool
    mode: str
    total_groups: int = 0
    packages_enabled: int = 0
    packages_disabled: int = 0
    errors: List[str] = field(default_factory=list)
    ai_enabled: bool = False
    ai_decisions: List[AIDecision] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "mode": self.mode,
            "totalGroups": self.total_groups,
            "packagesEnabled": self.packages_enabled,
            "packagesDisabled": self.packages_disabled,
            "errors": list(self.errors),
            "aiEnabled": self.ai_enabled,
            "aiDecisions": [d.to_dict() for d in self.ai_decisions],
        }


@dataclass
class SelectionStatistics:
    mode: str
    total_packages: int
    enabled_packages: int
    disabled_packages: int
    manual_overrides: int
    best_price_packages: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "mode": self.mode,
            "totalPackages": self.total_packages,
            "enabledPackages": self.enabled_packages,
            "disabledPackages": self.disabled_packages,
            "manualOverrides": self.manual_overrides,
            "bestPricePackages": self.best_price_packages,
        }


# ---------------------------------------------------------------------------
# Scheduler
# ---------------------------------------------------------------------------

@dataclass
class SyncJob:
    provider_id: int
    provider_name: str
    sync_interval_minutes: int
    last_sync_at: Optional[datetime]
    next_sync_due: datetime
    is_running: bool = False
    last_error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "providerId": self.provider_id,
            "providerName": self.provider_name,
            "syncIntervalMinutes": self.sync_interval_minutes,
            "lastSyncAt": self.last_sync_at.isoformat() if self.last_sync_at else None,
            "nextSyncDue": self.next_sync_due.isoformat(),
            "isRunning": self.is_running,
            "lastError": self.last_error,
        }
