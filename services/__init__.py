from .base import Stage, StageResult, Orchestrator
from .errors import (
    CatalogError, UnknownProviderError, ProviderNotFoundError,
    SyncInProgressError, AIServiceError,
)
from .ai_client import AIClient
from .catalog_sync import CatalogSync
from .price_comparison import PriceComparisonEngine
from .package_analyzer import PackageAnalyzer
from .composite_scorer import CompositeScorer
from .similarity import SimilarityEngine
from .auto_selector import AutoSelector
from .settings_store import SettingsStore

__all__ = [
    "Stage", "StageResult", "Orchestrator",
    "CatalogError", "UnknownProviderError", "ProviderNotFoundError",
    "SyncInProgressError", "AIServiceError",
    "AIClient", "CatalogSync", "PriceComparisonEngine", "PackageAnalyzer",
    "CompositeScorer", "SimilarityEngine", "AutoSelector", "SettingsStore",
]
