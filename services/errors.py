"""
Exception types raised across the catalog services.
"""


class CatalogError(Exception):
    """Base class for catalog pipeline errors."""


class UnknownProviderError(CatalogError):
    """No strategy is registered for a provider slug."""

    def __init__(self, slug: str):
        super().__init__(f"Unknown provider: {slug}")
        self.slug = slug


class ProviderNotFoundError(CatalogError):
    """The provider row does not exist (or is not scheduled)."""


class SyncInProgressError(CatalogError):
    """A sync for this provider is already running."""


class AIServiceError(CatalogError):
    """The AI service failed or returned an unusable answer."""
