"""
Provider strategy table.

Everything that differs between upstream providers lives here: which ORM
model holds its packages, which column carries the wholesale cost, which
column identifies a package, and how a country is read from slug/coverage.
Adding a provider means adding one entry to PROVIDER_STRATEGIES.
"""

from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Sequence, Tuple

from db.models import AiraloPackage, EsimAccessPackage, EsimGoPackage, MayaPackage
from models.schemas import CountryMatch
from services.country_codes import (
    extract_from_airalo_slug,
    extract_from_esim_access_package,
    extract_from_esim_go_package,
    extract_from_maya_package,
)
from services.errors import UnknownProviderError

CountryExtractor = Callable[[str, Optional[Sequence[str]]], CountryMatch]


@dataclass(frozen=True)
class ProviderStrategy:
    slug: str
    package_model: Any
    cost_fields: Tuple[str, ...]     # tried in order, first non-empty wins
    identity_field: str
    extract_country: CountryExtractor

    @property
    def table_name(self) -> str:
        return self.package_model.__tablename__

    def wholesale_price(self, row: Any) -> Optional[str]:
        """Raw wholesale price string, or None if every cost field is empty."""
        for name in self.cost_fields:
            value = getattr(row, name, None)
            if value is None:
                continue
            text = str(value).strip()
            if text:
                return text
        return None

    def provider_package_id(self, row: Any) -> str:
        return str(getattr(row, self.identity_field))

    def resolve_country(self, row: Any) -> CountryMatch:
        return self.extract_country(row.slug or "", row.coverage)


PROVIDER_STRATEGIES: Dict[str, ProviderStrategy] = {
    "airalo": ProviderStrategy(
        slug="airalo",
        package_model=AiraloPackage,
        cost_fields=("airalo_price", "price"),
        identity_field="id",
        extract_country=extract_from_airalo_slug,
    ),
    "esim-access": ProviderStrategy(
        slug="esim-access",
        package_model=EsimAccessPackage,
        cost_fields=("wholesale_price",),
        identity_field="id",
        extract_country=extract_from_esim_access_package,
    ),
    "esim-go": ProviderStrategy(
        slug="esim-go",
        package_model=EsimGoPackage,
        cost_fields=("wholesale_price",),
        identity_field="id",
        extract_country=extract_from_esim_go_package,
    ),
    "maya": ProviderStrategy(
        slug="maya",
        package_model=MayaPackage,
        cost_fields=("wholesale_price",),
        identity_field="maya_id",
        extract_country=extract_from_maya_package,
    ),
}


def get_strategy(slug: str) -> ProviderStrategy:
    try:
        return PROVIDER_STRATEGIES[slug]
    except KeyError:
        raise UnknownProviderError(slug) from None
