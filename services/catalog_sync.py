"""
Unified Catalog Sync
--------------------
Copies every provider-specific package row into `unified_packages`:

  retail = wholesale * (1 + margin / 100)      (2 decimals, half-up)

Each row is normalized (MB / days / minutes / SMS), local packages get a
country and a cross-provider group key, and the row is upserted by
(provider_package_table, provider_package_id). Catalog rows whose source
row disappeared are deleted afterwards.

Bad rows (missing or invalid wholesale price, unparseable data amount)
are skipped and reported in `errors`; they never fail the whole sync.
"""

import logging
from datetime import datetime
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Dict, Optional, Set

from sqlalchemy.orm import Session

from db.models import Destination, Provider, UnifiedPackage
from models.schemas import SyncAllResult, SyncResult
from services.country_codes import generate_package_group_key
from services.normalizer import describes_unlimited, normalize_package_data
from services.providers import ProviderStrategy, get_strategy

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")


def compute_retail_price(wholesale: Decimal, margin_percent: Decimal) -> str:
    """Wholesale inflated by the margin percentage, as a 2-decimal string."""
    retail = wholesale * (Decimal(1) + margin_percent / Decimal(100))
    return str(retail.quantize(CENTS, rounding=ROUND_HALF_UP))


def parse_margin(raw: Optional[str]) -> Decimal:
    try:
        margin = Decimal(str(raw).strip()) if raw not in (None, "") else Decimal(0)
    except InvalidOperation:
        logger.warning(f"Invalid pricing margin {raw!r}, using 0")
        return Decimal(0)
    return margin if margin.is_finite() else Decimal(0)


class CatalogSync:
    """Syncs provider package tables into the unified catalog."""

    def __init__(self, session: Session):
        self.session = session

    # ── Public API ────────────────────────────────────────────────────────

    def sync_provider_packages(self, provider_slug: str) -> SyncResult:
        result = SyncResult(success=True)
        try:
            provider = (
                self.session.query(Provider).filter(Provider.slug == provider_slug).first()
            )
            if provider is None:
                raise ValueError(f"Provider not found: {provider_slug}")
            strategy = get_strategy(provider_slug)

            margin = parse_margin(provider.pricing_margin)
            destinations = self._destination_map()
            rows = self.session.query(strategy.package_model).all()

            logger.info(
                f"[{provider_slug}] Syncing {len(rows)} packages "
                f"(margin {margin}%) into unified catalog"
            )

            current_ids: Set[str] = set()
            for row in rows:
                current_ids.add(strategy.provider_package_id(row))
                outcome = self._sync_row(provider, strategy, margin, destinations, row, result)
                if outcome == "inserted":
                    result.packages_synced += 1
                elif outcome == "updated":
                    result.packages_updated += 1

            result.packages_removed = self._remove_orphans(provider, strategy, current_ids)
            self.session.commit()

            logger.info(
                f"[{provider_slug}] Sync complete: {result.packages_synced} new, "
                f"{result.packages_updated} updated, {result.packages_removed} removed, "
                f"{len(result.errors)} errors"
            )
        except Exception as e:
            self.session.rollback()
            logger.error(f"[{provider_slug}] Unified sync failed: {e}")
            result.success = False
            result.errors.append(str(e))
        return result

    def sync_all_providers(self) -> SyncAllResult:
        """Sync every enabled provider in turn; one failure does not stop the rest."""
        total = SyncAllResult(success=True)
        providers = (
            self.session.query(Provider)
            .filter(Provider.enabled.is_(True))
            .order_by(Provider.failover_priority, Provider.id)
            .all()
        )
        slugs = [p.slug for p in providers]

        for slug in slugs:
            res = self.sync_provider_packages(slug)
            total.providers[slug] = res
            total.total_synced += res.packages_synced
            total.total_updated += res.packages_updated
            total.total_removed += res.packages_removed
            total.errors.extend(
                e if e.startswith(f"[{slug}]") else f"[{slug}] {e}" for e in res.errors
            )

        total.success = not total.errors
        logger.info(
            f"All providers synced: {total.total_synced} new, {total.total_updated} updated, "
            f"{total.total_removed} removed, {len(total.errors)} errors"
        )
        return total

    # ── Internals ─────────────────────────────────────────────────────────

    def _destination_map(self) -> Dict[str, int]:
        rows = (
            self.session.query(Destination.country_code, Destination.id)
            .filter(Destination.country_code.isnot(None))
            .all()
        )
        return {code.upper(): dest_id for code, dest_id in rows}

    def _sync_row(
        self,
        provider: Provider,
        strategy: ProviderStrategy,
        margin: Decimal,
        destinations: Dict[str, int],
        row: Any,
        result: SyncResult,
    ) -> Optional[str]:
        slug = strategy.slug
        raw_price = strategy.wholesale_price(row)
        if raw_price is None:
            self._skip(result, f"[{slug}] Package {row.id} skipped: Missing wholesale price")
            return None

        try:
            wholesale = Decimal(raw_price)
        except InvalidOperation:
            wholesale = None
        if wholesale is None or not wholesale.is_finite() or wholesale < 0:
            self._skip(
                result,
                f"[{slug}] Package {row.id} skipped: Invalid wholesale price \"{raw_price}\"",
            )
            return None

        normalized = normalize_package_data(row)
        if (
            normalized.data_mb is None
            and not row.is_unlimited
            and not describes_unlimited(row.data_amount)
        ):
            self._skip(
                result,
                f"[{slug}] Package {row.id} skipped: Unparseable data amount \"{row.data_amount}\"",
            )
            return None

        country_code = country_name = None
        if row.type == "local":
            match = strategy.resolve_country(row)
            country_code, country_name = match.code, match.name

        destination_id = (destinations.get(country_code) if country_code else None) or row.destination_id
        group_key = (
            generate_package_group_key(country_code, normalized.data_mb, normalized.validity_days)
            if country_code
            else None
        )

        fields = {
            "provider_id": provider.id,
            "destination_id": destination_id,
            "region_id": row.region_id,
            "slug": row.slug,
            "title": row.title,
            "data_amount": row.data_amount,
            "validity": row.validity,
            "type": row.type,
            "wholesale_price": raw_price,
            "retail_price": compute_retail_price(wholesale, margin),
            "currency": row.currency or "USD",
            "operator": row.operator,
            "operator_image": row.operator_image,
            "coverage": list(row.coverage) if row.coverage else None,
            "voice_credits": row.voice_credits,
            "sms_credits": row.sms_credits,
            "is_unlimited": bool(row.is_unlimited),
            "data_mb": normalized.data_mb,
            "validity_days": normalized.validity_days,
            "voice_minutes": normalized.voice_minutes,
            "sms_count": normalized.sms_count,
            "country_code": country_code,
            "country_name": country_name,
            "package_group_key": group_key,
            "updated_at": datetime.utcnow(),
        }

        provider_package_id = strategy.provider_package_id(row)
        existing = (
            self.session.query(UnifiedPackage)
            .filter(
                UnifiedPackage.provider_package_table == strategy.table_name,
                UnifiedPackage.provider_package_id == provider_package_id,
            )
            .first()
        )
        if existing is not None:
            for name, value in fields.items():
                setattr(existing, name, value)
            return "updated"

        self.session.add(
            UnifiedPackage(
                provider_package_table=strategy.table_name,
                provider_package_id=provider_package_id,
                **fields,
            )
        )
        self.session.flush()
        return "inserted"

    def _remove_orphans(
        self, provider: Provider, strategy: ProviderStrategy, current_ids: Set[str]
    ) -> int:
        rows = (
            self.session.query(UnifiedPackage)
            .filter(
                UnifiedPackage.provider_id == provider.id,
                UnifiedPackage.provider_package_table == strategy.table_name,
            )
            .all()
        )
        removed = 0
        for row in rows:
            if row.provider_package_id not in current_ids:
                self.session.delete(row)
                removed += 1
        if removed:
            logger.info(f"[{strategy.slug}] Removed {removed} orphaned catalog rows")
        return removed

    @staticmethod
    def _skip(result: SyncResult, message: str) -> None:
        logger.warning(message)
        result.errors.append(message)
