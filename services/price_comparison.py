"""
Price Comparison Engine
-----------------------
Groups catalog rows by their normalized comparison key and flags the
cheapest row of every group with `is_best_price`. Ties keep the row that
sorts first by id, so identical input always yields the same winner.
"""

import logging
from collections import defaultdict
from typing import Dict, List, Optional

from sqlalchemy.orm import Session, joinedload

from db.models import UnifiedPackage
from models.schemas import NormalizedPackageData, PriceComparisonResult, PriceStatistics
from services.normalizer import create_comparison_key

logger = logging.getLogger(__name__)


def row_comparison_key(row: UnifiedPackage) -> str:
    """Comparison key from the normalized fields stored on a catalog row."""
    normalized = NormalizedPackageData(
        data_mb=row.data_mb,
        validity_days=row.validity_days if row.validity_days is not None else row.validity,
        voice_minutes=row.voice_minutes or 0,
        sms_count=row.sms_count or 0,
    )
    return create_comparison_key(row.destination_id, row.region_id, normalized)


def _price(row: UnifiedPackage) -> float:
    try:
        return float(row.retail_price)
    except (TypeError, ValueError):
        return float("inf")


def flag_best_prices(rows: List[UnifiedPackage]) -> int:
    """Reset and re-flag `is_best_price` over `rows`; returns the number flagged."""
    groups: Dict[str, List[UnifiedPackage]] = defaultdict(list)
    for row in sorted(rows, key=lambda r: r.id):
        row.is_best_price = False
        groups[row_comparison_key(row)].append(row)

    for members in groups.values():
        members.sort(key=_price)
        members[0].is_best_price = True

    return len(groups)


class PriceComparisonEngine:
    def __init__(self, session: Session):
        self.session = session

    def run_price_comparison(self) -> PriceComparisonResult:
        result = PriceComparisonResult()
        try:
            rows = self.session.query(UnifiedPackage).all()
            result.total_packages = len(rows)
            result.best_price_packages = flag_best_prices(rows)
            self.session.commit()
            logger.info(
                f"Price comparison: {result.best_price_packages} best-price packages "
                f"across {result.total_packages} catalog rows"
            )
        except Exception as e:
            self.session.rollback()
            logger.error(f"Price comparison failed: {e}")
            result.errors.append(str(e))
        return result

    def run_price_comparison_for_destination(
        self,
        destination_id: Optional[int] = None,
        region_id: Optional[int] = None,
    ) -> PriceComparisonResult:
        """
        Re-flag best prices for one destination (or region) only.
        Uses the same normalized comparison key as the full run.
        """
        result = PriceComparisonResult()
        if destination_id is None and region_id is None:
            result.errors.append("Either destination_id or region_id is required")
            return result
        try:
            query = self.session.query(UnifiedPackage)
            if destination_id is not None:
                query = query.filter(UnifiedPackage.destination_id == destination_id)
            else:
                query = query.filter(UnifiedPackage.region_id == region_id)
            rows = query.all()
            result.total_packages = len(rows)
            result.best_price_packages = flag_best_prices(rows)
            self.session.commit()
        except Exception as e:
            self.session.rollback()
            logger.error(f"Price comparison for destination failed: {e}")
            result.errors.append(str(e))
        return result

    def get_statistics(self) -> PriceStatistics:
        rows = (
            self.session.query(UnifiedPackage)
            .options(joinedload(UnifiedPackage.provider))
            .all()
        )
        by_provider: Dict[str, int] = defaultdict(int)
        best_by_provider: Dict[str, int] = defaultdict(int)
        for row in rows:
            name = row.provider.name if row.provider else str(row.provider_id)
            by_provider[name] += 1
            if row.is_best_price:
                best_by_provider[name] += 1
        return PriceStatistics(
            total_packages=len(rows),
            best_price_packages=sum(best_by_provider.values()),
            packages_by_provider=dict(by_provider),
            best_price_by_provider=dict(best_by_provider),
        )
