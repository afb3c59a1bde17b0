"""
Auto-Selector
-------------
Decides which catalog rows customers see (`is_enabled`).

  manual mode  -> nothing changes
  auto mode    -> price-only:  is_enabled := is_best_price
                  composite:   per package group the top composite score
                               wins (is_enabled = is_best_price = True),
                               everyone else in the group is switched off

The composite path runs only when `ai_selection_enabled` is "true" and the
AI client is configured. If scoring a group fails, the cheapest member
wins instead.

Rows with `manual_override` are never touched by a selection run. After
the main pass, groups left with neither an enabled nor a best-price row
fall back to the preferred provider's package, if it has one.
"""

import logging
from collections import defaultdict
from datetime import datetime
from typing import Callable, Dict, List, Optional, Tuple

from sqlalchemy.orm import Session, joinedload

from db.models import Provider, UnifiedPackage
from models.schemas import (
    AIDecision,
    AutoSelectionResult,
    PackageData,
    SelectionStatistics,
)
from services.ai_client import AIClient
from services.composite_scorer import CompositeScorer
from services.country_codes import is_groupable_key
from services.price_comparison import row_comparison_key
from services.settings_store import (
    AI_SELECTION_ENABLED,
    PREFERRED_PROVIDER_ID,
    SettingsStore,
)

logger = logging.getLogger(__name__)

MANUAL_MODE = "manual"
AUTO_MODE = "auto"
MAX_DECISION_ALTERNATIVES = 3


def _price(row: UnifiedPackage) -> float:
    try:
        return float(row.retail_price)
    except (TypeError, ValueError):
        return float("inf")


def cheapest_first(rows: List[UnifiedPackage]) -> List[UnifiedPackage]:
    return sorted(rows, key=lambda r: (_price(r), r.id))


class AutoSelector:
    def __init__(
        self,
        session: Session,
        ai_client: Optional[AIClient] = None,
        scorer: Optional[CompositeScorer] = None,
        settings_store: Optional[SettingsStore] = None,
    ):
        self.session = session
        self.settings_store = settings_store or SettingsStore(session)
        self.ai = ai_client
        self.scorer = scorer or CompositeScorer(settings_store=self.settings_store)
        if self.scorer.analyzer.ai is None:
            self.scorer.analyzer.ai = ai_client

    # ── Mode ──────────────────────────────────────────────────────────────

    def get_mode(self) -> str:
        return self.settings_store.selection_mode()

    def is_ai_enabled(self) -> bool:
        flag = (self.settings_store.get(AI_SELECTION_ENABLED, "false") or "").strip().lower()
        return flag == "true" and self.ai is not None and self.ai.is_ready()

    # ── Selection run ─────────────────────────────────────────────────────

    def run_auto_selection(self) -> AutoSelectionResult:
        try:
            mode = self.get_mode()
            if mode == MANUAL_MODE:
                logger.info("Package selection mode is 'manual', skipping auto-selection")
                return AutoSelectionResult(
                    success=True,
                    mode=mode,
                    errors=["Auto-selection skipped: mode is 'manual'"],
                )

            result = AutoSelectionResult(success=True, mode=mode, ai_enabled=self.is_ai_enabled())
            rows = self._load_rows()

            if result.ai_enabled:
                logger.info("Running composite (AI-assisted) selection")
                self._composite_pass(rows, result)
            else:
                logger.info("Running price-only selection")
                self._price_only_pass(rows, result)
                result.total_groups = len({row_comparison_key(r) for r in rows})

            self._preferred_provider_fallback(rows, result)
            self.session.commit()

            logger.info(
                f"Auto-selection complete: {result.packages_enabled} enabled, "
                f"{result.packages_disabled} disabled, {len(result.ai_decisions)} AI decisions"
            )
            return result
        except Exception as e:
            self.session.rollback()
            logger.error(f"Auto-selection failed: {e}")
            return AutoSelectionResult(success=False, mode="unknown", errors=[str(e)])

    def _load_rows(self) -> List[UnifiedPackage]:
        return (
            self.session.query(UnifiedPackage)
            .join(Provider, UnifiedPackage.provider_id == Provider.id)
            .filter(Provider.enabled.is_(True))
            .options(
                joinedload(UnifiedPackage.provider),
                joinedload(UnifiedPackage.destination),
                joinedload(UnifiedPackage.region),
            )
            .order_by(UnifiedPackage.id)
            .all()
        )

    def _apply(self, row: UnifiedPackage, enabled: bool, result: AutoSelectionResult,
               best: Optional[bool] = None) -> None:
        if row.manual_override:
            return
        changed = False
        if row.is_enabled != enabled:
            if enabled:
                result.packages_enabled += 1
            else:
                result.packages_disabled += 1
            row.is_enabled = enabled
            changed = True
        if best is not None and row.is_best_price != best:
            row.is_best_price = best
            changed = True
        if changed:
            row.updated_at = datetime.utcnow()

    @staticmethod
    def _stand_in(members: List[UnifiedPackage], winner: UnifiedPackage) -> UnifiedPackage:
        """A winner pinned off hands its slot to the cheapest member without an override."""
        if not winner.manual_override or winner.is_enabled:
            return winner
        return next((r for r in cheapest_first(members) if not r.manual_override), winner)

    def _price_only_pass(self, rows: List[UnifiedPackage], result: AutoSelectionResult) -> None:
        groups: Dict[str, List[UnifiedPackage]] = defaultdict(list)
        for row in rows:
            groups[row_comparison_key(row)].append(row)

        for members in groups.values():
            winner = next((r for r in members if r.is_best_price), None)
            chosen = self._stand_in(members, winner) if winner is not None else None
            for row in members:
                self._apply(row, chosen is not None and row.id == chosen.id, result)

    def _composite_pass(self, rows: List[UnifiedPackage], result: AutoSelectionResult) -> None:
        groups: Dict[str, List[UnifiedPackage]] = defaultdict(list)
        ungrouped: List[UnifiedPackage] = []
        for row in rows:
            if is_groupable_key(row.package_group_key):
                groups[row.package_group_key].append(row)
            else:
                ungrouped.append(row)

        result.total_groups = len(groups)

        for group_key, members in groups.items():
            members = cheapest_first(members)
            winner = members[0]

            if len(members) > 1:
                try:
                    decision, winner = self._score_group(group_key, members)
                    result.ai_decisions.append(decision)
                except Exception as e:
                    logger.warning(f"AI scoring failed for group {group_key}, falling back to price: {e}")
                    result.errors.append(f"AI failed for {group_key}: {e}")
                    winner = members[0]

            winner = self._stand_in(members, winner)
            for row in members:
                is_best = row.id == winner.id
                self._apply(row, is_best, result, best=is_best)

        # rows that cannot be grouped across providers keep the price rule
        self._price_only_pass(ungrouped, result)

    def _score_group(self, group_key: str, members: List[UnifiedPackage]) -> Tuple[AIDecision, UnifiedPackage]:
        candidates = [PackageData.from_row(r) for r in members]
        scored = self.scorer.score_packages(candidates, use_ai=True)
        best = scored[0]
        winner = next(r for r in members if r.id == best.package.id)
        decision = AIDecision(
            group_key=group_key,
            selected_package_id=best.package.id,
            selected_provider_name=best.package.provider_name,
            score=best.score.final_score,
            reasoning=best.score.reasoning,
            alternatives=[
                {
                    "packageId": s.package.id,
                    "providerName": s.package.provider_name,
                    "score": s.score.final_score,
                    "price": s.package.retail_price,
                }
                for s in scored[1:1 + MAX_DECISION_ALTERNATIVES]
            ],
        )
        return decision, winner

    # ── Preferred provider fallback ───────────────────────────────────────

    def _preferred_provider(self) -> Optional[Provider]:
        raw = self.settings_store.get(PREFERRED_PROVIDER_ID)
        if raw:
            try:
                provider_id = int(raw.strip())
            except ValueError:
                logger.warning(f"Preferred provider id {raw!r} is not valid")
                return None
            provider = self.session.get(Provider, provider_id)
            if provider is None:
                logger.warning(f"Preferred provider {provider_id} not found")
            return provider
        return (
            self.session.query(Provider)
            .filter(Provider.is_preferred.is_(True), Provider.enabled.is_(True))
            .order_by(Provider.failover_priority, Provider.id)
            .first()
        )

    def _preferred_provider_fallback(self, rows: List[UnifiedPackage], result: AutoSelectionResult) -> None:
        provider = self._preferred_provider()
        if provider is None:
            return

        key_fn: Callable[[UnifiedPackage], str] = (
            (lambda r: r.package_group_key) if result.ai_enabled else row_comparison_key
        )
        groups: Dict[str, List[UnifiedPackage]] = defaultdict(list)
        for row in rows:
            key = key_fn(row)
            if key:
                groups[key].append(row)

        rescued = 0
        for members in groups.values():
            if any(r.is_enabled or r.is_best_price for r in members):
                continue
            preferred = next(
                (r for r in cheapest_first(members)
                 if r.provider_id == provider.id and not r.manual_override),
                None,
            )
            if preferred is not None:
                self._apply(preferred, True, result)
                rescued += 1
        if rescued:
            logger.info(f"Preferred provider {provider.name} filled {rescued} empty groups")

    # ── Admin actions ─────────────────────────────────────────────────────

    def toggle_package(self, package_id: int, enabled: bool) -> bool:
        """Pin a package on or off; selection runs leave it alone until cleared."""
        row = self.session.get(UnifiedPackage, package_id)
        if row is None:
            return False
        row.is_enabled = enabled
        row.manual_override = True
        row.updated_at = datetime.utcnow()
        self.session.commit()
        return True

    def clear_manual_override(self, package_id: int) -> bool:
        """Release the pin and immediately re-apply the current mode's default."""
        row = self.session.get(UnifiedPackage, package_id)
        if row is None:
            return False
        row.manual_override = False
        if self.get_mode() == AUTO_MODE:
            row.is_enabled = bool(row.is_best_price)
        row.updated_at = datetime.utcnow()
        self.session.commit()
        return True

    def enable_all_packages(self) -> Dict[str, object]:
        """Marketplace mode: every catalog row becomes visible."""
        try:
            now = datetime.utcnow()
            for row in self.session.query(UnifiedPackage).filter(UnifiedPackage.is_enabled.is_(False)):
                row.is_enabled = True
                row.updated_at = now
            self.session.commit()
            count = self.session.query(UnifiedPackage).filter(UnifiedPackage.is_enabled.is_(True)).count()
            return {"success": True, "packagesEnabled": count}
        except Exception as e:
            self.session.rollback()
            logger.error(f"Failed to enable all packages: {e}")
            return {"success": False, "packagesEnabled": 0}

    def disable_all_packages(self) -> Dict[str, object]:
        """Switch off every non-pinned row (and clear its best-price flag)."""
        try:
            now = datetime.utcnow()
            rows = (
                self.session.query(UnifiedPackage)
                .filter(UnifiedPackage.is_enabled.is_(True), UnifiedPackage.manual_override.is_(False))
                .all()
            )
            for row in rows:
                row.is_enabled = False
                row.is_best_price = False
                row.updated_at = now
            self.session.commit()
            return {"success": True, "packagesDisabled": len(rows)}
        except Exception as e:
            self.session.rollback()
            logger.error(f"Failed to disable packages: {e}")
            return {"success": False, "packagesDisabled": 0}

    # ── Reads ─────────────────────────────────────────────────────────────

    def get_statistics(self) -> SelectionStatistics:
        try:
            mode = self.get_mode()
            query = self.session.query(UnifiedPackage)
            total = query.count()
            enabled = query.filter(UnifiedPackage.is_enabled.is_(True)).count()
            return SelectionStatistics(
                mode=mode,
                total_packages=total,
                enabled_packages=enabled,
                disabled_packages=total - enabled,
                manual_overrides=query.filter(UnifiedPackage.manual_override.is_(True)).count(),
                best_price_packages=query.filter(UnifiedPackage.is_best_price.is_(True)).count(),
            )
        except Exception as e:
            logger.error(f"Failed to read selection statistics: {e}")
            return SelectionStatistics("unknown", 0, 0, 0, 0, 0)

    def get_grouped_packages(self, destination_id: Optional[int] = None) -> Dict[str, List[PackageData]]:
        """All provider options per package group, cheapest first (marketplace mode)."""
        query = (
            self.session.query(UnifiedPackage)
            .join(Provider, UnifiedPackage.provider_id == Provider.id)
            .filter(Provider.enabled.is_(True), UnifiedPackage.package_group_key.isnot(None))
            .options(
                joinedload(UnifiedPackage.provider),
                joinedload(UnifiedPackage.destination),
                joinedload(UnifiedPackage.region),
            )
        )
        if destination_id is not None:
            query = query.filter(UnifiedPackage.destination_id == destination_id)

        groups: Dict[str, List[UnifiedPackage]] = defaultdict(list)
        for row in query.order_by(UnifiedPackage.id).all():
            groups[row.package_group_key].append(row)
        return {
            key: [PackageData.from_row(r) for r in cheapest_first(members)]
            for key, members in groups.items()
        }
