"""
Key-value platform settings read by the selection pipeline.
"""

import logging
from typing import Dict, Optional, Tuple

from sqlalchemy.orm import Session

from config.settings import settings
from db.models import PlatformSetting

logger = logging.getLogger(__name__)

PACKAGE_SELECTION_MODE = "package_selection_mode"
PREFERRED_PROVIDER_ID = "preferred_provider_id"
AI_SELECTION_ENABLED = "ai_selection_enabled"
AI_PRICE_WEIGHT = "ai_price_weight"
AI_QUALITY_WEIGHT = "ai_quality_weight"
AI_PROVIDER_WEIGHT = "ai_provider_weight"

# key -> (value, category, description)
DEFAULT_SETTINGS: Dict[str, Tuple[str, str, str]] = {
    PACKAGE_SELECTION_MODE: ("auto", "packages", "auto or manual"),
    AI_SELECTION_ENABLED: ("false", "ai", "Rank package groups by composite score"),
    AI_PRICE_WEIGHT: (str(settings.DEFAULT_PRICE_WEIGHT), "ai", "Price weight, 0-100"),
    AI_QUALITY_WEIGHT: (str(settings.DEFAULT_QUALITY_WEIGHT), "ai", "Quality weight, 0-100"),
    AI_PROVIDER_WEIGHT: (str(settings.DEFAULT_PROVIDER_WEIGHT), "ai", "Provider weight, 0-100"),
}


class SettingsStore:
    def __init__(self, session: Session):
        self.session = session

    def get(self, key: str, default: Optional[str] = None) -> Optional[str]:
        row = self.session.query(PlatformSetting).filter(PlatformSetting.key == key).first()
        return row.value if row is not None else default

    def get_int(self, key: str) -> Optional[int]:
        value = self.get(key)
        if value is None:
            return None
        try:
            return int(value.strip())
        except ValueError:
            logger.warning(f"Setting {key}={value!r} is not an integer")
            return None

    def set(self, key: str, value: str, category: str = "general", description: Optional[str] = None) -> None:
        """Admin-side writer; the pipeline itself never calls this."""
        row = self.session.query(PlatformSetting).filter(PlatformSetting.key == key).first()
        if row is None:
            row = PlatformSetting(key=key, category=category, description=description)
            self.session.add(row)
        row.value = value
        self.session.commit()

    def selection_mode(self) -> str:
        return (self.get(PACKAGE_SELECTION_MODE, "auto") or "auto").strip().lower()

    def ensure_defaults(self) -> int:
        """Insert any missing default setting. Existing values are left alone."""
        existing = {key for (key,) in self.session.query(PlatformSetting.key).all()}
        added = 0
        for key, (value, category, description) in DEFAULT_SETTINGS.items():
            if key in existing:
                continue
            self.session.add(PlatformSetting(key=key, value=value, category=category, description=description))
            added += 1
        if added:
            self.session.commit()
            logger.info(f"Seeded {added} default platform settings")
        return added
