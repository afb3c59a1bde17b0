"""
Package Normalizer
------------------
Converts the free-text fields of provider packages into comparable units:

  data amount  ->  MB (None = unlimited)
  validity     ->  days (providers already report days)
  voice / SMS  ->  minutes / count (missing = 0)

Also builds the exact comparison key used by the price comparison engine:

  "{dest_X|region_Y}:{N}mb|unlimited:{D}d[v{voice}][s{sms}]"
"""

import math
import re
import logging
from typing import Any, Optional

from config.settings import settings
from models.schemas import NormalizedPackageData

logger = logging.getLogger(__name__)

_GB_RE = re.compile(r"^(\d+\.?\d*)GB$")
_MB_RE = re.compile(r"^(\d+\.?\d*)MB$")
_NUMBER_RE = re.compile(r"(\d+\.?\d*)")

# Bare numbers above this are read as MB, at or below as GB.
BARE_NUMBER_MB_THRESHOLD = 100


def round_half_up(value: float) -> int:
    """Round .5 away from zero for positive values (0.5 -> 1, 2.5 -> 3)."""
    return int(math.floor(value + 0.5))


# ─── Field Parsers ───────────────────────────────────────────────────────────


def describes_unlimited(raw: Optional[str]) -> bool:
    if not raw:
        return False
    return "UNLIM" in raw.strip().upper()


def parse_data_amount(raw: Optional[str]) -> Optional[int]:
    """
    Parse a provider data string into MB.

    "1GB" -> 1024, "500 MB" -> 500, "1.5GB" -> 1536, "Unlimited" -> None.
    Strings without a unit fall back to the first number: > 100 is MB,
    otherwise GB ("3" -> 3072, "500" -> 500). Any string containing
    "UNLIM" is unlimited, whatever else it says.
    Returns None (and logs) when nothing can be parsed.
    """
    if not raw:
        return None

    normalized = raw.strip().upper()
    if "UNLIMITED" in normalized or "UNLIM" in normalized:
        return None

    compact = re.sub(r"\s+", "", normalized)

    m = _GB_RE.match(compact)
    if m:
        return round_half_up(float(m.group(1)) * 1024)

    m = _MB_RE.match(compact)
    if m:
        return round_half_up(float(m.group(1)))

    m = _NUMBER_RE.search(compact)
    if m:
        value = float(m.group(1))
        if value > BARE_NUMBER_MB_THRESHOLD:
            return round_half_up(value)
        return round_half_up(value * 1024)

    logger.warning(f"Could not parse data amount: {raw!r}")
    return None


def parse_validity(validity: int) -> int:
    return validity


def parse_voice_credits(voice_credits: Optional[int]) -> int:
    return voice_credits or 0


def parse_sms_credits(sms_credits: Optional[int]) -> int:
    return sms_credits or 0


def normalize_package_data(pkg: Any) -> NormalizedPackageData:
    """
    Normalize a provider package row (or anything exposing data_amount,
    validity, voice_credits, sms_credits and is_unlimited).
    The is_unlimited flag wins over the data string.
    """
    is_unlimited = bool(getattr(pkg, "is_unlimited", False))
    return NormalizedPackageData(
        data_mb=None if is_unlimited else parse_data_amount(pkg.data_amount),
        validity_days=parse_validity(pkg.validity),
        voice_minutes=parse_voice_credits(getattr(pkg, "voice_credits", None)),
        sms_count=parse_sms_credits(getattr(pkg, "sms_credits", None)),
    )


# ─── Comparison ──────────────────────────────────────────────────────────────


def are_packages_comparable(
    a: NormalizedPackageData,
    b: NormalizedPackageData,
    tolerance: Optional[float] = None,
) -> bool:
    """Same unlimited status, data within relative tolerance, identical validity/voice/SMS."""
    tolerance = tolerance if tolerance is not None else settings.COMPARISON_TOLERANCE

    if a.is_unlimited != b.is_unlimited:
        return False

    if a.is_unlimited and b.is_unlimited:
        return a.validity_days == b.validity_days

    largest = max(a.data_mb, b.data_mb)
    if largest > 0 and abs(a.data_mb - b.data_mb) / largest > tolerance:
        return False

    if a.validity_days != b.validity_days:
        return False
    if a.voice_minutes != b.voice_minutes:
        return False
    return a.sms_count == b.sms_count


def create_comparison_key(
    destination_id: Optional[Any],
    region_id: Optional[Any],
    normalized: NormalizedPackageData,
) -> str:
    location = f"dest_{destination_id}" if destination_id else f"region_{region_id}"
    data = "unlimited" if normalized.data_mb is None else f"{normalized.data_mb}mb"
    voice = f"v{normalized.voice_minutes}" if normalized.voice_minutes > 0 else ""
    sms = f"s{normalized.sms_count}" if normalized.sms_count > 0 else ""
    return f"{location}:{data}:{normalized.validity_days}d{voice}{sms}"
