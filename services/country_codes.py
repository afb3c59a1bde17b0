"""
Country / Group-Key Resolver
----------------------------
Maps provider-specific slugs and coverage lists to ISO 3166-1 alpha-2
codes, and builds the cross-provider group key:

  "{countryCode|UNKNOWN}_{dataMb|UNLIMITED}_{validityDays}"

Only local (single-country) packages are resolved; regional and global
packages are left without a country by the catalog sync.
"""

import re
import logging
from typing import Dict, List, Optional, Sequence, Tuple

from models.schemas import CountryMatch

logger = logging.getLogger(__name__)

UNKNOWN_COUNTRY = "UNKNOWN"


# ─── Country Table ───────────────────────────────────────────────────────────
# slug -> (display name, ISO code). Some codes appear under several slugs.

COUNTRY_CODES: Dict[str, Tuple[str, str]] = {
    "afghanistan": ("Afghanistan", "AF"),
    "albania": ("Albania", "AL"),
    "algeria": ("Algeria", "DZ"),
    "andorra": ("Andorra", "AD"),
    "angola": ("Angola", "AO"),
    "anguilla": ("Anguilla", "AI"),
    "antigua-and-barbuda": ("Antigua and Barbuda", "AG"),
    "argentina": ("Argentina", "AR"),
    "armenia": ("Armenia", "AM"),
    "aruba": ("Aruba", "AW"),
    "australia": ("Australia", "AU"),
    "austria": ("Austria", "AT"),
    "azerbaijan": ("Azerbaijan", "AZ"),
    "bahamas": ("Bahamas", "BS"),
    "bahrain": ("Bahrain", "BH"),
    "bangladesh": ("Bangladesh", "BD"),
    "barbados": ("Barbados", "BB"),
    "belarus": ("Belarus", "BY"),
    "belgium": ("Belgium", "BE"),
    "belize": ("Belize", "BZ"),
    "benin": ("Benin", "BJ"),
    "bermuda": ("Bermuda", "BM"),
    "bhutan": ("Bhutan", "BT"),
    "bolivia": ("Bolivia", "BO"),
    "bonaire": ("Bonaire", "BQ"),
    "bosnia-and-herzegovina": ("Bosnia and Herzegovina", "BA"),
    "botswana": ("Botswana", "BW"),
    "brazil": ("Brazil", "BR"),
    "british-virgin-islands": ("British Virgin Islands", "VG"),
    "brunei": ("Brunei", "BN"),
    "bulgaria": ("Bulgaria", "BG"),
    "burkina-faso": ("Burkina Faso", "BF"),
    "burundi": ("Burundi", "BI"),
    "cambodia": ("Cambodia", "KH"),
    "cameroon": ("Cameroon", "CM"),
    "canada": ("Canada", "CA"),
    "cape-verde": ("Cape Verde", "CV"),
    "cayman-islands": ("Cayman Islands", "KY"),
    "central-african-republic": ("Central African Republic", "CF"),
    "chad": ("Chad", "TD"),
    "chile": ("Chile", "CL"),
    "china": ("China", "CN"),
    "colombia": ("Colombia", "CO"),
    "comoros": ("Comoros", "KM"),
    "congo": ("Congo", "CG"),
    "congo-democratic-republic": ("Congo (DRC)", "CD"),
    "costa-rica": ("Costa Rica", "CR"),
    "cote-d-ivoire": ("Ivory Coast", "CI"),
    "croatia": ("Croatia", "HR"),
    "cuba": ("Cuba", "CU"),
    "curacao": ("Curacao", "CW"),
    "cyprus": ("Cyprus", "CY"),
    "czech-republic": ("Czech Republic", "CZ"),
    "czechia": ("Czech Republic", "CZ"),
    "denmark": ("Denmark", "DK"),
    "djibouti": ("Djibouti", "DJ"),
    "dominica": ("Dominica", "DM"),
    "dominican-republic": ("Dominican Republic", "DO"),
    "ecuador": ("Ecuador", "EC"),
    "egypt": ("Egypt", "EG"),
    "el-salvador": ("El Salvador", "SV"),
    "equatorial-guinea": ("Equatorial Guinea", "GQ"),
    "eritrea": ("Eritrea", "ER"),
    "estonia": ("Estonia", "EE"),
    "eswatini": ("Eswatini", "SZ"),
    "ethiopia": ("Ethiopia", "ET"),
    "fiji": ("Fiji", "FJ"),
    "finland": ("Finland", "FI"),
    "france": ("France", "FR"),
    "french-guiana": ("French Guiana", "GF"),
    "french-polynesia": ("French Polynesia", "PF"),
    "gabon": ("Gabon", "GA"),
    "gambia": ("Gambia", "GM"),
    "georgia": ("Georgia", "GE"),
    "germany": ("Germany", "DE"),
    "ghana": ("Ghana", "GH"),
    "gibraltar": ("Gibraltar", "GI"),
    "greece": ("Greece", "GR"),
    "greenland": ("Greenland", "GL"),
    "grenada": ("Grenada", "GD"),
    "guadeloupe": ("Guadeloupe", "GP"),
    "guam": ("Guam", "GU"),
    "guatemala": ("Guatemala", "GT"),
    "guernsey": ("Guernsey", "GG"),
    "guinea": ("Guinea", "GN"),
    "guinea-bissau": ("Guinea-Bissau", "GW"),
    "guyana": ("Guyana", "GY"),
    "haiti": ("Haiti", "HT"),
    "honduras": ("Honduras", "HN"),
    "hong-kong": ("Hong Kong", "HK"),
    "hungary": ("Hungary", "HU"),
    "iceland": ("Iceland", "IS"),
    "india": ("India", "IN"),
    "indonesia": ("Indonesia", "ID"),
    "iran": ("Iran", "IR"),
    "iraq": ("Iraq", "IQ"),
    "ireland": ("Ireland", "IE"),
    "isle-of-man": ("Isle of Man", "IM"),
    "israel": ("Israel", "IL"),
    "italy": ("Italy", "IT"),
    "jamaica": ("Jamaica", "JM"),
    "japan": ("Japan", "JP"),
    "jersey": ("Jersey", "JE"),
    "jordan": ("Jordan", "JO"),
    "kazakhstan": ("Kazakhstan", "KZ"),
    "kenya": ("Kenya", "KE"),
    "kiribati": ("Kiribati", "KI"),
    "kosovo": ("Kosovo", "XK"),
    "kuwait": ("Kuwait", "KW"),
    "kyrgyzstan": ("Kyrgyzstan", "KG"),
    "laos": ("Laos", "LA"),
    "latvia": ("Latvia", "LV"),
    "lebanon": ("Lebanon", "LB"),
    "lesotho": ("Lesotho", "LS"),
    "liberia": ("Liberia", "LR"),
    "libya": ("Libya", "LY"),
    "liechtenstein": ("Liechtenstein", "LI"),
    "lithuania": ("Lithuania", "LT"),
    "luxembourg": ("Luxembourg", "LU"),
    "macao": ("Macao", "MO"),
    "macau": ("Macau", "MO"),
    "madagascar": ("Madagascar", "MG"),
    "malawi": ("Malawi", "MW"),
    "malaysia": ("Malaysia", "MY"),
    "maldives": ("Maldives", "MV"),
    "mali": ("Mali", "ML"),
    "malta": ("Malta", "MT"),
    "martinique": ("Martinique", "MQ"),
    "mauritania": ("Mauritania", "MR"),
    "mauritius": ("Mauritius", "MU"),
    "mayotte": ("Mayotte", "YT"),
    "mexico": ("Mexico", "MX"),
    "moldova": ("Moldova", "MD"),
    "monaco": ("Monaco", "MC"),
    "mongolia": ("Mongolia", "MN"),
    "montenegro": ("Montenegro", "ME"),
    "montserrat": ("Montserrat", "MS"),
    "morocco": ("Morocco", "MA"),
    "mozambique": ("Mozambique", "MZ"),
    "myanmar": ("Myanmar", "MM"),
    "namibia": ("Namibia", "NA"),
    "nauru": ("Nauru", "NR"),
    "nepal": ("Nepal", "NP"),
    "netherlands": ("Netherlands", "NL"),
    "new-caledonia": ("New Caledonia", "NC"),
    "new-zealand": ("New Zealand", "NZ"),
    "nicaragua": ("Nicaragua", "NI"),
    "niger": ("Niger", "NE"),
    "nigeria": ("Nigeria", "NG"),
    "north-korea": ("North Korea", "KP"),
    "north-macedonia": ("North Macedonia", "MK"),
    "norway": ("Norway", "NO"),
    "oman": ("Oman", "OM"),
    "pakistan": ("Pakistan", "PK"),
    "palau": ("Palau", "PW"),
    "palestine": ("Palestine", "PS"),
    "panama": ("Panama", "PA"),
    "papua-new-guinea": ("Papua New Guinea", "PG"),
    "paraguay": ("Paraguay", "PY"),
    "peru": ("Peru", "PE"),
    "philippines": ("Philippines", "PH"),
    "poland": ("Poland", "PL"),
    "portugal": ("Portugal", "PT"),
    "puerto-rico": ("Puerto Rico", "PR"),
    "qatar": ("Qatar", "QA"),
    "reunion": ("Reunion", "RE"),
    "romania": ("Romania", "RO"),
    "russia": ("Russia", "RU"),
    "rwanda": ("Rwanda", "RW"),
    "saint-kitts-and-nevis": ("Saint Kitts and Nevis", "KN"),
    "saint-lucia": ("Saint Lucia", "LC"),
    "saint-martin": ("Saint Martin", "MF"),
    "saint-vincent-and-the-grenadines": ("Saint Vincent and the Grenadines", "VC"),
    "samoa": ("Samoa", "WS"),
    "san-marino": ("San Marino", "SM"),
    "sao-tome-and-principe": ("Sao Tome and Principe", "ST"),
    "saudi-arabia": ("Saudi Arabia", "SA"),
    "senegal": ("Senegal", "SN"),
    "serbia": ("Serbia", "RS"),
    "seychelles": ("Seychelles", "SC"),
    "sierra-leone": ("Sierra Leone", "SL"),
    "singapore": ("Singapore", "SG"),
    "sint-maarten": ("Sint Maarten", "SX"),
    "slovakia": ("Slovakia", "SK"),
    "slovenia": ("Slovenia", "SI"),
    "solomon-islands": ("Solomon Islands", "SB"),
    "somalia": ("Somalia", "SO"),
    "south-africa": ("South Africa", "ZA"),
    "south-korea": ("South Korea", "KR"),
    "south-sudan": ("South Sudan", "SS"),
    "spain": ("Spain", "ES"),
    "sri-lanka": ("Sri Lanka", "LK"),
    "sudan": ("Sudan", "SD"),
    "suriname": ("Suriname", "SR"),
    "sweden": ("Sweden", "SE"),
    "switzerland": ("Switzerland", "CH"),
    "syria": ("Syria", "SY"),
    "taiwan": ("Taiwan", "TW"),
    "tajikistan": ("Tajikistan", "TJ"),
    "tanzania": ("Tanzania", "TZ"),
    "thailand": ("Thailand", "TH"),
    "timor-leste": ("Timor-Leste", "TL"),
    "togo": ("Togo", "TG"),
    "tonga": ("Tonga", "TO"),
    "trinidad-and-tobago": ("Trinidad and Tobago", "TT"),
    "tunisia": ("Tunisia", "TN"),
    "turkey": ("Turkey", "TR"),
    "turkmenistan": ("Turkmenistan", "TM"),
    "turks-and-caicos-islands": ("Turks and Caicos Islands", "TC"),
    "tuvalu": ("Tuvalu", "TV"),
    "uganda": ("Uganda", "UG"),
    "ukraine": ("Ukraine", "UA"),
    "united-arab-emirates": ("United Arab Emirates", "AE"),
    "united-kingdom": ("United Kingdom", "GB"),
    "united-states": ("United States", "US"),
    "uruguay": ("Uruguay", "UY"),
    "uzbekistan": ("Uzbekistan", "UZ"),
    "vanuatu": ("Vanuatu", "VU"),
    "vatican-city": ("Vatican City", "VA"),
    "venezuela": ("Venezuela", "VE"),
    "vietnam": ("Vietnam", "VN"),
    "virgin-islands": ("Virgin Islands", "VI"),
    "yemen": ("Yemen", "YE"),
    "zambia": ("Zambia", "ZM"),
    "zimbabwe": ("Zimbabwe", "ZW"),
}


def _build_reverse_table() -> Dict[str, Tuple[str, str]]:
    reverse: Dict[str, Tuple[str, str]] = {}
    for slug, (name, code) in COUNTRY_CODES.items():
        # first slug listed for a code wins
        reverse.setdefault(code, (name, slug))
    return reverse


ISO_TO_COUNTRY: Dict[str, Tuple[str, str]] = _build_reverse_table()


def country_from_code(code: Optional[str]) -> CountryMatch:
    if not code:
        return CountryMatch()
    code = code.upper()
    entry = ISO_TO_COUNTRY.get(code)
    if entry is None:
        return CountryMatch()
    return CountryMatch(code=code, name=entry[0])


def _from_single_coverage(coverage: Optional[Sequence[str]]) -> CountryMatch:
    if coverage and len(coverage) == 1 and coverage[0]:
        return country_from_code(coverage[0])
    return CountryMatch()


# ─── Per-Provider Extractors ─────────────────────────────────────────────────

_ESIM_GO_SLUG_RE = re.compile(r"_([a-z]{2})(?:_v\d+)?$", re.IGNORECASE)
_ESIM_ACCESS_SLUG_RE = re.compile(r"^([A-Z]{2})_")
_MAYA_SLUG_RE = re.compile(r"[_-]([A-Z]{2})(?:[_-]|$)", re.IGNORECASE)


def extract_from_airalo_slug(slug: str, coverage: Optional[Sequence[str]] = None) -> CountryMatch:
    """
    Airalo slugs lead with the hyphenated country name:
    "united-states-10gb-30days" -> US. Longest prefix (4 parts) is tried first.
    """
    parts = (slug or "").split("-")
    for n in range(4, 0, -1):
        entry = COUNTRY_CODES.get("-".join(parts[:n]))
        if entry:
            return CountryMatch(code=entry[1], name=entry[0])
    return CountryMatch()


def extract_from_esim_go_package(slug: str, coverage: Optional[Sequence[str]] = None) -> CountryMatch:
    """Coverage ["US"] first, then a trailing "_us" / "_us_v2" in the slug."""
    match = _from_single_coverage(coverage)
    if match.resolved:
        return match
    m = _ESIM_GO_SLUG_RE.search(slug or "")
    return country_from_code(m.group(1)) if m else CountryMatch()


def extract_from_esim_access_package(slug: str, coverage: Optional[Sequence[str]] = None) -> CountryMatch:
    """Coverage first, then an uppercase "US_" slug prefix."""
    match = _from_single_coverage(coverage)
    if match.resolved:
        return match
    m = _ESIM_ACCESS_SLUG_RE.match(slug or "")
    return country_from_code(m.group(1)) if m else CountryMatch()


def extract_from_maya_package(slug: str, coverage: Optional[Sequence[str]] = None) -> CountryMatch:
    """Coverage first, then a two-letter code delimited by "_" or "-" in the slug."""
    match = _from_single_coverage(coverage)
    if match.resolved:
        return match
    m = _MAYA_SLUG_RE.search(slug or "")
    return country_from_code(m.group(1)) if m else CountryMatch()


# ─── Group Keys ──────────────────────────────────────────────────────────────


def generate_package_group_key(
    country_code: Optional[str],
    data_mb: Optional[int],
    validity_days: int,
) -> str:
    country = country_code or UNKNOWN_COUNTRY
    data = "UNLIMITED" if data_mb is None else str(data_mb)
    return f"{country}_{data}_{validity_days}"


def is_groupable_key(group_key: Optional[str]) -> bool:
    """Keys with an unresolved country never match across providers."""
    return bool(group_key) and not group_key.startswith(f"{UNKNOWN_COUNTRY}_")


# ─── Seeding ─────────────────────────────────────────────────────────────────

def get_all_destinations() -> List[Dict[str, str]]:
    """One destination per ISO code (first slug wins), sorted by name."""
    seen = set()
    destinations = []
    for slug, (name, code) in COUNTRY_CODES.items():
        if code in seen:
            continue
        seen.add(code)
        destinations.append({"slug": slug, "name": name, "country_code": code})
    return sorted(destinations, key=lambda d: d["name"].lower())


def seed_destinations(session) -> int:
    """Insert a destination row for every known country not already present."""
    from db.models import Destination

    existing = {code for (code,) in session.query(Destination.country_code).all()}
    added = 0
    for dest in get_all_destinations():
        if dest["country_code"] in existing:
            continue
        session.add(Destination(**dest))
        added += 1
    if added:
        session.commit()
        logger.info(f"Seeded {added} destinations")
    return added
