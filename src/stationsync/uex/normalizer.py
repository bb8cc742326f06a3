"""
UEX API response normalizer.

Converts raw dicts from the UEX API into clean field dicts that map directly
onto SQLModel columns. No DB access here; the reconcilers handle persistence
and parent resolution.

UEX is loose with types:
  - booleans arrive as true/false, 0/1, or "0"/"1"
  - date_added / date_modified are epoch seconds on most endpoints and
    ISO-8601 strings on a few
  - parent ids use 0 (or null) for "no parent"
"""
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Set


def to_boolean_flag(value: Any, fallback: bool = True) -> bool:
    """Map a UEX availability/visibility flag to bool.

    Missing values take the fallback; any falsy or zero value is False.
    """
    if value is None:
        return fallback
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, str):
        s = value.strip().lower()
        if s in ("", "0", "false", "no"):
            return False
        return True
    return bool(value)


def positive_id(value: Any) -> Optional[int]:
    """Return value as an int id, or None for null/zero/negative/garbage."""
    if value is None or isinstance(value, bool):
        return None
    try:
        ident = int(value)
    except (TypeError, ValueError):
        return None
    return ident if ident > 0 else None


def parse_uex_datetime(value: Any) -> Optional[datetime]:
    """Parse a UEX timestamp (epoch seconds or ISO-8601) to naive UTC."""
    if value is None or value == "":
        return None
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return datetime.fromtimestamp(value, tz=timezone.utc).replace(tzinfo=None)
    if isinstance(value, str):
        s = value.strip()
        if s.isdigit():
            return parse_uex_datetime(int(s))
        try:
            dt = datetime.fromisoformat(s.replace("Z", "+00:00"))
        except ValueError:
            return None
        if dt.tzinfo is not None:
            dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
        return dt
    return None


def _audit_fields(raw: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "uex_date_added": parse_uex_datetime(raw.get("date_added")),
        "uex_date_modified": parse_uex_datetime(raw.get("date_modified")),
    }


def _parse_weight(value: Any) -> Optional[float]:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


# ─── Catalog ──────────────────────────────────────────────────────────────────

def normalize_category(raw: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "type": raw.get("type"),
        "section": raw.get("section"),
        "name": raw.get("name") or "",
        "is_game_related": to_boolean_flag(raw.get("is_game_related"), False),
        **_audit_fields(raw),
    }


def normalize_company(raw: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "name": raw.get("name") or "",
        "nickname": raw.get("nickname"),
        **_audit_fields(raw),
    }


def normalize_item(
    raw: Dict[str, Any],
    category_id: int,
    known_companies: Optional[Set[int]] = None,
) -> Dict[str, Any]:
    """Normalize an item.

    company_id is only kept when the company is mirrored locally, so items
    never point at a manufacturer we don't have.
    """
    company_id = positive_id(raw.get("id_company"))
    if company_id is not None and (
        known_companies is None or company_id not in known_companies
    ):
        company_id = None

    return {
        "category_id": category_id,
        "company_id": company_id,
        "name": raw.get("name") or "",
        "section": raw.get("section"),
        "category_name": raw.get("category"),
        "company_name": raw.get("company_name"),
        "size": raw.get("size"),
        "uuid": raw.get("uuid"),
        "weight_scu": _parse_weight(raw.get("weight_scu")),
        "is_commodity": raw.get("kind") == "commodity",
        "is_buyable": to_boolean_flag(raw.get("is_buyable"), False),
        "is_sellable": to_boolean_flag(raw.get("is_sellable"), False),
        **_audit_fields(raw),
    }


# ─── Locations ────────────────────────────────────────────────────────────────

def normalize_star_system(raw: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "name": raw.get("name") or "",
        "code": raw.get("code"),
        "is_available": to_boolean_flag(raw.get("is_available")),
        "is_visible": to_boolean_flag(raw.get("is_visible")),
        **_audit_fields(raw),
    }


def normalize_planet(raw: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "star_system_id": positive_id(raw.get("id_star_system")),
        "name": raw.get("name") or "",
        "code": raw.get("code"),
        "is_available": to_boolean_flag(raw.get("is_available")),
        "is_landable": to_boolean_flag(raw.get("is_landable"), False),
        **_audit_fields(raw),
    }


def normalize_moon(raw: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "star_system_id": positive_id(raw.get("id_star_system")),
        "planet_id": positive_id(raw.get("id_planet")),
        "name": raw.get("name") or "",
        "code": raw.get("code"),
        "is_available": to_boolean_flag(raw.get("is_available")),
        "is_landable": to_boolean_flag(raw.get("is_landable"), False),
        **_audit_fields(raw),
    }


def normalize_city(raw: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "star_system_id": positive_id(raw.get("id_star_system")),
        "planet_id": positive_id(raw.get("id_planet")),
        "moon_id": positive_id(raw.get("id_moon")),
        "name": raw.get("name") or "",
        "code": raw.get("code"),
        "is_available": to_boolean_flag(raw.get("is_available")),
        **_audit_fields(raw),
    }


def normalize_space_station(raw: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "star_system_id": positive_id(raw.get("id_star_system")),
        "planet_id": positive_id(raw.get("id_planet")),
        "moon_id": positive_id(raw.get("id_moon")),
        "orbit_id": positive_id(raw.get("id_orbit")),
        "name": raw.get("name") or "",
        "code": raw.get("code") or raw.get("nickname"),
        "is_available": to_boolean_flag(raw.get("is_available")),
        **_audit_fields(raw),
    }


def normalize_outpost(raw: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "star_system_id": positive_id(raw.get("id_star_system")),
        "planet_id": positive_id(raw.get("id_planet")),
        "moon_id": positive_id(raw.get("id_moon")),
        "name": raw.get("name") or "",
        "code": raw.get("code") or raw.get("nickname"),
        "is_available": to_boolean_flag(raw.get("is_available")),
        **_audit_fields(raw),
    }


def normalize_poi(raw: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "star_system_id": positive_id(raw.get("id_star_system")),
        "planet_id": positive_id(raw.get("id_planet")),
        "moon_id": positive_id(raw.get("id_moon")),
        "orbit_id": positive_id(raw.get("id_orbit")),
        "space_station_id": positive_id(raw.get("id_space_station")),
        "city_id": positive_id(raw.get("id_city")),
        "outpost_id": positive_id(raw.get("id_outpost")),
        "name": raw.get("name") or "",
        "type": raw.get("type"),
        "is_available": to_boolean_flag(raw.get("is_available")),
        **_audit_fields(raw),
    }
