"""
contract_conduit.cma.extract

Tolerant field extraction for comparable properties.

MLS payloads arrive with inconsistent field names (`soldPrice` vs `closePrice`,
`livingArea` vs `sqft`, lot size in acres or square feet). Everything here accepts a
raw dict and returns a number or `None`; nothing raises on malformed input.

Responsibilities:
- Numeric coercion of MLS values (`"$1,250,000"`, `"3"`, NaN).
- Price / living area / DOM / beds / baths / year built extraction.
- Lot size normalisation to acres and square feet.
- Derived ratios ($/sqft, $/acre), address and status display helpers.
- Days-on-market arithmetic and subject/comparable splitting.
"""

from __future__ import annotations

import math
import re
from collections.abc import Iterable, Mapping
from datetime import date, datetime
from typing import Any

SQFT_PER_ACRE = 43_560

# Lot values above this with no explicit unit are square feet, not acres.
_LOT_SQFT_THRESHOLD = 100

_PRICE_FIELDS = ("soldPrice", "closePrice", "price", "listPrice")
_SQFT_FIELDS = ("sqft", "livingArea", "squareFeet", "sqFt", "size")
_DOM_FIELDS = ("daysOnMarket", "dom", "cumulativeDom", "DOM")
_BED_FIELDS = ("beds", "bedrooms", "bedroomsTotal")
_BATH_FIELDS = ("baths", "bathrooms", "bathroomsTotal", "bathroomsTotalInteger")
_ID_FIELDS = ("mlsNumber", "listingId", "id")

# `$` and `,` are stripped, then the leading number is read and any unit suffix ignored.
_CURRENCY_NOISE = re.compile(r"[$,]")
_LEADING_NUMBER = re.compile(r"\s*[-+]?(?:\d+\.?\d*|\.\d+)(?:[eE][-+]?\d+)?")


def to_number(value: Any) -> float | None:
    """
    Coerce an MLS value to float. Strings may carry `$`, `,` and unit suffixes.
    Returns None for None, NaN, booleans and anything unparseable.
    """

    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        match = _LEADING_NUMBER.match(_CURRENCY_NOISE.sub("", value))
        if match is None:
            return None
        number = float(match.group())
    else:
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def _first(comp: Mapping[str, Any], fields: Iterable[str], *, allow_zero: bool) -> float | None:
    for field in fields:
        number = to_number(comp.get(field))
        if number is None:
            continue
        if number > 0 or (allow_zero and number == 0):
            return number
    return None


def extract_price(comp: Mapping[str, Any] | None) -> float | None:
    if not comp:
        return None
    return _first(comp, _PRICE_FIELDS, allow_zero=False)


def extract_sqft(comp: Mapping[str, Any] | None) -> float | None:
    if not comp:
        return None
    return _first(comp, _SQFT_FIELDS, allow_zero=False)


def extract_dom(comp: Mapping[str, Any] | None) -> int | None:
    if not comp:
        return None
    number = _first(comp, _DOM_FIELDS, allow_zero=True)
    return int(number) if number is not None else None


def extract_beds(comp: Mapping[str, Any] | None) -> int | None:
    if not comp:
        return None
    number = _first(comp, _BED_FIELDS, allow_zero=True)
    return int(number) if number is not None else None


def extract_baths(comp: Mapping[str, Any] | None) -> float | None:
    if not comp:
        return None
    return _first(comp, _BATH_FIELDS, allow_zero=True)


def extract_year_built(comp: Mapping[str, Any] | None) -> int | None:
    if not comp:
        return None
    number = to_number(comp.get("yearBuilt"))
    return int(number) if number is not None and number > 0 else None


def _lot_units(comp: Mapping[str, Any]) -> str:
    return str(comp.get("lotSizeUnits") or comp.get("lotSizeUnit") or "sqft").lower()


def _positive(value: Any) -> float | None:
    number = to_number(value)
    return number if number is not None and number > 0 else None


def normalized_acres(comp: Mapping[str, Any] | None) -> float | None:
    """
    Lot size in acres. Sources are checked in priority order; the first positive wins.
    """

    if not comp:
        return None
    lot = comp.get("lot") if isinstance(comp.get("lot"), Mapping) else {}

    if (acres := _positive(lot.get("acres"))) is not None:
        return acres
    if (sqft := _positive(lot.get("squareFeet"))) is not None:
        return sqft / SQFT_PER_ACRE
    if (acres := _positive(comp.get("lotSizeAcres"))) is not None:
        return acres
    if (sqft := _positive(comp.get("lotSizeSquareFeet"))) is not None:
        return sqft / SQFT_PER_ACRE

    for key in ("lotSizeArea", "lotSize"):
        raw = _positive(comp.get(key))
        if raw is None:
            continue
        if _lot_units(comp) == "acres":
            return raw
        return raw / SQFT_PER_ACRE if raw > _LOT_SQFT_THRESHOLD else raw

    details = comp.get("details") if isinstance(comp.get("details"), Mapping) else {}
    if (raw := _positive(details.get("lotSize"))) is not None:
        return raw / SQFT_PER_ACRE if raw > _LOT_SQFT_THRESHOLD else raw
    return None


def normalized_lot_sqft(comp: Mapping[str, Any] | None) -> float | None:
    if not comp:
        return None
    lot = comp.get("lot") if isinstance(comp.get("lot"), Mapping) else {}

    if (sqft := _positive(lot.get("squareFeet"))) is not None:
        return sqft
    if (sqft := _positive(comp.get("lotSizeSquareFeet"))) is not None:
        return sqft
    if (acres := _positive(lot.get("acres"))) is not None:
        return acres * SQFT_PER_ACRE
    if (acres := _positive(comp.get("lotSizeAcres"))) is not None:
        return acres * SQFT_PER_ACRE
    if (area := _positive(comp.get("lotSizeArea"))) is not None:
        return area * SQFT_PER_ACRE if _lot_units(comp) == "acres" else area
    return None


def price_per_sqft(comp: Mapping[str, Any] | None) -> int | None:
    price = extract_price(comp)
    sqft = extract_sqft(comp)
    if price and sqft:
        return round(price / sqft)
    return None


def price_per_acre(comp: Mapping[str, Any] | None) -> int | None:
    price = extract_price(comp)
    acres = normalized_acres(comp)
    if price and acres:
        return round(price / acres)
    return None


def extract_full_address(comp: Mapping[str, Any] | None) -> str:
    if not comp:
        return "Address unavailable"

    full = comp.get("fullAddress")
    if isinstance(full, str) and full.strip():
        return full

    city = comp.get("city") or ""
    address = comp.get("address")
    if isinstance(address, str) and address.strip():
        if not city:
            return address
        state = comp.get("state") or comp.get("stateOrProvince") or ""
        postal = comp.get("zip") or comp.get("zipCode") or comp.get("postalCode") or ""
        state_part = f", {state}" if state else ""
        return f"{address}, {city}{state_part} {postal}".strip()

    street = " ".join(
        str(part)
        for part in (comp.get("streetNumber"), comp.get("streetName"), comp.get("streetSuffix"))
        if part
    )
    if street:
        return f"{street}, {city}, {comp.get('state') or ''}" if city else street
    return "Address unavailable"


def normalize_status(status: Any) -> str:
    if status is None or status == "":
        return "Unknown"
    status = str(status)
    lowered = status.strip().lower()
    if lowered in {"s", "c", "sold", "closed"}:
        return "Closed"
    if lowered in {"a", "active"}:
        return "Active"
    if lowered in {"u", "sc", "pending"}:
        return "Pending"
    return status or "Unknown"


def property_id(comp: Mapping[str, Any] | None) -> str:
    if not comp:
        return ""
    for field in _ID_FIELDS:
        value = comp.get(field)
        if value:
            return str(value)
    return ""


def coordinates(comp: Mapping[str, Any] | None) -> tuple[float, float] | None:
    if not comp:
        return None
    for container_key in ("map", "coordinates"):
        container = comp.get(container_key)
        if isinstance(container, Mapping):
            lat = to_number(container.get("latitude"))
            lng = to_number(container.get("longitude"))
            if lat and lng:
                return lat, lng
    for lat_key, lng_key in (("latitude", "longitude"), ("lat", "lng")):
        lat = to_number(comp.get(lat_key))
        lng = to_number(comp.get(lng_key))
        if lat and lng:
            return lat, lng
    return None


def photos(comp: Mapping[str, Any] | None) -> list[str]:
    if not comp:
        return []
    for key in ("photos", "images"):
        value = comp.get(key)
        if isinstance(value, list):
            return [str(item) for item in value if item]
    return []


def parse_date(value: Any) -> date | None:
    """
    Accepts `date`, `datetime` or an ISO-8601 string (date or timestamp).
    """

    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str) and value.strip():
        text = value.strip().replace("Z", "+00:00")
        try:
            return datetime.fromisoformat(text).date()
        except ValueError:
            try:
                return date.fromisoformat(text[:10])
            except ValueError:
                return None
    return None


def days_on_market(list_date: Any, end_date: Any = None, *, today: date | None = None) -> int | None:
    """
    Whole days between listing and `end_date` (sold/off-market date, or today when
    still listed). Never negative; None when the list date is missing or unparseable.
    """

    start = parse_date(list_date)
    if start is None:
        return None
    end = parse_date(end_date) or today or date.today()
    return max((end - start).days, 0)


def split_subject(
    properties: list[dict[str, Any]], subject_property_id: str | None
) -> tuple[dict[str, Any] | None, list[dict[str, Any]]]:
    """
    Separate the subject property from its comparables by MLS number / listing id.
    """

    if not subject_property_id:
        return None, list(properties)
    subject: dict[str, Any] | None = None
    comparables: list[dict[str, Any]] = []
    for prop in properties:
        if subject is None and subject_property_id in {
            str(prop.get(field)) for field in _ID_FIELDS if prop.get(field)
        }:
            subject = prop
        else:
            comparables.append(prop)
    return subject, comparables
