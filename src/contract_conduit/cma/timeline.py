"""
contract_conduit.cma.timeline

Price timeline across a CMA's comparables (one point per listing event date).
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import date
from typing import Any

from contract_conduit.cma import extract

_CLOSE_DATE_FIELDS = ("closeDate", "soldDate", "offMarketDate")
_LIST_DATE_FIELDS = ("listDate", "listingContractDate", "onMarketDate")


def _first_date(comp: Mapping[str, Any], fields: tuple[str, ...]) -> date | None:
    for field in fields:
        parsed = extract.parse_date(comp.get(field))
        if parsed is not None:
            return parsed
    return None


def build_price_timeline(
    properties: list[Mapping[str, Any]], *, today: date | None = None
) -> list[dict[str, Any]]:
    """
    Closed comps plot at their close date with the sold price; others at their list
    date with the list price. Comps with neither date or no price are skipped.
    """

    points: list[tuple[date, dict[str, Any]]] = []
    for comp in properties:
        close_date = _first_date(comp, _CLOSE_DATE_FIELDS)
        list_date = _first_date(comp, _LIST_DATE_FIELDS)
        point_date = close_date or list_date
        price = extract.extract_price(comp)
        if point_date is None or price is None:
            continue

        dom = extract.extract_dom(comp)
        if dom is None and list_date is not None:
            dom = extract.days_on_market(list_date, close_date, today=today)
        cumulative = extract.to_number(comp.get("cumulativeDaysOnMarket"))
        status = comp.get("standardStatus") or comp.get("status")

        points.append(
            (
                point_date,
                {
                    "date": point_date.isoformat(),
                    "price": price,
                    "status": extract.normalize_status(status),
                    "property_id": extract.property_id(comp),
                    "address": extract.extract_full_address(comp),
                    "days_on_market": dom,
                    "cumulative_days_on_market": int(cumulative) if cumulative is not None else dom,
                },
            )
        )
    points.sort(key=lambda item: item[0])
    return [point for _, point in points]
