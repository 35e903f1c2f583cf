"""
contract_conduit.cma.statistics

Statistics aggregator over a CMA's comparable properties.

Responsibilities:
- `calculate_metric`: min / max / average / median over values tolerant of None and NaN.
- `calculate_statistics`: per-metric aggregation for a list of raw comparables.
- `summarize`: headline figures shown on the CMA card and in share emails.
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Mapping
from dataclasses import asdict, dataclass, fields
from typing import Any

from contract_conduit.cma import extract


@dataclass(frozen=True, slots=True)
class StatMetric:
    min: float
    max: float
    average: float
    median: float

    @property
    def range(self) -> tuple[float, float]:
        return self.min, self.max

    def to_dict(self) -> dict[str, Any]:
        return {
            "range": {"min": self.min, "max": self.max},
            "average": self.average,
            "median": self.median,
        }


EMPTY_METRIC = StatMetric(min=0.0, max=0.0, average=0.0, median=0.0)


@dataclass(frozen=True, slots=True)
class PropertyStatistics:
    price: StatMetric
    price_per_sqft: StatMetric
    days_on_market: StatMetric
    living_area: StatMetric
    lot_size: StatMetric
    acres: StatMetric
    bedrooms: StatMetric
    bathrooms: StatMetric
    year_built: StatMetric

    def to_dict(self) -> dict[str, Any]:
        return {f.name: getattr(self, f.name).to_dict() for f in fields(self)}


def calculate_metric(values: Iterable[float | int | None]) -> StatMetric:
    """
    Drop None / NaN, sort, then aggregate. An even count takes the mean of the two
    middle values as the median. No usable values gives an all-zero metric.
    """

    cleaned = sorted(
        float(v)
        for v in values
        if v is not None and not isinstance(v, bool) and not math.isnan(float(v))
    )
    if not cleaned:
        return EMPTY_METRIC

    count = len(cleaned)
    mid = count // 2
    if count % 2 == 0:
        median = (cleaned[mid - 1] + cleaned[mid]) / 2
    else:
        median = cleaned[mid]
    return StatMetric(
        min=cleaned[0],
        max=cleaned[-1],
        average=sum(cleaned) / count,
        median=median,
    )


def calculate_statistics(comparables: list[Mapping[str, Any]]) -> PropertyStatistics | None:
    if not comparables:
        return None

    prices = [extract.extract_price(c) for c in comparables]
    ppsf: list[float] = []
    for comp in comparables:
        price = extract.extract_price(comp)
        sqft = extract.extract_sqft(comp)
        if price and sqft:
            ppsf.append(price / sqft)

    return PropertyStatistics(
        price=calculate_metric(prices),
        price_per_sqft=calculate_metric(ppsf),
        days_on_market=calculate_metric(extract.extract_dom(c) for c in comparables),
        living_area=calculate_metric(extract.extract_sqft(c) for c in comparables),
        lot_size=calculate_metric(extract.normalized_lot_sqft(c) for c in comparables),
        acres=calculate_metric(extract.normalized_acres(c) for c in comparables),
        bedrooms=calculate_metric(extract.extract_beds(c) for c in comparables),
        bathrooms=calculate_metric(extract.extract_baths(c) for c in comparables),
        year_built=calculate_metric(extract.extract_year_built(c) for c in comparables),
    )


@dataclass(frozen=True, slots=True)
class CmaSummary:
    count: int
    avg_price: int | None
    min_price: float | None
    max_price: float | None
    avg_price_per_sqft: int | None
    avg_dom: int | None
    avg_price_per_acre: int | None
    price_range: str

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def _rounded_mean(values: list[float]) -> int | None:
    return round(sum(values) / len(values)) if values else None


def summarize(comparables: list[Mapping[str, Any]]) -> CmaSummary:
    prices = [p for p in (extract.extract_price(c) for c in comparables) if p is not None]
    ppsf = [p for p in (extract.price_per_sqft(c) for c in comparables) if p is not None]
    doms = [d for d in (extract.extract_dom(c) for c in comparables) if d is not None]
    ppa = [p for p in (extract.price_per_acre(c) for c in comparables) if p is not None]

    return CmaSummary(
        count=len(comparables),
        avg_price=_rounded_mean(prices),
        min_price=min(prices) if prices else None,
        max_price=max(prices) if prices else None,
        avg_price_per_sqft=_rounded_mean(ppsf),
        avg_dom=_rounded_mean(doms),
        avg_price_per_acre=_rounded_mean(ppa),
        price_range=(
            f"{format_price(min(prices))} - {format_price(max(prices))}" if prices else "N/A"
        ),
    )


def format_price(value: float | None) -> str:
    if value is None or math.isnan(value):
        return "N/A"
    return f"${value:,.0f}"
