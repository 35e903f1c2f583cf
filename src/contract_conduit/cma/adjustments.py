"""
contract_conduit.cma.adjustments

Price adjustment math: bring each comparable's sale price in line with the subject.

Responsibilities:
- Default per-unit adjustment rates.
- Per-comparable overrides and custom line items.
- Compute itemised adjustments, totals and adjusted prices.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel, Field

from contract_conduit.cma import extract

# Lot size deltas smaller than this many dollars are noise and not itemised.
LOT_ADJUSTMENT_THRESHOLD = 100


class AdjustmentRates(BaseModel):
    sqft_per_unit: float = 50
    bedroom_value: float = 10_000
    bathroom_value: float = 7_500
    pool_value: float = 25_000
    garage_per_space: float = 5_000
    year_built_per_year: float = 1_000
    lot_size_per_sqft: float = 2


class CustomAdjustment(BaseModel):
    name: str = Field(min_length=1)
    value: float


class CompAdjustmentOverrides(BaseModel):
    sqft: float | None = None
    bedrooms: float | None = None
    bathrooms: float | None = None
    pool: float | None = None
    garage: float | None = None
    year_built: float | None = None
    lot_size: float | None = None
    custom: list[CustomAdjustment] = Field(default_factory=list)


class AdjustmentItem(BaseModel):
    name: str
    value: float
    description: str | None = None


class CompAdjustmentResult(BaseModel):
    comp_id: str
    comp_address: str
    sale_price: float
    adjustments: list[AdjustmentItem]
    total_adjustment: float
    adjusted_price: float


class CmaAdjustmentsData(BaseModel):
    """
    Shape persisted in `Cma.adjustments`.
    """

    rates: AdjustmentRates = Field(default_factory=AdjustmentRates)
    comp_adjustments: dict[str, CompAdjustmentOverrides] = Field(default_factory=dict)
    enabled: bool = True


def has_pool(prop: Mapping[str, Any]) -> bool:
    features = prop.get("poolFeatures")
    if not features:
        return False
    if isinstance(features, list):
        return not all(str(f).strip().lower() == "none" for f in features)
    return str(features).strip().lower() not in {"none", ""}


def _num(prop: Mapping[str, Any], *fields: str) -> float:
    for field in fields:
        number = extract.to_number(prop.get(field))
        if number:
            return number
    return 0.0


def _signed(value: float) -> str:
    text = f"{value:,.0f}" if float(value).is_integer() else f"{value:,}"
    return f"+{text}" if value > 0 else text


def calculate_adjustments(
    subject: Mapping[str, Any],
    comp: Mapping[str, Any],
    rates: AdjustmentRates | None = None,
    overrides: CompAdjustmentOverrides | None = None,
) -> CompAdjustmentResult:
    rates = rates or AdjustmentRates()
    overrides = overrides or CompAdjustmentOverrides()
    items: list[AdjustmentItem] = []

    def add(name: str, value: float, description: str | None = None) -> None:
        items.append(AdjustmentItem(name=name, value=value, description=description))

    sqft_diff = _num(subject, "livingArea", "sqft") - _num(comp, "livingArea", "sqft")
    sqft_adj = overrides.sqft if overrides.sqft is not None else sqft_diff * rates.sqft_per_unit
    if sqft_adj != 0:
        add("Sq Ft", sqft_adj, f"{_signed(sqft_diff)} sqft @ ${rates.sqft_per_unit:,.0f}/sqft")

    bed_diff = _num(subject, "bedroomsTotal", "bedrooms", "beds") - _num(
        comp, "bedroomsTotal", "bedrooms", "beds"
    )
    bed_adj = (
        overrides.bedrooms if overrides.bedrooms is not None else bed_diff * rates.bedroom_value
    )
    if bed_adj != 0:
        add("Beds", bed_adj, f"{_signed(bed_diff)} beds @ ${rates.bedroom_value:,.0f}/bed")

    bath_diff = _num(subject, "bathroomsTotal", "bathrooms", "baths") - _num(
        comp, "bathroomsTotal", "bathrooms", "baths"
    )
    bath_adj = (
        overrides.bathrooms if overrides.bathrooms is not None else bath_diff * rates.bathroom_value
    )
    if bath_adj != 0:
        add("Baths", bath_adj, f"{_signed(bath_diff)} baths @ ${rates.bathroom_value:,.0f}/bath")

    subject_pool = has_pool(subject)
    if subject_pool != has_pool(comp):
        default_pool = rates.pool_value if subject_pool else -rates.pool_value
        pool_adj = overrides.pool if overrides.pool is not None else default_pool
        add("Pool", pool_adj, "Subject has pool" if subject_pool else "Comp has pool")

    garage_diff = _num(subject, "garageSpaces") - _num(comp, "garageSpaces")
    garage_adj = (
        overrides.garage if overrides.garage is not None else garage_diff * rates.garage_per_space
    )
    if garage_adj != 0:
        add(
            "Garage",
            garage_adj,
            f"{_signed(garage_diff)} spaces @ ${rates.garage_per_space:,.0f}/space",
        )

    subject_year = _num(subject, "yearBuilt")
    comp_year = _num(comp, "yearBuilt")
    if subject_year > 0 and comp_year > 0:
        year_diff = subject_year - comp_year
        year_adj = (
            overrides.year_built
            if overrides.year_built is not None
            else year_diff * rates.year_built_per_year
        )
        if year_adj != 0:
            add(
                "Year Built",
                year_adj,
                f"{_signed(year_diff)} years @ ${rates.year_built_per_year:,.0f}/year",
            )

    lot_diff = _num(subject, "lotSizeSquareFeet", "lotSizeArea") - _num(
        comp, "lotSizeSquareFeet", "lotSizeArea"
    )
    lot_adj = (
        overrides.lot_size
        if overrides.lot_size is not None
        else lot_diff * rates.lot_size_per_sqft
    )
    if abs(lot_adj) > LOT_ADJUSTMENT_THRESHOLD:
        add("Lot Size", lot_adj, f"{_signed(lot_diff)} sqft @ ${rates.lot_size_per_sqft:g}/sqft")

    for custom in overrides.custom:
        add(custom.name, custom.value)

    total = sum(item.value for item in items)
    sale_price = _num(comp, "closePrice", "soldPrice", "listPrice")
    return CompAdjustmentResult(
        comp_id=extract.property_id(comp),
        comp_address=str(comp.get("streetAddress") or comp.get("address") or "Unknown"),
        sale_price=sale_price,
        adjustments=items,
        total_adjustment=total,
        adjusted_price=sale_price + total,
    )


def calculate_all_adjustments(
    subject: Mapping[str, Any],
    comparables: list[Mapping[str, Any]],
    rates: AdjustmentRates | None = None,
    overrides_by_id: Mapping[str, CompAdjustmentOverrides] | None = None,
) -> list[CompAdjustmentResult]:
    overrides_by_id = overrides_by_id or {}
    return [
        calculate_adjustments(subject, comp, rates, overrides_by_id.get(extract.property_id(comp)))
        for comp in comparables
    ]
