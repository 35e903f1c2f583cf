from __future__ import annotations

from contract_conduit.cma.adjustments import (
    AdjustmentRates,
    CmaAdjustmentsData,
    CompAdjustmentOverrides,
    CustomAdjustment,
    calculate_adjustments,
    calculate_all_adjustments,
    has_pool,
)

SUBJECT = {
    "mlsNumber": "SUBJ",
    "livingArea": 2000,
    "bedroomsTotal": 3,
    "bathroomsTotal": 2,
    "garageSpaces": 2,
    "yearBuilt": 2010,
    "lotSizeSquareFeet": 8000,
    "poolFeatures": ["In Ground"],
}

COMP = {
    "mlsNumber": "C1",
    "streetAddress": "12 Oak Ln",
    "closePrice": 400_000,
    "livingArea": 1800,
    "bedroomsTotal": 3,
    "bathroomsTotal": 2.5,
    "garageSpaces": 2,
    "yearBuilt": 2005,
    "lotSizeSquareFeet": 8040,
    "poolFeatures": ["None"],
}


def _by_name(result) -> dict[str, float]:
    return {item.name: item.value for item in result.adjustments}


def test_default_rates() -> None:
    result = calculate_adjustments(SUBJECT, COMP)

    # Beds and garage match; the 40 sqft lot gap is under the $100 threshold.
    assert _by_name(result) == {
        "Sq Ft": 10_000,
        "Baths": -3_750,
        "Pool": 25_000,
        "Year Built": 5_000,
    }
    assert result.comp_id == "C1"
    assert result.comp_address == "12 Oak Ln"
    assert result.total_adjustment == 36_250
    assert result.adjusted_price == 436_250


def test_overrides_and_custom_items() -> None:
    overrides = CompAdjustmentOverrides(
        sqft=0,
        pool=12_000,
        custom=[CustomAdjustment(name="Kitchen remodel", value=-8_000)],
    )
    result = calculate_adjustments(SUBJECT, COMP, overrides=overrides)
    values = _by_name(result)

    assert "Sq Ft" not in values
    assert values["Pool"] == 12_000
    assert values["Kitchen remodel"] == -8_000


def test_lot_adjustment_above_threshold() -> None:
    comp = {**COMP, "lotSizeSquareFeet": 7000}
    result = calculate_adjustments(SUBJECT, comp, AdjustmentRates(lot_size_per_sqft=1))
    assert _by_name(result)["Lot Size"] == 1000


def test_year_built_skipped_when_missing() -> None:
    comp = {k: v for k, v in COMP.items() if k != "yearBuilt"}
    assert "Year Built" not in _by_name(calculate_adjustments(SUBJECT, comp))


def test_comp_with_pool_is_adjusted_down() -> None:
    subject = {**SUBJECT, "poolFeatures": None}
    comp = {**COMP, "poolFeatures": "Heated"}
    assert _by_name(calculate_adjustments(subject, comp))["Pool"] == -25_000


def test_has_pool() -> None:
    assert has_pool({"poolFeatures": ["None"]}) is False
    assert has_pool({"poolFeatures": "In Ground"}) is True
    assert has_pool({}) is False


def test_all_adjustments_pick_overrides_by_comp_id() -> None:
    data = CmaAdjustmentsData.model_validate(
        {"comp_adjustments": {"C2": {"sqft": 1}}, "rates": {"sqft_per_unit": 100}}
    )
    comps = [COMP, {**COMP, "mlsNumber": "C2"}]
    results = calculate_all_adjustments(SUBJECT, comps, data.rates, data.comp_adjustments)

    assert _by_name(results[0])["Sq Ft"] == 20_000
    assert _by_name(results[1])["Sq Ft"] == 1
