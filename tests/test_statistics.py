from __future__ import annotations

from contract_conduit.cma.statistics import (
    EMPTY_METRIC,
    calculate_metric,
    calculate_statistics,
    format_price,
    summarize,
)

COMPS = [
    {"soldPrice": 400_000, "livingArea": 2000, "daysOnMarket": 10, "bedrooms": 3, "yearBuilt": 2001},
    {"soldPrice": 500_000, "livingArea": 2500, "daysOnMarket": 20, "bedrooms": 4, "yearBuilt": 2011},
    {"listPrice": 600_000, "daysOnMarket": 30, "bedrooms": 4},
]


def test_metric_odd_and_even_median() -> None:
    odd = calculate_metric([3, 1, 2])
    assert (odd.min, odd.max, odd.average, odd.median) == (1, 3, 2, 2)

    even = calculate_metric([4, 1, 3, 2])
    assert even.median == 2.5
    assert even.range == (1, 4)


def test_metric_ignores_missing_values() -> None:
    metric = calculate_metric([None, float("nan"), 5, True])
    assert metric.min == metric.max == 5
    assert calculate_metric([]) == EMPTY_METRIC
    assert calculate_metric([None]).to_dict() == {
        "range": {"min": 0.0, "max": 0.0},
        "average": 0.0,
        "median": 0.0,
    }


def test_statistics_for_comparables() -> None:
    stats = calculate_statistics(COMPS)
    assert stats is not None
    assert stats.price.average == 500_000
    # The third comp has no living area so it is left out of $/sqft.
    assert stats.price_per_sqft.min == stats.price_per_sqft.max == 200
    assert stats.days_on_market.median == 20
    assert stats.bedrooms.median == 4
    assert stats.year_built.average == 2006
    assert set(stats.to_dict()) == {
        "price",
        "price_per_sqft",
        "days_on_market",
        "living_area",
        "lot_size",
        "acres",
        "bedrooms",
        "bathrooms",
        "year_built",
    }


def test_statistics_empty_list() -> None:
    assert calculate_statistics([]) is None


def test_summary() -> None:
    summary = summarize(COMPS)
    assert summary.count == 3
    assert summary.avg_price == 500_000
    assert summary.avg_price_per_sqft == 200
    assert summary.avg_dom == 20
    assert summary.avg_price_per_acre is None
    assert summary.price_range == "$400,000 - $600,000"

    empty = summarize([])
    assert empty.count == 0
    assert empty.price_range == "N/A"


def test_format_price() -> None:
    assert format_price(1234.4) == "$1,234"
    assert format_price(None) == "N/A"
