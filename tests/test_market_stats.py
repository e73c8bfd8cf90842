import pytest

from comparables.models import PropertyType, Volatility
from comparables.services.market_stats import compute_market_stats
from tests.conftest import make_record


def test_statistics_for_matching_records():
    records = [
        make_record("A", price=400000, build_area=100),
        make_record("B", price=500000, build_area=125),
        make_record("C", price=900000, build_area=150),
        make_record("VILLA", property_type=PropertyType.VILLA, price=3000000),
        make_record("OTHER-CITY", city="Estepona", price=100000),
        make_record("INACTIVE", price=10, is_active=False),
    ]
    stats = compute_market_stats("marb", "apartment", records)

    assert stats.count == 3
    assert stats.average_price == pytest.approx(600000)
    assert stats.median_price == 500000
    assert stats.average_price_per_sqm == pytest.approx((4000 + 4000 + 6000) / 3, abs=0.01)
    assert stats.price_range.min == 400000
    assert stats.price_range.max == 900000
    assert stats.property_type == "apartment"


def test_no_matches_is_a_zero_count_result():
    stats = compute_market_stats("Ronda", PropertyType.VILLA, [make_record("A")])

    assert stats.count == 0
    assert stats.average_price == 0.0
    assert stats.price_range.max == 0.0
    assert stats.volatility == Volatility.INSUFFICIENT_DATA


def test_city_match_is_case_insensitive_and_partial():
    records = [make_record("A", city="Nueva Andalucía, Marbella"), make_record("B", city="MARBELLA")]
    assert compute_market_stats("Marbella", "apartment", records).count == 2


@pytest.mark.parametrize(
    "prices, expected",
    [
        ([500000, 500000, 500000], Volatility.LOW),
        ([400000, 500000, 600000], Volatility.MODERATE),
        ([100000, 500000, 1500000], Volatility.HIGH),
        ([100000, 900000], Volatility.INSUFFICIENT_DATA),
    ],
)
def test_volatility_labels(prices, expected):
    records = [make_record(f"R{i}", price=p) for i, p in enumerate(prices)]
    assert compute_market_stats("Marbella", "apartment", records).volatility == expected
