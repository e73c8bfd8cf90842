from typing import Iterable, Union

import pandas as pd
from structlog import get_logger

from comparables.models.market import MarketStatistics, PriceRange, Volatility
from comparables.models.property import PropertyRecord, PropertyType
from comparables.utils.text import contains_either_way

logger = get_logger(__name__)

MIN_PRICES_FOR_VOLATILITY = 3
# Coefficient of variation thresholds
LOW_VOLATILITY_CV = 0.15
MODERATE_VOLATILITY_CV = 0.30


def classify_volatility(prices: pd.Series) -> Volatility:
    if len(prices) < MIN_PRICES_FOR_VOLATILITY:
        return Volatility.INSUFFICIENT_DATA
    mean = prices.mean()
    if not mean:
        return Volatility.INSUFFICIENT_DATA
    # Population standard deviation
    cv = prices.std(ddof=0) / mean
    if cv < LOW_VOLATILITY_CV:
        return Volatility.LOW
    if cv < MODERATE_VOLATILITY_CV:
        return Volatility.MODERATE
    return Volatility.HIGH


def compute_market_stats(
    city: str,
    property_type: Union[PropertyType, str],
    records: Iterable[PropertyRecord],
) -> MarketStatistics:
    """
    Descriptive price statistics for active listings of one type in one city.
    City matching is case-insensitive and partial; no matches yields a zero-count result.
    """
    wanted = PropertyType.parse(property_type)
    rows = [
        {"price": r.price, "build_area": r.build_area}
        for r in records
        if r.is_active
        and r.price > 0
        and r.property_type == wanted
        and contains_either_way(city, r.city)
    ]
    empty = MarketStatistics(city=city, property_type=wanted.value)
    if not rows:
        logger.info("market_stats_empty", city=city, property_type=wanted.value)
        return empty

    df = pd.DataFrame(rows)
    prices = df["price"]
    per_sqm = (df["price"] / df["build_area"]).where(df["build_area"] > 0).dropna()

    stats = MarketStatistics(
        city=city,
        property_type=wanted.value,
        count=len(df),
        average_price=round(float(prices.mean()), 2),
        median_price=round(float(prices.median()), 2),
        average_price_per_sqm=round(float(per_sqm.mean()), 2) if not per_sqm.empty else 0.0,
        price_range=PriceRange(min=float(prices.min()), max=float(prices.max())),
        volatility=classify_volatility(prices),
    )
    logger.debug("market_stats_computed", city=city, property_type=wanted.value, count=stats.count)
    return stats
