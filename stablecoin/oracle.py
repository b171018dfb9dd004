"""
oracle.py - Oracle feeds and price selection for the vault

An oracle publishes data feeds: a spot feed and a moving-average feed for
the reserve asset quoted in the pegged currency. This module provides:

- PricingSource: Protocol for anything that can answer feed lookups
- StaticPricingSource: Feeds with fixed values (unit tests, setup)
- TimeSeriesPricingSource: Feed postings over time, latest at or before t
- FeedReading: One reading of both feeds, taken at operation start
- effective_price / spot_price: The price a vault decision must use
- moving_average_path: Build a moving-average feed from a spot path

Which price is used where:
    moving average  issuance, solvency checks, auction math
    spot            mint and redeem
    frozen rate     replaces the moving average once expiry is recorded
"""

from __future__ import annotations
from bisect import bisect_right
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Dict, Set, Optional, List, Tuple, Protocol, Sequence, runtime_checkable

import numpy as np

from .core import NoPriceAvailable


@runtime_checkable
class PricingSource(Protocol):
    """
    Protocol for oracle feed sources.

    `oracle` is the identity of the publisher. A vault only accepts readings
    from the oracle named in its parameters.
    """
    oracle: str

    def get_price(self, feed_name: str, timestamp: datetime) -> Optional[Decimal]:
        """Latest value of a feed at or before timestamp, None if never published."""
        ...

    def get_prices(self, feed_names: Set[str], timestamp: datetime) -> Dict[str, Decimal]:
        """Values for several feeds at a timestamp, omitting unpublished ones."""
        ...


class StaticPricingSource:
    """Feeds whose values do not depend on time."""

    def __init__(self, prices: Dict[str, Decimal], oracle: str = "oracle"):
        self.oracle = oracle
        self.prices = {feed: Decimal(str(value)) for feed, value in prices.items()}

    def get_price(self, feed_name: str, timestamp: datetime) -> Optional[Decimal]:
        return self.prices.get(feed_name)

    def get_prices(self, feed_names: Set[str], timestamp: datetime) -> Dict[str, Decimal]:
        return {feed: self.prices[feed] for feed in feed_names if feed in self.prices}

    def __repr__(self):
        return f"StaticPricingSource({len(self.prices)} feeds, oracle={self.oracle})"


class TimeSeriesPricingSource:
    """
    Feed postings over time.

    get_price returns the most recent posting at or before the requested
    time, so a feed published at t is visible to every operation at t or later.

    Examples:
        source = TimeSeriesPricingSource(oracle="oracle")
        source.add_prices({"GBYTE_USD": Decimal("20"), "GBYTE_USD_MA": Decimal("20")}, t0)

        source = TimeSeriesPricingSource({
            "GBYTE_USD": [(t0, Decimal("20")), (t1, Decimal("17"))],
        }, oracle="oracle")
    """

    def __init__(
        self,
        price_paths: Optional[Dict[str, List[Tuple[datetime, Decimal]]]] = None,
        oracle: str = "oracle",
    ):
        self.oracle = oracle
        self.price_history: Dict[str, List[Tuple[datetime, Decimal]]] = {}

        if price_paths:
            for feed, path in price_paths.items():
                if not path:
                    continue
                self.price_history[feed] = sorted(
                    ((ts, Decimal(str(price))) for ts, price in path),
                    key=lambda x: x[0],
                )

    def add_price(self, feed_name: str, timestamp: datetime, price: Decimal):
        """Post a value to a feed at a specific time."""
        history = self.price_history.setdefault(feed_name, [])
        history.append((timestamp, Decimal(str(price))))
        history.sort(key=lambda x: x[0])

    def add_prices(self, prices: Dict[str, Decimal], timestamp: datetime):
        """Post several feeds at the same time, like one data-feed message."""
        for feed, price in prices.items():
            self.add_price(feed, timestamp, price)

    def get_price(self, feed_name: str, timestamp: datetime) -> Optional[Decimal]:
        history = self.price_history.get(feed_name)
        if not history:
            return None

        timestamps = [ts for ts, _ in history]
        idx = bisect_right(timestamps, timestamp)
        if idx == 0:
            return None
        return history[idx - 1][1]

    def get_prices(self, feed_names: Set[str], timestamp: datetime) -> Dict[str, Decimal]:
        prices = {}
        for feed in feed_names:
            price = self.get_price(feed, timestamp)
            if price is not None:
                prices[feed] = price
        return prices

    def __repr__(self):
        total_observations = sum(len(history) for history in self.price_history.values())
        return (
            f"TimeSeriesPricingSource({len(self.price_history)} feeds, "
            f"{total_observations} observations, oracle={self.oracle})"
        )


# ============================================================================
# READINGS AND PRICE SELECTION
# ============================================================================

@dataclass(frozen=True, slots=True)
class FeedReading:
    """
    Both feeds read once at operation start.

    A None value means the feed has never published (or the reading came
    from an oracle the vault does not trust).
    """
    spot: Optional[Decimal] = None
    moving_average: Optional[Decimal] = None

    def __post_init__(self):
        if self.spot is not None and not isinstance(self.spot, Decimal):
            object.__setattr__(self, 'spot', Decimal(str(self.spot)))
        if self.moving_average is not None and not isinstance(self.moving_average, Decimal):
            object.__setattr__(self, 'moving_average', Decimal(str(self.moving_average)))


def read_feeds(source: Optional[PricingSource], params, timestamp: datetime) -> FeedReading:
    """
    Read the vault's spot and moving-average feeds from a pricing source.

    Returns an empty reading if there is no source or the source belongs to
    a different oracle than the one in the vault parameters.
    """
    if source is None or getattr(source, 'oracle', None) != params.oracle:
        return FeedReading()
    return FeedReading(
        spot=source.get_price(params.feed_name, timestamp),
        moving_average=source.get_price(params.ma_feed_name, timestamp),
    )


def reading_from_prices(prices: Dict[str, Decimal], params) -> FeedReading:
    """Build a reading from a feed -> value mapping (as passed to keepers)."""
    return FeedReading(
        spot=prices.get(params.feed_name),
        moving_average=prices.get(params.ma_feed_name),
    )


def _usable(price: Optional[Decimal], feed_name: str) -> Decimal:
    if price is None or price <= 0:
        raise NoPriceAvailable(f"no price available from feed {feed_name}")
    return price


def effective_price(params, state, reading: FeedReading) -> Decimal:
    """
    Price for issuance, solvency and auction decisions.

    The frozen expiry rate once recorded, otherwise the moving average.

    Raises:
        NoPriceAvailable: If no rate is frozen and the moving-average feed
            has not published a positive value
    """
    if state.expiry_exchange_rate is not None:
        return state.expiry_exchange_rate
    return _usable(reading.moving_average, params.ma_feed_name)


def spot_price(params, reading: FeedReading) -> Decimal:
    """
    Price for mint and redeem.

    Raises:
        NoPriceAvailable: If the spot feed has not published a positive value
    """
    return _usable(reading.spot, params.feed_name)


def moving_average_path(
    spot_path: Sequence[Tuple[datetime, Decimal]],
    window: int,
) -> List[Tuple[datetime, Decimal]]:
    """
    Trailing moving average of a spot path.

    Each point averages the last `window` spot values (fewer at the start of
    the path). Arithmetic stays in Decimal: the values are held in an object
    array so numpy's cumulative sum does not go through floats.

    Example:
        >>> path = [(t0, Decimal("20")), (t1, Decimal("10"))]
        >>> moving_average_path(path, 2)
        [(t0, Decimal('20')), (t1, Decimal('15'))]
    """
    if window < 1:
        raise ValueError(f"window must be at least 1, got {window}")
    if not spot_path:
        return []

    ordered = sorted(spot_path, key=lambda x: x[0])
    values = np.array([Decimal(str(price)) for _, price in ordered], dtype=object)
    cumulative = np.concatenate((np.array([Decimal(0)], dtype=object), np.cumsum(values)))

    averages = []
    for i, (ts, _) in enumerate(ordered):
        start = max(0, i + 1 - window)
        count = i + 1 - start
        averages.append((ts, (cumulative[i + 1] - cumulative[start]) / count))
    return averages


def publish_path(
    source: TimeSeriesPricingSource,
    params,
    spot_path: Sequence[Tuple[datetime, Decimal]],
    window: int,
) -> None:
    """Post a spot path and its moving average to the vault's two feeds."""
    for (ts, spot), (_, average) in zip(
        sorted(spot_path, key=lambda x: x[0]), moving_average_path(spot_path, window)
    ):
        source.add_prices({params.feed_name: spot, params.ma_feed_name: average}, ts)
