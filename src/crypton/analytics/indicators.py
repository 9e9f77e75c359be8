"""Indicator Functions

Exponential moving averages over a candle series, as drawn on the chart
(EMA 7, 25 and 99). The series is seeded with the first close and then
follows ``ema = close * k + ema * (1 - k)`` with ``k = 2 / (period + 1)``,
which is pandas ``ewm(span=period, adjust=False)``. ``ema_step`` is that
recurrence for a single close.
"""

from typing import Dict, Iterable, List, Optional, Sequence

import pandas as pd

from crypton.core.models import Candle, IndicatorPoint

DEFAULT_EMA_PERIODS = (7, 25, 99)


def ema_smoothing(period: int) -> float:
    """Return the smoothing factor ``k = 2 / (period + 1)``."""
    if period < 1:
        raise ValueError(f"EMA period must be >= 1, got {period}")
    return 2 / (period + 1)


def ema_step(prev: float, close: float, period: int) -> float:
    """Advance an EMA by one close."""
    k = ema_smoothing(period)
    return close * k + prev * (1 - k)


def _ewm(values: Sequence[float], period: int) -> List[float]:
    return pd.Series(values, dtype="float64").ewm(span=period, adjust=False).mean().tolist()


def calculate_ema(candles: Sequence[Candle], period: int) -> List[IndicatorPoint]:
    """Calculate the EMA of candle closes.

    Args:
        candles: Candles ordered by time
        period: EMA period (7, 25, 99 on the chart)

    Returns:
        One IndicatorPoint per candle, aligned on ``time``. Empty input
        gives an empty series since there is no seed.
    """
    if period < 1:
        raise ValueError(f"EMA period must be >= 1, got {period}")
    if not candles:
        return []
    values = _ewm([c.close for c in candles], period)
    return [IndicatorPoint(time=c.time, value=v) for c, v in zip(candles, values)]


def extend_ema(
    existing: Sequence[IndicatorPoint],
    candles: Sequence[Candle],
    period: int,
) -> List[IndicatorPoint]:
    """Extend an EMA computed over a prefix of *candles* to the full series.

    Only the new tail is computed, seeded from the last existing value, so
    the result equals ``calculate_ema(candles, period)``. When *existing*
    does not line up with the start of *candles* (a replaced series, a
    changed bar) it falls back to full recomputation.

    Args:
        existing: Series previously returned for a prefix of *candles*
        candles: The current candle series
        period: EMA period

    Returns:
        EMA series aligned with *candles*
    """
    n = len(existing)
    if n < 2 or n > len(candles) or existing[-1].time != candles[n - 1].time:
        return calculate_ema(candles, period)

    # The last existing bar may still have been forming; recompute it too.
    seed_index = n - 1
    seed = existing[seed_index - 1].value
    tail = candles[seed_index:]
    values = _ewm([seed] + [c.close for c in tail], period)[1:]
    return list(existing[:seed_index]) + [
        IndicatorPoint(time=c.time, value=v) for c, v in zip(tail, values)
    ]


class IndicatorEngine:
    """
    Owns the EMA series derived from the store's candle series.

    The series are recomputed whenever the candle list object changes
    (the store replaces it on every pull) and reused otherwise. When the
    new list only appends bars to the previous one, or revises its last
    bar, the series are extended instead of rebuilt.
    """

    def __init__(self, periods: Iterable[int] = DEFAULT_EMA_PERIODS) -> None:
        self.periods = tuple(periods)
        for period in self.periods:
            ema_smoothing(period)
        self._source: Optional[Sequence[Candle]] = None
        self._series: Dict[int, List[IndicatorPoint]] = {p: [] for p in self.periods}
        self.recompute_count = 0
        self.extend_count = 0

    def update(self, candles: Sequence[Candle]) -> Dict[int, List[IndicatorPoint]]:
        if candles is not self._source:
            if self._extends(candles):
                self._series = {p: extend_ema(self._series[p], candles, p) for p in self.periods}
                self.extend_count += 1
            else:
                self._series = {p: calculate_ema(candles, p) for p in self.periods}
            self._source = candles
            self.recompute_count += 1
        return self._series

    def _extends(self, candles: Sequence[Candle]) -> bool:
        prev = self._source
        if not prev or len(candles) < len(prev):
            return False
        # Every bar but the last previous one must be unchanged.
        return list(candles[:len(prev) - 1]) == list(prev[:-1])

    @property
    def series(self) -> Dict[int, List[IndicatorPoint]]:
        return self._series
