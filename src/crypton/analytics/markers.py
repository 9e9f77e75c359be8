"""
Trade-log to chart-marker projection.

One marker per trade, in trade order. Buys sit below the bar with an
up arrow, sells above with a down arrow. Marker time is the trade
timestamp in seconds, the renderer's time unit.
"""

from __future__ import annotations

import time
from typing import Optional, Sequence

from crypton.core.models import Marker, TradeRecord

BULLISH_COLOR = "#0ecb81"
BEARISH_COLOR = "#f6465d"

_PLACEHOLDER_AGE_SECS = 3600

_STYLE = {
    "buy": ("belowBar", BULLISH_COLOR, "arrowUp"),
    "sell": ("aboveBar", BEARISH_COLOR, "arrowDown"),
}


def project_marker(trade: TradeRecord) -> Marker:
    side = trade.side.lower()
    try:
        position, color, shape = _STYLE[side]
    except KeyError:
        raise ValueError(f"Unknown trade side: {trade.side!r}") from None
    return Marker(
        time=trade.timestamp / 1000,
        position=position,
        color=color,
        shape=shape,
        text=side.upper(),
    )


def project_markers(trades: Sequence[TradeRecord]) -> list[Marker]:
    return [project_marker(t) for t in trades]


def placeholder_marker(now_secs: Optional[float] = None) -> Marker:
    """Demo BUY marker an hour before *now_secs*, for an empty trade log."""
    now_secs = time.time() if now_secs is None else now_secs
    return Marker(
        time=int(now_secs) - _PLACEHOLDER_AGE_SECS,
        position="belowBar",
        color=BULLISH_COLOR,
        shape="arrowUp",
        text="BUY",
    )


class MarkerProjector:
    """
    Owns the marker sequence derived from the trade log.

    Parameters
    ----------
    placeholder : bool
        Emit :func:`placeholder_marker` while the trade log is empty.
    """

    def __init__(self, placeholder: bool = False) -> None:
        self.placeholder = placeholder
        self._source: Optional[Sequence[TradeRecord]] = None
        self._markers: list[Marker] = []

    def update(
        self,
        trades: Sequence[TradeRecord],
        now_secs: Optional[float] = None,
    ) -> list[Marker]:
        if not trades and self.placeholder:
            return [placeholder_marker(now_secs)]
        if trades is not self._source:
            self._markers = project_markers(trades)
            self._source = trades
        return self._markers
