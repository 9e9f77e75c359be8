import pytest

from crypton.analytics.markers import (
    BEARISH_COLOR,
    BULLISH_COLOR,
    MarkerProjector,
    placeholder_marker,
    project_marker,
    project_markers,
)
from crypton.core.models import TradeRecord


def trade(ts, side):
    return TradeRecord(timestamp=ts, symbol="BTC/USDT", side=side, price=100.0, amount=0.1)


def test_buy_marker():
    marker = project_marker(trade(1000, "buy"))
    assert marker.time == 1
    assert marker.position == "belowBar"
    assert marker.shape == "arrowUp"
    assert marker.color == BULLISH_COLOR
    assert marker.text == "BUY"


def test_sell_marker():
    marker = project_marker(trade(1_700_000_000_500, "SELL"))
    assert marker.time == 1_700_000_000.5
    assert marker.position == "aboveBar"
    assert marker.shape == "arrowDown"
    assert marker.color == BEARISH_COLOR
    assert marker.text == "SELL"


def test_projection_preserves_length_and_order():
    trades = [trade(1000, "buy"), trade(5000, "sell"), trade(9000, "buy")]
    markers = project_markers(trades)
    assert len(markers) == len(trades)
    for m, t in zip(markers, trades):
        assert m.time == t.timestamp / 1000
    assert [m.text for m in markers] == ["BUY", "SELL", "BUY"]


def test_unknown_side_raises():
    with pytest.raises(ValueError):
        project_marker(trade(1000, "hold"))


def test_placeholder_marker():
    marker = placeholder_marker(now_secs=10_000)
    assert marker.time == 10_000 - 3600
    assert marker.text == "BUY"


class TestMarkerProjector:
    """Test marker caching and the empty-log fallback."""

    def test_empty_log_without_placeholder(self):
        assert MarkerProjector().update([]) == []

    def test_empty_log_with_placeholder(self):
        markers = MarkerProjector(placeholder=True).update([], now_secs=7200)
        assert len(markers) == 1
        assert markers[0].time == 3600

    def test_placeholder_ignored_when_trades_exist(self):
        trades = [trade(1000, "buy")]
        markers = MarkerProjector(placeholder=True).update(trades, now_secs=7200)
        assert [m.time for m in markers] == [1]

    def test_recomputes_on_reference_change(self):
        projector = MarkerProjector()
        trades = [trade(1000, "buy")]
        first = projector.update(trades)
        assert projector.update(trades) is first
        second = projector.update(trades + [trade(2000, "sell")])
        assert second is not first
        assert len(second) == 2
