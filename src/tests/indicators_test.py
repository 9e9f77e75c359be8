import pytest

from crypton.analytics.indicators import (
    IndicatorEngine,
    calculate_ema,
    ema_smoothing,
    ema_step,
    extend_ema,
)
from crypton.core.models import Candle

from conftest import make_candles


def reference_ema(closes, period):
    k = 2 / (period + 1)
    ema = closes[0]
    out = []
    for close in closes:
        ema = close * k + ema * (1 - k)
        out.append(ema)
    return out


class TestCalculateEma:
    """Test the EMA recursion and its edge cases."""

    def test_two_candle_scenario(self):
        candles = [
            Candle(time=0, open=10, high=12, low=9, close=11, volume=100),
            Candle(time=1, open=11, high=13, low=10, close=12, volume=150),
        ]
        ema = calculate_ema(candles, 7)
        assert [p.time for p in ema] == [0, 1]
        assert ema[0].value == 11
        assert ema[1].value == pytest.approx(11.25)

    def test_seed_is_first_close(self):
        candles = make_candles([42.0, 40.0, 45.0])
        for period in (7, 25, 99):
            assert calculate_ema(candles, period)[0].value == 42.0

    def test_matches_reference_recursion(self):
        closes = [100 + (i % 7) * 1.5 - (i % 3) for i in range(150)]
        candles = make_candles(closes)
        for period in (7, 25, 99):
            values = [p.value for p in calculate_ema(candles, period)]
            assert values == pytest.approx(reference_ema(closes, period), rel=1e-12)

    def test_length_and_alignment(self):
        candles = make_candles([1.0, 2.0, 3.0, 4.0], start=1_700_000_000, step=900)
        ema = calculate_ema(candles, 25)
        assert len(ema) == len(candles)
        assert [p.time for p in ema] == [c.time for c in candles]

    def test_empty_series(self):
        assert calculate_ema([], 7) == []

    def test_deterministic(self):
        candles = make_candles([5.0, 6.0, 4.0, 7.0, 8.0])
        assert calculate_ema(candles, 7) == calculate_ema(candles, 7)

    def test_invalid_period(self):
        with pytest.raises(ValueError):
            calculate_ema(make_candles([1.0]), 0)


def test_ema_step_matches_formula():
    assert ema_smoothing(7) == 0.25
    assert ema_step(11, 12, 7) == pytest.approx(11.25)


class TestExtendEma:
    """Test the incremental path against full recomputation."""

    def test_appended_candles(self):
        closes = [100.0 + i * 0.7 for i in range(40)]
        full = make_candles(closes)
        prefix = full[:30]
        existing = calculate_ema(prefix, 7)
        extended = extend_ema(existing, full, 7)
        expected = calculate_ema(full, 7)
        assert [p.time for p in extended] == [p.time for p in expected]
        assert [p.value for p in extended] == pytest.approx([p.value for p in expected], rel=1e-12)

    def test_updated_last_candle(self):
        closes = [10.0, 11.0, 12.0, 13.0]
        existing = calculate_ema(make_candles(closes), 7)
        updated = make_candles(closes[:-1] + [15.0])
        extended = extend_ema(existing, updated, 7)
        assert extended[-1].value == pytest.approx(calculate_ema(updated, 7)[-1].value)
        assert extended[:3] == existing[:3]

    def test_replaced_series_falls_back_to_full(self):
        existing = calculate_ema(make_candles([1.0, 2.0, 3.0], start=0), 7)
        other = make_candles([9.0, 8.0, 7.0, 6.0], start=10_000)
        assert extend_ema(existing, other, 7) == calculate_ema(other, 7)

    def test_empty_existing(self):
        candles = make_candles([1.0, 2.0])
        assert extend_ema([], candles, 7) == calculate_ema(candles, 7)


class TestIndicatorEngine:
    """Test recomputation on candle-series change."""

    def test_default_periods(self):
        engine = IndicatorEngine()
        series = engine.update(make_candles([1.0, 2.0, 3.0]))
        assert sorted(series) == [7, 25, 99]
        assert all(len(s) == 3 for s in series.values())

    def test_recomputes_only_when_reference_changes(self):
        engine = IndicatorEngine()
        candles = make_candles([1.0, 2.0, 3.0])
        first = engine.update(candles)
        again = engine.update(candles)
        assert again is first
        assert engine.recompute_count == 1

        replaced = list(candles) + make_candles([4.0], start=180)
        engine.update(replaced)
        assert engine.recompute_count == 2
        assert len(engine.series[7]) == 4

    def test_appended_bars_extend_series(self):
        engine = IndicatorEngine(periods=(3, 7))
        closes = [10.0, 11.0, 12.0, 11.5, 13.0]
        engine.update(make_candles(closes))

        longer = make_candles(closes + [14.0, 12.5])
        series = engine.update(longer)

        assert engine.extend_count == 1
        assert series[3] == calculate_ema(longer, 3)
        assert series[7] == calculate_ema(longer, 7)

    def test_revised_last_bar_extends_series(self):
        engine = IndicatorEngine(periods=(3,))
        engine.update(make_candles([10.0, 11.0, 12.0]))
        revised = make_candles([10.0, 11.0, 15.0])
        assert engine.update(revised)[3] == calculate_ema(revised, 3)
        assert engine.extend_count == 1

    def test_shifted_window_recomputes_in_full(self):
        engine = IndicatorEngine(periods=(3,))
        engine.update(make_candles([10.0, 11.0, 12.0]))
        shifted = make_candles([11.0, 12.0, 13.0], start=60)
        assert engine.update(shifted)[3] == calculate_ema(shifted, 3)
        assert engine.extend_count == 0

    def test_empty_candles(self):
        engine = IndicatorEngine(periods=(7,))
        assert engine.update([]) == {7: []}

    def test_rejects_bad_period(self):
        with pytest.raises(ValueError):
            IndicatorEngine(periods=(7, 0))
