import sys
from pathlib import Path
root = Path(__file__).resolve().parents[1]
if str(root) not in sys.path:
    sys.path.insert(0, str(root))

from datetime import datetime, timedelta, timezone

import pytest

from helpers import flat_series, series_from_rows
from models.signal import Direction, SetupKind
from models.structures import Bias, FairValueGap, OrderBlock, SwingPoint, ZoneType
from strategies.ict import (
    detect_fair_value_gaps,
    detect_ict_signals,
    detect_order_blocks,
    find_liquidity_zones,
    find_swing_points,
    market_structure,
)

TS = datetime(2024, 1, 2, tzinfo=timezone.utc)


def _rows_from_closes(closes):
    rows, prev = [], closes[0]
    for c in closes:
        rows.append((prev, max(prev, c) + 0.00005, min(prev, c) - 0.00005, c))
        prev = c
    return rows


@pytest.mark.parametrize("sign,expected", [(1, ZoneType.BULLISH), (-1, ZoneType.BEARISH)])
def test_order_block_before_displacement(sign, expected):
    # 1-pip chop, one 10-pip displacement from bar 29 to bar 30, then chop again
    closes = [1.1000 + 0.0001 * (i % 2) for i in range(30)]
    jump = closes[-1] + sign * 0.0010
    closes.append(jump)
    closes += [jump - sign * 0.0001 * (i % 2) for i in range(1, 20)]
    series = series_from_rows(_rows_from_closes(closes))
    blocks = detect_order_blocks(series, lookback=10)
    assert len(blocks) == 1
    ob = blocks[0]
    assert ob.series_index == 29
    assert ob.type is expected
    assert ob.high == series[29].high and ob.low == series[29].low
    assert ob.strength == pytest.approx(10.0, rel=1e-3)


def test_order_blocks_keep_latest():
    closes = []
    price = 1.1000
    for i in range(200):
        # every 20th bar is a 10-pip displacement
        price += 0.0010 if i % 20 == 19 else (0.0001 if i % 2 else -0.0001)
        closes.append(price)
    series = series_from_rows(_rows_from_closes(closes))
    all_blocks = detect_order_blocks(series, lookback=10, keep=0)
    last_two = detect_order_blocks(series, lookback=10, keep=2)
    assert len(all_blocks) > 2
    assert last_two == all_blocks[-2:]


def test_order_blocks_need_enough_bars():
    assert detect_order_blocks(flat_series(10), lookback=20) == []


def test_bullish_fair_value_gap():
    series = series_from_rows([
        (1.1000, 1.1005, 1.0995, 1.1003),
        (1.1004, 1.1030, 1.1003, 1.1028),
        (1.1028, 1.1032, 1.1020, 1.1030),
    ])
    gaps = detect_fair_value_gaps(series, min_pips=10)
    assert len(gaps) == 1
    g = gaps[0]
    assert g.type is ZoneType.BULLISH
    assert g.bottom == 1.1005 and g.top == 1.1020
    assert g.series_index == 1
    assert g.timestamp == series[1].timestamp
    assert g.size_pips == pytest.approx(15.0)
    # below the minimum size
    assert detect_fair_value_gaps(series, min_pips=20) == []


def test_bearish_fair_value_gap():
    series = series_from_rows([
        (1.1030, 1.1035, 1.1025, 1.1027),
        (1.1026, 1.1027, 1.1000, 1.1002),
        (1.1002, 1.1010, 1.0998, 1.1000),
    ])
    gaps = detect_fair_value_gaps(series, min_pips=10)
    assert [(g.type, g.top, g.bottom) for g in gaps] == [(ZoneType.BEARISH, 1.1025, 1.1010)]


def test_swing_high_at_peak():
    prices = [1.1000 + 0.0001 * (10 - abs(i - 10)) for i in range(21)]
    series = series_from_rows([(p, p + 0.0002, p - 0.0002, p) for p in prices])
    swings = find_swing_points(series, lookback=5)
    assert [(s.series_index, s.kind) for s in swings] == [(10, "high")]
    assert swings[0].price == pytest.approx(1.1012)


def _swings(highs, lows):
    out = []
    for i, (h, l) in enumerate(zip(highs, lows)):
        out.append(SwingPoint(2 * i, "high", h, TS))
        out.append(SwingPoint(2 * i + 1, "low", l, TS))
    return out


def test_market_structure():
    assert market_structure(_swings([1.10, 1.11, 1.12], [1.09, 1.10, 1.11])) is Bias.BULLISH
    assert market_structure(_swings([1.12, 1.11, 1.10], [1.11, 1.10, 1.09])) is Bias.BEARISH
    assert market_structure(_swings([1.10, 1.12, 1.11], [1.09, 1.10, 1.11])) is Bias.NEUTRAL
    assert market_structure(_swings([1.10], [1.09])) is Bias.NEUTRAL


def test_liquidity_zones_equal_highs_and_lows():
    series = flat_series(100)
    zones = find_liquidity_zones(series, lookback=100)
    sides = {z.side: z for z in zones}
    assert set(sides) == {"sell_side", "buy_side"}
    assert sides["sell_side"].touches == 100
    assert sides["buy_side"].price == pytest.approx(1.1000)
    assert find_liquidity_zones(flat_series(50), lookback=100) == []


def _block(i, zone=ZoneType.BULLISH, low=1.0995, high=1.1002):
    return OrderBlock(series_index=i, type=zone, high=high, low=low, timestamp=TS)


def test_touch_of_order_block_signals_long():
    series = flat_series(30)
    signals = detect_ict_signals(series, [_block(5)], [], lookback=10)
    assert [s.series_index for s in signals] == list(range(10, 30))
    assert all(s.direction is Direction.LONG and s.kind is SetupKind.ORDER_BLOCK for s in signals)


def test_order_block_used_only_after_confirmation():
    series = flat_series(30)
    signals = detect_ict_signals(series, [_block(12)], [], lookback=10)
    assert signals[0].series_index == 14


def test_bias_gates_direction():
    series = flat_series(30)
    blocks = [_block(5), _block(5, ZoneType.BEARISH)]
    both = detect_ict_signals(series, blocks, [], lookback=10)
    assert {s.direction for s in both} == {Direction.LONG, Direction.SHORT}
    bearish = detect_ict_signals(series, blocks, [], lookback=10, bias=Bias.BEARISH)
    assert {s.direction for s in bearish} == {Direction.SHORT}
    assert detect_ict_signals(series, blocks, [], lookback=10, bias=Bias.NEUTRAL) == []


def test_fair_value_gap_touch_waits_for_formation():
    series = flat_series(30)
    gap = FairValueGap(type=ZoneType.BULLISH, top=1.1000, bottom=1.0990,
                       timestamp=series[15].timestamp, series_index=15,
                       formed_at=series[17].timestamp)
    signals = detect_ict_signals(series, [], [gap], lookback=10)
    assert signals[0].series_index == 17
    assert all(s.kind is SetupKind.FAIR_VALUE_GAP for s in signals)
    # no formation time, no entry
    unformed = FairValueGap(type=ZoneType.BULLISH, top=1.1000, bottom=1.0990, timestamp=series[15].timestamp)
    assert detect_ict_signals(series, [], [unformed], lookback=10) == []


def test_gap_forming_bar_does_not_enter_its_own_gap():
    rows = [(1.1000, 1.1001, 1.0999, 1.1000)] * 40
    rows.append((1.1001, 1.1024, 1.1000, 1.1023))      # displacement, middle candle
    rows.append((1.1023, 1.1030, 1.1020, 1.1025))      # low 1.1020 sits on the gap top
    rows += [(1.1025, 1.1030, 1.1022, 1.1026)] * 3
    rows.append((1.1026, 1.1028, 1.1012, 1.1015))      # trades back into the gap
    series = series_from_rows(rows)
    gaps = detect_fair_value_gaps(series, min_pips=10)
    assert [(g.series_index, g.bottom, g.top) for g in gaps] == [(40, 1.1001, 1.1020)]
    assert gaps[0].formed_at == series[42].timestamp
    signals = detect_ict_signals(series, [], gaps, lookback=10)
    assert [(s.series_index, s.direction, s.kind) for s in signals] == [
        (45, Direction.LONG, SetupKind.FAIR_VALUE_GAP)
    ]


def test_higher_timeframe_gap_usable_after_third_candle_closes():
    h1_start = datetime(2024, 1, 2, 9, 0, tzinfo=timezone.utc)
    h1 = series_from_rows([
        (1.1000, 1.1005, 1.0995, 1.1003),
        (1.1004, 1.1030, 1.1003, 1.1028),
        (1.1028, 1.1032, 1.1020, 1.1030),
    ], start=h1_start, step=timedelta(hours=1))
    gaps = detect_fair_value_gaps(h1, min_pips=10)
    # the 11:00 candle closes at 12:00
    assert gaps[0].formed_at == datetime(2024, 1, 2, 12, 0, tzinfo=timezone.utc)
    # M5 bars from 10:00 sitting inside the band 1.1005 .. 1.1020
    m5 = flat_series(40, price=1.1010, start=datetime(2024, 1, 2, 10, 0, tzinfo=timezone.utc))
    signals = detect_ict_signals(m5, [], gaps, lookback=1)
    assert signals[0].series_index == 24
    assert signals[0].timestamp == gaps[0].formed_at
