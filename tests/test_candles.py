"""Tests for candle loading and the column view."""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

import numpy as np
import pandas as pd
import pytest

from blocks.errors import CandleSequenceError
from engine.candles import CandleSeries, candles_from_dataframe, candles_from_records
from engine.context import Candle


def ohlcv_frame(periods=5):
    close = np.arange(1.0, periods + 1.0)
    return pd.DataFrame({
        'timestamp': pd.date_range('2024-01-01', periods=periods, freq='1h', tz='UTC'),
        'open': close,
        'high': close + 1,
        'low': close - 1,
        'close': close,
        'volume': np.full(periods, 1000.0),
    })


def test_from_timestamp_column():
    candles = candles_from_dataframe(ohlcv_frame())
    assert len(candles) == 5
    assert candles[0].time == int(pd.Timestamp('2024-01-01', tz='UTC').timestamp() * 1000)
    assert candles[1].time - candles[0].time == 3_600_000
    assert candles[2].close == 3.0
    assert candles[2].high == 4.0
    assert candles[0].volume == 1000.0


def test_from_datetime_index():
    data = ohlcv_frame().set_index('timestamp')
    candles = candles_from_dataframe(data)
    assert [c.close for c in candles] == [1.0, 2.0, 3.0, 4.0, 5.0]
    assert candles[0].time == int(pd.Timestamp('2024-01-01', tz='UTC').timestamp() * 1000)


def test_naive_datetimes_are_utc():
    data = ohlcv_frame()
    data['timestamp'] = data['timestamp'].dt.tz_localize(None)
    assert candles_from_dataframe(data)[0].time == candles_from_dataframe(ohlcv_frame())[0].time


def test_numeric_time_column():
    data = ohlcv_frame().drop(columns=['timestamp'])
    data['time'] = [1000, 2000, 3000, 4000, 5000]
    candles = candles_from_dataframe(data)
    assert [c.time for c in candles] == [1000, 2000, 3000, 4000, 5000]


def test_volume_optional():
    data = ohlcv_frame().drop(columns=['volume'])
    assert all(c.volume == 0.0 for c in candles_from_dataframe(data))


def test_missing_columns():
    with pytest.raises(CandleSequenceError):
        candles_from_dataframe(ohlcv_frame().drop(columns=['close']))


def test_missing_time():
    data = ohlcv_frame().drop(columns=['timestamp'])
    with pytest.raises(CandleSequenceError):
        candles_from_dataframe(data)


def test_descending_rejected():
    data = ohlcv_frame().iloc[::-1].reset_index(drop=True)
    with pytest.raises(CandleSequenceError):
        candles_from_dataframe(data)


def test_duplicate_times_rejected():
    records = [
        {'time': 1, 'open': 1, 'high': 1, 'low': 1, 'close': 1},
        {'time': 1, 'open': 2, 'high': 2, 'low': 2, 'close': 2},
    ]
    with pytest.raises(CandleSequenceError):
        candles_from_records(records)


def test_from_records():
    candles = candles_from_records([
        {'time': 1, 'open': 1, 'high': 2, 'low': 0.5, 'close': 1.5, 'volume': 10},
        {'time': 2, 'open': 1.5, 'high': 2, 'low': 1, 'close': 2},
    ])
    assert candles[1].volume == 0.0
    assert candles[0] == Candle(time=1, open=1, high=2, low=0.5, close=1.5, volume=10)


class TestCandleSeries:

    def test_columns(self):
        series = CandleSeries.from_candles(candles_from_dataframe(ohlcv_frame()))
        assert len(series) == 5
        assert series.close.tolist() == [1.0, 2.0, 3.0, 4.0, 5.0]
        assert series.time.dtype == np.int64

    def test_derived_sources(self):
        candle = Candle(time=0, open=1.0, high=4.0, low=2.0, close=3.0)
        series = CandleSeries.from_candles([candle])
        assert series.source('hl2')[0] == 3.0
        assert series.source('hlc3')[0] == 3.0
        assert series.source('ohlc4')[0] == 2.5
        assert series.source('high')[0] == 4.0

    def test_unknown_source_falls_back_to_close(self):
        series = CandleSeries.from_candles([Candle(time=0, open=1.0, high=4.0, low=2.0, close=3.0)])
        assert series.source('vwap')[0] == 3.0

    def test_empty(self):
        assert len(CandleSeries.from_candles([])) == 0
