"""Candle loading and the numpy column view used by transfer functions."""

from dataclasses import dataclass
from typing import Any, Iterable, List, Mapping, Sequence

import numpy as np
import pandas as pd

from blocks.errors import CandleSequenceError
from engine.context import Candle

OHLCV = ("open", "high", "low", "close", "volume")


def _to_epoch_ms(values: pd.Series) -> pd.Series:
    """Convert datetimes (or numeric epoch ms) to integer epoch milliseconds."""
    if pd.api.types.is_numeric_dtype(values):
        return values.astype("int64")
    stamps = pd.to_datetime(values, utc=True)
    return (stamps - pd.Timestamp(0, tz="UTC")) // pd.Timedelta(milliseconds=1)


def candles_from_dataframe(data: pd.DataFrame) -> List[Candle]:
    """Build candles from an OHLCV DataFrame.

    The time comes from a ``timestamp`` or ``time`` column, or from the
    index when it holds datetimes or is named ``timestamp``.

    Raises:
        CandleSequenceError: If columns are missing or time is not ascending
    """
    missing = [c for c in ("open", "high", "low", "close") if c not in data.columns]
    if missing:
        raise CandleSequenceError(f"Missing OHLC columns: {missing}")

    if "timestamp" in data.columns:
        times = data["timestamp"]
    elif "time" in data.columns:
        times = data["time"]
    elif data.index.name == "timestamp" or isinstance(data.index, pd.DatetimeIndex):
        times = pd.Series(data.index, index=data.index)
    else:
        raise CandleSequenceError(
            f"No 'timestamp' found in data. Columns: {data.columns.tolist()}, "
            f"Index name: {data.index.name}"
        )

    epoch_ms = _to_epoch_ms(times).to_numpy()
    volume = data["volume"].to_numpy(dtype=float) if "volume" in data.columns else np.zeros(len(data))

    candles = [
        Candle(
            time=int(epoch_ms[i]),
            open=float(data["open"].iat[i]),
            high=float(data["high"].iat[i]),
            low=float(data["low"].iat[i]),
            close=float(data["close"].iat[i]),
            volume=float(volume[i]),
        )
        for i in range(len(data))
    ]
    ensure_ascending(candles)
    return candles


def candles_from_records(records: Iterable[Mapping[str, Any]]) -> List[Candle]:
    """Build candles from mappings with time/open/high/low/close[/volume] keys."""
    candles = [Candle.model_validate(dict(r)) for r in records]
    ensure_ascending(candles)
    return candles


def ensure_ascending(candles: Sequence[Candle]):
    for prev, curr in zip(candles, candles[1:]):
        if curr.time <= prev.time:
            raise CandleSequenceError(
                f"Candles must be time-ascending: {curr.time} follows {prev.time}"
            )


@dataclass(frozen=True)
class CandleSeries:
    """Column arrays of a candle sequence, built once per run."""
    time: np.ndarray
    open: np.ndarray
    high: np.ndarray
    low: np.ndarray
    close: np.ndarray
    volume: np.ndarray
    derived: Mapping[str, np.ndarray]

    @classmethod
    def from_candles(cls, candles: Sequence[Candle]) -> "CandleSeries":
        """Column view of time-ascending candles.

        Raises:
            CandleSequenceError: If time is not strictly ascending
        """
        ensure_ascending(candles)
        cols = {col: np.array([getattr(c, col) for c in candles], dtype=float) for col in OHLCV}
        derived = {
            "hl2": (cols["high"] + cols["low"]) / 2,
            "hlc3": (cols["high"] + cols["low"] + cols["close"]) / 3,
            "ohlc4": (cols["open"] + cols["high"] + cols["low"] + cols["close"]) / 4,
        }
        return cls(time=np.array([c.time for c in candles], dtype=np.int64), derived=derived, **cols)

    def __len__(self) -> int:
        return len(self.close)

    def source(self, name: str) -> np.ndarray:
        """Price source by name (close/open/high/low/hl2/hlc3/ohlc4); close by default."""
        if name in ("open", "high", "low", "close"):
            return getattr(self, name)
        return self.derived.get(name, self.close)
