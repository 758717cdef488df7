"""Per-block transfer functions.

Each function maps one step's resolved inputs, the block's parameters and
its own previous outputs to the block's outputs for the current step. They
are pure and total: an unresolved input (``None``) makes a block inert
instead of raising.

Stateful blocks keep whatever they need beyond their declared outputs in a
one-slot memory cell under ``MEMORY``; it is read back from the previous
step's outputs and is never visible through a port.
"""

import math
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Sequence, Tuple

import numpy as np

import config
from blocks.catalog import BlockType
from engine.candles import CandleSeries

MEMORY = "_memory"


@dataclass
class BlockStep:
    """Everything a transfer function may read for one block at one step."""
    index: int
    series: CandleSeries
    params: Dict[str, Any]
    inputs: Dict[str, Any]
    previous_inputs: Dict[str, Any]
    previous: Dict[str, Any]

    @property
    def memory(self) -> Dict[str, Any]:
        return self.previous.get(MEMORY) or {}


TransferFn = Callable[[BlockStep], Dict[str, Any]]
LookbackFn = Callable[[Dict[str, Any]], Any]

_TRANSFERS: Dict[str, TransferFn] = {}
_LOOKBACKS: Dict[str, LookbackFn] = {}


def transfer(block_type: BlockType, lookback: Optional[LookbackFn] = None):
    """Register the transfer function (and candle lookback) for a block type."""
    def decorator(fn: TransferFn) -> TransferFn:
        _TRANSFERS[block_type.value] = fn
        if lookback is not None:
            _LOOKBACKS[block_type.value] = lookback
        return fn
    return decorator


def get_transfer(block_type: str) -> Optional[TransferFn]:
    return _TRANSFERS.get(block_type)


def lookback_for(block_type: str, params: Dict[str, Any]) -> int:
    """Number of candles a block needs before its output is valid."""
    fn = _LOOKBACKS.get(block_type)
    if fn is None:
        return 0
    return max(int(fn(params)), 0)


# ===== HELPERS =====

def _num(value: Any) -> Optional[float]:
    """Numeric value of an input, or None when it is unavailable."""
    if isinstance(value, bool) or not isinstance(value, (int, float, np.number)):
        return None
    return float(value)


def _window(values: np.ndarray, index: int, period: Any) -> Optional[np.ndarray]:
    """The ``period`` values ending at ``index``, or None if there are not enough."""
    period = int(period)
    start = index - period + 1
    if period < 1 or start < 0:
        return None
    return values[start:index + 1]


def _mean(window: Optional[np.ndarray]) -> Optional[float]:
    if window is None:
        return None
    return float(np.mean(window))


def _ema_update(prev: Optional[float], values: np.ndarray, index: int, period: Any) -> Optional[float]:
    """One EMA step; without a previous value the window average seeds it."""
    period = int(period)
    if period < 1:
        return None
    if prev is None:
        prev = _mean(_window(values, index, period))
        if prev is None:
            return None
    multiplier = 2.0 / (period + 1)
    return (float(values[index]) - prev) * multiplier + prev


def _push(history: Sequence[Any], value: Any, size: Any) -> Tuple[Any, ...]:
    """Append to a bounded history, oldest first."""
    size = max(int(size), 1)
    return (tuple(history) + (value,))[-size:]


def _defined_mean(values: Sequence[Any]) -> Optional[float]:
    defined = [v for v in values if v is not None]
    if not defined:
        return None
    return float(sum(defined) / len(defined))


# ===== INDICATORS =====

@transfer(BlockType.PRICE, lookback=lambda p: 1)
def price(step: BlockStep) -> Dict[str, Any]:
    s, i = step.series, step.index
    return {
        "open": float(s.open[i]),
        "high": float(s.high[i]),
        "low": float(s.low[i]),
        "close": float(s.close[i]),
    }


@transfer(BlockType.SMA, lookback=lambda p: p.get("period", 20))
def sma(step: BlockStep) -> Dict[str, Any]:
    values = step.series.source(step.params.get("source", "close"))
    return {"value": _mean(_window(values, step.index, step.params.get("period", 20)))}


@transfer(BlockType.EMA, lookback=lambda p: p.get("period", 12))
def ema(step: BlockStep) -> Dict[str, Any]:
    values = step.series.source(step.params.get("source", "close"))
    prev = _num(step.previous.get("value"))
    return {"value": _ema_update(prev, values, step.index, step.params.get("period", 12))}


@transfer(BlockType.RSI, lookback=lambda p: p.get("period", 14) + 1)
def rsi(step: BlockStep) -> Dict[str, Any]:
    period = int(step.params.get("period", 14))
    window = _window(step.series.close, step.index, period + 1) if period >= 1 else None
    if window is None:
        return {"value": None, "overbought": False, "oversold": False}

    changes = np.diff(window)
    avg_gain = float(changes[changes > 0].sum()) / period
    avg_loss = float(-changes[changes < 0].sum()) / period
    # No losses reads 100 (50 for a flat window) rather than capping RS at 100
    if avg_loss == 0:
        value = 50.0 if avg_gain == 0 else 100.0
    else:
        value = 100.0 - 100.0 / (1.0 + avg_gain / avg_loss)

    return {
        "value": value,
        "overbought": value > config.RSI_OVERBOUGHT,
        "oversold": value < config.RSI_OVERSOLD,
    }


@transfer(BlockType.MACD, lookback=lambda p: p.get("slow_period", 26))
def macd(step: BlockStep) -> Dict[str, Any]:
    close, i = step.series.close, step.index
    memory = step.memory
    fast = _ema_update(memory.get("fast"), close, i, step.params.get("fast_period", 12))
    slow = _ema_update(memory.get("slow"), close, i, step.params.get("slow_period", 26))
    if fast is None or slow is None:
        return {"macd": None, "signal": None, "histogram": None}

    macd_line = fast - slow
    signal_period = int(step.params.get("signal_period", 9))
    prev_signal = _num(step.previous.get("signal"))
    if signal_period < 1:
        signal_line = None
    elif prev_signal is None:
        signal_line = macd_line
    else:
        signal_line = (macd_line - prev_signal) * (2.0 / (signal_period + 1)) + prev_signal

    return {
        "macd": macd_line,
        "signal": signal_line,
        "histogram": None if signal_line is None else macd_line - signal_line,
        MEMORY: {"fast": fast, "slow": slow},
    }


@transfer(BlockType.BOLLINGER, lookback=lambda p: p.get("period", 20))
def bollinger(step: BlockStep) -> Dict[str, Any]:
    window = _window(step.series.close, step.index, step.params.get("period", 20))
    if window is None:
        return {"upper": None, "middle": None, "lower": None}

    middle = float(np.mean(window))
    std = float(np.std(window))
    std_dev = float(step.params.get("std_dev", 2.0))
    return {
        "upper": middle + std * std_dev,
        "middle": middle,
        "lower": middle - std * std_dev,
    }


@transfer(BlockType.ATR, lookback=lambda p: p.get("period", 14) + 1)
def atr(step: BlockStep) -> Dict[str, Any]:
    s, i = step.series, step.index
    period = int(step.params.get("period", 14))
    if period < 1 or i - period < 0:
        return {"value": None}

    high = s.high[i - period + 1:i + 1]
    low = s.low[i - period + 1:i + 1]
    prev_close = s.close[i - period:i]
    true_range = np.maximum.reduce([high - low, np.abs(high - prev_close), np.abs(low - prev_close)])
    return {"value": float(np.mean(true_range))}


@transfer(BlockType.VOLUME, lookback=lambda p: p.get("ma_period", 20))
def volume(step: BlockStep) -> Dict[str, Any]:
    s, i = step.series, step.index
    current = float(s.volume[i])
    ma = _mean(_window(s.volume, i, step.params.get("ma_period", 20)))
    return {
        "value": current,
        "ma": ma,
        "above_avg": ma is not None and current > ma,
    }


@transfer(BlockType.STOCHASTIC, lookback=lambda p: p.get("k_period", 14))
def stochastic(step: BlockStep) -> Dict[str, Any]:
    s, i = step.series, step.index
    k_period = step.params.get("k_period", 14)
    highs = _window(s.high, i, k_period)
    lows = _window(s.low, i, k_period)
    if highs is None or lows is None:
        return {"k": None, "d": None}

    highest, lowest = float(np.max(highs)), float(np.min(lows))
    if highest == lowest:
        raw_k = 50.0
    else:
        raw_k = 100.0 * (float(s.close[i]) - lowest) / (highest - lowest)

    # %K is smoothed raw %K, %D is the average of %K; both warm up over
    # whatever history exists so far.
    memory = step.memory
    raw_history = _push(memory.get("raw", ()), raw_k, step.params.get("smooth", 3))
    k = _defined_mean(raw_history)
    k_history = _push(memory.get("k", ()), k, step.params.get("d_period", 3))
    return {
        "k": k,
        "d": _defined_mean(k_history),
        MEMORY: {"raw": raw_history, "k": k_history},
    }


# ===== CONDITIONS =====

_COMPARISONS = {
    "gt": lambda a, b: a > b,
    "gte": lambda a, b: a >= b,
    "lt": lambda a, b: a < b,
    "lte": lambda a, b: a <= b,
    "eq": lambda a, b: a == b,
    "neq": lambda a, b: a != b,
}


@transfer(BlockType.COMPARE)
def compare(step: BlockStep) -> Dict[str, Any]:
    a, b = _num(step.inputs.get("a")), _num(step.inputs.get("b"))
    op = _COMPARISONS.get(step.params.get("operator", "gt"))
    if a is None or b is None or op is None:
        return {"result": False}
    return {"result": bool(op(a, b))}


@transfer(BlockType.CROSSOVER)
def crossover(step: BlockStep) -> Dict[str, Any]:
    a, b = _num(step.inputs.get("a")), _num(step.inputs.get("b"))
    prev_a, prev_b = _num(step.previous_inputs.get("a")), _num(step.previous_inputs.get("b"))
    if None in (a, b, prev_a, prev_b):
        return {"cross_up": False, "cross_down": False}
    return {
        "cross_up": prev_a <= prev_b and a > b,
        "cross_down": prev_a >= prev_b and a < b,
    }


@transfer(BlockType.THRESHOLD)
def threshold(step: BlockStep) -> Dict[str, Any]:
    value = _num(step.inputs.get("value"))
    level = float(step.params.get("threshold", 0))
    direction = step.params.get("direction", "above")
    if value is None:
        return {"result": False}

    if direction == "above":
        result = value > level
    elif direction == "below":
        result = value < level
    elif direction == "equals":
        result = abs(value - level) < config.THRESHOLD_EQUALS_TOLERANCE
    else:
        result = False
    return {"result": result}


@transfer(BlockType.RANGE)
def in_range(step: BlockStep) -> Dict[str, Any]:
    value = _num(step.inputs.get("value"))
    if value is None:
        return {"in_range": False}
    low, high = float(step.params.get("min", 0)), float(step.params.get("max", 100))
    return {"in_range": low <= value <= high}


# ===== LOGIC =====

@transfer(BlockType.AND)
def logic_and(step: BlockStep) -> Dict[str, Any]:
    return {"result": step.inputs.get("a") is True and step.inputs.get("b") is True}


@transfer(BlockType.OR)
def logic_or(step: BlockStep) -> Dict[str, Any]:
    return {"result": step.inputs.get("a") is True or step.inputs.get("b") is True}


@transfer(BlockType.NOT)
def logic_not(step: BlockStep) -> Dict[str, Any]:
    value = step.inputs.get("input")
    if value is None:
        return {"result": None}
    return {"result": value is not True}


@transfer(BlockType.DELAY)
def delay(step: BlockStep) -> Dict[str, Any]:
    bars = max(int(step.params.get("bars", 1)), 1)
    history = step.memory.get("history", ())
    result = history[0] if len(history) == bars else None
    return {
        "result": result,
        MEMORY: {"history": _push(history, step.inputs.get("input"), bars)},
    }


@transfer(BlockType.COUNTER)
def counter(step: BlockStep) -> Dict[str, Any]:
    prev_count = step.previous.get("count") or 0
    count = prev_count + 1 if step.inputs.get("input") is True else 0
    return {
        "count": count,
        "triggered": count >= float(step.params.get("min_count", 3)),
    }


# ===== ACTIONS =====

def _triggered(step: BlockStep) -> bool:
    return step.inputs.get("trigger") is True


@transfer(BlockType.BUY)
def buy(step: BlockStep) -> Dict[str, Any]:
    return {"executed": _triggered(step)}


@transfer(BlockType.SELL)
def sell(step: BlockStep) -> Dict[str, Any]:
    return {"executed": _triggered(step)}


@transfer(BlockType.STOP_LOSS)
def stop_loss(step: BlockStep) -> Dict[str, Any]:
    return {"hit": _triggered(step)}


@transfer(BlockType.TAKE_PROFIT)
def take_profit(step: BlockStep) -> Dict[str, Any]:
    return {"hit": _triggered(step)}


@transfer(BlockType.ALERT)
def alert(step: BlockStep) -> Dict[str, Any]:
    return {}


# ===== VARIABLES =====

@transfer(BlockType.CONSTANT)
def constant(step: BlockStep) -> Dict[str, Any]:
    return {"value": _num(step.params.get("value", 0))}


def _power(a: float, b: float) -> Optional[float]:
    try:
        return math.pow(a, b)
    except (ValueError, OverflowError):
        return None


_BINARY_OPS = {
    "add": lambda a, b: a + b,
    "subtract": lambda a, b: a - b,
    "multiply": lambda a, b: a * b,
    "divide": lambda a, b: a / b if b != 0 else None,
    "power": _power,
}

_UNARY_OPS = {
    "abs": abs,
    "sqrt": lambda a: math.sqrt(a) if a >= 0 else None,
}


@transfer(BlockType.MATH)
def math_op(step: BlockStep) -> Dict[str, Any]:
    a, b = _num(step.inputs.get("a")), _num(step.inputs.get("b"))
    operation = step.params.get("operation", "add")

    if operation in _UNARY_OPS:
        result = None if a is None else _UNARY_OPS[operation](a)
    elif operation in _BINARY_OPS:
        result = None if a is None or b is None else _BINARY_OPS[operation](a, b)
    else:
        result = None
    return {"result": result}


@transfer(BlockType.MINMAX)
def minmax(step: BlockStep) -> Dict[str, Any]:
    history = _push(step.memory.get("history", ()), _num(step.inputs.get("value")),
                    step.params.get("period", 20))
    defined = [v for v in history if v is not None]
    if not defined:
        result = None
    elif step.params.get("type", "max") == "min":
        result = min(defined)
    else:
        result = max(defined)
    return {"result": result, MEMORY: {"history": history}}
