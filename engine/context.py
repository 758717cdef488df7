"""Run-time data: candles, signals and the per-run execution context."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict


class Candle(BaseModel):
    """One OHLCV bar. ``time`` is epoch milliseconds."""
    model_config = ConfigDict(frozen=True)

    time: int
    open: float
    high: float
    low: float
    close: float
    volume: float = 0.0


class SignalKind(str, Enum):
    BUY = "buy"
    SELL = "sell"
    STOP_LOSS = "stop-loss"
    TAKE_PROFIT = "take-profit"
    ALERT = "alert"


class ExecutionSignal(BaseModel):
    """Trade-intent event emitted by an action block."""
    model_config = ConfigDict(frozen=True)

    kind: SignalKind
    price: float
    timestamp: int
    size: Optional[float] = None
    message: Optional[str] = None
    block_id: str


class Position(BaseModel):
    """Minimal inventory record kept for consumers."""
    side: Literal["none", "long", "short"] = "none"
    entry_price: float = 0.0
    size: float = 0.0

    def apply(self, signal: ExecutionSignal):
        """Follow the position implied by a signal."""
        if signal.kind == SignalKind.BUY:
            if self.side == "short":
                self._flatten()
            elif self.side == "none":
                self._open("long", signal)
        elif signal.kind == SignalKind.SELL:
            if self.side == "long":
                self._flatten()
            elif self.side == "none":
                self._open("short", signal)
        elif signal.kind in (SignalKind.STOP_LOSS, SignalKind.TAKE_PROFIT):
            self._flatten()

    def _open(self, side, signal: ExecutionSignal):
        self.side = side
        self.entry_price = signal.price
        self.size = signal.size or 0.0

    def _flatten(self):
        self.side = "none"
        self.entry_price = 0.0
        self.size = 0.0


BlockOutputs = Dict[str, Dict[str, Any]]


@dataclass
class ExecutionContext:
    """State of one run. Never shared between runs."""
    symbol: str
    timeframe: str
    current_index: int = -1
    current_outputs: BlockOutputs = field(default_factory=dict)
    previous_outputs: BlockOutputs = field(default_factory=dict)
    position: Position = field(default_factory=Position)
    signals: List[ExecutionSignal] = field(default_factory=list)
    steps: int = 0
    cancelled: bool = False

    def rotate(self, index: int):
        """Start a new step: current outputs become the previous step's."""
        self.previous_outputs = self.current_outputs
        self.current_outputs = {}
        self.current_index = index

    def emit(self, signal: ExecutionSignal):
        self.signals.append(signal)
        self.position.apply(signal)
