# blocks/catalog.py
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Any, Iterable, List, Optional, Tuple

from blocks.errors import UnknownTemplateError


class BlockCategory(str, Enum):
    INDICATOR = "indicator"
    CONDITION = "condition"
    LOGIC = "logic"
    ACTION = "action"
    VARIABLE = "variable"


class PortKind(str, Enum):
    NUMBER = "number"
    BOOLEAN = "boolean"
    CANDLE = "candle"
    SIGNAL = "signal"
    ANY = "any"


class ParamKind(str, Enum):
    NUMBER = "number"
    STRING = "string"
    BOOLEAN = "boolean"
    SELECT = "select"


class BlockType(str, Enum):
    """Block types shipped with the standard catalog."""
    # Indicators
    PRICE = "price"
    SMA = "sma"
    EMA = "ema"
    RSI = "rsi"
    MACD = "macd"
    BOLLINGER = "bollinger"
    ATR = "atr"
    VOLUME = "volume"
    STOCHASTIC = "stochastic"

    # Conditions
    COMPARE = "compare"
    CROSSOVER = "crossover"
    THRESHOLD = "threshold"
    RANGE = "range"

    # Logic
    AND = "and"
    OR = "or"
    NOT = "not"
    DELAY = "delay"
    COUNTER = "counter"

    # Actions
    BUY = "buy"
    SELL = "sell"
    STOP_LOSS = "stoploss"
    TAKE_PROFIT = "takeprofit"
    ALERT = "alert"

    # Variables
    CONSTANT = "constant"
    MATH = "math"
    MINMAX = "minmax"


@dataclass(frozen=True)
class ParamSpec:
    """Specification for a block parameter.

    Bounds are advisory: they describe the editor's range, the engine
    accepts any value of the declared kind.
    """
    name: str
    label: str
    kind: ParamKind
    default: Any
    min_value: Optional[float] = None
    max_value: Optional[float] = None
    options: Tuple[str, ...] = ()


@dataclass(frozen=True)
class PortSpec:
    """Specification for an input or output port."""
    id: str
    label: str
    kind: PortKind


@dataclass(frozen=True)
class BlockTemplate:
    """Complete specification for a block type."""
    type: str
    category: BlockCategory
    name: str
    description: str
    params: Tuple[ParamSpec, ...] = ()
    inputs: Tuple[PortSpec, ...] = ()
    outputs: Tuple[PortSpec, ...] = ()
    signal_kind: Optional[str] = None  # Action blocks only

    def get_param(self, name: str) -> Optional[ParamSpec]:
        for param in self.params:
            if param.name == name:
                return param
        return None


class BlockCatalog:
    """Read-only registry of block templates.

    Built once (by default from the standard template set) and passed to the
    document builder and the engine. Nothing can be registered after
    construction.
    """

    def __init__(self, templates: Optional[Iterable[BlockTemplate]] = None):
        if templates is None:
            templates = standard_templates()

        specs = {}
        for template in templates:
            if template.type in specs:
                raise ValueError(f"Duplicate block type in catalog: {template.type}")
            specs[template.type] = template
        self._templates = MappingProxyType(specs)

    def get(self, block_type: str) -> Optional[BlockTemplate]:
        """Get the template for a block type, or None."""
        return self._templates.get(block_type)

    def template_of(self, block_type: str) -> BlockTemplate:
        """Get the template for a block type.

        Raises:
            UnknownTemplateError: If the type is not registered
        """
        template = self._templates.get(block_type)
        if template is None:
            raise UnknownTemplateError(f"Unknown block type: {block_type}")
        return template

    def get_all_types(self) -> List[str]:
        """Get list of all registered block types."""
        return list(self._templates.keys())

    def by_category(self, category: BlockCategory) -> List[BlockTemplate]:
        return [t for t in self._templates.values() if t.category == category]

    def __contains__(self, block_type: str) -> bool:
        return block_type in self._templates

    def __len__(self) -> int:
        return len(self._templates)


# ===== TEMPLATE HELPERS =====

def _number(name, label, default, min_value=None, max_value=None) -> ParamSpec:
    return ParamSpec(name, label, ParamKind.NUMBER, default, min_value, max_value)


def _select(name, label, default, options) -> ParamSpec:
    return ParamSpec(name, label, ParamKind.SELECT, default, options=tuple(options))


def _num_port(port_id, label) -> PortSpec:
    return PortSpec(port_id, label, PortKind.NUMBER)


def _bool_port(port_id, label) -> PortSpec:
    return PortSpec(port_id, label, PortKind.BOOLEAN)


def _template(block_type: BlockType, category, name, description, params=(), inputs=(),
              outputs=(), signal_kind=None) -> BlockTemplate:
    return BlockTemplate(
        type=block_type.value,
        category=category,
        name=name,
        description=description,
        params=tuple(params),
        inputs=tuple(inputs),
        outputs=tuple(outputs),
        signal_kind=signal_kind,
    )


PRICE_SOURCES = ("close", "open", "high", "low", "hl2", "hlc3", "ohlc4")
TRIGGER = _bool_port("trigger", "Trigger")
SIZE_TYPES = ("percent", "fixed", "units")
ORDER_TYPES = ("market", "limit")


def standard_templates() -> List[BlockTemplate]:
    """Build the standard template set."""
    I = BlockCategory.INDICATOR
    C = BlockCategory.CONDITION
    L = BlockCategory.LOGIC
    A = BlockCategory.ACTION
    V = BlockCategory.VARIABLE

    return [
        # ===== INDICATORS =====
        _template(
            BlockType.PRICE, I, "Price", "Current price data",
            outputs=[
                _num_port("open", "Open"),
                _num_port("high", "High"),
                _num_port("low", "Low"),
                _num_port("close", "Close"),
            ],
        ),
        _template(
            BlockType.SMA, I, "SMA", "Simple Moving Average",
            params=[
                _number("period", "Period", 20, 1, 500),
                _select("source", "Source", "close", PRICE_SOURCES),
            ],
            outputs=[_num_port("value", "Value")],
        ),
        _template(
            BlockType.EMA, I, "EMA", "Exponential Moving Average",
            params=[
                _number("period", "Period", 12, 1, 500),
                _select("source", "Source", "close", ("close", "open", "high", "low")),
            ],
            outputs=[_num_port("value", "Value")],
        ),
        _template(
            BlockType.RSI, I, "RSI", "Relative Strength Index",
            params=[_number("period", "Period", 14, 1, 100)],
            outputs=[
                _num_port("value", "Value"),
                _bool_port("overbought", "Overbought"),
                _bool_port("oversold", "Oversold"),
            ],
        ),
        _template(
            BlockType.MACD, I, "MACD", "Moving Average Convergence Divergence",
            params=[
                _number("fast_period", "Fast Period", 12, 1, 100),
                _number("slow_period", "Slow Period", 26, 1, 200),
                _number("signal_period", "Signal Period", 9, 1, 50),
            ],
            outputs=[
                _num_port("macd", "MACD Line"),
                _num_port("signal", "Signal Line"),
                _num_port("histogram", "Histogram"),
            ],
        ),
        _template(
            BlockType.BOLLINGER, I, "Bollinger Bands", "Bollinger Bands indicator",
            params=[
                _number("period", "Period", 20, 1, 200),
                _number("std_dev", "Std Deviation", 2, 0.5, 5),
            ],
            outputs=[
                _num_port("upper", "Upper Band"),
                _num_port("middle", "Middle Band"),
                _num_port("lower", "Lower Band"),
            ],
        ),
        _template(
            BlockType.ATR, I, "ATR", "Average True Range",
            params=[_number("period", "Period", 14, 1, 100)],
            outputs=[_num_port("value", "Value")],
        ),
        _template(
            BlockType.VOLUME, I, "Volume", "Trading Volume",
            params=[_number("ma_period", "MA Period", 20, 1, 200)],
            outputs=[
                _num_port("value", "Volume"),
                _num_port("ma", "Volume MA"),
                _bool_port("above_avg", "Above Average"),
            ],
        ),
        _template(
            BlockType.STOCHASTIC, I, "Stochastic", "Stochastic Oscillator",
            params=[
                _number("k_period", "K Period", 14, 1, 100),
                _number("d_period", "D Period", 3, 1, 20),
                _number("smooth", "Smooth", 3, 1, 20),
            ],
            outputs=[_num_port("k", "%K"), _num_port("d", "%D")],
        ),

        # ===== CONDITIONS =====
        _template(
            BlockType.COMPARE, C, "Compare", "Compare two values",
            params=[_select("operator", "Operator", "gt", ("gt", "gte", "lt", "lte", "eq", "neq"))],
            inputs=[_num_port("a", "Value A"), _num_port("b", "Value B")],
            outputs=[_bool_port("result", "Result")],
        ),
        _template(
            BlockType.CROSSOVER, C, "Crossover", "Detect when A crosses above or below B",
            inputs=[_num_port("a", "Value A"), _num_port("b", "Value B")],
            outputs=[_bool_port("cross_up", "Cross Up"), _bool_port("cross_down", "Cross Down")],
        ),
        _template(
            BlockType.THRESHOLD, C, "Threshold", "Check if value is above/below threshold",
            params=[
                _number("threshold", "Threshold", 0),
                _select("direction", "Direction", "above", ("above", "below", "equals")),
            ],
            inputs=[_num_port("value", "Value")],
            outputs=[_bool_port("result", "Result")],
        ),
        _template(
            BlockType.RANGE, C, "In Range", "Check if value is within range",
            params=[_number("min", "Min", 0), _number("max", "Max", 100)],
            inputs=[_num_port("value", "Value")],
            outputs=[_bool_port("in_range", "In Range")],
        ),

        # ===== LOGIC =====
        _template(
            BlockType.AND, L, "AND", "All inputs must be true",
            inputs=[_bool_port("a", "Input A"), _bool_port("b", "Input B")],
            outputs=[_bool_port("result", "Result")],
        ),
        _template(
            BlockType.OR, L, "OR", "Any input must be true",
            inputs=[_bool_port("a", "Input A"), _bool_port("b", "Input B")],
            outputs=[_bool_port("result", "Result")],
        ),
        _template(
            BlockType.NOT, L, "NOT", "Invert the input",
            inputs=[_bool_port("input", "Input")],
            outputs=[_bool_port("result", "Result")],
        ),
        _template(
            BlockType.DELAY, L, "Delay", "Delay signal by N bars",
            params=[_number("bars", "Bars", 1, 1, 100)],
            inputs=[_bool_port("input", "Input")],
            outputs=[_bool_port("result", "Result")],
        ),
        _template(
            BlockType.COUNTER, L, "Counter", "Count consecutive true signals",
            params=[_number("min_count", "Min Count", 3, 1, 50)],
            inputs=[_bool_port("input", "Input")],
            outputs=[_num_port("count", "Count"), _bool_port("triggered", "Triggered")],
        ),

        # ===== ACTIONS =====
        _template(
            BlockType.BUY, A, "Buy", "Open a long position",
            params=[
                _select("size_type", "Size Type", "percent", SIZE_TYPES),
                _number("size", "Size", 10, 0.1),
                _select("order_type", "Order Type", "market", ORDER_TYPES),
            ],
            inputs=[TRIGGER],
            outputs=[PortSpec("executed", "Executed", PortKind.SIGNAL)],
            signal_kind="buy",
        ),
        _template(
            BlockType.SELL, A, "Sell", "Open a short position or close long",
            params=[
                _select("size_type", "Size Type", "percent", SIZE_TYPES + ("all",)),
                _number("size", "Size", 100, 0.1),
                _select("order_type", "Order Type", "market", ORDER_TYPES),
            ],
            inputs=[TRIGGER],
            outputs=[PortSpec("executed", "Executed", PortKind.SIGNAL)],
            signal_kind="sell",
        ),
        _template(
            BlockType.STOP_LOSS, A, "Stop Loss", "Set a stop loss",
            params=[
                _select("type", "Type", "percent", ("percent", "fixed", "atr")),
                _number("value", "Value", 2, 0.1),
                ParamSpec("trailing", "Trailing", ParamKind.BOOLEAN, False),
            ],
            inputs=[TRIGGER],
            outputs=[PortSpec("hit", "SL Hit", PortKind.SIGNAL)],
            signal_kind="stop-loss",
        ),
        _template(
            BlockType.TAKE_PROFIT, A, "Take Profit", "Set a take profit",
            params=[
                _select("type", "Type", "percent", ("percent", "fixed", "rr")),
                _number("value", "Value", 5, 0.1),
            ],
            inputs=[TRIGGER],
            outputs=[PortSpec("hit", "TP Hit", PortKind.SIGNAL)],
            signal_kind="take-profit",
        ),
        _template(
            BlockType.ALERT, A, "Alert", "Send an alert notification",
            params=[
                ParamSpec("message", "Message", ParamKind.STRING, "Alert triggered!"),
                ParamSpec("sound", "Play Sound", ParamKind.BOOLEAN, True),
            ],
            inputs=[TRIGGER],
            signal_kind="alert",
        ),

        # ===== VARIABLES =====
        _template(
            BlockType.CONSTANT, V, "Constant", "A fixed numeric value",
            params=[_number("value", "Value", 0)],
            outputs=[_num_port("value", "Value")],
        ),
        _template(
            BlockType.MATH, V, "Math", "Perform math operations",
            params=[_select(
                "operation", "Operation", "add",
                ("add", "subtract", "multiply", "divide", "power", "abs", "sqrt"),
            )],
            inputs=[_num_port("a", "Value A"), _num_port("b", "Value B")],
            outputs=[_num_port("result", "Result")],
        ),
        _template(
            BlockType.MINMAX, V, "Min/Max", "Find min or max of lookback period",
            params=[
                _select("type", "Type", "max", ("max", "min")),
                _number("period", "Period", 20, 1, 500),
            ],
            inputs=[_num_port("value", "Value")],
            outputs=[_num_port("result", "Result")],
        ),
    ]
