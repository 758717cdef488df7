"""Pre-wired strategy templates built from ordinary document edits."""

from typing import Callable, Dict, List, NamedTuple

import config
from blocks.catalog import BlockType
from blocks.errors import UnknownTemplateError
from document.builder import StrategyBuilder
from document.schema import Strategy


class StrategyTemplate(NamedTuple):
    id: str
    name: str
    description: str
    build: Callable[..., None]


def _golden_cross(builder: StrategyBuilder, strategy: Strategy, fast_period=50, slow_period=200):
    fast = builder.add_block(strategy, BlockType.SMA.value, 100, 100)
    builder.update_block_parameter(strategy, fast.id, "period", fast_period)
    slow = builder.add_block(strategy, BlockType.SMA.value, 100, 200)
    builder.update_block_parameter(strategy, slow.id, "period", slow_period)

    cross = builder.add_block(strategy, BlockType.CROSSOVER.value, 300, 150)
    buy = builder.add_block(strategy, BlockType.BUY.value, 500, 100)
    sell = builder.add_block(strategy, BlockType.SELL.value, 500, 200)

    builder.create_connection(strategy, fast.id, "value", cross.id, "a")
    builder.create_connection(strategy, slow.id, "value", cross.id, "b")
    builder.create_connection(strategy, cross.id, "cross_up", buy.id, "trigger")
    builder.create_connection(strategy, cross.id, "cross_down", sell.id, "trigger")


def _rsi_reversal(builder: StrategyBuilder, strategy: Strategy, period=14):
    rsi = builder.add_block(strategy, BlockType.RSI.value, 100, 150)
    builder.update_block_parameter(strategy, rsi.id, "period", period)
    buy = builder.add_block(strategy, BlockType.BUY.value, 300, 100)
    sell = builder.add_block(strategy, BlockType.SELL.value, 300, 200)

    builder.create_connection(strategy, rsi.id, "oversold", buy.id, "trigger")
    builder.create_connection(strategy, rsi.id, "overbought", sell.id, "trigger")


def _bollinger_bounce(builder: StrategyBuilder, strategy: Strategy, period=20, std_dev=2):
    price = builder.add_block(strategy, BlockType.PRICE.value, 100, 150)
    bands = builder.add_block(strategy, BlockType.BOLLINGER.value, 100, 300)
    builder.update_block_parameter(strategy, bands.id, "period", period)
    builder.update_block_parameter(strategy, bands.id, "std_dev", std_dev)

    below = builder.add_block(strategy, BlockType.COMPARE.value, 300, 100)
    builder.update_block_parameter(strategy, below.id, "operator", "lt")
    above = builder.add_block(strategy, BlockType.COMPARE.value, 300, 250)
    builder.update_block_parameter(strategy, above.id, "operator", "gt")

    buy = builder.add_block(strategy, BlockType.BUY.value, 500, 100)
    sell = builder.add_block(strategy, BlockType.SELL.value, 500, 250)

    builder.create_connection(strategy, price.id, "close", below.id, "a")
    builder.create_connection(strategy, bands.id, "lower", below.id, "b")
    builder.create_connection(strategy, price.id, "close", above.id, "a")
    builder.create_connection(strategy, bands.id, "upper", above.id, "b")
    builder.create_connection(strategy, below.id, "result", buy.id, "trigger")
    builder.create_connection(strategy, above.id, "result", sell.id, "trigger")


def _macd_momentum(builder: StrategyBuilder, strategy: Strategy, fast_period=12, slow_period=26, signal_period=9):
    macd = builder.add_block(strategy, BlockType.MACD.value, 100, 150)
    builder.update_block_parameter(strategy, macd.id, "fast_period", fast_period)
    builder.update_block_parameter(strategy, macd.id, "slow_period", slow_period)
    builder.update_block_parameter(strategy, macd.id, "signal_period", signal_period)
    zero = builder.add_block(strategy, BlockType.CONSTANT.value, 100, 300)

    cross = builder.add_block(strategy, BlockType.CROSSOVER.value, 300, 200)
    buy = builder.add_block(strategy, BlockType.BUY.value, 500, 100)
    sell = builder.add_block(strategy, BlockType.SELL.value, 500, 250)

    builder.create_connection(strategy, macd.id, "histogram", cross.id, "a")
    builder.create_connection(strategy, zero.id, "value", cross.id, "b")
    builder.create_connection(strategy, cross.id, "cross_up", buy.id, "trigger")
    builder.create_connection(strategy, cross.id, "cross_down", sell.id, "trigger")


TEMPLATES: Dict[str, StrategyTemplate] = {
    t.id: t for t in [
        StrategyTemplate("golden_cross", "Golden Cross", "SMA 50/200 crossover strategy", _golden_cross),
        StrategyTemplate("rsi_reversal", "RSI Reversal", "Buy oversold, sell overbought", _rsi_reversal),
        StrategyTemplate("bollinger_bounce", "Bollinger Bounce", "Mean reversion at bands", _bollinger_bounce),
        StrategyTemplate("macd_momentum", "MACD Momentum", "MACD histogram momentum", _macd_momentum),
    ]
}


def list_templates() -> List[Dict[str, str]]:
    """Available templates as id/name/description records."""
    return [{"id": t.id, "name": t.name, "description": t.description} for t in TEMPLATES.values()]


def create_from_template(
    builder: StrategyBuilder,
    template_id: str,
    name: str,
    symbol: str = config.DEFAULT_SYMBOL,
    timeframe: str = config.DEFAULT_TIMEFRAME,
    **options,
) -> Strategy:
    """Create a strategy pre-wired from a template.

    Keyword options override the template's periods, e.g.
    ``create_from_template(builder, "golden_cross", "GC", fast_period=10)``.

    Raises:
        UnknownTemplateError: If the template id is unknown
    """
    template = TEMPLATES.get(template_id)
    if template is None:
        raise UnknownTemplateError(f"Unknown strategy template: {template_id}")

    strategy = builder.create_strategy(name, symbol=symbol, timeframe=timeframe)
    template.build(builder, strategy, **options)
    return strategy
