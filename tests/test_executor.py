"""End-to-end tests for the execution engine."""

import sys
import threading
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

import pytest

from blocks.catalog import BlockCatalog
from blocks.errors import CandleSequenceError, CyclicGraphError
from document.builder import StrategyBuilder
from document.schema import Connection
from engine.context import Candle, ExecutionSignal, Position, SignalKind
from engine.executor import ExecutionEngine

CROSSOVER_CLOSES = [1, 1, 1, 1, 5, 6, 7, 8, 8, 8, 8, 8, 3, 2, 1, 1]


def make_candles(closes, start=1_700_000_000_000, step=3_600_000):
    return [
        Candle(time=start + i * step, open=c, high=c, low=c, close=c, volume=100.0)
        for i, c in enumerate(closes)
    ]


@pytest.fixture
def catalog():
    return BlockCatalog()


@pytest.fixture
def builder(catalog):
    return StrategyBuilder(catalog)


@pytest.fixture
def engine(catalog):
    return ExecutionEngine(catalog)


def crossover_strategy(builder):
    strategy = builder.create_strategy("SMA 2/4")
    fast = builder.add_block(strategy, "sma")
    slow = builder.add_block(strategy, "sma")
    cross = builder.add_block(strategy, "crossover")
    buy = builder.add_block(strategy, "buy")
    sell = builder.add_block(strategy, "sell")
    builder.update_block_parameter(strategy, fast.id, "period", 2)
    builder.update_block_parameter(strategy, slow.id, "period", 4)
    builder.create_connection(strategy, fast.id, "value", cross.id, "a")
    builder.create_connection(strategy, slow.id, "value", cross.id, "b")
    builder.create_connection(strategy, cross.id, "cross_up", buy.id, "trigger")
    builder.create_connection(strategy, cross.id, "cross_down", sell.id, "trigger")
    return strategy, {"fast": fast, "slow": slow, "cross": cross, "buy": buy, "sell": sell}


class StopAfter:
    """Cancel token that trips after a number of checks."""

    def __init__(self, checks):
        self.remaining = checks

    def is_set(self):
        if self.remaining == 0:
            return True
        self.remaining -= 1
        return False


class TestCrossoverScenario:

    def test_one_buy_and_one_sell(self, builder, engine):
        strategy, blocks = crossover_strategy(builder)
        candles = make_candles(CROSSOVER_CLOSES)

        signals = engine.run(strategy, candles)

        assert [s.kind for s in signals] == [SignalKind.BUY, SignalKind.SELL]
        buy, sell = signals
        assert buy.price == 5.0
        assert buy.timestamp == candles[4].time
        assert buy.block_id == blocks["buy"].id
        assert buy.size == 10.0
        assert sell.price == 3.0
        assert sell.timestamp == candles[12].time
        assert sell.block_id == blocks["sell"].id
        assert sell.size == 100.0

    def test_context_after_run(self, builder, engine):
        strategy, _ = crossover_strategy(builder)
        context = engine.execute(strategy, make_candles(CROSSOVER_CLOSES))

        assert context.steps == len(CROSSOVER_CLOSES) - 3
        assert context.current_index == len(CROSSOVER_CLOSES) - 1
        assert context.cancelled is False
        assert context.position.side == "none"
        assert context.symbol == strategy.symbol

    def test_deterministic(self, builder, engine):
        strategy, _ = crossover_strategy(builder)
        candles = make_candles(CROSSOVER_CLOSES)
        first = [s.model_dump() for s in engine.run(strategy, candles)]
        second = [s.model_dump() for s in engine.run(strategy, candles)]
        assert first == second

    def test_too_few_candles(self, builder, engine):
        strategy, _ = crossover_strategy(builder)
        context = engine.execute(strategy, make_candles([1, 2, 3]))
        assert context.steps == 0
        assert context.signals == []

    def test_no_candles(self, builder, engine):
        strategy, _ = crossover_strategy(builder)
        assert engine.run(strategy, []) == []

    @pytest.mark.parametrize("times", [(3, 1, 2), (1, 2, 2)])
    def test_unordered_candles_rejected(self, builder, engine, times):
        strategy = builder.create_strategy("Order")
        builder.add_block(strategy, "price")
        candles = [Candle(time=t, open=1.0, high=1.0, low=1.0, close=1.0) for t in times]
        with pytest.raises(CandleSequenceError):
            engine.execute(strategy, candles)


class TestUndefinedInputs:

    def test_unconnected_condition_never_triggers(self, builder, engine):
        strategy = builder.create_strategy("Dangling")
        threshold = builder.add_block(strategy, "threshold")
        buy = builder.add_block(strategy, "buy")
        builder.update_block_parameter(strategy, threshold.id, "direction", "below")
        builder.update_block_parameter(strategy, threshold.id, "threshold", 1_000_000)
        builder.create_connection(strategy, threshold.id, "result", buy.id, "trigger")

        context = engine.execute(strategy, make_candles(CROSSOVER_CLOSES))
        assert context.signals == []
        assert context.steps == len(CROSSOVER_CLOSES)

    def test_unconnected_action_never_fires(self, builder, engine):
        strategy = builder.create_strategy("Idle")
        builder.add_block(strategy, "buy")
        builder.add_block(strategy, "alert")
        assert engine.run(strategy, make_candles(CROSSOVER_CLOSES)) == []

    def test_indicator_warming_up_gives_no_signal(self, builder, engine):
        strategy = builder.create_strategy("Warm-up")
        price = builder.add_block(strategy, "price")
        sma = builder.add_block(strategy, "sma")
        compare = builder.add_block(strategy, "compare")
        buy = builder.add_block(strategy, "buy")
        builder.update_block_parameter(strategy, sma.id, "period", 50)
        builder.update_block_parameter(strategy, compare.id, "operator", "neq")
        builder.create_connection(strategy, price.id, "close", compare.id, "a")
        builder.create_connection(strategy, sma.id, "value", compare.id, "b")
        builder.create_connection(strategy, compare.id, "result", buy.id, "trigger")

        assert engine.run(strategy, make_candles(CROSSOVER_CLOSES)) == []


class TestEnabledFlags:

    def test_disabled_action_does_not_emit(self, builder, engine):
        strategy, blocks = crossover_strategy(builder)
        builder.set_block_enabled(strategy, blocks["buy"].id, False)
        signals = engine.run(strategy, make_candles(CROSSOVER_CLOSES))
        assert [s.kind for s in signals] == [SignalKind.SELL]

    def test_disabled_upstream_block_silences_actions(self, builder, engine):
        strategy, blocks = crossover_strategy(builder)
        builder.set_block_enabled(strategy, blocks["cross"].id, False)
        assert engine.run(strategy, make_candles(CROSSOVER_CLOSES)) == []


class TestActions:

    def test_alert_carries_message(self, builder, engine):
        strategy = builder.create_strategy("Alert")
        constant = builder.add_block(strategy, "constant")
        threshold = builder.add_block(strategy, "threshold")
        alert = builder.add_block(strategy, "alert")
        builder.update_block_parameter(strategy, constant.id, "value", 1)
        builder.update_block_parameter(strategy, alert.id, "message", "breakout")
        builder.create_connection(strategy, constant.id, "value", threshold.id, "value")
        builder.create_connection(strategy, threshold.id, "result", alert.id, "trigger")

        signals = engine.run(strategy, make_candles([10, 11, 12]))
        assert len(signals) == 3
        assert all(s.kind == SignalKind.ALERT for s in signals)
        assert all(s.message == "breakout" and s.size is None for s in signals)
        assert [s.price for s in signals] == [10.0, 11.0, 12.0]

    def test_signals_follow_document_order(self, builder, engine):
        strategy = builder.create_strategy("Order")
        constant = builder.add_block(strategy, "constant")
        threshold = builder.add_block(strategy, "threshold")
        stop = builder.add_block(strategy, "stoploss")
        buy = builder.add_block(strategy, "buy")
        builder.update_block_parameter(strategy, constant.id, "value", 1)
        builder.create_connection(strategy, constant.id, "value", threshold.id, "value")
        builder.create_connection(strategy, threshold.id, "result", buy.id, "trigger")
        builder.create_connection(strategy, threshold.id, "result", stop.id, "trigger")

        signals = engine.run(strategy, make_candles([10]))
        assert [s.kind for s in signals] == [SignalKind.STOP_LOSS, SignalKind.BUY]


class TestCancellation:

    def test_cancel_before_start(self, builder, engine):
        strategy, _ = crossover_strategy(builder)
        token = threading.Event()
        token.set()

        context = engine.execute(strategy, make_candles(CROSSOVER_CLOSES), cancel=token)
        assert context.cancelled is True
        assert context.steps == 0
        assert context.signals == []

    def test_partial_signal_log(self, builder, engine):
        strategy, _ = crossover_strategy(builder)
        context = engine.execute(strategy, make_candles(CROSSOVER_CLOSES), cancel=StopAfter(5))

        assert context.cancelled is True
        assert context.steps == 5
        assert [s.kind for s in context.signals] == [SignalKind.BUY]

    def test_unset_token_runs_to_completion(self, builder, engine):
        strategy, _ = crossover_strategy(builder)
        context = engine.execute(strategy, make_candles(CROSSOVER_CLOSES), cancel=threading.Event())
        assert context.cancelled is False
        assert len(context.signals) == 2


class TestSnapshot:

    def test_run_does_not_mutate_strategy(self, builder, engine):
        strategy, _ = crossover_strategy(builder)
        before = strategy.model_dump()
        engine.run(strategy, make_candles(CROSSOVER_CLOSES))
        assert strategy.model_dump() == before

    def test_cyclic_document_rejected_at_run(self, builder, engine):
        strategy = builder.create_strategy("Cycle")
        first = builder.add_block(strategy, "or")
        second = builder.add_block(strategy, "or")
        strategy.attach_connection(Connection(id="c1", from_block=first.id, from_port="result",
                                              to_block=second.id, to_port="a"))
        strategy.attach_connection(Connection(id="c2", from_block=second.id, from_port="result",
                                              to_block=first.id, to_port="a"))
        with pytest.raises(CyclicGraphError):
            engine.run(strategy, make_candles([1, 2]))


class TestPosition:

    def signal(self, kind, price=10.0, size=None):
        return ExecutionSignal(kind=kind, price=price, timestamp=0, size=size, block_id="b")

    def test_buy_opens_long(self):
        position = Position()
        position.apply(self.signal(SignalKind.BUY, price=5.0, size=10.0))
        assert (position.side, position.entry_price, position.size) == ("long", 5.0, 10.0)

    def test_sell_closes_long(self):
        position = Position()
        position.apply(self.signal(SignalKind.BUY))
        position.apply(self.signal(SignalKind.SELL))
        assert position.side == "none"

    def test_sell_opens_short_and_buy_covers(self):
        position = Position()
        position.apply(self.signal(SignalKind.SELL, price=7.0, size=1.0))
        assert position.side == "short"
        position.apply(self.signal(SignalKind.BUY))
        assert position.side == "none"

    def test_stop_loss_and_take_profit_flatten(self):
        for kind in (SignalKind.STOP_LOSS, SignalKind.TAKE_PROFIT):
            position = Position()
            position.apply(self.signal(SignalKind.BUY, size=2.0))
            position.apply(self.signal(kind))
            assert (position.side, position.entry_price, position.size) == ("none", 0.0, 0.0)

    def test_alert_leaves_position(self):
        position = Position()
        position.apply(self.signal(SignalKind.BUY, price=3.0))
        position.apply(self.signal(SignalKind.ALERT))
        assert position.side == "long"
        assert position.entry_price == 3.0
