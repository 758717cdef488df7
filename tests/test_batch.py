"""Tests for parallel runs and parameter sweeps."""

import sys
import threading
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

import pytest

from blocks.catalog import BlockCatalog
from blocks.errors import ParameterValueError
from document.builder import StrategyBuilder
from document.templates import create_from_template
from engine.batch import RunJob, run_batch, sweep_parameter
from engine.context import Candle, SignalKind
from engine.executor import ExecutionEngine

CLOSES = [1, 1, 1, 1, 5, 6, 7, 8, 8, 8, 8, 8, 3, 2, 1, 1]


@pytest.fixture
def catalog():
    return BlockCatalog()


@pytest.fixture
def builder(catalog):
    return StrategyBuilder(catalog)


@pytest.fixture
def engine(catalog):
    return ExecutionEngine(catalog)


@pytest.fixture
def candles():
    return [Candle(time=i * 60_000, open=c, high=c, low=c, close=c) for i, c in enumerate(CLOSES)]


def test_results_in_job_order(builder, engine, candles):
    crossing = create_from_template(builder, "golden_cross", "2/4", fast_period=2, slow_period=4)
    too_slow = create_from_template(builder, "golden_cross", "2/40", fast_period=2, slow_period=40)
    jobs = [
        RunJob(label="crossing", strategy=crossing, candles=candles),
        RunJob(label="too slow", strategy=too_slow, candles=candles),
        RunJob(label="again", strategy=crossing, candles=candles),
    ]

    results = run_batch(engine, jobs, max_workers=3)

    assert [r.label for r in results] == ["crossing", "too slow", "again"]
    assert [s.kind for s in results[0].signals] == [SignalKind.BUY, SignalKind.SELL]
    assert results[1].signals == []
    assert results[1].steps == 0
    assert results[2].signals == results[0].signals


def test_parallel_matches_sequential(builder, engine, candles):
    strategy = create_from_template(builder, "golden_cross", "GC", fast_period=2, slow_period=4)
    jobs = [RunJob(label=str(i), strategy=strategy, candles=candles) for i in range(8)]
    sequential = engine.run(strategy, candles)

    for result in run_batch(engine, jobs, max_workers=4):
        assert result.signals == sequential
        assert result.cancelled is False


def test_empty_batch(engine):
    assert run_batch(engine, []) == []


def test_shared_cancel_token(builder, engine, candles):
    strategy = create_from_template(builder, "golden_cross", "GC", fast_period=2, slow_period=4)
    token = threading.Event()
    token.set()
    results = run_batch(engine, [RunJob("a", strategy, candles), RunJob("b", strategy, candles)], cancel=token)
    assert all(r.cancelled and r.steps == 0 for r in results)


class TestSweep:

    def test_one_result_per_value(self, builder, engine, candles):
        strategy = create_from_template(builder, "golden_cross", "GC", fast_period=2, slow_period=4)
        slow = [b for b in strategy.blocks.values() if b.type == "sma"][1]

        results = sweep_parameter(engine, builder, strategy, slow.id, "period", [4, 40], candles)

        assert [r.label for r in results] == ["period=4", "period=40"]
        assert len(results[0].signals) == 2
        assert results[1].signals == []

    def test_source_strategy_untouched(self, builder, engine, candles):
        strategy = create_from_template(builder, "golden_cross", "GC", fast_period=2, slow_period=4)
        slow = [b for b in strategy.blocks.values() if b.type == "sma"][1]
        revision = strategy.revision

        sweep_parameter(engine, builder, strategy, slow.id, "period", [3, 5, 7], candles)

        assert slow.param_values()["period"] == 4.0
        assert strategy.revision == revision

    def test_invalid_value_raises_before_running(self, builder, engine, candles):
        strategy = create_from_template(builder, "golden_cross", "GC")
        fast = [b for b in strategy.blocks.values() if b.type == "sma"][0]
        with pytest.raises(ParameterValueError):
            sweep_parameter(engine, builder, strategy, fast.id, "period", [5, "ten"], candles)
