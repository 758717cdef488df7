#!/usr/bin/env python3
"""Demo: SMA Crossover Strategy

Demonstrates end-to-end execution with:
- A golden-cross strategy created from a template (10/30 periods)
- A synthetic random-walk OHLCV series
- A parameter sweep over the fast period
"""

import logging
import sys

import numpy as np
import pandas as pd

import config
from blocks import BlockCatalog, BlockGraphError, BlockType
from document import StrategyBuilder, StrategyStore
from engine import ExecutionEngine, candles_from_dataframe, sweep_parameter


def make_sample_data(bars: int = 500, seed: int = 7) -> pd.DataFrame:
    """Random-walk hourly bars indexed by timestamp."""
    rng = np.random.default_rng(seed)
    close = 100.0 + np.cumsum(rng.normal(0, 1.0, bars))
    open_ = np.concatenate([[close[0]], close[:-1]])
    spread = np.abs(rng.normal(0, 0.5, bars))

    index = pd.date_range("2024-01-01", periods=bars, freq="1h", tz="UTC", name="timestamp")
    return pd.DataFrame({
        "open": open_,
        "high": np.maximum(open_, close) + spread,
        "low": np.minimum(open_, close) - spread,
        "close": close,
        "volume": rng.integers(1_000, 10_000, bars).astype(float),
    }, index=index)


def print_signals(signals, limit: int = 10):
    """Print the last few signals of a run."""
    if not signals:
        print("No signals emitted.\n")
        return

    print(f"\nRecent Signals (last {limit}):")
    print("-" * 60)
    for signal in signals[-limit:]:
        when = pd.Timestamp(signal.timestamp, unit="ms", tz="UTC").strftime("%Y-%m-%d %H:%M")
        size = f"{signal.size:g}" if signal.size is not None else "-"
        print(f"{when} | {signal.kind.value:<11} | {signal.price:>10.2f} | size {size}")
    print("-" * 60 + "\n")


def main():
    """Main demo script."""
    logging.basicConfig(
        level=config.LOG_LEVEL,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    )

    print("\n" + "=" * 60)
    print("SMA CROSSOVER STRATEGY DEMO")
    print("=" * 60 + "\n")

    catalog = BlockCatalog()
    builder = StrategyBuilder(catalog)
    store = StrategyStore(builder)
    engine = ExecutionEngine(catalog)

    print("📈 Creating golden-cross strategy (10/30 periods)...")
    strategy = store.create_from_template("golden_cross", "SMA Crossover (10/30)",
                                          fast_period=10, slow_period=30)
    print(f"✓ {len(strategy.blocks)} blocks, {len(strategy.connections)} connections")

    data = make_sample_data()
    candles = candles_from_dataframe(data)
    print(f"✓ Generated {len(candles)} bars")

    print("\n⚙️  Executing strategy...")
    try:
        context = engine.execute(strategy, candles)
    except BlockGraphError as e:
        print(f"❌ Execution failed: {e}")
        sys.exit(1)

    print(f"✓ {context.steps} steps, {len(context.signals)} signals, final position: {context.position.side}")
    print_signals(context.signals)

    print("🔬 Sweeping fast SMA period...")
    fast = next(b for b in strategy.blocks.values() if b.type == BlockType.SMA.value)
    results = sweep_parameter(engine, builder, strategy, fast.id, "period", [5, 10, 15, 20], candles)
    for result in results:
        print(f"  {result.label:<12} {len(result.signals):>4} signals")

    print("\n✅ Demo complete!\n")


if __name__ == "__main__":
    main()
