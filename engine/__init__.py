from .context import Candle, ExecutionContext, ExecutionSignal, Position, SignalKind
from .candles import CandleSeries, candles_from_dataframe, candles_from_records
from .compiler import CompiledStrategy, build_execution_order, compile_strategy
from .executor import ExecutionEngine
from .batch import RunJob, RunResult, run_batch, sweep_parameter

__all__ = [
    'Candle', 'ExecutionContext', 'ExecutionSignal', 'Position', 'SignalKind',
    'CandleSeries', 'candles_from_dataframe', 'candles_from_records',
    'CompiledStrategy', 'build_execution_order', 'compile_strategy',
    'ExecutionEngine', 'RunJob', 'RunResult', 'run_batch', 'sweep_parameter',
]
