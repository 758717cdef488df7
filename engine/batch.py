"""Independent runs in parallel: several strategies, scopes or parameter values."""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Iterable, List, Optional, Sequence

import config
from document.builder import StrategyBuilder
from document.schema import Strategy
from engine.context import Candle, ExecutionSignal
from engine.executor import CancelToken, ExecutionEngine

logger = logging.getLogger(__name__)


@dataclass
class RunJob:
    """One strategy over one candle sequence."""
    label: str
    strategy: Strategy
    candles: Sequence[Candle]


@dataclass
class RunResult:
    label: str
    signals: List[ExecutionSignal] = field(default_factory=list)
    steps: int = 0
    cancelled: bool = False


def _run_one(engine: ExecutionEngine, job: RunJob, cancel: Optional[CancelToken]) -> RunResult:
    context = engine.execute(job.strategy, job.candles, cancel)
    return RunResult(
        label=job.label,
        signals=context.signals,
        steps=context.steps,
        cancelled=context.cancelled,
    )


def run_batch(
    engine: ExecutionEngine,
    jobs: Iterable[RunJob],
    max_workers: Optional[int] = None,
    cancel: Optional[CancelToken] = None,
) -> List[RunResult]:
    """Run jobs concurrently; results come back in job order.

    Every run gets its own context and document snapshot, so nothing mutable
    is shared between workers.
    """
    jobs = list(jobs)
    if max_workers is None:
        max_workers = config.MAX_PARALLEL_RUNS

    with ThreadPoolExecutor(max_workers=max(1, max_workers)) as pool:
        futures = [pool.submit(_run_one, engine, job, cancel) for job in jobs]
        results = [f.result() for f in futures]

    logger.info("Batch of %d run(s) finished, %d signal(s) total",
                len(results), sum(len(r.signals) for r in results))
    return results


def sweep_parameter(
    engine: ExecutionEngine,
    builder: StrategyBuilder,
    strategy: Strategy,
    block_id: str,
    name: str,
    values: Sequence[Any],
    candles: Sequence[Candle],
    max_workers: Optional[int] = None,
    cancel: Optional[CancelToken] = None,
) -> List[RunResult]:
    """Run a copy of the strategy for each value of one block parameter.

    The given strategy is left untouched. Invalid values raise before any
    run starts.
    """
    jobs = []
    for value in values:
        variant = strategy.model_copy(deep=True)
        builder.update_block_parameter(variant, block_id, name, value)
        jobs.append(RunJob(label=f"{name}={value}", strategy=variant, candles=candles))
    return run_batch(engine, jobs, max_workers=max_workers, cancel=cancel)
