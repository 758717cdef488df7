"""Deterministic step-synchronous execution engine.

Runs a strategy document over a candle sequence one step at a time:

- Rotate state: the previous step's outputs become ``previous_outputs``
- Evaluate every enabled block in compiled order
- Emit a signal for every enabled action block whose trigger is ``True``

Each run owns its ``ExecutionContext`` and works on a snapshot of the
document taken at run start, so runs can proceed in parallel and edits made
while a run is in flight are not observed.
"""

import logging
from typing import Any, Dict, List, Optional, Protocol, Sequence, Tuple

import config
from blocks.catalog import BlockCatalog, BlockCategory
from document.schema import BlockInstance, Strategy
from engine.candles import CandleSeries
from engine.compiler import CompiledStrategy, compile_strategy
from engine.context import BlockOutputs, Candle, ExecutionContext, ExecutionSignal, SignalKind
from engine.transfer import BlockStep, get_transfer

logger = logging.getLogger(__name__)

_SIGNAL_KINDS = {kind.value for kind in SignalKind}


class CancelToken(Protocol):
    """Cooperative cancellation flag; ``threading.Event`` satisfies it."""

    def is_set(self) -> bool:
        ...


class ExecutionEngine:
    """Evaluates strategy documents over candle sequences."""

    def __init__(self, catalog: BlockCatalog, max_depth: Optional[int] = None):
        self.catalog = catalog
        self.max_depth = max_depth if max_depth is not None else config.MAX_GRAPH_DEPTH

    def compile(self, strategy: Strategy) -> CompiledStrategy:
        return compile_strategy(strategy, self.catalog, self.max_depth)

    def run(
        self,
        strategy: Strategy,
        candles: Sequence[Candle],
        cancel: Optional[CancelToken] = None,
    ) -> List[ExecutionSignal]:
        """Execute a strategy and return its signal log."""
        return self.execute(strategy, candles, cancel).signals

    def execute(
        self,
        strategy: Strategy,
        candles: Sequence[Candle],
        cancel: Optional[CancelToken] = None,
    ) -> ExecutionContext:
        """Execute a strategy on a candle sequence.

        Args:
            strategy: Strategy document (snapshotted at run start)
            candles: Time-ascending candles for the strategy's symbol/timeframe
            cancel: Optional flag checked before every step

        Returns:
            The run's context; ``signals`` holds the ordered signal log, which
            is partial when ``cancelled`` is set

        Raises:
            UnknownTemplateError: If a block's type is not in the catalog
            CyclicGraphError: If same-step dependencies form a cycle
            GraphDepthError: If a dependency chain is too deep
        """
        snapshot = strategy.model_copy(deep=True)
        compiled = self.compile(snapshot)
        series = CandleSeries.from_candles(candles)
        context = ExecutionContext(symbol=snapshot.symbol, timeframe=snapshot.timeframe)

        blocks = [snapshot.blocks[block_id] for block_id in compiled.execution_order]
        actions = self._emitters(snapshot)

        for index in range(compiled.warmup, len(series)):
            if cancel is not None and cancel.is_set():
                context.cancelled = True
                logger.warning(
                    "Run of strategy %s cancelled at step %d/%d with %d signal(s)",
                    snapshot.id, index, len(series), len(context.signals),
                )
                break

            context.rotate(index)
            for block in blocks:
                if block.enabled:
                    context.current_outputs[block.id] = self._evaluate_block(block, snapshot, context, series)

            for action, kind in actions:
                if self._resolve(snapshot, action, "trigger", context.current_outputs) is True:
                    context.emit(self._make_signal(action, kind, candles[index]))

            context.steps += 1

        logger.info(
            "Executed strategy %s over %d candle(s): %d step(s), %d signal(s)",
            snapshot.id, len(series), context.steps, len(context.signals),
        )
        return context

    def _evaluate_block(
        self,
        block: BlockInstance,
        strategy: Strategy,
        context: ExecutionContext,
        series: CandleSeries,
    ) -> Dict[str, Any]:
        """Evaluate one block for the current step."""
        fn = get_transfer(block.type)
        if fn is None:
            return {}

        step = BlockStep(
            index=context.current_index,
            series=series,
            params=block.param_values(),
            inputs={p.id: self._resolve(strategy, block, p.id, context.current_outputs) for p in block.inputs},
            previous_inputs={
                p.id: self._resolve(strategy, block, p.id, context.previous_outputs) for p in block.inputs
            },
            previous=context.previous_outputs.get(block.id, {}),
        )
        return fn(step)

    @staticmethod
    def _resolve(strategy: Strategy, block: BlockInstance, port_id: str, outputs: BlockOutputs) -> Any:
        """Value feeding an input port, or None if unbound or unavailable."""
        conn = strategy.connection_into(block.id, port_id)
        if conn is None:
            return None
        return outputs.get(conn.from_block, {}).get(conn.from_port)

    def _emitters(self, strategy: Strategy) -> List[Tuple[BlockInstance, SignalKind]]:
        """Enabled action blocks in document order, paired with the signal kind they emit."""
        emitters = []
        for block in strategy.blocks_of(BlockCategory.ACTION):
            if not block.enabled:
                continue
            signal_kind = self.catalog.template_of(block.type).signal_kind
            if signal_kind not in _SIGNAL_KINDS:
                logger.warning("Action block %s (%s) has no signal kind; it will not emit", block.id, block.type)
                continue
            emitters.append((block, SignalKind(signal_kind)))
        return emitters

    @staticmethod
    def _make_signal(block: BlockInstance, kind: SignalKind, candle: Candle) -> ExecutionSignal:
        params = block.param_values()
        size = None
        if kind in (SignalKind.BUY, SignalKind.SELL) and "size" in params:
            size = float(params["size"])
        message = params.get("message") if kind == SignalKind.ALERT else None

        return ExecutionSignal(
            kind=kind,
            price=candle.close,
            timestamp=candle.time,
            size=size,
            message=message,
            block_id=block.id,
        )
