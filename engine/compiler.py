"""Graph compiler: execution order and warm-up offset for a strategy."""

import logging
from dataclasses import dataclass
from typing import List, Optional, Tuple

import config
from blocks.catalog import BlockCatalog, BlockCategory
from blocks.errors import CyclicGraphError, GraphDepthError
from document.schema import Strategy
from engine.transfer import lookback_for

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CompiledStrategy:
    """Structural result of compiling a strategy, computed once per run."""
    execution_order: Tuple[str, ...]
    warmup: int


def build_execution_order(strategy: Strategy, max_depth: Optional[int] = None) -> List[str]:
    """Order blocks so every connection's source precedes its target.

    Depth-first from each action block (document order), emitting the
    source of every bound input before the block itself; blocks not reached
    from an action follow in document order.

    Raises:
        CyclicGraphError: If same-step dependencies form a cycle
        GraphDepthError: If a dependency chain exceeds max_depth
    """
    if max_depth is None:
        max_depth = config.MAX_GRAPH_DEPTH

    order: List[str] = []
    done = set()
    visiting: List[str] = []

    def visit(block_id: str):
        if block_id in done:
            return
        if block_id in visiting:
            cycle = visiting[visiting.index(block_id):] + [block_id]
            raise CyclicGraphError(f"Graph contains a cycle: {' -> '.join(cycle)}")
        if len(visiting) >= max_depth:
            raise GraphDepthError(f"Dependency chain deeper than {max_depth} blocks at {block_id}")

        block = strategy.get_block(block_id)
        if block is None:
            return

        visiting.append(block_id)
        for port in block.inputs:
            conn = strategy.connection_into(block_id, port.id)
            if conn is not None:
                visit(conn.from_block)
        visiting.pop()

        done.add(block_id)
        order.append(block_id)

    for block in strategy.blocks_of(BlockCategory.ACTION):
        visit(block.id)
    for block_id in strategy.blocks:
        visit(block_id)

    return order


def warmup_offset(strategy: Strategy) -> int:
    """First candle index at which every enabled indicator window is full."""
    lookbacks = [
        lookback_for(block.type, block.param_values())
        for block in strategy.blocks_of(BlockCategory.INDICATOR)
        if block.enabled
    ]
    return max(max(lookbacks, default=0) - 1, 0)


def compile_strategy(
    strategy: Strategy,
    catalog: BlockCatalog,
    max_depth: Optional[int] = None,
) -> CompiledStrategy:
    """Validate block types and derive execution order and warm-up.

    Raises:
        UnknownTemplateError: If a block's type is not in the catalog
        CyclicGraphError: If same-step dependencies form a cycle
        GraphDepthError: If a dependency chain exceeds max_depth
    """
    for block in strategy.blocks.values():
        catalog.template_of(block.type)

    order = build_execution_order(strategy, max_depth)
    compiled = CompiledStrategy(execution_order=tuple(order), warmup=warmup_offset(strategy))
    logger.debug(
        "Compiled strategy %s: %d blocks, warm-up %d",
        strategy.id, len(compiled.execution_order), compiled.warmup,
    )
    return compiled
