"""Validated edits on strategy documents.

Every operation checks all of its preconditions before touching the
document, so a raised error always leaves the strategy exactly as it was.
"""

import logging
import uuid
from typing import Any, List

import config
from blocks.catalog import BlockCatalog, PortKind
from blocks.errors import (
    CyclicGraphError,
    PortTypeMismatchError,
    UnknownBlockError,
    UnknownConnectionError,
    UnknownParameterError,
    UnknownPortError,
)
from document.schema import (
    BlockInstance,
    BlockParameter,
    Connection,
    Placement,
    Strategy,
    make_parameter_value,
)

logger = logging.getLogger(__name__)


def new_id() -> str:
    return uuid.uuid4().hex


def kinds_compatible(source: PortKind, target: PortKind) -> bool:
    """Port kinds must match exactly unless either side is ``any``."""
    return source == target or PortKind.ANY in (source, target)


class StrategyBuilder:
    """Creates and edits strategy documents against a block catalog."""

    def __init__(self, catalog: BlockCatalog):
        self.catalog = catalog

    def create_strategy(
        self,
        name: str,
        symbol: str = config.DEFAULT_SYMBOL,
        timeframe: str = config.DEFAULT_TIMEFRAME,
    ) -> Strategy:
        """Create an empty strategy."""
        strategy = Strategy(id=new_id(), name=name, symbol=symbol, timeframe=timeframe)
        logger.debug("Created strategy %s (%s %s)", strategy.id, symbol, timeframe)
        return strategy

    # ===== BLOCKS =====

    def add_block(self, strategy: Strategy, block_type: str, x: float = 0.0, y: float = 0.0) -> BlockInstance:
        """Instantiate a catalog template into the strategy.

        Raises:
            UnknownTemplateError: If the block type is not in the catalog
        """
        template = self.catalog.template_of(block_type)
        block = BlockInstance.from_template(template, new_id(), Placement(x=x, y=y))
        strategy.blocks[block.id] = block
        strategy.touch()
        logger.debug("Added %s block %s to strategy %s", block_type, block.id, strategy.id)
        return block

    def update_block_parameter(self, strategy: Strategy, block_id: str, name: str, value: Any) -> BlockParameter:
        """Set a parameter value. Numeric bounds are not enforced.

        Raises:
            UnknownBlockError: If the block does not exist
            UnknownParameterError: If the block has no such parameter
            ParameterValueError: If the value does not fit the parameter's kind
        """
        block = self._require_block(strategy, block_id)
        param = block.get_parameter(name)
        if param is None:
            raise UnknownParameterError(f"Block {block_id} ({block.type}) has no parameter '{name}'")

        param.value = make_parameter_value(param.kind, value, param.options)
        strategy.touch()
        logger.debug("Set %s.%s = %r", block_id, name, value)
        return param

    def set_block_enabled(self, strategy: Strategy, block_id: str, enabled: bool) -> BlockInstance:
        block = self._require_block(strategy, block_id)
        block.enabled = enabled
        strategy.touch()
        return block

    def move_block(self, strategy: Strategy, block_id: str, x: float, y: float) -> BlockInstance:
        block = self._require_block(strategy, block_id)
        block.placement = Placement(x=x, y=y)
        strategy.touch()
        return block

    def remove_block(self, strategy: Strategy, block_id: str) -> List[Connection]:
        """Remove a block and every connection touching it.

        Returns:
            The removed connections
        """
        self._require_block(strategy, block_id)
        removed = [strategy.detach_connection(c.id) for c in strategy.connections_touching(block_id)]
        del strategy.blocks[block_id]
        strategy.touch()
        logger.debug("Removed block %s and %d connection(s)", block_id, len(removed))
        return removed

    # ===== CONNECTIONS =====

    def create_connection(
        self,
        strategy: Strategy,
        from_block: str,
        from_port: str,
        to_block: str,
        to_port: str,
    ) -> Connection:
        """Connect an output port to an input port.

        An input accepts one connection; connecting an already bound input
        replaces the previous connection.

        Raises:
            UnknownBlockError: If either block does not exist
            UnknownPortError: If either port is not declared on its block
            PortTypeMismatchError: If the port kinds are incompatible
            CyclicGraphError: If the connection would close a same-step cycle
        """
        source = self._require_block(strategy, from_block)
        target = self._require_block(strategy, to_block)

        source_port = source.get_output(from_port)
        if source_port is None:
            raise UnknownPortError(f"Block {from_block} ({source.type}) has no output '{from_port}'")
        target_port = target.get_input(to_port)
        if target_port is None:
            raise UnknownPortError(f"Block {to_block} ({target.type}) has no input '{to_port}'")

        if not kinds_compatible(source_port.kind, target_port.kind):
            raise PortTypeMismatchError(
                f"Cannot connect {source_port.kind.value} output {from_block}.{from_port} "
                f"to {target_port.kind.value} input {to_block}.{to_port}"
            )

        if from_block == to_block or strategy.reaches(to_block, from_block):
            raise CyclicGraphError(
                f"Connecting {from_block}.{from_port} -> {to_block}.{to_port} would create a cycle"
            )

        existing = strategy.connection_into(to_block, to_port)
        if existing is not None:
            strategy.detach_connection(existing.id)
            logger.debug("Replaced connection %s into %s.%s", existing.id, to_block, to_port)

        conn = Connection(
            id=new_id(),
            from_block=from_block,
            from_port=from_port,
            to_block=to_block,
            to_port=to_port,
        )
        strategy.attach_connection(conn)
        strategy.touch()
        return conn

    def remove_connection(self, strategy: Strategy, connection_id: str) -> Connection:
        """Remove a connection and clear the target port's bound marker.

        Raises:
            UnknownConnectionError: If the connection does not exist
        """
        if connection_id not in strategy.connections:
            raise UnknownConnectionError(f"Unknown connection: {connection_id}")
        conn = strategy.detach_connection(connection_id)
        strategy.touch()
        return conn

    def _require_block(self, strategy: Strategy, block_id: str) -> BlockInstance:
        block = strategy.get_block(block_id)
        if block is None:
            raise UnknownBlockError(f"Unknown block: {block_id}")
        return block
