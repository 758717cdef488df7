"""Strategy export/import.

Imports never reuse ids from the payload: the strategy, its blocks and its
connections all get fresh ids, and the document is rebuilt through
``StrategyBuilder`` so every wiring rule is checked again.
"""

import logging
from typing import Any, Dict, List, Mapping, Union

from pydantic import BaseModel, Field, ValidationError

from blocks.errors import BlockGraphError, StrategyImportError
from document.builder import StrategyBuilder
from document.schema import Placement, Strategy

logger = logging.getLogger(__name__)

EXPORT_FORMAT_VERSION = 1


class ExportedBlock(BaseModel):
    id: str
    type: str
    parameters: Dict[str, Any] = Field(default_factory=dict)
    enabled: bool = True
    placement: Placement = Field(default_factory=Placement)


class ExportedConnection(BaseModel):
    id: str
    from_block: str
    from_port: str
    to_block: str
    to_port: str


class StrategyExport(BaseModel):
    """Portable strategy document."""
    format_version: int = EXPORT_FORMAT_VERSION
    name: str
    description: str = ""
    symbol: str
    timeframe: str
    enabled: bool = False
    blocks: List[ExportedBlock] = Field(default_factory=list)
    connections: List[ExportedConnection] = Field(default_factory=list)


def export_strategy(strategy: Strategy) -> StrategyExport:
    return StrategyExport(
        name=strategy.name,
        description=strategy.description,
        symbol=strategy.symbol,
        timeframe=strategy.timeframe,
        enabled=strategy.enabled,
        blocks=[
            ExportedBlock(
                id=block.id,
                type=block.type,
                parameters=block.param_values(),
                enabled=block.enabled,
                placement=block.placement.model_copy(),
            )
            for block in strategy.blocks.values()
        ],
        connections=[
            ExportedConnection(**conn.model_dump())
            for conn in strategy.connections.values()
        ],
    )


def export_strategy_json(strategy: Strategy, indent: int = 2) -> str:
    return export_strategy(strategy).model_dump_json(indent=indent)


def _parse(payload: Union[str, bytes, Mapping[str, Any], StrategyExport]) -> StrategyExport:
    if isinstance(payload, StrategyExport):
        return payload
    try:
        if isinstance(payload, (str, bytes)):
            return StrategyExport.model_validate_json(payload)
        return StrategyExport.model_validate(dict(payload))
    except (ValidationError, TypeError, ValueError) as e:
        raise StrategyImportError(f"Malformed strategy document: {e}") from e


def import_strategy(
    builder: StrategyBuilder,
    payload: Union[str, bytes, Mapping[str, Any], StrategyExport],
) -> Strategy:
    """Rebuild an exported strategy under fresh ids.

    Imported strategies start disabled.

    Raises:
        StrategyImportError: If the payload is malformed or violates any
            document rule; nothing is created in that case
    """
    doc = _parse(payload)
    if doc.format_version > EXPORT_FORMAT_VERSION:
        raise StrategyImportError(f"Unsupported format version: {doc.format_version}")

    strategy = builder.create_strategy(doc.name, symbol=doc.symbol, timeframe=doc.timeframe)
    strategy.description = doc.description

    id_map: Dict[str, str] = {}
    try:
        for exported in doc.blocks:
            if exported.id in id_map:
                raise StrategyImportError(f"Duplicate block id in document: {exported.id}")
            block = builder.add_block(strategy, exported.type, exported.placement.x, exported.placement.y)
            id_map[exported.id] = block.id
            for name, value in exported.parameters.items():
                builder.update_block_parameter(strategy, block.id, name, value)
            if not exported.enabled:
                builder.set_block_enabled(strategy, block.id, False)

        for conn in doc.connections:
            if conn.from_block not in id_map or conn.to_block not in id_map:
                raise StrategyImportError(f"Connection {conn.id} references an unknown block")
            builder.create_connection(
                strategy,
                id_map[conn.from_block], conn.from_port,
                id_map[conn.to_block], conn.to_port,
            )
    except StrategyImportError:
        raise
    except BlockGraphError as e:
        raise StrategyImportError(f"Invalid strategy document: {e}") from e

    logger.debug("Imported strategy %s with %d block(s)", strategy.id, len(strategy.blocks))
    return strategy

