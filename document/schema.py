"""Strategy document data model.

A strategy owns an arena of block instances (keyed by id, in document order)
and the connections between their ports. Two private indexes keep
replace-on-rebind and cascading deletes O(1):

- ``(block id, input port id) -> connection id``
- ``block id -> ids of connections touching that block``

Only ``document.builder`` mutates a strategy; it goes through
``attach_connection`` / ``detach_connection`` so the indexes and the input
ports' bound markers stay consistent.
"""

import math
from collections import deque
from datetime import datetime, timezone
from typing import Annotated, Any, Dict, List, Literal, Optional, Sequence, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr

from blocks.catalog import BlockCategory, BlockTemplate, ParamKind, ParamSpec, PortKind, PortSpec
from blocks.errors import ParameterValueError


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


# ============================================================================
# Parameter values (closed variant per declared kind)
# ============================================================================

class NumberValue(BaseModel):
    kind: Literal["number"] = "number"
    value: float


class StringValue(BaseModel):
    kind: Literal["string"] = "string"
    value: str


class BooleanValue(BaseModel):
    kind: Literal["boolean"] = "boolean"
    value: bool


class OptionValue(BaseModel):
    kind: Literal["select"] = "select"
    value: str


ParameterValue = Annotated[
    Union[NumberValue, StringValue, BooleanValue, OptionValue],
    Field(discriminator="kind"),
]


def make_parameter_value(kind: ParamKind, value: Any, options: Sequence[str] = ()) -> ParameterValue:
    """Wrap a plain value in the variant for its declared kind.

    No coercion across kinds: ints widen to floats for numbers, nothing else
    is converted. Select values must be one of the declared options.

    Raises:
        ParameterValueError: If the value does not fit the kind
    """
    kind = ParamKind(kind)
    if kind == ParamKind.NUMBER:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ParameterValueError(f"Expected a number, got {value!r}")
        try:
            number = float(value)
        except OverflowError:
            raise ParameterValueError(f"Number out of range: {value!r}") from None
        if not math.isfinite(number):
            raise ParameterValueError(f"Expected a finite number, got {value!r}")
        return NumberValue(value=number)
    if kind == ParamKind.STRING:
        if not isinstance(value, str):
            raise ParameterValueError(f"Expected a string, got {value!r}")
        return StringValue(value=value)
    if kind == ParamKind.BOOLEAN:
        if not isinstance(value, bool):
            raise ParameterValueError(f"Expected a boolean, got {value!r}")
        return BooleanValue(value=value)

    if not isinstance(value, str):
        raise ParameterValueError(f"Expected an option string, got {value!r}")
    if options and value not in options:
        raise ParameterValueError(f"{value!r} is not one of {list(options)}")
    return OptionValue(value=value)


# ============================================================================
# Blocks
# ============================================================================

class BlockParameter(BaseModel):
    """Parameter record owned by a block instance."""
    name: str
    label: str
    kind: ParamKind
    value: ParameterValue
    default: ParameterValue
    min_value: Optional[float] = None
    max_value: Optional[float] = None
    options: List[str] = Field(default_factory=list)

    @classmethod
    def from_spec(cls, spec: ParamSpec) -> "BlockParameter":
        default = make_parameter_value(spec.kind, spec.default, spec.options)
        return cls(
            name=spec.name,
            label=spec.label,
            kind=spec.kind,
            value=default.model_copy(),
            default=default,
            min_value=spec.min_value,
            max_value=spec.max_value,
            options=list(spec.options),
        )


class Port(BaseModel):
    """Port record owned by a block instance.

    Input ports carry a bound marker naming the block/port that feeds them.
    """
    id: str
    label: str
    kind: PortKind
    connected_block: Optional[str] = None
    connected_port: Optional[str] = None

    @classmethod
    def from_spec(cls, spec: PortSpec) -> "Port":
        return cls(id=spec.id, label=spec.label, kind=spec.kind)

    @property
    def bound(self) -> bool:
        return self.connected_block is not None


class Placement(BaseModel):
    """Canvas position. Not used by execution."""
    x: float = 0.0
    y: float = 0.0


class BlockInstance(BaseModel):
    """A block placed in a strategy."""
    id: str
    type: str
    category: BlockCategory
    name: str
    parameters: List[BlockParameter] = Field(default_factory=list)
    inputs: List[Port] = Field(default_factory=list)
    outputs: List[Port] = Field(default_factory=list)
    enabled: bool = True
    placement: Placement = Field(default_factory=Placement)

    @classmethod
    def from_template(cls, template: BlockTemplate, block_id: str,
                      placement: Optional[Placement] = None) -> "BlockInstance":
        """Instantiate a template with fresh copies of its parameter and port records."""
        return cls(
            id=block_id,
            type=template.type,
            category=template.category,
            name=template.name,
            parameters=[BlockParameter.from_spec(p) for p in template.params],
            inputs=[Port.from_spec(p) for p in template.inputs],
            outputs=[Port.from_spec(p) for p in template.outputs],
            placement=placement or Placement(),
        )

    def get_parameter(self, name: str) -> Optional[BlockParameter]:
        for param in self.parameters:
            if param.name == name:
                return param
        return None

    def get_input(self, port_id: str) -> Optional[Port]:
        for port in self.inputs:
            if port.id == port_id:
                return port
        return None

    def get_output(self, port_id: str) -> Optional[Port]:
        for port in self.outputs:
            if port.id == port_id:
                return port
        return None

    def param_values(self) -> Dict[str, Any]:
        """Plain parameter values keyed by name."""
        return {p.name: p.value.value for p in self.parameters}


# ============================================================================
# Connections and strategies
# ============================================================================

class Connection(BaseModel):
    """Directed edge from one block's output port to another block's input port."""
    model_config = ConfigDict(frozen=True)

    id: str
    from_block: str
    from_port: str
    to_block: str
    to_port: str


class Strategy(BaseModel):
    """Strategy document: blocks, connections and scope."""
    id: str
    name: str
    description: str = ""
    symbol: str
    timeframe: str
    enabled: bool = False
    revision: int = 1
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    blocks: Dict[str, BlockInstance] = Field(default_factory=dict)
    connections: Dict[str, Connection] = Field(default_factory=dict)

    _input_index: Dict[Tuple[str, str], str] = PrivateAttr(default_factory=dict)
    _block_index: Dict[str, Dict[str, None]] = PrivateAttr(default_factory=dict)

    def model_post_init(self, __context: Any) -> None:
        self._rebuild_indexes()

    def _rebuild_indexes(self):
        self._input_index = {}
        self._block_index = {}
        for conn in self.connections.values():
            self._index(conn)

    def _index(self, conn: Connection):
        self._input_index[(conn.to_block, conn.to_port)] = conn.id
        self._block_index.setdefault(conn.from_block, {})[conn.id] = None
        self._block_index.setdefault(conn.to_block, {})[conn.id] = None

    # ----- queries -----

    def get_block(self, block_id: str) -> Optional[BlockInstance]:
        """Get a block by ID."""
        return self.blocks.get(block_id)

    def connection_into(self, block_id: str, port_id: str) -> Optional[Connection]:
        """Get the connection bound to an input port, if any."""
        conn_id = self._input_index.get((block_id, port_id))
        if conn_id is None:
            return None
        return self.connections[conn_id]

    def connections_touching(self, block_id: str) -> List[Connection]:
        """Connections whose source or target is the block."""
        return [self.connections[c] for c in self._block_index.get(block_id, {})]

    def reaches(self, start_block: str, goal_block: str) -> bool:
        """Whether a path of connections leads from start_block to goal_block."""
        seen = {start_block}
        queue = deque([start_block])
        while queue:
            current = queue.popleft()
            if current == goal_block:
                return True
            for conn in self.connections_touching(current):
                if conn.from_block == current and conn.to_block not in seen:
                    seen.add(conn.to_block)
                    queue.append(conn.to_block)
        return False

    def blocks_of(self, category: BlockCategory) -> List[BlockInstance]:
        return [b for b in self.blocks.values() if b.category == category]

    # ----- mutation primitives (used by document.builder) -----

    def attach_connection(self, conn: Connection):
        self.connections[conn.id] = conn
        self._index(conn)
        port = self.blocks[conn.to_block].get_input(conn.to_port)
        port.connected_block = conn.from_block
        port.connected_port = conn.from_port

    def detach_connection(self, conn_id: str) -> Connection:
        conn = self.connections.pop(conn_id)
        if self._input_index.get((conn.to_block, conn.to_port)) == conn_id:
            del self._input_index[(conn.to_block, conn.to_port)]
        for block_id in (conn.from_block, conn.to_block):
            touching = self._block_index.get(block_id)
            if touching is not None:
                touching.pop(conn_id, None)
                if not touching:
                    del self._block_index[block_id]

        target = self.blocks.get(conn.to_block)
        if target is not None:
            port = target.get_input(conn.to_port)
            if port is not None:
                port.connected_block = None
                port.connected_port = None
        return conn

    def touch(self):
        """Record a successful edit."""
        self.revision += 1
        self.updated_at = utc_now()

    def clear(self):
        """Drop every block and connection."""
        self.connections.clear()
        self.blocks.clear()
        self._rebuild_indexes()
