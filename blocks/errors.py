"""Error taxonomy for block catalogs, strategy documents and runs.

Document edits raise before mutating anything, so callers can catch any
``BlockGraphError`` and keep using the document.
"""


class BlockGraphError(Exception):
    """Base class for all block-graph errors."""


class UnknownTemplateError(BlockGraphError):
    """Block type (or strategy template) is not in the catalog."""


class UnknownStrategyError(BlockGraphError):
    """Strategy id is not in the store."""


class UnknownBlockError(BlockGraphError):
    """Block id is not part of the strategy."""


class UnknownConnectionError(BlockGraphError):
    """Connection id is not part of the strategy."""


class UnknownParameterError(BlockGraphError):
    """Block has no parameter with that name."""


class ParameterValueError(BlockGraphError):
    """Value does not fit the parameter's declared kind."""


class GraphIntegrityError(BlockGraphError):
    """Connection would violate the document's wiring rules."""


class UnknownPortError(GraphIntegrityError):
    """Port id is not declared on the block."""


class PortTypeMismatchError(GraphIntegrityError):
    """Source and target port kinds are incompatible."""


class CyclicGraphError(GraphIntegrityError):
    """Same-step dependencies form a cycle."""


class GraphDepthError(GraphIntegrityError):
    """Dependency chain is deeper than the configured ceiling."""


class StrategyImportError(BlockGraphError):
    """Exported document could not be parsed or rebuilt."""


class CandleSequenceError(BlockGraphError):
    """Candle input is malformed or not time-ascending."""
