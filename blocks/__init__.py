from .catalog import (
    BlockCatalog, BlockTemplate, BlockCategory, BlockType, ParamSpec, ParamKind,
    PortSpec, PortKind, standard_templates,
)
from .errors import BlockGraphError

__all__ = [
    'BlockCatalog', 'BlockTemplate', 'BlockCategory', 'BlockType', 'ParamSpec',
    'ParamKind', 'PortSpec', 'PortKind', 'standard_templates', 'BlockGraphError',
]
