from .schema import (
    BlockInstance, BlockParameter, Connection, Placement, Port, Strategy, make_parameter_value,
)
from .builder import StrategyBuilder
from .serialization import StrategyExport, export_strategy, export_strategy_json, import_strategy
from .templates import TEMPLATES, create_from_template, list_templates
from .store import StrategyStore

__all__ = [
    'BlockInstance', 'BlockParameter', 'Connection', 'Placement', 'Port', 'Strategy',
    'make_parameter_value', 'StrategyBuilder', 'StrategyExport', 'export_strategy',
    'export_strategy_json', 'import_strategy', 'TEMPLATES', 'create_from_template',
    'list_templates', 'StrategyStore',
]
