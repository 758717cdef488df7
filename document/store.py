"""In-memory strategy store.

Holds strategies by id in creation order. Import and duplicate go through
``document.serialization`` so stored documents always satisfy the wiring
rules; a failed import leaves the store unchanged.
"""

import logging
from typing import Any, Dict, List, Optional

from pydantic import TypeAdapter

import config
from blocks.errors import StrategyImportError, UnknownStrategyError
from document.builder import StrategyBuilder
from document.schema import Strategy
from document.serialization import export_strategy_json, import_strategy
from document.templates import create_from_template

logger = logging.getLogger(__name__)

_EDITABLE_FIELDS = {
    name: TypeAdapter(Strategy.model_fields[name].annotation)
    for name in ("name", "description", "symbol", "timeframe", "enabled")
}


class StrategyStore:
    """Strategies keyed by id, edited through a shared builder."""

    def __init__(self, builder: StrategyBuilder):
        self.builder = builder
        self.strategies: Dict[str, Strategy] = {}

    def create(
        self,
        name: str,
        symbol: str = config.DEFAULT_SYMBOL,
        timeframe: str = config.DEFAULT_TIMEFRAME,
        description: str = "",
    ) -> Strategy:
        strategy = self.builder.create_strategy(name, symbol=symbol, timeframe=timeframe)
        strategy.description = description
        return self._add(strategy)

    def create_from_template(
        self,
        template_id: str,
        name: str,
        symbol: str = config.DEFAULT_SYMBOL,
        timeframe: str = config.DEFAULT_TIMEFRAME,
        **options,
    ) -> Strategy:
        """Create and store a strategy pre-wired from a template."""
        strategy = create_from_template(self.builder, template_id, name, symbol=symbol,
                                        timeframe=timeframe, **options)
        return self._add(strategy)

    def get(self, strategy_id: str) -> Optional[Strategy]:
        return self.strategies.get(strategy_id)

    def require(self, strategy_id: str) -> Strategy:
        strategy = self.strategies.get(strategy_id)
        if strategy is None:
            raise UnknownStrategyError(f"Unknown strategy: {strategy_id}")
        return strategy

    def list(self) -> List[Strategy]:
        return list(self.strategies.values())

    def update_metadata(self, strategy_id: str, **changes: Any) -> Strategy:
        """Change name/description/symbol/timeframe/enabled.

        Raises:
            UnknownStrategyError: If the strategy is not stored
            ValueError: If a field is not editable or a value has the wrong
                type (pydantic ValidationError); nothing is changed then
        """
        strategy = self.require(strategy_id)
        unknown = [k for k in changes if k not in _EDITABLE_FIELDS]
        if unknown:
            raise ValueError(f"Not editable strategy field(s): {unknown}")

        validated = {key: _EDITABLE_FIELDS[key].validate_python(value, strict=True)
                     for key, value in changes.items()}
        for key, value in validated.items():
            setattr(strategy, key, value)
        strategy.touch()
        logger.info("Updated strategy %s: %s", strategy_id, sorted(changes))
        return strategy

    def delete(self, strategy_id: str) -> Strategy:
        """Remove a strategy along with all of its blocks and connections."""
        strategy = self.require(strategy_id)
        del self.strategies[strategy_id]
        strategy.clear()
        logger.info("Deleted strategy %s", strategy_id)
        return strategy

    def duplicate(self, strategy_id: str, name: Optional[str] = None) -> Strategy:
        """Copy a strategy under fresh ids. The copy starts disabled."""
        source = self.require(strategy_id)
        copy = import_strategy(self.builder, export_strategy_json(source))
        copy.name = name if name is not None else f"{source.name} (copy)"
        return self._add(copy)

    def export_json(self, strategy_id: str) -> str:
        return export_strategy_json(self.require(strategy_id))

    def import_json(self, payload: str) -> Strategy:
        """Import an exported document as a new stored strategy.

        Raises:
            StrategyImportError: If the document is malformed or invalid
        """
        try:
            strategy = import_strategy(self.builder, payload)
        except StrategyImportError as e:
            logger.warning("Rejected strategy import: %s", e)
            raise
        return self._add(strategy)

    def _add(self, strategy: Strategy) -> Strategy:
        self.strategies[strategy.id] = strategy
        logger.info("Stored strategy %s (%s) with %d block(s)",
                    strategy.id, strategy.name, len(strategy.blocks))
        return strategy

    def __len__(self) -> int:
        return len(self.strategies)

    def __contains__(self, strategy_id: str) -> bool:
        return strategy_id in self.strategies
