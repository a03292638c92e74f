"""Strategy registry keyed by StrategyKind.

Usage:
    @register_strategy(StrategyKind.GOLDEN_CROSS)
    class GoldenCrossStrategy:
        ...

    strategy = create_strategy(StrategyConfig(kind="goldencross"))
    kinds = list_strategies()
"""

from __future__ import annotations

import logging

from core.models import StrategyConfig, StrategyKind

logger = logging.getLogger(__name__)

_REGISTRY: dict[StrategyKind, type] = {}


def register_strategy(kind: StrategyKind):
    """Decorator binding a strategy class to ``kind``.

    Raises:
        ValueError: If ``kind`` already has a strategy class.
    """

    def decorator(cls):
        if kind in _REGISTRY:
            raise ValueError(
                f"Strategy '{kind.value}' is already registered by {_REGISTRY[kind].__name__}"
            )
        _REGISTRY[kind] = cls
        logger.debug("Registered strategy: %s -> %s", kind.value, cls.__name__)
        return cls

    return decorator


def get_strategy_class(kind: StrategyKind | str) -> type:
    """Look up the class for a kind or its string value.

    Raises:
        KeyError: If nothing is registered for ``kind``.
    """
    try:
        cls = _REGISTRY.get(StrategyKind(kind))
    except ValueError:
        cls = None
    if cls is None:
        available = ", ".join(list_strategies()) or "(none)"
        raise KeyError(f"Unknown strategy '{kind}'. Available: {available}")
    return cls


def create_strategy(config: StrategyConfig):
    """Instantiate the strategy for ``config.kind`` with that config."""
    return get_strategy_class(config.kind)(config=config)


def list_strategies() -> list[str]:
    """Registered strategy kinds, sorted by value."""
    return sorted(kind.value for kind in _REGISTRY)
