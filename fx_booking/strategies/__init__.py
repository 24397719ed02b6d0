"""Typology strategies and the registry that dispatches to them."""
from __future__ import annotations

from typing import Iterable, List, Optional

from ..exceptions import TransformationError
from .base import TransformationStrategy
from .fx_spot import FxSpotStrategy
from .fx_swap import FxSwapStrategy
from .ndf import NdfStrategy

__all__ = [
    "TransformationStrategy",
    "FxSpotStrategy",
    "FxSwapStrategy",
    "NdfStrategy",
    "StrategyRegistry",
    "default_registry",
]


class StrategyRegistry:
    """Ordered list of strategies; the first one whose ``supports`` matches wins."""

    def __init__(self, strategies: Iterable[TransformationStrategy]):
        self._strategies: List[TransformationStrategy] = list(strategies)

    def register(self, strategy: TransformationStrategy) -> None:
        self._strategies.append(strategy)

    def resolve(self, typology: Optional[str]) -> TransformationStrategy:
        for strategy in self._strategies:
            if strategy.supports(typology):
                return strategy
        raise TransformationError(
            f"No transformation strategy found for typology: {typology}", typology=typology
        )

    def typologies(self) -> List[str]:
        return [s.type_name() for s in self._strategies]


def default_registry() -> StrategyRegistry:
    return StrategyRegistry([FxSpotStrategy(), FxSwapStrategy(), NdfStrategy()])
