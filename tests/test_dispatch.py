import pytest

from fx_booking.exceptions import TransformationError
from fx_booking.strategies import (FxSpotStrategy, FxSwapStrategy, NdfStrategy,
                                   StrategyRegistry, default_registry)


def test_default_registry_resolves_each_typology():
    registry = default_registry()
    assert isinstance(registry.resolve("FX Spot"), FxSpotStrategy)
    assert isinstance(registry.resolve("FX Swap"), FxSwapStrategy)
    assert isinstance(registry.resolve("NDF"), NdfStrategy)
    assert registry.typologies() == ["FX Spot", "FX Swap", "NDF"]


def test_unknown_typology_raises():
    with pytest.raises(TransformationError, match="No transformation strategy found for typology: FX Option"):
        default_registry().resolve("FX Option")


def test_register_extends_registry():
    registry = StrategyRegistry([FxSpotStrategy()])
    with pytest.raises(TransformationError):
        registry.resolve("NDF")
    registry.register(NdfStrategy())
    assert registry.resolve("NDF").type_name() == "NDF"
