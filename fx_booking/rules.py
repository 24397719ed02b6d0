"""Booking rule configs and their transformation descriptors.

A rule's ``transformations`` JSON is parsed once, when the config is loaded,
into a tuple of typed descriptors discriminated by ``referenceTrade``.
Strategies only ever see validated descriptors.
"""
from __future__ import annotations

import json
import logging
from typing import Annotated, Any, Dict, Iterable, List, Literal, Optional, Tuple, Union

import pydantic
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from .exceptions import TransformationError
from .models import NDF

__all__ = [
    "BuySell",
    "SubTradeBuySell",
    "SpotDescriptor",
    "SwapDescriptor",
    "NdfDescriptor",
    "TransformationDescriptor",
    "RuleConfig",
    "load_rule_config",
    "matches_typology",
    "filter_rule_configs",
]

_LOG = logging.getLogger(__name__)

_FROZEN_CAMEL = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


class BuySell(BaseModel):
    model_config = _FROZEN_CAMEL

    buy: bool = False
    sell: bool = False


class SubTradeBuySell(BuySell):
    """Per-leg buy/sell flags. A leg tag counts when its key is present."""

    near_leg: Optional[Any] = None
    far_leg: Optional[Any] = None
    embedded_spot_leg: Optional[Any] = None
    forward_leg: Optional[Any] = None

    @property
    def has_near_leg(self) -> bool:
        return "near_leg" in self.model_fields_set

    @property
    def has_far_leg(self) -> bool:
        return "far_leg" in self.model_fields_set

    @property
    def has_embedded_spot_leg(self) -> bool:
        return "embedded_spot_leg" in self.model_fields_set

    @property
    def has_forward_leg(self) -> bool:
        return "forward_leg" in self.model_fields_set


class _Descriptor(BaseModel):
    model_config = _FROZEN_CAMEL

    flip_currency: bool = False
    outbound_curr_change: bool = False
    exchange_rates: Optional[str] = None
    reference_trade_buy_sell: Optional[BuySell] = None
    reference_sub_trade_buy_sell: Tuple[SubTradeBuySell, ...] = ()
    tps_fields: Tuple[str, ...] = ()


class SpotDescriptor(_Descriptor):
    reference_trade: Literal["FX Spot"]


class SwapDescriptor(_Descriptor):
    reference_trade: Literal["FX Swap"]


class NdfDescriptor(_Descriptor):
    reference_trade: Literal["NDF"]


TransformationDescriptor = Annotated[
    Union[SpotDescriptor, SwapDescriptor, NdfDescriptor],
    Field(discriminator="reference_trade"),
]


class RuleConfig(BaseModel):
    """Booking-code rule with its parsed output spec and descriptors."""

    model_config = _FROZEN_CAMEL

    id: str
    book_code: str
    description: Optional[str] = None
    outbound_field_spec: Dict[str, Any] = Field(default_factory=dict)
    transformations: Tuple[TransformationDescriptor, ...] = ()

    @field_validator("id", mode="before")
    @classmethod
    def _stringify_id(cls, value: Any) -> Any:
        return str(value) if isinstance(value, int) else value

    @field_validator("outbound_field_spec", mode="before")
    @classmethod
    def _parse_spec(cls, value: Any) -> Any:
        if value is None or value == "":
            return {}
        if isinstance(value, str):
            value = json.loads(value)
        if not isinstance(value, dict):
            raise ValueError("outbound field spec must be a JSON object")
        return value

    @field_validator("transformations", mode="before")
    @classmethod
    def _parse_transformations(cls, value: Any) -> Any:
        if value is None or value == "":
            return ()
        if isinstance(value, str):
            value = json.loads(value)
        # legacy rows store a single descriptor object
        if isinstance(value, dict):
            value = [value]
        return value

    @property
    def tps_fields(self) -> Tuple[str, ...]:
        seen: Dict[str, None] = {}
        for descriptor in self.transformations:
            for name in descriptor.tps_fields:
                seen.setdefault(name, None)
        return tuple(seen)

    def descriptor_for(self, typology: str) -> Optional[_Descriptor]:
        for descriptor in self.transformations:
            if descriptor.reference_trade == typology:
                return descriptor
        return None


def load_rule_config(
    id: Any,
    book_code: str,
    transformations: Any,
    outbound_field_spec: Any = None,
    description: Optional[str] = None,
) -> RuleConfig:
    """Build a :class:`RuleConfig` from stored JSON documents.

    Raises :class:`TransformationError` when either document is malformed.
    """
    try:
        return RuleConfig(
            id=id,
            book_code=book_code,
            description=description,
            outbound_field_spec=outbound_field_spec,
            transformations=transformations,
        )
    except (pydantic.ValidationError, ValueError) as exc:
        raise TransformationError(
            f"Failed to parse rule config {id}: {exc}", cause=exc
        ) from exc


def matches_typology(config: RuleConfig, typology: Optional[str]) -> bool:
    """Strict shape match between a rule config and a group typology.

    FX Spot and FX Swap need a single descriptor with the same reference
    trade. NDF accepts any descriptor array that carries an NDF element.
    """
    descriptors = config.transformations
    if not descriptors or typology is None:
        return False
    if typology == NDF:
        return any(d.reference_trade == NDF for d in descriptors)
    return len(descriptors) == 1 and descriptors[0].reference_trade == typology


def filter_rule_configs(configs: Iterable[RuleConfig], typology: Optional[str]) -> List[RuleConfig]:
    configs = list(configs)
    kept = [cfg for cfg in configs if matches_typology(cfg, typology)]
    _LOG.debug(
        "%d of %d rule configs match typology",
        len(kept),
        len(configs),
        extra={"typology": typology},
    )
    return kept
