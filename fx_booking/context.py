from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional, Tuple

from .models import RecordGroup
from .rules import RuleConfig

__all__ = ["TransformationContext"]

_NUMBERED_VARIANT = re.compile(r".*\d$")


@dataclass(frozen=True)
class TransformationContext:
    """Everything a strategy needs for one group, fixed for the call."""

    group: RecordGroup
    rule_configs: Tuple[RuleConfig, ...]
    input_currency: str
    currency_family: Tuple[str, ...]
    rule_id: str
    # populated for NDF groups only
    sibling_groups: Optional[Tuple[RecordGroup, ...]] = None

    def in_family(self, currency: Optional[str]) -> bool:
        return currency is not None and currency in self.currency_family

    @property
    def flip_currency_variant(self) -> str:
        """First family member with a trailing digit, else the input currency."""
        for currency in self.currency_family:
            if currency and _NUMBERED_VARIANT.match(currency):
                return currency
        return self.input_currency
