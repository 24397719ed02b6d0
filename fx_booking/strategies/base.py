"""Shared strategy contract and the transformation steps every typology uses.

Pipeline for one working trade: resolve the exchange rate, resolve buy/sell
amounts, optionally swap in the outbound currency variant, apply the rule's
output overrides, then trim to the TPS field set.
"""
from __future__ import annotations

import abc
import logging
import time
from contextlib import contextmanager
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Iterable, Iterator, List, Optional, Sequence

from treasury_observability.metrics import booking_strategy_latency_seconds

from ..config import get_settings
from ..context import TransformationContext
from ..exceptions import BookingError, MappingError, TransformationError
from ..fields import apply_field_map, clone_with_fields, get_field, set_field
from ..models import BLEND_HISTFX, REF_TRADE, StrategyResult, WorkingTrade
from ..rules import RuleConfig

__all__ = [
    "RATE_QUANTUM",
    "TransformationStrategy",
    "resolve_exchange_rate",
    "resolve_amounts",
    "substitute_outbound_currency",
    "apply_descriptor",
    "apply_output_customizations",
    "apply_tps_filter",
    "transformation_errors",
]

_LOG = logging.getLogger(__name__)

RATE_QUANTUM = Decimal("0.000001")
COMMENT_SEPARATOR = " | "


def resolve_exchange_rate(descriptor: Any, trade: WorkingTrade) -> Decimal:
    """Pick the spot or historical rate and tag the trade with its source.

    With ``flipCurrency`` the rate is replaced by its reciprocal rounded
    half-up to six places; a zero or missing rate stays 0.
    """
    selector = descriptor.exchange_rates or ""
    if selector.startswith(REF_TRADE):
        trade.exchange_rate_type = REF_TRADE
        rate = trade.spot_rate
    else:
        trade.exchange_rate_type = BLEND_HISTFX
        rate = trade.historical_exchange_rate

    rate = Decimal(0) if rate is None else Decimal(rate)
    if descriptor.flip_currency and rate != 0:
        try:
            rate = (Decimal(1) / rate).quantize(RATE_QUANTUM, rounding=ROUND_HALF_UP)
        except (ArithmeticError, InvalidOperation):
            rate = Decimal(0)
    return rate


def resolve_amounts(
    trade: WorkingTrade,
    rate: Optional[Decimal],
    context: TransformationContext,
    flip: bool,
) -> None:
    hedge = trade.hedge_amt_allocation if trade.hedge_amt_allocation is not None else Decimal(0)
    rate = rate if rate is not None else Decimal(1)

    # flip mode swaps which currency drives the buy side
    buy_side, sell_side = (trade.currency2, trade.currency1) if flip else (trade.currency1, trade.currency2)
    if context.in_family(buy_side):
        trade.buy_trans_amt = hedge
        trade.sell_trans_amt = hedge * rate
    elif context.in_family(sell_side):
        trade.sell_trans_amt = hedge
        trade.buy_trans_amt = hedge * rate


def substitute_outbound_currency(trade: WorkingTrade, context: TransformationContext) -> None:
    variant = context.flip_currency_variant
    if context.in_family(trade.currency1):
        trade.currency1 = variant
    elif context.in_family(trade.currency2):
        trade.currency2 = variant


def apply_descriptor(trade: WorkingTrade, descriptor: Any, context: TransformationContext) -> None:
    rate = resolve_exchange_rate(descriptor, trade)
    resolve_amounts(trade, rate, context, descriptor.flip_currency)
    if descriptor.outbound_curr_change:
        substitute_outbound_currency(trade, context)


def _collect_comment(trade: WorkingTrade, entries: Any) -> List[str]:
    if not isinstance(entries, list):
        return []
    values: List[str] = []
    for entry in entries:
        if not isinstance(entry, dict) or "fieldName" not in entry:
            continue
        value = get_field(trade, str(entry["fieldName"]))
        if value is not None and str(value).strip():
            values.append(str(value))
    return values


def apply_output_customizations(
    trade: WorkingTrade,
    config: RuleConfig,
    typology: Optional[str],
    ignore_fields: Optional[Iterable[str]] = None,
) -> None:
    """Apply the rule's outbound field spec to *trade* in place.

    ``comment0`` and ``comment1`` are lists of ``{fieldName, table}`` lookups
    joined with ``" | "``; every other key is written through the field
    registry.
    """
    spec = config.outbound_field_spec
    if not spec:
        return
    if ignore_fields is None:
        ignore_fields = get_settings().ignore_fields
    try:
        comment0 = _collect_comment(trade, spec.get("comment0"))
        if comment0:
            set_field(trade, "comment0", COMMENT_SEPARATOR.join(comment0))
        comment1 = _collect_comment(trade, spec.get("comment1"))
        if comment1:
            set_field(trade, "comment1", COMMENT_SEPARATOR.join(comment1))
        apply_field_map(trade, spec, ignore_fields)
    except MappingError as exc:
        raise TransformationError(
            "Error applying output customizations",
            typology=typology,
            field_name=exc.field_path,
            cause=exc,
        ) from exc


def apply_tps_filter(
    trade: WorkingTrade,
    config: RuleConfig,
    include_fields: Optional[Iterable[str]] = None,
) -> WorkingTrade:
    if not config.transformations:
        return trade
    if include_fields is None:
        include_fields = get_settings().include_fields
    allowed = set(config.tps_fields) | set(include_fields)
    return clone_with_fields(trade, allowed)  # type: ignore[return-value]


@contextmanager
def transformation_errors(typology: Optional[str], message: str) -> Iterator[None]:
    """Wrap non-engine failures in :class:`TransformationError`."""
    try:
        yield
    except BookingError:
        raise
    except Exception as exc:
        raise TransformationError(f"{message}: {exc}", typology=typology, cause=exc) from exc


class TransformationStrategy(abc.ABC):
    """One implementation per typology."""

    typology: str = ""

    def supports(self, typology: Optional[str]) -> bool:
        return typology == self.typology

    def type_name(self) -> str:
        return self.typology

    def process(self, context: TransformationContext) -> StrategyResult:
        start = time.perf_counter()
        try:
            return self._process(context)
        finally:
            booking_strategy_latency_seconds.labels(typology=self.typology).observe(
                time.perf_counter() - start
            )

    @abc.abstractmethod
    def _process(self, context: TransformationContext) -> StrategyResult:
        ...

    # helpers shared by subclasses -------------------------------------------

    def _fail(self, message: str, field_name: Optional[str] = None) -> TransformationError:
        return TransformationError(message, typology=self.typology, field_name=field_name)

    def _finish_leg(
        self,
        leg: WorkingTrade,
        descriptor: Any,
        config: RuleConfig,
        context: TransformationContext,
    ) -> WorkingTrade:
        """Run the descriptor, output overrides and TPS filter on a copy of *leg*."""
        working = leg.model_copy()
        apply_descriptor(working, descriptor, context)
        apply_output_customizations(working, config, self.typology)
        return apply_tps_filter(working, config)

    @staticmethod
    def _require_count(items: Sequence[Any], expected: int, what: str, typology: str) -> None:
        if len(items) != expected:
            raise TransformationError(
                f"{typology} requires exactly {expected} {what}, found {len(items)}",
                typology=typology,
            )
