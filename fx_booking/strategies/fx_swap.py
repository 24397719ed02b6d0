from __future__ import annotations

import enum
import logging
from typing import List, Tuple

from ..config import get_settings
from ..context import TransformationContext
from ..mapper import build_normalized_trade
from ..models import FAR_LEG, FX_SWAP, NEAR_LEG, StrategyResult, WorkingTrade
from ..rules import SubTradeBuySell
from ..staging import new_trace_id, stamp
from .base import TransformationStrategy, transformation_errors

__all__ = ["FxSwapStrategy", "SwapCase"]

_LOG = logging.getLogger(__name__)


class SwapCase(str, enum.Enum):
    BOTH_LEGS = "BOTH_LEGS"
    SINGLE_LEG = "SINGLE_LEG"


class FxSwapStrategy(TransformationStrategy):
    """Two-record swaps split into a near leg and a far leg."""

    typology = FX_SWAP

    def __init__(self, functional_currency: str | None = None):
        self._functional_currency = functional_currency

    @property
    def functional_currency(self) -> str:
        return self._functional_currency or get_settings().functional_currency

    def identify_legs(
        self, legs: List[WorkingTrade], context: TransformationContext
    ) -> Tuple[WorkingTrade, WorkingTrade]:
        """Return ``(near, far)`` regardless of input order.

        Near: currency1 in the family against the functional currency.
        Far: currency2 in the family against the functional currency.
        """
        base = self.functional_currency
        near = [t for t in legs if context.in_family(t.currency1) and t.currency2 == base]
        far = [t for t in legs if context.in_family(t.currency2) and t.currency1 == base]
        if len(near) != 1 or len(far) != 1 or near[0] is far[0]:
            raise self._fail(
                f"Unable to identify near and far legs for group {context.group.key} "
                f"(near candidates={len(near)}, far candidates={len(far)})",
                field_name="currency1",
            )
        near[0].leg_role = NEAR_LEG
        far[0].leg_role = FAR_LEG
        return near[0], far[0]

    def classify(self, sub_trades: Tuple[SubTradeBuySell, ...]) -> SwapCase:
        if len(sub_trades) == 2:
            has_near = any(s.has_near_leg for s in sub_trades)
            has_far = any(s.has_far_leg for s in sub_trades)
            return SwapCase.BOTH_LEGS if has_near and has_far else SwapCase.SINGLE_LEG
        if len(sub_trades) == 1:
            return SwapCase.SINGLE_LEG
        raise self._fail(
            f"Unsupported transformation configuration structure: "
            f"{len(sub_trades)} sub-trade entries",
            field_name="referenceSubTradeBuySell",
        )

    def _process(self, context: TransformationContext) -> StrategyResult:
        records = context.group.records
        self._require_count(records, 2, "records", self.typology)
        base_near, base_far = self.identify_legs(
            [WorkingTrade.from_record(r, rule_id=context.rule_id) for r in records], context
        )
        result = StrategyResult()

        for config in context.rule_configs:
            trace_id = new_trace_id()
            stamp_fields = {"book_code": config.book_code, "trace_id": trace_id}
            near = base_near.model_copy(update=stamp_fields)
            far = base_far.model_copy(update=stamp_fields)

            with transformation_errors(
                self.typology, f"Failed to transform swap for config {config.id}"
            ):
                self._require_count(config.transformations, 1, "transformation", self.typology)
                descriptor = config.transformations[0]
                case = self.classify(descriptor.reference_sub_trade_buy_sell)

                selected: List[WorkingTrade] = []
                for sub_trade in descriptor.reference_sub_trade_buy_sell:
                    if sub_trade.has_near_leg:
                        selected.append(near)
                    if sub_trade.has_far_leg and (case is SwapCase.BOTH_LEGS or not sub_trade.has_near_leg):
                        selected.append(far)
                if not selected:
                    raise self._fail(
                        "No nearLeg or farLeg tag in referenceSubTradeBuySell",
                        field_name="referenceSubTradeBuySell",
                    )

                snapshots = [leg.model_copy() for leg in selected]
                transformed = [self._finish_leg(leg, descriptor, config, context) for leg in selected]

                result.staging_records.extend(
                    stamp(snapshots, config.book_code, context.rule_id, trace_id)
                )
                result.trades.append(build_normalized_trade(transformed))
                _LOG.debug(
                    "swap %s processed %d leg(s) for config %s",
                    case.value,
                    len(selected),
                    config.id,
                    extra={"trace_id": trace_id, "typology": self.typology},
                )
        return result
