"""Non-deliverable forward strategy.

An NDF group holds two records: the embedded spot leg (earliest value date)
and the forward leg. The matched NDF descriptor decides which of them are
transformed:

* two sub-trade entries: both legs;
* one sub-trade entry: the embedded spot leg only;
* a second descriptor of type FX Spot: the embedded spot leg only, after its
  currencies are overridden from a sibling FX Spot group and from the
  forward leg.
"""
from __future__ import annotations

import enum
import logging
from typing import List, Optional, Tuple

from ..context import TransformationContext
from ..exceptions import BusinessError
from ..mapper import build_normalized_trade
from ..models import (FAR_LEG, FX_SPOT, NDF, NEAR_LEG, RecordGroup,
                      StrategyResult, WorkingTrade)
from ..rules import BuySell, NdfDescriptor, RuleConfig
from ..staging import new_trace_id, stamp
from .base import TransformationStrategy, transformation_errors

__all__ = ["NdfStrategy", "NdfCase"]

_LOG = logging.getLogger(__name__)


class NdfCase(str, enum.Enum):
    BOTH_LEGS = "BOTH_LEGS"
    EMBEDDED_SPOT_LEG_ONLY = "EMBEDDED_SPOT_LEG_ONLY"
    DUAL_TRANSFORMATION = "DUAL_TRANSFORMATION"


class NdfStrategy(TransformationStrategy):
    typology = NDF

    # -- leg identification ---------------------------------------------------

    def split_legs(self, legs: List[WorkingTrade]) -> Tuple[WorkingTrade, WorkingTrade]:
        """Return ``(embedded_spot, forward)``; the earlier value date is the spot leg."""
        if any(leg.value_date is None for leg in legs):
            raise BusinessError("Cannot identify NDF embedded spot leg: missing value date")
        spot_index = min(range(len(legs)), key=lambda i: legs[i].value_date)
        embedded = legs[spot_index]
        forward = legs[1 - spot_index]
        return embedded, forward

    # -- descriptor analysis --------------------------------------------------

    def classify(self, config: RuleConfig) -> Tuple[NdfCase, NdfDescriptor]:
        descriptors = config.transformations
        if not descriptors:
            raise self._fail(f"No transformations configured for config {config.id}")
        ndf = config.descriptor_for(NDF)
        if ndf is None:
            raise self._fail(
                f"No NDF transformation found for config {config.id}", field_name="referenceTrade"
            )
        if len(descriptors) > 1:
            return NdfCase.DUAL_TRANSFORMATION, ndf  # type: ignore[return-value]
        size = len(ndf.reference_sub_trade_buy_sell)
        if size == 2:
            return NdfCase.BOTH_LEGS, ndf  # type: ignore[return-value]
        if size == 1:
            return NdfCase.EMBEDDED_SPOT_LEG_ONLY, ndf  # type: ignore[return-value]
        raise self._fail(
            f"Unsupported NDF sub-trade structure of size {size} for config {config.id}",
            field_name="referenceSubTradeBuySell",
        )

    # -- dual transformation --------------------------------------------------

    def find_spot_counterpart(
        self, embedded: WorkingTrade, context: TransformationContext
    ) -> RecordGroup:
        """The single FX Spot sibling sharing navType and comment0 with another contract."""
        if context.sibling_groups is None:
            raise BusinessError("Sibling groups are required for NDF dual transformation")
        matches = [
            group
            for group in context.sibling_groups
            if group.typology == FX_SPOT
            and group.records
            and group.key.nav_type == embedded.nav_type
            and group.key.comment == embedded.comment0
            and group.key.contract != embedded.contract
        ]
        if not matches:
            raise BusinessError(
                f"No matching FX Spot group for NDF contract {embedded.contract} "
                f"(navType={embedded.nav_type}, comment0={embedded.comment0})"
            )
        if len(matches) > 1:
            raise BusinessError(
                f"Ambiguous FX Spot counterpart for NDF contract {embedded.contract}: "
                f"{', '.join(str(g.key) for g in matches)}"
            )
        return matches[0]

    @staticmethod
    def _override_currencies(target: WorkingTrade, flags: Optional[BuySell], source: WorkingTrade) -> None:
        if flags is None:
            return
        if flags.buy:
            target.currency1 = source.currency1
        if flags.sell:
            target.currency2 = source.currency2

    def apply_dual_overrides(
        self,
        embedded: WorkingTrade,
        forward: WorkingTrade,
        config: RuleConfig,
        context: TransformationContext,
    ) -> WorkingTrade:
        spot_descriptor = config.descriptor_for(FX_SPOT)
        ndf_descriptor = config.descriptor_for(NDF)
        if spot_descriptor is None or ndf_descriptor is None:
            raise self._fail(
                f"Dual transformation for config {config.id} needs both NDF and FX Spot entries",
                field_name="referenceTrade",
            )
        if spot_descriptor.reference_trade_buy_sell is None:
            raise self._fail(
                "FX Spot transformation is missing referenceTradeBuySell",
                field_name="referenceTradeBuySell",
            )
        if not ndf_descriptor.reference_sub_trade_buy_sell:
            raise self._fail(
                "NDF transformation is missing referenceSubTradeBuySell",
                field_name="referenceSubTradeBuySell",
            )

        counterpart = self.find_spot_counterpart(embedded, context)
        spot_record = WorkingTrade.from_record(counterpart.records[0])

        modified = embedded.model_copy()
        self._override_currencies(modified, spot_descriptor.reference_trade_buy_sell, spot_record)
        # NDF flags run last and win on the same field
        self._override_currencies(modified, ndf_descriptor.reference_sub_trade_buy_sell[0], forward)
        return modified

    # -- entry point ----------------------------------------------------------

    def _process(self, context: TransformationContext) -> StrategyResult:
        result = StrategyResult()

        for config in context.rule_configs:
            trace_id = new_trace_id()
            case, descriptor = self.classify(config)
            records = context.group.records
            self._require_count(records, 2, "records", self.typology)

            legs = [
                WorkingTrade.from_record(
                    r, book_code=config.book_code, trace_id=trace_id, rule_id=context.rule_id
                )
                for r in records
            ]
            embedded, forward = self.split_legs(legs)
            embedded.leg_role = NEAR_LEG

            with transformation_errors(
                self.typology, f"Failed to transform NDF for config {config.id}"
            ):
                if case is NdfCase.BOTH_LEGS:
                    forward.leg_role = FAR_LEG
                    selected = [embedded, forward]
                    snapshots = [leg.model_copy() for leg in selected]
                elif case is NdfCase.EMBEDDED_SPOT_LEG_ONLY:
                    selected = [embedded]
                    snapshots = [embedded.model_copy()]
                else:
                    snapshots = [embedded.model_copy()]
                    selected = [self.apply_dual_overrides(embedded, forward, config, context)]

                transformed = [self._finish_leg(leg, descriptor, config, context) for leg in selected]
                result.staging_records.extend(
                    stamp(snapshots, config.book_code, context.rule_id, trace_id)
                )
                result.trades.append(build_normalized_trade(transformed))
                _LOG.debug(
                    "NDF %s processed for config %s",
                    case.value,
                    config.id,
                    extra={"trace_id": trace_id, "typology": self.typology},
                )
        return result
