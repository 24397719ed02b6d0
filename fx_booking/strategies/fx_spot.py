from __future__ import annotations

import logging

from ..context import TransformationContext
from ..mapper import build_normalized_trade
from ..models import FX_SPOT, NEAR_LEG, StrategyResult, WorkingTrade
from ..staging import new_trace_id, stamp
from .base import TransformationStrategy, transformation_errors

__all__ = ["FxSpotStrategy"]

_LOG = logging.getLogger(__name__)


class FxSpotStrategy(TransformationStrategy):
    """Single-record spot trades, one booking per matching rule config."""

    typology = FX_SPOT

    def _process(self, context: TransformationContext) -> StrategyResult:
        records = context.group.records
        self._require_count(records, 1, "record", self.typology)
        record = records[0]
        result = StrategyResult()

        for config in context.rule_configs:
            trace_id = new_trace_id()
            with transformation_errors(
                self.typology, f"Failed to transform record for config {config.id}"
            ):
                snapshots = [WorkingTrade.from_record(r) for r in records]
                result.staging_records.extend(
                    stamp(snapshots, config.book_code, context.rule_id, trace_id)
                )

                self._require_count(config.transformations, 1, "transformation", self.typology)
                descriptor = config.transformations[0]

                trade = WorkingTrade.from_record(
                    record,
                    book_code=config.book_code,
                    trace_id=trace_id,
                    rule_id=context.rule_id,
                    leg_role=NEAR_LEG,
                )
                leg = self._finish_leg(trade, descriptor, config, context)
                result.trades.append(build_normalized_trade([leg], default_role=NEAR_LEG))
                _LOG.debug(
                    "spot trade built for config %s",
                    config.id,
                    extra={"trace_id": trace_id, "typology": self.typology},
                )
        return result
