"""Instruction processing: fetch, group, transform, stage, publish."""
from __future__ import annotations

import logging
from typing import Dict, List, Optional, Sequence

from treasury_observability.metrics import (booking_groups_processed_total,
                                            booking_runs_total,
                                            booking_trades_published_total)

from .config import get_settings
from .context import TransformationContext
from .exceptions import PublishError
from .grouping import group_and_validate
from .models import (NDF, AggregatedResult, InstructionRequest,
                     InstructionRule, RecordGroup, StrategyResult)
from .orchestrator import process_all_or_none
from .publisher import TradePublisher
from .repository import DataSource, StagingSink
from .rules import filter_rule_configs
from .strategies import StrategyRegistry, default_registry

__all__ = ["InstructionProcessingService"]

_LOG = logging.getLogger(__name__)


class InstructionProcessingService:
    def __init__(
        self,
        data_source: DataSource,
        staging_sink: StagingSink,
        publisher: TradePublisher,
        *,
        registry: Optional[StrategyRegistry] = None,
        max_workers: Optional[int] = None,
    ):
        self.data_source = data_source
        self.staging_sink = staging_sink
        self.publisher = publisher
        self.registry = registry or default_registry()
        self.max_workers = max_workers if max_workers is not None else get_settings().max_workers

    # ------------------------------------------------------------------
    def process_instruction(self, request: InstructionRequest) -> AggregatedResult:
        """Run one instruction end to end.

        Staging rows are written only when every group succeeded. Publish
        failures after that point are logged and counted, never raised.
        """
        try:
            result = self._transform(request)
            self.staging_sink.insert_batch(result.staging_records)
        except Exception:
            booking_runs_total.labels(outcome="failure").inc()
            raise

        undelivered = self._publish(result)
        booking_runs_total.labels(outcome="success").inc()
        _LOG.info("instruction %s processed: %s", request.instruction_event, result.summary())
        if undelivered:
            _LOG.warning(
                "instruction %s: %d trade(s) not delivered: %s",
                request.instruction_event,
                len(undelivered),
                ", ".join(undelivered),
            )
        return result

    def _transform(self, request: InstructionRequest) -> AggregatedResult:
        records = self.data_source.fetch(request)
        groups = group_and_validate(records)
        family = tuple(self.data_source.fetch_currency_family(request.currency))
        category = self.data_source.fetch_currency_category(request.currency)
        rules = self._rules_by_nav_type(request, category)

        def _handle(group: RecordGroup) -> StrategyResult:
            return self._process_group(group, groups, rules, request, family)

        return process_all_or_none(groups, _handle, max_workers=self.max_workers)

    def _rules_by_nav_type(
        self, request: InstructionRequest, category: Optional[str]
    ) -> Dict[str, InstructionRule]:
        rules = self.data_source.fetch_instruction_rules(request, category)
        if not rules:
            _LOG.warning(
                "no instruction rules for event=%s hedgeMethod=%s instrument=%s",
                request.instruction_event,
                request.hedge_method,
                request.hedge_instrument_type,
            )
        return {rule.nav_type: rule for rule in rules}

    def _process_group(
        self,
        group: RecordGroup,
        all_groups: Sequence[RecordGroup],
        rules: Dict[str, InstructionRule],
        request: InstructionRequest,
        family: tuple,
    ) -> StrategyResult:
        log_extra = {"group_key": str(group.key), "typology": group.typology}
        rule = rules.get(group.nav_type or "")
        if rule is None:
            _LOG.error(
                "no instruction rule for navType=%s in event %s, skipping group",
                group.nav_type,
                request.instruction_event,
                extra=log_extra,
            )
            booking_groups_processed_total.labels(typology=group.typology, outcome="skipped").inc()
            return StrategyResult()

        configs = filter_rule_configs(
            self.data_source.fetch_rule_configs(rule.book_config_ids), group.typology
        )
        context = TransformationContext(
            group=group,
            rule_configs=tuple(configs),
            input_currency=request.currency,
            currency_family=family,
            rule_id=rule.rule_id,
            sibling_groups=tuple(all_groups) if group.typology == NDF else None,
        )
        try:
            result = self.registry.resolve(group.typology).process(context)
        except Exception:
            booking_groups_processed_total.labels(typology=group.typology, outcome="failure").inc()
            _LOG.exception("group failed", extra={**log_extra, "rule_id": rule.rule_id})
            raise
        booking_groups_processed_total.labels(typology=group.typology, outcome="success").inc()
        return result

    def _publish(self, result: AggregatedResult) -> List[str]:
        """Publish every trade; return references that could not be delivered."""
        failed: List[str] = []
        for trade in result.trades:
            try:
                self.publisher.publish(trade)
            except PublishError as exc:
                failed.append(trade.trade_reference or "")
                _LOG.error(
                    "failed to publish trade: %s", exc, extra={"trace_id": trade.trade_reference}
                )
            except Exception as exc:
                failed.append(trade.trade_reference or "")
                booking_trades_published_total.labels(outcome="failed").inc()
                _LOG.exception(
                    "unexpected publisher error: %s", exc, extra={"trace_id": trade.trade_reference}
                )
        return failed
