"""Data source and staging sink.

The engine depends only on the :class:`DataSource` and :class:`StagingSink`
protocols; the SQL implementations below back them with SQLModel tables.
"""
from __future__ import annotations

import logging
from typing import Iterable, List, Optional, Protocol, Sequence

from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from treasury_observability.metrics import booking_staging_rows_total

from . import db
from .exceptions import DataAccessError
from .models import InstructionRequest, InstructionRule, RawRecord, StagingRecord
from .rules import RuleConfig, load_rule_config

__all__ = ["DataSource", "StagingSink", "SqlDataSource", "SqlStagingSink"]

_LOG = logging.getLogger(__name__)


class DataSource(Protocol):
    """Read side consumed by the instruction service."""

    def fetch(self, request: InstructionRequest) -> List[RawRecord]:
        ...

    def fetch_rule_configs(self, ids: Sequence[str]) -> List[RuleConfig]:
        ...

    def fetch_currency_family(self, currency: str) -> List[str]:
        ...

    def fetch_currency_category(self, currency: str) -> Optional[str]:
        ...

    def fetch_instruction_rules(
        self, request: InstructionRequest, currency_category: Optional[str]
    ) -> List[InstructionRule]:
        ...


class StagingSink(Protocol):
    def insert_batch(self, records: Sequence[StagingRecord]) -> None:
        ...


class SqlDataSource:
    def __init__(self, bind: Optional[Engine] = None):
        self.bind = bind or db.engine

    def _session(self) -> Session:
        return Session(self.bind)

    def fetch(self, request: InstructionRequest) -> List[RawRecord]:
        stmt = select(db.FxTradeRow).where(
            db.FxTradeRow.instruction_event == request.instruction_event,
            db.FxTradeRow.currency == request.currency,
            db.FxTradeRow.business_date == request.business_date,
        )
        if request.external_trade_ids:
            stmt = stmt.where(db.FxTradeRow.contract.in_(request.external_trade_ids))  # type: ignore[union-attr]
        stmt = stmt.order_by(db.FxTradeRow.id)
        try:
            with self._session() as session:
                rows = session.exec(stmt).all()
                records = [RawRecord.model_validate(row.model_dump(exclude={"id"})) for row in rows]
        except SQLAlchemyError as exc:
            raise DataAccessError(f"Failed to fetch trade records: {exc}") from exc
        _LOG.info("fetched %d trade records for %s", len(records), request.instruction_event)
        return records

    def fetch_rule_configs(self, ids: Sequence[str]) -> List[RuleConfig]:
        if not ids:
            return []
        try:
            with self._session() as session:
                rows = session.exec(
                    select(db.BookingRuleConfigRow).where(db.BookingRuleConfigRow.id.in_(list(ids)))  # type: ignore[union-attr]
                ).all()
                by_id = {row.id: row for row in rows}
        except SQLAlchemyError as exc:
            raise DataAccessError(f"Failed to fetch rule configs {list(ids)}: {exc}") from exc

        configs: List[RuleConfig] = []
        for rule_id in ids:
            row = by_id.get(rule_id)
            if row is None:
                _LOG.warning("rule config %s not found", rule_id)
                continue
            configs.append(
                load_rule_config(
                    row.id,
                    row.book_code,
                    row.transformations,
                    row.outbound_field_spec,
                    row.description,
                )
            )
        return configs

    def _currency_rows(self, currency: str) -> List[db.CurrencyConfigRow]:
        stmt = (
            select(db.CurrencyConfigRow)
            .where(
                db.CurrencyConfigRow.functional_currency == currency,
                db.CurrencyConfigRow.is_active == True,  # noqa: E712
            )
            .order_by(db.CurrencyConfigRow.id)
        )
        try:
            with self._session() as session:
                return list(session.exec(stmt).all())
        except SQLAlchemyError as exc:
            raise DataAccessError(f"Failed to fetch currency config for {currency}: {exc}") from exc

    def fetch_currency_family(self, currency: str) -> List[str]:
        return [row.original_currency for row in self._currency_rows(currency)]

    def fetch_currency_category(self, currency: str) -> Optional[str]:
        rows = self._currency_rows(currency)
        return rows[0].currency_category if rows else None

    def fetch_instruction_rules(
        self, request: InstructionRequest, currency_category: Optional[str]
    ) -> List[InstructionRule]:
        stmt = select(db.InstructionRuleRow).where(
            db.InstructionRuleRow.business_event == request.instruction_event
        )
        if request.hedge_method:
            stmt = stmt.where(db.InstructionRuleRow.hedge_method == request.hedge_method)
        if request.hedge_instrument_type:
            stmt = stmt.where(
                db.InstructionRuleRow.hedging_instrument == request.hedge_instrument_type
            )
        if currency_category:
            stmt = stmt.where(db.InstructionRuleRow.currency_type == currency_category)
        try:
            with self._session() as session:
                rows = session.exec(stmt).all()
                return [InstructionRule.model_validate(row.model_dump()) for row in rows]
        except SQLAlchemyError as exc:
            raise DataAccessError(f"Failed to fetch instruction rules: {exc}") from exc


class SqlStagingSink:
    """Writes a staging batch in one transaction."""

    def __init__(self, bind: Optional[Engine] = None):
        self.bind = bind or db.engine

    def insert_batch(self, records: Sequence[StagingRecord]) -> None:
        if not records:
            return
        rows: Iterable[db.StagingAuditRow] = [
            db.StagingAuditRow(**record.model_dump()) for record in records
        ]
        with Session(self.bind) as session:
            try:
                session.add_all(rows)
                session.commit()
            except SQLAlchemyError as exc:
                session.rollback()
                raise DataAccessError(f"Staging batch insert failed: {exc}") from exc
        booking_staging_rows_total.inc(len(records))
        _LOG.info("inserted %d staging rows", len(records))
