from __future__ import annotations

import os
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import Column, Index, Numeric, Text
from sqlalchemy.engine import Engine
from sqlmodel import Field, SQLModel, create_engine

from common.datetime import utc_now

DATABASE_URL = os.getenv("BOOKING_DB_URL", "sqlite:///./fx_booking.db")


def make_engine(url: str = DATABASE_URL) -> Engine:
    # strategies run on worker threads, so sqlite connections must be shareable
    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    return create_engine(url, echo=False, connect_args=connect_args)


engine = make_engine()


def _money() -> Column:
    return Column(Numeric(24, 8), nullable=True)


class FxTradeRow(SQLModel, table=True):
    """Joined FX staging row as delivered by the upstream feed."""

    __tablename__ = "fx_trade_source"

    id: Optional[int] = Field(default=None, primary_key=True)
    instruction_event: Optional[str] = Field(default=None, index=True)
    contract: Optional[str] = Field(default=None, index=True)
    comment0: Optional[str] = None
    nav_type: Optional[str] = None
    typology: Optional[str] = None
    counterparty: Optional[str] = None
    trading_portfolio: Optional[str] = None
    entity_name: Optional[str] = None
    entity_type: Optional[str] = None
    entity_id: Optional[str] = None
    business_date: Optional[date] = None
    trans_date: Optional[date] = None
    value_date: Optional[date] = None
    maturity_date: Optional[date] = None
    currency: Optional[str] = None
    currency1: Optional[str] = None
    currency2: Optional[str] = None
    buy_trans_amt: Optional[Decimal] = Field(default=None, sa_column=_money())
    sell_trans_amt: Optional[Decimal] = Field(default=None, sa_column=_money())
    hedge_amt_allocation: Optional[Decimal] = Field(default=None, sa_column=_money())
    spot_rate: Optional[Decimal] = Field(default=None, sa_column=_money())
    historical_exchange_rate: Optional[Decimal] = Field(default=None, sa_column=_money())
    external_comment: Optional[str] = None

    __table_args__ = (Index("ix_fx_trade_source_group", "contract", "comment0", "nav_type"),)


class BookingRuleConfigRow(SQLModel, table=True):
    """Per-book-code transformation rule, stored as JSON text."""

    __tablename__ = "booking_rule_config"

    id: str = Field(primary_key=True)
    book_code: str
    description: Optional[str] = None
    outbound_field_spec: Optional[str] = Field(default=None, sa_column=Column(Text))
    transformations: str = Field(sa_column=Column(Text, nullable=False))


class InstructionRuleRow(SQLModel, table=True):
    __tablename__ = "instruction_event_rule"

    rule_id: str = Field(primary_key=True)
    business_event: str = Field(index=True)
    nav_type: str
    hedge_method: Optional[str] = None
    hedging_instrument: Optional[str] = None
    currency_type: Optional[str] = None
    description: Optional[str] = None
    book_config_ids: str = ""
    status: Optional[str] = "ACTIVE"


class CurrencyConfigRow(SQLModel, table=True):
    """Maps a currency code onto its functional currency and category."""

    __tablename__ = "currency_config"

    id: Optional[int] = Field(default=None, primary_key=True)
    original_currency: str
    functional_currency: str = Field(index=True)
    currency_category: Optional[str] = None
    is_active: bool = True


class StagingAuditRow(SQLModel, table=True):
    """Pre-transformation snapshot written alongside every booking."""

    __tablename__ = "fx_booking_staging"

    id: Optional[int] = Field(default=None, primary_key=True)
    trace_id: str = Field(index=True)
    rule_id: Optional[str] = None
    book_code: Optional[str] = None
    contract: Optional[str] = None
    typology: Optional[str] = None
    nav_type: Optional[str] = None
    currency1: Optional[str] = None
    currency2: Optional[str] = None
    buy_trans_amt: Optional[Decimal] = Field(default=None, sa_column=_money())
    sell_trans_amt: Optional[Decimal] = Field(default=None, sa_column=_money())
    hedge_amt_allocation: Optional[Decimal] = Field(default=None, sa_column=_money())
    spot_rate: Optional[Decimal] = Field(default=None, sa_column=_money())
    historical_exchange_rate: Optional[Decimal] = Field(default=None, sa_column=_money())
    trading_portfolio: Optional[str] = None
    counterparty: Optional[str] = None
    comment0: Optional[str] = None
    external_comment: Optional[str] = None
    trans_date: Optional[date] = None
    value_date: Optional[date] = None
    maturity_date: Optional[date] = None
    created_at: datetime = Field(default_factory=utc_now)


def init_db(bind: Optional[Engine] = None) -> None:
    """Initialise tables (idempotent)."""
    SQLModel.metadata.create_all(bind or engine)
