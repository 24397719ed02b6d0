"""Domain models for the booking engine.

Raw records and working trades share one field set so rule-driven overrides
can target any column by name. Every model accepts both the snake_case field
name and its camelCase alias, which is what rule JSON and downstream consumers
use.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, NamedTuple, Optional, Sequence, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from common.datetime import parse_business_date, utc_now

FX_SPOT = "FX Spot"
FX_SWAP = "FX Swap"
NDF = "NDF"
SUPPORTED_TYPOLOGIES = (FX_SPOT, FX_SWAP, NDF)

NEAR_LEG = "NEAR_LEG"
FAR_LEG = "FAR_LEG"

REF_TRADE = "REF_TRADE"
BLEND_HISTFX = "BLEND_HISTFX"

_CAMEL = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class GroupKey(NamedTuple):
    contract: Optional[str]
    comment: Optional[str]
    nav_type: Optional[str]

    def __str__(self) -> str:
        return "|".join("" if part is None else str(part) for part in self)


class TradeFields(BaseModel):
    """Columns of one joined staging row."""

    model_config = _CAMEL

    # grouping keys
    contract: Optional[str] = None
    comment0: Optional[str] = None
    nav_type: Optional[str] = None
    typology: Optional[str] = None

    # parties and books
    counterparty: Optional[str] = None
    trading_portfolio: Optional[str] = None
    entity_name: Optional[str] = None
    entity_type: Optional[str] = None
    entity_id: Optional[str] = None

    # dates
    business_date: Optional[date] = None
    trans_date: Optional[date] = None
    deal_time: Optional[str] = None
    value_date: Optional[date] = None
    maturity_date: Optional[date] = None
    fix_date: Optional[date] = None
    spot_value_date: Optional[date] = None

    # currencies, amounts, rates
    currency: Optional[str] = None
    currency1: Optional[str] = None
    currency2: Optional[str] = None
    buy_trans_amt: Optional[Decimal] = None
    sell_trans_amt: Optional[Decimal] = None
    hedge_amt_allocation: Optional[Decimal] = None
    spot_rate: Optional[Decimal] = None
    historical_exchange_rate: Optional[Decimal] = None
    init_price: Optional[Decimal] = None
    market_spot_rate: Optional[Decimal] = None
    market_forward_rate: Optional[Decimal] = None
    client_forward_rate: Optional[Decimal] = None
    fwsw_points: Optional[Decimal] = None
    sales_margin_amount: Optional[Decimal] = None
    sales_margin_ccy: Optional[str] = None

    # booking descriptors, usually filled in by rule overrides
    bs_indicator: Optional[str] = None
    instrument_code: Optional[str] = None
    outbound_product: Optional[str] = None
    family_grp_type: Optional[str] = None
    short_label: Optional[str] = None
    regional_portfolio: Optional[str] = None
    intermediary_portfolio: Optional[str] = None
    broker_label: Optional[str] = None
    split_cross: Optional[str] = None
    split_spot_swap: Optional[str] = None
    source_system: Optional[str] = None
    trader_id: Optional[str] = None
    txn_id: Optional[str] = None
    desk: Optional[str] = None
    broker: Optional[str] = None
    execution_venue: Optional[str] = None
    maker_or_taker: Optional[str] = None
    trade_leg_type: Optional[str] = None
    comment1: Optional[str] = None
    comment2: Optional[str] = None
    external_comment: Optional[str] = None

    @property
    def group_key(self) -> GroupKey:
        return GroupKey(self.contract, self.comment0, self.nav_type)


class RawRecord(TradeFields):
    """Immutable row as fetched from the data source."""

    model_config = ConfigDict(frozen=True)


class WorkingTrade(TradeFields):
    """Mutable per-leg record owned by a single strategy invocation."""

    exchange_rate_type: Optional[str] = None
    leg_role: Optional[str] = None
    book_code: Optional[str] = None
    trace_id: Optional[str] = None
    rule_id: Optional[str] = None

    @classmethod
    def from_record(cls, record: TradeFields, **overrides: Any) -> "WorkingTrade":
        data = record.model_dump()
        data.update(overrides)
        return cls(**data)


@dataclass(frozen=True)
class RecordGroup:
    key: GroupKey
    typology: Optional[str]
    records: Tuple[RawRecord, ...]

    @property
    def nav_type(self) -> Optional[str]:
        return self.key.nav_type


class InstructionRule(BaseModel):
    """Instruction-event rule selected per NAV type."""

    model_config = _CAMEL

    rule_id: str
    nav_type: str
    description: Optional[str] = None
    business_event: Optional[str] = None
    hedge_method: Optional[str] = None
    currency_type: Optional[str] = None
    hedging_instrument: Optional[str] = None
    book_config_ids: List[str] = Field(default_factory=list)
    status: Optional[str] = None

    @field_validator("book_config_ids", mode="before")
    @classmethod
    def _split_ids(cls, value: Any) -> Any:
        if isinstance(value, str):
            return [part.strip() for part in value.split(",") if part.strip()]
        return value


class InstructionRequest(BaseModel):
    """Filter criteria for one instruction run."""

    model_config = _CAMEL

    business_date: date
    instruction_event: str
    hedge_method: Optional[str] = None
    currency: str
    hedge_instrument_type: Optional[str] = None
    external_trade_ids: List[str] = Field(default_factory=list)

    @field_validator("business_date", mode="before")
    @classmethod
    def _parse_date(cls, value: Any) -> Any:
        if isinstance(value, str):
            return parse_business_date(value)
        return value

    @field_validator("external_trade_ids", mode="before")
    @classmethod
    def _split_trade_ids(cls, value: Any) -> Any:
        if isinstance(value, str):
            parts = value.replace(":", ",").split(",")
            return [part.strip() for part in parts if part.strip()]
        return value


# ---------------------------------------------------------------------------
# Normalized output
# ---------------------------------------------------------------------------


class LegComponent(BaseModel):
    model_config = _CAMEL

    currency_pair: Optional[str] = None
    market_spot_rate: Optional[Decimal] = None
    market_forward_rate: Optional[Decimal] = None
    spot_value_date: Optional[date] = None


class LegAdditionalFields(BaseModel):
    model_config = _CAMEL

    execution_venue: Optional[str] = None
    source_system: Optional[str] = None
    broker: Optional[str] = None
    maker_or_taker: Optional[str] = None
    trader_id: Optional[str] = None
    orig_contract_ref: Optional[str] = None
    desk: Optional[str] = None
    counterparty_code: Optional[str] = None
    trade_leg_type: Optional[str] = None
    comment0: Optional[str] = None
    comment1: Optional[str] = None
    comment2: Optional[str] = None


class TradeLeg(BaseModel):
    model_config = _CAMEL

    deal_ccy: Optional[str] = None
    deal_amount: Optional[Decimal] = None
    bs_indicator: Optional[str] = None
    client_forward_rate: Optional[Decimal] = None
    client_spot_rate: Optional[Decimal] = None
    init_price: Optional[Decimal] = None
    client_rate: Optional[Decimal] = None
    fwsw_points: Optional[Decimal] = None
    sales_margin_amount: Optional[Decimal] = None
    sales_margin_ccy: Optional[str] = None
    value_date: Optional[date] = None
    fix_date: Optional[date] = None
    components: List[LegComponent] = Field(default_factory=list)
    additional_fields: LegAdditionalFields = Field(default_factory=LegAdditionalFields)


class NormalizedTrade(BaseModel):
    """Booking instruction handed to the downstream publisher."""

    model_config = _CAMEL

    trade_reference: Optional[str] = None
    trade_execution_date: Optional[date] = None
    trade_execution_time: Optional[str] = None
    deal_type: Optional[str] = None
    short_label: Optional[str] = None
    source_portfolio: Optional[str] = None
    regional_portfolio: Optional[str] = None
    destination_portfolio: Optional[str] = None
    internal: str = "Y"
    intermediary_portfolio: Optional[str] = None
    broker_label: Optional[str] = None
    split_cross: Optional[str] = None
    split_spot_swap: Optional[str] = None
    family_grp_type: Optional[str] = None
    near_leg: Optional[TradeLeg] = None
    far_leg: Optional[TradeLeg] = None


class StagingRecord(BaseModel):
    """Pre-transformation audit snapshot."""

    model_config = _CAMEL

    contract: Optional[str] = None
    typology: Optional[str] = None
    nav_type: Optional[str] = None
    currency1: Optional[str] = None
    currency2: Optional[str] = None
    buy_trans_amt: Optional[Decimal] = None
    sell_trans_amt: Optional[Decimal] = None
    hedge_amt_allocation: Optional[Decimal] = None
    spot_rate: Optional[Decimal] = None
    historical_exchange_rate: Optional[Decimal] = None
    trading_portfolio: Optional[str] = None
    counterparty: Optional[str] = None
    comment0: Optional[str] = None
    external_comment: Optional[str] = None
    trans_date: Optional[date] = None
    value_date: Optional[date] = None
    maturity_date: Optional[date] = None
    trace_id: Optional[str] = None
    rule_id: Optional[str] = None
    book_code: Optional[str] = None
    created_at: datetime = Field(default_factory=utc_now)


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


@dataclass
class StrategyResult:
    """Trades and staging rows produced for one group."""

    trades: List[NormalizedTrade] = field(default_factory=list)
    staging_records: List[StagingRecord] = field(default_factory=list)

    def extend(self, other: "StrategyResult") -> None:
        self.trades.extend(other.trades)
        self.staging_records.extend(other.staging_records)


@dataclass
class AggregatedResult(StrategyResult):
    """Concatenated output of every group in a run."""

    group_count: int = 0

    @classmethod
    def merge(cls, results: Sequence[StrategyResult]) -> "AggregatedResult":
        merged = cls(group_count=len(results))
        for result in results:
            merged.extend(result)
        return merged

    def summary(self) -> Dict[str, int]:
        return {
            "groups": self.group_count,
            "trades": len(self.trades),
            "stagingRecords": len(self.staging_records),
        }
