"""Working trade to booking model mapping."""
from __future__ import annotations

from decimal import Decimal
from typing import Any, Dict, Optional, Sequence

from .models import (BLEND_HISTFX, FAR_LEG, NEAR_LEG, LegAdditionalFields,
                     LegComponent, NormalizedTrade, TradeLeg, WorkingTrade)

__all__ = [
    "SELL_INDICATOR",
    "SPOT_PRODUCT",
    "to_trade_header",
    "to_trade_leg",
    "build_normalized_trade",
    "to_outbound_record",
]

SELL_INDICATOR = "S"
SPOT_PRODUCT = "SPOT"

_HEADER_PASSTHROUGH = (
    "short_label",
    "regional_portfolio",
    "intermediary_portfolio",
    "broker_label",
    "split_cross",
    "split_spot_swap",
    "family_grp_type",
)

_ADDITIONAL_PASSTHROUGH = (
    "execution_venue",
    "source_system",
    "broker",
    "maker_or_taker",
    "trader_id",
    "desk",
    "trade_leg_type",
    "comment0",
    "comment1",
    "comment2",
)

_OUTBOUND_HEADER_KEYS = {
    "tradeReference": "externalReference",
    "tradeExecutionDate": "transDate",
    "tradeExecutionTime": "dealTime",
    "sourcePortfolio": "tradingPortf",
}

_OUTBOUND_LEG_KEYS = {
    "clientForwardRate": "forwardRate",
    "clientSpotRate": "spotRate",
    "clientRate": "exchRate",
}


def _is_sell(trade: WorkingTrade) -> bool:
    return (trade.bs_indicator or "").upper() == SELL_INDICATOR


def _client_rate(trade: WorkingTrade) -> Optional[Decimal]:
    if trade.exchange_rate_type == BLEND_HISTFX:
        return trade.historical_exchange_rate
    return trade.spot_rate


def to_trade_header(trade: WorkingTrade) -> NormalizedTrade:
    return NormalizedTrade(
        trade_reference=trade.trace_id,
        trade_execution_date=trade.trans_date,
        trade_execution_time=trade.deal_time,
        deal_type=trade.outbound_product,
        source_portfolio=trade.trading_portfolio,
        destination_portfolio=trade.counterparty,
        **{name: getattr(trade, name) for name in _HEADER_PASSTHROUGH},
    )


def to_trade_leg(trade: WorkingTrade) -> TradeLeg:
    sell = _is_sell(trade)
    if trade.outbound_product == SPOT_PRODUCT:
        client_spot_rate = _client_rate(trade)
    else:
        client_spot_rate = Decimal(0)

    component = LegComponent(
        currency_pair=trade.instrument_code,
        market_spot_rate=trade.market_spot_rate,
        market_forward_rate=trade.market_forward_rate,
        spot_value_date=trade.spot_value_date,
    )
    additional = LegAdditionalFields(
        orig_contract_ref=trade.txn_id,
        counterparty_code=trade.counterparty,
        **{name: getattr(trade, name) for name in _ADDITIONAL_PASSTHROUGH},
    )
    return TradeLeg(
        deal_ccy=trade.currency2 if sell else trade.currency1,
        deal_amount=trade.sell_trans_amt if sell else trade.buy_trans_amt,
        bs_indicator=trade.bs_indicator,
        client_forward_rate=trade.client_forward_rate,
        client_spot_rate=client_spot_rate,
        init_price=trade.init_price,
        client_rate=_client_rate(trade),
        fwsw_points=trade.fwsw_points,
        sales_margin_amount=trade.sales_margin_amount,
        sales_margin_ccy=trade.sales_margin_ccy,
        value_date=trade.value_date,
        fix_date=trade.fix_date,
        components=[component],
        additional_fields=additional,
    )


def build_normalized_trade(
    legs: Sequence[WorkingTrade], default_role: str = FAR_LEG
) -> NormalizedTrade:
    """Header from the first leg; each leg placed by its ``leg_role``."""
    if not legs:
        raise ValueError("at least one transformed leg is required")
    trade = to_trade_header(legs[0])
    for leg in legs:
        role = leg.leg_role or default_role
        if role == NEAR_LEG:
            trade.near_leg = to_trade_leg(leg)
        else:
            trade.far_leg = to_trade_leg(leg)
    return trade


def _rename(data: Dict[str, Any], keys: Dict[str, str]) -> Dict[str, Any]:
    return {keys.get(k, k): v for k, v in data.items()}


def to_outbound_record(trade: NormalizedTrade) -> Dict[str, Any]:
    """JSON-ready booking record in the downstream naming."""
    data = _rename(trade.model_dump(mode="json", by_alias=True), _OUTBOUND_HEADER_KEYS)
    for leg_key in ("nearLeg", "farLeg"):
        if data.get(leg_key) is not None:
            data[leg_key] = _rename(data[leg_key], _OUTBOUND_LEG_KEYS)
    return data
