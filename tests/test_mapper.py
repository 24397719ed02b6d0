from datetime import date
from decimal import Decimal

from fx_booking.mapper import build_normalized_trade, to_outbound_record, to_trade_leg
from fx_booking.models import BLEND_HISTFX, FAR_LEG, NEAR_LEG, REF_TRADE, WorkingTrade


def _leg(make_record, **overrides):
    data = dict(
        buy_trans_amt=Decimal("1000"),
        sell_trans_amt=Decimal("1100"),
        trace_id="FXB-1",
    )
    data.update(overrides)
    return WorkingTrade.from_record(make_record(), **data)


def test_buy_leg_uses_currency1(make_record):
    leg = to_trade_leg(_leg(make_record, bs_indicator="B"))
    assert (leg.deal_ccy, leg.deal_amount) == ("EUR", Decimal("1000"))


def test_sell_leg_uses_currency2(make_record):
    leg = to_trade_leg(_leg(make_record, bs_indicator="s"))
    assert (leg.deal_ccy, leg.deal_amount) == ("USD", Decimal("1100"))


def test_client_rates_follow_rate_source(make_record):
    hist = to_trade_leg(_leg(make_record, exchange_rate_type=BLEND_HISTFX, outbound_product="SPOT"))
    assert hist.client_rate == Decimal("1.2")
    assert hist.client_spot_rate == Decimal("1.2")

    ref = to_trade_leg(_leg(make_record, exchange_rate_type=REF_TRADE, outbound_product="FWD"))
    assert ref.client_rate == Decimal("1.1")
    assert ref.client_spot_rate == Decimal("0")


def test_legs_placed_by_role(make_record):
    near = _leg(make_record, leg_role=NEAR_LEG, value_date=date(2024, 3, 1))
    far = _leg(make_record, leg_role=FAR_LEG, value_date=date(2024, 6, 3))
    trade = build_normalized_trade([far, near])
    assert trade.near_leg.value_date == date(2024, 3, 1)
    assert trade.far_leg.value_date == date(2024, 6, 3)
    assert trade.trade_reference == "FXB-1"


def test_outbound_record_uses_downstream_names(make_record):
    trade = build_normalized_trade([_leg(make_record, leg_role=NEAR_LEG, exchange_rate_type=BLEND_HISTFX)])
    record = to_outbound_record(trade)

    assert record["externalReference"] == "FXB-1"
    assert record["transDate"] == "2024-02-28"
    assert record["tradingPortf"] == "PF-EUR"
    assert "tradeReference" not in record
    assert record["farLeg"] is None
    near = record["nearLeg"]
    assert near["exchRate"] == "1.2"
    assert "clientRate" not in near
    assert "spotRate" in near and "forwardRate" in near
