from datetime import date
from decimal import Decimal

import pytest

from fx_booking.exceptions import TransformationError
from fx_booking.models import WorkingTrade
from fx_booking.strategies import FxSwapStrategy
from fx_booking.strategies.fx_swap import SwapCase

TPS = ["currency1", "currency2", "buyTransAmt", "sellTransAmt", "bsIndicator", "valueDate"]


def _legs(make_record):
    near = make_record(typology="FX Swap", currency1="EUR", currency2="USD", value_date=date(2024, 3, 1))
    far = make_record(typology="FX Swap", currency1="USD", currency2="EUR", value_date=date(2024, 6, 3))
    return near, far


def _rule(*sub_trades):
    return [{"referenceTrade": "FX Swap", "referenceSubTradeBuySell": list(sub_trades), "tpsFields": TPS}]


@pytest.mark.parametrize("reverse", [False, True])
def test_leg_identification_is_order_independent(make_record, make_group, make_context, reverse):
    near_rec, far_rec = _legs(make_record)
    records = [far_rec, near_rec] if reverse else [near_rec, far_rec]
    ctx = make_context(make_group(*records), [])
    legs = [WorkingTrade.from_record(r) for r in records]

    near, far = FxSwapStrategy().identify_legs(legs, ctx)

    assert (near.currency1, near.currency2) == ("EUR", "USD")
    assert near.value_date == date(2024, 3, 1)
    assert near.leg_role == "NEAR_LEG"
    assert (far.currency1, far.currency2) == ("USD", "EUR")
    assert far.leg_role == "FAR_LEG"


def test_unidentifiable_legs_fail(make_record, make_group, make_context, make_config):
    a = make_record(typology="FX Swap", currency1="EUR", currency2="USD")
    b = make_record(typology="FX Swap", currency1="EUR", currency2="USD")
    ctx = make_context(make_group(a, b), [make_config(_rule({"nearLeg": True}))])
    with pytest.raises(TransformationError, match="near and far"):
        FxSwapStrategy().process(ctx)


def test_unidentifiable_legs_fail_without_matching_configs(make_record, make_group, make_context):
    a = make_record(typology="FX Swap", currency1="EUR", currency2="USD")
    b = make_record(typology="FX Swap", currency1="EUR", currency2="USD")
    with pytest.raises(TransformationError, match="near and far"):
        FxSwapStrategy().process(make_context(make_group(a, b), []))


def test_functional_currency_is_configurable(make_record, make_group, make_context, monkeypatch):
    from fx_booking.config import reset_settings

    monkeypatch.setenv("FUNCTIONAL_CURRENCY", "GBP")
    reset_settings()
    near_rec, far_rec = _legs(make_record)
    ctx = make_context(make_group(near_rec, far_rec), [])
    legs = [WorkingTrade.from_record(r) for r in (near_rec, far_rec)]
    with pytest.raises(TransformationError):
        FxSwapStrategy().identify_legs(legs, ctx)
    assert FxSwapStrategy(functional_currency="USD").identify_legs(legs, ctx)


def test_both_legs_processed_with_shared_trace_id(make_record, make_group, make_context, make_config):
    config = make_config(
        _rule({"nearLeg": True, "buy": True}, {"farLeg": True, "sell": True}),
        spec={"bsIndicator": "S"},
    )
    ctx = make_context(make_group(*_legs(make_record)), [config])

    result = FxSwapStrategy().process(ctx)

    assert len(result.trades) == 1
    trade = result.trades[0]
    assert trade.near_leg.deal_ccy == "USD"
    assert trade.near_leg.deal_amount == Decimal("1200")
    assert trade.near_leg.value_date == date(2024, 3, 1)
    assert trade.far_leg.deal_ccy == "EUR"
    assert trade.far_leg.deal_amount == Decimal("1000")
    assert trade.far_leg.value_date == date(2024, 6, 3)

    assert len(result.staging_records) == 2
    assert {r.trace_id for r in result.staging_records} == {trade.trade_reference}


def test_single_far_leg(make_record, make_group, make_context, make_config):
    config = make_config(_rule({"farLeg": True, "sell": True}))
    ctx = make_context(make_group(*_legs(make_record)), [config])

    result = FxSwapStrategy().process(ctx)

    trade = result.trades[0]
    assert trade.near_leg is None
    assert trade.far_leg is not None
    assert len(result.staging_records) == 1
    assert result.staging_records[0].currency1 == "USD"


def test_classify_cases(make_config):
    strategy = FxSwapStrategy()
    both = make_config(_rule({"nearLeg": True}, {"farLeg": True})).transformations[0]
    near_twice = make_config(_rule({"nearLeg": True}, {"nearLeg": True})).transformations[0]
    single = make_config(_rule({"farLeg": True})).transformations[0]
    empty = make_config(_rule()).transformations[0]

    assert strategy.classify(both.reference_sub_trade_buy_sell) is SwapCase.BOTH_LEGS
    assert strategy.classify(near_twice.reference_sub_trade_buy_sell) is SwapCase.SINGLE_LEG
    assert strategy.classify(single.reference_sub_trade_buy_sell) is SwapCase.SINGLE_LEG
    with pytest.raises(TransformationError):
        strategy.classify(empty.reference_sub_trade_buy_sell)


def test_swap_requires_single_descriptor(make_record, make_group, make_context, make_config):
    config = make_config(_rule({"nearLeg": True}) * 2)
    ctx = make_context(make_group(*_legs(make_record)), [config])
    with pytest.raises(TransformationError, match="exactly 1 transformation"):
        FxSwapStrategy().process(ctx)
