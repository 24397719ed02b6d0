import json
import logging
from datetime import date
from decimal import Decimal

import pytest
from sqlmodel import Session, select

from fx_booking import db
from fx_booking.exceptions import PublishError, ValidationError
from fx_booking.models import InstructionRequest, InstructionRule
from fx_booking.repository import SqlDataSource, SqlStagingSink
from fx_booking.rules import load_rule_config
from fx_booking.service import InstructionProcessingService

SPOT_RULE = [{"referenceTrade": "FX Spot", "tpsFields": ["currency1", "currency2", "buyTransAmt", "sellTransAmt"]}]
SWAP_RULE = [
    {
        "referenceTrade": "FX Swap",
        "referenceSubTradeBuySell": [{"nearLeg": True}, {"farLeg": True}],
        "tpsFields": ["currency1", "currency2", "buyTransAmt", "sellTransAmt", "valueDate"],
    }
]


class FakeDataSource:
    def __init__(self, records, configs, rules, family=("EUR",)):
        self.records = records
        self.configs = {c.id: c for c in configs}
        self.rules = rules
        self.family = list(family)

    def fetch(self, request):
        return list(self.records)

    def fetch_rule_configs(self, ids):
        return [self.configs[i] for i in ids if i in self.configs]

    def fetch_currency_family(self, currency):
        return self.family

    def fetch_currency_category(self, currency):
        return "G10"

    def fetch_instruction_rules(self, request, currency_category):
        return list(self.rules)


class FakeSink:
    def __init__(self):
        self.batches = []

    def insert_batch(self, records):
        self.batches.append(list(records))


class FakePublisher:
    def __init__(self, fail=False):
        self.fail = fail
        self.published = []

    def publish(self, trade):
        if self.fail:
            raise PublishError("broker unavailable", retryable=True)
        self.published.append(trade)


def _request():
    return InstructionRequest(business_date=date(2024, 3, 1), instruction_event="INCEPTION", currency="EUR")


def _rule(nav_type="N1", ids="CFG-SPOT,CFG-SWAP"):
    return InstructionRule(rule_id=f"R-{nav_type}", nav_type=nav_type, book_config_ids=ids)


def _configs():
    return [
        load_rule_config("CFG-SPOT", "BOOK-S", json.dumps(SPOT_RULE)),
        load_rule_config("CFG-SWAP", "BOOK-W", json.dumps(SWAP_RULE)),
    ]


def _swap_records(make_record, contract="SW-1"):
    return [
        make_record(contract=contract, typology="FX Swap", currency1="EUR", currency2="USD",
                    value_date=date(2024, 3, 1)),
        make_record(contract=contract, typology="FX Swap", currency1="USD", currency2="EUR",
                    value_date=date(2024, 6, 3)),
    ]


def test_end_to_end_with_fakes(make_record):
    records = [make_record(contract="SP-1")] + _swap_records(make_record)
    sink, publisher = FakeSink(), FakePublisher()
    service = InstructionProcessingService(
        FakeDataSource(records, _configs(), [_rule()]), sink, publisher, max_workers=2
    )

    result = service.process_instruction(_request())

    # spot group matches only the spot config, swap group only the swap config
    assert len(result.trades) == 2
    assert result.trades[0].far_leg is None
    assert result.trades[1].far_leg is not None
    assert len(sink.batches) == 1
    assert len(sink.batches[0]) == 3
    assert {r.rule_id for r in sink.batches[0]} == {"R-N1"}
    assert publisher.published == result.trades


def test_group_without_rule_is_skipped(make_record):
    records = [make_record(contract="SP-1"), make_record(contract="SP-2", nav_type="N9")]
    sink = FakeSink()
    service = InstructionProcessingService(
        FakeDataSource(records, _configs(), [_rule()]), sink, FakePublisher()
    )

    result = service.process_instruction(_request())

    assert len(result.trades) == 1
    assert result.group_count == 2
    assert len(sink.batches[0]) == 1


def test_invalid_group_aborts_before_staging(make_record):
    records = [make_record(contract="SP-1"), make_record(contract="SP-1")]
    sink, publisher = FakeSink(), FakePublisher()
    service = InstructionProcessingService(
        FakeDataSource(records, _configs(), [_rule()]), sink, publisher
    )

    with pytest.raises(ValidationError):
        service.process_instruction(_request())
    assert sink.batches == []
    assert publisher.published == []


def test_failing_group_discards_all_results(make_record):
    # swap legs with the same direction cannot be identified
    records = [make_record(contract="SP-1")] + [
        make_record(contract="SW-1", typology="FX Swap"),
        make_record(contract="SW-1", typology="FX Swap"),
    ]
    sink = FakeSink()
    service = InstructionProcessingService(
        FakeDataSource(records, _configs(), [_rule()]), sink, FakePublisher()
    )

    with pytest.raises(Exception, match="near and far"):
        service.process_instruction(_request())
    assert sink.batches == []


def test_publish_failure_does_not_fail_run(make_record, caplog):
    sink = FakeSink()
    service = InstructionProcessingService(
        FakeDataSource([make_record()], _configs(), [_rule()]), sink, FakePublisher(fail=True)
    )

    with caplog.at_level(logging.WARNING, logger="fx_booking.service"):
        result = service.process_instruction(_request())

    assert len(result.trades) == 1
    assert len(sink.batches[0]) == 1
    assert f"not delivered: {result.trades[0].trade_reference}" in caplog.text


def test_sql_backed_run(engine):
    with Session(engine) as session:
        session.add_all(
            [
                db.FxTradeRow(
                    instruction_event="INCEPTION", contract="SP-1", comment0="C", nav_type="N1",
                    typology="FX Spot", currency="EUR", currency1="EUR", currency2="USD",
                    business_date=date(2024, 3, 1), hedge_amt_allocation=Decimal("250"),
                    historical_exchange_rate=Decimal("1.2"),
                ),
                db.BookingRuleConfigRow(id="CFG-SPOT", book_code="BOOK-S", transformations=json.dumps(SPOT_RULE)),
                db.CurrencyConfigRow(original_currency="EUR", functional_currency="EUR", currency_category="G10"),
                db.InstructionRuleRow(
                    rule_id="R-1", business_event="INCEPTION", nav_type="N1",
                    currency_type="G10", book_config_ids="CFG-SPOT",
                ),
            ]
        )
        session.commit()

    publisher = FakePublisher()
    service = InstructionProcessingService(SqlDataSource(engine), SqlStagingSink(engine), publisher)
    result = service.process_instruction(_request())

    assert len(result.trades) == 1
    leg = result.trades[0].near_leg
    assert leg.deal_ccy == "EUR"
    assert leg.deal_amount == Decimal("250")

    with Session(engine) as session:
        rows = session.exec(select(db.StagingAuditRow)).all()
    assert len(rows) == 1
    assert rows[0].trace_id == result.trades[0].trade_reference
    assert rows[0].book_code == "BOOK-S"
