import json
from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, create_engine

from fx_booking import db as _db  # noqa: F401  registers tables
from fx_booking.config import reset_settings
from fx_booking.context import TransformationContext
from fx_booking.models import RawRecord, RecordGroup
from fx_booking.rules import load_rule_config


# ---------------------------------------------------------------------------
# Settings isolation
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _settings(monkeypatch, tmp_path):
    """Every test starts from default settings, independent of the host env."""
    monkeypatch.setenv("FX_BOOKING_FIELD_CONFIG", str(tmp_path / "missing.json"))
    for name in (
        "FUNCTIONAL_CURRENCY",
        "TRACE_ID_PREFIX",
        "FX_BOOKING_MAX_WORKERS",
        "BOOKING_TOPIC",
        "PUBLISH_MAX_ATTEMPTS",
    ):
        monkeypatch.delenv(name, raising=False)
    reset_settings()
    yield
    reset_settings()


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------


def _record(**overrides) -> RawRecord:
    data = {
        "contract": "C-100",
        "comment0": "HEDGE-Q1",
        "nav_type": "N1",
        "typology": "FX Spot",
        "currency": "EUR",
        "currency1": "EUR",
        "currency2": "USD",
        "hedge_amt_allocation": Decimal("1000"),
        "spot_rate": Decimal("1.1"),
        "historical_exchange_rate": Decimal("1.2"),
        "trans_date": date(2024, 2, 28),
        "value_date": date(2024, 3, 1),
        "trading_portfolio": "PF-EUR",
        "counterparty": "CP-1",
    }
    data.update(overrides)
    return RawRecord(**data)


@pytest.fixture
def make_record():
    return _record


@pytest.fixture
def make_group():
    def _group(*records: RawRecord) -> RecordGroup:
        first = records[0]
        return RecordGroup(key=first.group_key, typology=first.typology, records=tuple(records))

    return _group


@pytest.fixture
def make_config():
    def _config(transformations, spec=None, id="CFG-1", book_code="BOOK-1"):
        if not isinstance(transformations, str):
            transformations = json.dumps(transformations)
        if spec is not None and not isinstance(spec, str):
            spec = json.dumps(spec)
        return load_rule_config(id, book_code, transformations, spec)

    return _config


@pytest.fixture
def make_context():
    def _context(group, configs, family=("EUR",), siblings=None, currency="EUR", rule_id="R-1"):
        return TransformationContext(
            group=group,
            rule_configs=tuple(configs),
            input_currency=currency,
            currency_family=tuple(family),
            rule_id=rule_id,
            sibling_groups=None if siblings is None else tuple(siblings),
        )

    return _context


@pytest.fixture
def engine():
    """Shared in-memory SQLite engine usable from worker threads."""
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(eng)
    yield eng
    eng.dispose()
