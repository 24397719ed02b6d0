"""Runtime settings for the booking engine.

Scalars come from environment variables. The field lists that shape the
output (TPS default-include set and the keys skipped by generic output
overrides) live in an optional JSON file pointed to by
``FX_BOOKING_FIELD_CONFIG``; missing keys fall back to the defaults below.
"""
from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, FrozenSet, Optional

__all__ = ["Settings", "load_settings", "get_settings", "reset_settings"]

_LOG = logging.getLogger(__name__)

_DEFAULT_FIELD_CONFIG: Dict[str, list] = {
    "includeFields": [
        "traceId",
        "bookCode",
        "ruleId",
        "legRole",
        "exchangeRateType",
        "contract",
        "typology",
        "navType",
    ],
    "ignoreFields": ["comment0", "comment1"],
}

_FIELD_CONFIG_PATH = Path(__file__).with_name("field_config.json")


@dataclass(frozen=True)
class Settings:
    include_fields: FrozenSet[str]
    ignore_fields: FrozenSet[str]
    functional_currency: str = "USD"
    trace_id_prefix: str = "FXB-"
    max_workers: Optional[int] = None
    kafka_bootstrap: str = "localhost:9092"
    booking_topic: str = "fx-booking-trades"
    publish_max_attempts: int = 3
    db_url: str = "sqlite:///./fx_booking.db"


def _load_field_config(path: Path) -> Dict[str, list]:
    try:
        with path.open() as fp:
            data = json.load(fp)
    except FileNotFoundError:
        return dict(_DEFAULT_FIELD_CONFIG)
    _LOG.info("loaded field config from %s", path)
    return {**_DEFAULT_FIELD_CONFIG, **data}


def _int_env(name: str) -> Optional[int]:
    raw = os.getenv(name)
    return int(raw) if raw else None


def load_settings() -> Settings:
    path = Path(os.getenv("FX_BOOKING_FIELD_CONFIG", str(_FIELD_CONFIG_PATH)))
    fields = _load_field_config(path)
    return Settings(
        include_fields=frozenset(fields["includeFields"]),
        ignore_fields=frozenset(fields["ignoreFields"]),
        functional_currency=os.getenv("FUNCTIONAL_CURRENCY", "USD"),
        trace_id_prefix=os.getenv("TRACE_ID_PREFIX", "FXB-"),
        max_workers=_int_env("FX_BOOKING_MAX_WORKERS"),
        kafka_bootstrap=os.getenv("KAFKA_BOOTSTRAP", "localhost:9092"),
        booking_topic=os.getenv("BOOKING_TOPIC", "fx-booking-trades"),
        publish_max_attempts=_int_env("PUBLISH_MAX_ATTEMPTS") or 3,
        db_url=os.getenv("BOOKING_DB_URL", "sqlite:///./fx_booking.db"),
    )


_SETTINGS: Optional[Settings] = None


def get_settings() -> Settings:
    global _SETTINGS
    if _SETTINGS is None:
        _SETTINGS = load_settings()
    return _SETTINGS


def reset_settings() -> None:
    """Drop cached settings so the next call re-reads the environment."""
    global _SETTINGS
    _SETTINGS = None
