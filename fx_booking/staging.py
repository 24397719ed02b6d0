"""Staging/audit snapshots and trace ids."""
from __future__ import annotations

import time
import uuid
from typing import Iterable, List, Optional

from .config import get_settings
from .models import StagingRecord, TradeFields

__all__ = ["new_trace_id", "stamp"]

_SNAPSHOT_FIELDS = frozenset(StagingRecord.model_fields) & frozenset(TradeFields.model_fields)


def new_trace_id(prefix: Optional[str] = None) -> str:
    """``<prefix><epoch seconds><15 chars of a random uuid>``."""
    if prefix is None:
        prefix = get_settings().trace_id_prefix
    return f"{prefix}{int(time.time())}{str(uuid.uuid4())[8:23]}"


def stamp(
    snapshots: Iterable[TradeFields],
    book_code: Optional[str],
    rule_id: Optional[str],
    trace_id: str,
) -> List[StagingRecord]:
    """One staging record per pre-transform snapshot, tagged with rule metadata."""
    return [
        StagingRecord(
            **snapshot.model_dump(include=_SNAPSHOT_FIELDS),
            trace_id=trace_id,
            rule_id=rule_id,
            book_code=book_code,
        )
        for snapshot in snapshots
    ]
