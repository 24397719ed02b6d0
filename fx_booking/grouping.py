"""Partition raw records into groups and enforce cardinality."""
from __future__ import annotations

import logging
from typing import Dict, Iterable, List

from .exceptions import ValidationError
from .models import FX_SPOT, FX_SWAP, NDF, GroupKey, RawRecord, RecordGroup

__all__ = ["EXPECTED_RECORD_COUNT", "group_and_validate"]

_LOG = logging.getLogger(__name__)

EXPECTED_RECORD_COUNT: Dict[str, int] = {
    FX_SPOT: 1,
    FX_SWAP: 2,
    NDF: 2,
}


def _validate(group: RecordGroup) -> None:
    count = len(group.records)
    expected = EXPECTED_RECORD_COUNT.get(group.typology or "")
    if expected is None:
        raise ValidationError(
            f"Unsupported typology '{group.typology}' for group {group.key}",
            group_key=str(group.key),
            typology=group.typology,
            record_count=count,
        )
    if count != expected:
        raise ValidationError(
            f"{group.typology} group {group.key} must contain exactly {expected} "
            f"record(s), found {count}",
            group_key=str(group.key),
            typology=group.typology,
            record_count=count,
        )


def group_and_validate(records: Iterable[RawRecord]) -> List[RecordGroup]:
    """Group *records* by (contract, comment0, navType) and validate each group.

    Groups come back in first-seen order, records keep their input order.
    A group's typology is taken from its first record; a group whose records
    disagree on typology is rejected.
    """
    buckets: Dict[GroupKey, List[RawRecord]] = {}
    for record in records:
        buckets.setdefault(record.group_key, []).append(record)

    groups: List[RecordGroup] = []
    for key, members in buckets.items():
        typologies = {m.typology for m in members}
        if len(typologies) > 1:
            raise ValidationError(
                f"Group {key} mixes typologies {sorted(str(t) for t in typologies)}",
                group_key=str(key),
                typology=members[0].typology,
                record_count=len(members),
            )
        group = RecordGroup(key=key, typology=members[0].typology, records=tuple(members))
        _validate(group)
        groups.append(group)

    _LOG.info("validated %d record groups", len(groups))
    return groups
