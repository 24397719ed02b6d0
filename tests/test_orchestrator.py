import threading
import time

import pytest

from fx_booking.models import GroupKey, RecordGroup, StrategyResult
from fx_booking.orchestrator import process_all_or_none


def _groups(n):
    return [RecordGroup(key=GroupKey(f"G{i}", "C", "N1"), typology="FX Spot", records=()) for i in range(n)]


def test_results_concatenated_in_group_order():
    def fn(group):
        index = int(group.key.contract[1:])
        # later groups finish first
        time.sleep(0.01 * (5 - index))
        return StrategyResult(trades=[f"{group.key.contract}-a", f"{group.key.contract}-b"], staging_records=[index])

    result = process_all_or_none(_groups(5), fn, max_workers=5)

    assert result.group_count == 5
    assert result.trades == [f"G{i}-{s}" for i in range(5) for s in "ab"]
    assert result.staging_records == [0, 1, 2, 3, 4]
    assert result.summary() == {"groups": 5, "trades": 10, "stagingRecords": 5}


def test_single_failure_discards_everything():
    def fn(group):
        if group.key.contract == "G3":
            raise ValueError("boom in G3")
        return StrategyResult(trades=["ok"])

    with pytest.raises(ValueError, match="G3"):
        process_all_or_none(_groups(5), fn, max_workers=2)


def test_failure_stops_unstarted_groups():
    calls = []
    lock = threading.Lock()

    def fn(group):
        with lock:
            calls.append(group.key.contract)
        if group.key.contract == "G0":
            raise RuntimeError("first group failed")
        time.sleep(0.05)
        return StrategyResult()

    with pytest.raises(RuntimeError):
        process_all_or_none(_groups(20), fn, max_workers=1)

    assert calls[0] == "G0"
    assert len(calls) < 20


def test_empty_input():
    result = process_all_or_none([], lambda g: StrategyResult())
    assert result.trades == [] and result.group_count == 0
