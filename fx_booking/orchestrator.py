"""All-or-none fan-out of per-group processing."""
from __future__ import annotations

import logging
import threading
from concurrent.futures import FIRST_EXCEPTION, Future, ThreadPoolExecutor, wait
from typing import Callable, Dict, Optional, Sequence

from .models import AggregatedResult, RecordGroup, StrategyResult

__all__ = ["RunCancelled", "process_all_or_none"]

_LOG = logging.getLogger(__name__)


class RunCancelled(Exception):
    """Raised inside a task that starts after a sibling already failed."""


def process_all_or_none(
    groups: Sequence[RecordGroup],
    fn: Callable[[RecordGroup], StrategyResult],
    *,
    max_workers: Optional[int] = None,
) -> AggregatedResult:
    """Run ``fn(group)`` for every group on a thread pool.

    The first failure cancels every task that has not started yet, waits for
    running ones to finish, drops all results and re-raises that failure.
    On success the per-group results are concatenated in group order.
    """
    if not groups:
        return AggregatedResult()

    cancelled = threading.Event()

    def _run(group: RecordGroup) -> StrategyResult:
        if cancelled.is_set():
            raise RunCancelled(str(group.key))
        return fn(group)

    workers = max_workers or min(32, len(groups))
    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="fx-booking") as pool:
        futures: Dict[Future, int] = {pool.submit(_run, g): i for i, g in enumerate(groups)}
        done, pending = wait(futures, return_when=FIRST_EXCEPTION)

        failed = [f for f in done if not f.cancelled() and f.exception() is not None]
        if failed:
            cancelled.set()
            for future in pending:
                future.cancel()
            # several tasks may have failed by the time wait() returns
            first = min(failed, key=futures.__getitem__)
            error = first.exception()
            group = groups[futures[first]]
            _LOG.error(
                "group processing failed, discarding results of %d group(s): %s",
                len(groups),
                error,
                extra={"group_key": str(group.key), "typology": group.typology},
            )
            raise error  # type: ignore[misc]

    ordered = sorted(futures.items(), key=lambda item: item[1])
    return AggregatedResult.merge([future.result() for future, _ in ordered])
