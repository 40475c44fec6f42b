from __future__ import annotations

import logging
import threading
import time
from typing import Any, Callable, Dict, List, Optional, Tuple

from src.cluster.client import ClusterClient
from src.common.errors import ClusterError, ReadinessTimeout, RolloutCancelled
from src.common.reports import READY, TIMED_OUT, ReadinessOutcome, ReadinessQuery
from src.common.status import condition_true, conditions_of

logger = logging.getLogger(__name__)

# Floor for the per-poll request timeout on the final boundary poll
MIN_POLL_TIMEOUT = 1.0
_EVENT_FIELDS = ("type", "reason", "message", "count", "lastTimestamp")


class ReadinessWaiter:
    """Polls a resource's condition until it is true or the query's timeout elapses.

    A timeout is not an error for the rollout: the outcome carries a diagnostic
    snapshot and the caller continues with the best-known state.
    """

    def __init__(
        self,
        cluster: ClusterClient,
        *,
        interval: float = 5.0,
        cancel_event: Optional[threading.Event] = None,
        clock: Callable[[], float] = time.monotonic,
        sleeper: Optional[Callable[[float], bool]] = None,
    ) -> None:
        self.cluster = cluster
        self.interval = interval
        self.cancel_event = cancel_event if cancel_event is not None else threading.Event()
        self._clock = clock
        # Returns True when the wait was interrupted by cancellation
        self._sleep = sleeper if sleeper is not None else self.cancel_event.wait

    def wait(self, query: ReadinessQuery) -> ReadinessOutcome:
        try:
            elapsed, polls = self._await_condition(query)
        except ReadinessTimeout as exc:
            logger.warning("%s", exc)
            return ReadinessOutcome(
                query=query,
                state=TIMED_OUT,
                elapsed=exc.elapsed,
                polls=int(exc.snapshot.get("polls", 0)),
                snapshot=exc.snapshot,
            )
        logger.info(
            "%s %s/%s reported %s after %.1fs",
            query.kind,
            query.namespace,
            query.name,
            query.condition,
            elapsed,
        )
        return ReadinessOutcome(query=query, state=READY, elapsed=elapsed, polls=polls)

    def _await_condition(self, query: ReadinessQuery) -> Tuple[float, int]:
        start = self._clock()
        polls = 0
        resource: Optional[Dict[str, Any]] = None
        last_error: Optional[str] = None

        while True:
            if self.cancel_event.is_set():
                raise RolloutCancelled(f"readiness wait for {query.kind} {query.name} cancelled")
            polls += 1
            remaining = max(query.timeout - (self._clock() - start), MIN_POLL_TIMEOUT)
            try:
                resource = self.cluster.get(
                    query.kind,
                    query.namespace,
                    query.name,
                    api_version=query.api_version,
                    timeout=remaining,
                )
                last_error = None
            except ClusterError as exc:
                # The control plane is eventually consistent; keep polling.
                last_error = str(exc)
                logger.debug("Poll %d for %s failed: %s", polls, query.name, exc)

            elapsed = self._clock() - start
            if condition_true(conditions_of(resource), query.condition):
                return elapsed, polls
            if elapsed >= query.timeout:
                raise ReadinessTimeout(
                    f"{query.kind} {query.namespace}/{query.name} did not report {query.condition} "
                    f"within {query.timeout:g}s",
                    elapsed=elapsed,
                    snapshot=self._snapshot(query, resource, last_error, polls),
                )
            if self._sleep(min(self.interval, query.timeout - elapsed)):
                raise RolloutCancelled(f"readiness wait for {query.kind} {query.name} cancelled")

    def _snapshot(
        self,
        query: ReadinessQuery,
        resource: Optional[Dict[str, Any]],
        last_error: Optional[str],
        polls: int,
    ) -> Dict[str, Any]:
        snapshot: Dict[str, Any] = {
            "conditions": conditions_of(resource),
            "resource": resource,
            "last_error": last_error,
            "polls": polls,
        }
        try:
            snapshot["events"] = _summarise_events(self.cluster.events(query.namespace, query.name))
        except ClusterError as exc:
            snapshot["events"] = []
            snapshot["events_error"] = str(exc)
        return snapshot


def _summarise_events(events: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return [{key: event.get(key) for key in _EVENT_FIELDS if key in event} for event in events]


__all__ = ["ReadinessWaiter"]
