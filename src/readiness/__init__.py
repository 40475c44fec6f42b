"""Readiness package providing the bounded, cancellable condition poller."""

from .waiter import ReadinessWaiter

__all__ = ["ReadinessWaiter"]
