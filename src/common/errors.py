"""Exception hierarchy shared by every rollout stage."""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence


class RolloutError(Exception):
    """Base class for all rollout errors."""


class ConfigError(RolloutError):
    """Raised when the rollout configuration or an environment is invalid."""


class ClusterError(RolloutError):
    """Raised when a control-plane call fails."""

    def __init__(self, message: str, command: Optional[Sequence[str]] = None, stderr: str = "") -> None:
        super().__init__(message)
        self.command = list(command) if command else []
        self.stderr = stderr

    @property
    def not_found(self) -> bool:
        return "NotFound" in self.stderr or "not found" in self.stderr


class StructuralValidationError(RolloutError):
    """Blocking structural problem; halts the rollout before any cluster contact."""

    def __init__(self, message: str, findings: Optional[List[Any]] = None) -> None:
        super().__init__(message)
        self.findings = list(findings or [])


class PrerequisiteMissing(RolloutError):
    """A capability the document needs is not declared on the cluster."""

    def __init__(self, capability: str, action: str) -> None:
        super().__init__(f"required capability '{capability}' is not declared on the cluster; {action}")
        self.capability = capability
        self.action = action


class ApplyFailure(RolloutError):
    """The cluster rejected a single record."""

    def __init__(self, identity: Sequence[str], reason: str) -> None:
        kind, namespace, name = identity
        where = f"{namespace}/{name}" if namespace else name
        super().__init__(f"{kind} {where} rejected: {reason}")
        self.identity = tuple(identity)
        self.reason = reason


class ReadinessTimeout(RolloutError):
    """A readiness condition did not become true inside its window."""

    def __init__(self, message: str, elapsed: float, snapshot: Dict[str, Any]) -> None:
        super().__init__(message)
        self.elapsed = elapsed
        self.snapshot = snapshot


class ProbeFailure(RolloutError):
    """A single health probe failed."""

    def __init__(self, target: str, detail: str) -> None:
        super().__init__(f"{target}: {detail}")
        self.target = target
        self.detail = detail


class RolloutCancelled(RolloutError):
    """The rollout was aborted by the operator or a deadline."""


__all__ = [
    "RolloutError",
    "ConfigError",
    "ClusterError",
    "StructuralValidationError",
    "PrerequisiteMissing",
    "ApplyFailure",
    "ReadinessTimeout",
    "ProbeFailure",
    "RolloutCancelled",
]
