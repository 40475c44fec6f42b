"""Report value types produced by the rollout stages."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

STRUCTURAL = "structural"
SECURITY = "security"
SMOKE = "smoke"
BLOCKING = "blocking"
ADVISORY = "advisory"

PASSED = "passed"
WARNING = "warning"
FAILED = "failed"
SKIPPED = "skipped"

READY = "Ready"
TIMED_OUT = "TimedOut"

CREATED = "created"
CONFIGURED = "configured"
UNCHANGED = "unchanged"
APPLY_FAILED = "failed"


@dataclass(frozen=True)
class Finding:
    category: str
    severity: str
    message: str
    rule: Optional[str] = None
    resource: Optional[str] = None

    @classmethod
    def structural(cls, rule: str, message: str, resource: Optional[str] = None) -> "Finding":
        return cls(STRUCTURAL, BLOCKING, message, rule=rule, resource=resource)

    @classmethod
    def posture(cls, rule: str, message: str, resource: Optional[str] = None) -> "Finding":
        return cls(SECURITY, ADVISORY, message, rule=rule, resource=resource)

    @classmethod
    def smoke(cls, rule: str, message: str) -> "Finding":
        return cls(SMOKE, ADVISORY, message, rule=rule)

    @property
    def blocking(self) -> bool:
        return self.category == STRUCTURAL and self.severity == BLOCKING

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "category": self.category,
            "severity": self.severity,
            "message": self.message,
        }
        if self.rule is not None:
            data["rule"] = self.rule
        if self.resource is not None:
            data["resource"] = self.resource
        return data


@dataclass
class ValidationReport:
    findings: List[Finding] = field(default_factory=list)

    def add(self, finding: Finding) -> None:
        self.findings.append(finding)

    @property
    def blocking(self) -> List[Finding]:
        return [f for f in self.findings if f.blocking]

    @property
    def passed(self) -> bool:
        return not self.blocking

    def rules(self) -> List[str]:
        return [f.rule for f in self.findings if f.rule]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "passed": self.passed,
            "findings": [f.to_dict() for f in self.findings],
        }


@dataclass(frozen=True)
class ApplyResult:
    identity: Tuple[str, str, str]
    status: str
    error: Optional[str] = None
    required: bool = False

    @property
    def failed(self) -> bool:
        return self.status == APPLY_FAILED

    def to_dict(self) -> Dict[str, Any]:
        kind, namespace, name = self.identity
        data: Dict[str, Any] = {
            "kind": kind,
            "namespace": namespace,
            "name": name,
            "status": self.status,
        }
        if self.error is not None:
            data["error"] = self.error
        return data


@dataclass
class ApplyReport:
    namespace: str
    namespace_created: bool = False
    dry_run: bool = False
    dry_run_strategy: Optional[str] = None
    results: List[ApplyResult] = field(default_factory=list)

    def count(self, status: str) -> int:
        return sum(1 for r in self.results if r.status == status)

    @property
    def failures(self) -> List[ApplyResult]:
        return [r for r in self.results if r.failed]

    @property
    def fatal_failures(self) -> List[ApplyResult]:
        return [r for r in self.results if r.failed and r.required]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "namespace": self.namespace,
            "namespace_created": self.namespace_created,
            "dry_run": self.dry_run,
            "dry_run_strategy": self.dry_run_strategy,
            "counts": {
                status: self.count(status)
                for status in (CREATED, CONFIGURED, UNCHANGED, APPLY_FAILED)
            },
            "results": [r.to_dict() for r in self.results],
        }


@dataclass(frozen=True)
class ReadinessQuery:
    kind: str
    name: str
    namespace: str
    condition: str = "Programmed"
    timeout: float = 300.0
    api_version: Optional[str] = None


@dataclass
class ReadinessOutcome:
    query: ReadinessQuery
    state: str
    elapsed: float
    polls: int = 0
    snapshot: Optional[Dict[str, Any]] = None

    @property
    def ready(self) -> bool:
        return self.state == READY

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "kind": self.query.kind,
            "name": self.query.name,
            "namespace": self.query.namespace,
            "condition": self.query.condition,
            "state": self.state,
            "elapsed_seconds": round(self.elapsed, 3),
            "polls": self.polls,
        }
        if self.snapshot is not None:
            data["diagnostics"] = self.snapshot
        return data


@dataclass(frozen=True)
class RouteStatus:
    kind: str
    name: str
    namespace: str
    accepted: Optional[bool]
    paths: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "name": self.name,
            "namespace": self.namespace,
            "accepted": self.accepted,
            "paths": list(self.paths),
        }


@dataclass
class VerificationReport:
    gateway: str
    namespace: str
    ready: bool = False
    address: Optional[str] = None
    conditions: List[Dict[str, Any]] = field(default_factory=list)
    routes: List[RouteStatus] = field(default_factory=list)
    notes: List[str] = field(default_factory=list)

    @property
    def route_count(self) -> int:
        return len(self.routes)

    @property
    def address_assigned(self) -> bool:
        return bool(self.address)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "gateway": self.gateway,
            "namespace": self.namespace,
            "ready": self.ready,
            "address": self.address if self.address else "address not assigned",
            "address_assigned": self.address_assigned,
            "conditions": self.conditions,
            "route_count": self.route_count,
            "routes": [r.to_dict() for r in self.routes],
            "notes": list(self.notes),
        }


@dataclass(frozen=True)
class ProbeResult:
    target: str
    succeeded: bool
    latency_ms: Optional[int] = None
    detail: str = ""
    skipped: bool = False

    @property
    def failed(self) -> bool:
        return not self.succeeded and not self.skipped

    def to_dict(self) -> Dict[str, Any]:
        return {
            "target": self.target,
            "succeeded": self.succeeded,
            "skipped": self.skipped,
            "latency_ms": self.latency_ms,
            "detail": self.detail,
        }


@dataclass
class SmokeReport:
    paths: Dict[str, bool] = field(default_factory=dict)
    expected_routes: int = 0
    observed_routes: int = 0
    findings: List[Finding] = field(default_factory=list)

    @property
    def passed(self) -> bool:
        return all(self.paths.values())

    @property
    def present(self) -> int:
        return sum(1 for ok in self.paths.values() if ok)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "passed": self.passed,
            "paths": dict(self.paths),
            "present": f"{self.present}/{len(self.paths)}",
            "expected_routes": self.expected_routes,
            "observed_routes": self.observed_routes,
            "findings": [f.to_dict() for f in self.findings],
        }


@dataclass
class StageReport:
    name: str
    status: str
    payload: Dict[str, Any] = field(default_factory=dict)
    warnings: List[str] = field(default_factory=list)
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "name": self.name,
            "status": self.status,
            "payload": self.payload,
            "warnings": list(self.warnings),
        }
        if self.error is not None:
            data["error"] = self.error
        return data


@dataclass
class RolloutResult:
    environment: str
    stages: List[StageReport] = field(default_factory=list)
    halted_stage: Optional[str] = None
    exit_code: int = 0
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.exit_code == 0

    @property
    def warnings(self) -> List[str]:
        collected: List[str] = []
        for stage in self.stages:
            collected.extend(f"{stage.name}: {w}" for w in stage.warnings)
        return collected

    def stage(self, name: str) -> Optional[StageReport]:
        for stage in self.stages:
            if stage.name == name:
                return stage
        return None

    def stage_names(self) -> Sequence[str]:
        return [stage.name for stage in self.stages]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "environment": self.environment,
            "succeeded": self.succeeded,
            "exit_code": self.exit_code,
            "halted_stage": self.halted_stage,
            "error": self.error,
            "warnings": self.warnings,
            "stages": [stage.to_dict() for stage in self.stages],
        }


__all__ = [
    "Finding",
    "ValidationReport",
    "ApplyResult",
    "ApplyReport",
    "ReadinessQuery",
    "ReadinessOutcome",
    "RouteStatus",
    "VerificationReport",
    "ProbeResult",
    "SmokeReport",
    "StageReport",
    "RolloutResult",
]
