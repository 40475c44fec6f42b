from __future__ import annotations

import logging
import threading
import time
from typing import Callable, List, Optional

import httpx

from src.applier.engine import ApplyEngine
from src.cluster.client import CapabilityQuery, ClusterClient, StaticCapabilities
from src.common.config import EnvironmentTarget
from src.common.errors import (
    ApplyFailure,
    ConfigError,
    PrerequisiteMissing,
    RolloutCancelled,
    RolloutError,
    StructuralValidationError,
)
from src.common.reports import (
    FAILED,
    PASSED,
    SKIPPED,
    WARNING,
    ApplyReport,
    ReadinessQuery,
    RolloutResult,
    StageReport,
    VerificationReport,
)
from src.common.resources import ResourceDocument
from src.prereq.checker import PrerequisiteChecker
from src.probes.prober import HealthProber
from src.readiness.waiter import ReadinessWaiter
from src.renderer.renderer import ManifestRenderer, ManifestSource
from src.smoke.auditor import SmokeAuditor
from src.validator.posture import PostureAuditor
from src.validator.static import StaticValidator, raise_for_blocking
from src.verifier.verifier import DeploymentVerifier, resolve_gateway_name, route_kinds_of

logger = logging.getLogger(__name__)

STAGE_RENDER = "render"
STAGE_STATIC = "static-validation"
STAGE_POSTURE = "posture-audit"
STAGE_PREREQUISITES = "prerequisites"
STAGE_APPLY = "apply"
STAGE_READINESS = "readiness"
STAGE_VERIFICATION = "verification"
STAGE_PROBES = "health-probes"
STAGE_SMOKE = "smoke-audit"

STAGES = (
    STAGE_RENDER,
    STAGE_STATIC,
    STAGE_POSTURE,
    STAGE_PREREQUISITES,
    STAGE_APPLY,
    STAGE_READINESS,
    STAGE_VERIFICATION,
    STAGE_PROBES,
    STAGE_SMOKE,
)

EXIT_OK = 0
EXIT_CONFIG = 1
EXIT_STRUCTURAL = 2
EXIT_PREREQUISITE = 3
EXIT_APPLY = 4
EXIT_CANCELLED = 5
EXIT_INTERNAL = 6

_EXIT_CODES = (
    (StructuralValidationError, EXIT_STRUCTURAL),
    (PrerequisiteMissing, EXIT_PREREQUISITE),
    (ApplyFailure, EXIT_APPLY),
    (RolloutCancelled, EXIT_CANCELLED),
    (ConfigError, EXIT_CONFIG),
)


class RolloutOrchestrator:
    """Runs the rollout stages in order for one environment.

    Only structural validation failures, missing prerequisites and apply
    failures of gateway or route records halt the rollout; every other stage
    degrades to warnings. The returned result always lists every stage, with
    the ones not reached marked skipped.
    """

    def __init__(
        self,
        source: ManifestSource,
        cluster: ClusterClient,
        *,
        capabilities: Optional[CapabilityQuery] = None,
        dry_run: bool = False,
        cancel_event: Optional[threading.Event] = None,
        clock: Callable[[], float] = time.monotonic,
        sleeper: Optional[Callable[[float], bool]] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self.renderer = ManifestRenderer(source)
        self.cluster = cluster
        self.capabilities = capabilities
        self.dry_run = dry_run
        self.cancel_event = cancel_event if cancel_event is not None else threading.Event()
        self._clock = clock
        self._sleeper = sleeper
        self._transport = transport

    def cancel(self) -> None:
        self.cancel_event.set()

    def run(self, target: EnvironmentTarget) -> RolloutResult:
        result = RolloutResult(environment=target.name)
        stage = STAGE_RENDER
        try:
            document = self._render(target, result)

            stage = STAGE_STATIC
            self._validate(document, target, result)

            stage = STAGE_POSTURE
            self._audit_posture(document, target, result)

            stage = STAGE_PREREQUISITES
            self._check_prerequisites(document, target, result)

            stage = STAGE_APPLY
            self._apply(document, target, result)
            if self.dry_run:
                self._skip_remaining(result, "dry run")
                return result

            stage = STAGE_READINESS
            gateway = resolve_gateway_name(target, document.gateways)
            self._wait_ready(document, target, gateway, result)

            stage = STAGE_VERIFICATION
            verification = self._verify(document, target, gateway, result)

            stage = STAGE_PROBES
            self._probe(target, verification, result)

            stage = STAGE_SMOKE
            self._smoke(document, target, gateway, result)
        except RolloutError as exc:
            self._halt(result, stage, exc)
            return result
        except Exception as exc:  # noqa: BLE001
            logger.exception("Unexpected error during %s", stage)
            self._halt(result, stage, exc)
            return result

        if result.warnings:
            logger.warning("Rollout %s succeeded with %d warning(s)", target.name, len(result.warnings))
        else:
            logger.info("Rollout %s succeeded", target.name)
        return result

    def _render(self, target: EnvironmentTarget, result: RolloutResult) -> ResourceDocument:
        document = self.renderer.render(target)
        result.stages.append(
            StageReport(
                STAGE_RENDER,
                PASSED,
                payload={
                    "records": len(document),
                    "resources": [record.describe() for record in document],
                },
            )
        )
        logger.info("Rendered %d record(s) for %s", len(document), target.name)
        return document

    def _validate(self, document: ResourceDocument, target: EnvironmentTarget, result: RolloutResult) -> None:
        report = StaticValidator().validate(document, target)
        result.stages.append(
            StageReport(STAGE_STATIC, PASSED if report.passed else FAILED, payload=report.to_dict())
        )
        raise_for_blocking(report)

    def _audit_posture(self, document: ResourceDocument, target: EnvironmentTarget, result: RolloutResult) -> None:
        auditor = PostureAuditor()
        report = auditor.audit(document, target)
        payload = report.to_dict()
        payload["posture"] = auditor.classify(document, target)
        result.stages.append(
            StageReport(
                STAGE_POSTURE,
                WARNING if report.findings else PASSED,
                payload=payload,
                warnings=[finding.message for finding in report.findings],
            )
        )
        for finding in report.findings:
            logger.warning("Posture: %s", finding.message)

    def _check_prerequisites(
        self, document: ResourceDocument, target: EnvironmentTarget, result: RolloutResult
    ) -> None:
        checker = PrerequisiteChecker(self._capability_source(target))
        checked = checker.check(document, target)
        result.stages.append(StageReport(STAGE_PREREQUISITES, PASSED, payload={"capabilities": checked}))

    def _apply(self, document: ResourceDocument, target: EnvironmentTarget, result: RolloutResult) -> ApplyReport:
        report = ApplyEngine(self.cluster, dry_run=self.dry_run).apply(document, target)
        status = PASSED
        if report.fatal_failures:
            status = FAILED
        elif report.failures:
            status = WARNING
        result.stages.append(
            StageReport(
                STAGE_APPLY,
                status,
                payload=report.to_dict(),
                warnings=[f"{'/'.join(filter(None, r.identity))}: {r.error}" for r in report.failures],
            )
        )
        if report.fatal_failures:
            first = report.fatal_failures[0]
            raise ApplyFailure(first.identity, first.error or "rejected")
        return report

    def _wait_ready(
        self,
        document: ResourceDocument,
        target: EnvironmentTarget,
        gateway: Optional[str],
        result: RolloutResult,
    ) -> None:
        if gateway is None:
            result.stages.append(
                StageReport(STAGE_READINESS, SKIPPED, warnings=["no gateway to wait for"])
            )
            return
        record = next((g for g in document.gateways if g.name == gateway), None)
        query = ReadinessQuery(
            kind="Gateway",
            name=gateway,
            namespace=target.namespace,
            condition=target.readiness_condition,
            timeout=target.readiness_timeout,
            api_version=record.api_version if record is not None else None,
        )
        waiter = ReadinessWaiter(
            self.cluster,
            interval=target.poll_interval,
            cancel_event=self.cancel_event,
            clock=self._clock,
            sleeper=self._sleeper,
        )
        outcome = waiter.wait(query)
        warnings: List[str] = []
        if not outcome.ready:
            warnings.append(
                f"gateway {gateway} did not report {query.condition} within {query.timeout:g}s; "
                "continuing with best-known state"
            )
        result.stages.append(
            StageReport(
                STAGE_READINESS,
                PASSED if outcome.ready else WARNING,
                payload=outcome.to_dict(),
                warnings=warnings,
            )
        )

    def _verify(
        self,
        document: ResourceDocument,
        target: EnvironmentTarget,
        gateway: Optional[str],
        result: RolloutResult,
    ) -> VerificationReport:
        verifier = DeploymentVerifier(self.cluster)
        report = verifier.verify(target, gateway or "", route_kinds=route_kinds_of(document.routes))
        healthy = report.ready and report.address_assigned and not report.notes
        result.stages.append(
            StageReport(
                STAGE_VERIFICATION,
                PASSED if healthy else WARNING,
                payload=report.to_dict(),
                warnings=list(report.notes),
            )
        )
        return report

    def _probe(self, target: EnvironmentTarget, verification: VerificationReport, result: RolloutResult) -> None:
        prober = HealthProber(
            self.cluster,
            timeout=target.probe_timeout,
            cancel_event=self.cancel_event,
            transport=self._transport,
        )
        probes = prober.probe(target, verification)
        warnings = [f"{p.target}: {p.detail}" for p in probes if not p.succeeded]
        result.stages.append(
            StageReport(
                STAGE_PROBES,
                WARNING if warnings else PASSED,
                payload={"results": [p.to_dict() for p in probes]},
                warnings=warnings,
            )
        )

    def _smoke(
        self,
        document: ResourceDocument,
        target: EnvironmentTarget,
        gateway: Optional[str],
        result: RolloutResult,
    ) -> None:
        report = SmokeAuditor(self.cluster).audit(
            target,
            gateway or "",
            expected_routes=len(document.routes),
            route_kinds=route_kinds_of(document.routes),
        )
        result.stages.append(
            StageReport(
                STAGE_SMOKE,
                WARNING if report.findings else PASSED,
                payload=report.to_dict(),
                warnings=[finding.message for finding in report.findings],
            )
        )

    def _capability_source(self, target: EnvironmentTarget) -> CapabilityQuery:
        if self.capabilities is not None:
            return self.capabilities
        if target.capabilities is not None:
            return StaticCapabilities(target.capabilities)
        return self.cluster

    def _halt(self, result: RolloutResult, stage: str, exc: Exception) -> None:
        if isinstance(exc, RolloutError):
            code = next((code for error_type, code in _EXIT_CODES if isinstance(exc, error_type)), EXIT_CONFIG)
            message = str(exc)
        else:
            code = EXIT_INTERNAL
            message = f"{type(exc).__name__}: {exc}"
        if result.stages and result.stages[-1].name == stage:
            result.stages[-1].status = FAILED
            result.stages[-1].error = message
        else:
            result.stages.append(StageReport(stage, FAILED, error=message))
        result.halted_stage = stage
        result.exit_code = code
        result.error = message
        logger.error("Rollout %s halted at %s: %s", result.environment, stage, message)
        self._skip_remaining(result, f"halted at {stage}")

    @staticmethod
    def _skip_remaining(result: RolloutResult, reason: str) -> None:
        reached = set(result.stage_names())
        for name in STAGES:
            if name not in reached:
                result.stages.append(StageReport(name, SKIPPED, payload={"reason": reason}))


__all__ = [
    "RolloutOrchestrator",
    "STAGES",
    "EXIT_OK",
    "EXIT_CONFIG",
    "EXIT_STRUCTURAL",
    "EXIT_PREREQUISITE",
    "EXIT_APPLY",
    "EXIT_CANCELLED",
    "EXIT_INTERNAL",
]
