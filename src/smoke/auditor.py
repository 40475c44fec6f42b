from __future__ import annotations

import logging
from typing import Dict, Sequence, Set

from src.cluster.client import ClusterClient
from src.common.config import EnvironmentTarget
from src.common.errors import ClusterError, StructuralValidationError
from src.common.reports import Finding, SmokeReport
from src.common.resources import ResourceRecord, normalise_path, route_path_values
from src.common.status import bound_to, route_accepted

logger = logging.getLogger(__name__)


class SmokeAuditor:
    """Confirms every required path is served by an accepted route on the live cluster."""

    def __init__(self, cluster: ClusterClient) -> None:
        self.cluster = cluster

    def audit(
        self,
        target: EnvironmentTarget,
        gateway: str,
        *,
        expected_routes: int,
        route_kinds: Sequence[str] = ("HTTPRoute",),
    ) -> SmokeReport:
        report = SmokeReport(expected_routes=expected_routes)
        accepted_paths: Set[str] = set()

        for kind in route_kinds:
            try:
                routes = self.cluster.list(kind, target.namespace)
            except ClusterError as exc:
                report.findings.append(Finding.smoke("smoke_query_failed", f"{kind} query failed: {exc}"))
                continue
            for route in routes:
                if not bound_to(route, gateway, target.namespace):
                    continue
                report.observed_routes += 1
                if route_accepted(route, gateway) is not True:
                    continue
                try:
                    record = ResourceRecord.from_manifest(route, target.namespace)
                except StructuralValidationError:
                    continue
                accepted_paths.update(normalise_path(p) for p in route_path_values(record))

        report.paths = _path_presence(target.required_paths, accepted_paths)
        for path, present in report.paths.items():
            if not present:
                report.findings.append(
                    Finding.smoke("smoke_path_missing", f"required path {path} is not served by an accepted route")
                )
        if report.observed_routes != expected_routes:
            report.findings.append(
                Finding.smoke(
                    "smoke_route_count",
                    f"expected {expected_routes} routes bound to {gateway}, observed {report.observed_routes}",
                )
            )
        logger.info("Smoke audit: %d/%d required paths accepted", report.present, len(report.paths))
        return report


def _path_presence(required: Sequence[str], accepted: Set[str]) -> Dict[str, bool]:
    return {path: normalise_path(path) in accepted for path in required}


__all__ = ["SmokeAuditor"]
