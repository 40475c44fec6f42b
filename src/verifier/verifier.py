from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Sequence

from src.cluster.client import ClusterClient
from src.common.config import EnvironmentTarget
from src.common.errors import ClusterError, StructuralValidationError
from src.common.reports import RouteStatus, VerificationReport
from src.common.resources import ResourceRecord, route_path_values
from src.common.status import (
    bound_to,
    condition_true,
    conditions_of,
    first_address,
    route_accepted,
    route_metadata,
)

logger = logging.getLogger(__name__)

DEFAULT_ROUTE_KINDS = ("HTTPRoute",)


class DeploymentVerifier:
    """Reads post-apply gateway and route state into a report. Never raises on cluster errors."""

    def __init__(self, cluster: ClusterClient) -> None:
        self.cluster = cluster

    def verify(
        self,
        target: EnvironmentTarget,
        gateway: str,
        *,
        route_kinds: Sequence[str] = DEFAULT_ROUTE_KINDS,
    ) -> VerificationReport:
        report = VerificationReport(gateway=gateway, namespace=target.namespace)

        resource: Optional[Dict[str, Any]] = None
        try:
            resource = self.cluster.get("Gateway", target.namespace, gateway)
        except ClusterError as exc:
            report.notes.append(f"gateway query failed: {exc}")
        if resource is None and not report.notes:
            report.notes.append("gateway not found on cluster")

        report.conditions = [_condition_summary(c) for c in conditions_of(resource)]
        report.ready = condition_true(conditions_of(resource), target.readiness_condition)
        report.address = first_address(resource)
        if not report.address:
            report.notes.append("address not assigned")

        for kind in route_kinds:
            try:
                routes = self.cluster.list(kind, target.namespace)
            except ClusterError as exc:
                report.notes.append(f"{kind} query failed: {exc}")
                continue
            for route in routes:
                if bound_to(route, gateway, target.namespace):
                    report.routes.append(_route_status(kind, route, gateway, target.namespace))

        logger.info(
            "Gateway %s ready=%s address=%s routes=%d",
            gateway,
            report.ready,
            report.address or "(not assigned)",
            report.route_count,
        )
        return report


def resolve_gateway_name(target: EnvironmentTarget, gateways: Sequence[ResourceRecord]) -> Optional[str]:
    """Gateway configured for the environment, else the first one rendered."""

    if target.gateway:
        return target.gateway
    return gateways[0].name if gateways else None


def route_kinds_of(records: Sequence[ResourceRecord]) -> List[str]:
    kinds: List[str] = []
    for record in records:
        if record.kind not in kinds:
            kinds.append(record.kind)
    return kinds or list(DEFAULT_ROUTE_KINDS)


def _route_status(kind: str, route: Dict[str, Any], gateway: str, namespace: str) -> RouteStatus:
    metadata = route_metadata(route)
    paths: List[str] = []
    try:
        paths = route_path_values(ResourceRecord.from_manifest(route, namespace))
    except StructuralValidationError:
        logger.debug("Could not read paths from %s %s", kind, metadata.get("name"))
    return RouteStatus(
        kind=kind,
        name=str(metadata.get("name", "")),
        namespace=str(metadata.get("namespace") or namespace),
        accepted=route_accepted(route, gateway),
        paths=tuple(paths),
    )


def _condition_summary(condition: Dict[str, Any]) -> Dict[str, Any]:
    return {key: condition.get(key) for key in ("type", "status", "reason", "message") if key in condition}


__all__ = ["DeploymentVerifier", "resolve_gateway_name", "route_kinds_of", "DEFAULT_ROUTE_KINDS"]
