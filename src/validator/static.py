from __future__ import annotations

from typing import List, Set

from src.common.config import EnvironmentTarget
from src.common.errors import StructuralValidationError
from src.common.reports import Finding, ValidationReport
from src.common.resources import (
    ResourceDocument,
    ResourceRecord,
    normalise_path,
    route_backend_names,
    route_path_values,
)

_PATH_MATCH_TYPES = {"PathPrefix", "Exact"}


class StaticValidator:
    """Offline structural checks on a rendered document; every finding is blocking."""

    def validate(self, document: ResourceDocument, target: EnvironmentTarget) -> ValidationReport:
        report = ValidationReport()
        gateways = document.gateways
        routes = document.routes

        if not gateways:
            report.add(Finding.structural("gateway_required", "gateway record required"))
        if not routes:
            report.add(Finding.structural("route_required", "route record required"))

        for record in document:
            if not isinstance(record.api_version, str) or not record.api_version.strip():
                report.add(
                    Finding.structural("api_version_missing", "apiVersion missing", resource=record.describe())
                )

        gateway_names = {g.name for g in gateways}
        if target.gateway and gateways and target.gateway not in gateway_names:
            report.add(
                Finding.structural("gateway_unknown", f"environment gateway '{target.gateway}' is not rendered")
            )
        for gateway in gateways:
            self._check_gateway(gateway, report)
        for route in routes:
            self._check_route(route, gateway_names, report)

        if routes:
            self._check_required_paths(routes, target, report)
            self._check_backends(routes, target, report)
        return report

    def _check_gateway(self, gateway: ResourceRecord, report: ValidationReport) -> None:
        listeners = gateway.spec.get("listeners")
        if not isinstance(listeners, list) or not listeners:
            report.add(
                Finding.structural("gateway_listeners", "gateway declares no listeners", resource=gateway.describe())
            )
            return
        for index, listener in enumerate(listeners):
            if not isinstance(listener, dict):
                report.add(
                    Finding.structural(
                        "gateway_listeners", f"listener {index} must be a mapping", resource=gateway.describe()
                    )
                )
                continue
            missing = [key for key in ("name", "port", "protocol") if not listener.get(key)]
            if missing:
                report.add(
                    Finding.structural(
                        "gateway_listeners",
                        f"listener {listener.get('name', index)} missing {', '.join(missing)}",
                        resource=gateway.describe(),
                    )
                )
            elif not isinstance(listener.get("port"), int):
                report.add(
                    Finding.structural(
                        "gateway_listeners",
                        f"listener {listener['name']} port must be an integer",
                        resource=gateway.describe(),
                    )
                )

    def _check_route(self, route: ResourceRecord, gateway_names: Set[str], report: ValidationReport) -> None:
        resource = route.describe()
        parent_refs = route.spec.get("parentRefs")
        if not isinstance(parent_refs, list) or not parent_refs:
            report.add(Finding.structural("route_parent", "route declares no parentRefs", resource=resource))
        else:
            for ref in parent_refs:
                name = ref.get("name") if isinstance(ref, dict) else None
                if not name:
                    report.add(Finding.structural("route_parent", "parentRef missing name", resource=resource))
                elif gateway_names and name not in gateway_names:
                    report.add(
                        Finding.structural(
                            "route_parent", f"parentRef references unknown gateway '{name}'", resource=resource
                        )
                    )

        rules = route.spec.get("rules")
        if not isinstance(rules, list) or not rules:
            report.add(Finding.structural("route_rules", "route declares no rules", resource=resource))
            return
        for index, rule in enumerate(rules):
            if not isinstance(rule, dict):
                report.add(Finding.structural("route_rules", f"rule {index} must be a mapping", resource=resource))
                continue
            refs = rule.get("backendRefs")
            if not isinstance(refs, list) or not refs:
                report.add(
                    Finding.structural("route_backends", f"rule {index} has no backendRefs", resource=resource)
                )
            elif any(not isinstance(ref, dict) or not ref.get("name") for ref in refs):
                report.add(
                    Finding.structural("route_backends", f"rule {index} has a backendRef without name", resource=resource)
                )
            for match in rule.get("matches") or []:
                path = match.get("path") if isinstance(match, dict) else None
                if not isinstance(path, dict):
                    continue
                if path.get("type", "PathPrefix") not in _PATH_MATCH_TYPES:
                    report.add(
                        Finding.structural(
                            "route_paths",
                            f"unsupported path match type {path.get('type')}",
                            resource=resource,
                        )
                    )
                value = path.get("value")
                if not isinstance(value, str) or not value.startswith("/"):
                    report.add(
                        Finding.structural("route_paths", f"path value {value!r} must start with '/'", resource=resource)
                    )

    def _check_required_paths(
        self, routes: List[ResourceRecord], target: EnvironmentTarget, report: ValidationReport
    ) -> None:
        declared = declared_paths(routes)
        for required in target.required_paths:
            if normalise_path(required) not in declared:
                report.add(
                    Finding.structural(
                        "required_path_missing",
                        f"no route declares required path prefix {required}",
                    )
                )

    def _check_backends(
        self, routes: List[ResourceRecord], target: EnvironmentTarget, report: ValidationReport
    ) -> None:
        allowed = set(target.allowed_backends)
        for route in routes:
            for backend in route_backend_names(route):
                if backend not in allowed:
                    report.add(
                        Finding.structural(
                            "backend_not_allowed",
                            f"backend '{backend}' is not in the allow-list for {target.name}",
                            resource=route.describe(),
                        )
                    )


def declared_paths(routes: List[ResourceRecord]) -> Set[str]:
    return {normalise_path(path) for route in routes for path in route_path_values(route)}


def raise_for_blocking(report: ValidationReport) -> None:
    blocking = report.blocking
    if blocking:
        summary = "; ".join(finding.message for finding in blocking)
        raise StructuralValidationError(f"structural validation failed: {summary}", findings=blocking)


__all__ = ["StaticValidator", "declared_paths", "raise_for_blocking"]
