"""Helpers for reading status conditions off cluster objects."""

from __future__ import annotations

from typing import Any, Dict, List, Optional


def conditions_of(resource: Optional[Dict[str, Any]]) -> List[Dict[str, Any]]:
    if not isinstance(resource, dict):
        return []
    status = resource.get("status")
    conditions = status.get("conditions") if isinstance(status, dict) else None
    if not isinstance(conditions, list):
        return []
    return [c for c in conditions if isinstance(c, dict)]


def condition_true(conditions: List[Dict[str, Any]], condition_type: str) -> bool:
    for condition in conditions:
        if condition.get("type") == condition_type:
            return str(condition.get("status")) == "True"
    return False


def first_address(resource: Optional[Dict[str, Any]]) -> Optional[str]:
    if not isinstance(resource, dict):
        return None
    status = resource.get("status")
    addresses = status.get("addresses") if isinstance(status, dict) else None
    if not isinstance(addresses, list):
        return None
    for entry in addresses:
        value = entry.get("value") if isinstance(entry, dict) else None
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def parent_refs(route: Dict[str, Any]) -> List[Dict[str, Any]]:
    spec = route.get("spec")
    refs = spec.get("parentRefs") if isinstance(spec, dict) else None
    if not isinstance(refs, list):
        return []
    return [ref for ref in refs if isinstance(ref, dict)]


def route_metadata(route: Dict[str, Any]) -> Dict[str, Any]:
    metadata = route.get("metadata")
    return metadata if isinstance(metadata, dict) else {}


def bound_to(route: Dict[str, Any], gateway: str, gateway_namespace: str) -> bool:
    """True when one of the route's parentRefs names the gateway."""

    route_ns = route_metadata(route).get("namespace") or gateway_namespace
    for ref in parent_refs(route):
        if ref.get("name") != gateway:
            continue
        if (ref.get("namespace") or route_ns) == gateway_namespace:
            return True
    return False


def route_accepted(route: Dict[str, Any], gateway: str) -> Optional[bool]:
    """Acceptance reported by the gateway's controller; None when not reported yet."""

    status = route.get("status")
    parents = status.get("parents") if isinstance(status, dict) else None
    if not isinstance(parents, list):
        return None
    for parent in parents:
        if not isinstance(parent, dict):
            continue
        ref = parent.get("parentRef")
        if isinstance(ref, dict) and ref.get("name") != gateway:
            continue
        conditions = parent.get("conditions")
        if not isinstance(conditions, list):
            continue
        for condition in conditions:
            if isinstance(condition, dict) and condition.get("type") == "Accepted":
                return str(condition.get("status")) == "True"
    return None


__all__ = [
    "conditions_of",
    "condition_true",
    "first_address",
    "parent_refs",
    "route_metadata",
    "bound_to",
    "route_accepted",
]
