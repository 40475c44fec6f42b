"""Shared helpers for mapping resource kinds to families, apply order and CRD names."""

from __future__ import annotations

from functools import lru_cache
from typing import Optional, Tuple


GATEWAY = "gateway"
ROUTE = "route"
NAMESPACE = "namespace"
POLICY = "policy"
IDENTITY_BINDING = "identity-binding"
OTHER = "other"

_KIND_FAMILY_MAP = {
    # Gateway API
    "gateway": GATEWAY,
    "httproute": ROUTE,
    "grpcroute": ROUTE,
    "tlsroute": ROUTE,
    "tcproute": ROUTE,
    "udproute": ROUTE,
    # Namespaces
    "namespace": NAMESPACE,
    # Access control / security policy
    "securitypolicy": POLICY,
    "authorizationpolicy": POLICY,
    "networkpolicy": POLICY,
    "backendtlspolicy": POLICY,
    "clienttrafficpolicy": POLICY,
    "peerauthentication": POLICY,
    # Workload identity and RBAC
    "serviceaccount": IDENTITY_BINDING,
    "role": IDENTITY_BINDING,
    "rolebinding": IDENTITY_BINDING,
    "clusterrole": IDENTITY_BINDING,
    "clusterrolebinding": IDENTITY_BINDING,
}

CLUSTER_SCOPED_KINDS = frozenset(
    {
        "namespace",
        "gatewayclass",
        "clusterrole",
        "clusterrolebinding",
        "customresourcedefinition",
    }
)

# Lower score = applied earlier so prerequisites exist before dependents
_APPLY_PRIORITY = {
    "namespace": 0,
    "customresourcedefinition": 0,
    "gatewayclass": 1,
    "serviceaccount": 1,
    "clusterrole": 1,
    "clusterrolebinding": 2,
    "role": 2,
    "rolebinding": 2,
    "configmap": 3,
    "secret": 3,
    "service": 3,
    "deployment": 4,
    "gateway": 4,
    "referencegrant": 5,
}
_FAMILY_PRIORITY = {ROUTE: 5, POLICY: 6}
_DEFAULT_PRIORITY = 4

# API groups served by the API server itself; anything else is backed by a CRD
BUILTIN_GROUPS = frozenset(
    {
        "",
        "apps",
        "batch",
        "autoscaling",
        "policy",
        "networking.k8s.io",
        "rbac.authorization.k8s.io",
        "apiextensions.k8s.io",
        "admissionregistration.k8s.io",
        "coordination.k8s.io",
        "discovery.k8s.io",
        "storage.k8s.io",
        "scheduling.k8s.io",
        "certificates.k8s.io",
        "events.k8s.io",
        "node.k8s.io",
    }
)

GATEWAY_API_GROUP = "gateway.networking.k8s.io"


@lru_cache(maxsize=None)
def kind_family(kind: Optional[str]) -> str:
    """Map a manifest kind to its rollout family."""

    key = (kind or "").strip().lower()
    return _KIND_FAMILY_MAP.get(key, OTHER)


def is_cluster_scoped(kind: Optional[str]) -> bool:
    return (kind or "").strip().lower() in CLUSTER_SCOPED_KINDS


def apply_priority(kind: Optional[str]) -> int:
    key = (kind or "").strip().lower()
    if key in _APPLY_PRIORITY:
        return _APPLY_PRIORITY[key]
    return _FAMILY_PRIORITY.get(kind_family(key), _DEFAULT_PRIORITY)


def split_api_version(api_version: Optional[str]) -> Tuple[str, str]:
    """Return ``(group, version)``; the core group is the empty string."""

    value = (api_version or "").strip()
    if "/" not in value:
        return "", value
    group, version = value.rsplit("/", 1)
    return group, version


def plural(kind: str) -> str:
    lowered = kind.lower()
    if lowered.endswith("y") and not lowered.endswith(("ay", "ey", "oy", "uy")):
        return lowered[:-1] + "ies"
    if lowered.endswith(("s", "x", "ch", "sh")):
        return lowered + "es"
    return lowered + "s"


def required_capability(kind: str, api_version: Optional[str]) -> Optional[str]:
    """Name of the CustomResourceDefinition a kind needs, or None for built-in kinds."""

    group, _ = split_api_version(api_version)
    if group in BUILTIN_GROUPS:
        return None
    return f"{plural(kind)}.{group}"


def resource_type(kind: str, api_version: Optional[str] = None) -> str:
    """Resource argument understood by kubectl, fully qualified for CRD kinds."""

    group, _ = split_api_version(api_version)
    if not group and kind_family(kind) in (GATEWAY, ROUTE):
        group = GATEWAY_API_GROUP
    if group in BUILTIN_GROUPS:
        return plural(kind)
    return f"{plural(kind)}.{group}"


__all__ = [
    "GATEWAY",
    "ROUTE",
    "NAMESPACE",
    "POLICY",
    "IDENTITY_BINDING",
    "OTHER",
    "BUILTIN_GROUPS",
    "GATEWAY_API_GROUP",
    "kind_family",
    "is_cluster_scoped",
    "apply_priority",
    "split_api_version",
    "plural",
    "required_capability",
    "resource_type",
]
