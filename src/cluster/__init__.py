"""Cluster package wrapping control-plane access for the rollout stages."""

from .client import DRY_RUN_CLIENT, DRY_RUN_SERVER, CapabilityQuery, ClusterClient, StaticCapabilities
from .kubectl import KubectlClient, parse_apply_status

__all__ = [
    "DRY_RUN_CLIENT",
    "DRY_RUN_SERVER",
    "CapabilityQuery",
    "ClusterClient",
    "StaticCapabilities",
    "KubectlClient",
    "parse_apply_status",
]
