"""Verifier package reporting observed post-apply gateway and route state."""

from .verifier import DeploymentVerifier, resolve_gateway_name, route_kinds_of

__all__ = ["DeploymentVerifier", "resolve_gateway_name", "route_kinds_of"]
