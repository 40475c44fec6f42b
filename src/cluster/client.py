from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional, Protocol

# kubectl --dry-run modes; server-side needs the target namespace to exist
DRY_RUN_SERVER = "server"
DRY_RUN_CLIENT = "client"


class CapabilityQuery(Protocol):
    def has_capability(self, name: str) -> bool:
        ...


class ClusterClient(CapabilityQuery, Protocol):
    """Operations the rollout needs from the cluster control plane."""

    def get(
        self,
        kind: str,
        namespace: str,
        name: str,
        api_version: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> Optional[Dict[str, Any]]:
        ...

    def list(self, kind: str, namespace: str, api_version: Optional[str] = None) -> List[Dict[str, Any]]:
        ...

    def apply(self, manifest: Dict[str, Any], dry_run: bool = False, *, dry_run_strategy: str = DRY_RUN_SERVER) -> str:
        ...

    def namespace_exists(self, name: str) -> bool:
        ...

    def create_namespace(self, name: str) -> None:
        ...

    def events(self, namespace: str, name: str) -> List[Dict[str, Any]]:
        ...

    def proxy_get(self, namespace: str, service: str, port: int, path: str, timeout: float) -> str:
        ...


class StaticCapabilities:
    """Capability query answered from a configured allow-list instead of the cluster."""

    def __init__(self, names: Iterable[str]) -> None:
        self.names = frozenset(names)

    def has_capability(self, name: str) -> bool:
        return name in self.names


__all__ = ["DRY_RUN_SERVER", "DRY_RUN_CLIENT", "CapabilityQuery", "ClusterClient", "StaticCapabilities"]
