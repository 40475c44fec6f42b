from __future__ import annotations

import json
import logging
import subprocess
from typing import Any, Dict, List, Optional, Sequence

import yaml

from src.common.errors import ClusterError
from src.common.kinds import resource_type

from .client import DRY_RUN_CLIENT, DRY_RUN_SERVER

logger = logging.getLogger(__name__)

_APPLY_STATUSES = ("created", "configured", "unchanged")
DRY_RUN_STRATEGIES = (DRY_RUN_SERVER, DRY_RUN_CLIENT)
_DRY_RUN_SUFFIXES = ("(server dry run)", "(dry run)")


class KubectlClient:
    """Cluster client that shells out to kubectl."""

    def __init__(
        self,
        kubectl_cmd: str = "kubectl",
        *,
        context: Optional[str] = None,
        request_timeout: float = 30.0,
    ) -> None:
        self.kubectl_cmd = kubectl_cmd
        self.context = context
        self.request_timeout = request_timeout

    def get(
        self,
        kind: str,
        namespace: str,
        name: str,
        api_version: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> Optional[Dict[str, Any]]:
        args = ["get", resource_type(kind, api_version), name, "-o", "json"]
        if namespace:
            args.extend(["-n", namespace])
        try:
            output = self._run_command(args, timeout=timeout)
        except ClusterError as exc:
            if exc.not_found:
                return None
            raise
        return _parse_json(output, args)

    def list(self, kind: str, namespace: str, api_version: Optional[str] = None) -> List[Dict[str, Any]]:
        args = ["get", resource_type(kind, api_version), "-o", "json"]
        if namespace:
            args.extend(["-n", namespace])
        data = _parse_json(self._run_command(args), args)
        items = data.get("items")
        return [item for item in items if isinstance(item, dict)] if isinstance(items, list) else []

    def apply(self, manifest: Dict[str, Any], dry_run: bool = False, *, dry_run_strategy: str = DRY_RUN_SERVER) -> str:
        if dry_run_strategy not in DRY_RUN_STRATEGIES:
            raise ValueError(f"unknown dry run strategy {dry_run_strategy!r}")
        args = ["apply", "-f", "-"]
        if dry_run:
            args.append(f"--dry-run={dry_run_strategy}")
        output = self._run_command(args, input_data=yaml.safe_dump(manifest, sort_keys=False))
        return parse_apply_status(output)

    def namespace_exists(self, name: str) -> bool:
        return self.get("Namespace", "", name) is not None

    def create_namespace(self, name: str) -> None:
        try:
            self._run_command(["create", "namespace", name])
        except ClusterError as exc:
            if "AlreadyExists" in exc.stderr:
                logger.debug("Namespace %s appeared concurrently; continuing.", name)
                return
            raise

    def has_capability(self, name: str) -> bool:
        crd = self.get("CustomResourceDefinition", "", name, api_version="apiextensions.k8s.io/v1")
        return crd is not None

    def events(self, namespace: str, name: str) -> List[Dict[str, Any]]:
        args = [
            "get",
            "events",
            "-n",
            namespace,
            "--field-selector",
            f"involvedObject.name={name}",
            "-o",
            "json",
        ]
        data = _parse_json(self._run_command(args), args)
        items = data.get("items")
        return [item for item in items if isinstance(item, dict)] if isinstance(items, list) else []

    def proxy_get(self, namespace: str, service: str, port: int, path: str, timeout: float) -> str:
        if not path.startswith("/"):
            path = "/" + path
        raw = f"/api/v1/namespaces/{namespace}/services/{service}:{port}/proxy{path}"
        seconds = max(1, int(round(timeout)))
        return self._run_command(
            ["get", "--raw", raw, f"--request-timeout={seconds}s"],
            timeout=timeout + 1.0,
        )

    def _run_command(
        self,
        args: Sequence[str],
        input_data: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> str:
        command = [self.kubectl_cmd]
        if self.context:
            command.extend(["--context", self.context])
        command.extend(args)
        limit = timeout if timeout is not None else self.request_timeout
        logger.debug("Running %s", " ".join(command))
        try:
            completed = subprocess.run(
                command,
                input=input_data.encode("utf-8") if input_data is not None else None,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                check=True,
                timeout=limit,
            )
        except FileNotFoundError as exc:
            raise ClusterError(f"{self.kubectl_cmd} executable not found", command) from exc
        except subprocess.TimeoutExpired as exc:
            raise ClusterError(f"kubectl timed out after {limit:g}s", command) from exc
        except subprocess.CalledProcessError as exc:
            stderr = (exc.stderr or b"").decode("utf-8", errors="ignore").strip()
            stdout = (exc.stdout or b"").decode("utf-8", errors="ignore").strip()
            detail = stderr or stdout or str(exc)
            raise ClusterError(detail, command, stderr) from exc
        return completed.stdout.decode("utf-8", errors="ignore")


def parse_apply_status(output: str) -> str:
    """Map kubectl apply output such as ``gateway.x/public configured`` to a status."""

    lines = [line.strip() for line in output.strip().splitlines() if line.strip()]
    if not lines:
        return "configured"
    line = lines[-1]
    for suffix in _DRY_RUN_SUFFIXES:
        if line.endswith(suffix):
            line = line[: -len(suffix)].strip()
    status = line.rsplit(" ", 1)[-1]
    return status if status in _APPLY_STATUSES else "configured"


def _parse_json(output: str, args: Sequence[str]) -> Dict[str, Any]:
    try:
        data = json.loads(output)
    except json.JSONDecodeError as exc:
        raise ClusterError(f"kubectl {' '.join(args)} returned invalid JSON: {exc}", list(args)) from exc
    if not isinstance(data, dict):
        raise ClusterError(f"kubectl {' '.join(args)} returned a non-object", list(args))
    return data


__all__ = ["KubectlClient", "DRY_RUN_STRATEGIES", "parse_apply_status"]
