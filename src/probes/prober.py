from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from functools import partial
from typing import Callable, List, Optional, Tuple

import httpx

from src.cluster.client import ClusterClient
from src.common.config import EnvironmentTarget, ProbeTarget
from src.common.errors import ClusterError, ProbeFailure, RolloutCancelled
from src.common.reports import ProbeResult, VerificationReport

logger = logging.getLogger(__name__)

MAX_WORKERS = 8


class HealthProber:
    """Runs the external and internal reachability checks concurrently.

    Each probe is independent: a failure is recorded in its ProbeResult and the
    remaining probes still run.
    """

    def __init__(
        self,
        cluster: ClusterClient,
        *,
        timeout: float = 5.0,
        cancel_event: Optional[threading.Event] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self.cluster = cluster
        self.timeout = timeout
        self.cancel_event = cancel_event if cancel_event is not None else threading.Event()
        self.transport = transport

    def probe(self, target: EnvironmentTarget, report: VerificationReport) -> List[ProbeResult]:
        results: List[ProbeResult] = []
        tasks: List[Tuple[str, Callable[[], str]]] = []

        if report.address:
            url = external_url(target, report.address)
            tasks.append((f"external:{url}", partial(self._probe_external, url, target.domain)))
        else:
            results.append(
                ProbeResult(
                    target="external",
                    succeeded=False,
                    skipped=True,
                    detail="skipped: address not assigned",
                )
            )

        for probe in target.probes:
            tasks.append((probe.label, partial(self._probe_internal, target.namespace, probe)))

        if tasks:
            with ThreadPoolExecutor(max_workers=min(len(tasks), MAX_WORKERS)) as executor:
                futures = [executor.submit(self._run_probe, label, func) for label, func in tasks]
                for future in futures:
                    results.append(future.result())

        if self.cancel_event.is_set():
            raise RolloutCancelled("health probing cancelled")
        for result in results:
            if result.failed:
                logger.warning("Probe %s failed: %s", result.target, result.detail)
        return results

    def _run_probe(self, label: str, func: Callable[[], str]) -> ProbeResult:
        if self.cancel_event.is_set():
            return ProbeResult(target=label, succeeded=False, skipped=True, detail="skipped: rollout cancelled")
        start = time.perf_counter()
        try:
            detail = func()
        except ProbeFailure as exc:
            return ProbeResult(
                target=label,
                succeeded=False,
                latency_ms=int((time.perf_counter() - start) * 1000),
                detail=exc.detail,
            )
        except Exception as exc:  # noqa: BLE001
            logger.warning("Probe %s raised unexpectedly", label, exc_info=True)
            return ProbeResult(
                target=label,
                succeeded=False,
                latency_ms=int((time.perf_counter() - start) * 1000),
                detail=f"{type(exc).__name__}: {exc}",
            )
        return ProbeResult(
            target=label,
            succeeded=True,
            latency_ms=int((time.perf_counter() - start) * 1000),
            detail=detail,
        )

    def _probe_external(self, url: str, host: Optional[str]) -> str:
        headers = {"Host": host} if host else {}
        try:
            with httpx.Client(timeout=self.timeout, transport=self.transport, follow_redirects=False) as client:
                response = client.get(url, headers=headers)
        except httpx.HTTPError as exc:
            raise ProbeFailure(url, f"{type(exc).__name__}: {exc}") from exc
        if response.status_code >= 400:
            raise ProbeFailure(url, f"HTTP {response.status_code}")
        return f"HTTP {response.status_code}"

    def _probe_internal(self, namespace: str, probe: ProbeTarget) -> str:
        try:
            body = self.cluster.proxy_get(namespace, probe.service, probe.port, probe.path, self.timeout)
        except ClusterError as exc:
            raise ProbeFailure(probe.label, str(exc)) from exc
        return f"ok ({len(body)} bytes)"


def external_url(target: EnvironmentTarget, address: str) -> str:
    host = address
    if ":" in host and not host.startswith("["):
        host = f"[{host}]"
    path = target.health_path if target.health_path.startswith("/") else "/" + target.health_path
    return f"{target.external_scheme}://{host}{path}"


__all__ = ["HealthProber", "external_url"]
