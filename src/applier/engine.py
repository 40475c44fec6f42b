from __future__ import annotations

import logging
from typing import Optional

from src.cluster.client import DRY_RUN_CLIENT, DRY_RUN_SERVER, ClusterClient
from src.common.config import EnvironmentTarget
from src.common.errors import ApplyFailure, ClusterError
from src.common.kinds import GATEWAY, ROUTE
from src.common.reports import APPLY_FAILED, ApplyReport, ApplyResult
from src.common.resources import ResourceDocument, ResourceRecord

logger = logging.getLogger(__name__)

REQUIRED_FAMILIES = (GATEWAY, ROUTE)


class ApplyEngine:
    """Reconciles cluster state to the rendered document, one record at a time."""

    def __init__(self, cluster: ClusterClient, *, dry_run: bool = False) -> None:
        self.cluster = cluster
        self.dry_run = dry_run

    def apply(self, document: ResourceDocument, target: EnvironmentTarget) -> ApplyReport:
        report = ApplyReport(namespace=target.namespace, dry_run=self.dry_run)
        report.namespace_created = self.ensure_namespace(target.namespace)
        if self.dry_run:
            report.dry_run_strategy = self.dry_run_strategy(target.namespace)

        for record in document:
            try:
                status = self._apply_record(record, report.dry_run_strategy)
            except ApplyFailure as exc:
                logger.error("Apply failed for %s: %s", record.describe(), exc.reason)
                report.results.append(
                    ApplyResult(
                        identity=record.identity,
                        status=APPLY_FAILED,
                        error=exc.reason,
                        required=record.family in REQUIRED_FAMILIES,
                    )
                )
                continue
            logger.info("%s %s", record.describe(), status)
            report.results.append(
                ApplyResult(
                    identity=record.identity,
                    status=status,
                    required=record.family in REQUIRED_FAMILIES,
                )
            )
        return report

    def ensure_namespace(self, namespace: str) -> bool:
        """Create the target namespace when absent. Returns True if it was created."""

        try:
            if self.cluster.namespace_exists(namespace):
                return False
            if self.dry_run:
                logger.info("Namespace %s would be created (dry run)", namespace)
                return False
            self.cluster.create_namespace(namespace)
        except ClusterError as exc:
            raise ApplyFailure(("Namespace", "", namespace), str(exc)) from exc
        logger.info("Created namespace %s", namespace)
        return True

    def dry_run_strategy(self, namespace: str) -> str:
        """Server-side dry run when the namespace exists, client-side otherwise.

        The API server rejects a server-side dry run of a namespaced object whose
        namespace does not exist yet, which is the normal state before a first rollout.
        """

        try:
            present = self.cluster.namespace_exists(namespace)
        except ClusterError as exc:
            raise ApplyFailure(("Namespace", "", namespace), str(exc)) from exc
        if present:
            return DRY_RUN_SERVER
        logger.info("Namespace %s does not exist yet; records are checked with a client-side dry run", namespace)
        return DRY_RUN_CLIENT

    def _apply_record(self, record: ResourceRecord, strategy: Optional[str]) -> str:
        try:
            return self.cluster.apply(
                record.to_manifest(),
                dry_run=self.dry_run,
                dry_run_strategy=strategy or DRY_RUN_SERVER,
            )
        except ClusterError as exc:
            raise ApplyFailure(record.identity, str(exc)) from exc


__all__ = ["ApplyEngine", "REQUIRED_FAMILIES"]
