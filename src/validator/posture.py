from __future__ import annotations

from typing import Any, Dict

from src.common.config import EnvironmentTarget
from src.common.kinds import IDENTITY_BINDING, POLICY
from src.common.reports import Finding, ValidationReport
from src.common.resources import ResourceDocument

_ENCRYPTED_PROTOCOLS = {"HTTPS", "TLS"}

TRANSPORT_ENCRYPTION = "transport_encryption"
SECURITY_POLICY = "security_policy"
IDENTITY_BINDINGS = "identity_binding"
NAMESPACE_ISOLATION = "namespace_isolation"

_ABSENT_MESSAGES = {
    TRANSPORT_ENCRYPTION: "no gateway listener configures TLS; traffic will be served unencrypted",
    SECURITY_POLICY: "no access-control or security policy record in the document",
    IDENTITY_BINDINGS: "no service identity or role binding records in the document",
}


class PostureAuditor:
    """Surfaces security posture for human review. Never produces a blocking finding."""

    def classify(self, document: ResourceDocument, target: EnvironmentTarget) -> Dict[str, bool]:
        return {
            TRANSPORT_ENCRYPTION: self._has_transport_encryption(document),
            SECURITY_POLICY: bool(document.of_family(POLICY)),
            IDENTITY_BINDINGS: bool(document.of_family(IDENTITY_BINDING)),
            NAMESPACE_ISOLATION: all(
                not record.namespace or record.namespace == target.namespace for record in document
            ),
        }

    def audit(self, document: ResourceDocument, target: EnvironmentTarget) -> ValidationReport:
        report = ValidationReport()
        posture = self.classify(document, target)

        for check, message in _ABSENT_MESSAGES.items():
            if not posture[check]:
                report.add(Finding.posture(f"{check}_absent", message))

        if not posture[NAMESPACE_ISOLATION]:
            for record in document:
                if record.namespace and record.namespace != target.namespace:
                    report.add(
                        Finding.posture(
                            f"{NAMESPACE_ISOLATION}_absent",
                            f"namespace {record.namespace} differs from target namespace {target.namespace}",
                            resource=record.describe(),
                        )
                    )
        return report

    @staticmethod
    def _has_transport_encryption(document: ResourceDocument) -> bool:
        for gateway in document.gateways:
            listeners = gateway.spec.get("listeners")
            if not isinstance(listeners, list):
                continue
            if any(_listener_encrypted(listener) for listener in listeners):
                return True
        return False


def _listener_encrypted(listener: Any) -> bool:
    if not isinstance(listener, dict):
        return False
    tls = listener.get("tls")
    if isinstance(tls, dict) and tls:
        return True
    protocol = listener.get("protocol")
    return isinstance(protocol, str) and protocol.upper() in _ENCRYPTED_PROTOCOLS


__all__ = [
    "PostureAuditor",
    "TRANSPORT_ENCRYPTION",
    "SECURITY_POLICY",
    "IDENTITY_BINDINGS",
    "NAMESPACE_ISOLATION",
]
