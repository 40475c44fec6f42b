from __future__ import annotations

import logging
from typing import Dict, List

from src.cluster.client import CapabilityQuery
from src.common.config import EnvironmentTarget
from src.common.errors import ClusterError, PrerequisiteMissing
from src.common.kinds import required_capability
from src.common.resources import ResourceDocument

logger = logging.getLogger(__name__)


class PrerequisiteChecker:
    """Confirms the cluster declares every CRD the document's kinds depend on.

    The checker never installs anything: cluster-wide definitions are shared
    state outside the rollout's ownership, so a gap is reported to the operator.
    """

    def __init__(self, capabilities: CapabilityQuery) -> None:
        self.capabilities = capabilities

    def required(self, document: ResourceDocument) -> Dict[str, str]:
        """Capability name -> first kind that needs it, in document order."""

        needed: Dict[str, str] = {}
        for record in document:
            capability = required_capability(record.kind, record.api_version)
            if capability and capability not in needed:
                needed[capability] = record.kind
        return needed

    def check(self, document: ResourceDocument, target: EnvironmentTarget) -> List[str]:
        needed = self.required(document)
        for capability, kind in needed.items():
            try:
                present = self.capabilities.has_capability(capability)
            except ClusterError as exc:
                raise PrerequisiteMissing(
                    capability,
                    f"could not confirm it on cluster {target.cluster or '(current context)'} ({exc}); "
                    "check cluster access and retry",
                ) from exc
            if not present:
                raise PrerequisiteMissing(
                    capability,
                    f"install the CustomResourceDefinition providing {kind} on cluster "
                    f"{target.cluster or '(current context)'} before rolling out {target.name}",
                )
            logger.debug("Capability %s present", capability)
        return list(needed)


__all__ = ["PrerequisiteChecker"]
