"""Probes package issuing post-rollout reachability checks."""

from .prober import HealthProber, external_url

__all__ = ["HealthProber", "external_url"]
