"""Rollout package composing the stages into one orchestrated run per environment."""

from .orchestrator import STAGES, RolloutOrchestrator

__all__ = ["RolloutOrchestrator", "STAGES"]
