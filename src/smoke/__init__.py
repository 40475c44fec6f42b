"""Smoke package confirming routing rules are wired on the live cluster."""

from .auditor import SmokeAuditor

__all__ = ["SmokeAuditor"]
