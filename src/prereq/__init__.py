"""Prerequisite package checking cluster capability declarations before apply."""

from .checker import PrerequisiteChecker

__all__ = ["PrerequisiteChecker"]
