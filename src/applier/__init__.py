"""Applier package reconciling rendered documents onto the cluster."""

from .engine import ApplyEngine

__all__ = ["ApplyEngine"]
