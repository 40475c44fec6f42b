"""Renderer package composing environment resource documents from base manifests and overlays."""

from .renderer import ManifestRenderer, ManifestSource, Overlay, OverlayPatch

__all__ = ["ManifestRenderer", "ManifestSource", "Overlay", "OverlayPatch"]
