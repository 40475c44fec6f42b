from __future__ import annotations

import copy
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import jsonpatch
import yaml

from src.common.config import EnvironmentTarget
from src.common.errors import ConfigError, StructuralValidationError
from src.common.kinds import apply_priority, is_cluster_scoped
from src.common.resources import Identity, ResourceDocument, ResourceRecord, load_yaml_documents


@dataclass(frozen=True)
class OverlayPatch:
    kind: str
    name: str
    namespace: Optional[str] = None
    merge: Optional[Dict[str, Any]] = None
    ops: Optional[List[Dict[str, Any]]] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any], origin: str = "overlay") -> "OverlayPatch":
        target = data.get("target")
        if not isinstance(target, dict) or not target.get("kind") or not target.get("name"):
            raise StructuralValidationError(f"{origin}: patch target needs kind and name")
        merge = data.get("merge")
        ops = data.get("ops")
        if merge is None and ops is None:
            raise StructuralValidationError(f"{origin}: patch for {target['kind']} {target['name']} has no merge or ops")
        if merge is not None and not isinstance(merge, dict):
            raise StructuralValidationError(f"{origin}: merge must be a mapping")
        if ops is not None and not isinstance(ops, list):
            raise StructuralValidationError(f"{origin}: ops must be a list of JSON Patch operations")
        return cls(
            kind=str(target["kind"]),
            name=str(target["name"]),
            namespace=target.get("namespace"),
            merge=merge,
            ops=ops,
        )

    def identity(self, default_namespace: str) -> Identity:
        if is_cluster_scoped(self.kind):
            namespace = ""
        else:
            namespace = self.namespace or default_namespace
        return (self.kind, namespace, self.name)


@dataclass(frozen=True)
class Overlay:
    name: str
    patches: Tuple[OverlayPatch, ...] = ()
    resources: Tuple[Dict[str, Any], ...] = ()


@dataclass(frozen=True)
class ManifestSource:
    """Base manifests plus the named overlays that may be layered on them."""

    base: Tuple[Dict[str, Any], ...] = ()
    overlays: Dict[str, Overlay] = field(default_factory=dict)

    @classmethod
    def from_directory(cls, root: Path) -> "ManifestSource":
        base_dir = root / "base"
        if not base_dir.is_dir():
            raise ConfigError(f"manifest base directory not found: {base_dir}")
        base: List[Dict[str, Any]] = []
        for path in _yaml_files(base_dir):
            for doc in _load_file(path):
                base.append(doc)

        overlays: Dict[str, Overlay] = {}
        overlays_dir = root / "overlays"
        if overlays_dir.is_dir():
            for overlay_dir in sorted(p for p in overlays_dir.iterdir() if p.is_dir()):
                overlays[overlay_dir.name] = _load_overlay(overlay_dir)
        return cls(base=tuple(base), overlays=overlays)


class ManifestRenderer:
    """Composes an environment's resource document from base manifests and overlays."""

    def __init__(self, source: ManifestSource) -> None:
        self.source = source

    def render(self, target: EnvironmentTarget) -> ResourceDocument:
        records: Dict[Identity, ResourceRecord] = {}
        order: List[Identity] = []

        def add(manifest: Dict[str, Any], origin: str) -> None:
            record = ResourceRecord.from_manifest(manifest, target.namespace)
            if record.identity in records:
                raise StructuralValidationError(f"{origin}: duplicate resource {record.describe()}")
            records[record.identity] = record
            order.append(record.identity)

        for manifest in self.source.base:
            add(manifest, "base")

        for overlay_name in target.overlays:
            overlay = self.source.overlays.get(overlay_name)
            if overlay is None:
                raise ConfigError(f"environment '{target.name}' references unknown overlay '{overlay_name}'")
            for manifest in overlay.resources:
                add(manifest, f"overlay {overlay_name}")
            for patch in overlay.patches:
                identity = patch.identity(target.namespace)
                existing = records.get(identity)
                if existing is None:
                    kind, namespace, name = identity
                    where = f"{namespace}/{name}" if namespace else name
                    raise StructuralValidationError(
                        f"overlay {overlay_name}: patch targets {kind} {where} which is not rendered"
                    )
                patched = _apply_patch(existing.to_manifest(), patch, overlay_name)
                updated = ResourceRecord.from_manifest(patched, target.namespace)
                if updated.identity != identity:
                    raise StructuralValidationError(
                        f"overlay {overlay_name}: patch may not change the identity of {existing.describe()}"
                    )
                records[identity] = updated

        ordered = sorted(
            (records[identity] for identity in order),
            key=lambda record: apply_priority(record.kind),
        )
        return ResourceDocument(ordered)


def merge_fields(base: Any, override: Any) -> Any:
    """Field-level override: mappings merge recursively, lists and scalars replace, None deletes."""

    if not isinstance(override, dict) or not isinstance(base, dict):
        return copy.deepcopy(override)
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if value is None:
            merged.pop(key, None)
        elif key in merged:
            merged[key] = merge_fields(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def _apply_patch(manifest: Dict[str, Any], patch: OverlayPatch, overlay_name: str) -> Dict[str, Any]:
    result = manifest
    if patch.merge is not None:
        result = merge_fields(result, patch.merge)
    if patch.ops is not None:
        try:
            result = jsonpatch.apply_patch(result, patch.ops, in_place=False)
        except (jsonpatch.JsonPatchException, jsonpatch.JsonPointerException) as exc:
            raise StructuralValidationError(
                f"overlay {overlay_name}: JSON Patch for {patch.kind} {patch.name} failed: {exc}"
            ) from exc
    return result


def _yaml_files(directory: Path) -> List[Path]:
    return sorted(p for p in directory.iterdir() if p.is_file() and p.suffix in (".yaml", ".yml"))


def _load_file(path: Path) -> List[Dict[str, Any]]:
    try:
        docs = load_yaml_documents(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        raise StructuralValidationError(f"{path}: not valid YAML: {exc}") from exc
    for doc in docs:
        if not isinstance(doc, dict):
            raise StructuralValidationError(f"{path}: every document must be a mapping")
    return docs


def _load_overlay(directory: Path) -> Overlay:
    patches: List[OverlayPatch] = []
    resources: List[Dict[str, Any]] = []
    for path in _yaml_files(directory):
        for doc in _load_file(path):
            if "target" in doc:
                patches.append(OverlayPatch.from_dict(doc, origin=str(path)))
            elif "kind" in doc:
                resources.append(doc)
            else:
                raise StructuralValidationError(f"{path}: document is neither a patch nor a resource")
    return Overlay(name=directory.name, patches=tuple(patches), resources=tuple(resources))


__all__ = [
    "OverlayPatch",
    "Overlay",
    "ManifestSource",
    "ManifestRenderer",
    "merge_fields",
]
