"""Resource records and the ordered document a rollout renders and applies."""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

import yaml

from .errors import StructuralValidationError
from .kinds import GATEWAY, ROUTE, is_cluster_scoped, kind_family

Identity = Tuple[str, str, str]


@dataclass(frozen=True)
class ResourceRecord:
    kind: str
    name: str
    namespace: str
    body: Dict[str, Any] = field(compare=True, repr=False)

    @classmethod
    def from_manifest(cls, manifest: Any, default_namespace: str = "") -> "ResourceRecord":
        if not isinstance(manifest, dict):
            raise StructuralValidationError("resource manifest must be a mapping")
        kind = manifest.get("kind")
        if not isinstance(kind, str) or not kind.strip():
            raise StructuralValidationError("resource manifest missing kind")
        metadata = manifest.get("metadata")
        if not isinstance(metadata, dict):
            raise StructuralValidationError(f"{kind} manifest missing metadata")
        name = metadata.get("name")
        if not isinstance(name, str) or not name.strip():
            raise StructuralValidationError(f"{kind} manifest missing metadata.name")

        body = copy.deepcopy(manifest)
        if is_cluster_scoped(kind):
            namespace = ""
            body["metadata"].pop("namespace", None)
        else:
            namespace = metadata.get("namespace") or default_namespace
            if namespace:
                body["metadata"]["namespace"] = namespace
        return cls(kind=kind, name=name, namespace=namespace, body=body)

    @property
    def identity(self) -> Identity:
        return (self.kind, self.namespace, self.name)

    @property
    def family(self) -> str:
        return kind_family(self.kind)

    @property
    def api_version(self) -> Optional[str]:
        return self.body.get("apiVersion")

    @property
    def spec(self) -> Dict[str, Any]:
        spec = self.body.get("spec")
        return spec if isinstance(spec, dict) else {}

    def to_manifest(self) -> Dict[str, Any]:
        return copy.deepcopy(self.body)

    def describe(self) -> str:
        where = f"{self.namespace}/{self.name}" if self.namespace else self.name
        return f"{self.kind} {where}"


class ResourceDocument:
    """Ordered, identity-unique sequence of resource records."""

    def __init__(self, records: Iterable[ResourceRecord] = ()) -> None:
        self._records: Tuple[ResourceRecord, ...] = tuple(records)
        seen = set()
        for record in self._records:
            if record.identity in seen:
                raise StructuralValidationError(
                    f"duplicate resource identity {record.describe()} in document"
                )
            seen.add(record.identity)

    @classmethod
    def from_yaml(cls, text: str, default_namespace: str = "") -> "ResourceDocument":
        return cls(
            ResourceRecord.from_manifest(doc, default_namespace)
            for doc in load_yaml_documents(text)
        )

    def __iter__(self) -> Iterator[ResourceRecord]:
        return iter(self._records)

    def __len__(self) -> int:
        return len(self._records)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ResourceDocument):
            return NotImplemented
        return self._records == other._records

    def get(self, identity: Identity) -> Optional[ResourceRecord]:
        for record in self._records:
            if record.identity == identity:
                return record
        return None

    def of_family(self, family: str) -> List[ResourceRecord]:
        return [record for record in self._records if record.family == family]

    @property
    def gateways(self) -> List[ResourceRecord]:
        return self.of_family(GATEWAY)

    @property
    def routes(self) -> List[ResourceRecord]:
        return self.of_family(ROUTE)

    def to_manifests(self) -> List[Dict[str, Any]]:
        return [record.to_manifest() for record in self._records]

    def to_yaml(self) -> str:
        return dump_yaml_documents(self.to_manifests())


def load_yaml_documents(manifest_yaml: str) -> List[Any]:
    docs = []
    for doc in yaml.safe_load_all(manifest_yaml):
        if doc is not None and doc != "":
            docs.append(doc)
    return docs


def dump_yaml_documents(docs: Sequence[Any]) -> str:
    return yaml.safe_dump_all(
        docs,
        sort_keys=False,
        explicit_start=len(docs) > 1,
    )


def route_path_values(record: ResourceRecord) -> List[str]:
    """Path match values declared by a route record, in declaration order."""

    paths: List[str] = []
    rules = record.spec.get("rules")
    if not isinstance(rules, list):
        return paths
    for rule in rules:
        if not isinstance(rule, dict):
            continue
        matches = rule.get("matches")
        if not isinstance(matches, list):
            continue
        for match in matches:
            path = match.get("path") if isinstance(match, dict) else None
            value = path.get("value") if isinstance(path, dict) else None
            if isinstance(value, str):
                paths.append(value)
    return paths


def route_backend_names(record: ResourceRecord) -> List[str]:
    names: List[str] = []
    rules = record.spec.get("rules")
    if not isinstance(rules, list):
        return names
    for rule in rules:
        refs = rule.get("backendRefs") if isinstance(rule, dict) else None
        if not isinstance(refs, list):
            continue
        for ref in refs:
            name = ref.get("name") if isinstance(ref, dict) else None
            if isinstance(name, str):
                names.append(name)
    return names


def normalise_path(path: str) -> str:
    stripped = path.strip()
    if len(stripped) > 1:
        stripped = stripped.rstrip("/")
    return stripped or "/"


__all__ = [
    "Identity",
    "ResourceRecord",
    "ResourceDocument",
    "load_yaml_documents",
    "dump_yaml_documents",
    "route_path_values",
    "route_backend_names",
    "normalise_path",
]
