"""Loading rollout environments from the YAML configuration file."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml

from .errors import ConfigError
from .resources import normalise_path

DEFAULT_CONFIG_PATH = Path("configs/rollout.yaml")
DEFAULT_READINESS_CONDITION = "Programmed"
DEFAULT_READINESS_TIMEOUT = 300.0
DEFAULT_POLL_INTERVAL = 5.0
DEFAULT_PROBE_TIMEOUT = 5.0


@dataclass(frozen=True)
class ProbeTarget:
    service: str
    path: str = "/"
    port: int = 80

    @property
    def label(self) -> str:
        return f"internal:{self.service}:{self.port}{self.path}"


@dataclass(frozen=True)
class EnvironmentTarget:
    name: str
    namespace: str
    cluster: Optional[str] = None
    domain: Optional[str] = None
    overlays: Tuple[str, ...] = ()
    gateway: Optional[str] = None
    required_paths: Tuple[str, ...] = ()
    allowed_backends: Tuple[str, ...] = ()
    probes: Tuple[ProbeTarget, ...] = ()
    capabilities: Optional[Tuple[str, ...]] = None
    readiness_condition: str = DEFAULT_READINESS_CONDITION
    readiness_timeout: float = DEFAULT_READINESS_TIMEOUT
    poll_interval: float = DEFAULT_POLL_INTERVAL
    probe_timeout: float = DEFAULT_PROBE_TIMEOUT
    external_scheme: str = "http"
    health_path: str = "/"

    @classmethod
    def from_dict(cls, name: str, data: Dict[str, Any]) -> "EnvironmentTarget":
        if not isinstance(data, dict):
            raise ConfigError(f"environment '{name}' must be a mapping")
        namespace = data.get("namespace")
        if not isinstance(namespace, str) or not namespace.strip():
            raise ConfigError(f"environment '{name}' missing namespace")

        readiness = data.get("readiness") or {}
        if not isinstance(readiness, dict):
            raise ConfigError(f"environment '{name}': readiness must be a mapping")

        probes: List[ProbeTarget] = []
        for entry in data.get("probes") or []:
            if not isinstance(entry, dict) or not entry.get("service"):
                raise ConfigError(f"environment '{name}': each probe needs a service")
            probes.append(
                ProbeTarget(
                    service=str(entry["service"]),
                    path=str(entry.get("path", "/")),
                    port=_as_int(entry.get("port", 80), f"{name}.probes.port"),
                )
            )

        capabilities = data.get("capabilities")
        if capabilities is not None:
            capabilities = tuple(_string_list(capabilities, f"{name}.capabilities"))

        scheme = str(data.get("external_scheme", "http")).lower()
        if scheme not in {"http", "https"}:
            raise ConfigError(f"environment '{name}': external_scheme must be http or https")

        return cls(
            name=name,
            namespace=namespace.strip(),
            cluster=data.get("cluster"),
            domain=data.get("domain"),
            overlays=tuple(_string_list(data.get("overlays"), f"{name}.overlays")),
            gateway=data.get("gateway"),
            required_paths=tuple(
                normalise_path(p) for p in _string_list(data.get("required_paths"), f"{name}.required_paths")
            ),
            allowed_backends=tuple(_string_list(data.get("allowed_backends"), f"{name}.allowed_backends")),
            probes=tuple(probes),
            capabilities=capabilities,
            readiness_condition=str(readiness.get("condition", DEFAULT_READINESS_CONDITION)),
            readiness_timeout=_as_float(
                readiness.get("timeout_seconds", DEFAULT_READINESS_TIMEOUT), f"{name}.readiness.timeout_seconds"
            ),
            poll_interval=_as_float(
                readiness.get("interval_seconds", DEFAULT_POLL_INTERVAL), f"{name}.readiness.interval_seconds"
            ),
            probe_timeout=_as_float(
                data.get("probe_timeout_seconds", DEFAULT_PROBE_TIMEOUT), f"{name}.probe_timeout_seconds"
            ),
            external_scheme=scheme,
            health_path=str(data.get("health_path", "/")),
        )


@dataclass(frozen=True)
class RolloutConfig:
    path: Path
    manifests_dir: Path
    environments: Dict[str, EnvironmentTarget] = field(default_factory=dict)

    def environment(self, name: str) -> EnvironmentTarget:
        try:
            return self.environments[name]
        except KeyError:
            known = ", ".join(sorted(self.environments)) or "(none)"
            raise ConfigError(f"unknown environment '{name}' (known: {known})") from None


def resolve_config_path(path: Optional[Path] = None) -> Path:
    if path is not None:
        return path
    return Path(os.getenv("ROLLOUT_CONFIG", str(DEFAULT_CONFIG_PATH)))


def load_config(path: Optional[Path] = None) -> RolloutConfig:
    config_path = resolve_config_path(path)
    try:
        with config_path.open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle) or {}
    except FileNotFoundError as exc:
        raise ConfigError(f"config file not found: {config_path}") from exc
    except yaml.YAMLError as exc:
        raise ConfigError(f"config file {config_path} is not valid YAML: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError("config file must contain a mapping")

    manifests_dir = Path(data.get("manifests_dir", "manifests"))
    if not manifests_dir.is_absolute():
        manifests_dir = (config_path.parent / manifests_dir).resolve()

    raw_envs = data.get("environments") or {}
    if not isinstance(raw_envs, dict):
        raise ConfigError("'environments' must be a mapping of name to settings")
    environments = {
        str(name): EnvironmentTarget.from_dict(str(name), settings)
        for name, settings in raw_envs.items()
    }
    return RolloutConfig(path=config_path, manifests_dir=manifests_dir, environments=environments)


def kubectl_command(default: str = "kubectl") -> str:
    return os.getenv("ROLLOUT_KUBECTL", default)


def _string_list(value: Any, label: str) -> List[str]:
    if value is None:
        return []
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ConfigError(f"{label} must be a list of strings")
    return list(value)


def _as_float(value: Any, label: str) -> float:
    try:
        result = float(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{label} must be a number") from exc
    if result <= 0:
        raise ConfigError(f"{label} must be positive")
    return result


def _as_int(value: Any, label: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{label} must be an integer") from exc


__all__ = [
    "DEFAULT_CONFIG_PATH",
    "ProbeTarget",
    "EnvironmentTarget",
    "RolloutConfig",
    "resolve_config_path",
    "load_config",
    "kubectl_command",
]
