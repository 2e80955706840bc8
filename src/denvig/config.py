"""Global configuration (`~/.denvig/config.yml`).

Env overrides (in precedence order over the YAML file):
- DENVIG_GLOBAL_CONFIG_PATH: alternate config file location
- DENVIG_GATEWAY_CONFIGS_PATH: nginx `servers` directory
- DENVIG_NGINX_BIN: nginx binary used for reloads
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from .errors import ConfigError
from .paths import StoreRoot

logger = logging.getLogger(__name__)

DEFAULT_PROJECT_PATHS = ["~/src/*/*", "~/.dotfiles"]
DEFAULT_GATEWAY_CONFIGS_PATH = "/opt/homebrew/etc/nginx/servers"
DEFAULT_NGINX_BIN = "/opt/homebrew/bin/nginx"


def _env(name: str) -> Optional[str]:
    raw = os.getenv(name)
    if raw is None:
        return None
    v = str(raw).strip()
    return v or None


def _as_bool(raw: Any, *, default: bool = False) -> bool:
    if raw is None:
        return default
    if isinstance(raw, bool):
        return raw
    s = str(raw).strip().lower()
    if s in {"1", "true", "yes", "on"}:
        return True
    if s in {"0", "false", "no", "off"}:
        return False
    return default


def read_yaml_mapping(path: Path) -> Dict[str, Any]:
    """Load a YAML file that must contain a mapping. Missing file -> {}."""
    p = Path(path)
    if not p.is_file():
        return {}
    try:
        data = yaml.safe_load(p.read_text(encoding="utf-8"))
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {p}: {e}") from e
    except OSError as e:
        raise ConfigError(f"Could not read {p}: {e}") from e
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Expected a mapping at the top level of {p}")
    return data


@dataclass(frozen=True)
class GatewayConfig:
    enabled: bool = False
    handler: str = "nginx"
    configs_path: Path = Path(DEFAULT_GATEWAY_CONFIGS_PATH)
    nginx_bin: str = DEFAULT_NGINX_BIN

    @staticmethod
    def from_mapping(raw: Any) -> "GatewayConfig":
        data = raw if isinstance(raw, dict) else {}
        handler = str(data.get("handler") or "nginx").strip()
        if handler != "nginx":
            raise ConfigError(f"Unsupported gateway handler: {handler}")
        configs_path = _env("DENVIG_GATEWAY_CONFIGS_PATH") or str(data.get("configsPath") or DEFAULT_GATEWAY_CONFIGS_PATH)
        nginx_bin = _env("DENVIG_NGINX_BIN") or str(data.get("nginxBin") or DEFAULT_NGINX_BIN)
        return GatewayConfig(
            enabled=_as_bool(data.get("enabled"), default=False),
            handler=handler,
            configs_path=Path(configs_path).expanduser(),
            nginx_bin=nginx_bin,
        )


@dataclass(frozen=True)
class GlobalConfig:
    project_paths: List[str] = field(default_factory=lambda: list(DEFAULT_PROJECT_PATHS))
    services: Dict[str, Any] = field(default_factory=dict)
    gateway: GatewayConfig = field(default_factory=GatewayConfig)
    source_path: Optional[Path] = None

    @staticmethod
    def load(root: StoreRoot) -> "GlobalConfig":
        path = root.config_path
        data = read_yaml_mapping(path)

        paths_raw = data.get("projectPaths")
        if paths_raw is None:
            project_paths = list(DEFAULT_PROJECT_PATHS)
        elif isinstance(paths_raw, list):
            project_paths = [str(p) for p in paths_raw if str(p or "").strip()]
        else:
            raise ConfigError("projectPaths must be a list of paths or globs")

        services = data.get("services") or {}
        if not isinstance(services, dict):
            raise ConfigError("services must be a mapping of name -> service")

        experimental = data.get("experimental") or {}
        gateway_raw = experimental.get("gateway") if isinstance(experimental, dict) else None
        return GlobalConfig(
            project_paths=project_paths,
            services=dict(services),
            gateway=GatewayConfig.from_mapping(gateway_raw),
            source_path=path if path.is_file() else None,
        )
