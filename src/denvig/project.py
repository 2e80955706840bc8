"""Projects and their declared services (`.denvig.yml`)."""

from __future__ import annotations

import glob
import hashlib
import logging
import os
import re
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, List, Optional

from .config import GlobalConfig, read_yaml_mapping
from .errors import ConfigError
from .paths import StoreRoot

logger = logging.getLogger(__name__)

PROJECT_CONFIG_FILENAME = ".denvig.yml"
GLOBAL_PROJECT_SLUG = "global"
GLOBAL_PROJECT_ID = hashlib.sha1(b"denvig-global").hexdigest()

SERVICE_NAME_MAX_LEN = 64
_SERVICE_NAME_RE = re.compile(r"^[a-z]([a-z0-9-]*[a-z0-9])?$")


def validate_service_name(name: str) -> str:
    n = str(name or "")
    if len(n) > SERVICE_NAME_MAX_LEN:
        raise ConfigError(f"Service name must be {SERVICE_NAME_MAX_LEN} characters or less: {n}")
    if not _SERVICE_NAME_RE.match(n):
        raise ConfigError(
            f'Invalid service name "{n}": must start with a letter, contain only lowercase '
            "alphanumerics and hyphens, and not end with a hyphen"
        )
    return n


def project_id_for_slug(slug: str) -> str:
    return hashlib.sha256(str(slug).encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class HttpConfig:
    port: Optional[int] = None
    domain: Optional[str] = None
    cnames: List[str] = field(default_factory=list)
    secure: bool = False

    @staticmethod
    def from_mapping(raw: Any, *, service: str) -> "HttpConfig":
        if not isinstance(raw, dict):
            raise ConfigError(f"services.{service}.http must be a mapping")
        port_raw = raw.get("port")
        port: Optional[int] = None
        if port_raw is not None:
            if isinstance(port_raw, bool) or not isinstance(port_raw, int) or not (0 < port_raw < 65536):
                raise ConfigError(f"services.{service}.http.port must be a TCP port number")
            port = port_raw
        domain = str(raw.get("domain") or "").strip() or None
        cnames_raw = raw.get("cnames") or []
        if not isinstance(cnames_raw, list):
            raise ConfigError(f"services.{service}.http.cnames must be a list")
        return HttpConfig(
            port=port,
            domain=domain,
            cnames=[str(c).strip() for c in cnames_raw if str(c or "").strip()],
            secure=bool(raw.get("secure") or False),
        )


@dataclass(frozen=True)
class ServiceDefinition:
    name: str
    command: str
    cwd: Optional[str] = None
    env: Dict[str, str] = field(default_factory=dict)
    env_files: Optional[List[str]] = None
    http: Optional[HttpConfig] = None
    keep_alive: bool = True
    start_on_boot: bool = False

    @staticmethod
    def from_mapping(name: str, raw: Any) -> "ServiceDefinition":
        validate_service_name(name)
        if not isinstance(raw, dict):
            raise ConfigError(f"services.{name} must be a mapping")
        command = str(raw.get("command") or "").strip()
        if not command:
            raise ConfigError(f"services.{name}.command is required")

        env_raw = raw.get("env") or {}
        if not isinstance(env_raw, dict):
            raise ConfigError(f"services.{name}.env must be a mapping")
        env_files_raw = raw.get("envFiles")
        if env_files_raw is not None and not isinstance(env_files_raw, list):
            raise ConfigError(f"services.{name}.envFiles must be a list")

        keep_alive = raw.get("keepAlive")
        return ServiceDefinition(
            name=name,
            command=command,
            cwd=str(raw.get("cwd") or "").strip() or None,
            env={str(k): str(v) for k, v in env_raw.items()},
            env_files=[str(p) for p in env_files_raw] if env_files_raw is not None else None,
            http=HttpConfig.from_mapping(raw["http"], service=name) if raw.get("http") is not None else None,
            keep_alive=True if keep_alive is None else bool(keep_alive),
            start_on_boot=bool(raw.get("startOnBoot") or False),
        )


def parse_services(raw: Any) -> Dict[str, ServiceDefinition]:
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ConfigError("services must be a mapping of name -> service")
    return {str(name): ServiceDefinition.from_mapping(str(name), cfg) for name, cfg in raw.items()}


@dataclass(frozen=True)
class Project:
    id: str
    slug: str
    path: Path
    services: Dict[str, ServiceDefinition] = field(default_factory=dict)
    name: Optional[str] = None
    has_config: bool = False


def slug_for_path(path: Path) -> str:
    p = Path(path)
    if p.parent.name:
        return f"{p.parent.name}/{p.name}"
    return p.name


def load_project(path: Path) -> Project:
    """Load the project rooted at `path`; a directory without `.denvig.yml` has no services."""
    root = Path(path).expanduser().resolve()
    config_path = root / PROJECT_CONFIG_FILENAME
    data = read_yaml_mapping(config_path)
    slug = slug_for_path(root)
    return Project(
        id=project_id_for_slug(slug),
        slug=slug,
        path=root,
        services=parse_services(data.get("services")),
        name=str(data.get("name") or "").strip() or None,
        has_config=config_path.is_file(),
    )


def list_projects(config: GlobalConfig, *, with_config: bool = True) -> List[Project]:
    """Projects matched by the configured `projectPaths` globs, sorted by path.

    Projects whose config cannot be parsed are skipped with a warning.
    """
    seen: Dict[str, Path] = {}
    for pattern in config.project_paths:
        for match in glob.glob(os.path.expanduser(pattern)):
            p = Path(match)
            if not p.is_dir() or p.name.startswith("."):
                continue
            if with_config and not (p / PROJECT_CONFIG_FILENAME).is_file():
                continue
            seen.setdefault(str(p.resolve()), p)

    projects: List[Project] = []
    for key in sorted(seen):
        try:
            projects.append(load_project(seen[key]))
        except ConfigError as e:
            logger.warning("Skipping project %s: %s", key, e)
    return projects


def create_global_project(config: GlobalConfig, root: StoreRoot) -> Project:
    """Project wrapper for services declared in the global config.

    Services without a `cwd` get an isolated working directory under the store root.
    """
    services = parse_services(config.services)
    patched: Dict[str, ServiceDefinition] = {}
    for name, svc in services.items():
        if svc.cwd:
            patched[name] = svc
        else:
            patched[name] = replace(svc, cwd=str(root.services_dir / f"{GLOBAL_PROJECT_ID}.{name}" / "cwd"))
    return Project(
        id=GLOBAL_PROJECT_ID,
        slug=GLOBAL_PROJECT_SLUG,
        path=Path.home(),
        services=patched,
        name="Global",
        has_config=bool(patched),
    )
