from __future__ import annotations

import contextlib
import fcntl
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

from ..certs.store import CertStore
from ..config import GlobalConfig
from ..paths import StoreRoot
from ..project import Project, create_global_project, list_projects
from .certs import find_cert_for_domain, resolve_ssl_paths
from .html import write_gateway_html_files
from .nginx import (
    NginxConfigOptions,
    NginxController,
    ProxyController,
    get_nginx_conf_path,
    get_nginx_config_path,
    remove_all_nginx_configs,
    write_nginx_config,
    write_nginx_main_config,
)

logger = logging.getLogger(__name__)

LOCK_FILENAME = ".denvig.lock"


@dataclass
class ConfigureServiceResult:
    project_slug: str
    service_name: str
    domain: str
    port: int
    cnames: List[str] = field(default_factory=list)
    cert_status: str = "not_configured"  # valid | missing | not_configured
    cert_dir: Optional[Path] = None
    cert_message: Optional[str] = None
    config_status: str = "written"  # written | error
    config_message: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "projectSlug": self.project_slug,
            "serviceName": self.service_name,
            "domain": self.domain,
            "cnames": list(self.cnames),
            "port": self.port,
            "certStatus": self.cert_status,
            "certDir": str(self.cert_dir) if self.cert_dir else None,
            "certMessage": self.cert_message,
            "configStatus": self.config_status,
            "configMessage": self.config_message,
        }


@dataclass
class ConfigureGatewayResult:
    success: bool
    removed: List[str] = field(default_factory=list)
    services: List[ConfigureServiceResult] = field(default_factory=list)
    nginx_reload: bool = False
    nginx_reload_message: Optional[str] = None
    message: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "removed": list(self.removed),
            "services": [s.to_dict() for s in self.services],
            "nginxReload": self.nginx_reload,
            "nginxReloadMessage": self.nginx_reload_message,
            "message": self.message,
        }


@contextlib.contextmanager
def gateway_lock(configs_path: Path) -> Iterator[Path]:
    """Exclusive advisory lock serializing configure passes on one configs directory."""
    d = Path(configs_path)
    d.mkdir(parents=True, exist_ok=True)
    lock_path = d / LOCK_FILENAME
    fd = os.open(str(lock_path), os.O_RDWR | os.O_CREAT, 0o644)
    try:
        fcntl.flock(fd, fcntl.LOCK_EX)
        try:
            yield lock_path
        finally:
            fcntl.flock(fd, fcntl.LOCK_UN)
    finally:
        os.close(fd)


def _gateway_projects(config: GlobalConfig, root: StoreRoot) -> List[Project]:
    projects = list_projects(config, with_config=True)
    global_project = create_global_project(config, root)
    if global_project.services:
        projects.append(global_project)
    return projects


def _configure_service(
    project: Project,
    name: str,
    *,
    store: CertStore,
    root: StoreRoot,
    configs_path: Path,
) -> Optional[ConfigureServiceResult]:
    svc = project.services[name]
    http = svc.http
    if http is None or not http.domain or not http.port:
        return None

    result = ConfigureServiceResult(
        project_slug=project.slug,
        service_name=name,
        domain=http.domain,
        port=http.port,
        cnames=list(http.cnames),
    )

    ssl_cert: Optional[Path] = None
    ssl_key: Optional[Path] = None
    if http.secure:
        cert_dir = find_cert_for_domain(store, http.domain)
        paths = resolve_ssl_paths(cert_dir) if cert_dir is not None else None
        if paths is not None:
            ssl_cert, ssl_key = paths.cert_path, paths.key_path
            result.cert_status = "valid"
            result.cert_dir = cert_dir
        else:
            result.cert_status = "missing"
            result.cert_message = (
                "cert directory found but files missing" if cert_dir is not None else "no matching certificate found"
            )

    written = write_nginx_config(
        NginxConfigOptions(
            project_id=project.id,
            project_path=project.path,
            project_slug=project.slug,
            service_name=name,
            port=http.port,
            domain=http.domain,
            html_dir=root.gateway_html_dir,
            cnames=list(http.cnames),
            ssl_cert_path=ssl_cert,
            ssl_key_path=ssl_key,
        ),
        configs_path,
    )
    if not written.success:
        result.config_status = "error"
        result.config_message = written.message
    return result


def configure_gateway(
    config: GlobalConfig,
    root: StoreRoot,
    *,
    proxy: Optional[ProxyController] = None,
    projects: Optional[List[Project]] = None,
) -> Optional[ConfigureGatewayResult]:
    """Rebuild every denvig nginx config from the declared services and reload once.

    Returns None when the gateway is disabled. Covers every project with a
    `.denvig.yml` (plus global services) unless `projects` is given.
    """
    gateway = config.gateway
    if not gateway.enabled:
        return None

    configs_path = Path(gateway.configs_path)
    store = CertStore(root)
    proxy = proxy or NginxController(nginx_bin=gateway.nginx_bin)

    with gateway_lock(configs_path):
        try:
            write_gateway_html_files(root)
        except OSError as e:
            return ConfigureGatewayResult(success=False, message=f"Failed to write gateway pages: {e}")

        main = write_nginx_main_config(configs_path, root.gateway_html_dir)
        if not main.success:
            return ConfigureGatewayResult(success=False, message=main.message or "Failed to write nginx.conf")

        removed = remove_all_nginx_configs(configs_path)
        if not removed.success:
            return ConfigureGatewayResult(success=False, message=removed.message or "Failed to remove existing configs")

        services: List[ConfigureServiceResult] = []
        for project in projects if projects is not None else _gateway_projects(config, root):
            for name in project.services:
                item = _configure_service(project, name, store=store, root=root, configs_path=configs_path)
                if item is not None:
                    services.append(item)

        reload = proxy.reload()

    has_errors = any(s.config_status == "error" or s.cert_status == "missing" for s in services)
    logger.info("Gateway configured: %d service(s), %d stale file(s) removed", len(services), len(removed.removed))
    return ConfigureGatewayResult(
        success=not has_errors,
        removed=list(removed.removed),
        services=services,
        nginx_reload=reload.success,
        nginx_reload_message=None if reload.success else f"Failed to reload nginx: {reload.output}",
        message="Some services have errors or missing certificates" if has_errors else "Gateway configured successfully",
    )


def gateway_status(
    project: Project,
    config: GlobalConfig,
    root: StoreRoot,
    *,
    proxy: Optional[ProxyController] = None,
) -> Dict[str, Any]:
    """Gateway settings, proxy state and per-service routing for one project."""
    gateway = config.gateway
    store = CertStore(root)
    proxy = proxy or NginxController(nginx_bin=gateway.nginx_bin)

    services: List[Dict[str, Any]] = []
    for name, svc in project.services.items():
        http = svc.http
        if http is None or not http.domain:
            continue
        cert_dir = find_cert_for_domain(store, http.domain) if http.secure else None
        ssl = resolve_ssl_paths(cert_dir) if cert_dir is not None else None
        nginx_path = get_nginx_config_path(project.id, name, gateway.configs_path) if gateway.enabled else None
        services.append(
            {
                "name": name,
                "domain": http.domain,
                "cnames": list(http.cnames),
                "port": http.port,
                "secure": http.secure,
                "certFound": ssl is not None,
                "certDir": str(cert_dir) if cert_dir else None,
                "nginxConfigPath": str(nginx_path) if nginx_path else None,
                "nginxConfigExists": bool(nginx_path and nginx_path.is_file()),
            }
        )

    return {
        "enabled": gateway.enabled,
        "handler": gateway.handler,
        "nginx": proxy.status() if gateway.enabled else {"running": False, "pid": None, "status": None},
        "nginxConf": str(get_nginx_conf_path(gateway.configs_path)),
        "configsPath": str(gateway.configs_path),
        "services": services,
    }
