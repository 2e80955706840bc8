"""nginx virtual-host rendering and file management for the gateway.

Every generated file is named `denvig.<projectId>.<service>.conf`; anything
matching `denvig.*.conf` in the configs directory is considered owned by denvig
and removed on each configure pass.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from ..config import DEFAULT_NGINX_BIN
from ..shell import CommandOutcome, run_command

logger = logging.getLogger(__name__)

CONFIG_PREFIX = "denvig."
CONFIG_SUFFIX = ".conf"

Runner = Callable[..., CommandOutcome]


@dataclass(frozen=True)
class NginxConfigOptions:
    project_id: str
    project_path: Path
    project_slug: str
    service_name: str
    port: int
    domain: str
    html_dir: Path
    cnames: List[str] = field(default_factory=list)
    ssl_cert_path: Optional[Path] = None
    ssl_key_path: Optional[Path] = None


@dataclass(frozen=True)
class FileOpResult:
    success: bool
    message: Optional[str] = None
    removed: List[str] = field(default_factory=list)


def upstream_name(project_id: str, service_name: str) -> str:
    return f"denvig-{project_id}--{service_name}"


def _has_ssl(opts: NginxConfigOptions) -> bool:
    # Re-checked on every render; a deleted cert must drop the TLS block.
    if not opts.ssl_cert_path or not opts.ssl_key_path:
        return False
    return Path(opts.ssl_cert_path).is_file() and Path(opts.ssl_key_path).is_file()


def generate_nginx_config(opts: NginxConfigOptions) -> str:
    upstream = upstream_name(opts.project_id, opts.service_name)
    server_names = " ".join([opts.domain, *list(opts.cnames or [])])
    has_ssl = _has_ssl(opts)

    lines: List[str] = [
        "# denvig:",
        f"# slug: {opts.project_slug}",
        f"# path: {opts.project_path}",
        f"# service: {opts.service_name}",
        f"upstream {upstream} {{ server 127.0.0.1:{opts.port} max_fails=0 fail_timeout=30; }}",
        "server {",
        "  listen 80;",
    ]
    if has_ssl:
        lines += ["  listen 443 ssl;", "  http2 on;"]
    lines += [
        f"  server_name {server_names};",
        f"  root {opts.project_path}/public;",
        "  index index.html;",
        "  client_max_body_size 100M;",
    ]
    if has_ssl:
        lines += [
            f"  ssl_certificate {opts.ssl_cert_path};",
            f"  ssl_certificate_key {opts.ssl_key_path};",
            "  ssl_protocols TLSv1.2 TLSv1.3;",
            "  ssl_ciphers HIGH:!aNULL:!MD5;",
        ]
    lines += [
        "",
        "  error_page 502 503 504 /denvig-errors/504.html;",
        "  location /denvig-errors/ {",
        f"    alias {opts.html_dir}/errors/;",
        "    internal;",
        "  }",
        "",
        "  location / {",
        f"    proxy_pass http://{upstream};",
        "    proxy_set_header Host $host;",
        "    proxy_set_header X-Forwarded-Host $host;",
        "    proxy_set_header X-Forwarded-For $proxy_add_x_forwarded_for;",
        "    proxy_redirect off;",
        "    proxy_buffering off;",
        "",
        "    proxy_http_version 1.1;",
        "    proxy_set_header Upgrade $http_upgrade;",
        '    proxy_set_header Connection "upgrade";',
        "  }",
        "}",
    ]
    return "\n".join(lines) + "\n"


def get_nginx_config_path(project_id: str, service_name: str, configs_path: Path) -> Path:
    return Path(configs_path) / f"{CONFIG_PREFIX}{project_id}.{service_name}{CONFIG_SUFFIX}"


def get_nginx_conf_path(configs_path: Path) -> Path:
    """Main `nginx.conf`, assumed to live one level above the `servers/` directory."""
    return Path(configs_path).parent / "nginx.conf"


def generate_nginx_main_config(configs_path: Path, html_dir: Path) -> str:
    configs = Path(configs_path)
    nginx_dir = configs.parent
    return f"""# Managed by denvig, do not edit manually

worker_processes 4;

events {{
  worker_connections 1024;
}}

http {{
  include {nginx_dir}/mime.types;
  default_type application/octet-stream;

  sendfile on;
  keepalive_timeout 65;

  server {{
    listen 80 default_server;
    server_name _;

    root {html_dir};
    index index.html;

    error_page 404 /errors/404.html;
  }}

  include {configs}/*;
}}
"""


def write_nginx_config(opts: NginxConfigOptions, configs_path: Path) -> FileOpResult:
    path = get_nginx_config_path(opts.project_id, opts.service_name, configs_path)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(generate_nginx_config(opts), encoding="utf-8")
    except OSError as e:
        return FileOpResult(success=False, message=f"Failed to write nginx config: {e}")
    return FileOpResult(success=True)


def write_nginx_main_config(configs_path: Path, html_dir: Path) -> FileOpResult:
    path = get_nginx_conf_path(configs_path)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(generate_nginx_main_config(configs_path, html_dir), encoding="utf-8")
    except OSError as e:
        return FileOpResult(success=False, message=f"Failed to write nginx.conf: {e}")
    return FileOpResult(success=True)


def remove_all_nginx_configs(configs_path: Path) -> FileOpResult:
    d = Path(configs_path)
    try:
        names = sorted(
            p.name
            for p in d.iterdir()
            if p.is_file() and p.name.startswith(CONFIG_PREFIX) and p.name.endswith(CONFIG_SUFFIX)
        )
        for name in names:
            (d / name).unlink(missing_ok=True)
    except OSError as e:
        return FileOpResult(success=False, message=f"Failed to remove nginx configs: {e}")
    return FileOpResult(success=True, removed=names)


class ProxyController:
    """Running reverse proxy: reload signal and service status."""

    def reload(self) -> CommandOutcome:
        raise NotImplementedError

    def status(self) -> Dict[str, Any]:
        raise NotImplementedError


class NginxController(ProxyController):
    """Homebrew nginx: `nginx -s reload` and `brew services info nginx --json`."""

    def __init__(self, *, nginx_bin: str = DEFAULT_NGINX_BIN, runner: Optional[Runner] = None):
        self.nginx_bin = str(nginx_bin or DEFAULT_NGINX_BIN)
        self._run = runner or run_command

    def reload(self) -> CommandOutcome:
        outcome = self._run([self.nginx_bin, "-s", "reload"])
        if not outcome.success:
            logger.warning("nginx reload failed: %s", outcome.output)
        return outcome

    def status(self) -> Dict[str, Any]:
        outcome = self._run(["brew", "services", "info", "nginx", "--json"])
        empty = {"running": False, "pid": None, "status": None}
        if not outcome.success:
            return empty
        try:
            parsed = json.loads(outcome.output)
        except ValueError:
            logger.debug("Unparseable brew services output: %r", outcome.output[:200])
            return empty
        info = parsed[0] if isinstance(parsed, list) and parsed else parsed
        if not isinstance(info, dict):
            return empty
        return {
            "running": bool(info.get("running") or False),
            "pid": info.get("pid"),
            "status": info.get("status"),
        }
