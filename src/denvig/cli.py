from __future__ import annotations

import argparse
import json
import logging
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

from . import __version__
from .certs.authority import describe_certificate, generate_ca_cert, generate_domain_cert, load_ca_cert
from .certs.store import CertStore
from .certs.trust import KeychainTrustStore, TrustStore
from .cli_logs import CliLogTracker
from .config import GlobalConfig
from .errors import CaNotInitializedError, CertificateError, DenvigError, ExternalCommandError, ServiceNotFoundError
from .gateway.certs import generate_missing_certs
from .gateway.configure import configure_gateway, gateway_status
from .gateway.nginx import NginxController, ProxyController
from .paths import StoreRoot
from .project import PROJECT_CONFIG_FILENAME, Project, load_project
from .services.identifier import parse_service_identifier, resolve_project
from .services.launchctl import LaunchctlRegistry, ServiceRegistry
from .services.manager import DEFAULT_LOG_LINES, ServiceManager
from .services.results import all_succeeded
from .services.teardown import teardown_global

logger = logging.getLogger(__name__)

HandlerResult = Tuple[bool, Any]


def _stderr(line: str) -> None:
    print(str(line), file=sys.stderr)


def _configure_console_logging(level: int = logging.WARNING) -> None:
    fmt = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
    datefmt = "%H:%M:%S"
    formatter = logging.Formatter(fmt, datefmt=datefmt)
    root = logging.getLogger()
    if root.handlers:
        for h in list(root.handlers):
            h.setFormatter(formatter)
        root.setLevel(int(level))
        return
    logging.basicConfig(level=int(level), format=fmt, datefmt=datefmt, stream=sys.stderr)


@dataclass
class CliContext:
    """Collaborators for one invocation; tests swap in fakes."""

    root: StoreRoot
    cwd: Path
    registry: Optional[ServiceRegistry] = None
    trust: Optional[TrustStore] = None
    proxy: Optional[ProxyController] = None
    launch_agents_dir: Optional[Path] = None
    rebootstrap_delay_s: float = 1.0
    _config: Optional[GlobalConfig] = field(default=None, repr=False)

    @classmethod
    def from_env(cls) -> "CliContext":
        return cls(
            root=StoreRoot.from_env(),
            cwd=Path.cwd(),
            launch_agents_dir=Path.home() / "Library" / "LaunchAgents",
        )

    @property
    def config(self) -> GlobalConfig:
        if self._config is None:
            self._config = GlobalConfig.load(self.root)
        return self._config

    @property
    def store(self) -> CertStore:
        return CertStore(self.root)

    def get_registry(self) -> ServiceRegistry:
        if self.registry is None:
            self.registry = LaunchctlRegistry()
        return self.registry

    def get_trust(self) -> TrustStore:
        if self.trust is None:
            self.trust = KeychainTrustStore()
        return self.trust

    def get_proxy(self) -> ProxyController:
        if self.proxy is None:
            self.proxy = NginxController(nginx_bin=self.config.gateway.nginx_bin)
        return self.proxy

    def current_project(self) -> Project:
        here = Path(self.cwd).resolve()
        for candidate in (here, *here.parents):
            if (candidate / PROJECT_CONFIG_FILENAME).is_file():
                return load_project(candidate)
        return load_project(here)

    def manager_for(self, project: Project) -> ServiceManager:
        return ServiceManager(
            project,
            self.root,
            self.get_registry(),
            store=self.store,
            launch_agents_dir=self.launch_agents_dir,
            rebootstrap_delay_s=self.rebootstrap_delay_s,
        )


def _fail(message: str, **extra: Any) -> HandlerResult:
    return False, {"success": False, "message": message, **extra}


# certs


def _install_ca(args: argparse.Namespace, ctx: CliContext) -> HandlerResult:
    store = ctx.store
    generated = False
    if not store.is_ca_initialized():
        ca = generate_ca_cert()
        store.write_ca_files(ca.cert_pem, ca.key_pem)
        generated = True
        if not args.json:
            print(f"CA certificate written to {store.ca_cert_path}")

    if not args.json:
        print("Installing CA to system keychain...")
    payload = {"caCertPath": str(store.ca_cert_path), "generated": generated}
    try:
        ctx.get_trust().install(store.ca_cert_path).check()
    except ExternalCommandError as e:
        return _fail(f"Failed to install CA to system keychain (exit {e.returncode})", **payload)
    message = "CA initialized and installed." if generated else "CA already exists, reinstalled to keychain."
    return True, {"success": True, "message": message, **payload}


def _ca_info(args: argparse.Namespace, ctx: CliContext) -> HandlerResult:
    store = ctx.store
    if not store.is_ca_initialized():
        return _fail("CA has not been initialized. Run `denvig certs init` first.")
    try:
        info = describe_certificate(store.ca_cert_path.read_text(encoding="utf-8"))
    except (CertificateError, UnicodeDecodeError) as e:
        return _fail(f"CA certificate is unreadable: {e}", path=str(store.ca_cert_path))
    info["path"] = str(store.ca_cert_path)
    info["trusted"] = ctx.get_trust().is_trusted(store.ca_cert_path)
    return True, info


def _render_ca_info(payload: Dict[str, Any]) -> List[str]:
    return [
        f"Subject:      {payload['subject']}",
        f"Issuer:       {payload['issuer']}",
        f"Valid from:   {payload['validFrom']}",
        f"Valid to:     {payload['validTo']}",
        f"Serial:       {payload['serialNumber']}",
        f"Fingerprint:  {payload['fingerprint256']}",
        f"Path:         {payload['path']}",
        f"Trusted:      {'yes' if payload['trusted'] else 'no'}",
    ]


def _ca_uninstall(args: argparse.Namespace, ctx: CliContext) -> HandlerResult:
    store = ctx.store
    if not store.ca_cert_path.is_file():
        return _fail("CA has not been initialized; nothing to uninstall.")
    try:
        ctx.get_trust().uninstall(store.ca_cert_path).check()
    except ExternalCommandError as e:
        return _fail(f"Failed to remove CA from system keychain (exit {e.returncode})")
    return True, {"success": True, "message": "CA removed from system keychain."}


def _certs_generate(args: argparse.Namespace, ctx: CliContext) -> HandlerResult:
    store = ctx.store
    try:
        ca = load_ca_cert(store)
    except (CaNotInitializedError, CertificateError) as e:
        return _fail(str(e))
    domain = str(args.domain or "").strip()
    material = generate_domain_cert(domain, ca.cert, ca.key)
    cert_dir = store.write_domain_cert_files(domain, material.privkey, material.fullchain)
    return True, {
        "success": True,
        "message": f"Certificate generated for {domain}",
        "domain": domain,
        "certDir": str(cert_dir),
        "privkey": str(cert_dir / "privkey.pem"),
        "fullchain": str(cert_dir / "fullchain.pem"),
    }


def _render_cert_files(payload: Dict[str, Any]) -> List[str]:
    return [payload["message"], f"  privkey:   {payload['privkey']}", f"  fullchain: {payload['fullchain']}"]


def _certs_import(args: argparse.Namespace, ctx: CliContext) -> HandlerResult:
    try:
        imported = ctx.store.import_cert(Path(args.key), Path(args.cert), name=args.name)
    except CertificateError as e:
        return _fail(str(e))
    return True, {"success": True, "message": f"Certificate imported for {imported.domain}", **imported.to_dict()}


def _certs_list(args: argparse.Namespace, ctx: CliContext) -> HandlerResult:
    store = ctx.store
    entries = store.list_certificates(ctx.get_trust() if store.is_ca_initialized() else None)
    return True, [e.to_dict() for e in entries]


def _render_certs_list(payload: List[Dict[str, Any]]) -> List[str]:
    if not payload:
        return ["No certificates found."]
    lines: List[str] = []
    for entry in payload:
        lines.append(f"{entry['name']}  expires {entry['expires'][:10]}  {entry['status']}")
        for d in entry["domains"]:
            lines.append(f"  - {d}")
    lines.append("")
    lines.append(f"{len(payload)} certificate{'' if len(payload) == 1 else 's'}")
    return lines


def _certs_rm(args: argparse.Namespace, ctx: CliContext) -> HandlerResult:
    name = str(args.name or "").strip()
    if not args.yes and not args.json:
        answer = input(f"Remove certificate {name}? [y/N] ").strip().lower()
        if answer not in {"y", "yes"}:
            return True, {"success": True, "message": "Cancelled.", "name": name}
    try:
        ctx.store.remove_cert(name)
    except CertificateError as e:
        return _fail(str(e), name=name)
    return True, {"success": True, "message": f"Removed {name}", "name": name}


# gateway


def _gateway_status(args: argparse.Namespace, ctx: CliContext) -> HandlerResult:
    status = gateway_status(ctx.current_project(), ctx.config, ctx.root, proxy=ctx.get_proxy())
    return True, status


def _render_gateway_status(payload: Dict[str, Any]) -> List[str]:
    if not payload["enabled"]:
        return [
            "Status:  Disabled",
            "",
            "To enable the gateway, add to ~/.denvig/config.yml:",
            "  experimental:",
            "    gateway:",
            "      enabled: true",
        ]
    nginx = payload["nginx"]
    lines = [
        f"Status:    {'Started (pid %s)' % nginx.get('pid') if nginx.get('running') else 'Stopped'}",
        f"Handler:   {payload['handler']}",
        f"Config:    {payload['nginxConf']}",
        f"Configs:   {payload['configsPath']}",
        "",
    ]
    if not payload["services"]:
        lines.append("No services configured with http.domain")
        return lines
    for svc in payload["services"]:
        certs = "not enabled" if not svc["secure"] else ("found" if svc["certFound"] else "missing")
        lines += [
            f"  {svc['name']}:",
            f"    Domains: {', '.join([svc['domain'], *svc['cnames']])}",
            f"    Port:    {svc['port'] or '(not set)'}",
            f"    Certs:   {certs}",
            f"    Nginx:   {'configured' if svc['nginxConfigExists'] else 'not generated'}",
        ]
    return lines


def _gateway_configure(args: argparse.Namespace, ctx: CliContext) -> HandlerResult:
    result = configure_gateway(ctx.config, ctx.root, proxy=ctx.get_proxy())
    if result is None:
        return _fail("Gateway is not enabled. Add experimental.gateway.enabled: true to ~/.denvig/config.yml")
    return result.success, result.to_dict()


def _render_gateway_configure(payload: Dict[str, Any]) -> List[str]:
    lines: List[str] = []
    for removed in payload.get("removed") or []:
        lines.append(f"- removed {removed}")
    for svc in payload.get("services") or []:
        mark = "ok" if svc["configStatus"] == "written" and svc["certStatus"] != "missing" else "!!"
        lines.append(f"[{mark}] {svc['projectSlug']}/{svc['serviceName']} -> {svc['domain']}:{svc['port']} (cert: {svc['certStatus']})")
        if svc.get("certMessage"):
            lines.append(f"     {svc['certMessage']}")
        if svc.get("configMessage"):
            lines.append(f"     {svc['configMessage']}")
    if payload.get("nginxReloadMessage"):
        lines.append(payload["nginxReloadMessage"])
    lines.append(str(payload.get("message") or ""))
    return lines


def _gateway_generate_certs(args: argparse.Namespace, ctx: CliContext) -> HandlerResult:
    store = ctx.store
    if not store.is_ca_initialized():
        return _fail(str(CaNotInitializedError()))

    project = ctx.current_project()
    domains: List[str] = []
    for svc in project.services.values():
        if svc.http is not None and svc.http.domain:
            domains += [svc.http.domain, *svc.http.cnames]
    if not domains:
        return True, {"success": True, "message": "No domains to generate certificates for", "certificates": []}

    covered = generate_missing_certs(store, domains)
    missing = [d for d in dict.fromkeys(domains) if d not in covered]
    payload = {
        "success": not missing,
        "message": "Some certificates could not be generated" if missing else "Certificates processed successfully",
        "certificates": [{"domain": d, "certDir": str(p)} for d, p in covered.items()],
        "missing": missing,
    }
    return not missing, payload


def _render_generate_certs(payload: Dict[str, Any]) -> List[str]:
    lines = [f"{c['domain']} -> {c['certDir']}" for c in payload.get("certificates") or []]
    lines += [f"missing: {d}" for d in payload.get("missing") or []]
    lines.append(str(payload["message"]))
    return lines


# services


def _resolve_service(args: argparse.Namespace, ctx: CliContext) -> Tuple[Optional[ServiceManager], str, Optional[str]]:
    current = ctx.current_project()
    ident = parse_service_identifier(args.name, current.slug)
    project = resolve_project(ident.project_slug, ctx.config, ctx.root, current=current)
    if project is None:
        return None, ident.service_name, f'Project "{ident.project_slug}" not found'
    if ident.service_name not in project.services:
        return None, ident.service_name, str(ServiceNotFoundError(ident.service_name, project.slug))
    return ctx.manager_for(project), ident.service_name, None


def _reconfigure_gateway(ctx: CliContext) -> Optional[Dict[str, Any]]:
    if not ctx.config.gateway.enabled:
        return None
    result = configure_gateway(ctx.config, ctx.root, proxy=ctx.get_proxy())
    return result.to_dict() if result is not None else None


_BULK_MESSAGES: Dict[str, Tuple[str, str]] = {
    "start": ("started", "start"),
    "stop": ("stopped", "stop"),
    "restart": ("restarted", "restart"),
}


def _service_action_all(action: str, ctx: CliContext) -> HandlerResult:
    """Run `action` over the current project's services and report each outcome."""
    project = ctx.current_project()
    manager = ctx.manager_for(project)
    results = getattr(manager, f"{action}_all")()
    done, verb = _BULK_MESSAGES[action]
    if not results:
        return True, {"success": True, "message": f"No services to {verb}", "services": []}

    ok = all_succeeded(results)
    items: List[Dict[str, Any]] = []
    for result in results:
        item = result.to_dict()
        if result.success and action != "stop":
            item["url"] = manager.get_service_url(result.name)
        items.append(item)
    payload: Dict[str, Any] = {
        "success": ok,
        "message": f"All services {done} successfully" if ok else f"Some services failed to {verb}",
        "services": items,
    }
    if action != "stop" and any(r.success for r in results):
        gateway = _reconfigure_gateway(ctx)
        if gateway is not None:
            payload["gateway"] = gateway
    return ok, payload


def _service_action(action: str) -> Callable[[argparse.Namespace, CliContext], HandlerResult]:
    def handler(args: argparse.Namespace, ctx: CliContext) -> HandlerResult:
        if not args.name:
            return _service_action_all(action, ctx)
        manager, name, error = _resolve_service(args, ctx)
        if manager is None:
            return _fail(str(error))
        result = getattr(manager, f"{action}_service")(name)
        payload: Dict[str, Any] = result.to_dict()
        response = manager.get_service_response(name)
        if response is not None:
            payload["service"] = response.to_dict()
        if result.success and action in {"start", "restart"}:
            gateway = _reconfigure_gateway(ctx)
            if gateway is not None:
                payload["gateway"] = gateway
        return result.success, payload

    return handler


def _render_service_action(payload: Dict[str, Any]) -> List[str]:
    if isinstance(payload.get("services"), list):
        return _render_service_batch(payload)
    lines = [f"{payload['name']}: {payload['message']}"]
    lines += [f"  warning: {w}" for w in payload.get("warnings") or []]
    url = (payload.get("service") or {}).get("url")
    if url:
        lines.append(f"  {url}")
    gateway = payload.get("gateway")
    if gateway and not gateway.get("success"):
        lines.append(f"  gateway: {gateway.get('message')}")
    return lines


def _render_service_batch(payload: Dict[str, Any]) -> List[str]:
    lines: List[str] = []
    for item in payload["services"]:
        mark = "ok" if item["success"] else "failed"
        line = f"{item['name']}: {mark}"
        if item.get("url"):
            line += f" {item['url']}"
        lines.append(line)
        if not item["success"]:
            lines.append(f"  {item['message']}")
        lines += [f"  warning: {w}" for w in item.get("warnings") or []]
    gateway = payload.get("gateway")
    if gateway and not gateway.get("success"):
        lines.append(f"gateway: {gateway.get('message')}")
    lines.append(str(payload["message"]))
    return lines


def _services_list(args: argparse.Namespace, ctx: CliContext) -> HandlerResult:
    project = ctx.current_project()
    manager = ctx.manager_for(project)
    responses = [manager.get_service_response(name) for name in project.services]
    return True, [r.to_dict() for r in responses if r is not None]


def _render_services_list(payload: List[Dict[str, Any]]) -> List[str]:
    if not payload:
        return ["No services configured."]
    return [f"{s['name']:<24} {s['status']:<8} {s['url'] or ''}".rstrip() for s in payload]


def _services_status(args: argparse.Namespace, ctx: CliContext) -> HandlerResult:
    manager, name, error = _resolve_service(args, ctx)
    if manager is None:
        return _fail(str(error))
    response = manager.get_service_response(name, include_logs=True)
    return True, response.to_dict() if response is not None else {}


def _render_service_status(payload: Dict[str, Any]) -> List[str]:
    lines = [
        f"Service:   {payload['name']}",
        f"Status:    {payload['status']}" + (f" (pid {payload['pid']})" if payload.get("pid") else ""),
        f"Command:   {payload['command']}",
        f"Cwd:       {payload['cwd']}",
        f"Log:       {payload['logPath']}",
    ]
    if payload.get("url"):
        lines.append(f"URL:       {payload['url']}")
    if payload.get("lastExitCode") is not None:
        lines.append(f"Exit code: {payload['lastExitCode']}")
    if payload.get("logs"):
        lines += ["", *payload["logs"]]
    return lines


def _services_logs(args: argparse.Namespace, ctx: CliContext) -> HandlerResult:
    manager, name, error = _resolve_service(args, ctx)
    if manager is None:
        return _fail(str(error))
    if args.follow:
        code = manager.follow_logs(name, args.lines)
        return code == 0, {"success": code == 0, "message": f"tail exited with {code}"}
    lines = manager.get_recent_logs(name, args.lines)
    return True, {"name": name, "logPath": str(manager.get_log_path(name)), "lines": lines}


def _render_logs(payload: Dict[str, Any]) -> List[str]:
    if "lines" not in payload:
        return []
    return list(payload["lines"]) or [f"No logs yet at {payload['logPath']}"]


def _services_teardown(args: argparse.Namespace, ctx: CliContext) -> HandlerResult:
    if args.global_:
        result = teardown_global(
            ctx.root, ctx.get_registry(), remove_logs=args.remove_logs, launch_agents_dir=ctx.launch_agents_dir
        )
    else:
        result = ctx.manager_for(ctx.current_project()).teardown_all(remove_logs=args.remove_logs)
    payload = result.to_dict()
    payload["message"] = "Teardown complete" if result.success else "Some services could not be removed"
    return result.success, payload


def _render_teardown(payload: Dict[str, Any]) -> List[str]:
    lines = [f"{'ok' if s['success'] else '!!'} {s['name']}: {s['message']}" for s in payload["services"]]
    if not payload["services"]:
        lines.append("No denvig services registered.")
    if payload.get("logsRemoved"):
        lines.append("Logs removed.")
    lines.append(payload["message"])
    return lines


def _default_render(payload: Any) -> List[str]:
    if isinstance(payload, dict) and payload.get("message"):
        return [str(payload["message"])]
    return [json.dumps(payload, indent=2, default=str)]


def build_parser() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--json", action="store_true", help="Emit machine-readable JSON output")
    common.add_argument("-v", "--verbose", action="count", default=0, help="Increase log verbosity (-vv for debug)")

    parser = argparse.ArgumentParser(prog="denvig", description="Local development projects: TLS, gateway and services")
    parser.add_argument("--version", action="version", version=f"denvig {__version__}")
    sub = parser.add_subparsers(dest="cmd", required=True)

    def leaf(group: Any, name: str, help_text: str, command: str, handler: Callable, render: Callable = _default_render):
        p = group.add_parser(name, parents=[common], help=help_text)
        p.set_defaults(handler=handler, render=render, command_name=command)
        return p

    certs = sub.add_parser("certs", help="Local certificate authority and TLS certificates")
    certs_sub = certs.add_subparsers(dest="certs_cmd", required=True)
    leaf(certs_sub, "init", "Create the local CA (if needed) and trust it", "certs init", _install_ca)
    ca = certs_sub.add_parser("ca", help="Manage the local CA")
    ca_sub = ca.add_subparsers(dest="ca_cmd", required=True)
    leaf(ca_sub, "install", "Create the local CA (if needed) and trust it", "certs ca install", _install_ca)
    leaf(ca_sub, "info", "Show details of the local CA", "certs ca info", _ca_info, _render_ca_info)
    leaf(ca_sub, "uninstall", "Remove the local CA from the system keychain", "certs ca uninstall", _ca_uninstall)
    gen = leaf(certs_sub, "generate", "Issue a certificate for a domain", "certs generate", _certs_generate, _render_cert_files)
    gen.add_argument("domain", help="Domain, e.g. app.localhost or *.example.localhost")
    imp = leaf(certs_sub, "import", "Import an existing certificate and key", "certs import", _certs_import, _render_cert_files)
    imp.add_argument("--key", required=True, help="Path to the private key PEM file")
    imp.add_argument("--cert", required=True, help="Path to the certificate PEM file")
    imp.add_argument("--name", default=None, help="Directory name override (defaults to the detected domain)")
    leaf(certs_sub, "list", "List stored certificates", "certs list", _certs_list, _render_certs_list)
    rm = leaf(certs_sub, "rm", "Remove a stored certificate", "certs rm", _certs_rm)
    rm.add_argument("name", help="Certificate directory name, e.g. _wildcard.example.localhost")
    rm.add_argument("--yes", "-y", action="store_true", help="Do not ask for confirmation")

    gateway = sub.add_parser("gateway", help="nginx gateway")
    gw_sub = gateway.add_subparsers(dest="gateway_cmd", required=True)
    leaf(gw_sub, "status", "Show gateway status for the current project", "gateway status", _gateway_status, _render_gateway_status)
    leaf(gw_sub, "configure", "Rebuild all nginx configs and reload", "gateway configure", _gateway_configure, _render_gateway_configure)
    leaf(
        gw_sub,
        "generate-certs",
        "Issue certificates for the current project's domains",
        "gateway generate-certs",
        _gateway_generate_certs,
        _render_generate_certs,
    )

    services = sub.add_parser("services", help="Background services")
    svc_sub = services.add_subparsers(dest="services_cmd", required=True)
    leaf(svc_sub, "list", "List services and their status", "services list", _services_list, _render_services_list)
    for action in ("start", "stop", "restart"):
        p = leaf(
            svc_sub,
            action,
            f"{action.capitalize()} a service, or every service of the current project",
            f"services {action}",
            _service_action(action),
            _render_service_action,
        )
        p.add_argument("name", nargs="?", default=None, help="Service name, or <project-slug>/<name>; omit for all")
    st = leaf(svc_sub, "status", "Show status and recent logs", "services status", _services_status, _render_service_status)
    st.add_argument("name", help="Service name, or <project-slug>/<name>")
    logs = leaf(svc_sub, "logs", "Show service logs", "services logs", _services_logs, _render_logs)
    logs.add_argument("name", help="Service name, or <project-slug>/<name>")
    logs.add_argument("-n", "--lines", type=int, default=DEFAULT_LOG_LINES, help=f"Number of lines (default: {DEFAULT_LOG_LINES})")
    logs.add_argument("-f", "--follow", action="store_true", help="Follow the log until interrupted")
    td = leaf(svc_sub, "teardown", "Unload services and remove generated files", "services teardown", _services_teardown, _render_teardown)
    td.add_argument("--global", dest="global_", action="store_true", help="All denvig services, not only this project's")
    td.add_argument("--remove-logs", action="store_true", help="Also delete service log files")
    return parser


def run(argv: Optional[List[str]] = None, *, ctx: Optional[CliContext] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    verbosity = int(getattr(args, "verbose", 0) or 0)
    _configure_console_logging(logging.DEBUG if verbosity >= 2 else logging.INFO if verbosity == 1 else logging.WARNING)

    if getattr(args, "follow", False) and args.json:
        parser.error("--json cannot be combined with --follow")

    ctx = ctx or CliContext.from_env()
    tracker = CliLogTracker(ctx.root, command=args.command_name, path=str(ctx.cwd))

    try:
        ok, payload = args.handler(args, ctx)
    except DenvigError as e:
        logger.debug("%s failed", args.command_name, exc_info=True)
        ok, payload = _fail(str(e))
    except KeyboardInterrupt:
        ok, payload = _fail("Interrupted")

    if args.json:
        print(json.dumps(payload, ensure_ascii=False, indent=2, default=str))
    elif ok or (isinstance(payload, dict) and isinstance(payload.get("services"), list)):
        # Batch results (configure, teardown, bulk actions) are rendered even when one entry failed.
        for line in args.render(payload):
            print(line)
    else:
        message = payload.get("message") if isinstance(payload, dict) else None
        _stderr(str(message or "Command failed"))

    code = 0 if ok else 1
    tracker.finish(code)
    return code


def main(argv: Optional[List[str]] = None) -> None:
    raise SystemExit(run(argv))


if __name__ == "__main__":  # pragma: no cover
    main()
