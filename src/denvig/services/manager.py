"""Service lifecycle: render launch artifacts, register with the OS, report status.

Each service owns `~/.denvig/services/<projectId>.<name>/` holding the wrapper
script, the plist and `logs/`. Both artifacts are rewritten in full on every
start. Starting never waits for the process to come up; status is read back
from the registry on demand.
"""

from __future__ import annotations

import collections
import datetime
import logging
import os
import re
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from ..certs.store import CertStore
from ..errors import ConfigError, ServiceNotFoundError
from ..gateway.certs import ensure_service_certs
from ..paths import StoreRoot
from ..project import GLOBAL_PROJECT_ID, Project, ServiceDefinition
from ..shell import CommandOutcome, run_command
from .env import DEFAULT_ENV_FILES, load_env_files
from .launchctl import RegistryInfo, ServiceRegistry
from .plist import WRAPPER_SCRIPT_NAME, PlistOptions, generate_plist, generate_wrapper_script
from .results import ServiceResult, TeardownResult
from .teardown import LABEL_PREFIX, teardown_global

logger = logging.getLogger(__name__)

DEFAULT_LOG_LINES = 10
STATUS_LOG_LINES = 20

_LABEL_UNSAFE_RE = re.compile(r"[^A-Za-z0-9_-]")

Runner = Callable[..., CommandOutcome]


@dataclass(frozen=True)
class ServiceResponse:
    name: str
    project: Dict[str, Any]
    status: str  # running | stopped | error
    pid: Optional[int]
    url: Optional[str]
    command: str
    cwd: str
    log_path: str
    env_files: List[str]
    last_exit_code: Optional[int]
    logs: Optional[List[str]] = None

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "name": self.name,
            "project": dict(self.project),
            "status": self.status,
            "pid": self.pid,
            "url": self.url,
            "command": self.command,
            "cwd": self.cwd,
            "logPath": self.log_path,
            "envFiles": list(self.env_files),
            "lastExitCode": self.last_exit_code,
        }
        if self.logs is not None:
            out["logs"] = list(self.logs)
        return out


def derive_status(info: Optional[RegistryInfo]) -> str:
    if info is None:
        return "stopped"
    if info.running:
        return "running"
    # Loaded but not running: launchd gave up on it or it exited with a failure.
    if info.last_exit_code == 0:
        return "stopped"
    return "error"


def _now_iso() -> str:
    return datetime.datetime.now(datetime.timezone.utc).isoformat().replace("+00:00", "Z")


class ServiceManager:
    def __init__(
        self,
        project: Project,
        root: StoreRoot,
        registry: ServiceRegistry,
        *,
        store: Optional[CertStore] = None,
        launch_agents_dir: Optional[Path] = None,
        rebootstrap_delay_s: float = 1.0,
        runner: Optional[Runner] = None,
    ):
        self.project = project
        self.root = root
        self.registry = registry
        self.store = store or CertStore(root)
        self.launch_agents_dir = launch_agents_dir
        self.rebootstrap_delay_s = float(rebootstrap_delay_s)
        self._run = runner or run_command

    # Paths and labels

    def get_service(self, name: str) -> ServiceDefinition:
        svc = self.project.services.get(name)
        if svc is None:
            raise ServiceNotFoundError(name)
        return svc

    def get_service_label(self, name: str) -> str:
        return f"{LABEL_PREFIX}{self.project.id}.{_LABEL_UNSAFE_RE.sub('-', name)}"

    def get_service_dir(self, name: str) -> Path:
        return self.root.services_dir / f"{self.project.id}.{name}"

    def get_wrapper_path(self, name: str) -> Path:
        return self.get_service_dir(name) / WRAPPER_SCRIPT_NAME

    def get_plist_path(self, name: str) -> Path:
        label = self.get_service_label(name)
        svc = self.project.services.get(name)
        if svc is not None and svc.start_on_boot and self.launch_agents_dir is not None:
            return Path(self.launch_agents_dir) / f"{label}.plist"
        return self.get_service_dir(name) / f"{label}.plist"

    def get_log_path(self, name: str, stream: str = "stdout") -> Path:
        if stream not in {"stdout", "stderr"}:
            raise ValueError(f"Unknown log stream: {stream}")
        return self.get_service_dir(name) / "logs" / f"{stream}.log"

    def resolve_cwd(self, svc: ServiceDefinition) -> Path:
        return (self.project.path / (svc.cwd or ".")).resolve()

    def get_service_url(self, name: str) -> Optional[str]:
        svc = self.project.services.get(name)
        if svc is None or svc.http is None:
            return None
        if svc.http.domain:
            scheme = "https" if svc.http.secure else "http"
            return f"{scheme}://{svc.http.domain}"
        if svc.http.port:
            return f"http://localhost:{svc.http.port}"
        return None

    def list_services(self) -> List[Dict[str, Any]]:
        out: List[Dict[str, Any]] = []
        for name, svc in self.project.services.items():
            item: Dict[str, Any] = {
                "name": name,
                "cwd": str(self.resolve_cwd(svc)),
                "command": svc.command,
                "startOnBoot": svc.start_on_boot,
            }
            if svc.http is not None:
                item["http"] = {"port": svc.http.port, "domain": svc.http.domain, "secure": svc.http.secure}
            out.append(item)
        return out

    # Environment

    def env_file_paths(self, svc: ServiceDefinition) -> List[Path]:
        cwd = self.resolve_cwd(svc)
        names = svc.env_files if svc.env_files is not None else DEFAULT_ENV_FILES
        return [cwd / n for n in names]

    def build_environment(self, name: str) -> Dict[str, str]:
        """DENVIG_* markers, then env files, then explicit `env`, then PORT."""
        svc = self.get_service(name)
        env: Dict[str, str] = {"DENVIG_PROJECT": self.project.slug, "DENVIG_SERVICE": name}
        # Declared env files must exist; the defaults are optional.
        env.update(load_env_files(self.env_file_paths(svc), skip_missing=svc.env_files is None))
        env.update(svc.env)
        if svc.http is not None and svc.http.port is not None:
            env["PORT"] = str(svc.http.port)
        return env

    # Lifecycle

    def _append_marker(self, name: str, text: str) -> None:
        path = self.get_log_path(name, "stdout")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(path, "a", encoding="utf-8") as f:
                f.write(f"[{_now_iso()}] {text}\n")
        except OSError as e:
            logger.debug("Could not append %r to %s: %s", text, path, e)

    def is_registered(self, name: str) -> bool:
        return self.registry.info(self.get_service_label(name)) is not None

    def _write_artifacts(self, name: str, svc: ServiceDefinition, env: Dict[str, str], cwd: Path) -> Path:
        service_dir = self.get_service_dir(name)
        (service_dir / "logs").mkdir(parents=True, exist_ok=True)

        wrapper = self.get_wrapper_path(name)
        wrapper.write_text(generate_wrapper_script(svc.command), encoding="utf-8")
        os.chmod(wrapper, 0o755)

        label = self.get_service_label(name)
        plist_path = self.get_plist_path(name)
        plist_path.parent.mkdir(parents=True, exist_ok=True)
        plist_path.write_bytes(
            generate_plist(
                PlistOptions(
                    label=label,
                    wrapper_path=wrapper,
                    working_directory=cwd,
                    standard_out_path=self.get_log_path(name, "stdout"),
                    standard_error_path=self.get_log_path(name, "stderr"),
                    environment_variables=env,
                    keep_alive=svc.keep_alive,
                )
            )
        )
        # Drop a descriptor left in the other location after startOnBoot changed.
        for stale in (service_dir / f"{label}.plist", Path(self.launch_agents_dir or service_dir) / f"{label}.plist"):
            if stale != plist_path and stale.is_file():
                stale.unlink()
        return plist_path

    def start_service(self, name: str) -> ServiceResult:
        svc = self.project.services.get(name)
        if svc is None:
            return ServiceResult(name=name, success=False, message=str(ServiceNotFoundError(name)))

        warnings: List[str] = []
        if svc.http is not None and svc.http.secure:
            coverage = ensure_service_certs(self.store, svc)
            if not coverage.ok:
                warnings.append(f"TLS: {coverage.message}")
                logger.warning("Service %s: %s", name, coverage.message)

        try:
            env = self.build_environment(name)
        except ConfigError as e:
            return ServiceResult(name=name, success=False, message=f"Failed to load environment file: {e}")

        cwd = self.resolve_cwd(svc)
        if not cwd.is_dir():
            if self.project.id != GLOBAL_PROJECT_ID:
                return ServiceResult(name=name, success=False, message=f"Working directory does not exist: {cwd}")
            cwd.mkdir(parents=True, exist_ok=True)

        label = self.get_service_label(name)
        try:
            plist_path = self._write_artifacts(name, svc, env, cwd)
        except OSError as e:
            return ServiceResult(name=name, success=False, message=f"Failed to write service files: {e}")

        if self.registry.info(label) is not None:
            out = self.registry.unregister(label)
            if not out.success:
                return ServiceResult(name=name, success=False, message=f"Failed to bootout service: {out.output}")
            if self.rebootstrap_delay_s > 0:
                time.sleep(self.rebootstrap_delay_s)

        out = self.registry.register(label, plist_path)
        if not out.success:
            return ServiceResult(name=name, success=False, message=f"Failed to bootstrap service: {out.output}")

        self._append_marker(name, "Service Started")
        return ServiceResult(name=name, success=True, message="Service started successfully", warnings=warnings)

    def stop_service(self, name: str) -> ServiceResult:
        if name not in self.project.services:
            return ServiceResult(name=name, success=False, message=str(ServiceNotFoundError(name)))

        label = self.get_service_label(name)
        if self.registry.info(label) is None:
            return ServiceResult(name=name, success=True, message=f'Service "{name}" is not running')

        out = self.registry.unregister(label)
        if not out.success:
            return ServiceResult(name=name, success=False, message=f"Failed to stop service: {out.output}")

        self._append_marker(name, "Service Stopped")
        return ServiceResult(name=name, success=True, message="Service stopped successfully")

    def restart_service(self, name: str) -> ServiceResult:
        if name not in self.project.services:
            return ServiceResult(name=name, success=False, message=str(ServiceNotFoundError(name)))
        if self.is_registered(name):
            stopped = self.stop_service(name)
            if not stopped.success:
                return stopped
        return self.start_service(name)

    def start_all(self) -> List[ServiceResult]:
        return [self.start_service(name) for name in self.project.services]

    def stop_all(self) -> List[ServiceResult]:
        return [self.stop_service(name) for name in self.project.services if self.is_registered(name)]

    def restart_all(self) -> List[ServiceResult]:
        return [self.restart_service(name) for name in self.project.services if self.is_registered(name)]

    def teardown_all(self, *, remove_logs: bool = False) -> TeardownResult:
        return teardown_global(
            self.root,
            self.registry,
            project_id=self.project.id,
            remove_logs=remove_logs,
            launch_agents_dir=self.launch_agents_dir,
        )

    # Status and logs

    def get_recent_logs(self, name: str, lines: int = DEFAULT_LOG_LINES) -> List[str]:
        path = self.get_log_path(name, "stdout")
        n = max(0, int(lines))
        if n == 0:
            return []
        try:
            with open(path, "r", encoding="utf-8", errors="replace") as f:
                tail = collections.deque((line.rstrip("\n") for line in f), maxlen=n)
        except OSError:
            return []
        while tail and not tail[-1].strip():
            tail.pop()
        return list(tail)

    def follow_logs(self, name: str, lines: int = DEFAULT_LOG_LINES) -> int:
        """Stream the log through `tail -f` until interrupted; returns tail's exit code."""
        self.get_service(name)
        path = self.get_log_path(name, "stdout")
        path.parent.mkdir(parents=True, exist_ok=True)
        path.touch(exist_ok=True)
        outcome = self._run(["tail", "-n", str(int(lines)), "-f", str(path)], inherit=True)
        if outcome.returncode is None:
            return 0 if outcome.success else 1
        return int(outcome.returncode)

    def get_service_response(
        self, name: str, *, include_logs: bool = False, log_lines: int = STATUS_LOG_LINES
    ) -> Optional[ServiceResponse]:
        svc = self.project.services.get(name)
        if svc is None:
            return None
        info = self.registry.info(self.get_service_label(name))
        return ServiceResponse(
            name=name,
            project={
                "id": self.project.id,
                "slug": self.project.slug,
                "name": self.project.name or self.project.slug,
                "path": str(self.project.path),
            },
            status=derive_status(info),
            pid=info.pid if info is not None and info.running else None,
            url=self.get_service_url(name),
            command=svc.command,
            cwd=str(self.resolve_cwd(svc)),
            log_path=str(self.get_log_path(name, "stdout")),
            env_files=[str(p) for p in self.env_file_paths(svc)],
            last_exit_code=info.last_exit_code if info is not None else None,
            logs=self.get_recent_logs(name, log_lines) if include_logs else None,
        )
