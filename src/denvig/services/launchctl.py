"""OS service registry backed by macOS `launchctl` (per-user `gui/<uid>` domain)."""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional

from ..shell import CommandOutcome, run_command

logger = logging.getLogger(__name__)

Runner = Callable[..., CommandOutcome]

_PID_RE = re.compile(r"\bpid\s*=\s*(\d+)")
_STATE_RE = re.compile(r"^\s*state\s*=\s*(.+?)\s*$", re.MULTILINE)
_EXIT_RE = re.compile(r"last exit code\s*=\s*(-?\d+)")


@dataclass(frozen=True)
class RegistryEntry:
    label: str
    pid: Optional[int] = None
    status: Optional[int] = None


@dataclass(frozen=True)
class RegistryInfo:
    label: str
    state: str = "unknown"
    pid: Optional[int] = None
    last_exit_code: Optional[int] = None

    @property
    def running(self) -> bool:
        return self.state == "running"


class ServiceRegistry:
    """Narrow view of the OS launch-agent mechanism.

    `register` loads a descriptor and starts it; `unregister` stops and unloads
    it. Failures are returned with the tool's raw output, never interpreted.
    """

    def register(self, label: str, descriptor_path: Path) -> CommandOutcome:
        raise NotImplementedError

    def unregister(self, label: str) -> CommandOutcome:
        raise NotImplementedError

    def list(self, prefix: str = "") -> List[RegistryEntry]:
        raise NotImplementedError

    def info(self, label: str) -> Optional[RegistryInfo]:
        raise NotImplementedError


def parse_print_output(output: str, label: str) -> RegistryInfo:
    text = str(output or "")
    pid = _PID_RE.search(text)
    state = _STATE_RE.search(text)
    code = _EXIT_RE.search(text)
    return RegistryInfo(
        label=label,
        state=state.group(1) if state else "unknown",
        pid=int(pid.group(1)) if pid else None,
        last_exit_code=int(code.group(1)) if code else None,
    )


def parse_list_output(output: str, prefix: str = "") -> List[RegistryEntry]:
    """Parse `launchctl list` (header line, then `PID Status Label` columns)."""
    entries: List[RegistryEntry] = []
    lines = str(output or "").strip().splitlines()
    for line in lines[1:]:
        parts = line.split()
        if len(parts) < 3:
            continue
        pid_raw, status_raw, label = parts[0], parts[1], parts[2]
        if prefix and not label.startswith(prefix):
            continue
        try:
            status: Optional[int] = int(status_raw)
        except ValueError:
            status = None
        entries.append(RegistryEntry(label=label, pid=int(pid_raw) if pid_raw.isdigit() else None, status=status))
    return entries


class LaunchctlRegistry(ServiceRegistry):
    def __init__(self, *, uid: Optional[int] = None, runner: Optional[Runner] = None):
        self.uid = os.getuid() if uid is None else int(uid)
        self._run = runner or run_command

    @property
    def domain(self) -> str:
        return f"gui/{self.uid}"

    def register(self, label: str, descriptor_path: Path) -> CommandOutcome:
        outcome = self._run(["launchctl", "bootstrap", self.domain, str(descriptor_path)])
        if outcome.success:
            logger.info("Registered %s", label)
        return outcome

    def unregister(self, label: str) -> CommandOutcome:
        outcome = self._run(["launchctl", "bootout", f"{self.domain}/{label}"])
        if outcome.success:
            logger.info("Unregistered %s", label)
        return outcome

    def list(self, prefix: str = "") -> List[RegistryEntry]:
        outcome = self._run(["launchctl", "list"])
        if not outcome.success:
            logger.warning("launchctl list failed: %s", outcome.output)
            return []
        return parse_list_output(outcome.output, prefix)

    def info(self, label: str) -> Optional[RegistryInfo]:
        outcome = self._run(["launchctl", "print", f"{self.domain}/{label}"])
        if not outcome.success:
            return None
        return parse_print_output(outcome.output, label)
