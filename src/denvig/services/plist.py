"""Launch descriptor (plist) and wrapper script generation."""

from __future__ import annotations

import plistlib
import shlex
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict

WRAPPER_SCRIPT_NAME = "run.sh"


@dataclass(frozen=True)
class PlistOptions:
    label: str
    wrapper_path: Path
    working_directory: Path
    standard_out_path: Path
    standard_error_path: Path
    environment_variables: Dict[str, str] = field(default_factory=dict)
    keep_alive: bool = True
    run_at_load: bool = True


def generate_wrapper_script(command: str) -> str:
    """Bash wrapper that runs `command` in a login shell.

    Every output line (stderr merged into stdout) is prefixed with a UTC timestamp.
    """
    return (
        "#!/bin/bash\n"
        "# Generated by denvig; rewritten on every start.\n"
        "exec > >(while IFS= read -r line || [ -n \"$line\" ]; do "
        "printf '[%s] %s\\n' \"$(date -u +%Y-%m-%dT%H:%M:%SZ)\" \"$line\"; done) 2>&1\n"
        f"exec /bin/bash -lc {shlex.quote(str(command).strip())}\n"
    )


def plist_payload(opts: PlistOptions) -> Dict[str, Any]:
    return {
        "Label": opts.label,
        "ProgramArguments": [str(opts.wrapper_path)],
        "WorkingDirectory": str(opts.working_directory),
        "EnvironmentVariables": {str(k): str(v) for k, v in opts.environment_variables.items()},
        "StandardOutPath": str(opts.standard_out_path),
        "StandardErrorPath": str(opts.standard_error_path),
        "KeepAlive": bool(opts.keep_alive),
        "RunAtLoad": bool(opts.run_at_load),
    }


def generate_plist(opts: PlistOptions) -> bytes:
    return plistlib.dumps(plist_payload(opts), fmt=plistlib.FMT_XML, sort_keys=False)
