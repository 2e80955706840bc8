from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass, field
from typing import List, Optional

from .errors import ExternalCommandError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CommandOutcome:
    """Result of invoking an OS utility. `output` is stdout, or stderr when stdout is empty."""

    success: bool
    output: str = ""
    returncode: Optional[int] = None
    args: List[str] = field(default_factory=list)

    def check(self) -> "CommandOutcome":
        if not self.success:
            raise ExternalCommandError(self.args, self.returncode, self.output)
        return self


def run_command(args: List[str], *, inherit: bool = False, timeout: Optional[float] = None) -> CommandOutcome:
    """Run `args` without a shell.

    With `inherit=True` the child shares the terminal (sudo password prompts) and
    no output is captured.
    """
    argv = [str(a) for a in args]
    try:
        if inherit:
            proc = subprocess.run(argv, check=False, timeout=timeout)
            return CommandOutcome(success=proc.returncode == 0, returncode=proc.returncode, args=argv)
        proc = subprocess.run(
            argv,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            timeout=timeout,
            check=False,
        )
    except FileNotFoundError as e:
        logger.debug("command not found: %s", argv[0])
        return CommandOutcome(success=False, output=str(e), returncode=None, args=argv)
    except subprocess.TimeoutExpired as e:
        return CommandOutcome(success=False, output=f"Timed out after {e.timeout}s: {' '.join(argv)}", args=argv)

    stdout = str(proc.stdout or "")
    stderr = str(proc.stderr or "")
    if proc.returncode == 0:
        return CommandOutcome(success=True, output=stdout or stderr, returncode=0, args=argv)
    return CommandOutcome(success=False, output=(stderr or stdout).strip(), returncode=proc.returncode, args=argv)
