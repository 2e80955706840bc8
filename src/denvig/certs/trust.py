from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, List, Optional

from ..shell import CommandOutcome, run_command

logger = logging.getLogger(__name__)

SYSTEM_KEYCHAIN = "/Library/Keychains/System.keychain"

Runner = Callable[..., CommandOutcome]


class TrustStore:
    """Operating-system trust store for the local root CA."""

    def install(self, ca_cert_path: Path) -> CommandOutcome:
        raise NotImplementedError

    def uninstall(self, ca_cert_path: Path) -> CommandOutcome:
        raise NotImplementedError

    def is_trusted(self, ca_cert_path: Path) -> bool:
        raise NotImplementedError


class KeychainTrustStore(TrustStore):
    """macOS System keychain via `security`.

    Install/uninstall run under sudo and share the terminal for the password prompt.
    """

    def __init__(self, *, runner: Optional[Runner] = None):
        self._run = runner or run_command

    def install(self, ca_cert_path: Path) -> CommandOutcome:
        args: List[str] = [
            "sudo",
            "security",
            "add-trusted-cert",
            "-d",
            "-r",
            "trustRoot",
            "-k",
            SYSTEM_KEYCHAIN,
            str(ca_cert_path),
        ]
        outcome = self._run(args, inherit=True)
        if not outcome.success:
            logger.warning("Installing CA into keychain failed (exit %s)", outcome.returncode)
        return outcome

    def uninstall(self, ca_cert_path: Path) -> CommandOutcome:
        outcome = self._run(["sudo", "security", "remove-trusted-cert", "-d", str(ca_cert_path)], inherit=True)
        if not outcome.success:
            logger.warning("Removing CA from keychain failed (exit %s)", outcome.returncode)
        return outcome

    def is_trusted(self, ca_cert_path: Path) -> bool:
        if not Path(ca_cert_path).is_file():
            return False
        return self._run(["security", "verify-cert", "-c", str(ca_cert_path)]).success
