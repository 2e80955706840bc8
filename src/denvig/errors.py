from __future__ import annotations

from typing import List, Optional


class DenvigError(Exception):
    """Base class for errors raised by denvig components."""


class ConfigError(DenvigError):
    pass


class CaNotInitializedError(DenvigError):
    def __init__(self, message: str = "Local CA is not initialized. Run: denvig certs init") -> None:
        super().__init__(message)


class ServiceNotFoundError(DenvigError):
    def __init__(self, name: str, project_slug: Optional[str] = None) -> None:
        self.name = name
        self.project_slug = project_slug
        where = f' in project "{project_slug}"' if project_slug else ""
        super().__init__(f'Service "{name}" not found in configuration{where}')


class CertificateError(DenvigError):
    pass


class ExternalCommandError(DenvigError):
    """An OS utility (launchctl, security, nginx) exited non-zero."""

    def __init__(self, args: List[str], returncode: Optional[int], output: str) -> None:
        self.command = list(args)
        self.returncode = returncode
        self.output = str(output or "")
        super().__init__(self.output or f"{' '.join(self.command)} exited with {returncode}")
