from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional


def _default_home_dir() -> Path:
    raw = str(os.getenv("DENVIG_HOME") or "").strip()
    if raw:
        return Path(raw).expanduser().resolve()
    return (Path.home() / ".denvig").resolve()


@dataclass(frozen=True)
class StoreRoot:
    """Root of everything denvig writes under the user's home directory.

    Components receive a StoreRoot explicitly instead of reading HOME, so tests
    can point the whole tool at a temporary directory.
    """

    home_dir: Path

    @classmethod
    def from_env(cls, home_dir: Optional[Path] = None) -> "StoreRoot":
        if home_dir is not None:
            return cls(home_dir=Path(home_dir).expanduser().resolve())
        return cls(home_dir=_default_home_dir())

    @property
    def ca_dir(self) -> Path:
        return self.home_dir / "ca"

    @property
    def certs_dir(self) -> Path:
        return self.home_dir / "certs"

    @property
    def services_dir(self) -> Path:
        return self.home_dir / "services"

    @property
    def logs_dir(self) -> Path:
        return self.home_dir / "logs"

    @property
    def gateway_dir(self) -> Path:
        return self.home_dir / "gateway"

    @property
    def gateway_html_dir(self) -> Path:
        return self.gateway_dir / "html"

    @property
    def config_path(self) -> Path:
        raw = str(os.getenv("DENVIG_GLOBAL_CONFIG_PATH") or "").strip()
        if raw:
            return Path(raw).expanduser().resolve()
        return self.home_dir / "config.yml"
