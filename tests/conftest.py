from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import pytest

from denvig.certs.authority import CaMaterial, generate_ca_cert
from denvig.certs.store import CertStore
from denvig.paths import StoreRoot
from denvig.services.launchctl import RegistryEntry, RegistryInfo
from denvig.shell import CommandOutcome


@pytest.fixture(autouse=True)
def _isolate_denvig_env(monkeypatch: pytest.MonkeyPatch, tmp_path_factory: pytest.TempPathFactory) -> None:
    # Never touch a developer's real ~/.denvig or nginx directory.
    for name in (
        "DENVIG_GLOBAL_CONFIG_PATH",
        "DENVIG_GATEWAY_CONFIGS_PATH",
        "DENVIG_NGINX_BIN",
        "DENVIG_CLI_LOGS_PATH",
    ):
        monkeypatch.delenv(name, raising=False)
    base = Path(str(tmp_path_factory.mktemp("denvig-test-home")))
    monkeypatch.setenv("DENVIG_HOME", str(base))
    monkeypatch.setenv("DENVIG_CLI_LOGS_ENABLED", "0")


@pytest.fixture
def store_root(tmp_path: Path) -> StoreRoot:
    return StoreRoot.from_env(tmp_path / "denvig-home")


@pytest.fixture
def cert_store(store_root: StoreRoot) -> CertStore:
    return CertStore(store_root)


@pytest.fixture(scope="session")
def local_ca() -> CaMaterial:
    # RSA generation is slow; one CA per session.
    return generate_ca_cert()


@pytest.fixture
def initialized_store(cert_store: CertStore, local_ca: CaMaterial) -> CertStore:
    cert_store.write_ca_files(local_ca.cert_pem, local_ca.key_pem)
    return cert_store


class FakeRegistry:
    """In-memory stand-in for launchctl."""

    def __init__(self) -> None:
        self.loaded: Dict[str, Path] = {}
        self.calls: List[Tuple[str, str]] = []
        self.fail_register: Optional[str] = None
        self.fail_unregister: Optional[str] = None
        self.states: Dict[str, RegistryInfo] = {}

    def register(self, label: str, descriptor_path: Path) -> CommandOutcome:
        self.calls.append(("register", label))
        if self.fail_register is not None:
            return CommandOutcome(success=False, output=self.fail_register, returncode=5)
        if label in self.loaded:
            return CommandOutcome(success=False, output="Bootstrap failed: 5: Input/output error", returncode=5)
        self.loaded[label] = Path(descriptor_path)
        return CommandOutcome(success=True)

    def unregister(self, label: str) -> CommandOutcome:
        self.calls.append(("unregister", label))
        if self.fail_unregister is not None:
            return CommandOutcome(success=False, output=self.fail_unregister, returncode=3)
        if label not in self.loaded:
            return CommandOutcome(success=False, output="Boot-out failed: 3: No such process", returncode=3)
        del self.loaded[label]
        self.states.pop(label, None)
        return CommandOutcome(success=True)

    def list(self, prefix: str = "") -> List[RegistryEntry]:
        return [RegistryEntry(label=label) for label in sorted(self.loaded) if label.startswith(prefix)]

    def info(self, label: str) -> Optional[RegistryInfo]:
        if label not in self.loaded:
            return None
        return self.states.get(label) or RegistryInfo(label=label, state="running", pid=4242)


class FakeTrustStore:
    def __init__(self, *, trusted: bool = True, succeed: bool = True) -> None:
        self.trusted = trusted
        self.succeed = succeed
        self.calls: List[Tuple[str, str]] = []

    def install(self, ca_cert_path: Path) -> CommandOutcome:
        self.calls.append(("install", str(ca_cert_path)))
        return CommandOutcome(success=self.succeed, returncode=0 if self.succeed else 1)

    def uninstall(self, ca_cert_path: Path) -> CommandOutcome:
        self.calls.append(("uninstall", str(ca_cert_path)))
        return CommandOutcome(success=self.succeed, returncode=0 if self.succeed else 1)

    def is_trusted(self, ca_cert_path: Path) -> bool:
        return self.trusted and Path(ca_cert_path).is_file()


class FakeProxy:
    def __init__(self) -> None:
        self.reloads = 0

    def reload(self) -> CommandOutcome:
        self.reloads += 1
        return CommandOutcome(success=True)

    def status(self) -> Dict[str, Any]:
        return {"running": True, "pid": 99, "status": "started"}


@pytest.fixture
def fake_registry() -> FakeRegistry:
    return FakeRegistry()


@pytest.fixture
def fake_trust() -> FakeTrustStore:
    return FakeTrustStore()


@pytest.fixture
def fake_proxy() -> FakeProxy:
    return FakeProxy()


def write_project(path: Path, yaml_text: str) -> Path:
    path.mkdir(parents=True, exist_ok=True)
    (path / ".denvig.yml").write_text(yaml_text, encoding="utf-8")
    return path
