from __future__ import annotations

import datetime
import stat
from pathlib import Path

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import NameOID

from conftest import FakeTrustStore
from denvig.certs.authority import CaMaterial, generate_domain_cert
from denvig.certs.store import CertStore
from denvig.errors import CertificateError


def _self_signed(cn: str, *, days: int = 30, expired: bool = False) -> tuple[str, str]:
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, cn)])
    now = datetime.datetime.now(datetime.timezone.utc)
    start = now - datetime.timedelta(days=days * 2) if expired else now
    end = now - datetime.timedelta(days=1) if expired else now + datetime.timedelta(days=days)
    cert = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(start)
        .not_valid_after(end)
        .sign(key, hashes.SHA256())
    )
    key_pem = key.private_bytes(
        serialization.Encoding.PEM, serialization.PrivateFormat.PKCS8, serialization.NoEncryption()
    ).decode("ascii")
    return key_pem, cert.public_bytes(serialization.Encoding.PEM).decode("ascii")


@pytest.mark.basic
def test_cert_dir_maps_leading_wildcard(cert_store: CertStore) -> None:
    assert cert_store.cert_dir("*.example.localhost").name == "_wildcard.example.localhost"
    assert cert_store.cert_dir("app.localhost").name == "app.localhost"
    assert cert_store.cert_dir("sub.*.example.com").name == "sub.*.example.com"
    assert "_wildcard" not in str(cert_store.cert_dir("sub.*.example.com"))


@pytest.mark.basic
def test_write_ca_files_sets_permissions(cert_store: CertStore, local_ca: CaMaterial) -> None:
    assert not cert_store.is_ca_initialized()
    cert_store.write_ca_files(local_ca.cert_pem, local_ca.key_pem)
    assert cert_store.is_ca_initialized()
    assert stat.S_IMODE(cert_store.ca_key_path.stat().st_mode) == 0o600
    assert stat.S_IMODE(cert_store.ca_cert_path.stat().st_mode) == 0o644
    assert cert_store.ca_cert_path.name == "rootCA.pem"
    assert cert_store.ca_key_path.name == "rootCA-key.pem"


@pytest.mark.basic
def test_import_cert_uses_detected_domain(cert_store: CertStore, tmp_path: Path) -> None:
    key_pem, cert_pem = _self_signed("imported.localhost")
    (tmp_path / "k.pem").write_text(key_pem, encoding="utf-8")
    (tmp_path / "c.pem").write_text(cert_pem, encoding="utf-8")

    imported = cert_store.import_cert(tmp_path / "k.pem", tmp_path / "c.pem")
    assert imported.domain == "imported.localhost"
    assert imported.cert_dir == cert_store.certs_dir / "imported.localhost"
    assert imported.fullchain.read_text(encoding="utf-8") == cert_pem
    assert stat.S_IMODE(imported.privkey.stat().st_mode) == 0o600

    renamed = cert_store.import_cert(tmp_path / "k.pem", tmp_path / "c.pem", name="custom")
    assert renamed.cert_dir == cert_store.certs_dir / "custom"


@pytest.mark.basic
def test_import_cert_rejects_names_outside_the_store(cert_store: CertStore, tmp_path: Path) -> None:
    key_pem, cert_pem = _self_signed("x.localhost")
    (tmp_path / "k.pem").write_text(key_pem, encoding="utf-8")
    (tmp_path / "c.pem").write_text(cert_pem, encoding="utf-8")

    for name in ("../escaped", "nested/dir", ".."):
        with pytest.raises(CertificateError, match="Invalid certificate name"):
            cert_store.import_cert(tmp_path / "k.pem", tmp_path / "c.pem", name=name)
    assert not (cert_store.certs_dir.parent / "escaped").exists()
    assert not (cert_store.certs_dir / "nested").exists()


@pytest.mark.basic
def test_import_cert_errors(cert_store: CertStore, tmp_path: Path) -> None:
    key_pem, cert_pem = _self_signed("x.localhost")
    (tmp_path / "k.pem").write_text(key_pem, encoding="utf-8")
    (tmp_path / "c.pem").write_text(cert_pem, encoding="utf-8")
    (tmp_path / "junk.pem").write_text("not a cert", encoding="utf-8")

    with pytest.raises(CertificateError, match="certificate file"):
        cert_store.import_cert(tmp_path / "k.pem", tmp_path / "missing.pem")
    with pytest.raises(CertificateError, match="private key"):
        cert_store.import_cert(tmp_path / "missing-key.pem", tmp_path / "c.pem")
    with pytest.raises(CertificateError, match="Could not determine domain"):
        cert_store.import_cert(tmp_path / "k.pem", tmp_path / "junk.pem")
    assert not cert_store.certs_dir.exists() or not any(cert_store.certs_dir.iterdir())


@pytest.mark.basic
def test_list_certificates_statuses(initialized_store: CertStore, local_ca: CaMaterial, tmp_path: Path) -> None:
    store = initialized_store
    local = generate_domain_cert("*.example.localhost", local_ca.cert, local_ca.key)
    store.write_domain_cert_files("*.example.localhost", local.privkey, local.fullchain)

    key_pem, cert_pem = _self_signed("other.localhost")
    (tmp_path / "k.pem").write_text(key_pem, encoding="utf-8")
    (tmp_path / "c.pem").write_text(cert_pem, encoding="utf-8")
    store.import_cert(tmp_path / "k.pem", tmp_path / "c.pem")

    key_pem, cert_pem = _self_signed("old.localhost", expired=True)
    (tmp_path / "k2.pem").write_text(key_pem, encoding="utf-8")
    (tmp_path / "c2.pem").write_text(cert_pem, encoding="utf-8")
    store.import_cert(tmp_path / "k2.pem", tmp_path / "c2.pem")

    (store.certs_dir / "empty-dir").mkdir()

    trusted = {e.name: e for e in store.list_certificates(FakeTrustStore(trusted=True))}
    assert sorted(trusted) == ["_wildcard.example.localhost", "old.localhost", "other.localhost"]
    assert trusted["_wildcard.example.localhost"].status == "valid (local-ca)"
    assert trusted["_wildcard.example.localhost"].domains == ["*.example.localhost"]
    assert trusted["other.localhost"].status == "valid (other.localhost)"
    assert trusted["old.localhost"].status == "expired"

    untrusted = {e.name: e for e in store.list_certificates(FakeTrustStore(trusted=False))}
    assert untrusted["_wildcard.example.localhost"].status == "untrusted"

    entry = trusted["other.localhost"].to_dict()
    assert set(entry) == {"name", "domains", "expires", "status"}


@pytest.mark.basic
def test_list_certificates_without_ca(cert_store: CertStore) -> None:
    assert cert_store.list_certificates() == []


@pytest.mark.basic
def test_remove_cert(initialized_store: CertStore, local_ca: CaMaterial) -> None:
    store = initialized_store
    material = generate_domain_cert("app.localhost", local_ca.cert, local_ca.key)
    cert_dir = store.write_domain_cert_files("app.localhost", material.privkey, material.fullchain)

    assert store.remove_cert("app.localhost") == cert_dir
    assert not cert_dir.exists()

    with pytest.raises(CertificateError, match="not found"):
        store.remove_cert("app.localhost")
    with pytest.raises(CertificateError):
        store.remove_cert("../ca")
    assert store.ca_cert_path.is_file()
