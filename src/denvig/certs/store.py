from __future__ import annotations

import datetime
import logging
import os
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

from ..errors import CertificateError
from ..paths import StoreRoot
from .authority import (
    get_cert_expiry,
    get_cert_issuer_cn,
    is_cert_issued_by,
    is_issued_by_local_ca,
    parse_cert_domains,
)

logger = logging.getLogger(__name__)

CA_CERT_FILENAME = "rootCA.pem"
CA_KEY_FILENAME = "rootCA-key.pem"
FULLCHAIN_FILENAME = "fullchain.pem"
PRIVKEY_FILENAME = "privkey.pem"
LEGACY_CERT_FILENAME = "cert.pem"


@dataclass(frozen=True)
class ImportedCert:
    domain: str
    cert_dir: Path
    privkey: Path
    fullchain: Path

    def to_dict(self) -> Dict[str, Any]:
        return {"domain": self.domain, "privkey": str(self.privkey), "fullchain": str(self.fullchain)}


@dataclass(frozen=True)
class CertListEntry:
    name: str
    domains: List[str]
    expires: datetime.datetime
    status: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "domains": list(self.domains),
            "expires": self.expires.isoformat(),
            "status": self.status,
        }


def _write_text(path: Path, text: str, mode: int) -> None:
    path.write_text(text, encoding="utf-8")
    os.chmod(path, mode)


def find_cert_file(cert_dir: Path) -> Optional[Path]:
    """`fullchain.pem`, or the legacy `cert.pem`, inside a store directory."""
    for name in (FULLCHAIN_FILENAME, LEGACY_CERT_FILENAME):
        p = Path(cert_dir) / name
        if p.is_file():
            return p
    return None


class CertStore:
    """On-disk layout of the CA and domain certificates.

    Path helpers are pure; only the write/import/remove methods touch disk.
    """

    def __init__(self, root: StoreRoot):
        self.root = root

    @property
    def ca_dir(self) -> Path:
        return self.root.ca_dir

    @property
    def certs_dir(self) -> Path:
        return self.root.certs_dir

    @property
    def ca_key_path(self) -> Path:
        return self.ca_dir / CA_KEY_FILENAME

    @property
    def ca_cert_path(self) -> Path:
        return self.ca_dir / CA_CERT_FILENAME

    def cert_dir(self, domain: str) -> Path:
        d = str(domain or "").strip()
        if d.startswith("*"):
            d = "_wildcard" + d[1:]
        return self.certs_dir / d

    def is_ca_initialized(self) -> bool:
        return self.ca_cert_path.is_file() and self.ca_key_path.is_file()

    def write_ca_files(self, cert_pem: str, key_pem: str) -> Path:
        self.ca_dir.mkdir(parents=True, exist_ok=True)
        _write_text(self.ca_key_path, key_pem, 0o600)
        _write_text(self.ca_cert_path, cert_pem, 0o644)
        logger.info("Wrote CA files to %s", self.ca_dir)
        return self.ca_dir

    def write_domain_cert_files(self, domain: str, privkey: str, fullchain: str) -> Path:
        cert_dir = self.cert_dir(domain)
        cert_dir.mkdir(parents=True, exist_ok=True)
        _write_text(cert_dir / PRIVKEY_FILENAME, privkey, 0o600)
        _write_text(cert_dir / FULLCHAIN_FILENAME, fullchain, 0o644)
        return cert_dir

    def import_cert(self, key_path: Path, cert_path: Path, name: Optional[str] = None) -> ImportedCert:
        """Copy an externally issued key/cert pair into the store.

        The directory is derived from the certificate's first domain unless `name`
        is given, in which case it is used verbatim as the directory name.
        """
        key_src = Path(key_path).expanduser().resolve()
        cert_src = Path(cert_path).expanduser().resolve()
        try:
            cert_pem = cert_src.read_text(encoding="utf-8")
        except OSError as e:
            raise CertificateError(f"Could not read certificate file: {cert_src}") from e
        if not key_src.is_file():
            raise CertificateError(f"Could not read private key file: {key_src}")

        domains = parse_cert_domains(cert_pem)
        if not domains:
            raise CertificateError("Could not determine domain from certificate.")

        override = str(name or "").strip()
        domain = override or domains[0]
        cert_dir = (self.certs_dir / override) if override else self.cert_dir(domain)
        # Refuse names that escape the certs directory.
        if cert_dir.resolve().parent != self.certs_dir.resolve():
            raise CertificateError(f"Invalid certificate name: {override or domain}")
        cert_dir.mkdir(parents=True, exist_ok=True)

        dest_key = cert_dir / PRIVKEY_FILENAME
        dest_chain = cert_dir / FULLCHAIN_FILENAME
        shutil.copyfile(key_src, dest_key)
        os.chmod(dest_key, 0o600)
        shutil.copyfile(cert_src, dest_chain)
        logger.info("Imported certificate for %s into %s", domain, cert_dir)
        return ImportedCert(domain=domain, cert_dir=cert_dir, privkey=dest_key, fullchain=dest_chain)

    def iter_cert_dirs(self) -> Iterator[Path]:
        if not self.certs_dir.is_dir():
            return
        for entry in sorted(self.certs_dir.iterdir(), key=lambda p: p.name):
            if entry.is_dir():
                yield entry

    def list_certificates(self, trust: Any = None) -> List[CertListEntry]:
        """Describe every parseable certificate in the store.

        `trust` is a `TrustStore`; without one the local CA is reported as untrusted.
        """
        ca_pem: Optional[str] = None
        ca_trusted = False
        if self.is_ca_initialized():
            ca_pem = self.ca_cert_path.read_text(encoding="utf-8")
            if trust is not None:
                ca_trusted = bool(trust.is_trusted(self.ca_cert_path))

        now = datetime.datetime.now(datetime.timezone.utc)
        entries: List[CertListEntry] = []
        for cert_dir in self.iter_cert_dirs():
            cert_file = find_cert_file(cert_dir)
            if cert_file is None:
                continue
            try:
                pem = cert_file.read_text(encoding="utf-8")
                expires = get_cert_expiry(pem)
            except (OSError, CertificateError) as e:
                logger.warning("Skipping unreadable certificate in %s: %s", cert_dir, e)
                continue

            domains = parse_cert_domains(pem)
            signed_by_local = is_cert_issued_by(pem, ca_pem) if ca_pem else is_issued_by_local_ca(pem)
            if expires <= now:
                status = "expired"
            elif signed_by_local:
                status = "valid (local-ca)" if ca_trusted else "untrusted"
            else:
                issuer_cn = get_cert_issuer_cn(pem)
                status = f"valid ({issuer_cn.lower() if issuer_cn else 'unknown'})"

            entries.append(
                CertListEntry(name=cert_dir.name, domains=domains or [cert_dir.name], expires=expires, status=status)
            )
        return entries

    def remove_cert(self, name: str) -> Path:
        n = str(name or "").strip()
        cert_dir = self.certs_dir / n
        # Refuse names that escape the certs directory.
        if not n or cert_dir.resolve().parent != self.certs_dir.resolve() or not cert_dir.is_dir():
            raise CertificateError(f'Certificate "{n}" not found.')
        shutil.rmtree(cert_dir)
        logger.info("Removed certificate %s", n)
        return cert_dir
