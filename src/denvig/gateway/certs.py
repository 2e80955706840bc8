"""Certificate coverage for gateway domains.

Wildcard coverage is single-label: `*.example.com` covers `api.example.com`, but
neither `example.com` nor `a.api.example.com`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..certs.authority import generate_domain_cert, load_ca_cert, parse_cert_domains
from ..certs.store import FULLCHAIN_FILENAME, LEGACY_CERT_FILENAME, PRIVKEY_FILENAME, CertStore, find_cert_file
from ..errors import CaNotInitializedError, CertificateError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SslPaths:
    cert_path: Path
    key_path: Path


@dataclass(frozen=True)
class CertCoverage:
    """Outcome of checking/generating TLS coverage for one service.

    status: not_required | covered | generated | ca_missing | partial
    """

    status: str
    domains: List[str] = field(default_factory=list)
    uncovered: List[str] = field(default_factory=list)
    cert_dirs: Dict[str, Path] = field(default_factory=dict)
    message: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status in {"not_required", "covered", "generated"}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status,
            "domains": list(self.domains),
            "uncovered": list(self.uncovered),
            "certDirs": {k: str(v) for k, v in self.cert_dirs.items()},
            "message": self.message,
        }


def domain_matches_cert(domain: str, cert_domain: str) -> bool:
    d = str(domain or "").strip().lower()
    c = str(cert_domain or "").strip().lower()
    if not d or not c:
        return False
    if d == c:
        return True
    if not c.startswith("*."):
        return False
    suffix = c[1:]
    if not d.endswith(suffix):
        return False
    label = d[: -len(suffix)]
    return bool(label) and "." not in label


def find_cert_for_domain(store: CertStore, domain: str) -> Optional[Path]:
    """First store directory whose certificate covers `domain` (scanned lazily, sorted by name)."""
    for cert_dir in store.iter_cert_dirs():
        cert_file = find_cert_file(cert_dir)
        if cert_file is None:
            continue
        try:
            pem = cert_file.read_text(encoding="utf-8")
        except OSError as e:
            logger.warning("Skipping unreadable certificate %s: %s", cert_file, e)
            continue
        if any(domain_matches_cert(domain, cd) for cd in parse_cert_domains(pem)):
            return cert_dir
    return None


def resolve_ssl_paths(cert_dir: Path) -> Optional[SslPaths]:
    d = Path(cert_dir)
    key = d / PRIVKEY_FILENAME
    if not key.is_file():
        return None
    for name in (FULLCHAIN_FILENAME, LEGACY_CERT_FILENAME):
        cert = d / name
        if cert.is_file():
            return SslPaths(cert_path=cert, key_path=key)
    return None


def get_parent_domain(domain: str) -> str:
    parts = str(domain or "").split(".")
    if len(parts) <= 2:
        return str(domain or "")
    return ".".join(parts[1:])


def group_domains_for_cert_generation(domains: List[str]) -> Dict[str, List[str]]:
    """Group domains into the smallest set of certificates to issue.

    Two or more sibling subdomains collapse into one `*.parent` certificate,
    unless the bare parent is requested too, in which case every domain gets its
    own certificate.
    """
    unique: List[str] = []
    for d in domains:
        s = str(d or "").strip()
        if s and s not in unique:
            unique.append(s)

    buckets: Dict[str, List[str]] = {}
    bare_requested: Dict[str, bool] = {}
    for d in unique:
        if d.startswith("*."):
            buckets.setdefault(d, [])
            bare_requested[d] = True
            continue
        parent = get_parent_domain(d)
        buckets.setdefault(parent, [])
        if d == parent:
            bare_requested[parent] = True
        else:
            buckets[parent].append(d)

    groups: Dict[str, List[str]] = {}

    def add(cert_domain: str, covered: List[str]) -> None:
        # an explicit `*.x` and collapsed siblings of `x` share one certificate
        group = groups.setdefault(cert_domain, [])
        group.extend(d for d in covered if d not in group)

    for parent, children in buckets.items():
        bare = bare_requested.get(parent, False)
        if len(children) >= 2 and not bare:
            add(f"*.{parent}", children)
            continue
        if bare:
            add(parent, [parent])
        for child in children:
            add(child, [child])
    return groups


def generate_missing_certs(store: CertStore, domains: List[str]) -> Dict[str, Path]:
    """Map each domain to a covering cert directory, issuing certificates for the gaps.

    Without an initialized CA only pre-existing coverage is returned.
    """
    result: Dict[str, Path] = {}
    uncovered: List[str] = []
    for d in domains:
        s = str(d or "").strip()
        if not s or s in result or s in uncovered:
            continue
        existing = find_cert_for_domain(store, s)
        if existing is not None:
            result[s] = existing
        else:
            uncovered.append(s)

    if not uncovered:
        return result

    try:
        ca = load_ca_cert(store)
    except CaNotInitializedError:
        logger.warning("Local CA is not initialized; not issuing certificates for %s", ", ".join(uncovered))
        return result
    except CertificateError as e:
        logger.warning("Local CA is unusable (%s); not issuing certificates for %s", e, ", ".join(uncovered))
        return result

    for cert_domain, covered in group_domains_for_cert_generation(uncovered).items():
        try:
            material = generate_domain_cert(cert_domain, ca.cert, ca.key)
            cert_dir = store.write_domain_cert_files(cert_domain, material.privkey, material.fullchain)
        except (CertificateError, OSError, ValueError) as e:
            logger.warning("Failed to issue certificate for %s: %s", cert_domain, e)
            continue
        for d in covered:
            result[d] = cert_dir
    return result


def ensure_service_certs(store: CertStore, service: Any) -> CertCoverage:
    """Make sure a secure service's domain and cnames are covered.

    `service` is a `ServiceDefinition`. Certificates are issued without prompting
    when the CA exists; a missing CA is reported, not created.
    """
    http = getattr(service, "http", None)
    if http is None or not http.secure or not http.domain:
        return CertCoverage(status="not_required")

    all_domains = [http.domain, *list(http.cnames or [])]
    cert_dirs: Dict[str, Path] = {}
    uncovered: List[str] = []
    for d in all_domains:
        existing = find_cert_for_domain(store, d)
        if existing is not None:
            cert_dirs[d] = existing
        else:
            uncovered.append(d)

    if not uncovered:
        return CertCoverage(status="covered", domains=all_domains, cert_dirs=cert_dirs)

    if not store.is_ca_initialized():
        return CertCoverage(
            status="ca_missing",
            domains=all_domains,
            uncovered=uncovered,
            cert_dirs=cert_dirs,
            message=str(CaNotInitializedError()),
        )

    generated = generate_missing_certs(store, uncovered)
    cert_dirs.update(generated)
    still_missing = [d for d in uncovered if d not in generated]
    if still_missing:
        return CertCoverage(
            status="partial",
            domains=all_domains,
            uncovered=still_missing,
            cert_dirs=cert_dirs,
            message=f"No TLS certificate for {', '.join(still_missing)}",
        )
    return CertCoverage(status="generated", domains=all_domains, cert_dirs=cert_dirs)
