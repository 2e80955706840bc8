"""Local certificate authority, certificate store and OS trust installation."""

from .authority import (
    CaMaterial,
    DomainCertMaterial,
    generate_ca_cert,
    generate_domain_cert,
    get_cert_expiry,
    is_cert_issued_by,
    load_ca_cert,
    parse_cert_domains,
    split_pem_bundle,
)
from .store import CertStore, find_cert_file
from .trust import KeychainTrustStore, TrustStore

__all__ = [
    "CaMaterial",
    "CertStore",
    "DomainCertMaterial",
    "KeychainTrustStore",
    "TrustStore",
    "find_cert_file",
    "generate_ca_cert",
    "generate_domain_cert",
    "get_cert_expiry",
    "is_cert_issued_by",
    "load_ca_cert",
    "parse_cert_domains",
    "split_pem_bundle",
]
