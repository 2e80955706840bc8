"""Local certificate authority: root generation, leaf signing, PEM inspection.

All inspection helpers operate on the *first* certificate of a PEM bundle, so a
`fullchain.pem` (leaf followed by CA) reports the leaf's domains and expiry,
never the CA's. Inspection never raises on malformed input except
`get_cert_expiry` and `describe_certificate`, which raise `CertificateError`.
Loading a corrupt CA raises `CertificateError` too.
"""

from __future__ import annotations

import datetime
import logging
import os
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import ExtendedKeyUsageOID, NameOID

from ..errors import CaNotInitializedError, CertificateError

logger = logging.getLogger(__name__)

CA_ORGANIZATION = "denvig.com"
CA_COMMON_NAME = "Denvig Local CA"
CA_VALIDITY_YEARS = 10
DOMAIN_CERT_VALIDITY_DAYS = 720
RSA_KEY_SIZE = 2048

_PEM_CERT_RE = re.compile(r"-----BEGIN CERTIFICATE-----[\s\S]*?-----END CERTIFICATE-----")


@dataclass(frozen=True)
class CaMaterial:
    cert: x509.Certificate
    key: rsa.RSAPrivateKey
    cert_pem: str
    key_pem: str


@dataclass(frozen=True)
class DomainCertMaterial:
    privkey: str
    fullchain: str


def split_pem_bundle(pem: str) -> List[str]:
    """Return the certificate blocks of a PEM bundle in file order.

    Blank lines or other text between blocks are ignored. Each returned block
    ends with a newline.
    """
    return [m.group(0) + "\n" for m in _PEM_CERT_RE.finditer(str(pem or ""))]


def _first_certificate(pem: str) -> x509.Certificate:
    blocks = split_pem_bundle(pem)
    if not blocks:
        raise CertificateError("No PEM certificate block found")
    try:
        return x509.load_pem_x509_certificate(blocks[0].encode("ascii"))
    except ValueError as e:
        raise CertificateError(f"Could not parse certificate: {e}") from e


def generate_serial_number() -> str:
    """Random 128-bit serial, hex encoded."""
    raw = os.urandom(16)
    # X.509 serials must be positive; clearing the top bit keeps the DER encoding at 16 bytes.
    raw = bytes([raw[0] & 0x7F or 0x01]) + raw[1:]
    return raw.hex()


def _ca_name() -> x509.Name:
    return x509.Name(
        [
            x509.NameAttribute(NameOID.ORGANIZATION_NAME, CA_ORGANIZATION),
            x509.NameAttribute(NameOID.COMMON_NAME, CA_COMMON_NAME),
        ]
    )


def _add_years(value: datetime.datetime, years: int) -> datetime.datetime:
    try:
        return value.replace(year=value.year + years)
    except ValueError:
        # Feb 29 -> Feb 28
        return value.replace(year=value.year + years, day=28)


def _key_to_pem(key: rsa.RSAPrivateKey) -> str:
    return key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.TraditionalOpenSSL,
        serialization.NoEncryption(),
    ).decode("ascii")


def _cert_to_pem(cert: x509.Certificate) -> str:
    return cert.public_bytes(serialization.Encoding.PEM).decode("ascii")


def generate_ca_cert() -> CaMaterial:
    """Generate a self-signed root CA (RSA-2048, ~10 years)."""
    key = rsa.generate_private_key(public_exponent=65537, key_size=RSA_KEY_SIZE)
    name = _ca_name()
    now = datetime.datetime.now(datetime.timezone.utc)

    cert = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(int(generate_serial_number(), 16))
        .not_valid_before(now)
        .not_valid_after(_add_years(now, CA_VALIDITY_YEARS))
        .add_extension(x509.BasicConstraints(ca=True, path_length=None), critical=True)
        .add_extension(
            x509.KeyUsage(
                digital_signature=False,
                content_commitment=False,
                key_encipherment=False,
                data_encipherment=False,
                key_agreement=False,
                key_cert_sign=True,
                crl_sign=True,
                encipher_only=False,
                decipher_only=False,
            ),
            critical=True,
        )
        .sign(key, hashes.SHA256())
    )
    logger.info("Generated local CA (serial=%x)", cert.serial_number)
    return CaMaterial(cert=cert, key=key, cert_pem=_cert_to_pem(cert), key_pem=_key_to_pem(key))


def generate_domain_cert(domain: str, ca_cert: x509.Certificate, ca_key: rsa.RSAPrivateKey) -> DomainCertMaterial:
    """Issue a leaf certificate for `domain` (may be `*.parent`) signed by the CA.

    `fullchain` is the leaf PEM directly followed by the CA PEM.
    """
    d = str(domain or "").strip()
    if not d:
        raise CertificateError("Domain is required")

    key = rsa.generate_private_key(public_exponent=65537, key_size=RSA_KEY_SIZE)
    now = datetime.datetime.now(datetime.timezone.utc)

    cert = (
        x509.CertificateBuilder()
        .subject_name(x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, d)]))
        .issuer_name(ca_cert.subject)
        .public_key(key.public_key())
        .serial_number(int(generate_serial_number(), 16))
        .not_valid_before(now)
        .not_valid_after(now + datetime.timedelta(days=DOMAIN_CERT_VALIDITY_DAYS))
        .add_extension(x509.BasicConstraints(ca=False, path_length=None), critical=False)
        .add_extension(
            x509.KeyUsage(
                digital_signature=True,
                content_commitment=False,
                key_encipherment=True,
                data_encipherment=False,
                key_agreement=False,
                key_cert_sign=False,
                crl_sign=False,
                encipher_only=False,
                decipher_only=False,
            ),
            critical=True,
        )
        .add_extension(x509.ExtendedKeyUsage([ExtendedKeyUsageOID.SERVER_AUTH]), critical=False)
        .add_extension(x509.SubjectAlternativeName([x509.DNSName(d)]), critical=False)
        .sign(ca_key, hashes.SHA256())
    )
    logger.info("Issued certificate for %s", d)
    return DomainCertMaterial(privkey=_key_to_pem(key), fullchain=_cert_to_pem(cert) + _cert_to_pem(ca_cert))


def load_ca_material(cert_pem: str, key_pem: str) -> CaMaterial:
    """Parse the CA pair. Unreadable PEM data raises `CertificateError`."""
    try:
        cert = x509.load_pem_x509_certificate(str(cert_pem).encode("ascii"))
    except ValueError as e:
        raise CertificateError(f"Could not parse CA certificate: {e}") from e
    try:
        key = serialization.load_pem_private_key(str(key_pem).encode("ascii"), password=None)
    except (TypeError, ValueError) as e:
        raise CertificateError(f"Could not parse CA private key: {e}") from e
    if not isinstance(key, rsa.RSAPrivateKey):
        raise CertificateError("CA key is not an RSA private key")
    return CaMaterial(cert=cert, key=key, cert_pem=str(cert_pem), key_pem=str(key_pem))


def load_ca_cert(store: Any) -> CaMaterial:
    """Load the CA pair from a `CertStore`."""
    if not store.is_ca_initialized():
        raise CaNotInitializedError()
    try:
        cert_pem = store.ca_cert_path.read_text(encoding="utf-8")
        key_pem = store.ca_key_path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise CertificateError(f"Could not read CA files: {e}") from e
    return load_ca_material(cert_pem, key_pem)


def parse_cert_domains(pem: str) -> List[str]:
    """DNS names from the first certificate's SAN, falling back to the subject CN.

    Returns [] when the PEM cannot be parsed.
    """
    try:
        cert = _first_certificate(pem)
    except Exception as e:
        logger.debug("parse_cert_domains: unparseable PEM: %s", e)
        return []

    domains: List[str] = []
    try:
        san = cert.extensions.get_extension_for_class(x509.SubjectAlternativeName)
        domains = [str(d) for d in san.value.get_values_for_type(x509.DNSName)]
    except x509.ExtensionNotFound:
        domains = []
    except Exception as e:
        logger.debug("parse_cert_domains: bad SAN extension: %s", e)
        domains = []

    if not domains:
        try:
            cns = cert.subject.get_attributes_for_oid(NameOID.COMMON_NAME)
        except Exception:
            cns = []
        if cns:
            domains.append(str(cns[0].value))
    return domains


def get_cert_expiry(pem: str) -> datetime.datetime:
    """`notAfter` (UTC) of the first certificate in the bundle."""
    try:
        cert = _first_certificate(pem)
    except CertificateError:
        raise
    except Exception as e:
        raise CertificateError(f"Could not parse certificate: {e}") from e
    return cert.not_valid_after_utc


def is_cert_issued_by(cert_pem: str, ca_pem: str) -> bool:
    """True when the first cert of `cert_pem` is signed by the first cert of `ca_pem`."""
    try:
        cert = _first_certificate(cert_pem)
        ca_cert = _first_certificate(ca_pem)
        cert.verify_directly_issued_by(ca_cert)
        return True
    except Exception:
        return False


def _name_attr(name: x509.Name, oid: x509.ObjectIdentifier) -> Optional[str]:
    attrs = name.get_attributes_for_oid(oid)
    return str(attrs[0].value) if attrs else None


def is_issued_by_local_ca(pem: str) -> bool:
    """Issuer DN matches the denvig CA; usable after the CA files were deleted."""
    try:
        cert = _first_certificate(pem)
        return (
            _name_attr(cert.issuer, NameOID.COMMON_NAME) == CA_COMMON_NAME
            and _name_attr(cert.issuer, NameOID.ORGANIZATION_NAME) == CA_ORGANIZATION
        )
    except Exception:
        return False


def get_cert_issuer_cn(pem: str) -> Optional[str]:
    try:
        return _name_attr(_first_certificate(pem).issuer, NameOID.COMMON_NAME)
    except Exception:
        return None


def describe_certificate(pem: str) -> Dict[str, Any]:
    cert = _first_certificate(pem)
    fp = cert.fingerprint(hashes.SHA256()).hex().upper()
    return {
        "subject": cert.subject.rfc4514_string(),
        "issuer": cert.issuer.rfc4514_string(),
        "validFrom": cert.not_valid_before_utc.isoformat(),
        "validTo": cert.not_valid_after_utc.isoformat(),
        "serialNumber": format(cert.serial_number, "X"),
        "fingerprint256": ":".join(fp[i : i + 2] for i in range(0, len(fp), 2)),
    }
