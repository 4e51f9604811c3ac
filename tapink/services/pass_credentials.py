"""
Signing credential resolution for Apple Wallet passes.

Normalizes operator-supplied signing material (a PKCS#12 container or a PEM
cert/key pair, PEM or DER on disk) into canonical PEM buffers the signature
engine can consume.
"""
import enum
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple, Union

from cryptography import x509
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.serialization import pkcs12

from tapink.config import CredentialSource, Pkcs12Source, PemPairSource
from tapink.services.pass_errors import (
    CertificateFormatError,
    CredentialFileError,
    InvalidPkcs12,
    UnsupportedKeyEncoding,
)

logger = logging.getLogger(__name__)

PEM_MARKER = b"-----BEGIN"


class Encoding(enum.Enum):
    PEM = "pem"
    DER = "der"


@dataclass(frozen=True)
class Pkcs12Credential:
    container_bytes: bytes
    passphrase: str


@dataclass(frozen=True)
class PemPairCredential:
    cert_bytes: bytes
    key_bytes: bytes
    passphrase: Optional[str] = None


SigningCredential = Union[Pkcs12Credential, PemPairCredential]


@dataclass(frozen=True)
class ResolvedCredential:
    """
    Canonical signing material.

    signer_cert and signer_key are PEM bytes. passphrase is only set when the
    key itself is still encrypted (PEM mode); keys pulled out of a PKCS#12
    container are held unencrypted in memory.
    """
    signer_cert: bytes
    signer_key: bytes
    passphrase: Optional[str] = None

    def __repr__(self) -> str:
        # Never leak key material into logs or tracebacks
        return (
            f"ResolvedCredential(signer_cert=<{len(self.signer_cert)} bytes>, "
            f"signer_key=<redacted>, passphrase={'<set>' if self.passphrase else None})"
        )


def detect_encoding(data: bytes) -> Encoding:
    """PEM if a textual BEGIN marker appears anywhere in the buffer, else DER"""
    return Encoding.PEM if PEM_MARKER in data else Encoding.DER


def normalize_certificate(data: bytes, label: str) -> bytes:
    """
    Return a PEM-encoded certificate.

    PEM input is passed through verbatim. DER input is parsed as X.509 and
    re-encoded.

    Raises:
        CertificateFormatError: if DER input is not a parseable certificate
    """
    if detect_encoding(data) is Encoding.PEM:
        return data
    try:
        cert = x509.load_der_x509_certificate(data)
    except ValueError as e:
        logger.warning(f"Failed to parse {label} as DER certificate: {e}")
        raise CertificateFormatError(label) from e
    return cert.public_bytes(serialization.Encoding.PEM)


def require_pem_key(data: bytes, label: str) -> bytes:
    """Private keys must be exported as PEM. DER keys are rejected, not converted."""
    if detect_encoding(data) is not Encoding.PEM:
        raise UnsupportedKeyEncoding(label)
    return data


def extract_from_pkcs12(container: bytes, passphrase: Optional[str], label: str) -> Tuple[bytes, bytes]:
    """
    Pull the signer certificate and private key out of a PKCS#12 container.

    A wrong passphrase and a container without a certificate or key bag both
    raise InvalidPkcs12; no partial material is ever returned.

    Returns:
        Tuple of (certificate PEM, unencrypted PKCS#8 private key PEM)
    """
    password = passphrase.encode("utf-8") if passphrase else None
    try:
        private_key, cert, additional_certs = pkcs12.load_key_and_certificates(container, password)
    except (ValueError, TypeError) as e:
        logger.warning(f"Failed to open PKCS#12 container {label}: {e}")
        raise InvalidPkcs12(label) from e

    if cert is None and additional_certs:
        cert = additional_certs[0]
    if private_key is None or cert is None:
        logger.warning(
            f"PKCS#12 container {label} is incomplete "
            f"(has_key={private_key is not None}, has_cert={cert is not None})"
        )
        raise InvalidPkcs12(label)

    try:
        key_pem = private_key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption(),
        )
    except (ValueError, TypeError) as e:
        raise InvalidPkcs12(label) from e

    cert_pem = cert.public_bytes(serialization.Encoding.PEM)
    return cert_pem, key_pem


def resolve_credential(credential: SigningCredential, label: str = "signer") -> ResolvedCredential:
    """Resolve either credential shape into canonical PEM material."""
    if isinstance(credential, Pkcs12Credential):
        cert_pem, key_pem = extract_from_pkcs12(
            credential.container_bytes, credential.passphrase, f"{label} PKCS#12"
        )
        logger.debug("Resolved signing credential from PKCS#12 container")
        # The extracted key is unencrypted, so any PEM passphrase is irrelevant
        return ResolvedCredential(signer_cert=cert_pem, signer_key=key_pem, passphrase=None)

    if isinstance(credential, PemPairCredential):
        cert_pem = normalize_certificate(credential.cert_bytes, f"{label} certificate")
        key_pem = require_pem_key(credential.key_bytes, f"{label} key")
        logger.debug("Resolved signing credential from PEM cert/key pair")
        return ResolvedCredential(
            signer_cert=cert_pem,
            signer_key=key_pem,
            passphrase=credential.passphrase or None,
        )

    raise TypeError(f"Unsupported signing credential: {type(credential).__name__}")


def read_credential_file(path: str, label: str) -> bytes:
    try:
        return Path(path).read_bytes()
    except OSError as e:
        logger.error(f"Cannot read {label} at {path}: {e}")
        raise CredentialFileError(label, path) from e


def load_signing_credential(source: CredentialSource) -> SigningCredential:
    """Read the configured credential files into memory"""
    if isinstance(source, Pkcs12Source):
        return Pkcs12Credential(
            container_bytes=read_credential_file(source.path, "PKCS#12 container"),
            passphrase=source.passphrase,
        )
    if isinstance(source, PemPairSource):
        return PemPairCredential(
            cert_bytes=read_credential_file(source.cert_path, "signer certificate"),
            key_bytes=read_credential_file(source.key_path, "signer key"),
            passphrase=source.passphrase,
        )
    raise TypeError(f"Unsupported credential source: {type(source).__name__}")


def load_intermediate_certificate(path: str) -> bytes:
    """Read and canonicalize the WWDR intermediate certificate"""
    data = read_credential_file(path, "WWDR certificate")
    return normalize_certificate(data, "WWDR certificate")
