"""
Detached CMS/PKCS#7 signing of the pass manifest.

The signature carries the signer certificate and the WWDR intermediate
certificate, with signed attributes covering content type and message
digest. The manifest itself is not embedded; it travels next to the
signature inside the bundle.
"""
import logging
from typing import List, Optional

from asn1crypto import cms
from cryptography import x509
from cryptography.exceptions import InvalidSignature, UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec, padding, rsa
from cryptography.hazmat.primitives.serialization import pkcs7

from tapink.services.pass_errors import SigningError

logger = logging.getLogger(__name__)

SIGNATURE_NAME = "signature"

# PKCS7SignatureBuilder no longer accepts SHA-1; wallets accept SHA-256 signers
SIGNATURE_HASH = hashes.SHA256

_DIGESTS = {
    "sha1": hashes.SHA1,
    "sha224": hashes.SHA224,
    "sha256": hashes.SHA256,
    "sha384": hashes.SHA384,
    "sha512": hashes.SHA512,
}


def _public_key_der(key) -> bytes:
    return key.public_bytes(
        serialization.Encoding.DER,
        serialization.PublicFormat.SubjectPublicKeyInfo,
    )


def _load_signer_key(signer_key: bytes, passphrase: Optional[str]):
    # The passphrase only applies to encrypted PEM keys
    password = passphrase.encode("utf-8") if passphrase and b"ENCRYPTED" in signer_key else None
    try:
        return serialization.load_pem_private_key(signer_key, password=password)
    except (ValueError, TypeError, UnsupportedAlgorithm) as e:
        raise SigningError("Signer key could not be loaded with the configured passphrase") from e


def sign(
    manifest: bytes,
    signer_cert: bytes,
    signer_key: bytes,
    intermediate_cert: bytes,
    passphrase: Optional[str] = None,
) -> bytes:
    """
    Produce a DER-encoded detached signature over the manifest bytes.

    Args:
        manifest: Exact manifest.json bytes written to the bundle
        signer_cert: PEM signer (pass type ID) certificate
        signer_key: PEM private key matching signer_cert
        intermediate_cert: PEM WWDR certificate included in the chain
        passphrase: Passphrase for an encrypted signer_key

    Raises:
        SigningError: if the key cannot be loaded, does not belong to the
            certificate, or the backend refuses to sign
    """
    try:
        cert = x509.load_pem_x509_certificate(signer_cert)
        wwdr = x509.load_pem_x509_certificate(intermediate_cert)
    except ValueError as e:
        raise SigningError("Signer or intermediate certificate could not be loaded") from e

    private_key = _load_signer_key(signer_key, passphrase)
    if not isinstance(private_key, (rsa.RSAPrivateKey, ec.EllipticCurvePrivateKey)):
        raise SigningError(f"Unsupported signer key type: {type(private_key).__name__}")

    if _public_key_der(private_key.public_key()) != _public_key_der(cert.public_key()):
        raise SigningError("Signer key does not match the signer certificate")

    try:
        signature = (
            pkcs7.PKCS7SignatureBuilder()
            .set_data(manifest)
            .add_signer(cert, private_key, SIGNATURE_HASH())
            .add_certificate(wwdr)
            .sign(
                serialization.Encoding.DER,
                [pkcs7.PKCS7Options.DetachedSignature, pkcs7.PKCS7Options.Binary],
            )
        )
    except (ValueError, TypeError) as e:
        logger.error(f"CMS signing failed: {e}", exc_info=True)
        raise SigningError("Cryptographic backend rejected the signing request") from e

    logger.debug(f"Created detached CMS signature ({len(signature)} bytes)")
    return signature


def embedded_certificates(signature: bytes) -> List[x509.Certificate]:
    """Certificates carried inside a DER signature (signer + intermediate)"""
    return pkcs7.load_der_pkcs7_certificates(signature)


def _find_signer_cert(signed_data, signer_info) -> Optional[x509.Certificate]:
    sid = signer_info["sid"]
    if sid.name != "issuer_and_serial_number":
        return None
    serial = sid.chosen["serial_number"].native
    for choice in signed_data["certificates"] or []:
        if choice.name != "certificate":
            continue
        candidate = x509.load_der_x509_certificate(choice.chosen.dump())
        if candidate.serial_number == serial:
            return candidate
    return None


def verify_detached(signature: bytes, content: bytes, signer_cert: Optional[bytes] = None) -> bool:
    """
    Check a detached signature against the content it covers.

    Verifies the message-digest signed attribute against `content` and the
    signature over the signed attributes against the signer's public key.
    `signer_cert` (PEM) pins the expected signer; without it the signer is
    looked up among the embedded certificates.
    """
    try:
        info = cms.ContentInfo.load(signature)
        if info["content_type"].native != "signed_data":
            return False
        signed_data = info["content"]
        if signed_data["encap_content_info"]["content"].native is not None:
            logger.debug("Signature embeds its content; expected a detached signature")
            return False

        signer_info = signed_data["signer_infos"][0]
        hash_cls = _DIGESTS.get(signer_info["digest_algorithm"]["algorithm"].native)
        if hash_cls is None:
            return False

        signed_attrs = signer_info["signed_attrs"]
        expected_digest = None
        for attr in signed_attrs:
            if attr["type"].native == "message_digest":
                expected_digest = attr["values"][0].native
        if expected_digest is None:
            return False

        digest = hashes.Hash(hash_cls())
        digest.update(content)
        if digest.finalize() != expected_digest:
            return False

        if signer_cert is not None:
            cert = x509.load_pem_x509_certificate(signer_cert)
        else:
            cert = _find_signer_cert(signed_data, signer_info)
            if cert is None:
                return False

        # Signed attributes are signed as an explicit SET OF, not the implicit [0]
        attrs_der = b"\x31" + signed_attrs.dump()[1:]
        raw_signature = signer_info["signature"].native
        public_key = cert.public_key()
        if isinstance(public_key, rsa.RSAPublicKey):
            public_key.verify(raw_signature, attrs_der, padding.PKCS1v15(), hash_cls())
        elif isinstance(public_key, ec.EllipticCurvePublicKey):
            public_key.verify(raw_signature, attrs_der, ec.ECDSA(hash_cls()))
        else:
            return False
    except InvalidSignature:
        return False
    except (ValueError, TypeError, KeyError, IndexError) as e:
        logger.debug(f"Signature could not be parsed: {e}")
        return False
    return True
