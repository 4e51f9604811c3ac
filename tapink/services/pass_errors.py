"""
Wallet pass error hierarchy.

Every stage of the pass pipeline raises a subclass of WalletPassError so the
router can translate failures into structured HTTP responses.
"""
from typing import Iterable, List


class WalletPassError(Exception):
    """Base class for wallet pass generation failures"""

    code = "WALLET_PASS_FAILED"


class ConfigurationMissing(WalletPassError):
    """Raised when required operator configuration is absent"""

    code = "PASSKIT_NOT_CONFIGURED"

    def __init__(self, missing: Iterable[str]):
        self.missing: List[str] = list(missing)
        super().__init__(
            "Wallet signing certs are not configured. Set "
            + ", ".join(self.missing)
            + "."
        )


class CredentialError(WalletPassError):
    """Signing material is malformed or unusable. Operator must fix the files."""

    code = "PASSKIT_CREDENTIALS_INVALID"

    def __init__(self, label: str, message: str = ""):
        self.label = label
        super().__init__(message or f"Invalid signing material: {label}")


class CertificateFormatError(CredentialError):
    def __init__(self, label: str):
        super().__init__(label, f"{label} is neither PEM nor a parseable DER X.509 certificate")


class UnsupportedKeyEncoding(CredentialError):
    def __init__(self, label: str):
        super().__init__(label, f"{label} must be a PEM-encoded private key")


class InvalidPkcs12(CredentialError):
    def __init__(self, label: str):
        super().__init__(
            label,
            f"{label} could not be decrypted or is missing a certificate/private key",
        )


class CredentialFileError(CredentialError):
    def __init__(self, label: str, path: str):
        self.path = path
        super().__init__(label, f"{label} could not be read from {path}")


class AssetError(WalletPassError):
    """Soft failure: callers degrade to a default asset or omit the file"""

    def __init__(self, source: str, reason: str = ""):
        self.source = source
        self.reason = reason
        super().__init__(f"Asset {source[:80]} unavailable: {reason}" if reason else f"Asset {source[:80]} unavailable")


class AssetFetchError(AssetError):
    pass


class AssetDecodeError(AssetError):
    pass


class SigningError(WalletPassError):
    pass


class PackagingError(WalletPassError):
    pass
