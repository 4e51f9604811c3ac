"""
Operator configuration for wallet pass signing.

Values come from the environment and are read at request time so that an
operator can fix a misconfiguration without restarting the process.
"""
import os
from dataclasses import dataclass
from typing import List, Optional, Union

from pydantic import BaseModel

DEFAULT_DESCRIPTION = "TapInk Apple Wallet"
DEFAULT_ASSET_TIMEOUT_SECONDS = 5.0
PKPASS_FILENAME = "tapink-wallet.pkpass"


@dataclass(frozen=True)
class Pkcs12Source:
    """PKCS#12 container on disk plus its decryption passphrase"""
    path: str
    passphrase: str


@dataclass(frozen=True)
class PemPairSource:
    """Signer certificate and key files on disk"""
    cert_path: str
    key_path: str
    passphrase: Optional[str] = None


CredentialSource = Union[Pkcs12Source, PemPairSource]


def _env(name: str) -> str:
    return os.getenv(name, "").strip()


def _env_float(name: str, default: float) -> float:
    raw = _env(name)
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError:
        return default
    return value if value > 0 else default


class PasskitConfig(BaseModel):
    # PKCS#12 mode
    cert_p12_path: str = ""
    cert_password: str = ""

    # PEM mode
    signer_cert_path: str = ""
    signer_key_path: str = ""
    signer_key_passphrase: str = ""

    # Always required
    wwdr_cert_path: str = ""
    team_identifier: str = ""
    pass_type_identifier: str = ""
    organization_name: str = ""

    description: str = DEFAULT_DESCRIPTION
    asset_timeout_seconds: float = DEFAULT_ASSET_TIMEOUT_SECONDS
    default_icon_path: str = ""

    @classmethod
    def from_env(cls) -> "PasskitConfig":
        return cls(
            cert_p12_path=_env("PASSKIT_CERT_P12_PATH"),
            cert_password=os.getenv("PASSKIT_CERT_PASSWORD", ""),
            signer_cert_path=_env("PASSKIT_SIGNER_CERT_PATH"),
            signer_key_path=_env("PASSKIT_SIGNER_KEY_PATH"),
            signer_key_passphrase=os.getenv("PASSKIT_SIGNER_KEY_PASSPHRASE", ""),
            wwdr_cert_path=_env("PASSKIT_WWDR_CERT_PATH"),
            team_identifier=_env("PASSKIT_TEAM_IDENTIFIER"),
            pass_type_identifier=_env("PASSKIT_PASS_TYPE_IDENTIFIER"),
            organization_name=_env("PASSKIT_ORGANIZATION_NAME"),
            description=_env("PASSKIT_DESCRIPTION") or DEFAULT_DESCRIPTION,
            asset_timeout_seconds=_env_float(
                "PASSKIT_ASSET_TIMEOUT_SECONDS", DEFAULT_ASSET_TIMEOUT_SECONDS
            ),
            default_icon_path=_env("PASSKIT_DEFAULT_ICON_PATH"),
        )

    @property
    def has_pkcs12(self) -> bool:
        return bool(self.cert_p12_path and self.cert_password)

    @property
    def has_pem_pair(self) -> bool:
        return bool(self.signer_cert_path and self.signer_key_path)

    def missing_keys(self) -> List[str]:
        """
        List the environment variables that still need to be set.

        Only presence is checked here. Files are not touched so a missing
        setting is reported before any certificate parsing happens.
        """
        missing = []
        if not (self.has_pkcs12 or self.has_pem_pair):
            if self.cert_p12_path or self.cert_password:
                # Partially configured PKCS#12 mode
                if not self.cert_p12_path:
                    missing.append("PASSKIT_CERT_P12_PATH")
                if not self.cert_password:
                    missing.append("PASSKIT_CERT_PASSWORD")
            elif self.signer_cert_path or self.signer_key_path:
                if not self.signer_cert_path:
                    missing.append("PASSKIT_SIGNER_CERT_PATH")
                if not self.signer_key_path:
                    missing.append("PASSKIT_SIGNER_KEY_PATH")
            else:
                missing.append(
                    "PASSKIT_CERT_P12_PATH + PASSKIT_CERT_PASSWORD "
                    "(or PASSKIT_SIGNER_CERT_PATH + PASSKIT_SIGNER_KEY_PATH)"
                )

        required = {
            "PASSKIT_WWDR_CERT_PATH": self.wwdr_cert_path,
            "PASSKIT_TEAM_IDENTIFIER": self.team_identifier,
            "PASSKIT_PASS_TYPE_IDENTIFIER": self.pass_type_identifier,
            "PASSKIT_ORGANIZATION_NAME": self.organization_name,
        }
        for key, value in required.items():
            if not value:
                missing.append(key)
        return missing

    def credential_source(self) -> CredentialSource:
        """PKCS#12 wins when both credential modes are configured."""
        if self.has_pkcs12:
            return Pkcs12Source(path=self.cert_p12_path, passphrase=self.cert_password)
        return PemPairSource(
            cert_path=self.signer_cert_path,
            key_path=self.signer_key_path,
            passphrase=self.signer_key_passphrase or None,
        )


def get_passkit_config() -> PasskitConfig:
    """FastAPI dependency returning the current operator configuration"""
    return PasskitConfig.from_env()
