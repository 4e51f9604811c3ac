"""
Pass definition and manifest construction.

Builds pass.json from the branding payload, lays out the virtual pass
directory and computes the SHA-1 manifest the wallet uses to detect
tampering. SHA-1 is mandated by the pass format.
"""
import hashlib
import json
import logging
import secrets
from typing import Any, Dict, List, Optional

from pydantic import BaseModel

from tapink.config import PasskitConfig
from tapink.schemas.wallet_pass import WalletPassRequest
from tapink.services.pass_errors import PackagingError
from tapink.utils.colors import BLACK, RGB, WHITE, format_rgb, parse_color

logger = logging.getLogger(__name__)

PASS_JSON_NAME = "pass.json"
PASS_STYLE = "generic"


class PassField(BaseModel):
    key: str
    label: str
    value: str


class Barcode(BaseModel):
    message: str
    format: str = "PKBarcodeFormatQR"
    encoding: str = "iso-8859-1"
    alt_text: Optional[str] = None

    def to_pass_json(self) -> Dict[str, Any]:
        data = {
            "message": self.message,
            "format": self.format,
            "messageEncoding": self.encoding,
        }
        if self.alt_text:
            data["altText"] = self.alt_text
        return data


class PassColors(BaseModel):
    background: RGB = BLACK
    foreground: RGB = WHITE
    label: RGB = WHITE


class PassDefinition(BaseModel):
    format_version: int = 1
    pass_type_identifier: str
    team_identifier: str
    organization_name: str
    serial_number: str
    description: str
    logo_text: Optional[str] = None
    barcode: Barcode
    colors: PassColors = PassColors()
    primary_fields: List[PassField] = []
    secondary_fields: List[PassField] = []
    auxiliary_fields: List[PassField] = []

    def to_pass_json(self) -> Dict[str, Any]:
        """Key order here is the order written to pass.json"""
        data: Dict[str, Any] = {
            "formatVersion": self.format_version,
            "passTypeIdentifier": self.pass_type_identifier,
            "serialNumber": self.serial_number,
            "teamIdentifier": self.team_identifier,
            "organizationName": self.organization_name,
            "description": self.description,
        }
        if self.logo_text:
            data["logoText"] = self.logo_text
        data["foregroundColor"] = format_rgb(self.colors.foreground)
        data["backgroundColor"] = format_rgb(self.colors.background)
        data["labelColor"] = format_rgb(self.colors.label)

        barcode = self.barcode.to_pass_json()
        # "barcode" for iOS 8 and earlier, "barcodes" for everything newer
        data["barcode"] = barcode
        data["barcodes"] = [barcode]

        data[PASS_STYLE] = {
            "primaryFields": [f.model_dump() for f in self.primary_fields],
            "secondaryFields": [f.model_dump() for f in self.secondary_fields],
            "auxiliaryFields": [f.model_dump() for f in self.auxiliary_fields],
        }
        return data


def generate_serial_number() -> str:
    return f"tapink-{secrets.token_urlsafe(12)}"


def build_pass_definition(request: WalletPassRequest, config: PasskitConfig) -> PassDefinition:
    """Map the branding payload onto a generic-style business card pass"""
    colors = request.colors
    return PassDefinition(
        pass_type_identifier=config.pass_type_identifier,
        team_identifier=config.team_identifier,
        organization_name=config.organization_name,
        serial_number=request.serialNumber or generate_serial_number(),
        description=config.description,
        logo_text=request.company,
        barcode=Barcode(message=request.barcodeMessage, alt_text=request.barcodeMessage),
        colors=PassColors(
            background=parse_color(colors.background if colors else None, BLACK),
            foreground=parse_color(colors.text if colors else None, WHITE),
            label=parse_color(colors.label if colors else None, WHITE),
        ),
        primary_fields=[PassField(key="name", label="NAME", value=request.name)],
        secondary_fields=[PassField(key="company", label="COMPANY", value=request.company)],
        auxiliary_fields=[PassField(key="title", label="TITLE", value=request.title)],
    )


def serialize(definition: PassDefinition) -> bytes:
    """Deterministic pass.json bytes (insertion order, no key sorting)"""
    return json.dumps(definition.to_pass_json(), indent=2, ensure_ascii=False).encode("utf-8")


def build_directory(definition: PassDefinition, assets: Dict[str, bytes]) -> Dict[str, bytes]:
    """
    Lay out every file that goes into the bundle, keyed by its archive name.

    Args:
        definition: Pass definition, written as pass.json
        assets: AssetSet keyed by logical name ("icon", "logo@2x", ...)

    Raises:
        PackagingError: if the mandatory icon is missing
    """
    if "icon" not in assets:
        raise PackagingError("icon asset is required in every pass")

    directory = {PASS_JSON_NAME: serialize(definition)}
    for name, content in assets.items():
        directory[f"{name}.png"] = content
    return directory


def compute_manifest(directory: Dict[str, bytes]) -> Dict[str, str]:
    """SHA-1 hex digest for every file in the directory"""
    manifest = {}
    for filename, content in directory.items():
        manifest[filename] = hashlib.sha1(content).hexdigest()
    return manifest


def serialize_manifest(manifest: Dict[str, str]) -> bytes:
    """These exact bytes are signed and written as manifest.json"""
    return json.dumps(manifest, sort_keys=True).encode("utf-8")
