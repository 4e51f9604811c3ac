"""
Apple Wallet Pass Generator

Turns a business-card branding payload into a signed .pkpass bundle:

1. Validate operator configuration (presence only, no file access)
2. Resolve signing credentials and the WWDR intermediate certificate
3. Fetch and rasterize branding assets (soft failures degrade)
4. Build pass.json, the pass directory and the SHA-1 manifest
5. Sign manifest.json with a detached CMS signature
6. Zip everything into a flat archive
"""
import asyncio
import logging
from dataclasses import dataclass

import httpx

from tapink.config import PKPASS_FILENAME, PasskitConfig
from tapink.schemas.wallet_pass import WalletPassRequest
from tapink.services.pass_assets import BrandingSources, ImageBackend, gather_assets
from tapink.services.pass_bundle import package
from tapink.services.pass_credentials import (
    ResolvedCredential,
    load_intermediate_certificate,
    load_signing_credential,
    resolve_credential,
)
from tapink.services.pass_errors import ConfigurationMissing
from tapink.services.pass_manifest import (
    build_directory,
    build_pass_definition,
    compute_manifest,
    serialize_manifest,
)
from tapink.services.pass_signing import sign

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SignedBundle:
    content: bytes
    serial_number: str
    filename: str = PKPASS_FILENAME


def ensure_configured(config: PasskitConfig) -> None:
    """Raise ConfigurationMissing listing every absent setting"""
    missing = config.missing_keys()
    if missing:
        logger.warning(f"Wallet pass signing not configured, missing: {', '.join(missing)}")
        raise ConfigurationMissing(missing)


def resolve_signing_material(config: PasskitConfig):
    """
    Read and canonicalize all signing material for one request.

    Returns:
        Tuple of (ResolvedCredential, WWDR certificate PEM)
    """
    source = config.credential_source()
    credential = resolve_credential(load_signing_credential(source))
    wwdr_pem = load_intermediate_certificate(config.wwdr_cert_path)
    logger.debug(f"Signing material resolved using {type(source).__name__}")
    return credential, wwdr_pem


def _sign_and_package(directory, credential: ResolvedCredential, wwdr_pem: bytes) -> bytes:
    manifest = compute_manifest(directory)
    # The bytes signed must match exactly what goes into the zip
    manifest_bytes = serialize_manifest(manifest)
    signature = sign(
        manifest_bytes,
        credential.signer_cert,
        credential.signer_key,
        wwdr_pem,
        credential.passphrase,
    )
    return package(directory, manifest_bytes, signature)


async def create_pkpass_bundle(
    request: WalletPassRequest,
    config: PasskitConfig,
    client: httpx.AsyncClient,
    image_backend: ImageBackend,
) -> SignedBundle:
    """
    Create a signed .pkpass bundle for a business card.

    Raises:
        ConfigurationMissing: required operator settings are absent
        CredentialError: signing material is unreadable or malformed
        SigningError: the key cannot sign for the certificate
        PackagingError: the archive could not be written
    """
    ensure_configured(config)

    credential, wwdr_pem = await asyncio.to_thread(resolve_signing_material, config)

    branding = BrandingSources(
        logo_url=request.logoUrl,
        strip_image_url=request.stripImageUrl,
        profile_pic_url=request.profilePicUrl,
    )
    assets = await gather_assets(branding, client, image_backend, config.asset_timeout_seconds)

    definition = build_pass_definition(request, config)
    directory = build_directory(definition, assets)

    bundle_bytes = await asyncio.to_thread(_sign_and_package, directory, credential, wwdr_pem)

    logger.info(
        f"Created Apple Wallet pass bundle serial={definition.serial_number} "
        f"files={len(directory) + 2} size={len(bundle_bytes)} bytes"
    )
    return SignedBundle(content=bundle_bytes, serial_number=definition.serial_number)
