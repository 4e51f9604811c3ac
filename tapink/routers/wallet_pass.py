"""
Wallet Pass Router

Generates signed Apple Wallet passes for business cards.
"""
import logging

import httpx
from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import Response

from tapink.config import PasskitConfig, get_passkit_config
from tapink.dependencies.pass_services import get_http_client, get_image_backend
from tapink.schemas.wallet_pass import WalletPassErrorResponse, WalletPassRequest
from tapink.services.apple_wallet_pass import create_pkpass_bundle
from tapink.services.pass_assets import ImageBackend
from tapink.services.pass_errors import (
    ConfigurationMissing,
    CredentialError,
    PackagingError,
    SigningError,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["wallet-pass"])

PKPASS_MEDIA_TYPE = "application/vnd.apple.pkpass"


def _error_detail(error: str, message: str, missing=None) -> dict:
    return WalletPassErrorResponse(error=error, message=message, missing=missing or []).model_dump(exclude_defaults=True)


@router.post(
    "/wallet-pass",
    response_class=Response,
    responses={
        200: {"content": {PKPASS_MEDIA_TYPE: {}}, "description": "Signed .pkpass bundle"},
        400: {"description": "Invalid payload"},
        501: {"description": "Wallet signing is not configured"},
    },
)
async def create_wallet_pass(
    payload: WalletPassRequest,
    config: PasskitConfig = Depends(get_passkit_config),
    client: httpx.AsyncClient = Depends(get_http_client),
    image_backend: ImageBackend = Depends(get_image_backend),
):
    """
    Create an Apple Wallet pass for a business card.

    Returns:
    - 200: Signed .pkpass file
    - 400: Invalid payload
    - 501: Signing configuration missing (lists the missing settings)
    - 500: Credential, signing or packaging failure
    """
    try:
        bundle = await create_pkpass_bundle(payload, config, client, image_backend)
    except ConfigurationMissing as e:
        raise HTTPException(
            status_code=status.HTTP_501_NOT_IMPLEMENTED,
            detail=_error_detail(e.code, str(e), e.missing),
        )
    except CredentialError as e:
        logger.error(f"Wallet signing credentials rejected: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=_error_detail(e.code, "Wallet signing credentials are invalid. Contact support."),
        )
    except (SigningError, PackagingError) as e:
        logger.error(f"Wallet generation failed: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=_error_detail(e.code, "Failed to generate wallet pass."),
        )

    return Response(
        content=bundle.content,
        media_type=PKPASS_MEDIA_TYPE,
        headers={
            "Content-Disposition": f'attachment; filename="{bundle.filename}"',
            "X-Pass-Serial-Number": bundle.serial_number,
        },
    )
