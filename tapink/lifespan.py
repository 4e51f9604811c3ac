"""
Application lifespan management for startup and shutdown events
"""
import logging
from contextlib import asynccontextmanager

import httpx

from tapink.config import PasskitConfig
from tapink.services.pass_assets import ImageBackend

logger = logging.getLogger(__name__)

USER_AGENT = "TapInk-WalletPass/1.0"


@asynccontextmanager
async def lifespan(app):
    """Create the shared image backend and HTTP client, close them on shutdown"""
    logger.info("Starting TapInk wallet pass service...")

    config = PasskitConfig.from_env()
    app.state.image_backend = ImageBackend.create(config.default_icon_path)
    logger.info("Image backend initialized")

    app.state.http_client = httpx.AsyncClient(
        timeout=httpx.Timeout(config.asset_timeout_seconds),
        headers={"User-Agent": USER_AGENT},
        follow_redirects=True,
    )

    missing = config.missing_keys()
    if missing:
        # Not fatal: the endpoint answers 501 until the operator fixes it
        logger.warning(f"Wallet pass signing is not configured yet, missing: {', '.join(missing)}")

    try:
        yield
    finally:
        logger.info("Shutting down TapInk wallet pass service...")
        await app.state.http_client.aclose()
