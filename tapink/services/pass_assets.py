"""
Branding asset pipeline for Apple Wallet passes.

Fetches branding images (data URLs or remote HTTP(S) URLs) and rasterizes
them into the pixel variants the pass format expects:

- icon.png / icon@2x.png            29x29 / 58x58, contained in a transparent square
- logo.png / logo@2x.png            40x40 / 80x80, contained in a transparent square
- strip.png / strip@2x.png          375x123 / 750x246, cropped to fill
- thumbnail.png / thumbnail@2x.png  90x90 / 180x180, circular profile picture

Icon and logo fall back to the default icon when the logo source is missing
or unusable. Strip and thumbnail are simply left out.
"""
import asyncio
import base64
import binascii
import logging
from dataclasses import dataclass
from io import BytesIO
from pathlib import Path
from typing import Dict, Optional, Tuple, Union
from urllib.parse import unquote_to_bytes

import httpx
from PIL import Image, ImageChops, ImageDraw, ImageFont, ImageOps

from tapink.services.pass_errors import AssetDecodeError, AssetError, AssetFetchError

logger = logging.getLogger(__name__)

ICON_SIZES = (29, 58)
LOGO_SIZES = (40, 80)
STRIP_SIZES = ((375, 123), (750, 246))
THUMBNAIL_SIZES = (90, 180)

MAX_ASSET_BYTES = 10 * 1024 * 1024
DEFAULT_ICON_COLOR = (0, 0, 0)
# Largest icon/logo variant; the placeholder is never upscaled
DEFAULT_ICON_SIZE = max(ICON_SIZES + LOGO_SIZES)

ImageSource = Union[bytes, Image.Image]


def variant_names(name: str) -> Tuple[str, str]:
    """Logical names for the 1x and 2x renditions of an asset"""
    return name, f"{name}@2x"


class ImageBackend:
    """
    Pillow-backed rasterizer.

    Constructed once (see tapink.lifespan) and passed to the pipeline
    explicitly. All public methods return PNG bytes.
    """

    def __init__(self, default_icon: bytes):
        self._default_icon = default_icon
        # Validate eagerly so a broken default icon fails at startup
        self.decode(default_icon, "default icon")

    @classmethod
    def create(cls, default_icon_path: str = "") -> "ImageBackend":
        if default_icon_path:
            logger.info(f"Loading default pass icon from {default_icon_path}")
            return cls(Path(default_icon_path).read_bytes())
        return cls(render_placeholder_icon(DEFAULT_ICON_SIZE))

    def default_icon(self, size_px: int) -> bytes:
        """The bundled default icon as a size_px square PNG"""
        return self.resize_square(self._default_icon, size_px)

    def decode(self, data: bytes, label: str = "image") -> Image.Image:
        """Decode, auto-orient from EXIF and convert to RGBA"""
        try:
            img = Image.open(BytesIO(data))
            img.load()
            img = ImageOps.exif_transpose(img)
            return img.convert("RGBA")
        except (OSError, ValueError, SyntaxError, Image.DecompressionBombError) as e:
            raise AssetDecodeError(label, str(e)) from e

    def _as_image(self, source: ImageSource) -> Image.Image:
        if isinstance(source, Image.Image):
            return source.convert("RGBA") if source.mode != "RGBA" else source
        return self.decode(source)

    def resize_square(self, source: ImageSource, size_px: int) -> bytes:
        """
        Fit the image into a size_px square without cropping.

        The uncovered axis is padded with fully transparent pixels, so the
        output is always exactly size_px x size_px.
        """
        img = self._as_image(source)
        fitted = ImageOps.contain(img, (size_px, size_px), Image.Resampling.LANCZOS)
        canvas = Image.new("RGBA", (size_px, size_px), (0, 0, 0, 0))
        offset = ((size_px - fitted.width) // 2, (size_px - fitted.height) // 2)
        canvas.paste(fitted, offset)
        return encode_png(canvas)

    def resize_cover(self, source: ImageSource, width: int, height: int) -> bytes:
        """Crop to fill a width x height canvas"""
        img = self._as_image(source)
        covered = ImageOps.fit(img, (width, height), Image.Resampling.LANCZOS, centering=(0.5, 0.5))
        return encode_png(covered)

    def mask_circular(self, source: ImageSource, size_px: int) -> bytes:
        """
        Crop to fill a size_px square, then keep only the pixels inside the
        inscribed circle (destination-in). Corners end up fully transparent.
        """
        img = self._as_image(source)
        covered = ImageOps.fit(img, (size_px, size_px), Image.Resampling.LANCZOS, centering=(0.5, 0.5))
        mask = Image.new("L", (size_px, size_px), 0)
        ImageDraw.Draw(mask).ellipse((0, 0, size_px - 1, size_px - 1), fill=255)
        covered.putalpha(ImageChops.multiply(covered.getchannel("A"), mask))
        return encode_png(covered)


def encode_png(img: Image.Image) -> bytes:
    buf = BytesIO()
    img.save(buf, format="PNG", optimize=True)
    return buf.getvalue()


def render_placeholder_icon(size: int, bg_color: tuple = DEFAULT_ICON_COLOR) -> bytes:
    """
    Render the bundled default icon: a solid square with a centered "T".

    Uses RGBA so the output keeps an alpha channel like every other asset.
    """
    img = Image.new("RGBA", (size, size), color=(*bg_color, 255))
    draw = ImageDraw.Draw(img)
    font = ImageFont.load_default()
    text = "T"
    left, top, right, bottom = draw.textbbox((0, 0), text, font=font)
    x = (size - (right - left)) // 2 - left
    y = (size - (bottom - top)) // 2 - top
    draw.text((x, y), text, fill=(255, 255, 255, 255), font=font)
    return encode_png(img)


def decode_data_url(source: str) -> bytes:
    """Decode the payload of a data: URL (base64 or percent-encoded)"""
    header, sep, payload = source.partition(",")
    if not sep or not header.lower().startswith("data:"):
        raise AssetFetchError(source, "malformed data URL")

    params = [p.strip().lower() for p in header[5:].split(";")]
    if "base64" in params[1:]:
        try:
            data = base64.b64decode("".join(payload.split()), validate=True)
        except (binascii.Error, ValueError) as e:
            raise AssetFetchError(source, "invalid base64 payload") from e
    else:
        data = unquote_to_bytes(payload)

    if not data:
        raise AssetFetchError(source, "empty payload")
    return data


async def _download(source: str, client: httpx.AsyncClient, timeout: float) -> bytes:
    async with client.stream("GET", source, timeout=timeout, follow_redirects=True) as response:
        if not response.is_success:
            raise AssetFetchError(source, f"HTTP {response.status_code}")

        declared = response.headers.get("content-length", "")
        if declared.isdigit() and int(declared) > MAX_ASSET_BYTES:
            raise AssetFetchError(source, f"asset larger than {MAX_ASSET_BYTES} bytes")

        chunks = []
        received = 0
        async for chunk in response.aiter_bytes():
            received += len(chunk)
            if received > MAX_ASSET_BYTES:
                raise AssetFetchError(source, f"asset larger than {MAX_ASSET_BYTES} bytes")
            chunks.append(chunk)
    return b"".join(chunks)


async def fetch(source: str, client: httpx.AsyncClient, timeout: float) -> bytes:
    """
    Fetch raw asset bytes.

    Data URLs never touch the network. Remote fetches are bounded by
    `timeout` seconds overall and MAX_ASSET_BYTES; timeouts, malformed
    URLs, transport errors, oversized bodies and non-2xx responses all
    raise AssetFetchError.
    """
    if source.startswith("data:"):
        return decode_data_url(source)

    if not source.lower().startswith(("http://", "https://")):
        raise AssetFetchError(source, "unsupported URL scheme")

    try:
        return await asyncio.wait_for(_download(source, client, timeout), timeout=timeout)
    except (asyncio.TimeoutError, httpx.TimeoutException) as e:
        raise AssetFetchError(source, f"timed out after {timeout}s") from e
    except (httpx.InvalidURL, ValueError) as e:
        raise AssetFetchError(source, f"invalid URL: {e}") from e
    except httpx.HTTPError as e:
        raise AssetFetchError(source, f"transport error: {e}") from e


@dataclass(frozen=True)
class BrandingSources:
    logo_url: Optional[str] = None
    strip_image_url: Optional[str] = None
    profile_pic_url: Optional[str] = None


async def _fetch_optional(source: Optional[str], client: httpx.AsyncClient, timeout: float, name: str) -> Optional[bytes]:
    if not source:
        return None
    try:
        return await fetch(source, client, timeout)
    except AssetError as e:
        logger.warning(f"Failed to fetch {name} asset: {e}")
        return None


def _decode_optional(backend: ImageBackend, data: Optional[bytes], name: str) -> Optional[Image.Image]:
    if data is None:
        return None
    try:
        return backend.decode(data, name)
    except AssetDecodeError as e:
        logger.warning(f"Failed to decode {name} asset: {e}")
        return None


def render_asset_set(
    backend: ImageBackend,
    logo: Optional[bytes],
    strip: Optional[bytes] = None,
    thumbnail: Optional[bytes] = None,
) -> Dict[str, bytes]:
    """
    Rasterize fetched sources into the AssetSet.

    Each source is decoded once and reused for its 1x and 2x variants.
    """
    assets: Dict[str, bytes] = {}

    logo_img = _decode_optional(backend, logo, "logo")
    if logo_img is None:
        logger.info("Using default icon for icon/logo variants")

    for names, sizes in ((variant_names("icon"), ICON_SIZES), (variant_names("logo"), LOGO_SIZES)):
        for name, size in zip(names, sizes):
            if logo_img is None:
                assets[name] = backend.default_icon(size)
            else:
                assets[name] = backend.resize_square(logo_img, size)

    strip_img = _decode_optional(backend, strip, "strip")
    if strip_img is not None:
        for name, (width, height) in zip(variant_names("strip"), STRIP_SIZES):
            assets[name] = backend.resize_cover(strip_img, width, height)

    thumb_img = _decode_optional(backend, thumbnail, "thumbnail")
    if thumb_img is not None:
        for name, size in zip(variant_names("thumbnail"), THUMBNAIL_SIZES):
            assets[name] = backend.mask_circular(thumb_img, size)

    return assets


async def gather_assets(
    branding: BrandingSources,
    client: httpx.AsyncClient,
    backend: ImageBackend,
    timeout: float,
) -> Dict[str, bytes]:
    """Fetch all branding sources concurrently, then rasterize off the event loop"""
    logo, strip, thumbnail = await asyncio.gather(
        _fetch_optional(branding.logo_url, client, timeout, "logo"),
        _fetch_optional(branding.strip_image_url, client, timeout, "strip"),
        _fetch_optional(branding.profile_pic_url, client, timeout, "thumbnail"),
    )
    return await asyncio.to_thread(render_asset_set, backend, logo, strip, thumbnail)
