"""
Source imagery for a reel.

Explicit image URLs are downloaded and cover-fitted to the output resolution; when none
are given, or none can be fetched, deterministic gradient placeholders are drawn from
the subject's name so repeated runs for the same subject produce the same frames.
"""

from __future__ import annotations

import asyncio
import hashlib
import io

import aiohttp
from PIL import Image, ImageDraw, ImageFont, ImageOps, UnidentifiedImageError

from shared.http_client import AsyncHTTPClient
from shared.models import GenerationRequest, SubjectProfile
from shared.utils import config, setup_logging

logger = setup_logging("image-resolver")

GRADIENTS = (
    ((30, 60, 114), (42, 82, 152)),
    ((19, 78, 94), (113, 178, 128)),
    ((131, 58, 180), (253, 29, 29)),
    ((15, 32, 39), (44, 83, 100)),
    ((255, 126, 95), (254, 180, 123)),
)


def encode_jpeg(image: Image.Image, quality: int | None = None) -> bytes:
    buffer = io.BytesIO()
    image.convert("RGB").save(
        buffer,
        format="JPEG",
        quality=quality or int(config.get_pipeline_value("images.jpeg_quality", 90)),
    )
    return buffer.getvalue()


def normalize_image(data: bytes, size: tuple[int, int]) -> bytes:
    """Cover-fit an encoded image to ``size`` and re-encode as JPEG."""
    with Image.open(io.BytesIO(data)) as source:
        source = ImageOps.exif_transpose(source)
        fitted = ImageOps.fit(source.convert("RGB"), size, Image.Resampling.LANCZOS)
    return encode_jpeg(fitted)


def make_thumbnail(frame: bytes, size: tuple[int, int] | None = None) -> bytes:
    if size is None:
        width, height = config.get_pipeline_value("video.thumbnail_size", [640, 360])
        size = (int(width), int(height))
    return normalize_image(frame, size)


def _gradient_for(subject: SubjectProfile, index: int) -> tuple[tuple[int, int, int], tuple[int, int, int]]:
    seed = int(hashlib.md5(subject.name.encode("utf-8")).hexdigest(), 16)
    return GRADIENTS[(seed + index) % len(GRADIENTS)]


def render_placeholder(subject: SubjectProfile, size: tuple[int, int], index: int = 0) -> bytes:
    """Left-to-right gradient with the subject name and a sport caption."""
    width, height = size
    start, end = _gradient_for(subject, index)

    # 256-step ramp stretched to the frame
    strip = Image.new("RGB", (256, 1))
    for x in range(256):
        t = x / 255
        strip.putpixel((x, 0), tuple(int(a + (b - a) * t) for a, b in zip(start, end)))
    image = strip.resize((width, height), Image.Resampling.BILINEAR)

    draw = ImageDraw.Draw(image)
    title_font = _font(max(24, height // 12))
    caption_font = _font(max(16, height // 24))
    caption = f"{subject.sport} Legend"

    draw.text((width / 2, height / 2 - height // 16), subject.name, fill="white", font=title_font, anchor="mm")
    draw.text((width / 2, height / 2 + height // 16), caption, fill=(230, 230, 230), font=caption_font, anchor="mm")
    return encode_jpeg(image)


def _font(size: int) -> ImageFont.ImageFont | ImageFont.FreeTypeFont:
    try:
        return ImageFont.truetype("DejaVuSans-Bold.ttf", size)
    except OSError:
        return ImageFont.load_default(size=size)


class ImageResolver:
    """Resolve the frames for a request at a target resolution."""

    def __init__(self, http_client: AsyncHTTPClient | None = None, placeholder_count: int | None = None) -> None:
        self.http_client = http_client
        self.placeholder_count = placeholder_count or int(config.get_pipeline_value("images.placeholder_count", 3))

    async def resolve(self, request: GenerationRequest, size: tuple[int, int]) -> list[bytes]:
        urls = list(request.image_urls)
        if not urls and request.subject.image_url:
            urls = [request.subject.image_url]

        images = await self._download_all(urls, size) if urls else []
        if images:
            return images

        if urls:
            logger.warning(f"No usable images for {request.subject.name}; using placeholders")
        return [render_placeholder(request.subject, size, index) for index in range(self.placeholder_count)]

    async def _download_all(self, urls: list[str], size: tuple[int, int]) -> list[bytes]:
        timeout = int(config.get_pipeline_value("images.download_timeout", 20))
        client = self.http_client or AsyncHTTPClient(timeout=timeout)
        images: list[bytes] = []
        async with client:
            for url in urls:
                try:
                    data = await client.get_bytes(url)
                    images.append(normalize_image(data, size))
                except (OSError, UnidentifiedImageError) as e:
                    logger.warning(f"Skipping unreadable image {url}: {e}")
                except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                    logger.warning(f"Failed to download image {url}: {e}")
        return images
