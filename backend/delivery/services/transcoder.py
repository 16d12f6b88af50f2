"""媒体转码：统一编码为 WebP，生成缩略图并提取拍摄元数据。"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from io import BytesIO
from typing import Optional, Tuple

from PIL import Image, ImageOps, UnidentifiedImageError
from django.conf import settings

from ..domain.values import MetadataMap
from ..exceptions import UnsupportedMedia
from ..utils_uploads import is_image_content_type, normalize_content_type
from .metadata import capture_time_from, extract_capture_metadata

logger = logging.getLogger(__name__)

CANONICAL_FORMAT = "WEBP"
CANONICAL_CONTENT_TYPE = "image/webp"
# WebP 单边上限
WEBP_MAX_DIMENSION = 16383


@dataclass(frozen=True)
class TranscodeResult:
    content: bytes
    content_type: str
    thumbnail: Optional[bytes] = None
    metadata: MetadataMap = field(default_factory=MetadataMap)
    capture_time: Optional[datetime] = None


def _normalize_mode(img: Image.Image) -> Image.Image:
    if img.mode in ("RGB", "RGBA"):
        return img
    has_alpha = "A" in img.getbands() or "transparency" in img.info
    return img.convert("RGBA" if has_alpha else "RGB")


def _fit_webp_bounds(img: Image.Image) -> Image.Image:
    if max(img.size) <= WEBP_MAX_DIMENSION:
        return img
    bounded = img.copy()
    bounded.thumbnail((WEBP_MAX_DIMENSION, WEBP_MAX_DIMENSION), Image.Resampling.LANCZOS)
    return bounded


class MediaTranscoder:
    """相同输入字节总是得到相同的规范字节、元数据与是否有缩略图。"""

    def __init__(self, thumbnail_size: Optional[Tuple[int, int]] = None, quality: Optional[int] = None) -> None:
        self.thumbnail_size = tuple(thumbnail_size or getattr(settings, "THUMBNAIL_SIZE", (300, 300)))
        self.quality = int(quality or getattr(settings, "CANONICAL_QUALITY", 85))

    def transcode(self, data: bytes, content_type: str) -> TranscodeResult:
        content_type = normalize_content_type(content_type)
        if not is_image_content_type(content_type):
            # 非图片原样透传，不生成缩略图
            return TranscodeResult(content=data, content_type=content_type)

        image = self._decode(data)
        try:
            metadata = extract_capture_metadata(image)
            upright = ImageOps.exif_transpose(image)
            upright = _fit_webp_bounds(_normalize_mode(upright))
            canonical = self._encode(upright)
            thumbnail = self._make_thumbnail_safely(upright)
        except (OSError, ValueError) as exc:
            raise UnsupportedMedia(f"图片转码失败: {exc}") from exc
        finally:
            image.close()

        return TranscodeResult(
            content=canonical,
            content_type=CANONICAL_CONTENT_TYPE,
            thumbnail=thumbnail,
            metadata=metadata,
            capture_time=capture_time_from(metadata),
        )

    def _decode(self, data: bytes) -> Image.Image:
        # 超过 MAX_IMAGE_PIXELS 两倍时 Pillow 抛出 DecompressionBombError
        try:
            image = Image.open(BytesIO(data))
            image.load()
        except (UnidentifiedImageError, OSError, SyntaxError, ValueError, Image.DecompressionBombError) as exc:
            raise UnsupportedMedia(f"无法解码图片: {exc}") from exc
        return image

    def _encode(self, img: Image.Image) -> bytes:
        buffer = BytesIO()
        img.save(buffer, format=CANONICAL_FORMAT, quality=self.quality)
        return buffer.getvalue()

    def make_thumbnail(self, img: Image.Image) -> bytes:
        thumb = img.copy()
        thumb.thumbnail(self.thumbnail_size, Image.Resampling.LANCZOS)
        return self._encode(thumb)

    def _make_thumbnail_safely(self, img: Image.Image) -> Optional[bytes]:
        """缩略图失败不影响入库。"""

        try:
            return self.make_thumbnail(img)
        except (OSError, ValueError, MemoryError):
            logger.warning("生成缩略图失败，继续入库", exc_info=True)
            return None
