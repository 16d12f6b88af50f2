"""照片的拍摄元数据提取工具。"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Mapping, Optional, Tuple

from PIL import ExifTags, Image
from django.utils import timezone

from ..domain.values import MetadataMap, Scalar

logger = logging.getLogger(__name__)

EXIF_DATETIME_FORMATS = [
    "%Y:%m:%d %H:%M:%S",
    "%Y-%m-%dT%H:%M:%S%z",
    "%Y-%m-%dT%H:%M:%S",
    "%Y-%m-%d %H:%M:%S",
]

# (输出键, EXIF 标签名)，输出顺序即此顺序
EXIF_FIELDS = [
    ("Make", "Make"),
    ("Model", "Model"),
    ("LensModel", "LensModel"),
    ("FocalLength", "FocalLength"),
    ("FNumber", "FNumber"),
    ("ExposureTime", "ExposureTime"),
    ("ISO", "ISOSpeedRatings"),
    ("DateTimeOriginal", "DateTimeOriginal"),
    ("DateTime", "DateTime"),
]
EXIF_TRAILING_FIELDS = [
    ("Orientation", "Orientation"),
    ("Software", "Software"),
    ("Artist", "Artist"),
    ("Copyright", "Copyright"),
    ("ExposureProgram", "ExposureProgram"),
    ("MeteringMode", "MeteringMode"),
    ("Flash", "Flash"),
    ("WhiteBalance", "WhiteBalance"),
]

_EXIF_IFD = 0x8769
_GPS_IFD = 0x8825


def _to_float(value) -> Optional[float]:
    try:
        if isinstance(value, tuple) and len(value) == 2:
            return float(value[0]) / float(value[1])
        return float(value)
    except (TypeError, ValueError, ZeroDivisionError):
        return None


def _to_scalar(value: Any) -> Scalar:
    """EXIF 值转为标量；无法表示的（序列、二进制块）返回 None。"""

    if isinstance(value, bytes):
        value = value.decode("ascii", errors="ignore")
    if isinstance(value, str):
        value = value.replace("\x00", "").strip()
        return value or None
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return value
    if isinstance(value, tuple) and len(value) == 1:
        return _to_scalar(value[0])
    number = _to_float(value)
    if number is None or number != number:
        return None
    return round(number, 6)


def _dms_to_deg(dms, ref):
    try:
        deg, minute, sec = (_to_float(part) for part in dms)
        if deg is None or minute is None or sec is None:
            return None
        val = deg + minute / 60 + sec / 3600
        if ref in ["S", "W"]:
            val = -val
        return round(val, 7)
    except (TypeError, ValueError):
        return None


def parse_capture_time(value: Any) -> Optional[datetime]:
    """按顺序尝试文本格式，第一个成功者胜出；都不匹配返回 None。"""

    if not isinstance(value, str) or not value.strip():
        return None
    value = value.replace("\x00", "").strip()
    for fmt in EXIF_DATETIME_FORMATS:
        try:
            dt = datetime.strptime(value, fmt)
        except ValueError:
            continue
        if timezone.is_naive(dt):
            return timezone.make_aware(dt, timezone=timezone.get_current_timezone())
        return dt
    return None


def read_exif(img: Image.Image) -> Tuple[Mapping, Mapping, Mapping]:
    """返回 (主 IFD, Exif IFD, GPS IFD)，均以标签名为键。"""

    try:
        exif = img.getexif()
    except (AttributeError, OSError, SyntaxError, ValueError):
        logger.warning("读取 EXIF 失败", exc_info=True)
        return {}, {}, {}

    def _named(raw: Mapping, names: Mapping) -> dict:
        return {names.get(k, k): v for k, v in raw.items()}

    base = _named(dict(exif.items()), ExifTags.TAGS)
    try:
        exif_ifd = _named(exif.get_ifd(_EXIF_IFD), ExifTags.TAGS)
    except (KeyError, OSError, SyntaxError, ValueError, TypeError):
        exif_ifd = {}
    try:
        gps_ifd = _named(exif.get_ifd(_GPS_IFD), ExifTags.GPSTAGS)
    except (KeyError, OSError, SyntaxError, ValueError, TypeError):
        gps_ifd = {}
    return base, exif_ifd, gps_ifd


def build_metadata(size: Tuple[int, int], base: Mapping, exif_ifd: Mapping, gps_ifd: Mapping) -> MetadataMap:
    """把原始标签整理成有序的 MetadataMap，缺失或损坏的标签直接跳过。"""

    merged = dict(base)
    merged.update(exif_ifd)
    if "ISOSpeedRatings" not in merged and "PhotographicSensitivity" in merged:
        merged["ISOSpeedRatings"] = merged["PhotographicSensitivity"]

    metadata = MetadataMap()

    def _put(key: str, tag: str) -> None:
        value = _to_scalar(merged.get(tag))
        if value is not None:
            metadata[key] = value

    for key, tag in EXIF_FIELDS:
        _put(key, tag)

    width, height = size
    metadata["ImageWidth"] = int(width)
    metadata["ImageHeight"] = int(height)

    for key, tag in EXIF_TRAILING_FIELDS:
        _put(key, tag)

    lat = gps_ifd.get("GPSLatitude")
    lat_ref = gps_ifd.get("GPSLatitudeRef")
    lng = gps_ifd.get("GPSLongitude")
    lng_ref = gps_ifd.get("GPSLongitudeRef")
    if lat and lat_ref and lng and lng_ref:
        lat_val = _dms_to_deg(lat, _to_scalar(lat_ref))
        lng_val = _dms_to_deg(lng, _to_scalar(lng_ref))
        if lat_val is not None and lng_val is not None:
            metadata["Latitude"] = lat_val
            metadata["Longitude"] = lng_val

    return metadata


def capture_time_from(metadata: MetadataMap) -> Optional[datetime]:
    return parse_capture_time(metadata.get("DateTimeOriginal")) or parse_capture_time(metadata.get("DateTime"))


def extract_capture_metadata(img: Image.Image) -> MetadataMap:
    base, exif_ifd, gps_ifd = read_exif(img)
    return build_metadata(img.size, base, exif_ifd, gps_ifd)
