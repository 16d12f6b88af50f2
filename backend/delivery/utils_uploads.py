import mimetypes
import re
import uuid

from django.conf import settings

from .exceptions import ValidationError

SAFE_NAME_RE = re.compile(r"[^A-Za-z0-9._-]+")

CONTENT_TYPE_EXTENSIONS = {
    "image/webp": ".webp",
    "image/jpeg": ".jpg",
    "image/png": ".png",
    "image/gif": ".gif",
    "image/heic": ".heic",
    "image/heif": ".heif",
    "application/pdf": ".pdf",
    "application/octet-stream": ".bin",
}
_EXTENSION_CONTENT_TYPES = {ext: ctype for ctype, ext in CONTENT_TYPE_EXTENSIONS.items()}


def sanitize_filename(filename: str) -> str:
    filename = (filename or "").strip().replace(" ", "_")
    filename = SAFE_NAME_RE.sub("_", filename)
    return filename or f"file_{uuid.uuid4().hex}"


def new_blob_id() -> str:
    """原图与缩略图共用的随机对象 id。"""
    return uuid.uuid4().hex


def normalize_content_type(content_type: str) -> str:
    content_type = (content_type or "").split(";", 1)[0].strip().lower()
    return content_type or "application/octet-stream"


def is_image_content_type(content_type: str) -> bool:
    return normalize_content_type(content_type).startswith("image/")


def extension_for_content_type(content_type: str) -> str:
    content_type = normalize_content_type(content_type)
    return CONTENT_TYPE_EXTENSIONS.get(content_type) or mimetypes.guess_extension(content_type) or ".bin"


def content_type_for_name(name: str) -> str:
    for ext, ctype in _EXTENSION_CONTENT_TYPES.items():
        if name.lower().endswith(ext):
            return ctype
    guessed, _ = mimetypes.guess_type(name)
    return guessed or "application/octet-stream"


def validate_upload_meta(filename: str, size: int):
    max_size_mb = getattr(settings, "MAX_UPLOAD_SIZE_MB", 50)
    if size <= 0:
        raise ValidationError("上传内容为空")
    if size > max_size_mb * 1024 * 1024:
        raise ValidationError(f"文件过大，最大{max_size_mb}MB")
    if filename and len(filename) > 255:
        raise ValidationError("文件名过长")
