from __future__ import annotations

import shutil
import tempfile
from io import BytesIO
from typing import Optional, Tuple
from unittest.mock import MagicMock

from PIL import Image

from ..services.container import build_delivery_services
from ..services.search import DatabaseSearchIndexer
from ..services.storage import LocalObjectStore
from ..services.uploads import IndexDispatcher


def make_jpeg(
    size: Tuple[int, int] = (640, 480),
    *,
    taken: Optional[str] = None,
    make: Optional[str] = None,
    orientation: Optional[int] = None,
    color: str = "red",
) -> bytes:
    img = Image.new("RGB", size, color)
    exif = Image.Exif()
    if make:
        exif[0x010F] = make
    if taken:
        exif[0x0132] = taken  # DateTime
    if orientation:
        exif[0x0112] = orientation
    buffer = BytesIO()
    img.save(buffer, format="JPEG", exif=exif.tobytes(), quality=90)
    return buffer.getvalue()


def make_png(size: Tuple[int, int] = (64, 64), mode: str = "P") -> bytes:
    img = Image.new(mode, size)
    buffer = BytesIO()
    img.save(buffer, format="PNG")
    return buffer.getvalue()


def temp_store(test_case) -> LocalObjectStore:
    root = tempfile.mkdtemp(prefix="delivery-test-")
    test_case.addCleanup(shutil.rmtree, root, True)
    return LocalObjectStore(root)


def isolated_services(test_case, dispatcher=None):
    """独立目录的本地存储 + 数据库索引；默认用 MagicMock 代替索引派发。"""

    return build_delivery_services(
        store=temp_store(test_case),
        indexer=DatabaseSearchIndexer(),
        dispatcher=dispatcher or MagicMock(spec=IndexDispatcher),
    )
