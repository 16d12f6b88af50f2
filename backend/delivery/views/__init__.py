"""聚合视图入口，便于路由导入。"""

from .assets import get_asset, presigned_url, signed_asset
from .base import AlbumViewSet, PhotoViewSet
from .search import search_photos

__all__ = [
    "AlbumViewSet",
    "PhotoViewSet",
    "get_asset",
    "presigned_url",
    "signed_asset",
    "search_photos",
]
