"""按调用构建服务对象，替代进程级共享句柄。"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from ..repositories import AlbumGrantRepository, AlbumRepository, CommentRepository, PhotoRepository
from .authorization import AuthorizationGuard
from .ingestion import IngestionCoordinator
from .search import SearchIndexer, get_search_indexer
from .storage import ObjectStore, get_object_store
from .transcoder import MediaTranscoder
from .uploads import IndexDispatcher


@dataclass
class DeliveryServices:
    store: ObjectStore
    indexer: SearchIndexer
    transcoder: MediaTranscoder
    albums: AlbumRepository
    photos: PhotoRepository
    grants: AlbumGrantRepository
    comments: CommentRepository
    guard: AuthorizationGuard
    dispatcher: IndexDispatcher
    coordinator: IngestionCoordinator


def build_delivery_services(
    store: Optional[ObjectStore] = None,
    indexer: Optional[SearchIndexer] = None,
    transcoder: Optional[MediaTranscoder] = None,
    dispatcher: Optional[IndexDispatcher] = None,
) -> DeliveryServices:
    """未显式传入的依赖按 settings 选择默认实现，测试可逐个替换。"""

    store = store or get_object_store()
    indexer = indexer or get_search_indexer()
    transcoder = transcoder or MediaTranscoder()
    dispatcher = dispatcher or IndexDispatcher()

    albums = AlbumRepository()
    photos = PhotoRepository()
    grants = AlbumGrantRepository()
    comments = CommentRepository()
    guard = AuthorizationGuard(grants, albums)
    coordinator = IngestionCoordinator(
        store=store,
        transcoder=transcoder,
        guard=guard,
        photos=photos,
        albums=albums,
        dispatcher=dispatcher,
        indexer=indexer,
        comments=comments,
    )
    return DeliveryServices(
        store=store,
        indexer=indexer,
        transcoder=transcoder,
        albums=albums,
        photos=photos,
        grants=grants,
        comments=comments,
        guard=guard,
        dispatcher=dispatcher,
        coordinator=coordinator,
    )
