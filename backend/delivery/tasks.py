"""与搜索索引相关的 Celery 任务。"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from celery import shared_task
from django.utils import timezone

from .exceptions import MetadataError, SearchIndexError
from .repositories import AlbumRepository, CommentRepository, PhotoRepository
from .services.search import get_search_indexer

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IndexTaskResult:
    """索引任务的返回值，渲染为 ``<status>:<photo_id>[:<reason>]``，便于在结果后端中检索。"""

    status: str
    photo_id: int
    reason: Optional[str] = None

    def render(self) -> str:
        parts = [self.status, str(self.photo_id)]
        if self.reason:
            parts.append(self.reason)
        return ":".join(parts)

    @classmethod
    def indexed(cls, photo_id: int) -> "IndexTaskResult":
        return cls("indexed", photo_id)

    @classmethod
    def removed(cls, photo_id: int) -> "IndexTaskResult":
        return cls("removed", photo_id)

    @classmethod
    def missing(cls, photo_id: int) -> "IndexTaskResult":
        return cls("missing", photo_id)

    @classmethod
    def failed(cls, photo_id: int, exc: Exception) -> "IndexTaskResult":
        return cls("err", photo_id, getattr(exc, "code", None) or exc.__class__.__name__)


@shared_task
def index_photo(photo_id: int) -> str:
    """刷新单张照片的搜索文档。"""

    photos = PhotoRepository()
    try:
        photo = photos.get_by_id(photo_id)
        if photo is None:
            return IndexTaskResult.missing(photo_id).render()
        album = AlbumRepository().get_by_id(photo.album_id)
        comments = CommentRepository().texts_for_photos([photo.id]).get(photo.id, [])
    except MetadataError as exc:
        logger.exception("索引前读取照片失败", extra={"photo_id": photo_id})
        return IndexTaskResult.failed(photo_id, exc).render()

    try:
        get_search_indexer().upsert(photo, album, comments)
    except SearchIndexError as exc:
        logger.exception("索引照片失败", extra={"photo_id": photo_id})
        return IndexTaskResult.failed(photo_id, exc).render()

    try:
        photos.mark_indexed(photo_id, timezone.now())
    except MetadataError:
        logger.warning("记录索引时间失败", extra={"photo_id": photo_id}, exc_info=True)
    return IndexTaskResult.indexed(photo_id).render()


@shared_task
def remove_photo_from_index(photo_id: int) -> str:
    """删除照片的搜索文档，文档不存在也视为成功。"""

    try:
        get_search_indexer().remove(photo_id)
    except SearchIndexError as exc:
        logger.exception("删除索引失败", extra={"photo_id": photo_id})
        return IndexTaskResult.failed(photo_id, exc).render()
    return IndexTaskResult.removed(photo_id).render()
