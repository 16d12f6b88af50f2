"""入库协调器：把转码、对象存储、元数据提交与索引推送编排为一次调用。

三个存储之间没有共享事务，唯一的一致性手段是补偿删除：
元数据提交失败（或在提交前被取消）时删除已经写入的对象，
保证没有行的照片不会留下可见的 blob。索引推送尽力而为，失败只记日志。
"""

from __future__ import annotations

import logging
from typing import List, Optional

from django.utils import timezone

from ..domain.values import Actor, CancellationToken, Namespace, PickRejectState, validate_stars
from ..exceptions import NotFound, StorageError
from ..models import Album, Photo
from ..repositories import AlbumRepository, CommentRepository, PhotoRepository
from ..utils_uploads import new_blob_id, sanitize_filename, validate_upload_meta
from .authorization import Action, AuthorizationGuard
from .search import SearchIndexer, get_search_indexer
from .storage import ObjectStore
from .transcoder import CANONICAL_CONTENT_TYPE, MediaTranscoder
from .uploads import IndexDispatcher

logger = logging.getLogger(__name__)


def _never_cancelled() -> CancellationToken:
    return CancellationToken()


class IngestionCoordinator:
    def __init__(
        self,
        store: ObjectStore,
        transcoder: MediaTranscoder,
        guard: AuthorizationGuard,
        photos: Optional[PhotoRepository] = None,
        albums: Optional[AlbumRepository] = None,
        dispatcher: Optional[IndexDispatcher] = None,
        indexer: Optional[SearchIndexer] = None,
        comments: Optional[CommentRepository] = None,
    ) -> None:
        self.store = store
        self.transcoder = transcoder
        self.guard = guard
        self.photos = photos or PhotoRepository()
        self.albums = albums or AlbumRepository()
        self.dispatcher = dispatcher or IndexDispatcher()
        self.indexer = indexer or get_search_indexer()
        self.comments = comments or CommentRepository()

    # ---------- 查找 ----------

    def require_album(self, album_id: int) -> Album:
        album = self.albums.get_by_id(album_id)
        if album is None:
            raise NotFound("相册不存在")
        return album

    def require_photo(self, photo_id: int) -> Photo:
        photo = self.photos.get_by_id(photo_id)
        if photo is None:
            raise NotFound("照片不存在")
        return photo

    # ---------- 入库 ----------

    def ingest(
        self,
        album_id: int,
        filename: str,
        content_type: str,
        data: bytes,
        actor: Actor,
        cancel: Optional[CancellationToken] = None,
    ) -> Photo:
        cancel = cancel or _never_cancelled()

        album = self.require_album(album_id)
        self.guard.require(actor, album, Action.UPLOAD)
        validate_upload_meta(filename, len(data))

        cancel.raise_if_cancelled()
        result = self.transcoder.transcode(data, content_type)

        blob_id = new_blob_id()
        cancel.raise_if_cancelled()
        self.store.put(Namespace.ORIGINAL, blob_id, result.content, result.content_type)
        written: List[Namespace] = [Namespace.ORIGINAL]

        try:
            thumbnail_id = None
            if result.thumbnail is not None:
                cancel.raise_if_cancelled()
                try:
                    self.store.put(Namespace.THUMBNAIL, blob_id, result.thumbnail, CANONICAL_CONTENT_TYPE)
                except StorageError:
                    logger.warning("缩略图写入失败，继续入库", extra={"blob_id": blob_id}, exc_info=True)
                else:
                    written.append(Namespace.THUMBNAIL)
                    thumbnail_id = blob_id

            cancel.raise_if_cancelled()
            photo = self.photos.create(
                album=album,
                blob_id=blob_id,
                thumbnail_blob_id=thumbnail_id,
                content_type=result.content_type,
                size=len(result.content),
                original_filename=sanitize_filename(filename)[:255],
                metadata=result.metadata,
                capture_time=result.capture_time,
                state=PickRejectState.NONE.value,
                stars=0,
            )
        except Exception:
            self._compensate(blob_id, written)
            raise

        logger.info("照片入库完成", extra={"photo_id": photo.id, "blob_id": blob_id, "album_id": album.id})
        self.dispatcher.dispatch_upsert(photo.id)
        return photo

    def _compensate(self, blob_id: str, written: List[Namespace]) -> None:
        for namespace in reversed(written):
            try:
                self.store.delete(namespace, blob_id)
            except StorageError:
                logger.exception(
                    "补偿删除失败，对象可能残留",
                    extra={"blob_id": blob_id, "namespace": namespace.value},
                )

    # ---------- 删除 ----------

    def delete(self, photo_id: int, actor: Actor, cancel: Optional[CancellationToken] = None) -> None:
        """先删对象再删行；行删除失败时行会指向已不存在的对象，不做自动修复。"""

        cancel = cancel or _never_cancelled()
        photo = self.require_photo(photo_id)
        album = self.require_album(photo.album_id)
        self.guard.require(actor, album, Action.DELETE)

        cancel.raise_if_cancelled()
        self.store.delete(Namespace.THUMBNAIL, photo.blob_id)
        cancel.raise_if_cancelled()
        self.store.delete(Namespace.ORIGINAL, photo.blob_id)
        cancel.raise_if_cancelled()
        self.photos.delete(photo.id)

        logger.info("照片已删除", extra={"photo_id": photo_id, "blob_id": photo.blob_id})
        self.dispatcher.dispatch_remove(photo_id)

    # ---------- 仅元数据的修改 ----------

    def update(
        self,
        photo_id: int,
        actor: Actor,
        *,
        stars: Optional[int] = None,
        state: Optional[str] = None,
        title: Optional[str] = None,
    ) -> Photo:
        fields = []
        if stars is not None:
            stars = validate_stars(stars)
        if state is not None:
            state = PickRejectState.parse(state).value

        photo = self.require_photo(photo_id)
        album = self.require_album(photo.album_id)
        self.guard.require(actor, album, Action.UPDATE)

        if stars is not None:
            photo.stars = stars
            fields.append("stars")
        if state is not None:
            photo.state = state
            fields.append("state")
        if title is not None:
            photo.title = title.strip()[:200]
            fields.append("title")
        if not fields:
            return photo

        # 并发修改按最后写入者为准
        self.photos.update(photo, fields + ["updated_at"])
        self.dispatcher.dispatch_upsert(photo.id)
        return photo

    def update_rating(self, photo_id: int, stars: int, actor: Actor) -> Photo:
        return self.update(photo_id, actor, stars=stars)

    def update_state(self, photo_id: int, state: str, actor: Actor) -> Photo:
        return self.update(photo_id, actor, state=state)

    # ---------- 重建索引 ----------

    def reindex_album(self, album_id: int, actor: Actor) -> int:
        """同步重建整个相册的搜索文档，整批成功或整批抛出 SearchIndexError。"""

        album = self.require_album(album_id)
        self.guard.require(actor, album, Action.REINDEX)

        photos = self.photos.list_by_parent(album.id)
        comments = self.comments.texts_for_photos([photo.id for photo in photos])
        self.indexer.bulk_upsert(photos, {album.id: album}, comments)

        if photos:
            now = timezone.now()
            for photo in photos:
                self.photos.mark_indexed(photo.id, now)
        logger.info("相册索引已重建", extra={"album_id": album.id, "count": len(photos)})
        return len(photos)
