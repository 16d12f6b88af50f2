"""关系库仓储：相册、照片与授权提供 create / get_by_id / update / delete / list_by_parent，评论只按照片批量读取文本。

查找不到时返回 ``None`` 或空列表，而不是抛异常；数据库故障统一转换为
``MetadataError``。
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Dict, Iterable, List, Optional, Sequence

from django.db import DatabaseError, IntegrityError, transaction

from .exceptions import MetadataError, ValidationError
from .models import Album, AlbumGrant, Comment, Photo

logger = logging.getLogger(__name__)


@contextmanager
def _db_errors(operation: str):
    try:
        yield
    except IntegrityError as exc:
        raise MetadataError(f"{operation} 违反约束: {exc}") from exc
    except DatabaseError as exc:
        logger.exception("数据库操作失败", extra={"operation": operation})
        raise MetadataError(f"{operation} 失败: {exc}") from exc


class _Repository:
    model = None

    def get_by_id(self, pk) -> Optional[object]:
        with _db_errors(f"get {self.model.__name__}"):
            return self.model.objects.filter(pk=pk).first()

    def create(self, **fields):
        with _db_errors(f"create {self.model.__name__}"):
            with transaction.atomic():
                return self.model.objects.create(**fields)

    def update(self, instance, fields: Sequence[str]):
        with _db_errors(f"update {self.model.__name__}"):
            instance.save(update_fields=list(fields))
        return instance

    def delete(self, pk) -> bool:
        with _db_errors(f"delete {self.model.__name__}"):
            deleted, _ = self.model.objects.filter(pk=pk).delete()
        return deleted > 0


class AlbumRepository(_Repository):
    model = Album

    def update(self, instance, fields: Sequence[str]):
        if "owner" in fields or "owner_id" in fields:
            raise ValidationError("相册归属创建后不可修改")
        return super().update(instance, fields)

    def list_by_parent(self, owner_id: int) -> List[Album]:
        with _db_errors("list albums"):
            return list(Album.objects.filter(owner_id=owner_id).order_by("-created_at"))

    def list_visible(self, album_ids: Optional[Iterable[int]]) -> List[Album]:
        """``album_ids`` 为 None 表示不做限制（管理员）。"""

        qs = Album.objects.all()
        if album_ids is not None:
            qs = qs.filter(id__in=list(album_ids))
        with _db_errors("list albums"):
            return list(qs.order_by("-created_at"))


class PhotoRepository(_Repository):
    model = Photo

    def get_by_blob_id(self, blob_id: str) -> Optional[Photo]:
        with _db_errors("get photo by blob"):
            return Photo.objects.filter(blob_id=blob_id).first()

    def list_by_parent(self, album_id: int) -> List[Photo]:
        with _db_errors("list photos"):
            return list(Photo.objects.filter(album_id=album_id).order_by("created_at", "id"))

    def in_order(self, photo_ids: Sequence[int]) -> List[Photo]:
        """按给定 id 顺序取回照片，缺失的行直接跳过。"""

        with _db_errors("load photos"):
            rows = {photo.id: photo for photo in Photo.objects.filter(id__in=list(photo_ids))}
        return [rows[pid] for pid in photo_ids if pid in rows]

    def mark_indexed(self, photo_id: int, at) -> None:
        # update() 不会触发 auto_now，updated_at 保持不变
        with _db_errors("mark indexed"):
            Photo.objects.filter(id=photo_id).update(indexed_at=at)


class AlbumGrantRepository(_Repository):
    model = AlbumGrant

    def exists(self, album_id: int, user_id: int) -> bool:
        with _db_errors("check grant"):
            return AlbumGrant.objects.filter(album_id=album_id, user_id=user_id).exists()

    def grant(self, album_id: int, user_id: int) -> AlbumGrant:
        with _db_errors("create grant"):
            grant, _ = AlbumGrant.objects.get_or_create(album_id=album_id, user_id=user_id)
        return grant

    def revoke(self, album_id: int, user_id: int) -> bool:
        with _db_errors("delete grant"):
            deleted, _ = AlbumGrant.objects.filter(album_id=album_id, user_id=user_id).delete()
        return deleted > 0

    def list_by_parent(self, album_id: int) -> List[AlbumGrant]:
        with _db_errors("list grants"):
            return list(AlbumGrant.objects.filter(album_id=album_id).order_by("created_at"))

    def album_ids_for_user(self, user_id: int) -> List[int]:
        with _db_errors("list granted albums"):
            return list(AlbumGrant.objects.filter(user_id=user_id).values_list("album_id", flat=True))


class CommentRepository(_Repository):
    model = Comment

    def texts_for_photos(self, photo_ids: Sequence[int]) -> Dict[int, List[str]]:
        result: Dict[int, List[str]] = {pid: [] for pid in photo_ids}
        with _db_errors("list comments"):
            rows = (
                Comment.objects.filter(photo_id__in=list(photo_ids))
                .order_by("created_at", "id")
                .values_list("photo_id", "text")
            )
            for photo_id, text in rows:
                result.setdefault(photo_id, []).append(text)
        return result
