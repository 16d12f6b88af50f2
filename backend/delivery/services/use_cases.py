"""Domain use-case objects built on top of delivery services."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, List, Optional

from django.contrib.auth import get_user_model

from ..domain.values import Actor, CancellationToken, Variant
from ..exceptions import NotFound, ValidationError
from ..models import Album, AlbumGrant, Photo
from ..utils_uploads import content_type_for_name, normalize_content_type
from .authorization import Action
from .container import DeliveryServices, build_delivery_services
from .search import SearchFilter, SearchResult
from .storage import PresignedURL, StoredObject


@dataclass
class DeliveryContext:
    user: Any
    actor: Actor
    services: DeliveryServices

    def require_album(self, album_id: int, action: Action) -> Album:
        album = self.services.albums.get_by_id(album_id)
        if album is None:
            raise NotFound("相册不存在")
        self.services.guard.require(self.actor, album, action)
        return album

    def require_photo(self, photo_id: int, action: Action) -> Photo:
        photo = self.services.photos.get_by_id(photo_id)
        if photo is None:
            raise NotFound("照片不存在")
        self.require_album(photo.album_id, action)
        return photo


class PhotoDeliveryUseCase:
    """Coordinate album, photo, asset and search operations for the current user."""

    def __init__(self, user, services: Optional[DeliveryServices] = None):
        self.context = DeliveryContext(
            user=user,
            actor=Actor.from_user(user),
            services=services or build_delivery_services(),
        )

    @property
    def user(self):
        return self.context.user

    @property
    def actor(self) -> Actor:
        return self.context.actor

    @property
    def services(self) -> DeliveryServices:
        return self.context.services

    # ---------- 相册 ----------

    def albums(self) -> List[Album]:
        visible = self.services.guard.visible_album_ids(self.actor)
        return self.services.albums.list_visible(visible)

    def get_album(self, album_id: int) -> Album:
        return self.context.require_album(album_id, Action.VIEW)

    def create_album(self, serializer):
        # 创建者即摄影师
        return serializer.save(owner=self.user)

    def list_album_photos(self, album: Album) -> List[Photo]:
        return self.services.photos.list_by_parent(album.id)

    def grant_access(self, album_id: int, user_id: int) -> AlbumGrant:
        album = self.context.require_album(album_id, Action.MANAGE_GRANTS)
        if not get_user_model().objects.filter(pk=user_id).exists():
            raise NotFound("用户不存在")
        if user_id == album.owner_id:
            raise ValidationError("相册所有者无需授权")
        return self.services.grants.grant(album.id, user_id)

    def revoke_access(self, album_id: int, user_id: int) -> bool:
        album = self.context.require_album(album_id, Action.MANAGE_GRANTS)
        return self.services.grants.revoke(album.id, user_id)

    def list_grants(self, album_id: int) -> List[AlbumGrant]:
        album = self.context.require_album(album_id, Action.MANAGE_GRANTS)
        return self.services.grants.list_by_parent(album.id)

    # ---------- 照片 ----------

    def upload(self, album_id: int, upload, cancel: Optional[CancellationToken] = None) -> Photo:
        filename = getattr(upload, "name", "") or ""
        content_type = normalize_content_type(getattr(upload, "content_type", "") or "")
        if not content_type or content_type == "application/octet-stream":
            content_type = content_type_for_name(filename)
        data = upload.read()
        return self.services.coordinator.ingest(album_id, filename, content_type, data, self.actor, cancel=cancel)

    def get_photo(self, photo_id: int) -> Photo:
        return self.context.require_photo(photo_id, Action.VIEW)

    def update_photo(self, photo_id: int, **fields) -> Photo:
        return self.services.coordinator.update(photo_id, self.actor, **fields)

    def update_rating(self, photo_id: int, stars: int) -> Photo:
        return self.services.coordinator.update_rating(photo_id, stars, self.actor)

    def update_state(self, photo_id: int, state: str) -> Photo:
        return self.services.coordinator.update_state(photo_id, state, self.actor)

    def delete_photo(self, photo_id: int, cancel: Optional[CancellationToken] = None) -> None:
        self.services.coordinator.delete(photo_id, self.actor, cancel=cancel)

    # ---------- 资源读取 ----------

    def _photo_for_blob(self, blob_id: str) -> Photo:
        # 照片只能经由元数据行访问，没有行的 blob 一律视为不存在
        photo = self.services.photos.get_by_blob_id(blob_id)
        if photo is None:
            raise NotFound("资源不存在")
        self.context.require_album(photo.album_id, Action.VIEW)
        return photo

    def get_asset(self, blob_id: str, variant: str) -> StoredObject:
        parsed = Variant.parse(variant)
        photo = self._photo_for_blob(blob_id)
        if parsed is Variant.THUMBNAIL and not photo.thumbnail_blob_id:
            raise NotFound("该照片没有缩略图")
        return self.services.store.get(parsed.namespace, photo.blob_id)

    def presigned_url(self, blob_id: str, variant: str, ttl: Optional[int] = None) -> PresignedURL:
        parsed = Variant.parse(variant)
        photo = self._photo_for_blob(blob_id)
        if parsed is Variant.THUMBNAIL and not photo.thumbnail_blob_id:
            raise NotFound("该照片没有缩略图")
        return self.services.store.presign(parsed.namespace, photo.blob_id, ttl)

    # ---------- 搜索 ----------

    def search(self, search_filter: SearchFilter) -> SearchResult:
        f = search_filter.normalized()
        if f.album_id is not None:
            self.context.require_album(f.album_id, Action.VIEW)
            f.album_ids = None
        else:
            f.album_ids = self.services.guard.visible_album_ids(self.actor)
            if f.album_ids is not None and not f.album_ids:
                return SearchResult(total=0)
        total, ids = self.services.indexer.query(f)
        return SearchResult(total=total, photos=self.services.photos.in_order(ids))

    def reindex_album(self, album_id: int) -> int:
        return self.services.coordinator.reindex_album(album_id, self.actor)
