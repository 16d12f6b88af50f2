"""统一的相册访问判定：管理员 / 摄影师本人 / 受授权用户。"""

from __future__ import annotations

from enum import Enum
from typing import List, Optional

from ..domain.values import Actor
from ..exceptions import AuthorizationError
from ..models import Album
from ..repositories import AlbumGrantRepository, AlbumRepository


class Action(str, Enum):
    VIEW = "view"
    UPLOAD = "upload"
    UPDATE = "update"
    DELETE = "delete"
    MANAGE_GRANTS = "manage_grants"
    REINDEX = "reindex"

    @property
    def is_mutating(self) -> bool:
        return self is not Action.VIEW


class Capability(str, Enum):
    ADMIN = "admin"
    OWNER = "owner"
    GRANTEE = "grantee"
    NONE = "none"


class AuthorizationGuard:
    """每次调用都重新查询授权记录，不跨请求缓存。"""

    def __init__(self, grants: AlbumGrantRepository, albums: Optional[AlbumRepository] = None) -> None:
        self.grants = grants
        self.albums = albums or AlbumRepository()

    def capability(self, actor: Actor, album: Album) -> Capability:
        if actor.is_admin:
            return Capability.ADMIN
        if album.owner_id == actor.user_id:
            return Capability.OWNER
        if self.grants.exists(album.id, actor.user_id):
            return Capability.GRANTEE
        return Capability.NONE

    def can(self, actor: Actor, album: Album, action: Action) -> bool:
        capability = self.capability(actor, album)
        if capability in (Capability.ADMIN, Capability.OWNER):
            return True
        if capability is Capability.GRANTEE:
            return not action.is_mutating
        return False

    def require(self, actor: Actor, album: Album, action: Action) -> None:
        if not self.can(actor, album, action):
            if action.is_mutating:
                raise AuthorizationError("只有相册所有者或管理员可以执行该操作")
            raise AuthorizationError("无权访问该相册")

    def visible_album_ids(self, actor: Actor) -> Optional[List[int]]:
        """管理员返回 None（不限制），其他人返回自有 + 受授权的相册。"""

        if actor.is_admin:
            return None
        owned = [album.id for album in self.albums.list_by_parent(actor.user_id)]
        granted = self.grants.album_ids_for_user(actor.user_id)
        return sorted(set(owned) | set(granted))
