"""领域值对象：元数据容器、操作者、取消令牌等。"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable, Iterator, List, Optional, Tuple, Union

from ..exceptions import AuthorizationError, OperationCancelled, ValidationError

Scalar = Union[str, int, float, bool, None]
_SCALAR_TYPES = (str, int, float, bool, type(None))

logger = logging.getLogger(__name__)


class Namespace(str, Enum):
    ORIGINAL = "originals"
    THUMBNAIL = "thumbnails"

    @property
    def prefix(self) -> str:
        return f"{self.value}/"


class Variant(str, Enum):
    """对外暴露的资源变体，与存储命名空间一一对应。"""

    ORIGINAL = "original"
    THUMBNAIL = "thumbnail"

    @property
    def namespace(self) -> Namespace:
        return Namespace.ORIGINAL if self is Variant.ORIGINAL else Namespace.THUMBNAIL

    @classmethod
    def parse(cls, raw: str) -> "Variant":
        try:
            return cls(raw)
        except ValueError as exc:
            raise ValidationError(f"variant 非法: {raw}") from exc


class MetadataMap:
    """有序的 key -> 标量 映射。

    以 ``[[key, value], ...]`` 形式序列化，保证顺序与 int/float 区分在
    JSONB 之类不保序的存储中也不丢失。
    """

    __slots__ = ("_items",)

    def __init__(self, items: Optional[Iterable[Tuple[str, Scalar]]] = None) -> None:
        self._items: dict = {}
        for key, value in items or ():
            self[key] = value

    def __setitem__(self, key: str, value: Scalar) -> None:
        if not isinstance(key, str) or not key:
            raise ValidationError("元数据键必须是非空字符串")
        if not isinstance(value, _SCALAR_TYPES):
            raise ValidationError(f"元数据 {key} 的值必须是标量")
        self._items[key] = value

    def __getitem__(self, key: str) -> Scalar:
        return self._items[key]

    def __contains__(self, key: object) -> bool:
        return key in self._items

    def __iter__(self) -> Iterator[str]:
        return iter(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, MetadataMap):
            return NotImplemented
        return list(self.items()) == list(other.items())

    def __repr__(self) -> str:
        return f"MetadataMap({list(self.items())!r})"

    def get(self, key: str, default: Scalar = None) -> Scalar:
        return self._items.get(key, default)

    def items(self):
        return self._items.items()

    def text_values(self) -> List[str]:
        return [str(value) for value in self._items.values() if value is not None and value != ""]

    def to_json(self) -> List[List[Any]]:
        return [[key, value] for key, value in self._items.items()]

    def as_dict(self) -> dict:
        return dict(self._items)

    @classmethod
    def from_json(cls, raw: Any) -> "MetadataMap":
        """兼容 pair 列表与普通对象两种形态。

        读路径容错：非法的键或非标量值被跳过，其余内容一律视为空。
        """

        if isinstance(raw, MetadataMap):
            return raw
        if isinstance(raw, dict):
            pairs = list(raw.items())
        elif isinstance(raw, (list, tuple)):
            pairs = [item for item in raw if isinstance(item, (list, tuple)) and len(item) == 2]
        else:
            return cls()
        result = cls()
        for key, value in pairs:
            if isinstance(key, str) and key and isinstance(value, _SCALAR_TYPES):
                result._items[key] = value
            else:
                logger.warning("忽略非法的元数据项", extra={"key": repr(key)})
        return result


class PickRejectState(str, Enum):
    NONE = "none"
    PICK = "pick"
    REJECT = "reject"

    @classmethod
    def parse(cls, raw) -> "PickRejectState":
        try:
            return cls(raw)
        except ValueError as exc:
            raise ValidationError("state 只能是 none、pick 或 reject") from exc


MIN_STARS = 0
MAX_STARS = 5


def validate_stars(raw) -> int:
    if isinstance(raw, bool) or not isinstance(raw, int):
        raise ValidationError("stars 必须是整数")
    if raw < MIN_STARS or raw > MAX_STARS:
        raise ValidationError(f"stars 必须在 {MIN_STARS} 到 {MAX_STARS} 之间")
    return raw


@dataclass(frozen=True)
class Actor:
    user_id: int
    is_admin: bool = False

    @classmethod
    def from_user(cls, user) -> "Actor":
        if user is None or not getattr(user, "is_authenticated", False):
            raise AuthorizationError("未登录")
        return cls(user_id=user.pk, is_admin=bool(user.is_staff or user.is_superuser))


class CancellationToken:
    """调用方持有的取消信号，流水线在每个外部调用前检查。"""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise OperationCancelled("操作已取消")
