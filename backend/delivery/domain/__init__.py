"""领域层：值对象与枚举，供服务、模型、视图共用。"""

from .values import (
    Actor,
    CancellationToken,
    MetadataMap,
    Namespace,
    PickRejectState,
    Variant,
    validate_stars,
)

__all__ = [
    "Actor",
    "CancellationToken",
    "MetadataMap",
    "Namespace",
    "PickRejectState",
    "Variant",
    "validate_stars",
]
