"""交付流水线的错误分类。

视图层通过 ``delivery.views.errors`` 统一映射为 HTTP 响应；
服务层只抛出这里定义的异常，不直接依赖 DRF。
"""


class DeliveryError(Exception):
    """所有领域错误的基类。"""

    code = "error"

    def __init__(self, message: str = "") -> None:
        super().__init__(message or self.__class__.__name__)
        self.message = message or self.__class__.__name__


class ValidationError(DeliveryError):
    """输入格式错误或越界。"""

    code = "validation_error"


class AuthorizationError(DeliveryError):
    """操作者不具备所需能力。"""

    code = "forbidden"


class NotFound(DeliveryError):
    """相册、照片或对象不存在。"""

    code = "not_found"


class UnsupportedMedia(DeliveryError):
    """声明为图片但无法解码。"""

    code = "unsupported_media"


class StorageError(DeliveryError):
    """对象存储调用失败。"""

    code = "storage_error"


class MetadataError(DeliveryError):
    """关系库读写失败。"""

    code = "metadata_error"


class SearchIndexError(DeliveryError):
    """搜索索引调用失败，写路径上只记录日志。"""

    code = "search_index_error"


class SearchUnavailable(SearchIndexError):
    """查询路径上的索引故障。"""

    code = "search_unavailable"


class OperationCancelled(DeliveryError):
    """调用方取消了操作。"""

    code = "cancelled"


class StorageBackendNotConfigured(RuntimeError):
    """当目标存储后端不可用时抛出。"""
