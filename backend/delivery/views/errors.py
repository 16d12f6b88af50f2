"""领域异常到 HTTP 响应的统一映射。"""

import logging

from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import exception_handler

from ..exceptions import (
    AuthorizationError,
    DeliveryError,
    MetadataError,
    NotFound,
    OperationCancelled,
    SearchIndexError,
    SearchUnavailable,
    StorageBackendNotConfigured,
    StorageError,
    UnsupportedMedia,
    ValidationError,
)

logger = logging.getLogger(__name__)

HTTP_499_CLIENT_CLOSED_REQUEST = 499

# 顺序敏感：子类在前
STATUS_BY_ERROR = (
    (ValidationError, status.HTTP_400_BAD_REQUEST),
    (AuthorizationError, status.HTTP_403_FORBIDDEN),
    (NotFound, status.HTTP_404_NOT_FOUND),
    (UnsupportedMedia, status.HTTP_415_UNSUPPORTED_MEDIA_TYPE),
    (StorageError, status.HTTP_502_BAD_GATEWAY),
    (MetadataError, status.HTTP_502_BAD_GATEWAY),
    (SearchUnavailable, status.HTTP_503_SERVICE_UNAVAILABLE),
    (SearchIndexError, status.HTTP_502_BAD_GATEWAY),
    (OperationCancelled, HTTP_499_CLIENT_CLOSED_REQUEST),
)


def status_for(exc: DeliveryError) -> int:
    for error_type, code in STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def delivery_exception_handler(exc, context):
    if isinstance(exc, DeliveryError):
        code = status_for(exc)
        if code >= 500:
            logger.warning("请求失败: %s", exc.message, extra={"code": exc.code})
        return Response({"detail": exc.message, "code": exc.code}, status=code)
    if isinstance(exc, StorageBackendNotConfigured):
        logger.error("存储后端未配置: %s", exc)
        return Response({"detail": str(exc), "code": "storage_not_configured"},
                        status=status.HTTP_503_SERVICE_UNAVAILABLE)
    return exception_handler(exc, context)
