"""原图/缩略图读取与预签名链接。"""

from django.http import FileResponse
from drf_spectacular.utils import OpenApiParameter, OpenApiTypes, extend_schema
from rest_framework import permissions
from rest_framework.decorators import api_view, authentication_classes, permission_classes
from rest_framework.response import Response

from ..exceptions import NotFound, ValidationError
from ..services.storage import LocalObjectStore, StoredObject, get_object_store
from ..services.use_cases import PhotoDeliveryUseCase


def _file_response(obj: StoredObject) -> FileResponse:
    response = FileResponse(obj.stream, content_type=obj.content_type)
    response["Content-Length"] = str(obj.size)
    response["Cache-Control"] = "private, max-age=300"
    return response


@extend_schema(responses={(200, "*/*"): OpenApiTypes.BINARY})
@api_view(["GET"])
@permission_classes([permissions.IsAuthenticated])
def get_asset(request, variant, blob_id):
    """读取资源，没有对应照片或对象时返回 404"""
    stored = PhotoDeliveryUseCase(request.user).get_asset(blob_id, variant)
    return _file_response(stored)


@extend_schema(
    parameters=[OpenApiParameter("ttl", int, description="有效期（秒），超过上限会被截断")],
    responses={200: OpenApiTypes.OBJECT},
)
@api_view(["GET"])
@permission_classes([permissions.IsAuthenticated])
def presigned_url(request, variant, blob_id):
    """生成限时直链"""
    raw_ttl = request.query_params.get("ttl")
    ttl = None
    if raw_ttl not in (None, ""):
        try:
            ttl = int(raw_ttl)
        except ValueError:
            raise ValidationError("ttl 必须是整数")
    signed = PhotoDeliveryUseCase(request.user).presigned_url(blob_id, variant, ttl)
    return Response({"url": signed.url, "expires_in": signed.expires_in})


@extend_schema(responses={(200, "*/*"): OpenApiTypes.BINARY})
@api_view(["GET"])
@authentication_classes([])
@permission_classes([permissions.AllowAny])
def signed_asset(request, token):
    """本地存储的预签名下载，token 自带权限与过期时间"""
    store = get_object_store()
    if not isinstance(store, LocalObjectStore):
        raise NotFound("当前存储后端不提供签名下载")
    return _file_response(store.open_signed(token))
