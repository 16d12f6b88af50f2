from drf_spectacular.utils import extend_schema
from rest_framework import permissions
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response

from ..serializers import SearchFilterSerializer, SearchResultSerializer
from ..services.use_cases import PhotoDeliveryUseCase


@extend_schema(parameters=[SearchFilterSerializer], responses={200: SearchResultSerializer})
@api_view(["GET"])
@permission_classes([permissions.IsAuthenticated])
def search_photos(request):
    """全文 + 过滤搜索，按拍摄时间倒序；索引故障时返回 503"""
    params = SearchFilterSerializer(data=request.query_params)
    params.is_valid(raise_exception=True)
    result = PhotoDeliveryUseCase(request.user).search(params.to_filter())
    return Response(SearchResultSerializer(result).data)
