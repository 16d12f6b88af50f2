from django.core.exceptions import ValidationError as DjangoValidationError
from drf_spectacular.utils import OpenApiTypes, extend_schema
from rest_framework import mixins, permissions, status, viewsets
from rest_framework.decorators import action
from rest_framework.exceptions import ValidationError as DRFValidationError
from rest_framework.parsers import FormParser, MultiPartParser
from rest_framework.response import Response

from ..serializers import (
    AlbumGrantSerializer,
    AlbumSerializer,
    GrantSerializer,
    PhotoSerializer,
    PhotoUpdateSerializer,
)
from ..services.use_cases import PhotoDeliveryUseCase


class UseCaseMixin:
    def get_use_case(self) -> PhotoDeliveryUseCase:
        if not hasattr(self, "_delivery_use_case"):
            self._delivery_use_case = PhotoDeliveryUseCase(self.request.user)
        return self._delivery_use_case


class AlbumViewSet(UseCaseMixin, viewsets.GenericViewSet):
    """相册：列表、创建、详情，以及上传、授权与重建索引"""
    serializer_class = AlbumSerializer
    permission_classes = [permissions.IsAuthenticated]
    lookup_value_regex = r"\d+"

    def list(self, request):
        albums = self.get_use_case().albums()
        return Response(AlbumSerializer(albums, many=True).data)

    def create(self, request):
        serializer = AlbumSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            album = self.get_use_case().create_album(serializer)
        except DjangoValidationError as exc:
            raise DRFValidationError(exc.messages)
        return Response(AlbumSerializer(album).data, status=status.HTTP_201_CREATED)

    def retrieve(self, request, pk=None):
        album = self.get_use_case().get_album(int(pk))
        return Response(AlbumSerializer(album).data)

    @extend_schema(
        summary="上传图片",
        request={"multipart/form-data": {"type": "object", "properties": {"photo": {"type": "string", "format": "binary"}}}},
        responses={201: PhotoSerializer},
    )
    @action(detail=True, methods=["post"], parser_classes=[MultiPartParser, FormParser])
    def upload(self, request, pk=None):
        """上传单张图片，返回时元数据已提交，缩略图与索引不保证就绪"""
        upload = request.FILES.get("photo")
        if upload is None:
            return Response({"detail": "未选择文件"}, status=status.HTTP_400_BAD_REQUEST)
        photo = self.get_use_case().upload(int(pk), upload)
        return Response(PhotoSerializer(photo).data, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=["get"])
    def photos(self, request, pk=None):
        """获取相册内的照片"""
        use_case = self.get_use_case()
        album = use_case.get_album(int(pk))
        return Response(PhotoSerializer(use_case.list_album_photos(album), many=True).data)

    @extend_schema(request=GrantSerializer, responses={200: AlbumGrantSerializer(many=True)})
    @action(detail=True, methods=["get", "post", "delete"])
    def grants(self, request, pk=None):
        """管理相册的只读授权"""
        use_case = self.get_use_case()
        if request.method == "GET":
            return Response(AlbumGrantSerializer(use_case.list_grants(int(pk)), many=True).data)

        serializer = GrantSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        user_id = serializer.validated_data["user_id"]
        if request.method == "POST":
            grant = use_case.grant_access(int(pk), user_id)
            return Response(AlbumGrantSerializer(grant).data, status=status.HTTP_201_CREATED)
        use_case.revoke_access(int(pk), user_id)
        return Response(status=status.HTTP_204_NO_CONTENT)

    @extend_schema(request=None, responses={200: OpenApiTypes.OBJECT})
    @action(detail=True, methods=["post"])
    def reindex(self, request, pk=None):
        """整本相册重建搜索索引"""
        count = self.get_use_case().reindex_album(int(pk))
        return Response({"album": int(pk), "indexed": count})


class PhotoViewSet(UseCaseMixin, mixins.RetrieveModelMixin, viewsets.GenericViewSet):
    """图片：详情、评分/挑选状态修改与删除"""
    serializer_class = PhotoSerializer
    permission_classes = [permissions.IsAuthenticated]
    lookup_value_regex = r"\d+"
    http_method_names = ["get", "patch", "delete", "head", "options"]

    def get_object(self):
        return self.get_use_case().get_photo(int(self.kwargs["pk"]))

    @extend_schema(request=PhotoUpdateSerializer, responses={200: PhotoSerializer})
    def partial_update(self, request, pk=None):
        serializer = PhotoUpdateSerializer(data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        photo = self.get_use_case().update_photo(int(pk), **serializer.validated_data)
        return Response(PhotoSerializer(photo).data)

    def destroy(self, request, pk=None):
        """删除时先删对象再删行"""
        self.get_use_case().delete_photo(int(pk))
        return Response(status=status.HTTP_204_NO_CONTENT)
