from rest_framework import serializers

from .domain.values import MAX_STARS, MIN_STARS, MetadataMap, PickRejectState
from .exceptions import ValidationError as DeliveryValidationError
from .models import Album, AlbumGrant, Photo
from .services.search import SearchFilter


class MetadataMapSerializerField(serializers.Field):
    """对外输出为保序的 JSON 对象，输入接受对象或 pair 列表。"""

    def to_representation(self, value):
        return MetadataMap.from_json(value).as_dict()

    def to_internal_value(self, data):
        if not isinstance(data, (dict, list)):
            raise serializers.ValidationError("必须是对象或 [key, value] 列表")
        items = data.items() if isinstance(data, dict) else data
        result = MetadataMap()
        for item in items:
            try:
                key, value = item
                result[key] = value
            except (TypeError, ValueError) as exc:
                raise serializers.ValidationError(f"非法的字段: {item!r}") from exc
            except DeliveryValidationError as exc:
                raise serializers.ValidationError(str(exc)) from exc
        return result


class AlbumSerializer(serializers.ModelSerializer):
    photo_count = serializers.IntegerField(source="photos.count", read_only=True)
    owner = serializers.IntegerField(source="owner_id", read_only=True)
    custom_fields = MetadataMapSerializerField(required=False)

    class Meta:
        model = Album
        fields = [
            "id",
            "title",
            "owner",
            "date_taken",
            "description",
            "location",
            "custom_fields",
            "thumbnail_photo",
            "photo_count",
            "created_at",
            "updated_at",
        ]
        read_only_fields = ["thumbnail_photo"]


class PhotoSerializer(serializers.ModelSerializer):
    album = serializers.IntegerField(source="album_id", read_only=True)
    metadata = MetadataMapSerializerField(read_only=True)
    index_stale = serializers.BooleanField(read_only=True)

    class Meta:
        model = Photo
        fields = [
            "id",
            "album",
            "title",
            "blob_id",
            "thumbnail_blob_id",
            "content_type",
            "size",
            "original_filename",
            "metadata",
            "capture_time",
            "state",
            "stars",
            "created_at",
            "updated_at",
            "indexed_at",
            "index_stale",
        ]
        read_only_fields = fields


class PhotoUpdateSerializer(serializers.Serializer):
    title = serializers.CharField(max_length=200, required=False, allow_blank=True)
    state = serializers.ChoiceField(choices=[s.value for s in PickRejectState], required=False)
    stars = serializers.IntegerField(min_value=MIN_STARS, max_value=MAX_STARS, required=False)


class GrantSerializer(serializers.Serializer):
    user_id = serializers.IntegerField(min_value=1)


class AlbumGrantSerializer(serializers.ModelSerializer):
    user = serializers.IntegerField(source="user_id", read_only=True)
    album = serializers.IntegerField(source="album_id", read_only=True)

    class Meta:
        model = AlbumGrant
        fields = ["id", "album", "user", "created_at"]


class SearchFilterSerializer(serializers.Serializer):
    """查询参数：q, album, dateFrom, dateTo, minStars, maxStars, state, limit, offset。"""

    q = serializers.CharField(required=False, allow_blank=True, default="")
    album = serializers.IntegerField(required=False, min_value=1)
    dateFrom = serializers.DateTimeField(required=False)
    dateTo = serializers.DateTimeField(required=False)
    minStars = serializers.IntegerField(required=False, min_value=MIN_STARS, max_value=MAX_STARS)
    maxStars = serializers.IntegerField(required=False, min_value=MIN_STARS, max_value=MAX_STARS)
    state = serializers.ChoiceField(choices=[s.value for s in PickRejectState], required=False)
    limit = serializers.IntegerField(required=False, default=0)
    offset = serializers.IntegerField(required=False, default=0, min_value=0)

    def validate(self, attrs):
        min_stars, max_stars = attrs.get("minStars"), attrs.get("maxStars")
        if min_stars is not None and max_stars is not None and min_stars > max_stars:
            raise serializers.ValidationError("minStars 不能大于 maxStars")
        return attrs

    def to_filter(self) -> SearchFilter:
        data = self.validated_data
        return SearchFilter(
            query=data.get("q", ""),
            album_id=data.get("album"),
            date_from=data.get("dateFrom"),
            date_to=data.get("dateTo"),
            min_stars=data.get("minStars"),
            max_stars=data.get("maxStars"),
            state=data.get("state"),
            limit=data.get("limit", 0),
            offset=data.get("offset", 0),
        )


class SearchResultSerializer(serializers.Serializer):
    total = serializers.IntegerField()
    photos = PhotoSerializer(many=True)
