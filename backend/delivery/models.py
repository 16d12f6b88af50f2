from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import models

from .domain.values import MAX_STARS, MIN_STARS, MetadataMap, PickRejectState


class MetadataMapField(models.JSONField):
    """以 pair 列表持久化 MetadataMap，读出时还原为有序容器。"""

    def from_db_value(self, value, expression, connection):
        value = super().from_db_value(value, expression, connection)
        return MetadataMap.from_json(value)

    def to_python(self, value):
        return MetadataMap.from_json(value)

    def get_prep_value(self, value):
        if isinstance(value, MetadataMap):
            value = value.to_json()
        return super().get_prep_value(value)

    def validate(self, value, model_instance):
        if isinstance(value, MetadataMap):
            value = value.to_json()
        super().validate(value, model_instance)


def _empty_metadata():
    return MetadataMap()


class Album(models.Model):
    # 相册，owner 即摄影师，创建后不可变更
    title = models.CharField(max_length=200)
    owner = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="albums")
    date_taken = models.DateField(null=True, blank=True)
    description = models.TextField(blank=True)
    location = models.CharField(max_length=200, blank=True)
    custom_fields = MetadataMapField(default=_empty_metadata, blank=True)
    thumbnail_photo = models.ForeignKey(
        "Photo", null=True, blank=True, on_delete=models.SET_NULL, related_name="+"
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def save(self, *args, **kwargs):
        if self.pk and Album.objects.filter(pk=self.pk).exclude(owner_id=self.owner_id).exists():
            raise ValidationError("相册归属创建后不可修改")
        super().save(*args, **kwargs)

    def __str__(self):
        return self.title


class AlbumGrant(models.Model):
    """非所有者的只读访问授权。"""

    album = models.ForeignKey(Album, on_delete=models.CASCADE, related_name="grants")
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="album_grants")
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=["album", "user"], name="uniq_album_grant"),
        ]


class Photo(models.Model):
    class Meta:
        indexes = [
            models.Index(fields=["album", "created_at"], name="photo_album_created_idx"),
            models.Index(fields=["capture_time"], name="photo_capture_time_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(stars__gte=MIN_STARS) & models.Q(stars__lte=MAX_STARS),
                name="photo_stars_range",
            ),
        ]

    album = models.ForeignKey(Album, on_delete=models.CASCADE, related_name="photos")
    blob_id = models.CharField(max_length=64, unique=True)
    thumbnail_blob_id = models.CharField(max_length=64, null=True, blank=True)
    content_type = models.CharField(max_length=100)
    size = models.BigIntegerField(default=0)
    original_filename = models.CharField(max_length=255, blank=True)
    title = models.CharField(max_length=200, blank=True)

    # EXIF / 元数据
    metadata = MetadataMapField(default=_empty_metadata, blank=True)
    capture_time = models.DateTimeField(null=True, blank=True)

    # 交付状态
    state = models.CharField(max_length=8, choices=[(s.value, s.value) for s in PickRejectState], default=PickRejectState.NONE.value)
    stars = models.PositiveSmallIntegerField(default=0)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    indexed_at = models.DateTimeField(null=True, blank=True)

    @property
    def index_stale(self) -> bool:
        return self.indexed_at is None or self.indexed_at < self.updated_at

    def __str__(self):
        return self.title or self.original_filename or self.blob_id


class Comment(models.Model):
    photo = models.ForeignKey(Photo, on_delete=models.CASCADE, related_name="comments")
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="photo_comments")
    parent = models.ForeignKey("self", null=True, blank=True, on_delete=models.CASCADE, related_name="replies")
    text = models.TextField()
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)


class SearchDocument(models.Model):
    """数据库搜索后端的反范式文档，可能缺失或滞后于 Photo。"""

    photo_id = models.BigIntegerField(primary_key=True)
    album_id = models.BigIntegerField(db_index=True)
    title = models.CharField(max_length=200, blank=True)
    album_title = models.CharField(max_length=200, blank=True)
    album_location = models.CharField(max_length=200, blank=True)
    album_custom_fields = MetadataMapField(default=_empty_metadata, blank=True)
    comments = models.TextField(blank=True)
    metadata = MetadataMapField(default=_empty_metadata, blank=True)
    metadata_text = models.TextField(blank=True)
    state = models.CharField(max_length=8, db_index=True)
    stars = models.PositiveSmallIntegerField(db_index=True)
    capture_time = models.DateTimeField(null=True, blank=True, db_index=True)
    created_at = models.DateTimeField()
    updated_at = models.DateTimeField()
    indexed_at = models.DateTimeField(auto_now=True)
