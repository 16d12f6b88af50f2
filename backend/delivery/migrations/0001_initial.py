import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models

import delivery.models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Album",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("title", models.CharField(max_length=200)),
                ("date_taken", models.DateField(blank=True, null=True)),
                ("description", models.TextField(blank=True)),
                ("location", models.CharField(blank=True, max_length=200)),
                ("custom_fields", delivery.models.MetadataMapField(blank=True, default=delivery.models._empty_metadata)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "owner",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="albums",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
        ),
        migrations.CreateModel(
            name="SearchDocument",
            fields=[
                ("photo_id", models.BigIntegerField(primary_key=True, serialize=False)),
                ("album_id", models.BigIntegerField(db_index=True)),
                ("title", models.CharField(blank=True, max_length=200)),
                ("album_title", models.CharField(blank=True, max_length=200)),
                ("album_location", models.CharField(blank=True, max_length=200)),
                ("album_custom_fields", delivery.models.MetadataMapField(blank=True, default=delivery.models._empty_metadata)),
                ("comments", models.TextField(blank=True)),
                ("metadata", delivery.models.MetadataMapField(blank=True, default=delivery.models._empty_metadata)),
                ("metadata_text", models.TextField(blank=True)),
                ("state", models.CharField(db_index=True, max_length=8)),
                ("stars", models.PositiveSmallIntegerField(db_index=True)),
                ("capture_time", models.DateTimeField(blank=True, db_index=True, null=True)),
                ("created_at", models.DateTimeField()),
                ("updated_at", models.DateTimeField()),
                ("indexed_at", models.DateTimeField(auto_now=True)),
            ],
        ),
        migrations.CreateModel(
            name="Photo",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("blob_id", models.CharField(max_length=64, unique=True)),
                ("thumbnail_blob_id", models.CharField(blank=True, max_length=64, null=True)),
                ("content_type", models.CharField(max_length=100)),
                ("size", models.BigIntegerField(default=0)),
                ("original_filename", models.CharField(blank=True, max_length=255)),
                ("title", models.CharField(blank=True, max_length=200)),
                ("metadata", delivery.models.MetadataMapField(blank=True, default=delivery.models._empty_metadata)),
                ("capture_time", models.DateTimeField(blank=True, null=True)),
                (
                    "state",
                    models.CharField(
                        choices=[("none", "none"), ("pick", "pick"), ("reject", "reject")],
                        default="none",
                        max_length=8,
                    ),
                ),
                ("stars", models.PositiveSmallIntegerField(default=0)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("indexed_at", models.DateTimeField(blank=True, null=True)),
                (
                    "album",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="photos",
                        to="delivery.album",
                    ),
                ),
            ],
            options={
                "indexes": [
                    models.Index(fields=["album", "created_at"], name="photo_album_created_idx"),
                    models.Index(fields=["capture_time"], name="photo_capture_time_idx"),
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("stars__gte", 0), ("stars__lte", 5)),
                        name="photo_stars_range",
                    ),
                ],
            },
        ),
        migrations.AddField(
            model_name="album",
            name="thumbnail_photo",
            field=models.ForeignKey(
                blank=True,
                null=True,
                on_delete=django.db.models.deletion.SET_NULL,
                related_name="+",
                to="delivery.photo",
            ),
        ),
        migrations.CreateModel(
            name="Comment",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("text", models.TextField()),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "parent",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="replies",
                        to="delivery.comment",
                    ),
                ),
                (
                    "photo",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="comments",
                        to="delivery.photo",
                    ),
                ),
                (
                    "user",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="photo_comments",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
        ),
        migrations.CreateModel(
            name="AlbumGrant",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "album",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="grants",
                        to="delivery.album",
                    ),
                ),
                (
                    "user",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="album_grants",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "constraints": [
                    models.UniqueConstraint(fields=("album", "user"), name="uniq_album_grant"),
                ],
            },
        ),
    ]
