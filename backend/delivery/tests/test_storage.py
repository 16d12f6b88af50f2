from __future__ import annotations

import time
from unittest.mock import patch
from urllib.parse import parse_qs, urlparse

import boto3
from django.test import SimpleTestCase, override_settings
from moto import mock_aws

from ..domain.values import Namespace
from ..exceptions import NotFound, StorageBackendNotConfigured, StorageError, ValidationError
from ..services.storage import (
    LocalObjectStore,
    S3Config,
    S3ObjectStore,
    clamp_ttl,
    get_object_store,
    object_key,
)
from .helpers import temp_store


class ObjectKeyTests(SimpleTestCase):
    def test_key_uses_namespace_and_content_type_extension(self):
        self.assertEqual(object_key(Namespace.ORIGINAL, "abc", "image/webp"), "originals/abc.webp")
        self.assertEqual(object_key(Namespace.THUMBNAIL, "abc", "image/webp"), "thumbnails/abc.webp")
        self.assertEqual(object_key(Namespace.ORIGINAL, "abc", "application/x-unknown-thing"), "originals/abc.bin")


@override_settings(PRESIGN_DEFAULT_TTL=3600, PRESIGN_MAX_TTL=86400)
class ClampTtlTests(SimpleTestCase):
    def test_default_when_missing(self):
        self.assertEqual(clamp_ttl(None), 3600)

    def test_above_maximum_is_clamped(self):
        self.assertEqual(clamp_ttl(86400), 86400)
        self.assertEqual(clamp_ttl(86401), 86400)
        self.assertEqual(clamp_ttl(10 ** 9), 86400)

    def test_non_positive_or_non_integer_is_rejected(self):
        for raw in [0, -1, True, "60", 1.5]:
            with self.subTest(raw=raw), self.assertRaises(ValidationError):
                clamp_ttl(raw)


@override_settings(PRESIGN_DEFAULT_TTL=3600, PRESIGN_MAX_TTL=86400, PUBLIC_BASE_URL="http://testserver")
class LocalObjectStoreTests(SimpleTestCase):
    def setUp(self) -> None:
        self.store = temp_store(self)

    def test_put_then_get(self):
        self.store.put(Namespace.ORIGINAL, "blob1", b"webp-bytes", "image/webp")

        stored = self.store.get(Namespace.ORIGINAL, "blob1")

        self.assertEqual(stored.content_type, "image/webp")
        self.assertEqual(stored.size, len(b"webp-bytes"))
        self.assertEqual(stored.read(), b"webp-bytes")

    def test_put_overwrites(self):
        self.store.put(Namespace.ORIGINAL, "blob1", b"first", "image/webp")
        self.store.put(Namespace.ORIGINAL, "blob1", b"second", "image/webp")

        self.assertEqual(self.store.list_by_prefix(Namespace.ORIGINAL), ["originals/blob1.webp"])
        self.assertEqual(self.store.get(Namespace.ORIGINAL, "blob1").read(), b"second")

    def test_namespaces_are_separate(self):
        self.store.put(Namespace.ORIGINAL, "blob1", b"orig", "image/webp")

        with self.assertRaises(NotFound):
            self.store.get(Namespace.THUMBNAIL, "blob1")

    def test_delete_is_idempotent(self):
        self.store.put(Namespace.THUMBNAIL, "blob1", b"thumb", "image/webp")

        self.store.delete(Namespace.THUMBNAIL, "blob1")
        self.store.delete(Namespace.THUMBNAIL, "blob1")
        self.store.delete(Namespace.ORIGINAL, "never-written")

        with self.assertRaises(NotFound):
            self.store.get(Namespace.THUMBNAIL, "blob1")

    def test_blob_prefix_does_not_match_longer_ids(self):
        self.store.put(Namespace.ORIGINAL, "abc", b"short", "image/webp")
        self.store.put(Namespace.ORIGINAL, "abcdef", b"long", "image/webp")

        self.store.delete(Namespace.ORIGINAL, "abc")

        self.assertEqual(self.store.list_by_prefix(Namespace.ORIGINAL), ["originals/abcdef.webp"])

    def test_presign_clamps_ttl_and_signed_link_opens(self):
        self.store.put(Namespace.ORIGINAL, "blob1", b"payload", "image/webp")

        signed = self.store.presign(Namespace.ORIGINAL, "blob1", ttl=7 * 86400)

        self.assertEqual(signed.expires_in, 86400)
        self.assertTrue(signed.url.startswith("http://testserver/api/delivery/assets/signed/"))
        token = urlparse(signed.url).path.rstrip("/").rsplit("/", 1)[-1]
        self.assertEqual(self.store.open_signed(token).read(), b"payload")

    def test_presign_default_ttl(self):
        self.store.put(Namespace.ORIGINAL, "blob1", b"payload", "image/webp")

        self.assertEqual(self.store.presign(Namespace.ORIGINAL, "blob1").expires_in, 3600)

    def test_presign_missing_object(self):
        with self.assertRaises(NotFound):
            self.store.presign(Namespace.ORIGINAL, "missing")

    def test_tampered_or_expired_token_is_not_found(self):
        self.store.put(Namespace.ORIGINAL, "blob1", b"payload", "image/webp")
        signed = self.store.presign(Namespace.ORIGINAL, "blob1", ttl=60)
        token = urlparse(signed.url).path.rstrip("/").rsplit("/", 1)[-1]

        with self.assertRaises(NotFound):
            self.store.open_signed(token + "x")

        with patch("delivery.services.storage.time.time", return_value=time.time() + 120):
            with self.assertRaises(NotFound):
                self.store.open_signed(token)

    def test_write_failure_becomes_storage_error(self):
        with patch.object(self.store.storage, "save", side_effect=OSError("disk full")):
            with self.assertRaises(StorageError):
                self.store.put(Namespace.ORIGINAL, "blob1", b"payload", "image/webp")


@override_settings(PRESIGN_DEFAULT_TTL=3600, PRESIGN_MAX_TTL=86400)
class S3ObjectStoreTests(SimpleTestCase):
    bucket = "delivery-test"

    def setUp(self) -> None:
        self.mock = mock_aws()
        self.mock.start()
        self.addCleanup(self.mock.stop)
        self.store = S3ObjectStore(
            S3Config(
                bucket_name=self.bucket,
                endpoint_url=None,
                region_name="us-east-1",
                access_key="testing",
                secret_key="s3-secret-value",
                signature_version="s3v4",
            )
        )
        self.store.ensure_bucket()

    def test_ensure_bucket_is_idempotent(self):
        self.store.ensure_bucket()

        buckets = boto3.client("s3", region_name="us-east-1").list_buckets()["Buckets"]
        self.assertEqual([b["Name"] for b in buckets], [self.bucket])

    def test_put_get_delete(self):
        self.store.put(Namespace.ORIGINAL, "blob1", b"webp-bytes", "image/webp")

        self.assertEqual(self.store.list_by_prefix(Namespace.ORIGINAL), ["originals/blob1.webp"])
        stored = self.store.get(Namespace.ORIGINAL, "blob1")
        self.assertEqual(stored.content_type, "image/webp")
        self.assertEqual(stored.size, len(b"webp-bytes"))
        self.assertEqual(stored.read(), b"webp-bytes")

        self.store.delete(Namespace.ORIGINAL, "blob1")
        self.store.delete(Namespace.ORIGINAL, "blob1")
        with self.assertRaises(NotFound):
            self.store.get(Namespace.ORIGINAL, "blob1")

    def test_presign_is_clamped_and_keeps_credentials_out(self):
        self.store.put(Namespace.THUMBNAIL, "blob1", b"thumb", "image/webp")

        signed = self.store.presign(Namespace.THUMBNAIL, "blob1", ttl=30 * 86400)

        self.assertEqual(signed.expires_in, 86400)
        query = parse_qs(urlparse(signed.url).query)
        self.assertEqual(query["X-Amz-Expires"], ["86400"])
        self.assertNotIn("s3-secret-value", signed.url)
        self.assertIn("thumbnails/blob1.webp", signed.url)

    def test_missing_bucket_is_storage_error(self):
        boto3.client("s3", region_name="us-east-1").delete_bucket(Bucket=self.bucket)

        with self.assertRaises(StorageError):
            self.store.put(Namespace.ORIGINAL, "blob1", b"payload", "image/webp")


class ObjectStoreFactoryTests(SimpleTestCase):
    @override_settings(STORAGE_BACKEND="s3", AWS_STORAGE_BUCKET_NAME=None)
    def test_s3_without_bucket_is_not_configured(self):
        with self.assertRaises(StorageBackendNotConfigured):
            get_object_store()

    @override_settings(STORAGE_BACKEND="ftp")
    def test_unknown_backend(self):
        with self.assertRaises(StorageBackendNotConfigured):
            get_object_store()

    @override_settings(STORAGE_BACKEND="local")
    def test_local_backend(self):
        self.assertIsInstance(get_object_store(), LocalObjectStore)
