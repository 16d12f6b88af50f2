from __future__ import annotations

import shutil
import tempfile
from unittest.mock import patch
from urllib.parse import urlparse

from django.contrib.auth.models import User
from django.core.files.uploadedfile import SimpleUploadedFile
from django.test import TestCase, override_settings
from rest_framework.test import APIClient

from ..exceptions import SearchUnavailable
from ..models import Album, AlbumGrant, Photo
from .helpers import make_jpeg


class DeliveryApiTestCase(TestCase):
    def setUp(self) -> None:
        root = tempfile.mkdtemp(prefix="delivery-api-")
        self.addCleanup(shutil.rmtree, root, True)
        settings_override = override_settings(OBJECT_STORE_ROOT=root)
        settings_override.enable()
        self.addCleanup(settings_override.disable)

        self.owner = User.objects.create_user(username="photographer", password="pass1234")
        self.client_user = User.objects.create_user(username="client", password="pass1234")
        self.album = Album.objects.create(title="Wedding", owner=self.owner)
        AlbumGrant.objects.create(album=self.album, user=self.client_user)
        self.api = self.client_for(self.owner)

    def client_for(self, user) -> APIClient:
        client = APIClient()
        client.force_authenticate(user=user)
        return client

    def upload(self, data=None, name="wedding.jpg", content_type="image/jpeg", client=None):
        client = client or self.api
        photo = SimpleUploadedFile(name, data if data is not None else make_jpeg((640, 480)), content_type=content_type)
        return client.post(f"/api/delivery/albums/{self.album.id}/upload/", {"photo": photo}, format="multipart")


class AlbumApiTests(DeliveryApiTestCase):
    def test_create_and_list_albums(self):
        response = self.api.post("/api/delivery/albums/", {"title": "Engagement", "location": "Lisbon"}, format="json")

        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.data["owner"], self.owner.id)
        titles = [album["title"] for album in self.api.get("/api/delivery/albums/").data]
        self.assertCountEqual(titles, ["Wedding", "Engagement"])

    def test_grantee_sees_album_but_stranger_does_not(self):
        stranger = User.objects.create_user(username="stranger", password="pass1234")

        self.assertEqual(self.client_for(self.client_user).get(f"/api/delivery/albums/{self.album.id}/").status_code, 200)
        self.assertEqual(self.client_for(stranger).get(f"/api/delivery/albums/{self.album.id}/").status_code, 403)

    def test_grant_and_revoke(self):
        friend = User.objects.create_user(username="friend", password="pass1234")
        url = f"/api/delivery/albums/{self.album.id}/grants/"

        self.assertEqual(self.api.post(url, {"user_id": friend.id}, format="json").status_code, 201)
        self.assertEqual(self.client_for(friend).get(f"/api/delivery/albums/{self.album.id}/").status_code, 200)

        self.assertEqual(self.api.delete(url, {"user_id": friend.id}, format="json").status_code, 204)
        self.assertEqual(self.client_for(friend).get(f"/api/delivery/albums/{self.album.id}/").status_code, 403)

    def test_grantee_cannot_manage_grants(self):
        response = self.client_for(self.client_user).post(
            f"/api/delivery/albums/{self.album.id}/grants/", {"user_id": self.owner.id}, format="json"
        )

        self.assertEqual(response.status_code, 403)

    def test_anonymous_requests_are_rejected(self):
        self.assertEqual(APIClient().get("/api/delivery/albums/").status_code, 401)


class UploadApiTests(DeliveryApiTestCase):
    def test_upload_then_fetch_assets(self):
        response = self.upload()

        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.data["content_type"], "image/webp")
        blob_id = response.data["blob_id"]

        original = self.api.get(f"/api/delivery/assets/original/{blob_id}/")
        self.assertEqual(original.status_code, 200)
        self.assertEqual(original["Content-Type"], "image/webp")
        self.assertTrue(b"".join(original.streaming_content).startswith(b"RIFF"))

        thumbnail = self.client_for(self.client_user).get(f"/api/delivery/assets/thumbnail/{blob_id}/")
        self.assertEqual(thumbnail.status_code, 200)

    def test_missing_file_field(self):
        response = self.api.post(f"/api/delivery/albums/{self.album.id}/upload/", {}, format="multipart")

        self.assertEqual(response.status_code, 400)

    def test_grantee_cannot_upload(self):
        response = self.upload(client=self.client_for(self.client_user))

        self.assertEqual(response.status_code, 403)
        self.assertFalse(Photo.objects.exists())

    def test_undecodable_image_is_unsupported_media(self):
        response = self.upload(data=b"not really a jpeg")

        self.assertEqual(response.status_code, 415)
        self.assertFalse(Photo.objects.exists())

    def test_non_image_has_no_thumbnail(self):
        response = self.upload(data=b"%PDF-1.4\n%fake", name="contract.pdf", content_type="application/pdf")

        self.assertEqual(response.status_code, 201)
        blob_id = response.data["blob_id"]
        self.assertEqual(self.api.get(f"/api/delivery/assets/thumbnail/{blob_id}/").status_code, 404)
        self.assertEqual(self.api.get(f"/api/delivery/assets/original/{blob_id}/").status_code, 200)

    def test_unknown_variant_is_bad_request(self):
        blob_id = self.upload().data["blob_id"]

        self.assertEqual(self.api.get(f"/api/delivery/assets/preview/{blob_id}/").status_code, 400)

    def test_unknown_blob_is_not_found(self):
        self.assertEqual(self.api.get("/api/delivery/assets/original/deadbeef/").status_code, 404)


class PresignApiTests(DeliveryApiTestCase):
    def test_ttl_is_clamped_and_signed_link_works_without_auth(self):
        blob_id = self.upload().data["blob_id"]

        response = self.api.get(f"/api/delivery/assets/original/{blob_id}/url/", {"ttl": 999999})

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["expires_in"], 86400)
        signed = APIClient().get(urlparse(response.data["url"]).path)
        self.assertEqual(signed.status_code, 200)
        self.assertEqual(signed["Content-Type"], "image/webp")

    def test_default_ttl(self):
        blob_id = self.upload().data["blob_id"]

        response = self.api.get(f"/api/delivery/assets/thumbnail/{blob_id}/url/")

        self.assertEqual(response.data["expires_in"], 3600)

    def test_invalid_ttl(self):
        blob_id = self.upload().data["blob_id"]

        for ttl in ["abc", "0", "-5"]:
            with self.subTest(ttl=ttl):
                response = self.api.get(f"/api/delivery/assets/original/{blob_id}/url/", {"ttl": ttl})
                self.assertEqual(response.status_code, 400)

    def test_bogus_token_is_not_found(self):
        self.assertEqual(APIClient().get("/api/delivery/assets/signed/not-a-token/").status_code, 404)


class PhotoApiTests(DeliveryApiTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.photo_id = self.upload().data["id"]
        self.url = f"/api/delivery/photos/{self.photo_id}/"

    def test_owner_updates_rating_and_state(self):
        response = self.api.patch(self.url, {"stars": 4, "state": "pick"}, format="json")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["stars"], 4)
        self.assertEqual(response.data["state"], "pick")

    def test_rating_out_of_range(self):
        response = self.api.patch(self.url, {"stars": 6}, format="json")

        self.assertEqual(response.status_code, 400)
        self.assertEqual(Photo.objects.get(id=self.photo_id).stars, 0)

    def test_grantee_can_read_but_not_modify(self):
        grantee = self.client_for(self.client_user)

        self.assertEqual(grantee.get(self.url).status_code, 200)
        self.assertEqual(grantee.patch(self.url, {"stars": 3}, format="json").status_code, 403)
        self.assertEqual(grantee.delete(self.url).status_code, 403)

    def test_delete_removes_row_and_objects(self):
        blob_id = Photo.objects.get(id=self.photo_id).blob_id

        self.assertEqual(self.api.delete(self.url).status_code, 204)

        self.assertFalse(Photo.objects.filter(id=self.photo_id).exists())
        self.assertEqual(self.api.get(f"/api/delivery/assets/original/{blob_id}/").status_code, 404)
        self.assertEqual(self.api.get(self.url).status_code, 404)

    def test_album_photos_listing(self):
        response = self.client_for(self.client_user).get(f"/api/delivery/albums/{self.album.id}/photos/")

        self.assertEqual(response.status_code, 200)
        self.assertEqual([photo["id"] for photo in response.data], [self.photo_id])


class SearchApiTests(DeliveryApiTestCase):
    def test_search_within_album(self):
        self.upload(data=make_jpeg(taken="2023:05:01 10:00:00"))

        response = self.client_for(self.client_user).get(
            "/api/delivery/search/",
            {"album": self.album.id, "dateFrom": "2023-05-01T00:00:00Z", "dateTo": "2023-05-02T00:00:00Z"},
        )

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["total"], 1)
        self.assertEqual(len(response.data["photos"]), 1)

    def test_invalid_parameters(self):
        for params in [{"minStars": "abc"}, {"minStars": 4, "maxStars": 2}, {"state": "maybe"}, {"offset": 10000}]:
            with self.subTest(params=params):
                self.assertEqual(self.api.get("/api/delivery/search/", params).status_code, 400)

    def test_stranger_gets_nothing(self):
        self.upload()
        stranger = User.objects.create_user(username="stranger", password="pass1234")

        response = self.client_for(stranger).get("/api/delivery/search/")

        self.assertEqual(response.data["total"], 0)
        self.assertEqual(self.client_for(stranger).get("/api/delivery/search/", {"album": self.album.id}).status_code, 403)

    def test_index_outage_is_service_unavailable(self):
        with patch(
            "delivery.services.search.DatabaseSearchIndexer.query",
            side_effect=SearchUnavailable("索引不可用"),
        ):
            response = self.api.get("/api/delivery/search/", {"q": "sunset"})

        self.assertEqual(response.status_code, 503)
        self.assertEqual(response.data["code"], "search_unavailable")
