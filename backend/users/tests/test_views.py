from __future__ import annotations

from django.contrib.auth.models import User
from django.test import TestCase
from rest_framework.test import APIClient


class UserApiTests(TestCase):
    def setUp(self) -> None:
        self.api = APIClient()

    def test_register_then_login(self):
        response = self.api.post(
            "/api/users/register/",
            {"username": "photographer", "email": "p@example.com", "password": "long-password"},
            format="json",
        )
        self.assertEqual(response.status_code, 201)
        self.assertFalse(response.data["is_admin"])

        login = self.api.post(
            "/api/users/login/", {"username": "photographer", "password": "long-password"}, format="json"
        )
        self.assertEqual(login.status_code, 200)
        self.assertIn("access", login.data)

        self.api.credentials(HTTP_AUTHORIZATION=f"Bearer {login.data['access']}")
        me = self.api.get("/api/users/me/")
        self.assertEqual(me.data["username"], "photographer")

    def test_short_password_is_rejected(self):
        response = self.api.post("/api/users/register/", {"username": "x", "password": "short"}, format="json")

        self.assertEqual(response.status_code, 400)
        self.assertFalse(User.objects.filter(username="x").exists())

    def test_wrong_password(self):
        User.objects.create_user(username="photographer", password="long-password")

        response = self.api.post("/api/users/login/", {"username": "photographer", "password": "nope"}, format="json")

        self.assertEqual(response.status_code, 401)

    def test_staff_is_reported_as_admin(self):
        admin = User.objects.create_user(username="admin", password="long-password", is_staff=True)
        self.api.force_authenticate(user=admin)

        self.assertTrue(self.api.get("/api/users/me/").data["is_admin"])
