from django.core.exceptions import ValidationError
from django.test import SimpleTestCase
from django.urls import reverse
from rest_framework import status
from rest_framework.test import APITestCase

from .models import User
from .validators import normalize_address

ADDRESS = "0x70997970C51812dc3A010C7d01b50e0d17dc79C8"


class NormalizeAddressTest(SimpleTestCase):
    def test_lower_case_address_is_checksummed(self):
        self.assertEqual(normalize_address(ADDRESS.lower()), ADDRESS)

    def test_invalid_address_rejected(self):
        for value in ("", "0x1234", "not-an-address", None):
            with self.assertRaises(ValidationError):
                normalize_address(value)


class UserRegistrationTest(APITestCase):
    def register(self, **overrides):
        data = {
            "username": "voter1",
            "password": "s3cret-pass",
            "email": "voter1@example.com",
            "wallet_address": ADDRESS.lower(),
        }
        data.update(overrides)
        return self.client.post(reverse("accounts:register"), data, format="json")

    def test_register_stores_checksum_address(self):
        response = self.register()

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(User.objects.get(username="voter1").wallet_address, ADDRESS)

    def test_wallet_address_required(self):
        response = self.register(wallet_address="")
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn("wallet_address", response.data)

    def test_wallet_address_unique(self):
        self.register()
        response = self.register(username="voter2", wallet_address=ADDRESS)
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_login_returns_token_and_wallet(self):
        self.register()
        response = self.client.post(
            reverse("accounts:api_token_auth"),
            {"username": "voter1", "password": "s3cret-pass"},
            format="json",
        )

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["wallet_address"], ADDRESS)

        self.client.credentials(HTTP_AUTHORIZATION=f"Token {response.data['token']}")
        me = self.client.get(reverse("accounts:me"))
        self.assertEqual(me.data["wallet_address"], ADDRESS)

    def test_login_with_bad_password(self):
        self.register()
        response = self.client.post(
            reverse("accounts:api_token_auth"),
            {"username": "voter1", "password": "wrong"},
            format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
