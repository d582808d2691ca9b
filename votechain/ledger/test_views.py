from django.test import override_settings
from django.urls import reverse
from rest_framework import status
from rest_framework.test import APITestCase

from accounts.models import User

from . import services
from .tests import OTHER, OWNER, VOTER1, VOTER2, FakeClock


@override_settings(LEDGER_CONFIG={"ADMIN_ADDRESS": OWNER, "RESULTS_CACHE_TIMEOUT": 300})
class LedgerAPITest(APITestCase):
    def setUp(self):
        self.clock = FakeClock()
        services._ledger_service = services.LedgerService(clock=self.clock)
        self.addCleanup(services.reset_ledger_service)

        self.admin = User.objects.create_user("admin", password="pass12345", wallet_address=OWNER)
        self.voter1 = User.objects.create_user("voter1", password="pass12345", wallet_address=VOTER1)
        self.voter2 = User.objects.create_user("voter2", password="pass12345", wallet_address=VOTER2)
        # wallet given in lower case, stored checksummed
        self.other = User.objects.create_user("other", password="pass12345", wallet_address=OTHER.lower())
        self.no_wallet = User.objects.create_user("nowallet", password="pass12345")

    def as_user(self, user):
        self.client.force_authenticate(user=user)

    def setup_election(self):
        self.as_user(self.admin)
        self.client.post(reverse("ledger:candidates"), {"name": "Alice"}, format="json")
        self.client.post(reverse("ledger:candidates"), {"name": "Bob"}, format="json")
        self.client.post(reverse("ledger:voters"), {"address": VOTER1}, format="json")
        self.client.post(reverse("ledger:voters"), {"address": VOTER2}, format="json")
        self.client.post(reverse("ledger:start-voting"), {"duration": 3600}, format="json")

    def vote(self, user, candidate_id, cid="Qm"):
        self.as_user(user)
        return self.client.post(
            reverse("ledger:vote"), {"candidate_id": candidate_id, "cid": cid}, format="json"
        )

    def test_admin_adds_candidates(self):
        self.as_user(self.admin)
        response = self.client.post(reverse("ledger:candidates"), {"name": "Alice"}, format="json")

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data["data"], {"id": 0, "name": "Alice", "vote_count": 0})

    def test_non_admin_gets_unauthorized(self):
        self.as_user(self.voter1)
        response = self.client.post(reverse("ledger:candidates"), {"name": "Mallory"}, format="json")

        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.assertEqual(response.data["code"], "unauthorized")
        self.assertIsNone(response.data["data"])

    def test_candidate_name_stored_verbatim(self):
        self.as_user(self.admin)
        response = self.client.post(reverse("ledger:candidates"), {"name": "  Alice "}, format="json")

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data["data"]["name"], "  Alice ")

    def test_lowercase_admin_setting_accepts_admin(self):
        config = {"ADMIN_ADDRESS": OWNER.lower(), "RESULTS_CACHE_TIMEOUT": 300}
        with override_settings(LEDGER_CONFIG=config):
            services._ledger_service = services.LedgerService(clock=self.clock)

        self.as_user(self.admin)
        response = self.client.post(reverse("ledger:candidates"), {"name": "Alice"}, format="json")
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)

    def test_anonymous_cannot_write(self):
        response = self.client.post(reverse("ledger:candidates"), {"name": "Alice"}, format="json")
        self.assertIn(response.status_code, (status.HTTP_401_UNAUTHORIZED, status.HTTP_403_FORBIDDEN))

    def test_user_without_wallet_cannot_write(self):
        self.as_user(self.no_wallet)
        response = self.client.post(reverse("ledger:candidates"), {"name": "Alice"}, format="json")
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_register_voter_normalizes_address(self):
        self.as_user(self.admin)
        response = self.client.post(reverse("ledger:voters"), {"address": OTHER.lower()}, format="json")

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data["data"]["address"], OTHER)

    def test_register_invalid_address(self):
        self.as_user(self.admin)
        response = self.client.post(reverse("ledger:voters"), {"address": "0x123"}, format="json")
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_duplicate_registration(self):
        self.setup_election()
        response = self.client.post(reverse("ledger:voters"), {"address": VOTER1}, format="json")

        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data["code"], "already_registered")

    def test_negative_duration_rejected_by_serializer(self):
        self.as_user(self.admin)
        response = self.client.post(reverse("ledger:start-voting"), {"duration": -5}, format="json")
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_vote_and_records(self):
        self.setup_election()
        response = self.vote(self.voter1, 0, "QmCID1")
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.vote(self.voter2, 1, "QmCID2")

        response = self.client.get(reverse("ledger:records"))
        self.assertEqual(response.data["data"]["count"], 2)
        self.assertEqual(
            response.data["data"]["records"][0],
            {"voter": VOTER1, "candidate_id": 0, "cid": "QmCID1"},
        )

    def test_vote_without_cid(self):
        self.setup_election()
        self.as_user(self.voter1)
        response = self.client.post(reverse("ledger:vote"), {"candidate_id": 0}, format="json")

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data["data"]["cid"], "")

    def test_vote_errors_have_specific_codes(self):
        self.setup_election()

        response = self.vote(self.other, 0)
        self.assertEqual(response.data["code"], "not_registered_voter")

        response = self.vote(self.voter1, 7)
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(response.data["code"], "invalid_candidate")

        self.vote(self.voter1, 0)
        response = self.vote(self.voter1, 1)
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data["code"], "already_voted")

        self.clock.advance(3601)
        response = self.vote(self.voter2, 0)
        self.assertEqual(response.data["code"], "voting_ended")

    def test_voter_detail(self):
        self.setup_election()
        self.vote(self.voter1, 0)

        response = self.client.get(reverse("ledger:voter-detail", args=[VOTER1.lower()]))
        self.assertEqual(
            response.data["data"], {"address": VOTER1, "registered": True, "has_voted": True}
        )

        response = self.client.get(reverse("ledger:voter-detail", args=["nonsense"]))
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_candidate_detail(self):
        self.setup_election()
        response = self.client.get(reverse("ledger:candidate-detail", args=[1]))
        self.assertEqual(response.data["data"]["name"], "Bob")

        response = self.client.get(reverse("ledger:candidate-detail", args=[5]))
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_status_and_end_voting(self):
        self.setup_election()
        response = self.client.get(reverse("ledger:voting-status"))
        self.assertTrue(response.data["data"]["is_active"])
        self.assertEqual(response.data["data"]["owner"], OWNER)

        response = self.client.post(reverse("ledger:end-voting"))
        self.assertEqual(response.status_code, status.HTTP_200_OK)

        response = self.client.get(reverse("ledger:voting-status"))
        self.assertFalse(response.data["data"]["is_active"])
        self.assertEqual(response.data["data"]["seconds_remaining"], 0)

    def test_winner_and_results(self):
        self.setup_election()
        self.vote(self.voter1, 1)

        response = self.client.get(reverse("ledger:winner"))
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data["code"], "voting_still_active")

        self.clock.advance(3601)
        response = self.client.get(reverse("ledger:winner"))
        self.assertEqual(response.data["data"], {"id": 1, "name": "Bob", "vote_count": 1})

        response = self.client.get(reverse("ledger:results"))
        data = response.data["data"]
        self.assertEqual(data["total_votes"], 1)
        self.assertEqual(data["voter_count"], 1)
        self.assertEqual(data["winner"], 1)
        self.assertEqual(data["candidates"][1]["percentage"], 100.0)

    def test_reads_are_public(self):
        self.setup_election()
        self.client.force_authenticate(user=None)

        for name in ("ledger:candidates", "ledger:records", "ledger:results", "ledger:voting-status"):
            response = self.client.get(reverse(name))
            self.assertEqual(response.status_code, status.HTTP_200_OK, name)
