import threading
from unittest import mock

from django.core.cache import cache
from django.test import SimpleTestCase, override_settings

from .core import BallotRecord, Candidate, VotingLedger
from .exceptions import (
    AlreadyRegistered,
    AlreadyVoted,
    InvalidCandidate,
    InvalidDuration,
    NotRegisteredVoter,
    Unauthorized,
    VotingEnded,
    VotingStillActive,
)
from .services import LedgerService
from .signals import RESULTS_CACHE_KEY, vote_cast

OWNER = "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"
VOTER1 = "0x70997970C51812dc3A010C7d01b50e0d17dc79C8"
VOTER2 = "0x3C44CdDdB6a900fa2b585dd299e03d12FA4293BC"
OTHER = "0x90F79bf6EB2c4f870365E785982E1f101E93b906"


class FakeClock:
    def __init__(self, now=1_700_000_000):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class HookedClock(FakeClock):
    """Runs a one-shot hook the next time the time is read"""

    def __init__(self, now=1_700_000_000):
        super().__init__(now)
        self.hook = None

    def __call__(self):
        hook, self.hook = self.hook, None
        if hook is not None:
            hook()
        return self.now


class LedgerTestMixin:
    """Two candidates, two registered voters and a one hour window"""

    def setUp(self):
        self.clock = FakeClock()
        self.events = []
        self.ledger = VotingLedger(
            owner=OWNER,
            clock=self.clock,
            on_vote=lambda *args: self.events.append(args),
        )
        self.ledger.add_candidate(OWNER, "Alice")
        self.ledger.add_candidate(OWNER, "Bob")
        self.ledger.register_voter(OWNER, VOTER1)
        self.ledger.register_voter(OWNER, VOTER2)
        self.ledger.start_voting(OWNER, 3600)

    def assertCountsConsistent(self):
        self.assertEqual(self.ledger.get_total_votes(), self.ledger.get_voter_count())
        self.assertEqual(
            self.ledger.get_voter_count(), len(self.ledger.get_all_vote_records())
        )


class AdminOperationsTest(LedgerTestMixin, SimpleTestCase):
    def test_candidate_ids_are_dense_and_sequential(self):
        self.ledger.add_candidate(OWNER, "Carol")
        self.ledger.add_candidate(OWNER, "Alice")

        candidates = self.ledger.get_all_candidates()
        self.assertEqual([c.id for c in candidates], [0, 1, 2, 3])
        self.assertEqual(candidates[3], Candidate(id=3, name="Alice", vote_count=0))

    def test_non_owner_cannot_add_candidate(self):
        with self.assertRaises(Unauthorized):
            self.ledger.add_candidate(VOTER1, "Mallory")
        self.assertEqual(len(self.ledger.get_all_candidates()), 2)

    def test_owner_can_register_voter(self):
        self.ledger.register_voter(OWNER, OTHER)
        self.assertTrue(self.ledger.is_registered(OTHER))

    def test_non_owner_cannot_register_voter(self):
        with self.assertRaises(Unauthorized):
            self.ledger.register_voter(VOTER1, OTHER)
        self.assertFalse(self.ledger.is_registered(OTHER))

    def test_duplicate_registration_rejected(self):
        with self.assertRaises(AlreadyRegistered):
            self.ledger.register_voter(OWNER, VOTER1)

    def test_non_owner_cannot_control_window(self):
        with self.assertRaises(Unauthorized):
            self.ledger.start_voting(VOTER1, 10)
        with self.assertRaises(Unauthorized):
            self.ledger.end_voting(VOTER1)
        self.assertTrue(self.ledger.is_voting_active())

    def test_negative_duration_rejected(self):
        with self.assertRaises(InvalidDuration):
            self.ledger.start_voting(OWNER, -1)

    def test_end_voting_is_safe_when_inactive(self):
        self.ledger.end_voting(OWNER)
        self.ledger.end_voting(OWNER)
        self.assertFalse(self.ledger.is_voting_active())

    def test_restart_resets_deadline(self):
        self.clock.advance(100)
        window = self.ledger.start_voting(OWNER, 10)
        self.assertEqual(window.deadline, self.clock.now + 10)

        self.clock.advance(11)
        self.assertFalse(self.ledger.is_voting_active())

    def test_zero_duration_window_expires_on_next_tick(self):
        self.ledger.start_voting(OWNER, 0)
        self.assertTrue(self.ledger.is_voting_active())
        self.clock.advance(1)
        self.assertFalse(self.ledger.is_voting_active())

    def test_owner_is_fixed(self):
        self.assertEqual(self.ledger.owner, OWNER)


class VotingTest(LedgerTestMixin, SimpleTestCase):
    def test_registered_voter_can_vote(self):
        record = self.ledger.vote(VOTER1, 0, "QmABC123")

        self.assertEqual(record, BallotRecord(VOTER1, 0, "QmABC123"))
        self.assertEqual(self.events, [(VOTER1, 0, "QmABC123")])
        self.assertTrue(self.ledger.has_voted(VOTER1))

    def test_unregistered_voter_rejected_in_any_phase(self):
        with self.assertRaises(NotRegisteredVoter):
            self.ledger.vote(OTHER, 0, "QmXYZ789")
        self.clock.advance(3601)
        with self.assertRaises(NotRegisteredVoter):
            self.ledger.vote(OTHER, 0, "QmXYZ789")
        self.assertEqual(self.ledger.get_all_vote_records(), ())
        self.assertEqual(self.events, [])

    def test_records_keep_arrival_order(self):
        self.ledger.vote(VOTER1, 0, "QmCID1")
        self.ledger.vote(VOTER2, 1, "QmCID2")

        records = self.ledger.get_all_vote_records()
        self.assertEqual([r.cid for r in records], ["QmCID1", "QmCID2"])
        self.assertEqual([r.voter for r in records], [VOTER1, VOTER2])

    def test_empty_cid_is_accepted(self):
        self.ledger.vote(VOTER1, 0, "")
        self.assertTrue(self.ledger.has_voted(VOTER1))
        self.assertEqual(self.ledger.get_all_vote_records()[0].cid, "")

    def test_second_vote_rejected_and_tallies_unchanged(self):
        self.ledger.vote(VOTER1, 0, "QmVALID")
        with self.assertRaises(AlreadyVoted):
            self.ledger.vote(VOTER1, 1, "QmINVALID")

        candidates = self.ledger.get_all_candidates()
        self.assertEqual(candidates[0].vote_count, 1)
        self.assertEqual(candidates[1].vote_count, 0)
        self.assertCountsConsistent()

    def test_invalid_candidate_rejected(self):
        for candidate_id in (2, -1):
            with self.assertRaises(InvalidCandidate):
                self.ledger.vote(VOTER1, candidate_id, "Qm")
        self.assertFalse(self.ledger.has_voted(VOTER1))

    def test_vote_after_deadline_rejected_without_end_voting(self):
        self.clock.advance(3601)
        with self.assertRaises(VotingEnded):
            self.ledger.vote(VOTER1, 0, "QmEXPIRED")

    def test_vote_at_deadline_accepted(self):
        self.clock.advance(3600)
        self.ledger.vote(VOTER1, 0, "QmEDGE")
        self.assertEqual(self.ledger.get_voter_count(), 1)

    def test_vote_after_end_voting_rejected(self):
        self.ledger.end_voting(OWNER)
        with self.assertRaises(VotingEnded):
            self.ledger.vote(VOTER1, 0, "Qm")

    def test_vote_before_start_rejected(self):
        ledger = VotingLedger(owner=OWNER, clock=self.clock)
        ledger.add_candidate(OWNER, "Alice")
        ledger.register_voter(OWNER, VOTER1)
        with self.assertRaises(VotingEnded):
            ledger.vote(VOTER1, 0, "Qm")

    def test_precondition_order(self):
        self.ledger.vote(VOTER1, 0, "Qm")
        self.clock.advance(3601)
        # registration is checked before the window
        with self.assertRaises(NotRegisteredVoter):
            self.ledger.vote(OTHER, 99, "Qm")
        # the window is checked before the double vote
        with self.assertRaises(VotingEnded):
            self.ledger.vote(VOTER1, 99, "Qm")

    def test_failing_sink_does_not_undo_vote(self):
        ledger = VotingLedger(owner=OWNER, clock=self.clock, on_vote=mock.Mock(side_effect=RuntimeError))
        ledger.add_candidate(OWNER, "Alice")
        ledger.register_voter(OWNER, VOTER1)
        ledger.start_voting(OWNER, 60)

        with self.assertLogs("ledger", level="ERROR"):
            ledger.vote(VOTER1, 0, "Qm")
        self.assertEqual(ledger.get_total_votes(), 1)

    def test_counts_stay_consistent(self):
        self.assertCountsConsistent()
        self.ledger.vote(VOTER1, 0, "QmA")
        self.assertCountsConsistent()
        self.ledger.vote(VOTER2, 1, "QmB")
        self.assertCountsConsistent()
        self.assertEqual(self.ledger.get_total_votes(), 2)

    def test_concurrent_votes_from_one_voter(self):
        workers = 16
        barrier = threading.Barrier(workers)
        accepted, rejected = [], []

        def cast(i):
            barrier.wait()
            try:
                accepted.append(self.ledger.vote(VOTER1, i % 2, f"Qm{i}"))
            except AlreadyVoted:
                rejected.append(i)

        threads = [threading.Thread(target=cast, args=(i,)) for i in range(workers)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        self.assertEqual(len(accepted), 1)
        self.assertEqual(len(rejected), workers - 1)
        self.assertEqual(self.ledger.get_total_votes(), 1)
        self.assertEqual(self.ledger.get_voter_count(), 1)
        self.assertEqual(len(self.events), 1)
        self.assertCountsConsistent()

    def test_full_scenario(self):
        self.ledger.vote(VOTER1, 0, "QmCID1")
        self.assertEqual(self.ledger.get_all_vote_records(), (BallotRecord(VOTER1, 0, "QmCID1"),))
        self.assertEqual(self.ledger.get_candidate(0).vote_count, 1)

        self.ledger.vote(VOTER2, 1, "QmCID2")
        self.assertEqual(len(self.ledger.get_all_vote_records()), 2)
        self.assertEqual(self.ledger.get_candidate(1).vote_count, 1)
        self.assertEqual(self.ledger.get_total_votes(), 2)
        with self.assertRaises(AlreadyVoted):
            self.ledger.vote(VOTER1, 0, "Qm")

        self.clock.advance(3601)
        # the window is checked before the double vote
        with self.assertRaises(VotingEnded):
            self.ledger.vote(VOTER1, 0, "Qm")
        with self.assertRaises(NotRegisteredVoter):
            self.ledger.vote(OTHER, 0, "Qm")

        self.ledger.register_voter(OWNER, OTHER)
        with self.assertRaises(VotingEnded):
            self.ledger.vote(OTHER, 0, "Qm")


class WinnerTest(LedgerTestMixin, SimpleTestCase):
    def test_winner_unavailable_while_open(self):
        with self.assertRaises(VotingStillActive):
            self.ledger.get_winner()

    def test_winner_after_deadline(self):
        self.ledger.vote(VOTER1, 1, "Qm1")
        self.clock.advance(3601)
        self.assertEqual(self.ledger.get_winner(), 1)

    def test_tie_goes_to_lowest_id(self):
        self.ledger.vote(VOTER1, 1, "Qm1")
        self.ledger.vote(VOTER2, 0, "Qm2")
        self.ledger.end_voting(OWNER)
        self.assertEqual(self.ledger.get_winner(), 0)

    def test_no_votes_returns_first_candidate(self):
        self.ledger.end_voting(OWNER)
        self.assertEqual(self.ledger.get_winner(), 0)

    def test_no_candidates(self):
        ledger = VotingLedger(owner=OWNER, clock=self.clock)
        with self.assertRaises(InvalidCandidate):
            ledger.get_winner()


@override_settings(LEDGER_CONFIG={"ADMIN_ADDRESS": OWNER, "RESULTS_CACHE_TIMEOUT": 300})
class LedgerServiceTest(SimpleTestCase):
    def setUp(self):
        cache.clear()
        self.clock = FakeClock()
        self.service = LedgerService(clock=self.clock)
        self.service.add_candidate(OWNER, "Alice")
        self.service.add_candidate(OWNER, "Bob")
        self.service.register_voter(OWNER, VOTER1)
        self.service.register_voter(OWNER, VOTER2)
        self.service.start_voting(OWNER, 3600)

    def test_administrator_comes_from_settings(self):
        self.assertEqual(self.service.ledger.owner, OWNER)

    def test_lowercase_administrator_is_checksummed(self):
        config = {"ADMIN_ADDRESS": OWNER.lower(), "RESULTS_CACHE_TIMEOUT": 300}
        with override_settings(LEDGER_CONFIG=config):
            service = LedgerService(clock=self.clock)

        self.assertEqual(service.ledger.owner, OWNER)
        self.assertEqual(service.add_candidate(OWNER, "Alice"), Candidate(0, "Alice", 0))

    def test_vote_sends_signal(self):
        handler = mock.Mock()
        vote_cast.connect(handler)
        self.addCleanup(vote_cast.disconnect, handler)

        self.service.vote(VOTER1, 0, "QmCID1")

        handler.assert_called_once()
        kwargs = handler.call_args.kwargs
        self.assertEqual((kwargs["voter"], kwargs["candidate_id"], kwargs["cid"]), (VOTER1, 0, "QmCID1"))

    def test_broken_receiver_is_logged(self):
        handler = mock.Mock(side_effect=RuntimeError("boom"))
        vote_cast.connect(handler)
        self.addCleanup(vote_cast.disconnect, handler)

        with self.assertLogs("ledger", level="ERROR"):
            self.service.vote(VOTER1, 0, "Qm")
        self.assertTrue(self.service.ledger.has_voted(VOTER1))

    def test_rejection_propagates(self):
        with self.assertRaises(Unauthorized):
            self.service.add_candidate(VOTER1, "Mallory")

    def test_results_with_percentages(self):
        self.service.vote(VOTER1, 0, "Qm1")
        results = self.service.get_results()

        self.assertTrue(results["is_active"])
        self.assertIsNone(results["winner"])
        self.assertEqual(results["total_votes"], 1)
        self.assertEqual(results["voter_count"], 1)
        self.assertEqual(results["candidates"][0]["percentage"], 100.0)
        self.assertEqual(results["candidates"][1]["percentage"], 0)

    def test_results_cache_invalidated_by_vote(self):
        self.service.get_results()
        self.assertIsNotNone(cache.get(RESULTS_CACHE_KEY))

        self.service.vote(VOTER1, 0, "Qm1")
        self.assertIsNone(cache.get(RESULTS_CACHE_KEY))
        self.assertEqual(self.service.get_results()["total_votes"], 1)

    def test_results_come_from_one_snapshot(self):
        clock = HookedClock()
        service = LedgerService(clock=clock)
        service.add_candidate(OWNER, "Alice")
        service.add_candidate(OWNER, "Bob")
        service.register_voter(OWNER, VOTER1)
        service.register_voter(OWNER, VOTER2)
        service.start_voting(OWNER, 3600)
        service.vote(VOTER1, 0, "Qm1")

        # a second ballot lands while the results are being assembled
        clock.hook = lambda: service.ledger.vote(VOTER2, 1, "Qm2")
        results = service.get_results()

        tallied = sum(c["vote_count"] for c in results["candidates"])
        self.assertEqual(tallied, 1)
        self.assertEqual(results["total_votes"], 1)
        self.assertEqual(results["voter_count"], 1)

        results = service.get_results()
        self.assertEqual(results["total_votes"], 2)
        self.assertEqual(results["voter_count"], 2)

    def test_results_refresh_when_window_expires(self):
        self.service.vote(VOTER1, 1, "Qm1")
        self.service.get_results()
        self.clock.advance(3601)

        results = self.service.get_results()
        self.assertFalse(results["is_active"])
        self.assertEqual(results["winner"], 1)

    def test_status(self):
        status = self.service.get_status()
        self.assertEqual(status["owner"], OWNER)
        self.assertTrue(status["is_active"])
        self.assertEqual(status["deadline"], self.clock.now + 3600)
        self.assertEqual(status["seconds_remaining"], 3600)
