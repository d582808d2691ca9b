"""
Voting Ledger

The single-election state machine behind the API. It holds candidates,
the voter allow-list, the ballot log and the voting window.

Every mutation runs under one lock and publishes a fresh immutable
LedgerState, so reads never block and always see a consistent snapshot.
"""

import logging
import threading
from dataclasses import dataclass, field, replace
from typing import Callable, FrozenSet, Optional, Tuple

from django.utils import timezone

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

logger = logging.getLogger("ledger")

# (voter, candidate_id, cid)
VoteSink = Callable[[str, int, str], None]


@dataclass(frozen=True)
class Candidate:
    id: int
    name: str
    vote_count: int = 0


@dataclass(frozen=True)
class BallotRecord:
    voter: str
    candidate_id: int
    cid: str


@dataclass(frozen=True)
class VotingWindow:
    is_active: bool = False
    deadline: int = 0

    def is_open(self, now: int) -> bool:
        """Effective-open predicate: the flag alone is not enough once the deadline passes."""
        return self.is_active and now <= self.deadline


@dataclass(frozen=True)
class LedgerState:
    candidates: Tuple[Candidate, ...] = ()
    registered: FrozenSet[str] = frozenset()
    voted: FrozenSet[str] = frozenset()
    records: Tuple[BallotRecord, ...] = ()
    window: VotingWindow = field(default_factory=VotingWindow)
    # bumped on every published mutation
    version: int = 0


def leading_candidate(candidates: Tuple[Candidate, ...]) -> Candidate:
    """First candidate holding the highest vote count."""
    winner = candidates[0]
    for candidate in candidates[1:]:
        if candidate.vote_count > winner.vote_count:
            winner = candidate
    return winner


class SystemClock:
    """Wall clock in whole seconds since the epoch."""

    def __call__(self) -> int:
        return int(timezone.now().timestamp())


class VotingLedger:
    """
    Authority-gated registry for one election.

    Args:
        owner: identity of the administrator, fixed for the ledger's lifetime
        clock: callable returning the current timestamp in seconds
        on_vote: notification sink called once per accepted vote
    """

    def __init__(
        self,
        owner: str,
        clock: Optional[Callable[[], int]] = None,
        on_vote: Optional[VoteSink] = None,
    ):
        self._owner = owner
        self._clock = clock or SystemClock()
        self._on_vote = on_vote
        self._lock = threading.Lock()
        self._state = LedgerState()

    @property
    def owner(self) -> str:
        return self._owner

    @property
    def state(self) -> LedgerState:
        return self._state

    def _publish(self, state: LedgerState, **changes) -> None:
        """Swap in the next snapshot; callers hold the lock."""
        self._state = replace(state, version=state.version + 1, **changes)

    def now(self) -> int:
        return self._clock()

    def _require_owner(self, caller: str) -> None:
        if caller != self._owner:
            raise Unauthorized()

    # ------------------------------------------------------------------
    # Admin surface
    # ------------------------------------------------------------------

    def add_candidate(self, caller: str, name: str) -> Candidate:
        self._require_owner(caller)
        with self._lock:
            state = self._state
            candidate = Candidate(id=len(state.candidates), name=name)
            self._publish(state, candidates=state.candidates + (candidate,))
        logger.debug(f"Candidate added: id={candidate.id} name={name!r}")
        return candidate

    def register_voter(self, caller: str, address: str) -> None:
        self._require_owner(caller)
        with self._lock:
            state = self._state
            if address in state.registered:
                raise AlreadyRegistered()
            self._publish(state, registered=state.registered | {address})
        logger.debug(f"Voter registered: {address}")

    def start_voting(self, caller: str, duration_seconds: int) -> VotingWindow:
        """Open (or reopen) the window; the last call wins."""
        self._require_owner(caller)
        if duration_seconds < 0:
            raise InvalidDuration()
        with self._lock:
            window = VotingWindow(
                is_active=True, deadline=self._clock() + int(duration_seconds)
            )
            self._publish(self._state, window=window)
        logger.debug(f"Voting window opened until {window.deadline}")
        return window

    def end_voting(self, caller: str) -> None:
        self._require_owner(caller)
        with self._lock:
            state = self._state
            self._publish(state, window=replace(state.window, is_active=False))
        logger.debug("Voting window closed")

    # ------------------------------------------------------------------
    # Ballot casting
    # ------------------------------------------------------------------

    def vote(self, caller: str, candidate_id: int, cid: str = "") -> BallotRecord:
        """
        Cast the caller's single ballot.

        Checks run in a fixed order: registration, window, double vote,
        candidate id. Tally, voter flag and ballot log change together or
        not at all.
        """
        with self._lock:
            state = self._state
            if caller not in state.registered:
                raise NotRegisteredVoter()
            if not state.window.is_open(self._clock()):
                raise VotingEnded()
            if caller in state.voted:
                raise AlreadyVoted()
            if not 0 <= candidate_id < len(state.candidates):
                raise InvalidCandidate()

            chosen = state.candidates[candidate_id]
            candidates = list(state.candidates)
            candidates[candidate_id] = replace(chosen, vote_count=chosen.vote_count + 1)
            record = BallotRecord(voter=caller, candidate_id=candidate_id, cid=cid)
            self._publish(
                state,
                candidates=tuple(candidates),
                voted=state.voted | {caller},
                records=state.records + (record,),
            )

            if self._on_vote is not None:
                try:
                    self._on_vote(caller, candidate_id, cid)
                except Exception:
                    logger.exception(f"Vote notification failed for {caller}")
        return record

    # ------------------------------------------------------------------
    # Read / aggregation surface
    # ------------------------------------------------------------------

    def get_all_candidates(self) -> Tuple[Candidate, ...]:
        return self._state.candidates

    def get_candidate(self, candidate_id: int) -> Candidate:
        candidates = self._state.candidates
        if not 0 <= candidate_id < len(candidates):
            raise InvalidCandidate()
        return candidates[candidate_id]

    def get_all_vote_records(self) -> Tuple[BallotRecord, ...]:
        return self._state.records

    def get_voter_count(self) -> int:
        return len(self._state.records)

    def get_total_votes(self) -> int:
        return sum(c.vote_count for c in self._state.candidates)

    def is_registered(self, address: str) -> bool:
        return address in self._state.registered

    def has_voted(self, address: str) -> bool:
        return address in self._state.voted

    def get_window(self) -> VotingWindow:
        return self._state.window

    def is_voting_active(self) -> bool:
        return self._state.window.is_open(self._clock())

    def seconds_remaining(self) -> int:
        window = self._state.window
        now = self._clock()
        if not window.is_open(now):
            return 0
        return window.deadline - now

    def get_winner(self) -> int:
        """Id of the leading candidate; ties go to the lowest id."""
        state = self._state
        if state.window.is_open(self._clock()):
            raise VotingStillActive()
        if not state.candidates:
            raise InvalidCandidate("No candidates")

        return leading_candidate(state.candidates).id
