import logging
import uuid
from typing import Any, Callable, Dict, Optional

from django.conf import settings
from django.core.cache import cache

from accounts.validators import normalize_address

from .core import BallotRecord, Candidate, VotingLedger, VotingWindow, leading_candidate
from .exceptions import LedgerError
from .signals import RESULTS_CACHE_KEY, ledger_changed, send_robust, vote_cast

logger = logging.getLogger("ledger")


class LedgerService:
    """
    Centralized service for all ledger operations.
    Owns the single VotingLedger instance, logs every call and
    forwards notifications to Django signals.
    """

    def __init__(self, owner: Optional[str] = None, clock: Optional[Callable[[], int]] = None):
        self.config = settings.LEDGER_CONFIG
        # Callers reach the ledger in checksum form, so the administrator must too
        owner = normalize_address(owner or self.config["ADMIN_ADDRESS"])
        self.ledger = VotingLedger(owner=owner, clock=clock, on_vote=self._notify_vote)
        logger.info(f"Ledger created with administrator {owner}")

    @staticmethod
    def _request_id() -> str:
        return str(uuid.uuid4())[:8]

    def _notify_vote(self, voter: str, candidate_id: int, cid: str) -> None:
        send_robust(vote_cast, voter=voter, candidate_id=candidate_id, cid=cid)

    def _run(self, operation: str, caller: str, fn, *args):
        """Run a mutating ledger call with tracing and change notification"""
        request_id = self._request_id()
        logger.info(f"[{request_id}] {operation} requested by {caller}")
        try:
            result = fn(caller, *args)
        except LedgerError as e:
            logger.warning(f"[{request_id}] {operation} rejected: {e.code}")
            raise
        send_robust(ledger_changed, operation=operation)
        logger.info(f"[{request_id}] {operation} succeeded")
        return result

    # Admin operations

    def add_candidate(self, caller: str, name: str) -> Candidate:
        return self._run("add_candidate", caller, self.ledger.add_candidate, name)

    def register_voter(self, caller: str, address: str) -> None:
        self._run("register_voter", caller, self.ledger.register_voter, address)

    def start_voting(self, caller: str, duration_seconds: int) -> VotingWindow:
        return self._run(
            "start_voting", caller, self.ledger.start_voting, duration_seconds
        )

    def end_voting(self, caller: str) -> None:
        self._run("end_voting", caller, self.ledger.end_voting)

    # Voter operation

    def vote(self, caller: str, candidate_id: int, cid: str = "") -> BallotRecord:
        return self._run("vote", caller, self.ledger.vote, candidate_id, cid)

    # Reads

    def get_status(self) -> Dict[str, Any]:
        window = self.ledger.get_window()
        return {
            "owner": self.ledger.owner,
            "is_active": self.ledger.is_voting_active(),
            "deadline": window.deadline if window.is_active else None,
            "seconds_remaining": self.ledger.seconds_remaining(),
        }

    def get_voter(self, address: str) -> Dict[str, Any]:
        return {
            "address": address,
            "registered": self.ledger.is_registered(address),
            "has_voted": self.ledger.has_voted(address),
        }

    def get_results(self, use_cache: bool = True) -> Dict[str, Any]:
        """
        Tallies with percentages, totals and the winner once voting is closed.
        Everything is computed from one ledger snapshot.

        Args:
            use_cache: whether to use cached results (default: True)
        """
        state = self.ledger.state
        is_active = state.window.is_open(self.ledger.now())

        if use_cache:
            cached = cache.get(RESULTS_CACHE_KEY)
            # The window can expire without any mutation
            if (
                cached
                and cached["version"] == state.version
                and cached["results"]["is_active"] == is_active
            ):
                logger.debug("Returning cached results")
                return cached["results"]

        total_votes = sum(c.vote_count for c in state.candidates)
        winner = None
        if not is_active and state.candidates:
            winner = leading_candidate(state.candidates).id

        results = {
            "is_active": is_active,
            "total_votes": total_votes,
            "voter_count": len(state.records),
            "winner": winner,
            "candidates": [
                {
                    "id": c.id,
                    "name": c.name,
                    "vote_count": c.vote_count,
                    "percentage": round(
                        (c.vote_count / total_votes * 100) if total_votes > 0 else 0,
                        2,
                    ),
                }
                for c in state.candidates
            ],
        }

        cache.set(
            RESULTS_CACHE_KEY,
            {"version": state.version, "results": results},
            timeout=self.config.get("RESULTS_CACHE_TIMEOUT", 300),
        )
        return results


# Singleton instance
_ledger_service: Optional[LedgerService] = None


def get_ledger_service() -> LedgerService:
    """Get or create the ledger service singleton"""
    global _ledger_service
    if _ledger_service is None:
        _ledger_service = LedgerService()
    return _ledger_service


def reset_ledger_service() -> None:
    """Drop the singleton, discarding all ledger state (used by tests)."""
    global _ledger_service
    _ledger_service = None
    cache.delete(RESULTS_CACHE_KEY)
