import logging

from django.core.cache import cache
from django.dispatch import Signal, receiver

logger = logging.getLogger("ledger")

# Sent once per accepted vote, in call order. kwargs: voter, candidate_id, cid
vote_cast = Signal()

# Sent after any successful mutation. kwargs: operation
ledger_changed = Signal()

RESULTS_CACHE_KEY = "ledger:results"


def send_robust(signal, **kwargs):
    """Fire a signal without letting a broken receiver fail the operation."""
    for receiver_fn, response in signal.send_robust(sender="ledger", **kwargs):
        if isinstance(response, Exception):
            logger.error(f"Receiver {receiver_fn!r} failed: {response}")


@receiver(vote_cast)
@receiver(ledger_changed)
def invalidate_results_cache(sender, **kwargs):
    """Clear cached results after every mutation"""
    cache.delete(RESULTS_CACHE_KEY)
    logger.debug("Results cache invalidated")
