"""
Blockchain API Views

Read-only views over the deployed Voting contract.

ENDPOINT SUMMARY:
    GET  /api/v1/blockchain/status/    - Check connection
    GET  /api/v1/blockchain/results/   - Tallies read from the contract
    GET  /api/v1/blockchain/winner/    - Winner read from the contract
"""

import logging
import time

from rest_framework import permissions, status
from rest_framework.response import Response
from rest_framework.views import APIView

from ledger.exceptions import LedgerError
from ledger.serializers import CandidateSerializer
from ledger.views import ledger_error_response

from .services import (
    BlockchainConnectionError,
    ContractNotLoadedError,
    get_chain_client,
)

logger = logging.getLogger("blockchain")


def unavailable_response(error: Exception) -> Response:
    return Response(
        {"status": "error", "message": str(error)},
        status=status.HTTP_503_SERVICE_UNAVAILABLE,
    )


class BlockchainStatusView(APIView):
    """
    GET /api/v1/blockchain/status/

    Check blockchain connection status.
    No authentication required - useful for health checks.
    """

    permission_classes = [permissions.AllowAny]

    def get(self, request):
        logger.info("Blockchain status check requested.")
        try:
            client = get_chain_client()
        except BlockchainConnectionError as e:
            logger.exception("Blockchain connection failed.")
            return Response(
                {
                    "status": "error",
                    "message": f"Cannot connect to blockchain: {str(e)}",
                    "data": {"connected": False, "error": str(e)},
                },
                status=status.HTTP_503_SERVICE_UNAVAILABLE,
            )

        return Response(
            {
                "status": "success",
                "message": "Blockchain connection status",
                "data": client.get_status(),
            }
        )


class BlockchainResultsView(APIView):
    """
    GET /api/v1/blockchain/results/

    Results read straight from the contract. Anyone can view them.
    """

    permission_classes = [permissions.AllowAny]

    def get(self, request):
        try:
            client = get_chain_client()
            start = time.time()
            candidates = client.get_all_candidates()
            total_votes = client.get_total_votes()
            voter_count = client.get_voter_count()
            is_active = client.is_voting_active()
            elapsed = time.time() - start
        except (BlockchainConnectionError, ContractNotLoadedError) as e:
            logger.error(f"Cannot fetch on-chain results: {e}")
            return unavailable_response(e)
        except LedgerError as e:
            return ledger_error_response(e)

        logger.info(f"Fetching results from the blockchain took : {elapsed:.2f}s")

        results = CandidateSerializer(candidates, many=True).data
        for r in results:
            r["percentage"] = round(
                (r["vote_count"] / total_votes * 100) if total_votes > 0 else 0, 2
            )

        return Response(
            {
                "status": "success",
                "message": "Results retrieved from blockchain",
                "data": {
                    "is_active": is_active,
                    "summary": {"total_votes": total_votes, "voter_count": voter_count},
                    "results": results,
                    "source": "blockchain",
                },
            }
        )


class BlockchainWinnerView(APIView):
    permission_classes = [permissions.AllowAny]

    def get(self, request):
        try:
            client = get_chain_client()
            winner = client.get_candidate(client.get_winner())
        except (BlockchainConnectionError, ContractNotLoadedError) as e:
            return unavailable_response(e)
        except LedgerError as e:
            return ledger_error_response(e)

        return Response(
            {
                "status": "success",
                "data": CandidateSerializer(winner).data,
                "source": "blockchain",
            }
        )
