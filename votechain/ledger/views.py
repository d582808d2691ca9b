"""
Ledger API Views

Request/response surface of the voting ledger. The caller identity is
the authenticated user's wallet address; authorization of admin-only
operations is decided by the ledger itself.

ENDPOINT SUMMARY:
    GET  /api/v1/ledger/candidates/             - List candidates with tallies
    POST /api/v1/ledger/candidates/             - Add a candidate (admin)
    GET  /api/v1/ledger/candidates/<id>/        - One candidate
    POST /api/v1/ledger/voters/                 - Register a voter (admin)
    GET  /api/v1/ledger/voters/<address>/       - Registration and voting status
    POST /api/v1/ledger/voting/start/           - Open the window (admin)
    POST /api/v1/ledger/voting/end/             - Close the window (admin)
    GET  /api/v1/ledger/voting/status/          - Window status
    POST /api/v1/ledger/vote/                   - Cast a ballot
    GET  /api/v1/ledger/records/                - Ballot log in arrival order
    GET  /api/v1/ledger/results/                - Aggregated results
    GET  /api/v1/ledger/winner/                 - Winner once voting is closed
"""

import logging

from django.core.exceptions import ValidationError as DjangoValidationError
from rest_framework import permissions, status
from rest_framework.response import Response
from rest_framework.views import APIView

from accounts.permissions import HasWalletAddress, caller_address
from accounts.validators import normalize_address

from .exceptions import LedgerError
from .serializers import (
    BallotRecordSerializer,
    CandidateSerializer,
    StartVotingSerializer,
    VoterRegistrationSerializer,
    VoteSerializer,
)
from .services import get_ledger_service

logger = logging.getLogger("ledger")


def ledger_error_response(error: LedgerError) -> Response:
    """Render a ledger failure with its specific code"""
    return Response(
        {"status": "error", "code": error.code, "message": str(error), "data": None},
        status=error.status_code,
    )


class LedgerAPIView(APIView):
    """
    Reads are public; writes need a caller with a wallet address.
    """

    def get_permissions(self):
        if self.request.method in permissions.SAFE_METHODS:
            return [permissions.AllowAny()]
        return [HasWalletAddress()]


class CandidateListView(LedgerAPIView):
    def get(self, request):
        candidates = get_ledger_service().ledger.get_all_candidates()
        return Response(
            {
                "status": "success",
                "data": CandidateSerializer(candidates, many=True).data,
            }
        )

    def post(self, request):
        serializer = CandidateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            candidate = get_ledger_service().add_candidate(
                caller_address(request), serializer.validated_data["name"]
            )
        except LedgerError as e:
            return ledger_error_response(e)

        return Response(
            {
                "status": "success",
                "message": "Candidate added",
                "data": CandidateSerializer(candidate).data,
            },
            status=status.HTTP_201_CREATED,
        )


class CandidateDetailView(LedgerAPIView):
    def get(self, request, candidate_id):
        try:
            candidate = get_ledger_service().ledger.get_candidate(candidate_id)
        except LedgerError as e:
            return ledger_error_response(e)
        return Response({"status": "success", "data": CandidateSerializer(candidate).data})


class VoterRegistrationView(LedgerAPIView):
    """
    POST /api/v1/ledger/voters/

    Request body:
    {
        "address": "0x..."
    }
    """

    def post(self, request):
        serializer = VoterRegistrationSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        address = serializer.validated_data["address"]

        try:
            get_ledger_service().register_voter(caller_address(request), address)
        except LedgerError as e:
            return ledger_error_response(e)

        return Response(
            {
                "status": "success",
                "message": "Voter registered",
                "data": {"address": address, "registered": True},
            },
            status=status.HTTP_201_CREATED,
        )


class VoterDetailView(LedgerAPIView):
    def get(self, request, address):
        try:
            address = normalize_address(address)
        except DjangoValidationError as e:
            return Response(
                {"status": "error", "message": e.messages[0], "data": None},
                status=status.HTTP_400_BAD_REQUEST,
            )
        return Response(
            {"status": "success", "data": get_ledger_service().get_voter(address)}
        )


class StartVotingView(LedgerAPIView):
    """
    POST /api/v1/ledger/voting/start/

    Opens the window for `duration` seconds. Calling it again restarts
    the window from now.
    """

    def post(self, request):
        serializer = StartVotingSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            window = get_ledger_service().start_voting(
                caller_address(request), serializer.validated_data["duration"]
            )
        except LedgerError as e:
            return ledger_error_response(e)

        return Response(
            {
                "status": "success",
                "message": "Voting started",
                "data": {"is_active": window.is_active, "deadline": window.deadline},
            }
        )


class EndVotingView(LedgerAPIView):
    def post(self, request):
        try:
            get_ledger_service().end_voting(caller_address(request))
        except LedgerError as e:
            return ledger_error_response(e)
        return Response({"status": "success", "message": "Voting ended"})


class VotingStatusView(LedgerAPIView):
    def get(self, request):
        return Response({"status": "success", "data": get_ledger_service().get_status()})


class CastVoteView(LedgerAPIView):
    """
    POST /api/v1/ledger/vote/

    Request body:
    {
        "candidate_id": 0,
        "cid": "Qm..."     // optional, stored as-is
    }
    """

    def post(self, request):
        serializer = VoteSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            record = get_ledger_service().vote(
                caller_address(request),
                serializer.validated_data["candidate_id"],
                serializer.validated_data["cid"],
            )
        except LedgerError as e:
            return ledger_error_response(e)

        return Response(
            {
                "status": "success",
                "message": "Vote cast successfully",
                "data": BallotRecordSerializer(record).data,
            },
            status=status.HTTP_201_CREATED,
        )


class VoteRecordListView(LedgerAPIView):
    def get(self, request):
        records = get_ledger_service().ledger.get_all_vote_records()
        return Response(
            {
                "status": "success",
                "data": {
                    "count": len(records),
                    "records": BallotRecordSerializer(records, many=True).data,
                },
            }
        )


class ResultsView(LedgerAPIView):
    """
    GET /api/v1/ledger/results/

    Aggregated tallies, cached until the next mutation.
    """

    def get(self, request):
        results = get_ledger_service().get_results(use_cache=True)
        return Response(
            {
                "status": "success",
                "message": "Results retrived successfully",
                "data": results,
            }
        )


class WinnerView(LedgerAPIView):
    def get(self, request):
        service = get_ledger_service()
        try:
            winner_id = service.ledger.get_winner()
            winner = service.ledger.get_candidate(winner_id)
        except LedgerError as e:
            return ledger_error_response(e)

        logger.info(f"Winner requested: candidate {winner_id}")
        return Response({"status": "success", "data": CandidateSerializer(winner).data})
