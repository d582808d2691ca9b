from django.urls import path

from .views import (
    CandidateDetailView,
    CandidateListView,
    CastVoteView,
    EndVotingView,
    ResultsView,
    StartVotingView,
    VoteRecordListView,
    VoterDetailView,
    VoterRegistrationView,
    VotingStatusView,
    WinnerView,
)

app_name = "ledger"

urlpatterns = [
    path("candidates/", CandidateListView.as_view(), name="candidates"),
    path(
        "candidates/<int:candidate_id>/",
        CandidateDetailView.as_view(),
        name="candidate-detail",
    ),
    path("voters/", VoterRegistrationView.as_view(), name="voters"),
    path("voters/<str:address>/", VoterDetailView.as_view(), name="voter-detail"),
    path("voting/start/", StartVotingView.as_view(), name="start-voting"),
    path("voting/end/", EndVotingView.as_view(), name="end-voting"),
    path("voting/status/", VotingStatusView.as_view(), name="voting-status"),
    path("vote/", CastVoteView.as_view(), name="vote"),
    path("records/", VoteRecordListView.as_view(), name="records"),
    path("results/", ResultsView.as_view(), name="results"),
    path("winner/", WinnerView.as_view(), name="winner"),
]
